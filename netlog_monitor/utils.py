# utils.py
from datetime import datetime
from typing import Optional

TIMESTAMP_FORMAT = "%Y %b %d %H:%M:%S"


def format_mac(mac: str) -> str:
    """Formats a MAC address to lowercase with colons."""
    return mac.lower().replace("-", ":")


def parse_syslog_time(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Parses a syslog `Mon Day HH:MM:SS` timestamp, which carries no year.

    The year is taken from `now`. A result more than a day ahead of `now`
    belongs to the previous year (a log read across New Year).

    Returns:
        The timestamp, or None when the text is not a valid timestamp.
    """
    now = now or datetime.now()
    text = " ".join(text.split())
    try:
        parsed = datetime.strptime(f"{now.year} {text}", TIMESTAMP_FORMAT)
    except ValueError:
        # Feb 29 outside a leap year lands here too
        return None
    if (parsed - now).days >= 1:
        try:
            parsed = parsed.replace(year=now.year - 1)
        except ValueError:
            return None
    return parsed
