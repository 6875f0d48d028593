# report.py
import logging
import smtplib
import threading
from datetime import datetime
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from mac_vendor_lookup import MacLookup

from .device import Device, HostVisit
from .store import Store

logger = logging.getLogger(__name__)

TEMPLATES = Path(__file__).resolve().parent / "templates"

env = Environment(
    loader=FileSystemLoader(str(TEMPLATES)),
    autoescape=select_autoescape(["html", "j2"]),
)


class VendorLookup:
    """Thread-safe, caching wrapper around MacLookup.

    MacLookup drives its own event loop, so calls from the web and scheduler
    threads are serialised.
    """

    def __init__(self, mac_lookup: Optional[MacLookup] = None):
        self.mac_lookup = mac_lookup
        self.cache: Dict[str, Optional[str]] = {}
        self.lock = threading.Lock()

    def lookup(self, mac: str) -> Optional[str]:
        with self.lock:
            if mac in self.cache:
                return self.cache[mac]
            try:
                if self.mac_lookup is None:
                    self.mac_lookup = MacLookup()
                vendor = self.mac_lookup.lookup(mac)
            except Exception as e:  # pylint: disable=broad-except
                logger.debug(f"Could not determine vendor for MAC {mac}: {e}")
                vendor = None
            self.cache[mac] = vendor
            return vendor


def build_digest(snapshot: Dict[Device, Dict[str, HostVisit]],
                 vendors: Optional[VendorLookup] = None) -> List[Dict[str, Any]]:
    """Turns a store snapshot into rows for the digest templates.

    Args:
        snapshot: The result of Store.snapshot.
        vendors: Optional MAC vendor resolver.

    Returns:
        One row per device, sorted by device name, each with its hosts sorted
        by name.
    """
    rows = []
    for device, hosts in snapshot.items():
        rows.append({
            "name": device.name,
            "mac": device.mac,
            "ip": device.ip,
            "at": device.at,
            "vendor": vendors.lookup(device.mac) if vendors else None,
            "hosts": [
                {"host": host, "count": len(visit.times), "last": visit.last_visit}
                for host, visit in sorted(hosts.items())
            ],
        })
    rows.sort(key=lambda row: (row["name"].lower(), row["mac"]))
    return rows


def render_digest(rows: List[Dict[str, Any]], root: str) -> str:
    tpl = env.get_template("digest.html.j2")
    return tpl.render(devices=rows, root=root, generated=datetime.now())


def send_mail(mail_config, html: str) -> bool:
    """Sends the rendered digest. Returns False (and logs) if sending failed."""
    msg = EmailMessage()
    msg["From"] = mail_config.get("from")
    msg["To"] = mail_config.get("to")
    msg["Subject"] = mail_config.get("subject", "Network log digest")
    msg.set_content("This digest is only available as HTML.")
    msg.add_alternative(html, subtype="html")

    server = mail_config.get("smtp_server", "localhost")
    port = int(mail_config.get("smtp_port", 25))
    user = mail_config.get("smtp_user")
    try:
        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if user:
                smtp.starttls()
                smtp.login(user, mail_config.get("smtp_password", ""))
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Error sending digest via {server}:{port}: {e}")
        return False
    logger.info(f"Sent digest to {msg['To']}")
    return True


def send_update(mail_config, store: Store, root: str, vendors: Optional[VendorLookup] = None) -> bool:
    """Consumes the visits recorded since the last digest and mails them."""
    logger.info("Sending update")
    snapshot = store.snapshot(reset=True)
    html = render_digest(build_digest(snapshot, vendors), root)
    return send_mail(mail_config, html)


class DigestScheduler:
    """Runs `job` every `interval_minutes` on a background thread until stopped."""

    def __init__(self, interval_minutes: float, job: Callable[[], Any]) -> None:
        self.interval_minutes: float = interval_minutes
        self.job: Callable[[], Any] = job
        self._stop_event: threading.Event = threading.Event()
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self.interval_minutes <= 0:
            logger.info("Digest disabled")
            return
        logger.info(f"Starting digest every {self.interval_minutes} minutes")
        self.thread = threading.Thread(target=self._loop, daemon=True)
        self.thread.start()

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval_minutes * 60):
            try:
                self.job()
            except Exception as e:  # pylint: disable=broad-except
                logger.error(f"Digest job failed: {e}", exc_info=True)

    def stop(self) -> None:
        self._stop_event.set()
        if self.thread is not None:
            self.thread.join(timeout=5)
