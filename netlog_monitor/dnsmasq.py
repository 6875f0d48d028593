# dnsmasq.py
import logging
import re
from datetime import datetime
from typing import List, Optional, Pattern, Union

from .events import DeviceEvent, ReplyEvent, RequestEvent
from .utils import format_mac, parse_syslog_time

logger = logging.getLogger(__name__)

Event = Union[DeviceEvent, RequestEvent]

QUERY_PATTERN: Pattern[str] = re.compile(r"^(.+) [a-z]+ dnsmasq.+: query.A. ([^ ]+) from ([^ ]+)")
REPLY_PATTERN: Pattern[str] = re.compile(r"^(.+) [a-z]+ dnsmasq.+: reply ([^ ]+) is ([^ ]+)")
ACK_PATTERN: Pattern[str] = re.compile(r"^(.+) [a-z]+ dnsmasq-dhcp.+: DHCPACK.+ ([^ ]+) ([^ ]+) ([^ ]+)")


def parse_line(line: str, now: Optional[datetime] = None) -> Union[DeviceEvent, RequestEvent, ReplyEvent, None]:
    """Classifies a single dnsmasq syslog line.

    The patterns are tried in order: DNS query, DNS reply, DHCPACK. Lines
    matching none of them are not an error, the log is full of other
    messages, and give None.

    Args:
        line: One line of the log, with or without its newline.
        now: Reference time used to pick the year of the timestamp.

    Returns:
        A RequestEvent (with an empty alias map), a ReplyEvent, a
        DeviceEvent or None.
    """
    line = line.rstrip("\r\n")
    match = QUERY_PATTERN.match(line)
    if match:
        at, host, source = match.groups()
        return RequestEvent(parse_syslog_time(at, now), host, source)

    match = REPLY_PATTERN.match(line)
    if match:
        return ReplyEvent(host=match.group(2), alias=match.group(3))

    match = ACK_PATTERN.match(line)
    if match:
        at, ip, mac, hostname = match.groups()
        return DeviceEvent(parse_syslog_time(at, now), hostname, format_mac(mac), ip)

    return None


class Correlator:
    """Turns the lines of one log stream into device and request events.

    dnsmasq logs a query followed by the replies for it, so a reply always
    belongs to the most recent query, even when DHCPACK lines are logged in
    between. The current request is held back until the next query or a
    flush, which means its alias map is complete by the time anyone receives
    it. DHCPACKs that arrive while a request is held queue up behind it so
    events still leave in log order. One instance per stream; it is not
    thread-safe.
    """

    def __init__(self, clock=datetime.now):
        self.clock = clock
        self.current: Optional[RequestEvent] = None
        self.pending: List[DeviceEvent] = []
        self.count = 0

    def feed(self, line: str) -> List[Event]:
        """Consumes one line and returns the events it released, in log order."""
        if self.count % 100 == 0:
            logger.info(f"{self.count} lines read")
        self.count += 1

        event = parse_line(line, self.clock())
        if event is None:
            return []

        if isinstance(event, ReplyEvent):
            if self.current is None:
                logger.debug(f"Dropping reply without a query: {event}")
            else:
                self.current.aliases[event.alias] = event.host
            return []

        if isinstance(event, DeviceEvent):
            logger.debug(f"Found device: {event}")
            if self.current is None:
                return [event]
            self.pending.append(event)
            return []

        logger.debug(f"Found request: {event}")
        released = self.flush()
        self.current = event
        return released

    def flush(self) -> List[Event]:
        """Releases the held request and the DHCPACKs behind it. Later replies are dropped."""
        if self.current is None:
            return []
        released: List[Event] = [self.current, *self.pending]
        self.current = None
        self.pending = []
        return released
