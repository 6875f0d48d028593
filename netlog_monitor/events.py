# events.py
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional


@dataclass
class DeviceEvent:
    """A DHCP acknowledgment: the router handed `ip` to `mac`."""
    at: Optional[datetime]
    hostname: str
    mac: str
    ip: str


@dataclass
class RequestEvent:
    """A DNS query for `host` made by `source`.

    `aliases` maps each answer seen in the replies that followed the query
    to the name it was given for.
    """
    at: Optional[datetime]
    host: str
    source: str
    aliases: Dict[str, str] = field(default_factory=dict)


@dataclass
class ReplyEvent:
    host: str
    alias: str
