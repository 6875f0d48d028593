# device.py
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class HostVisit:
    host: str
    times: List[Optional[datetime]] = field(default_factory=list)

    def add(self, at: Optional[datetime]):
        self.times.append(at)

    def copy(self) -> "HostVisit":
        return HostVisit(self.host, list(self.times))

    @property
    def last_visit(self) -> Optional[datetime]:
        known = [t for t in self.times if t is not None]
        return max(known) if known else None


@dataclass(eq=False)
class Device:
    at: Optional[datetime]  # Last time the device was seen
    hostname: str
    mac: str  # Identity, never changes once created
    ip: str   # Most recent address
    requests: Dict[str, HostVisit] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.hostname

    def add_request(self, at: Optional[datetime], host: str):
        """Associates a request for `host` with this device."""
        logger.debug(f"Adding request: {host} to {self.ip}")
        visit = self.requests.get(host)
        if visit is None:
            self.requests[host] = HostVisit(host, [at])
        else:
            visit.add(at)
