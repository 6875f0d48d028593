# store.py
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from .backends import BaseBucketStore, BucketStoreError
from .data import decode_device, encode_device
from .device import Device, HostVisit
from .utils import format_mac

logger = logging.getLogger(__name__)

DEVICES_BUCKET = "devices"
AUTHORIZED_BUCKET = "authorized"
IGNORED_BUCKET = "ignored"
PRESENT = b"\x01"

# (mac, encoded device, version)
DeviceRecord = Tuple[str, bytes, int]


def _last_seen(device: Device) -> datetime:
    return device.at if device.at is not None else datetime.min


class Store:
    """All the state that is managed: devices, their visits and the operator's policy.

    Devices are indexed by MAC (identity) and by IP (most recent holder of
    the address). Writes to the backend are best effort: a failed write is
    logged and the in-memory state still moves on. Devices are encoded under
    the devices lock but written outside it, so lookups and snapshots never
    wait on the disk.

    The policy sets are guarded by their own lock because the HTTP layer
    mutates them while the event router reads them.
    """

    def __init__(self, backend: BaseBucketStore) -> None:
        self.backend: BaseBucketStore = backend
        self._devices_lock: threading.RLock = threading.RLock()
        self._policy_lock: threading.Lock = threading.Lock()
        self._write_lock: threading.Lock = threading.Lock()
        self._version: int = 0
        self._written: Dict[str, int] = {}
        self._by_ip: Dict[str, Device] = {}
        self._by_mac: Dict[str, Device] = {}
        self._authorized: Set[str] = set()
        self._ignored: Set[str] = set()
        self._load()

    def _load(self) -> None:
        """Reads every bucket into memory. Failures here are fatal."""
        for bucket in (DEVICES_BUCKET, AUTHORIZED_BUCKET, IGNORED_BUCKET):
            self.backend.create_bucket(bucket)

        self._authorized = {key for key, value in self.backend.items(AUTHORIZED_BUCKET) if value[:1] == PRESENT}
        self._ignored = {format_mac(key) for key, value in self.backend.items(IGNORED_BUCKET) if value[:1] == PRESENT}

        devices: List[Device] = []
        for mac, value in self.backend.items(DEVICES_BUCKET):
            device = decode_device(value)
            if device is not None:
                device.mac = mac
                devices.append(device)

        # Most recently seen first, so it claims its address before older records
        devices.sort(key=_last_seen, reverse=True)
        for device in devices:
            logger.debug(f"Loading device: {device.mac} {device.ip} {device.hostname}")
            self._by_mac[device.mac] = device
            self._by_ip.setdefault(device.ip, device)

        logger.info(f"Loaded ignored: {len(self._ignored)} authorized: {len(self._authorized)} "
                    f"devices: {len(self._by_mac)}")

    def _encode_device(self, device: Device) -> DeviceRecord:
        """Captures the device as it is now. Call with the devices lock held."""
        self._version += 1
        return device.mac, encode_device(device), self._version

    def _write_devices(self, records: List[DeviceRecord]) -> None:
        """Writes encoded devices outside the devices lock.

        Records are versioned so a slow writer never replaces a newer copy of
        the same device with an older one.
        """
        if not records:
            return
        with self._write_lock:
            for mac, payload, version in records:
                if version <= self._written.get(mac, 0):
                    continue
                self._written[mac] = version
                logger.debug(f"Persisting device: {mac}")
                try:
                    self.backend.put(DEVICES_BUCKET, mac, payload)
                except BucketStoreError as e:
                    logger.error(f"Error persisting device {mac}: {e}")

    def _persist_key(self, bucket: str, key: str) -> None:
        logger.debug(f"Persisting key: {key}")
        try:
            self.backend.put(bucket, key, PRESENT)
        except BucketStoreError as e:
            logger.error(f"Error persisting {key} to {bucket}: {e}")

    def _remove_key(self, bucket: str, key: str) -> None:
        logger.debug(f"Removing key: {key}")
        try:
            self.backend.delete(bucket, key)
        except BucketStoreError as e:
            logger.error(f"Error removing {key} from {bucket}: {e}")

    # --- Devices ---

    def upsert_device(self, at: Optional[datetime], hostname: str, ip: str, mac: str) -> Device:
        """Records that `mac` holds `ip` under `hostname`.

        An existing device keeps its identity and visit history; only its
        address, name and last-seen time change.
        """
        with self._devices_lock:
            device = self._by_mac.get(mac)
            if device is None:
                device = Device(at, hostname, mac, ip)
                self._by_mac[mac] = device
                logger.info(f"New device: {mac} {ip} {hostname}")
            else:
                if device.ip != ip and self._by_ip.get(device.ip) is device:
                    del self._by_ip[device.ip]
                device.at = at
                device.hostname = hostname
                device.ip = ip
            self._by_ip[ip] = device
            record = self._encode_device(device)
        self._write_devices([record])
        return device

    def find_by_address(self, ip: str) -> Optional[Device]:
        with self._devices_lock:
            return self._by_ip.get(ip)

    def find_by_hardware_address(self, mac: str) -> Optional[Device]:
        with self._devices_lock:
            return self._by_mac.get(mac)

    def devices(self) -> List[Device]:
        """Every known device, most recently seen first."""
        with self._devices_lock:
            return sorted(self._by_mac.values(), key=_last_seen, reverse=True)

    def record_visit(self, device: Device, at: Optional[datetime], host: str) -> None:
        with self._devices_lock:
            device.add_request(at, host)
            record = self._encode_device(device)
        self._write_devices([record])

    def snapshot(self, reset: bool = False) -> Dict[Device, Dict[str, HostVisit]]:
        """Returns a copy of every device's visits, optionally clearing them.

        The copy and the reset happen under one lock, so a visit is either in
        the returned snapshot or still on the device, never lost and never
        half-built.
        """
        records: List[DeviceRecord] = []
        with self._devices_lock:
            result = {}
            for device in self._by_mac.values():
                result[device] = {host: visit.copy() for host, visit in device.requests.items()}
                if reset and device.requests:
                    device.requests = {}
                    records.append(self._encode_device(device))
        self._write_devices(records)
        return result

    # --- Policy ---

    def authorize(self, host: str) -> None:
        """Adds the host to the authorized hosts, which are never recorded."""
        with self._policy_lock:
            self._authorized.add(host)
            self._persist_key(AUTHORIZED_BUCKET, host)

    def deauthorize(self, host: str) -> None:
        with self._policy_lock:
            self._authorized.discard(host)
            self._remove_key(AUTHORIZED_BUCKET, host)

    def ignore(self, mac: str) -> None:
        """Adds the device to the ignored devices; it is still tracked but its requests are not."""
        mac = format_mac(mac)
        with self._policy_lock:
            self._ignored.add(mac)
            self._persist_key(IGNORED_BUCKET, mac)

    def unignore(self, mac: str) -> None:
        mac = format_mac(mac)
        with self._policy_lock:
            self._ignored.discard(mac)
            self._remove_key(IGNORED_BUCKET, mac)

    def is_authorized(self, host: str) -> bool:
        with self._policy_lock:
            return host in self._authorized

    def is_ignored(self, mac: str) -> bool:
        mac = format_mac(mac)
        with self._policy_lock:
            return mac in self._ignored

    def authorized_hosts(self) -> List[str]:
        with self._policy_lock:
            return sorted(self._authorized)

    def ignored_devices(self) -> List[str]:
        with self._policy_lock:
            return sorted(self._ignored)

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> 'Store':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
