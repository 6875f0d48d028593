# data.py
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from .device import Device, HostVisit

logger = logging.getLogger(__name__)


def _format_time(at: Optional[datetime]) -> Optional[str]:
    return at.isoformat() if at is not None else None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        logger.debug("Unreadable timestamp %r, treating as unknown", value)
        return None


def device_to_dict(device: Device) -> Dict[str, Any]:
    """Converts a device and its visit history to plain JSON types.

    Args:
        device (Device): The device to convert.

    Returns:
        Dict[str, Any]: A dictionary safe to pass to json.dumps.
    """
    return {
        "at": _format_time(device.at),
        "hostname": device.hostname,
        "mac": device.mac,
        "ip": device.ip,
        "requests": {
            host: {"host": visit.host, "times": [_format_time(t) for t in visit.times]}
            for host, visit in device.requests.items()
        },
    }


def device_from_dict(data: Dict[str, Any]) -> Device:
    """Builds a device from a dictionary produced by device_to_dict.

    Missing fields fall back to placeholder values rather than failing.

    Args:
        data (Dict[str, Any]): The stored representation.

    Returns:
        Device: The rebuilt device.
    """
    requests = {}
    for host, visit in (data.get("requests") or {}).items():
        times = [_parse_time(t) for t in visit.get("times") or []]
        requests[host] = HostVisit(visit.get("host") or host, times)
    return Device(
        at=_parse_time(data.get("at")),
        hostname=data.get("hostname") or "Unknown",
        mac=data.get("mac") or "00:00:00:00:00:00",
        ip=data.get("ip") or "0.0.0.0",
        requests=requests,
    )


def encode_device(device: Device) -> bytes:
    return json.dumps(device_to_dict(device), ensure_ascii=False).encode("utf-8")


def decode_device(value: bytes) -> Optional[Device]:
    """Decodes a stored device record.

    Args:
        value (bytes): UTF-8 encoded JSON.

    Returns:
        Optional[Device]: The device, or None if the record is unreadable.
    """
    try:
        return device_from_dict(json.loads(value.decode("utf-8")))
    except UnicodeDecodeError as err:
        logger.warning("Error decoding device record: %s. Skipping.", err)
    except json.JSONDecodeError as err:
        logger.warning("Error decoding device JSON: %s. Skipping.", err)
    except (AttributeError, TypeError) as err:
        logger.warning("Malformed device record: %s. Skipping.", err)
    return None
