"""Unit tests for the persistence engines and device serialisation"""

from datetime import datetime

import pytest

from netlog_monitor.backends import BucketStoreError, SqliteBucketStore, get_backend
from netlog_monitor.data import decode_device, device_from_dict, encode_device
from netlog_monitor.device import Device, HostVisit
from netlog_monitor.monitor import load_config


@pytest.fixture
def backend(db_path):
    backend = SqliteBucketStore(db_path)
    yield backend
    backend.close()


@pytest.mark.unit
class TestSqliteBucketStore:
    """Tests for bucket semantics on SQLite"""

    def test_put_items_delete(self, backend):
        backend.create_bucket("authorized")
        backend.put("authorized", "a.com", b"\x01")
        backend.put("authorized", "b.com", b"\x01")
        backend.delete("authorized", "a.com")
        backend.delete("authorized", "never.added")

        assert backend.items("authorized") == [("b.com", b"\x01")]

    def test_put_overwrites(self, backend):
        backend.create_bucket("devices")
        backend.put("devices", "k", b"one")
        backend.put("devices", "k", b"two")

        assert backend.items("devices") == [("k", b"two")]

    def test_buckets_are_independent(self, backend):
        backend.create_bucket("authorized")
        backend.create_bucket("ignored")
        backend.put("authorized", "same", b"\x01")

        assert backend.items("ignored") == []

    def test_create_bucket_is_idempotent(self, backend):
        backend.create_bucket("devices")
        backend.put("devices", "k", b"v")
        backend.create_bucket("devices")

        assert backend.items("devices") == [("k", b"v")]

    def test_missing_bucket_fails(self, backend):
        with pytest.raises(BucketStoreError):
            backend.put("devices", "k", b"v")

    def test_invalid_bucket_name_fails(self, backend):
        with pytest.raises(BucketStoreError):
            backend.create_bucket("devices; DROP TABLE x")

    def test_closed_store_fails(self, db_path):
        backend = SqliteBucketStore(db_path)
        backend.create_bucket("devices")
        backend.close()

        with pytest.raises(BucketStoreError):
            backend.put("devices", "k", b"v")


@pytest.mark.unit
class TestBackendFactory:
    """Tests for selecting the engine from settings"""

    def test_sqlite_from_settings(self, settings_file, db_path):
        backend = get_backend(load_config(str(settings_file)))
        try:
            assert isinstance(backend, SqliteBucketStore)
            assert backend.path == db_path
        finally:
            backend.close()

    def test_unsupported_backend(self, tmp_path):
        path = tmp_path / "settings.toml"
        path.write_text('[general]\nbackend = "floppy"\n')

        with pytest.raises(ValueError, match="Unsupported backend type"):
            get_backend(load_config(str(path)))


@pytest.mark.unit
class TestDeviceSerialisation:
    """Tests for the stored JSON form of a device"""

    def test_encode_decode(self):
        at = datetime(2026, 5, 24, 12, 0, 0)
        device = Device(at, "laptop", "aa:bb:cc:dd:ee:ff", "10.0.0.5",
                        {"a.com": HostVisit("a.com", [at, None])})

        decoded = decode_device(encode_device(device))

        assert decoded.at == at
        assert decoded.hostname == "laptop"
        assert decoded.requests["a.com"].times == [at, None]

    def test_missing_fields_get_defaults(self):
        device = device_from_dict({})

        assert device.at is None
        assert device.hostname == "Unknown"
        assert device.mac == "00:00:00:00:00:00"
        assert device.ip == "0.0.0.0"
        assert device.requests == {}

    @pytest.mark.parametrize("value", [b"{not json", b"\xff\xfe", b"[1, 2]", b'{"requests": {"a": 1}}'])
    def test_unreadable_records(self, value):
        assert decode_device(value) is None
