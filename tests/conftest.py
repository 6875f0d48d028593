"""Pytest configuration and shared fixtures for test suite"""

import queue
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Generator, List

import pytest

from netlog_monitor.backends import SqliteBucketStore
from netlog_monitor.events import DeviceEvent, RequestEvent
from netlog_monitor.store import Store


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll until predicate() is true or the timeout expires"""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


def count_visits(snapshot) -> int:
    """Total number of recorded request times across a snapshot"""
    return sum(len(visit.times) for hosts in snapshot.values() for visit in hosts.values())


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "network-log.db")


@pytest.fixture
def store(db_path: str) -> Generator[Store, None, None]:
    """Store backed by a fresh SQLite file"""
    store = Store(SqliteBucketStore(db_path))
    yield store
    store.close()


@pytest.fixture
def reopen(db_path: str) -> Callable[[], Store]:
    """Open another Store on the same file, closed at teardown"""
    opened: List[Store] = []

    def _reopen() -> Store:
        new_store = Store(SqliteBucketStore(db_path))
        opened.append(new_store)
        return new_store

    yield _reopen
    for s in opened:
        s.close()


@pytest.fixture
def settings_file(tmp_path: Path, db_path: str) -> Path:
    """A complete settings file pointing at temporary locations"""
    path = tmp_path / "settings.toml"
    path.write_text(
        "[general]\n"
        f'log_path = "{tmp_path / "syslog"}"\n'
        f'db_path = "{db_path}"\n'
        'backend = "sqlite"\n'
        "[http]\n"
        'host = "127.0.0.1"\n'
        "port = 8080\n"
        'address = "http://monitor.lan"\n'
        "[mail]\n"
        "interval = 0\n"
        'from = "monitor@example.com"\n'
        'to = "admin@example.com"\n'
        'subject = "Digest"\n'
        'smtp_server = "localhost"\n'
        "smtp_port = 25\n"
    )
    return path


def make_events(prefix: str, device_count: int, request_count: int) -> List[object]:
    """Device events each followed by that device's requests, one second apart"""
    at = datetime(2026, 5, 24, 12, 0, 0)
    events: List[object] = []
    for i in range(device_count):
        at += timedelta(seconds=1)
        events.append(DeviceEvent(at, f"{prefix}{i}", f"aa:bb:cc:dd:ee:f{i}", f"127.0.0.{i}"))
        for j in range(request_count):
            at += timedelta(seconds=1)
            events.append(RequestEvent(at, f"www.{prefix}{j}.com", f"127.0.0.{i}"))
    return events


def queue_of(events: List[object], producers: int = 1) -> "queue.Queue":
    """A queue holding the events followed by one end-of-stream marker per producer"""
    q: "queue.Queue" = queue.Queue()
    for event in events:
        q.put(event)
    for _ in range(producers):
        q.put(None)
    return q


@pytest.fixture
def dnsmasq_lines() -> dict:
    """Sample dnsmasq syslog lines"""
    return {
        'query': 'May 24 12:00:03 router dnsmasq[126]: query[A] www.google.com from 192.168.0.10',
        'query_aaaa': 'May 24 12:00:03 router dnsmasq[126]: query[AAAA] www.google.com from 192.168.0.10',
        'reply_cname': 'May 24 12:00:03 router dnsmasq[126]: reply www.google.com is <CNAME>',
        'reply_ip': 'May 24 12:00:03 router dnsmasq[126]: reply www.google.com is 142.250.180.4',
        'forwarded': 'May 24 12:00:03 router dnsmasq[126]: forwarded www.google.com to 1.1.1.1',
        'ack': 'May 24 12:00:00 router dnsmasq-dhcp[123]: DHCPACK(eth0) 192.168.0.10 00:11:22:33:44:55 laptop',
        'ack_upper_mac': 'May  4 09:05:00 router dnsmasq-dhcp[123]: DHCPACK(br0) 192.168.0.11 AA-BB-CC-DD-EE-FF phone',
        'discover': 'May 24 12:00:00 router dnsmasq-dhcp[123]: DHCPDISCOVER(eth0) 00:11:22:33:44:55',
        'kernel': 'May 24 12:00:00 router kernel: [UFW BLOCK] IN=eth0 OUT= SRC=203.0.113.100',
        'bad_time': 'sometime router dnsmasq[126]: query[A] example.org from 192.168.0.12',
        'empty': '',
    }
