# monitor.py
import argparse
import logging
import queue
import signal
import sys
import threading
from typing import Optional

from dynaconf import Dynaconf
from mac_vendor_lookup import MacLookup

from .backends import BucketStoreError, get_backend
from .event_router import EventRouter
from .report import DigestScheduler, VendorLookup, send_update
from .store import Store
from .tailer import LogTailer, TailError
from .web import WebServer, create_app

DEFAULT_SETTINGS = "config/settings.toml"

logger = logging.getLogger(__name__)


def load_config(settings_file: Optional[str] = None) -> Dynaconf:
    """Loads settings from the TOML file, overridable with NETLOG_* environment variables."""
    return Dynaconf(
        settings_files=[settings_file or DEFAULT_SETTINGS],
        envvar_prefix="NETLOG",
    )


def open_store(config: Dynaconf) -> Store:
    backend = get_backend(config)
    try:
        return Store(backend)
    except BucketStoreError:
        backend.close()
        raise


def start_processing(path: str, store: Store, events: "queue.Queue", settle: float = 2.0):
    """Starts the tailer and the event router threads.

    Raises:
        TailError: if the log file can't be opened.
    """
    tailer = LogTailer(path, events, settle=settle)
    tailer.start()
    router = EventRouter(store)
    router_thread = threading.Thread(target=router.run, args=(events,), name="event-router", daemon=True)
    tailer_thread = threading.Thread(target=tailer.run, name="log-tailer", daemon=True)
    logger.info("Starting file processing")
    router_thread.start()
    tailer_thread.start()
    return tailer, router_thread


def setup_exit_listener(stop_event: threading.Event) -> None:
    def handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def run(config: Dynaconf, log_path: Optional[str] = None) -> int:
    """Runs the monitor until a shutdown signal arrives. Returns the exit status."""
    log_path = log_path or config.general.get("log_path")
    if not log_path:
        logger.error("No log file configured")
        return 1

    try:
        store = open_store(config)
    except (BucketStoreError, ValueError) as e:
        logger.error(f"Unable to open the store: {e}")
        return 1

    events: "queue.Queue" = queue.Queue(maxsize=1000)
    try:
        tailer, router_thread = start_processing(log_path, store, events,
                                                 float(config.general.get("settle", 2.0)))
    except TailError as e:
        logger.error(str(e))
        store.close()
        return 1

    address = config.http.get("address", "http://localhost:8080")
    vendors = VendorLookup()
    web = WebServer(create_app(store, address, vendors),
                    host=config.http.get("host", "0.0.0.0"),
                    port=int(config.http.get("port", 8080)))
    web.start()

    scheduler = DigestScheduler(
        float(config.mail.get("interval", 0)),
        lambda: send_update(config.mail, store, address, vendors),
    )
    scheduler.start()

    stop_event = threading.Event()
    setup_exit_listener(stop_event)
    while not stop_event.wait(1):
        pass

    scheduler.stop()
    web.stop()
    tailer.stop()
    router_thread.join(timeout=10)
    store.close()
    logger.info("Stopped")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Network log monitor: tracks devices and DNS requests from a dnsmasq log")
    parser.add_argument("log_path", nargs="?", help="The log file to follow (overrides general.log_path)")
    parser.add_argument("-c", "--config", help=f"The settings file to use (default {DEFAULT_SETTINGS})")
    parser.add_argument("--update-mac-db", action="store_true", help="Update the MAC vendor database before starting")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    if args.update_mac_db:
        MacLookup().update_vendors()

    sys.exit(run(load_config(args.config), args.log_path))


if __name__ == "__main__":
    main()
