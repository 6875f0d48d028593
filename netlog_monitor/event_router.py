# event_router.py
import logging
import queue

from .events import DeviceEvent, RequestEvent
from .store import Store

logger = logging.getLogger(__name__)


class EventRouter:
    """Applies device and request events to the store, enforcing the operator's policy."""

    def __init__(self, store: Store):
        self.store = store

    def handle(self, event):
        if isinstance(event, DeviceEvent):
            self.store.upsert_device(event.at, event.hostname, event.ip, event.mac)
        elif isinstance(event, RequestEvent):
            self.handle_request(event)
        else:
            logger.warning(f"Unexpected event: {event!r}")

    def handle_request(self, request: RequestEvent):
        if self.store.is_authorized(request.host):
            return
        device = self.store.find_by_address(request.source)
        logger.debug(f"Handling request {request.host} from {request.source} for {device.mac if device else None}")
        if device is None:
            # Unidentified traffic is still tracked, under its own address
            device = self.store.upsert_device(None, request.source, request.source, request.source)
        if self.store.is_ignored(device.mac):
            return
        self.store.record_visit(device, request.at, request.host)

    def run(self, events: "queue.Queue", producers: int = 1):
        """Consumes events in arrival order until every producer has closed its stream.

        Each producer signals the end of its stream by putting None on the queue.
        """
        logger.info("Starting event processing")
        open_streams = producers
        while open_streams > 0:
            event = events.get()
            if event is None:
                open_streams -= 1
                continue
            try:
                self.handle(event)
            except Exception as e:  # pylint: disable=broad-except
                logger.error(f"Error handling {event}: {e}", exc_info=True)
        logger.info("Event processing stopped")
