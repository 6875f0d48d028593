# tailer.py
import logging
import os
import queue
import threading
import time
from typing import BinaryIO, Optional

from .dnsmasq import Correlator

logger = logging.getLogger(__name__)


class TailError(Exception):
    """The log file could not be opened at startup."""


class LogTailer:
    """Follows a log file from its current end and feeds new lines to a Correlator.

    Every event released by the correlator is put on `events`. When the
    tailer stops it puts a single None on the queue to mark the end of the
    stream.

    A held query is only flushed once the log has been quiet for `settle`
    seconds, long enough for the replies of a slow upstream lookup to land.
    """

    def __init__(self,
                 path: str,
                 events: "queue.Queue",
                 poll_interval: float = 0.2,
                 correlator: Optional[Correlator] = None,
                 settle: float = 2.0) -> None:
        self.path: str = path
        self.events: "queue.Queue" = events
        self.poll_interval: float = poll_interval
        self.settle: float = settle
        self.correlator: Correlator = correlator or Correlator()
        self.running: bool = False
        self._stop_event: threading.Event = threading.Event()
        self._file: Optional[BinaryIO] = None
        self._inode: Optional[int] = None
        self._partial: bytes = b""

    def start(self) -> None:
        """Opens the log and seeks to its end; raises TailError if it can't."""
        try:
            self._open(seek_end=True)
        except OSError as e:
            raise TailError(f"Unable to open log file {self.path}: {e}") from e
        logger.info(f"Tailing {self.path}")

    def _open(self, seek_end: bool) -> None:
        handle = open(self.path, "rb")
        if seek_end:
            handle.seek(0, os.SEEK_END)
        self._file = handle
        self._inode = os.fstat(handle.fileno()).st_ino
        self._partial = b""

    def _close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def _rotated(self) -> bool:
        """True if the path was replaced or the file truncated under us."""
        try:
            stat = os.stat(self.path)
        except FileNotFoundError:
            return False
        if stat.st_ino != self._inode:
            return True
        return stat.st_size < self._file.tell()

    def _reopen(self) -> None:
        logger.info(f"{self.path} was rotated or truncated, reopening")
        self._close()
        try:
            self._open(seek_end=False)
        except FileNotFoundError:
            logger.warning(f"{self.path} disappeared, waiting for it to return")

    def _deliver(self, events) -> None:
        for event in events:
            self.events.put(event)

    def run(self) -> None:
        """Reads appended lines until stop() is called, then closes the stream."""
        if self._file is None:
            self.start()
        self.running = True
        last_read = time.monotonic()
        try:
            while not self._stop_event.is_set():
                if self._file is None:
                    if os.path.exists(self.path):
                        self._reopen()
                    else:
                        self._stop_event.wait(self.poll_interval)
                    continue

                chunk = self._file.readline()
                if chunk:
                    last_read = time.monotonic()
                    self._partial += chunk
                    if self._partial.endswith(b"\n"):
                        line, self._partial = self._partial, b""
                        self._deliver(self.correlator.feed(line.decode("utf-8", errors="replace")))
                    continue

                if time.monotonic() - last_read >= self.settle:
                    # Quiet for the whole settle window, the held query is complete
                    self._deliver(self.correlator.flush())
                if self._rotated():
                    self._reopen()
                    continue
                self._stop_event.wait(self.poll_interval)
        finally:
            self._deliver(self.correlator.flush())
            self._close()
            self.running = False
            self.events.put(None)
            logger.info(f"Stopped tailing {self.path}")

    def stop(self) -> None:
        self._stop_event.set()
