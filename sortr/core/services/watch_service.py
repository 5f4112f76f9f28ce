"""Continuous inbox ingestion.

Architecture:
    Observer Thread (Watchdog):
        - Watches the inbox (non-recursive) for created and moved-in files
        - Records each path as pending with its size and time of last change

    Settle Thread:
        - Polls pending files; a file whose size has not changed for the
          settle window is considered fully written
        - Publishes stable, eligible files onto a bounded queue, skipping
          paths that are already in flight

    Worker Thread:
        - The single consumer of the queue; classifies one note at a time in
          automatic mode with dry run disabled
        - Removes the path from the in-flight set when done, success or not
        - A DimensionMismatchError is fatal: the scheduler stops, queued
          notes are released unprocessed and run_forever() re-raises it

    Shutdown:
        - stop() closes the observer first, then lets the worker finish the
          note it is on before returning
"""

import logging
import os
import queue
import threading
import time
from collections import deque
from typing import Callable, Dict, List, Optional, Set, Tuple

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from sortr.core.domain.errors import DimensionMismatchError
from sortr.core.domain.sorting import SortResult

logger = logging.getLogger(__name__)

_STOP = object()

RECENT_RESULTS = 100


def _file_size(path: str) -> Optional[int]:
    try:
        return os.path.getsize(path)
    except OSError:
        return None


class InboxEventHandler(FileSystemEventHandler):
    """Forwards inbox file events to the scheduler."""

    def __init__(self, scheduler: "IngestionScheduler"):
        self.scheduler = scheduler

    def on_created(self, event):
        if event.is_directory:
            return
        self.scheduler.notify(event.src_path)

    def on_moved(self, event):
        if event.is_directory:
            return
        self.scheduler.notify(event.dest_path)

    def on_modified(self, event):
        if event.is_directory:
            return
        self.scheduler.touch(event.src_path)


class IngestionScheduler:
    def __init__(
        self,
        sorter,
        inbox: str,
        is_eligible: Callable[[str], bool],
        settle_seconds: float = 0.5,
        poll_seconds: float = 0.1,
        queue_size: int = 64,
        observer=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            sorter: NoteSorter (anything with sort_note(path, auto=, dry_run=))
            inbox: Directory to watch
            is_eligible: File-type filter applied before queueing
            settle_seconds: How long a file's size must stay unchanged
        """
        self.sorter = sorter
        self.inbox = os.path.realpath(inbox)
        self.is_eligible = is_eligible
        self.settle_seconds = settle_seconds
        self.poll_seconds = poll_seconds
        self.observer = observer or Observer()
        self.clock = clock

        self._pending: Dict[str, Tuple[float, Optional[int]]] = {}
        self._in_flight: Set[str] = set()
        self._queue: "queue.Queue" = queue.Queue(maxsize=queue_size)
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._settle_thread: Optional[threading.Thread] = None
        self._worker_thread: Optional[threading.Thread] = None
        self._running = False
        self.results: "deque[SortResult]" = deque(maxlen=RECENT_RESULTS)
        self.error: Optional[DimensionMismatchError] = None

    def start(self) -> None:
        if self._running:
            logger.warning("Inbox watcher already running")
            return
        self._running = True
        self.error = None
        self._stop_event.clear()
        os.makedirs(self.inbox, exist_ok=True)

        self.observer.schedule(InboxEventHandler(self), self.inbox, recursive=False)
        self.observer.start()

        self._worker_thread = threading.Thread(target=self._worker_loop, name="sortr-worker", daemon=True)
        self._settle_thread = threading.Thread(target=self._settle_loop, name="sortr-settle", daemon=True)
        self._worker_thread.start()
        self._settle_thread.start()
        logger.info("Watching inbox: %s", self.inbox)

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        self.observer.stop()
        self.observer.join()

        self._stop_event.set()
        if self._settle_thread:
            self._settle_thread.join()

        # The worker drains what is already queued, then exits.
        self._queue.put(_STOP)
        if self._worker_thread:
            self._worker_thread.join()
        logger.info("Stopped watching %s", self.inbox)

    def run_forever(self) -> None:
        """
        Blocks until interrupted (Ctrl+C), then shuts down cleanly.

        Raises the DimensionMismatchError that stopped the worker, if any.
        """
        self.start()
        try:
            while not self._stop_event.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info("Stopping watcher...")
        finally:
            self.stop()
        if self.error is not None:
            raise self.error

    @property
    def in_flight(self) -> Set[str]:
        with self._lock:
            return set(self._in_flight)

    def notify(self, path: str) -> None:
        """Thread-safe: a file appeared. Called from the watchdog thread."""
        path = os.path.realpath(path)
        with self._lock:
            self._pending[path] = (self.clock(), _file_size(path))

    def touch(self, path: str) -> None:
        """Thread-safe: a pending file changed, restart its settle window."""
        path = os.path.realpath(path)
        with self._lock:
            if path in self._pending:
                self._pending[path] = (self.clock(), _file_size(path))

    def collect_stable(self) -> List[str]:
        """Removes and returns pending files that have settled."""
        now = self.clock()
        ready = []
        with self._lock:
            for path, (seen, size) in list(self._pending.items()):
                current = _file_size(path)
                if current is None:
                    del self._pending[path]
                elif current != size:
                    self._pending[path] = (now, current)
                elif now - seen >= self.settle_seconds:
                    del self._pending[path]
                    ready.append(path)
        return ready

    def submit(self, path: str) -> bool:
        """Queues a settled file unless it is ineligible or already in flight."""
        if not self.is_eligible(path):
            logger.debug("Ignoring ineligible file %s", path)
            return False
        with self._lock:
            if path in self._in_flight:
                return False
            self._in_flight.add(path)
        # Blocks when the queue is full, holding back the settle thread.
        self._queue.put(path)
        return True

    def _settle_loop(self) -> None:
        while not self._stop_event.wait(self.poll_seconds):
            for path in self.collect_stable():
                self.submit(path)

    def _worker_loop(self) -> None:
        while True:
            path = self._queue.get()
            try:
                if path is _STOP:
                    return
                if self.error is not None:
                    self._release(path)
                    continue
                self.process(path)
            except DimensionMismatchError:
                # Kept in self.error; run_forever() raises it after shutdown.
                pass
            finally:
                self._queue.task_done()

    def process(self, path: str) -> Optional[SortResult]:
        """Classifies one queued note and releases its in-flight slot."""
        logger.info("New note detected: %s", os.path.basename(path))
        try:
            result = self.sorter.sort_note(path, auto=True, dry_run=False)
            self.results.append(result)
            return result
        except DimensionMismatchError as e:
            logger.error("Stopping watcher: %s", e)
            self.error = e
            self._stop_event.set()
            raise
        except Exception:
            logger.exception("Sorting %s failed", path)
            return None
        finally:
            self._release(path)

    def _release(self, path: str) -> None:
        with self._lock:
            self._in_flight.discard(path)
