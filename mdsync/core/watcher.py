"""Watch mode: polling for changed Markdown files and a sync work queue."""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from pathlib import Path

from .files import list_markdown_files
from .operations import SyncOperations, SyncResult

logger = logging.getLogger(__name__)


class SyncQueue:
    """Bounded FIFO of paths waiting to sync.

    Enqueueing a path that is already pending is a no-op, so a burst of
    saves to one file produces one sync.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self.maxsize = maxsize
        self._pending: OrderedDict[Path, None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._pending)

    def put(self, path: Path) -> bool:
        """Enqueue a path.

        Returns:
            False if the queue is full and the path was not added
        """
        if path in self._pending:
            return True
        if len(self._pending) >= self.maxsize:
            logger.warning("Sync queue full (%d); deferring %s", self.maxsize, path)
            return False
        self._pending[path] = None
        return True

    def pop(self) -> Path | None:
        """Take the oldest pending path, or None when empty."""
        if not self._pending:
            return None
        path, _ = self._pending.popitem(last=False)
        return path


class PollingWatcher:
    """Detects new and modified Markdown files by comparing mtimes."""

    def __init__(
        self,
        root: Path,
        on_change: Callable[[Path], bool | None] | None = None,
        interval: float = 3.0,
        settle: float = 1.0,
        exclude: Callable[[str], bool] | None = None,
        clock: Callable[[], float] = time.time,
        on_remove: Callable[[Path], None] | None = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            root: Directory to watch
            on_change: Called for each changed file; returning False means
                the change was not accepted and is reported again next scan
            interval: Seconds between scans
            settle: A file must be unmodified this long before it is reported
            exclude: Optional predicate on the root-relative POSIX path
            clock: Time source
            on_remove: Called for each file that disappeared
        """
        self.root = Path(root)
        self.on_change = on_change
        self.interval = interval
        self.settle = settle
        self.exclude = exclude
        self.clock = clock
        self.on_remove = on_remove
        self._seen: dict[Path, float] = {}

    def snapshot(self) -> dict[Path, float]:
        """Get the current mtime of every watched file."""
        mtimes = {}
        for path in list_markdown_files(self.root, self.exclude):
            try:
                mtimes[path] = path.stat().st_mtime
            except FileNotFoundError:
                continue
        return mtimes

    def prime(self) -> None:
        """Record the current files so only later changes are reported."""
        self._seen = self.snapshot()

    def scan(self) -> list[Path]:
        """Find files that are new or modified since the last scan.

        Files still being written (modified within ``settle`` seconds) are
        left for a later scan.
        """
        current = self.snapshot()
        now = self.clock()

        for path in sorted(set(self._seen) - set(current)):
            logger.info("File removed: %s", path.name)
            del self._seen[path]
            if self.on_remove is not None:
                self.on_remove(path)

        changed = []
        for path, mtime in current.items():
            if self._seen.get(path) == mtime:
                continue
            if now - mtime < self.settle:
                continue
            changed.append(path)
            self._seen[path] = mtime
        return changed

    def forget(self, path: Path) -> None:
        """Drop a file from the seen set so the next scan reports it again."""
        self._seen.pop(path, None)

    def poll(self) -> list[Path]:
        """Scan once and hand every change to ``on_change``."""
        changed = self.scan()
        if self.on_change is not None:
            for path in changed:
                if self.on_change(path) is False:
                    self.forget(path)
        return changed

    def run(self, sleep: Callable[[float], None] = time.sleep) -> None:
        """Poll until interrupted."""
        while True:
            self.poll()
            sleep(self.interval)


class WatchService:
    """Feeds watcher changes through a single-worker sync queue."""

    def __init__(
        self,
        ops: SyncOperations,
        watcher: PollingWatcher | None = None,
        queue: SyncQueue | None = None,
        on_result: Callable[[SyncResult], None] | None = None,
    ) -> None:
        settings = ops.config.settings
        self.ops = ops
        self.queue = queue or SyncQueue(settings.queue_size)
        self.watcher = watcher or PollingWatcher(
            ops.content_dir,
            interval=settings.poll_interval,
            settle=settings.settle_time,
            exclude=ops.config.should_exclude,
        )
        self.watcher.on_change = self.queue.put
        self.watcher.on_remove = ops.forget_file
        self.on_result = on_result

    def run_once(self) -> list[SyncResult]:
        """Scan for changes, then sync every queued file in order."""
        self.watcher.poll()

        results = []
        while (path := self.queue.pop()) is not None:
            logger.info("Change detected: %s", path.name)
            result = self.ops.sync_file(path, force=True)
            if self.on_result is not None:
                self.on_result(result)
            results.append(result)
        return results

    def run(self, sleep: Callable[[float], None] = time.sleep) -> None:
        """Sync everything once, then watch until interrupted.

        Raises:
            PermanentRemoteError: If the store rejects the credentials
        """
        for result in self.ops.sync_all():
            if self.on_result is not None:
                self.on_result(result)
        self.watcher.prime()

        logger.info("Watching %s (every %.1fs)", self.ops.content_dir, self.watcher.interval)
        try:
            while True:
                self.run_once()
                sleep(self.watcher.interval)
        except KeyboardInterrupt:
            logger.info("Stopped watching")
