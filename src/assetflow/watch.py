"""
Watch & reload loop.

Watchdog observers feed file events into a queue; a single consumer re-runs
the task(s) bound to the changed path and then notifies the reload channel.
"""

from __future__ import annotations

import enum
import os
import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .core import Resolver, RunContext
from .errors import AssetflowError, ProcessingError
from .logging import get_logger
from .server import ReloadChannel
from . import utils


log = get_logger("assetflow.watch")


class WatchState(enum.Enum):
    IDLE = "idle"
    TRIGGERED = "triggered"
    NOTIFYING = "notifying"


class DebounceTracker:
    """Hold a key back until no new event has arrived for `debounce_ms`."""

    def __init__(self, debounce_ms: int = 200):
        self.debounce_seconds = debounce_ms / 1000.0
        self._pending_events: Dict[object, float] = {}
        self._lock = threading.Lock()

    def record(self, key: object) -> None:
        with self._lock:
            self._pending_events[key] = time.monotonic()

    def remaining(self, key: object) -> float:
        """Seconds left before `key` has been quiet for the whole window."""
        with self._lock:
            last = self._pending_events.get(key)
        if last is None:
            return 0.0
        return max(0.0, last + self.debounce_seconds - time.monotonic())

    def forget(self, key: object) -> None:
        with self._lock:
            self._pending_events.pop(key, None)

    def cleanup_old_events(self, max_age_seconds: float = 60.0) -> None:
        cutoff = time.monotonic() - max_age_seconds
        with self._lock:
            for key in [k for k, t in self._pending_events.items() if t <= cutoff]:
                del self._pending_events[key]


@dataclass(frozen=True)
class WatchBinding:
    """Paths to watch and what to do when one of them changes."""

    patterns: Tuple[str, ...]
    tasks: Tuple[str, ...] = ()
    reload: bool = False

    @classmethod
    def of(
        cls,
        patterns: str | Sequence[str],
        tasks: str | Sequence[str] = (),
        reload: bool = False,
    ) -> "WatchBinding":
        if isinstance(patterns, str):
            patterns = [patterns]
        if isinstance(tasks, str):
            tasks = [tasks]
        return cls(tuple(patterns), tuple(tasks), reload)

    def matches(self, rel_path: str) -> bool:
        return any(utils.match_path(rel_path, pat) for pat in self.patterns)

    def describe(self) -> str:
        action = ", ".join(self.tasks) or "-"
        if self.reload:
            action += " + reload"
        return f"{', '.join(self.patterns)} → {action}"


class _EventHandler(FileSystemEventHandler):
    def __init__(self, session: "WatchSession"):
        super().__init__()
        self.session = session

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.session.handle_path(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.session.handle_path(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.session.handle_path(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.session.handle_path(event.dest_path)


def watch_roots(bindings: Iterable[WatchBinding]) -> Dict[Path, bool]:
    """Directories to observe, mapped to whether they need recursion."""
    roots: Dict[Path, bool] = {}
    for binding in bindings:
        for pat in binding.patterns:
            base = utils.glob_base(pat)
            rest = pat[len(base.as_posix()) :].lstrip("/") if base.as_posix() != "." else pat
            recursive = utils.has_magic(pat) and ("**" in pat or "/" in rest)
            roots[base] = roots.get(base, False) or recursive
    return roots


def nearest_existing_dir(directory: Path) -> Path:
    while not directory.is_dir() and directory != directory.parent:
        directory = directory.parent
    return directory


class WatchSession:
    """Keeps the process reacting to file changes until stopped."""

    def __init__(
        self,
        resolver: Resolver,
        bindings: Sequence[WatchBinding],
        channel: Optional[ReloadChannel] = None,
        params: Optional[dict] = None,
        debounce_ms: int = 200,
        root: Path | str | None = None,
    ):
        self.resolver = resolver
        self.bindings = list(bindings)
        self.channel = channel
        self.params = params or {}
        self.root = Path(root or os.getcwd()).resolve()
        self.debounce = DebounceTracker(debounce_ms=debounce_ms)
        self.state = WatchState.IDLE
        self.failures = 0
        self._queue: "queue.Queue[int]" = queue.Queue()
        self._pending: Dict[int, Set[str]] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._observer: Optional[Observer] = None

    # Producer side (observer threads)

    def handle_path(self, path: str | Path) -> List[WatchBinding]:
        """Queue every binding matching `path`; returns the matched bindings.

        Each event restarts the binding's quiet window, so a burst of saves
        ends in one run that sees the last of them. An event arriving while
        the binding is already running queues it again.
        """
        p = Path(path)
        if p.is_absolute():
            rel = Path(os.path.relpath(p, self.root)).as_posix()
        else:
            rel = p.as_posix()
        matched: List[WatchBinding] = []
        for idx, binding in enumerate(self.bindings):
            if not binding.matches(rel):
                continue
            matched.append(binding)
            with self._lock:
                queued = idx in self._pending
                self._pending.setdefault(idx, set()).add(rel)
                self.debounce.record(idx)
            if not queued:
                self._queue.put(idx)
        return matched

    # Consumer side

    def process_next(self, timeout: float | None = 0.5) -> bool:
        """Handle one queued binding. Returns False when nothing was queued."""
        try:
            idx = self._queue.get(timeout=timeout) if timeout else self._queue.get_nowait()
        except queue.Empty:
            return False
        wait = self.debounce.remaining(idx)
        while wait > 0:
            if self._stop.wait(wait):
                self._queue.put(idx)
                return False
            wait = self.debounce.remaining(idx)
        with self._lock:
            paths = sorted(self._pending.pop(idx, set()))
            self.debounce.forget(idx)
        self.trigger(self.bindings[idx], paths)
        return True

    def drain(self) -> int:
        count = 0
        while self.process_next(timeout=None):
            count += 1
        return count

    def trigger(self, binding: WatchBinding, paths: Sequence[str] = ()) -> bool:
        log.info("Change: %s", ", ".join(paths) or binding.describe())
        if binding.tasks:
            self.state = WatchState.TRIGGERED
            ctx = RunContext(params=self.params, live=True)
            try:
                self.resolver.run(binding.tasks, ctx)
            except AssetflowError as e:
                self.failures += 1
                where = ""
                if isinstance(e, ProcessingError) and e.location:
                    where = f" at {e.location}"
                log.error(
                    "Task '%s' failed%s: %s",
                    getattr(e, "task", "?"),
                    where,
                    e,
                )
                self.state = WatchState.IDLE
                return False
        if binding.reload and self.channel is not None:
            self.state = WatchState.NOTIFYING
            self.channel.notify(paths)
        self.state = WatchState.IDLE
        return True

    # Lifecycle

    def start(self) -> None:
        if self._observer is not None and self._observer.is_alive():
            return
        observer = Observer()
        handler = _EventHandler(self)
        for directory, recursive in self.scheduled_roots().items():
            observer.schedule(handler, str(directory), recursive=recursive)
        observer.start()
        self._observer = observer
        for binding in self.bindings:
            log.info("Watching %s", binding.describe())

    def scheduled_roots(self) -> Dict[Path, bool]:
        """Existing directories to observe. A missing base is replaced by its
        nearest existing ancestor, watched recursively, so files created there
        later are still seen; the binding globs do the filtering."""
        roots: Dict[Path, bool] = {}
        for base, recursive in watch_roots(self.bindings).items():
            directory = base if base.is_absolute() else self.root / base
            existing = nearest_existing_dir(directory)
            if existing != directory:
                log.info("Watch directory %s does not exist yet, watching %s", directory, existing)
                recursive = True
            roots[existing] = roots.get(existing, False) or recursive
        return roots

    def stop(self) -> None:
        self._stop.set()
        if self._observer is None:
            return
        try:
            self._observer.stop()
            self._observer.join(timeout=5.0)
        finally:
            self._observer = None
        log.info("Watch session stopped")

    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def run_forever(self, poll: float = 0.5) -> None:
        self._stop.clear()
        self.start()
        try:
            while not self._stop.is_set():
                if not self.process_next(timeout=poll):
                    self.debounce.cleanup_old_events()
        except KeyboardInterrupt:
            log.info("Interrupted")
        finally:
            self.stop()
