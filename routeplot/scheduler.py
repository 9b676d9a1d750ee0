"""Frame-budgeted, coalescing update scheduler."""

from __future__ import annotations

import itertools
import logging
from collections import deque
from typing import Callable, Hashable, Protocol

logger = logging.getLogger(__name__)

Work = Callable[[], None]


class FrameScheduler(Protocol):
    """Next-paint-frame callback registrar supplied by the host."""

    def schedule_once(self, callback: Callable[[], None]) -> Hashable:
        ...

    def cancel(self, handle: Hashable) -> None:
        ...


class ManualFrameScheduler:
    """Frame clock advanced by hand, for tests and headless hosts."""

    def __init__(self) -> None:
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._handles = itertools.count(1)
        self.frame = 0

    @property
    def pending(self) -> int:
        return len(self._callbacks)

    def schedule_once(self, callback: Callable[[], None]) -> int:
        handle = next(self._handles)
        self._callbacks[handle] = callback
        return handle

    def cancel(self, handle: Hashable) -> None:
        self._callbacks.pop(handle, None)

    def step(self) -> int:
        """Run one frame: every callback registered before this call.

        Callbacks registered while the frame runs wait for the next step.
        Returns the number of callbacks run.
        """
        due = list(self._callbacks)
        ran = 0
        for handle in due:
            callback = self._callbacks.pop(handle, None)
            if callback is None:
                continue
            callback()
            ran += 1
        self.frame += 1
        return ran

    def run_until_idle(self, max_frames: int = 10_000) -> int:
        """Step until nothing is scheduled. Returns the number of frames run."""
        frames = 0
        while self._callbacks:
            if frames >= max_frames:
                raise RuntimeError(f"Frame callbacks still pending after {max_frames} frames")
            self.step()
            frames += 1
        return frames


class UpdateScheduler:
    """Coalescing work queue flushed in ``batch_size`` chunks, one per frame.

    Enqueuing a key that is already pending replaces its work (last write
    wins). A flush covers the keys queued when it starts; work for keys
    enqueued after that goes to a fresh flush scheduled once the current
    one ends. A failing work item is logged and the chunk carries on.
    """

    def __init__(self, frames: FrameScheduler, batch_size: int = 50) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._frames = frames
        self.batch_size = batch_size
        self._queue: dict[Hashable, Work] = {}
        self._flush_keys: deque[Hashable] | None = None
        self._handle: Hashable | None = None
        self.processed_count = 0
        self.failed_count = 0

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def is_flushing(self) -> bool:
        return self._flush_keys is not None

    def enqueue(self, key: Hashable, work: Work) -> None:
        self._queue[key] = work
        if self._handle is None and not self.is_flushing:
            self._handle = self._frames.schedule_once(self._start_flush)

    def cancel(self, key: Hashable) -> bool:
        """Drop pending work for ``key``. Returns False if nothing was queued."""
        if self._queue.pop(key, None) is None:
            return False
        if not self._queue and not self.is_flushing and self._handle is not None:
            self._frames.cancel(self._handle)
            self._handle = None
        return True

    def cancel_all(self) -> None:
        self._queue.clear()
        self._flush_keys = None
        if self._handle is not None:
            self._frames.cancel(self._handle)
            self._handle = None

    def _start_flush(self) -> None:
        self._handle = None
        self._flush_keys = deque(self._queue)
        self._run_chunk()

    def _run_chunk(self) -> None:
        self._handle = None
        keys = self._flush_keys
        if keys is None:
            return

        ran = 0
        while keys and ran < self.batch_size:
            key = keys.popleft()
            work = self._queue.pop(key, None)
            if work is None:
                continue  # cancelled since the flush started
            ran += 1
            try:
                work()
            except Exception:
                self.failed_count += 1
                logger.exception("Scheduled update for %r failed", key)
            else:
                self.processed_count += 1

        if keys:
            self._handle = self._frames.schedule_once(self._run_chunk)
            return

        self._flush_keys = None
        if self._queue:
            self._handle = self._frames.schedule_once(self._start_flush)
