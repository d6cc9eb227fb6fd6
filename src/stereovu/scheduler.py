"""Frame and timeout scheduling on a single cooperative thread."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

FrameCallback = Callable[[float], None]
TimeoutCallback = Callable[[], None]


@dataclass(order=True)
class _Timeout:
    due_ms: float
    handle: int
    callback: TimeoutCallback = field(compare=False)


class FrameScheduler:
    """Runs animation-frame callbacks and timeouts.

    Frame callbacks requested before a step run once during that step;
    callbacks requested from inside a step run on the next one. Timeouts
    fire on the first step at or after their due time. Everything runs on
    the thread that calls :meth:`step`, normally the loop started by
    :meth:`start`.
    """

    def __init__(self, fps: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        if fps <= 0:
            raise ValueError("fps must be positive")
        self.fps = fps
        self._clock = clock
        self._handles = itertools.count(1)
        self._frames: dict[int, FrameCallback] = {}
        self._timeouts: list[_Timeout] = []
        self._cancelled_timeouts: set[int] = set()
        self._lock = threading.Lock()
        self._running = False
        self._thread: threading.Thread | None = None
        self._wake = threading.Event()

    @property
    def frame_interval_s(self) -> float:
        return 1.0 / self.fps

    @property
    def is_running(self) -> bool:
        return self._running

    def now_ms(self) -> float:
        """Current scheduler time in milliseconds."""
        return self._clock() * 1000.0

    def request_frame(self, callback: FrameCallback) -> int:
        """Schedule ``callback(timestamp_ms)`` for the next frame."""
        with self._lock:
            handle = next(self._handles)
            self._frames[handle] = callback
        return handle

    def cancel_frame(self, handle: int | None) -> None:
        if handle is None:
            return
        with self._lock:
            self._frames.pop(handle, None)

    def set_timeout(self, callback: TimeoutCallback, delay_ms: float) -> int:
        """Schedule ``callback()`` to run ``delay_ms`` from now."""
        due = self.now_ms() + max(0.0, delay_ms)
        with self._lock:
            handle = next(self._handles)
            heapq.heappush(self._timeouts, _Timeout(due, handle, callback))
        return handle

    def clear_timeout(self, handle: int | None) -> None:
        if handle is None:
            return
        with self._lock:
            if any(t.handle == handle for t in self._timeouts):
                self._cancelled_timeouts.add(handle)

    @property
    def pending_frames(self) -> int:
        with self._lock:
            return len(self._frames)

    @property
    def pending_timeouts(self) -> int:
        with self._lock:
            return len(self._timeouts) - len(self._cancelled_timeouts)

    def step(self, now_ms: float | None = None) -> None:
        """Run one frame: due frame callbacks, then due timeouts."""
        if now_ms is None:
            now_ms = self.now_ms()

        with self._lock:
            handles = list(self._frames)

        for handle in handles:
            # A callback earlier in this frame may have cancelled a later one
            with self._lock:
                callback = self._frames.pop(handle, None)
            if callback is None:
                continue
            try:
                callback(now_ms)
            except Exception:
                logger.exception(f"Frame callback {handle} failed")

        while True:
            with self._lock:
                if not self._timeouts or self._timeouts[0].due_ms > now_ms:
                    break
                timeout = heapq.heappop(self._timeouts)
                if timeout.handle in self._cancelled_timeouts:
                    self._cancelled_timeouts.discard(timeout.handle)
                    continue
            try:
                timeout.callback()
            except Exception:
                logger.exception(f"Timeout callback {timeout.handle} failed")

    def _run(self) -> None:
        interval = self.frame_interval_s
        next_frame = self._clock()
        while self._running:
            self.step()
            next_frame += interval
            delay = next_frame - self._clock()
            if delay < 0:
                # Fell behind; skip missed frames instead of bursting
                next_frame = self._clock()
                delay = 0.0
            self._wake.wait(delay)

    def start(self) -> None:
        """Start the frame loop on a daemon thread."""
        if self._running:
            return
        self._running = True
        self._wake.clear()
        self._thread = threading.Thread(target=self._run, name="stereovu-frames", daemon=True)
        self._thread.start()
        logger.debug(f"Frame loop started at {self.fps:g} fps")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the frame loop and wait for it to exit."""
        if not self._running:
            return
        self._running = False
        self._wake.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.debug("Frame loop stopped")

    def __enter__(self) -> FrameScheduler:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
