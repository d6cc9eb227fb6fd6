"""Per-frame stereo level extraction from a bound audio source."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

import numpy as np
from numpy.typing import NDArray

from stereovu.audio_meter import SILENT, LevelState, process_frame
from stereovu.config import Settings, get_settings
from stereovu.exceptions import StereoVUError
from stereovu.scheduler import FrameScheduler
from stereovu.session import AudioSession
from stereovu.sources import AudioSource

logger = logging.getLogger(__name__)

LevelsCallback = Callable[[LevelState], None]
FrameBuffers = tuple[NDArray[np.uint8], NDArray[np.uint8]]


class LevelExtractor:
    """Turns a bound audio source into smoothed left/right levels.

    Binding a source builds an :class:`AudioSession` and requests a frame
    from the scheduler; every frame samples both channels, runs
    :func:`process_frame` and requests the next one. Failures never leave
    this class: they are logged and the levels stay at zero until another
    source is bound.

    Frames run on the scheduler thread while `bind` and `close` may be
    called from another, so binding state changes and publishing happen
    under one lock. Reading the analysers happens outside it.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        scheduler: FrameScheduler | None = None,
        on_levels: LevelsCallback | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._scheduler = scheduler or FrameScheduler(fps=self._settings.display.fps)
        self._on_levels = on_levels
        self._levels: LevelState = SILENT
        self._source: AudioSource | None = None
        self._session: AudioSession | None = None
        self._frame_handle: int | None = None
        self._disposed = False
        self._lock = threading.RLock()

    @property
    def levels(self) -> LevelState:
        return self._levels

    @property
    def source(self) -> AudioSource | None:
        return self._source

    @property
    def session(self) -> AudioSession | None:
        return self._session

    @property
    def scheduler(self) -> FrameScheduler:
        return self._scheduler

    @property
    def disposed(self) -> bool:
        return self._disposed

    def bind(self, source: AudioSource | None) -> None:
        """Bind a new source, releasing the previous session first.

        Binding the source that is already bound does nothing.
        """
        with self._lock:
            if self._disposed:
                raise StereoVUError("LevelExtractor is closed")
            if source is self._source:
                return

            self._teardown()
            self._source = source
            if source is None:
                return

            session = AudioSession(source, self._settings)
            try:
                session.build()
            except StereoVUError as e:
                logger.warning(f"Metering disabled for {source.name}: {e}")
                session.close()
                return
            except Exception as e:
                logger.warning(f"Metering disabled for {source.name}: unexpected error: {e}")
                session.close()
                return

            buffers = session.allocate_buffers()
            self._session = session
            self._frame_handle = self._scheduler.request_frame(self._make_tick(session, buffers))

    def notify_gesture(self) -> None:
        """Forward a user interaction to the session (resumes it once)."""
        with self._lock:
            session = self._session
            if session is None:
                return
            try:
                session.notify_gesture()
            except Exception as e:
                logger.warning(f"Failed to resume session for {session.source.name}: {e}")
                self._teardown()

    def _is_current(self, session: AudioSession) -> bool:
        return not self._disposed and self._session is session

    def _make_tick(self, session: AudioSession, buffers: FrameBuffers) -> Callable[[float], None]:
        def tick(timestamp_ms: float) -> None:
            # A frame queued before teardown must not touch the new state
            if self._is_current(session):
                self._frame(session, buffers)

        return tick

    def _frame(self, session: AudioSession, buffers: FrameBuffers) -> None:
        buf_left, buf_right = buffers
        try:
            session.read(buf_left, buf_right)
            levels = process_frame(self._levels, buf_left, buf_right, self._settings.meter)
        except Exception as e:
            with self._lock:
                # A rebind or close during the read already replaced this session
                if self._is_current(session):
                    logger.warning(f"Metering stopped for {session.source.name}: {e}")
                    self._teardown()
            return

        with self._lock:
            if not self._is_current(session):
                return
            self._publish(levels)
            self._frame_handle = self._scheduler.request_frame(self._make_tick(session, buffers))

    def _publish(self, levels: LevelState) -> None:
        self._levels = levels
        if self._on_levels is not None:
            self._on_levels(levels)

    def _teardown(self) -> None:
        self._scheduler.cancel_frame(self._frame_handle)
        self._frame_handle = None

        session = self._session
        self._session = None
        if session is not None:
            session.close()

        if self._levels != SILENT:
            self._publish(SILENT)

    def close(self) -> None:
        """Release the session; no level updates happen afterwards."""
        with self._lock:
            if self._disposed:
                return
            self._teardown()
            self._source = None
            self._disposed = True

    def __enter__(self) -> LevelExtractor:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
