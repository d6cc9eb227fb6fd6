"""Analysis graph for one bound audio source."""

from __future__ import annotations

import logging
from enum import Enum
from threading import Lock

import numpy as np
from numpy.typing import NDArray

from stereovu.analyser import Analyser, ChannelSplitter
from stereovu.config import Settings
from stereovu.exceptions import GraphConstructionError, StereoVUError
from stereovu.sources import AudioSource, AudioStream

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle of an AudioSession."""

    SUSPENDED = "suspended"
    RUNNING = "running"
    CLOSED = "closed"


class AudioSession:
    """Owns source -> splitter -> (left, right) analysers for one source.

    The session is built suspended. It starts running either right away
    (``audio.require_gesture`` off) or on the first :meth:`notify_gesture`.
    """

    def __init__(self, source: AudioSource, settings: Settings) -> None:
        self.source = source
        self._settings = settings
        self._state = SessionState.SUSPENDED
        self._lock = Lock()
        self._stream: AudioStream | None = None
        self._splitter: ChannelSplitter | None = None
        self._analysers: tuple[Analyser, Analyser] | None = None
        self._gesture_armed = False
        self._owns_source = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def awaiting_gesture(self) -> bool:
        return self._gesture_armed

    @property
    def analysers(self) -> tuple[Analyser, Analyser]:
        if self._analysers is None:
            raise GraphConstructionError("Session graph has not been built")
        return self._analysers

    def build(self) -> None:
        """Construct the graph and open the source stream.

        Raises:
            GraphConstructionError: If the graph cannot be built
            AudioUnavailableError: If PortAudio cannot be loaded
            DeviceOpenError: If the stream cannot be opened
        """
        if self._state is SessionState.CLOSED:
            raise GraphConstructionError("Cannot rebuild a closed session")
        if self._analysers is not None:
            return

        analyser_config = self._settings.analyser
        try:
            splitter = ChannelSplitter(2)
            left = Analyser(analyser_config.fft_size, analyser_config.smoothing_time_constant)
            right = Analyser(analyser_config.fft_size, analyser_config.smoothing_time_constant)
        except ValueError as e:
            raise GraphConstructionError(f"Invalid analyser settings: {e}") from e

        splitter.connect(left, 0)
        splitter.connect(right, 1)
        self._splitter = splitter
        self._analysers = (left, right)

        try:
            self._stream = self.source.open_stream(splitter.process)
        except StereoVUError:
            self._teardown_graph()
            raise
        except Exception as e:
            self._teardown_graph()
            raise GraphConstructionError(f"Failed to tap {self.source.name}: {e}") from e
        self._owns_source = True

        logger.info(
            f"Session built for {self.source.name} "
            f"({self.source.channels}ch @ {self.source.sample_rate}Hz)"
        )

        if self._settings.audio.require_gesture:
            self._gesture_armed = True
            logger.debug(f"Session for {self.source.name} waiting for a user gesture")
        else:
            self.resume()

    def resume(self) -> None:
        """Start the stream if the session is suspended."""
        with self._lock:
            if self._state is not SessionState.SUSPENDED or self._stream is None:
                return
            self._stream.start()
            self._state = SessionState.RUNNING
        logger.debug(f"Session for {self.source.name} running")

    def notify_gesture(self) -> None:
        """Handle a user interaction; resumes at most once per session."""
        if not self._gesture_armed:
            return
        self._gesture_armed = False
        self.resume()

    def read(self, buf_left: NDArray[np.uint8], buf_right: NDArray[np.uint8]) -> None:
        """Sample both channels for the current frame."""
        left, right = self.analysers
        left.get_byte_time_domain_data(buf_left)
        right.get_byte_time_domain_data(buf_right)

    def allocate_buffers(self) -> tuple[NDArray[np.uint8], NDArray[np.uint8]]:
        """Byte buffers sized to the analysis window, initialised to silence."""
        size = self._settings.analyser.fft_size
        return (
            np.full(size, 128, dtype=np.uint8),
            np.full(size, 128, dtype=np.uint8),
        )

    def _teardown_graph(self) -> None:
        if self._splitter is not None:
            self._splitter.disconnect()
        if self._analysers is not None:
            for analyser in self._analysers:
                analyser.disconnect()
        self._splitter = None
        self._analysers = None

    def close(self) -> None:
        """Stop the stream and release every node. Safe to call twice."""
        with self._lock:
            if self._state is SessionState.CLOSED:
                return
            self._state = SessionState.CLOSED
            stream = self._stream
            self._stream = None
            self._gesture_armed = False

        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as e:
                logger.warning(f"Error closing stream for {self.source.name}: {e}")

        self._teardown_graph()
        if self._owns_source:
            self._owns_source = False
            self.source.release()
        logger.info(f"Session for {self.source.name} closed")

    def __enter__(self) -> AudioSession:
        self.build()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
