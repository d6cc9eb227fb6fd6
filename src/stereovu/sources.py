"""Audio sources that can be tapped for metering."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from threading import Lock
from typing import Any, Protocol, runtime_checkable

import numpy as np
from numpy.typing import NDArray
from scipy.io import wavfile

from stereovu.backend import load_sounddevice
from stereovu.devices import AudioDevice
from stereovu.exceptions import DeviceOpenError, GraphConstructionError, SourceError

logger = logging.getLogger(__name__)

# Receives each (frames, channels) float32 block the source produces
TapCallback = Callable[[NDArray[np.float32]], None]


@runtime_checkable
class AudioStream(Protocol):
    """Running stream handle (matches sounddevice streams)."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def close(self) -> None: ...


@runtime_checkable
class AudioSource(Protocol):
    """Something playable whose output can be tapped."""

    @property
    def name(self) -> str: ...

    @property
    def channels(self) -> int: ...

    @property
    def sample_rate(self) -> int: ...

    def open_stream(self, tap: TapCallback) -> AudioStream: ...

    def release(self) -> None: ...


class _ExclusiveTap:
    """One analysis graph per source at a time."""

    def __init__(self) -> None:
        self._attach_lock = Lock()
        self._attached = False

    @property
    def attached(self) -> bool:
        return self._attached

    def _attach(self, name: str) -> None:
        with self._attach_lock:
            if self._attached:
                raise GraphConstructionError(f"{name} is already connected to a graph")
            self._attached = True

    def release(self) -> None:
        """Allow the source to be tapped by a new graph."""
        with self._attach_lock:
            self._attached = False


class DeviceSource(_ExclusiveTap):
    """Live input device, typically a monitor of the playback sink."""

    def __init__(
        self,
        device: AudioDevice,
        sample_rate: int | None = None,
        block_size: int = 512,
    ) -> None:
        super().__init__()
        self.device = device
        self._sample_rate = sample_rate or int(device.sample_rate)
        self._block_size = block_size

    @property
    def name(self) -> str:
        return self.device.name

    @property
    def channels(self) -> int:
        return min(2, self.device.channels)

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    def open_stream(self, tap: TapCallback) -> AudioStream:
        """Open an input stream feeding ``tap``.

        Raises:
            AudioUnavailableError: If PortAudio cannot be loaded
            GraphConstructionError: If the source is already tapped
            DeviceOpenError: If the device cannot be opened
        """
        sd = load_sounddevice()
        self._attach(self.name)

        def handler(indata: NDArray[np.float32], frames: int, time: Any, status: Any) -> None:
            if status:
                logger.debug(f"Input status on {self.name}: {status}")
            tap(indata.copy())

        try:
            return sd.InputStream(
                device=self.device.id,
                samplerate=self._sample_rate,
                channels=self.channels,
                dtype=np.float32,
                blocksize=self._block_size,
                callback=handler,
            )
        except sd.PortAudioError as e:
            self.release()
            raise DeviceOpenError(f"Failed to open device: {e}") from e
        except Exception:
            self.release()
            raise


def _to_float32(data: np.ndarray) -> NDArray[np.float32]:
    """Convert WAV sample data to float32 in [-1, 1]."""
    if data.dtype == np.uint8:
        return ((data.astype(np.float32) - 128.0) / 128.0).astype(np.float32)
    if data.dtype == np.int16:
        return (data.astype(np.float32) / 32768.0).astype(np.float32)
    if data.dtype == np.int32:
        return (data.astype(np.float64) / 2147483648.0).astype(np.float32)
    if np.issubdtype(data.dtype, np.floating):
        return data.astype(np.float32)
    raise SourceError(f"Unsupported WAV sample type: {data.dtype}")


class FileSource(_ExclusiveTap):
    """WAV file played on the default output device while being tapped."""

    def __init__(self, path: Path, loop: bool = False, block_size: int = 512) -> None:
        super().__init__()
        self.path = Path(path)
        self.loop = loop
        self._block_size = block_size

        try:
            rate, data = wavfile.read(self.path)
        except (OSError, ValueError) as e:
            raise SourceError(f"Failed to read {self.path}: {e}") from e

        samples = _to_float32(data)
        if samples.ndim == 1:
            samples = samples[:, np.newaxis]

        self._sample_rate = int(rate)
        self._samples: NDArray[np.float32] = samples
        self._position = 0
        self._finished = False

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def channels(self) -> int:
        return int(self._samples.shape[1])

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def duration(self) -> float:
        return self._samples.shape[0] / self._sample_rate

    @property
    def finished(self) -> bool:
        return self._finished

    def next_block(self, frames: int) -> tuple[NDArray[np.float32], bool]:
        """Return the next ``frames`` frames and whether playback is over.

        Short blocks at end of file are padded with silence.
        """
        total = self._samples.shape[0]
        block = np.zeros((frames, self.channels), dtype=np.float32)
        filled = 0

        while filled < frames:
            if self._position >= total:
                if not self.loop or total == 0:
                    self._finished = True
                    break
                self._position = 0
            take = min(frames - filled, total - self._position)
            block[filled:filled + take] = self._samples[self._position:self._position + take]
            filled += take
            self._position += take

        if not self.loop and self._position >= total:
            self._finished = True
        return block, self._finished

    def open_stream(self, tap: TapCallback) -> AudioStream:
        """Open an output stream that plays the file and feeds ``tap``.

        Raises:
            AudioUnavailableError: If PortAudio cannot be loaded
            GraphConstructionError: If the source is already tapped
            DeviceOpenError: If the output device cannot be opened
        """
        sd = load_sounddevice()
        self._attach(self.name)

        def handler(outdata: NDArray[np.float32], frames: int, time: Any, status: Any) -> None:
            if status:
                logger.debug(f"Output status on {self.name}: {status}")
            block, done = self.next_block(frames)
            outdata[:] = block
            tap(block)
            if done:
                raise sd.CallbackStop

        try:
            return sd.OutputStream(
                samplerate=self._sample_rate,
                channels=self.channels,
                dtype=np.float32,
                blocksize=self._block_size,
                callback=handler,
            )
        except sd.PortAudioError as e:
            self.release()
            raise DeviceOpenError(f"Failed to open output device: {e}") from e
        except Exception:
            self.release()
            raise
