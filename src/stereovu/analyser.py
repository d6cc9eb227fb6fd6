"""Channel splitting and per-channel analysis nodes."""

from threading import Lock

import numpy as np
from numpy.typing import NDArray

MIN_FFT_SIZE = 32
MAX_FFT_SIZE = 32768

# Range used to scale the byte frequency view
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0


class Analyser:
    """Exposes the most recent window of one channel without altering it.

    Writes come from the audio callback thread, reads from the frame thread;
    both go through the same lock.
    """

    def __init__(self, fft_size: int = 1024, smoothing_time_constant: float = 0.85) -> None:
        if fft_size < MIN_FFT_SIZE or fft_size > MAX_FFT_SIZE or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two in {MIN_FFT_SIZE}..{MAX_FFT_SIZE}")
        if not 0.0 <= smoothing_time_constant <= 1.0:
            raise ValueError("smoothing_time_constant must be between 0 and 1")

        self.fft_size = fft_size
        self.smoothing_time_constant = smoothing_time_constant
        self._ring: NDArray[np.float32] = np.zeros(fft_size, dtype=np.float32)
        self._pos = 0
        self._lock = Lock()
        self._window = np.blackman(fft_size).astype(np.float32)
        self._smoothed: NDArray[np.float64] = np.zeros(self.frequency_bin_count, dtype=np.float64)
        self._connected = True

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    @property
    def connected(self) -> bool:
        return self._connected

    def write(self, samples: NDArray[np.float32]) -> None:
        """Append mono samples to the analysis window."""
        if not self._connected:
            return

        samples = np.asarray(samples, dtype=np.float32).ravel()
        n = samples.size
        if n == 0:
            return

        with self._lock:
            if n >= self.fft_size:
                self._ring[:] = samples[-self.fft_size:]
                self._pos = 0
                return

            end = self._pos + n
            if end <= self.fft_size:
                self._ring[self._pos:end] = samples
            else:
                first = self.fft_size - self._pos
                self._ring[self._pos:] = samples[:first]
                self._ring[: n - first] = samples[first:]
            self._pos = end % self.fft_size

    def _snapshot(self) -> NDArray[np.float32]:
        """Window in chronological order (oldest first)."""
        with self._lock:
            return np.roll(self._ring, -self._pos)

    def get_float_time_domain_data(self, out: NDArray[np.float32]) -> None:
        """Copy the newest samples into ``out``."""
        window = self._snapshot()
        n = min(out.size, self.fft_size)
        out[:n] = window[-n:]

    def get_byte_time_domain_data(self, out: NDArray[np.uint8]) -> None:
        """Copy the newest samples into ``out`` as bytes centred at 128."""
        window = self._snapshot()
        n = min(out.size, self.fft_size)
        scaled = np.clip(128.0 * (window[-n:].astype(np.float64) + 1.0), 0.0, 255.0)
        out[:n] = np.floor(scaled).astype(np.uint8)

    def get_float_frequency_data(self, out: NDArray[np.float32]) -> None:
        """Copy the smoothed magnitude spectrum in dB into ``out``."""
        db = self._spectrum_db()
        n = min(out.size, db.size)
        out[:n] = db[:n]

    def get_byte_frequency_data(self, out: NDArray[np.uint8]) -> None:
        """Copy the smoothed spectrum into ``out`` scaled to 0..255."""
        db = self._spectrum_db()
        n = min(out.size, db.size)
        scaled = 255.0 * (db[:n] - MIN_DECIBELS) / (MAX_DECIBELS - MIN_DECIBELS)
        out[:n] = np.clip(scaled, 0.0, 255.0).astype(np.uint8)

    def _spectrum_db(self) -> NDArray[np.float64]:
        window = self._snapshot()
        spectrum = np.fft.rfft(window * self._window)[: self.frequency_bin_count]
        magnitude = np.abs(spectrum) / self.fft_size

        k = self.smoothing_time_constant
        self._smoothed = k * self._smoothed + (1.0 - k) * magnitude
        # Non-finite history would poison every later frame
        self._smoothed[~np.isfinite(self._smoothed)] = 0.0

        return 20.0 * np.log10(self._smoothed + 1e-12)

    def reset(self) -> None:
        """Clear the window and spectral history."""
        with self._lock:
            self._ring.fill(0.0)
            self._pos = 0
        self._smoothed.fill(0.0)

    def disconnect(self) -> None:
        """Stop accepting samples."""
        self._connected = False


class ChannelSplitter:
    """Routes each channel of an interleaved block to its own analyser."""

    def __init__(self, number_of_outputs: int = 2) -> None:
        if number_of_outputs < 1:
            raise ValueError("number_of_outputs must be at least 1")
        self.number_of_outputs = number_of_outputs
        self._outputs: list[list[Analyser]] = [[] for _ in range(number_of_outputs)]
        self._lock = Lock()

    def connect(self, analyser: Analyser, output: int = 0) -> None:
        """Connect an analyser to one splitter output."""
        if not 0 <= output < self.number_of_outputs:
            raise IndexError(f"Splitter has no output {output}")
        with self._lock:
            self._outputs[output].append(analyser)

    def disconnect(self) -> None:
        """Detach every connected analyser."""
        with self._lock:
            self._outputs = [[] for _ in range(self.number_of_outputs)]

    def process(self, block: NDArray[np.float32]) -> None:
        """Split a (frames, channels) block across the outputs.

        Outputs beyond the block's channel count receive silence.
        """
        block = np.asarray(block, dtype=np.float32)
        if block.ndim == 1:
            block = block[:, np.newaxis]

        frames, channels = block.shape
        with self._lock:
            outputs = [list(targets) for targets in self._outputs]

        for index, targets in enumerate(outputs):
            if not targets:
                continue
            if index < channels:
                data = block[:, index]
            else:
                data = np.zeros(frames, dtype=np.float32)
            for analyser in targets:
                analyser.write(data)
