"""Shared fixtures: in-memory sources and a controllable clock."""

import numpy as np
import pytest

from stereovu.config import Settings, reset_settings
from stereovu.exceptions import GraphConstructionError
from stereovu.scheduler import FrameScheduler


class FakeStream:
    """Stream handle that records lifecycle calls."""

    def __init__(self, tap):
        self.tap = tap
        self.start_calls = 0
        self.stopped = False
        self.closed = False

    @property
    def started(self) -> bool:
        return self.start_calls > 0

    def start(self):
        self.start_calls += 1

    def stop(self):
        self.stopped = True

    def close(self):
        self.closed = True


class FakeSource:
    """In-memory source; blocks are pushed by the test."""

    def __init__(self, name="fake", channels=2, sample_rate=48000, error=None):
        self.name = name
        self.channels = channels
        self.sample_rate = sample_rate
        self.error = error
        self.attached = False
        self.streams: list[FakeStream] = []

    @property
    def stream(self) -> FakeStream:
        return self.streams[-1]

    def open_stream(self, tap):
        if self.error is not None:
            raise self.error
        if self.attached:
            raise GraphConstructionError(f"{self.name} is already connected to a graph")
        self.attached = True
        stream = FakeStream(tap)
        self.streams.append(stream)
        return stream

    def release(self):
        self.attached = False

    def push(self, block):
        self.stream.tap(np.asarray(block, dtype=np.float32))


class FakeClock:
    """Monotonic clock the test moves by hand (seconds)."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def sine_block(frames=1024, amplitude=0.9, channels=2, cycles=8):
    t = np.arange(frames) / frames
    wave = (amplitude * np.sin(2 * np.pi * cycles * t)).astype(np.float32)
    return np.repeat(wave[:, np.newaxis], channels, axis=1)


@pytest.fixture(autouse=True)
def reset():
    """Reset settings singleton before each test."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> Settings:
    return Settings(analyser={"fft_size": 256})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scheduler(clock) -> FrameScheduler:
    return FrameScheduler(fps=60.0, clock=clock)


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()
