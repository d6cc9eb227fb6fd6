"""Needle angle mapping and peak-hold indicator."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from stereovu.audio_meter import clamp01
from stereovu.config import NeedleConfig, PeakConfig
from stereovu.scheduler import FrameScheduler

logger = logging.getLogger(__name__)


def needle_angle(
    level: float,
    min_angle: float = -150.0,
    max_angle: float = 65.0,
    bias: float = 0.0,
) -> float:
    """Map a 0-1 level to a needle angle in degrees."""
    return min_angle + (max_angle - min_angle) * clamp01(level + bias)


class NeedleRenderer:
    """Tracks the needle angle for a stream of levels."""

    def __init__(self, config: NeedleConfig | None = None) -> None:
        self.config = config or NeedleConfig()
        self._level = 0.0
        self._angle = self._map(0.0)

    @property
    def angle(self) -> float:
        return self._angle

    @property
    def level(self) -> float:
        return self._level

    @property
    def rest_angle(self) -> float:
        return self._map(0.0)

    def _map(self, level: float) -> float:
        return needle_angle(level, self.config.min_angle, self.config.max_angle, self.config.bias)

    def update(self, level: float) -> bool:
        """Set a new level; returns True if the needle moved."""
        self._level = clamp01(level)
        angle = self._map(self._level)
        if angle == self._angle:
            return False
        self._angle = angle
        return True

    def reset(self) -> None:
        self.update(0.0)


@dataclass(frozen=True)
class PeakState:
    """Peak LED state; ``hold_until`` is a timestamp in milliseconds."""

    active: bool = False
    hold_until: float | None = None


IDLE = PeakState()


class PeakDetector:
    """Edge-triggered peak hold driven by explicit timestamps.

    The LED latches when the level crosses ``threshold`` from below and
    clears ``hold_ms`` after the most recent crossing. The first level seen
    only primes the detector, so a signal that is already hot when metering
    starts does not light it.
    """

    def __init__(self, threshold: float = 0.56, hold_ms: float = 600.0) -> None:
        self.threshold = threshold
        self.hold_ms = hold_ms
        self._previous: float | None = None
        self._state = IDLE

    @classmethod
    def from_config(cls, config: PeakConfig) -> PeakDetector:
        return cls(threshold=config.threshold, hold_ms=config.hold_ms)

    @property
    def state(self) -> PeakState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state.active

    def crossed(self, level: float) -> bool:
        """Whether ``level`` is an upward crossing from the previous level."""
        return (
            self._previous is not None
            and self._previous < self.threshold
            and level >= self.threshold
        )

    def update(self, level: float, now_ms: float) -> PeakState:
        """Feed a level sampled at ``now_ms``."""
        level = clamp01(level)
        self.expire(now_ms)
        if self.crossed(level):
            self._state = PeakState(active=True, hold_until=now_ms + self.hold_ms)
        self._previous = level
        return self._state

    def expire(self, now_ms: float) -> PeakState:
        """Clear the hold once it has run out."""
        hold_until = self._state.hold_until
        if self._state.active and hold_until is not None and now_ms >= hold_until:
            self._state = IDLE
        return self._state

    def reset(self) -> None:
        self._previous = None
        self._state = IDLE


class PeakIndicator:
    """Runs a PeakDetector against a scheduler's clock and timeouts."""

    def __init__(
        self,
        scheduler: FrameScheduler,
        config: PeakConfig | None = None,
        on_change: Callable[[bool], None] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._detector = PeakDetector.from_config(config or PeakConfig())
        self._on_change = on_change
        self._timeout: int | None = None
        self._closed = False

    @property
    def active(self) -> bool:
        return self._detector.active

    @property
    def state(self) -> PeakState:
        return self._detector.state

    def update(self, level: float, now_ms: float | None = None) -> bool:
        """Feed a level; returns whether the LED is lit."""
        if self._closed:
            return False
        if now_ms is None:
            now_ms = self._scheduler.now_ms()

        was_active = self._detector.active
        retriggered = self._detector.crossed(clamp01(level))
        state = self._detector.update(level, now_ms)

        if retriggered:
            self._scheduler.clear_timeout(self._timeout)
            self._timeout = self._scheduler.set_timeout(self._on_hold_expired, self._detector.hold_ms)

        if state.active != was_active:
            self._notify(state.active)
        return state.active

    def _on_hold_expired(self) -> None:
        if self._closed:
            return
        self._timeout = None
        hold_until = self._detector.state.hold_until
        if hold_until is None:
            return
        # The timeout is due at hold_until; expire against that instant
        was_active = self._detector.active
        self._detector.expire(max(self._scheduler.now_ms(), hold_until))
        if was_active and not self._detector.active:
            self._notify(False)

    def _notify(self, active: bool) -> None:
        logger.debug(f"Peak {'on' if active else 'off'}")
        if self._on_change is not None:
            self._on_change(active)

    def close(self) -> None:
        """Cancel the pending hold timeout; no callbacks fire afterwards."""
        if self._closed:
            return
        self._closed = True
        self._scheduler.clear_timeout(self._timeout)
        self._timeout = None
