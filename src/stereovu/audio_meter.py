"""Audio level metering calculations.

Each stage of the per-frame pipeline is a plain function so the ballistics
can be exercised without an audio device:

    bytes -> RMS -> dB -> normalized -> shaped -> calibrated -> ballistics
"""

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from stereovu.config import MeterConfig

# Byte time-domain data is 0..255 with silence at 128
BYTE_CENTER = 128.0


@dataclass(frozen=True)
class LevelState:
    """Displayed left/right levels, each in [0, 1]."""

    left: float = 0.0
    right: float = 0.0

    def as_tuple(self) -> tuple[float, float]:
        return (self.left, self.right)


SILENT = LevelState()


def clamp01(value: float) -> float:
    """Clamp a level to [0, 1], mapping NaN to 0."""
    if math.isnan(value):
        return 0.0
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return float(value)


def rms_from_bytes(buf: NDArray[np.uint8]) -> float:
    """Calculate RMS of unsigned byte time-domain samples.

    Args:
        buf: Samples centred at 128

    Returns:
        RMS of the zero-centred, unit-normalized signal (~0 to 1)
    """
    if buf.size == 0:
        return 0.0

    samples = (buf.astype(np.float64) - BYTE_CENTER) / BYTE_CENTER
    return float(np.sqrt(np.mean(samples**2)))


def linear_to_db(linear: float, epsilon: float = 1e-7) -> float:
    """Convert linear amplitude to decibels.

    Args:
        linear: Linear amplitude value (gain already applied)
        epsilon: Offset that keeps silence finite

    Returns:
        Value in decibels
    """
    return float(20.0 * math.log10(max(linear, 0.0) + epsilon))


def db_to_normalized(db: float, noise_floor_db: float = -75.0, clip_db: float = 0.0) -> float:
    """Convert dB to the 0-1 range between noise floor and clip level."""
    clamped = min(clip_db, max(noise_floor_db, db))
    return clamp01((clamped - noise_floor_db) / (clip_db - noise_floor_db))


def shape_level(normalized: float, shape: float = 2.5) -> float:
    """Apply the response curve; exponents above 1 pull low levels down."""
    return clamp01(clamp01(normalized) ** shape)


def calibrate(shaped: float, scale: float = 1.25, offset: float = -0.08) -> float:
    """Apply the calibration affine transform and clamp."""
    return clamp01(shaped * scale + offset)


def ballistic_step(previous: float, target: float, attack: float, release: float) -> float:
    """Move the displayed level toward target with VU ballistics.

    Rising targets close ``attack`` of the gap per frame, falling targets
    only ``release`` of it.
    """
    coefficient = attack if target > previous else release
    return clamp01(previous + (target - previous) * coefficient)


def rms_to_target(rms: float, config: MeterConfig) -> float:
    """Map a channel RMS value to its calibrated 0-1 target level."""
    db = linear_to_db(rms * config.gain, config.epsilon)
    normalized = db_to_normalized(db, config.noise_floor_db, config.clip_db)
    shaped = shape_level(normalized, config.shape)
    return calibrate(shaped, config.cal_scale, config.cal_offset)


def compute_target(buf: NDArray[np.uint8], config: MeterConfig) -> float:
    """Calculate the target level for one channel window."""
    return rms_to_target(rms_from_bytes(buf), config)


def process_frame(
    previous: LevelState,
    buf_left: NDArray[np.uint8],
    buf_right: NDArray[np.uint8] | None,
    config: MeterConfig,
) -> LevelState:
    """Compute the next displayed levels from one frame of both channels.

    Args:
        previous: Levels published on the previous frame
        buf_left: Left channel window sampled this frame
        buf_right: Right channel window sampled this frame, or None for mono
        config: Meter constants

    Returns:
        New LevelState
    """
    rms_left = rms_from_bytes(buf_left)
    rms_right = rms_from_bytes(buf_right) if buf_right is not None else 0.0

    # Mono sources leave the second splitter output silent
    if math.isnan(rms_right) or rms_right < config.mono_threshold:
        rms_right = rms_left

    target_left = rms_to_target(rms_left, config)
    target_right = rms_to_target(rms_right, config)

    return LevelState(
        left=ballistic_step(previous.left, target_left, config.attack, config.release),
        right=ballistic_step(previous.right, target_right, config.attack, config.release),
    )


def frames_to_converge(coefficient: float, tolerance: float) -> int:
    """Frames needed for a step response to get within tolerance of target."""
    if coefficient >= 1.0:
        return 1
    return math.ceil(math.log(tolerance) / math.log(1.0 - coefficient))
