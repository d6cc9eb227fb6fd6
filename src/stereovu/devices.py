"""Audio device detection and selection.

Metering works best on a stereo monitor source (PulseAudio/PipeWire expose
one per output sink), since it carries exactly what the machine is playing.
Devices are sorted into roles by name, and the role sets the base score.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from stereovu.backend import load_sounddevice
from stereovu.exceptions import DeviceNotFoundError


class DeviceRole(Enum):
    """What an input device is likely to carry."""

    MONITOR = "monitor"
    SERVER = "server"
    CAPTURE = "capture"
    UNSUITABLE = "unsuitable"


# Checked in order; the first match wins
_ROLE_MATCHERS: list[tuple[DeviceRole, re.Pattern[str]]] = [
    (DeviceRole.MONITOR, re.compile(r"monitor|loopback|stereo\s*mix|what\s*u\s*hear|blackhole")),
    (DeviceRole.SERVER, re.compile(r"^(pipewire|pulse|default)$")),
    (DeviceRole.UNSUITABLE, re.compile(r"hdmi|spdif|digital\s*output")),
]

_ROLE_SCORES = {
    DeviceRole.MONITOR: 100,
    DeviceRole.SERVER: 60,
    DeviceRole.CAPTURE: 0,
    DeviceRole.UNSUITABLE: 0,
}

STEREO_BONUS = 40
DEFAULT_BONUS = 30
STANDARD_RATE_BONUS = 10
STANDARD_RATES = (44100.0, 48000.0)


def classify_device(device_name: str) -> DeviceRole:
    lowered = device_name.lower()
    for role, pattern in _ROLE_MATCHERS:
        if pattern.search(lowered):
            return role
    return DeviceRole.CAPTURE


@dataclass
class AudioDevice:
    """An input device as reported by PortAudio, with its selection score."""

    id: int
    name: str
    channels: int
    sample_rate: float
    is_default: bool
    priority: int = 0

    @property
    def is_stereo(self) -> bool:
        return self.channels >= 2

    @property
    def role(self) -> DeviceRole:
        return classify_device(self.name)

    def __str__(self) -> str:
        marker = " (default)" if self.is_default else ""
        return f"[{self.id}] {self.name}{marker} - {self.channels}ch @ {self.sample_rate:.0f}Hz"


def _calculate_priority(device_name: str, is_default: bool, channels: int, sample_rate: float) -> int:
    """Score a device for metering; higher is better.

    The role score (monitor 100, sound server 60) is combined with bonuses
    for stereo input, the system default and a 44.1/48 kHz native rate.
    """
    score = _ROLE_SCORES[classify_device(device_name)]
    if channels >= 2:
        score += STEREO_BONUS
    if is_default:
        score += DEFAULT_BONUS
    if sample_rate in STANDARD_RATES:
        score += STANDARD_RATE_BONUS
    return score


def _should_exclude(device_name: str) -> bool:
    return classify_device(device_name) is DeviceRole.UNSUITABLE


def _from_portaudio(idx: int, info: dict[str, Any], default_input: int) -> AudioDevice:
    channels = int(info["max_input_channels"])
    sample_rate = float(info["default_samplerate"])
    is_default = idx == default_input
    return AudioDevice(
        id=idx,
        name=info["name"],
        channels=channels,
        sample_rate=sample_rate,
        is_default=is_default,
        priority=_calculate_priority(info["name"], is_default, channels, sample_rate),
    )


def list_input_devices() -> list[AudioDevice]:
    """Return every device that can record.

    Raises:
        AudioUnavailableError: If PortAudio cannot be loaded
    """
    sd = load_sounddevice()
    default_input = sd.default.device[0]
    return [
        _from_portaudio(idx, info, default_input)
        for idx, info in enumerate(sd.query_devices())  # type: ignore[arg-type]
        if info["max_input_channels"] > 0
    ]


def select_best_device(devices: list[AudioDevice] | None = None) -> AudioDevice:
    """Pick the device to meter.

    Unsuitable devices are skipped unless nothing else is available. Ties go
    to the lowest device id.

    Args:
        devices: Candidates; queried from the system when omitted

    Raises:
        DeviceNotFoundError: If there are no input devices at all
    """
    if devices is None:
        devices = list_input_devices()
    if not devices:
        raise DeviceNotFoundError("No audio input devices found")

    candidates = [d for d in devices if not _should_exclude(d.name)] or devices
    return min(candidates, key=lambda d: (-d.priority, d.id))


def get_device_by_id(device_id: int) -> AudioDevice:
    """Look up one input device.

    Raises:
        DeviceNotFoundError: If the id is unknown or the device cannot record
    """
    sd = load_sounddevice()
    try:
        info = sd.query_devices(device_id)
    except (sd.PortAudioError, ValueError) as e:
        raise DeviceNotFoundError(f"Device {device_id} not found: {e}") from e

    if info["max_input_channels"] <= 0:  # type: ignore[index]
        raise DeviceNotFoundError(f"Device {device_id} is not an input device")
    return _from_portaudio(device_id, info, sd.default.device[0])  # type: ignore[arg-type]
