"""stereovu - Stereo VU metering with analog needle ballistics."""

from stereovu.analyser import Analyser, ChannelSplitter
from stereovu.audio_meter import LevelState, ballistic_step, process_frame, rms_from_bytes
from stereovu.config import Settings, get_settings
from stereovu.devices import AudioDevice, list_input_devices, select_best_device
from stereovu.exceptions import (
    AudioUnavailableError,
    ConfigError,
    DeviceError,
    DeviceNotFoundError,
    GraphConstructionError,
    SourceError,
    StereoVUError,
)
from stereovu.extractor import LevelExtractor
from stereovu.needle import NeedleRenderer, PeakDetector, PeakIndicator, PeakState, needle_angle
from stereovu.scheduler import FrameScheduler
from stereovu.session import AudioSession, SessionState
from stereovu.sources import AudioSource, DeviceSource, FileSource

__version__ = "0.1.0"

__all__ = [
    "Analyser",
    "AudioDevice",
    "AudioSession",
    "AudioSource",
    "AudioUnavailableError",
    "ChannelSplitter",
    "ConfigError",
    "DeviceError",
    "DeviceNotFoundError",
    "DeviceSource",
    "FileSource",
    "FrameScheduler",
    "GraphConstructionError",
    "LevelExtractor",
    "LevelState",
    "NeedleRenderer",
    "PeakDetector",
    "PeakIndicator",
    "PeakState",
    "SessionState",
    "Settings",
    "SourceError",
    "StereoVUError",
    "ballistic_step",
    "get_settings",
    "list_input_devices",
    "needle_angle",
    "process_frame",
    "rms_from_bytes",
    "select_best_device",
]
