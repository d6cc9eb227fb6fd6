"""Custom exceptions for stereovu."""


class StereoVUError(Exception):
    """Base exception for all stereovu errors."""


class ConfigError(StereoVUError):
    """Configuration-related errors."""


class DeviceError(StereoVUError):
    """Audio device-related errors."""


class DeviceNotFoundError(DeviceError):
    """No suitable audio input device found."""


class DeviceOpenError(DeviceError):
    """Failed to open audio device."""


class AudioError(StereoVUError):
    """Audio graph-related errors."""


class AudioUnavailableError(AudioError):
    """The platform audio API (PortAudio) could not be loaded."""


class GraphConstructionError(AudioError):
    """Failed to build the analysis graph for a source."""


class SourceError(AudioError):
    """Audio source could not be read."""
