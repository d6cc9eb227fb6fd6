"""Access to the platform audio API.

``sounddevice`` loads the PortAudio shared library at import time and raises
``OSError`` when it is missing, so it is only imported on first use.
"""

import logging
from types import ModuleType

from stereovu.exceptions import AudioUnavailableError

logger = logging.getLogger(__name__)

_sounddevice: ModuleType | None = None


def load_sounddevice() -> ModuleType:
    """Import and return the ``sounddevice`` module.

    Raises:
        AudioUnavailableError: If PortAudio cannot be loaded
    """
    global _sounddevice
    if _sounddevice is None:
        try:
            import sounddevice
        except (ImportError, OSError) as e:
            raise AudioUnavailableError(f"PortAudio is not available: {e}") from e
        _sounddevice = sounddevice
        logger.debug(f"Loaded sounddevice {sounddevice.__version__}")
    return _sounddevice
