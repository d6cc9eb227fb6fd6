"""Tests for device detection module."""

from unittest.mock import MagicMock, patch

import pytest

from stereovu.devices import (
    AudioDevice,
    DeviceRole,
    _calculate_priority,
    _should_exclude,
    classify_device,
    get_device_by_id,
    list_input_devices,
    select_best_device,
)
from stereovu.exceptions import DeviceNotFoundError


def make_device(id: int, name: str, channels: int = 2, is_default: bool = False) -> AudioDevice:
    return AudioDevice(
        id=id,
        name=name,
        channels=channels,
        sample_rate=48000.0,
        is_default=is_default,
        priority=_calculate_priority(name, is_default, channels, 48000.0),
    )


@pytest.fixture
def mock_sd():
    sd = MagicMock()
    sd.PortAudioError = type("PortAudioError", (Exception,), {})
    sd.default.device = (1, 3)
    sd.query_devices.return_value = [
        {"name": "HDA Intel: HDMI 0", "max_input_channels": 0, "default_samplerate": 48000.0},
        {"name": "Built-in Microphone", "max_input_channels": 1, "default_samplerate": 48000.0},
        {"name": "Monitor of Built-in Audio", "max_input_channels": 2, "default_samplerate": 44100.0},
    ]
    with patch("stereovu.devices.load_sounddevice", return_value=sd):
        yield sd


class TestPriorityCalculation:
    """Tests for device priority calculation."""

    def test_monitor_source_highest(self):
        monitor = _calculate_priority("Monitor of Built-in Audio", False, 2, 48000.0)
        mic = _calculate_priority("Built-in Microphone", True, 1, 48000.0)
        assert monitor > mic

    def test_stereo_bonus(self):
        assert _calculate_priority("Mic", False, 2, 48000.0) > _calculate_priority("Mic", False, 1, 48000.0)

    def test_sound_server_bonus(self):
        assert _calculate_priority("pipewire", False, 2, 48000.0) > _calculate_priority("USB Mic", False, 2, 48000.0)

    def test_default_device_bonus(self):
        assert _calculate_priority("Mic", True, 1, 48000.0) > _calculate_priority("Mic", False, 1, 48000.0)

    def test_standard_sample_rate_bonus(self):
        priority_48k = _calculate_priority("Mic", False, 1, 48000.0)
        priority_44k = _calculate_priority("Mic", False, 1, 44100.0)
        priority_96k = _calculate_priority("Mic", False, 1, 96000.0)
        assert priority_48k == priority_44k
        assert priority_48k > priority_96k


class TestDeviceExclusion:
    """Tests for device exclusion."""

    @pytest.mark.parametrize("name", ["HDMI Output", "Digital Output", "SPDIF In"])
    def test_excluded_devices(self, name: str):
        assert _should_exclude(name) is True

    @pytest.mark.parametrize("name", ["Monitor of Speakers", "Loopback Audio", "Built-in Microphone"])
    def test_included_devices(self, name: str):
        assert _should_exclude(name) is False


class TestDeviceRoles:
    """Tests for name-based device roles."""

    @pytest.mark.parametrize(
        ("name", "role"),
        [
            ("Monitor of Built-in Audio", DeviceRole.MONITOR),
            ("Stereo Mix (Realtek)", DeviceRole.MONITOR),
            ("BlackHole 2ch", DeviceRole.MONITOR),
            ("pipewire", DeviceRole.SERVER),
            ("pulse", DeviceRole.SERVER),
            ("HDMI Output", DeviceRole.UNSUITABLE),
            ("USB Microphone", DeviceRole.CAPTURE),
        ],
    )
    def test_classify(self, name: str, role: DeviceRole):
        assert classify_device(name) is role

    def test_monitor_of_hdmi_sink_is_monitor(self):
        assert classify_device("Monitor of HDA Intel HDMI") is DeviceRole.MONITOR
        assert make_device(7, "Monitor of HDA Intel HDMI").role is DeviceRole.MONITOR


class TestDeviceSelection:
    """Tests for device selection."""

    def test_prefers_monitor(self):
        devices = [
            make_device(0, "Built-in Microphone", channels=1, is_default=True),
            make_device(1, "Monitor of Built-in Audio"),
        ]
        assert select_best_device(devices).id == 1

    def test_falls_back_to_excluded(self):
        devices = [make_device(4, "HDMI Input")]
        assert select_best_device(devices).id == 4

    def test_tie_breaks_on_id(self):
        devices = [make_device(3, "Mic"), make_device(2, "Mic")]
        assert select_best_device(devices).id == 2

    def test_no_devices_raises(self):
        with pytest.raises(DeviceNotFoundError):
            select_best_device([])

    def test_str(self):
        device = make_device(1, "Monitor", is_default=True)
        assert str(device) == "[1] Monitor (default) - 2ch @ 48000Hz"
        assert device.is_stereo


class TestQueries:
    """Tests for sounddevice queries."""

    def test_list_skips_output_only(self, mock_sd):
        devices = list_input_devices()
        assert [d.id for d in devices] == [1, 2]
        assert devices[0].is_default

    def test_get_device_by_id(self, mock_sd):
        mock_sd.query_devices.return_value = {
            "name": "Monitor of Built-in Audio",
            "max_input_channels": 2,
            "default_samplerate": 44100.0,
        }
        device = get_device_by_id(2)
        assert device.name == "Monitor of Built-in Audio"
        assert device.channels == 2
        mock_sd.query_devices.assert_called_with(2)

    def test_get_output_only_device_raises(self, mock_sd):
        mock_sd.query_devices.return_value = {
            "name": "HDMI",
            "max_input_channels": 0,
            "default_samplerate": 48000.0,
        }
        with pytest.raises(DeviceNotFoundError, match="not an input device"):
            get_device_by_id(0)

    def test_get_unknown_device_raises(self, mock_sd):
        mock_sd.query_devices.side_effect = mock_sd.PortAudioError("bad id")
        with pytest.raises(DeviceNotFoundError):
            get_device_by_id(99)
