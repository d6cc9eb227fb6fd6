"""Tests for analyser and channel splitter."""

import numpy as np
import pytest

from stereovu.analyser import Analyser, ChannelSplitter


class TestAnalyserCreation:
    """Tests for Analyser validation."""

    def test_defaults(self):
        analyser = Analyser()
        assert analyser.fft_size == 1024
        assert analyser.frequency_bin_count == 512
        assert analyser.smoothing_time_constant == 0.85

    @pytest.mark.parametrize("size", [16, 1000, 65536])
    def test_invalid_fft_size(self, size):
        with pytest.raises(ValueError, match="power of two"):
            Analyser(fft_size=size)

    def test_invalid_smoothing(self):
        with pytest.raises(ValueError):
            Analyser(smoothing_time_constant=1.5)


class TestTimeDomain:
    """Tests for time-domain reads."""

    def test_initial_window_is_silent(self):
        analyser = Analyser(fft_size=32)
        out = np.zeros(32, dtype=np.uint8)
        analyser.get_byte_time_domain_data(out)
        assert np.all(out == 128)

    def test_byte_scaling(self):
        analyser = Analyser(fft_size=32)
        analyser.write(np.array([-1.0, 0.0, 0.5, 1.0, 2.0], dtype=np.float32))
        out = np.zeros(5, dtype=np.uint8)
        analyser.get_byte_time_domain_data(out)
        assert out.tolist() == [0, 128, 192, 255, 255]

    def test_ring_buffer_wraps(self):
        """Test the window holds the newest samples in order."""
        analyser = Analyser(fft_size=32)
        analyser.write(np.full(20, 0.5, dtype=np.float32))
        analyser.write(np.full(20, -0.5, dtype=np.float32))

        out = np.zeros(32, dtype=np.float32)
        analyser.get_float_time_domain_data(out)
        assert np.all(out[:12] == 0.5)
        assert np.all(out[12:] == -0.5)

    def test_oversized_write_keeps_tail(self):
        analyser = Analyser(fft_size=32)
        analyser.write(np.arange(100, dtype=np.float32) / 100)

        out = np.zeros(32, dtype=np.float32)
        analyser.get_float_time_domain_data(out)
        assert out[-1] == pytest.approx(0.99)
        assert out[0] == pytest.approx(0.68)

    def test_disconnected_ignores_writes(self):
        analyser = Analyser(fft_size=32)
        analyser.disconnect()
        analyser.write(np.ones(32, dtype=np.float32))

        out = np.zeros(32, dtype=np.uint8)
        analyser.get_byte_time_domain_data(out)
        assert np.all(out == 128)
        assert analyser.connected is False

    def test_reset(self):
        analyser = Analyser(fft_size=32)
        analyser.write(np.ones(32, dtype=np.float32))
        analyser.reset()

        out = np.zeros(32, dtype=np.float32)
        analyser.get_float_time_domain_data(out)
        assert np.all(out == 0.0)


class TestFrequencyDomain:
    """Tests for the smoothed spectrum."""

    def test_peak_bin(self):
        """Test a sine that fits the window peaks at its bin."""
        analyser = Analyser(fft_size=256, smoothing_time_constant=0.0)
        t = np.arange(256) / 256
        analyser.write(np.sin(2 * np.pi * 16 * t).astype(np.float32))

        out = np.zeros(analyser.frequency_bin_count, dtype=np.float32)
        analyser.get_float_frequency_data(out)
        assert int(np.argmax(out)) == 16

    def test_smoothing_lags_new_signal(self):
        t = np.arange(256) / 256
        tone = np.sin(2 * np.pi * 16 * t).astype(np.float32)
        fast = Analyser(fft_size=256, smoothing_time_constant=0.0)
        slow = Analyser(fft_size=256, smoothing_time_constant=0.85)
        fast.write(tone)
        slow.write(tone)

        fast_out = np.zeros(128, dtype=np.float32)
        slow_out = np.zeros(128, dtype=np.float32)
        fast.get_float_frequency_data(fast_out)
        slow.get_float_frequency_data(slow_out)
        assert slow_out[16] < fast_out[16]

    def test_byte_frequency_range(self):
        analyser = Analyser(fft_size=64)
        analyser.write(np.random.default_rng(1).uniform(-1, 1, 64).astype(np.float32))
        out = np.zeros(32, dtype=np.uint8)
        analyser.get_byte_frequency_data(out)
        assert out.dtype == np.uint8
        assert out.max() > 0


class TestChannelSplitter:
    """Tests for ChannelSplitter routing."""

    def test_stereo_routing(self):
        splitter = ChannelSplitter(2)
        left, right = Analyser(fft_size=32), Analyser(fft_size=32)
        splitter.connect(left, 0)
        splitter.connect(right, 1)

        block = np.zeros((32, 2), dtype=np.float32)
        block[:, 0] = 0.5
        block[:, 1] = -0.5
        splitter.process(block)

        out = np.zeros(32, dtype=np.float32)
        left.get_float_time_domain_data(out)
        assert np.all(out == 0.5)
        right.get_float_time_domain_data(out)
        assert np.all(out == -0.5)

    def test_mono_block_leaves_second_output_silent(self):
        splitter = ChannelSplitter(2)
        left, right = Analyser(fft_size=32), Analyser(fft_size=32)
        splitter.connect(left, 0)
        splitter.connect(right, 1)

        splitter.process(np.full(32, 0.25, dtype=np.float32))

        out = np.zeros(32, dtype=np.uint8)
        left.get_byte_time_domain_data(out)
        assert np.all(out == 160)
        right.get_byte_time_domain_data(out)
        assert np.all(out == 128)

    def test_invalid_output(self):
        splitter = ChannelSplitter(2)
        with pytest.raises(IndexError):
            splitter.connect(Analyser(fft_size=32), 2)

    def test_disconnect(self):
        splitter = ChannelSplitter(2)
        analyser = Analyser(fft_size=32)
        splitter.connect(analyser, 0)
        splitter.disconnect()
        splitter.process(np.ones((32, 2), dtype=np.float32))

        out = np.zeros(32, dtype=np.uint8)
        analyser.get_byte_time_domain_data(out)
        assert np.all(out == 128)
