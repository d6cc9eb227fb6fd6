"""Tests for AudioSession lifecycle."""

import numpy as np
import pytest

from conftest import FakeSource, sine_block
from stereovu.config import Settings
from stereovu.exceptions import AudioUnavailableError, GraphConstructionError
from stereovu.session import AudioSession, SessionState


class TestBuild:
    """Tests for graph construction."""

    def test_build_starts_stream(self, source, settings):
        session = AudioSession(source, settings)
        session.build()
        assert session.state is SessionState.RUNNING
        assert source.stream.started
        assert source.attached

    def test_build_is_idempotent(self, source, settings):
        session = AudioSession(source, settings)
        session.build()
        session.build()
        assert len(source.streams) == 1

    def test_analysers_before_build(self, source, settings):
        session = AudioSession(source, settings)
        with pytest.raises(GraphConstructionError):
            session.analysers

    def test_source_already_attached(self, source, settings):
        first = AudioSession(source, settings)
        first.build()
        second = AudioSession(source, settings)
        with pytest.raises(GraphConstructionError):
            second.build()

        # Failed session must not detach the first one's tap
        second.close()
        assert source.attached

    def test_stream_error_propagates(self, settings):
        source = FakeSource(error=AudioUnavailableError("no PortAudio"))
        session = AudioSession(source, settings)
        with pytest.raises(AudioUnavailableError):
            session.build()

    def test_unexpected_error_becomes_graph_error(self, settings):
        source = FakeSource(error=RuntimeError("device busy"))
        session = AudioSession(source, settings)
        with pytest.raises(GraphConstructionError, match="device busy"):
            session.build()


class TestRead:
    """Tests for per-frame sampling."""

    def test_read_both_channels(self, source, settings):
        session = AudioSession(source, settings)
        session.build()
        block = sine_block(frames=256, amplitude=0.5)
        block[:, 1] = 0.0
        source.push(block)

        buf_left, buf_right = session.allocate_buffers()
        session.read(buf_left, buf_right)
        assert buf_left.size == settings.analyser.fft_size
        assert buf_left.min() < 128 < buf_left.max()
        assert np.all(buf_right == 128)


class TestGesture:
    """Tests for gesture-gated start."""

    def test_waits_for_gesture(self, source):
        settings = Settings(audio={"require_gesture": True}, analyser={"fft_size": 256})
        session = AudioSession(source, settings)
        session.build()
        assert session.state is SessionState.SUSPENDED
        assert session.awaiting_gesture
        assert not source.stream.started

        session.notify_gesture()
        assert session.state is SessionState.RUNNING
        assert source.stream.start_calls == 1

    def test_gesture_is_one_shot(self, source):
        settings = Settings(audio={"require_gesture": True}, analyser={"fft_size": 256})
        session = AudioSession(source, settings)
        session.build()
        session.notify_gesture()
        session.notify_gesture()
        assert source.stream.start_calls == 1
        assert not session.awaiting_gesture

    def test_gesture_ignored_without_gate(self, source, settings):
        session = AudioSession(source, settings)
        session.build()
        session.notify_gesture()
        assert source.stream.start_calls == 1


class TestClose:
    """Tests for teardown."""

    def test_close_releases_everything(self, source, settings):
        session = AudioSession(source, settings)
        session.build()
        left, right = session.analysers
        session.close()

        assert session.state is SessionState.CLOSED
        assert source.stream.stopped
        assert source.stream.closed
        assert not source.attached
        assert not left.connected
        assert not right.connected

    def test_close_twice(self, source, settings):
        session = AudioSession(source, settings)
        session.build()
        session.close()
        session.close()
        assert session.state is SessionState.CLOSED

    def test_closed_session_cannot_rebuild(self, source, settings):
        session = AudioSession(source, settings)
        session.close()
        with pytest.raises(GraphConstructionError):
            session.build()

    def test_context_manager(self, source, settings):
        with AudioSession(source, settings) as session:
            assert session.is_running
        assert session.state is SessionState.CLOSED
        assert not source.attached
