from __future__ import annotations

import sys
import threading
import types
from typing import Callable, Optional

import pytest

from catfish.services.audio_utils import read_wav_header
from catfish.services.recording import (
    RecordingController,
    RecordingOutcome,
    SoundDeviceSource,
)


class FakeSource:
    def __init__(self, *, fail_on_start: bool = False) -> None:
        self.on_chunk: Optional[Callable[[bytes], None]] = None
        self.start_calls = 0
        self.stop_calls = 0
        self._fail_on_start = fail_on_start

    def start(self, on_chunk: Callable[[bytes], None]) -> None:
        self.start_calls += 1
        if self._fail_on_start:
            raise OSError("no input device")
        self.on_chunk = on_chunk

    def stop(self) -> None:
        self.stop_calls += 1

    def emit(self, chunk: bytes) -> None:
        assert self.on_chunk is not None
        self.on_chunk(chunk)


def test_start_then_stop_returns_concatenated_audio() -> None:
    source = FakeSource()
    controller = RecordingController(source, sample_rate=16_000, channels=1)

    started = controller.start()
    source.emit(b"\x01\x00")
    source.emit(b"\x02\x00\x03\x00")
    stopped = controller.stop()

    assert started.outcome == RecordingOutcome.STARTED
    assert started.ok
    assert stopped.outcome == RecordingOutcome.STOPPED_WITH_DATA
    assert stopped.pcm == b"\x01\x00\x02\x00\x03\x00"
    assert stopped.has_audio
    assert not controller.is_recording
    assert source.stop_calls == 1


def test_second_start_is_reported_not_raised() -> None:
    source = FakeSource()
    controller = RecordingController(source)

    controller.start()
    again = controller.start()

    assert again.outcome == RecordingOutcome.ALREADY_RECORDING
    assert not again.ok
    assert source.start_calls == 1
    assert controller.is_recording


def test_stop_without_recording_is_reported_not_raised() -> None:
    source = FakeSource()
    controller = RecordingController(source)

    result = controller.stop()

    assert result.outcome == RecordingOutcome.NOT_RECORDING
    assert not result.ok
    assert source.stop_calls == 0


def test_stop_without_chunks_is_empty() -> None:
    controller = RecordingController(FakeSource())

    controller.start()
    result = controller.stop()

    assert result.outcome == RecordingOutcome.STOPPED_EMPTY
    assert result.ok
    assert result.pcm == b""
    assert not result.has_audio


def test_chunks_outside_a_session_are_dropped() -> None:
    source = FakeSource()
    controller = RecordingController(source)

    controller.feed(b"\xff\xff")
    controller.start()
    source.emit(b"\x01\x00")
    controller.stop()
    controller.feed(b"\x02\x00")
    controller.start()
    source.emit(b"\x03\x00")
    result = controller.stop()

    assert result.pcm == b"\x03\x00"


def test_failed_source_start_leaves_controller_idle() -> None:
    controller = RecordingController(FakeSource(fail_on_start=True))

    with pytest.raises(OSError):
        controller.start()

    assert not controller.is_recording
    assert controller.stop().outcome == RecordingOutcome.NOT_RECORDING


def test_result_encodes_wav_with_controller_format() -> None:
    source = FakeSource()
    controller = RecordingController(source, sample_rate=8_000, channels=2)

    controller.start()
    source.emit(b"\x00\x01\x02\x03" * 8_000)
    result = controller.stop()

    header = read_wav_header(result.to_wav())
    assert header.sample_rate == 8_000
    assert header.channels == 2
    assert header.data_size == 32_000
    assert result.duration_seconds == pytest.approx(1.0)
    assert result.to_data_url().startswith("data:audio/wav;base64,")


def test_controller_rejects_invalid_format() -> None:
    with pytest.raises(ValueError):
        RecordingController(FakeSource(), sample_rate=0)
    with pytest.raises(ValueError):
        RecordingController(FakeSource(), channels=0)


def test_sounddevice_source_streams_raw_int16(monkeypatch: pytest.MonkeyPatch) -> None:
    created: dict = {}

    class FakeStream:
        def __init__(self, **kwargs) -> None:  # noqa: ANN003
            created.update(kwargs)
            self.started = False
            self.closed = False

        def start(self) -> None:
            self.started = True

        def stop(self) -> None:
            self.started = False

        def close(self) -> None:
            self.closed = True

    fake_module = types.SimpleNamespace(RawInputStream=FakeStream)
    monkeypatch.setitem(sys.modules, "sounddevice", fake_module)

    received: list[bytes] = []
    source = SoundDeviceSource(sample_rate=16_000, channels=1)
    source.start(received.append)
    created["callback"](memoryview(b"\x01\x00\x02\x00"), 2, None, None)
    source.stop()

    assert created["samplerate"] == 16_000
    assert created["channels"] == 1
    assert created["dtype"] == "int16"
    assert received == [b"\x01\x00\x02\x00"]


class SlowStartSource:
    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self.running = False

    def start(self, on_chunk: Callable[[bytes], None]) -> None:
        _ = on_chunk
        self.entered.set()
        assert self.release.wait(timeout=5)
        self.running = True

    def stop(self) -> None:
        self.running = False


def test_stop_during_slow_start_waits_and_releases_the_source() -> None:
    source = SlowStartSource()
    controller = RecordingController(source)
    results: dict[str, RecordingOutcome] = {}
    stopped = threading.Event()

    def _start() -> None:
        results["start"] = controller.start().outcome

    def _stop() -> None:
        results["stop"] = controller.stop().outcome
        stopped.set()

    starter = threading.Thread(target=_start)
    starter.start()
    assert source.entered.wait(timeout=5)
    stopper = threading.Thread(target=_stop)
    stopper.start()

    assert not stopped.wait(timeout=0.1)
    source.release.set()
    starter.join(timeout=5)
    stopper.join(timeout=5)

    assert results == {
        "start": RecordingOutcome.STARTED,
        "stop": RecordingOutcome.STOPPED_EMPTY,
    }
    assert not source.running
    assert not controller.is_recording
