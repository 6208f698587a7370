from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from catfish.services.audio_utils import pcm16le_to_wav, wav_data_url


logger = logging.getLogger(__name__)

ChunkCallback = Callable[[bytes], None]


class RecordingOutcome(str, Enum):
    """Result tags for recording start/stop requests."""

    STARTED = "started"
    ALREADY_RECORDING = "already_recording"
    NOT_RECORDING = "not_recording"
    STOPPED_WITH_DATA = "stopped_with_data"
    STOPPED_EMPTY = "stopped_empty"

    @property
    def is_success(self) -> bool:
        return self in {
            RecordingOutcome.STARTED,
            RecordingOutcome.STOPPED_WITH_DATA,
            RecordingOutcome.STOPPED_EMPTY,
        }


@dataclass(frozen=True, slots=True)
class RecordingResult:
    outcome: RecordingOutcome
    pcm: bytes = b""
    sample_rate: int = 16_000
    channels: int = 1

    @property
    def ok(self) -> bool:
        return self.outcome.is_success

    @property
    def has_audio(self) -> bool:
        return self.outcome == RecordingOutcome.STOPPED_WITH_DATA

    @property
    def duration_seconds(self) -> float:
        frame_bytes = self.channels * 2
        return len(self.pcm) / float(self.sample_rate * frame_bytes)

    def to_wav(self) -> bytes:
        return pcm16le_to_wav(self.pcm, sample_rate=self.sample_rate, channels=self.channels)

    def to_data_url(self) -> str:
        return wav_data_url(self.to_wav())


class AudioSource(Protocol):
    """Push-style audio producer: calls `on_chunk` with raw PCM16LE bytes."""

    def start(self, on_chunk: ChunkCallback) -> None:
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError


class SoundDeviceSource:
    """Microphone capture through a PortAudio raw input stream."""

    def __init__(
        self,
        *,
        sample_rate: int = 16_000,
        channels: int = 1,
        device: Optional[int | str] = None,
        blocksize: int = 0,
    ) -> None:
        self._sample_rate = sample_rate
        self._channels = channels
        self._device = device
        self._blocksize = blocksize
        self._stream: Any = None

    def start(self, on_chunk: ChunkCallback) -> None:
        # PortAudio is loaded lazily so the server runs on hosts without audio drivers.
        import sounddevice as sd

        def _callback(indata, frames, time_info, status) -> None:  # noqa: ANN001
            _ = frames, time_info
            if status:
                logger.warning("Audio input status: %s", status)
            on_chunk(bytes(indata))

        stream = sd.RawInputStream(
            samplerate=self._sample_rate,
            channels=self._channels,
            dtype="int16",
            device=self._device,
            blocksize=self._blocksize,
            callback=_callback,
        )
        stream.start()
        self._stream = stream

    def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        stream.stop()
        stream.close()


class RecordingController:
    """Owns one recording session at a time.

    start -> chunks accumulate via `feed` -> stop returns the concatenated PCM.
    Repeated start or stop calls are no-ops reported through the result outcome.
    """

    def __init__(
        self,
        source: Optional[AudioSource] = None,
        *,
        sample_rate: int = 16_000,
        channels: int = 1,
    ) -> None:
        if sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if channels <= 0:
            raise ValueError("channels must be > 0")
        self._sample_rate = sample_rate
        self._channels = channels
        self._source = source or SoundDeviceSource(sample_rate=sample_rate, channels=channels)
        self._lock = threading.Lock()
        # Serializes start/stop so the source is never stopped mid-start.
        # Separate from `_lock`, which audio callbacks take in `feed`.
        self._control_lock = threading.Lock()
        self._recording = False
        self._chunks: list[bytes] = []

    @property
    def is_recording(self) -> bool:
        with self._lock:
            return self._recording

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def channels(self) -> int:
        return self._channels

    def _result(self, outcome: RecordingOutcome, pcm: bytes = b"") -> RecordingResult:
        return RecordingResult(
            outcome=outcome,
            pcm=pcm,
            sample_rate=self._sample_rate,
            channels=self._channels,
        )

    def start(self) -> RecordingResult:
        with self._control_lock:
            with self._lock:
                if self._recording:
                    logger.info("Recording already in progress")
                    return self._result(RecordingOutcome.ALREADY_RECORDING)
                self._chunks = []
                self._recording = True
            try:
                self._source.start(self.feed)
            except Exception:
                with self._lock:
                    self._recording = False
                raise
        logger.info(
            "Recording started (%d Hz, %d channel(s))", self._sample_rate, self._channels
        )
        return self._result(RecordingOutcome.STARTED)

    def feed(self, chunk: bytes) -> None:
        if not chunk:
            return
        with self._lock:
            if self._recording:
                self._chunks.append(bytes(chunk))

    def stop(self) -> RecordingResult:
        with self._control_lock:
            with self._lock:
                if not self._recording:
                    logger.info("Stop requested but no recording is active")
                    return self._result(RecordingOutcome.NOT_RECORDING)
                self._recording = False
                chunks, self._chunks = self._chunks, []
            self._source.stop()

        pcm = b"".join(chunks)
        if not pcm:
            logger.info("Recording stopped without audio")
            return self._result(RecordingOutcome.STOPPED_EMPTY)
        logger.info("Recording stopped with %d bytes of audio", len(pcm))
        return self._result(RecordingOutcome.STOPPED_WITH_DATA, pcm)
