from __future__ import annotations

import base64
import re
import struct
from dataclasses import dataclass


WAV_HEADER_SIZE = 44
_MAX_RIFF_SIZE = 0xFFFFFFFF
# block_align (channels * 2) is a 16-bit header field.
_MAX_CHANNELS = 0xFFFF // 2
_AUDIO_DATA_URL_RE = re.compile(r"^data:(audio/[a-z0-9.+-]+)(?:;[^,]*)?;base64,", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class WavHeader:
    """Decoded fields of a canonical 44-byte PCM WAV header."""

    chunk_size: int
    audio_format: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int


@dataclass(frozen=True, slots=True)
class DecodedAudio:
    data: bytes
    mime_type: str
    extension: str


def pcm16le_to_wav(
    pcm: bytes,
    *,
    sample_rate: int = 16_000,
    channels: int = 1,
) -> bytes:
    """Wrap raw PCM16 little-endian audio in a minimal WAV container.

    The payload is copied through untouched. A buffer whose length is not a
    multiple of ``channels * 2`` keeps its trailing partial frame; callers own
    frame alignment.
    """
    if sample_rate <= 0:
        raise ValueError("sample_rate must be > 0")
    if channels <= 0:
        raise ValueError("channels must be > 0")
    if channels > _MAX_CHANNELS:
        raise ValueError(f"channels must be <= {_MAX_CHANNELS}")

    byte_rate = sample_rate * channels * 2
    block_align = channels * 2
    if byte_rate > _MAX_RIFF_SIZE:
        raise ValueError(f"byte rate {byte_rate} does not fit a WAV header")
    data_size = len(pcm)
    fmt_chunk_size = 16
    riff_chunk_size = 4 + (8 + fmt_chunk_size) + (8 + data_size)
    if riff_chunk_size > _MAX_RIFF_SIZE:
        raise ValueError(f"PCM payload too large for a WAV container ({data_size} bytes)")

    header = b"RIFF" + struct.pack("<I", riff_chunk_size) + b"WAVE"
    header += b"fmt " + struct.pack(
        "<IHHIIHH",
        fmt_chunk_size,
        1,  # PCM format
        channels,
        sample_rate,
        byte_rate,
        block_align,
        16,  # bits per sample
    )
    header += b"data" + struct.pack("<I", data_size)
    return header + bytes(pcm)


def read_wav_header(wav: bytes) -> WavHeader:
    """Parse the header written by `pcm16le_to_wav`."""
    if len(wav) < WAV_HEADER_SIZE:
        raise ValueError(f"WAV buffer shorter than header ({len(wav)} bytes)")
    if wav[0:4] != b"RIFF" or wav[8:12] != b"WAVE":
        raise ValueError("Not a RIFF/WAVE buffer")
    if wav[12:16] != b"fmt " or wav[36:40] != b"data":
        raise ValueError("Unsupported WAV chunk layout")

    (chunk_size,) = struct.unpack_from("<I", wav, 4)
    (
        _fmt_size,
        audio_format,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
    ) = struct.unpack_from("<IHHIIHH", wav, 16)
    (data_size,) = struct.unpack_from("<I", wav, 40)
    return WavHeader(
        chunk_size=chunk_size,
        audio_format=audio_format,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits_per_sample,
        data_size=data_size,
    )


def wav_data_url(wav: bytes) -> str:
    return "data:audio/wav;base64," + base64.b64encode(wav).decode("ascii")


def pcm16le_to_wav_data_url(pcm: bytes, *, sample_rate: int, channels: int = 1) -> str:
    """Encode PCM as WAV and wrap it as an inline data URL for HTTP transport."""
    return wav_data_url(pcm16le_to_wav(pcm, sample_rate=sample_rate, channels=channels))


def _extension_for(mime_type: str) -> str:
    # Whisper endpoints sniff by filename; anything unrecognized goes up as wav.
    for marker in ("webm", "mp3", "m4a"):
        if marker in mime_type:
            return marker
    return "wav"


def decode_audio_data_url(value: str) -> DecodedAudio:
    """Decode a ``data:audio/...;base64,`` URL (or bare base64) into bytes."""
    raw = (value or "").strip()
    mime_type = "audio/wav"
    match = _AUDIO_DATA_URL_RE.match(raw)
    if match:
        mime_type = match.group(1).lower()
        raw = raw[match.end():]
    elif raw.startswith("data:"):
        raise ValueError("Audio data URL must be base64 encoded audio")
    try:
        data = base64.b64decode(raw, validate=True)
    except ValueError as exc:
        raise ValueError(f"Invalid base64 audio payload: {exc}") from exc
    return DecodedAudio(data=data, mime_type=mime_type, extension=_extension_for(mime_type))
