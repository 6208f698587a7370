from __future__ import annotations

import logging
import math
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx

from catfish.config import Settings, settings
from catfish.services.audio_utils import decode_audio_data_url


logger = logging.getLogger(__name__)


class VoiceServiceError(RuntimeError):
    """Raised when speech-to-text request/response handling fails."""


class VoiceServiceConfigError(VoiceServiceError):
    """Raised when required transcription configuration is missing."""


@dataclass(slots=True)
class TranscriptionResult:
    text: str
    language: Optional[str] = None
    duration: Optional[float] = None
    confidence: float = 0.0
    error: Optional[str] = None


class TranscriptionClient(Protocol):
    async def transcribe_file(
        self,
        path: Path,
        *,
        model: str,
        language: Optional[str] = None,
        prompt: Optional[str] = None,
    ) -> dict[str, Any]:
        raise NotImplementedError


class GroqTranscriptionClient:
    """HTTP client for Groq's OpenAI-compatible Whisper endpoint."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.groq.com/openai/v1",
        request_timeout_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        normalized_key = (api_key or "").strip()
        if not normalized_key:
            raise VoiceServiceConfigError(
                "GROQ_API_KEY environment variable is required for voice transcription"
            )
        self._url = f"{base_url.rstrip('/')}/audio/transcriptions"
        self._http = httpx.AsyncClient(
            timeout=request_timeout_seconds,
            headers={"Authorization": f"Bearer {normalized_key}", "Accept": "application/json"},
            transport=transport,
        )

    async def transcribe_file(
        self,
        path: Path,
        *,
        model: str,
        language: Optional[str] = None,
        prompt: Optional[str] = None,
    ) -> dict[str, Any]:
        data: dict[str, str] = {
            "model": model,
            "temperature": "0",
            "response_format": "verbose_json",
        }
        if language:
            data["language"] = language
        if prompt:
            data["prompt"] = prompt

        with path.open("rb") as fh:
            files = {"file": (path.name, fh, "application/octet-stream")}
            try:
                response = await self._http.post(self._url, data=data, files=files)
            except httpx.HTTPError as exc:
                raise VoiceServiceError(f"Transcription request failed: {exc}") from exc
        try:
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise VoiceServiceError(
                f"Transcription failed with status {response.status_code}: {response.text[:300]}"
            ) from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise VoiceServiceError("Transcription response was not valid JSON") from exc
        if not isinstance(payload, dict):
            raise VoiceServiceError(f"Expected JSON object from transcription API, got {type(payload)!r}")
        return payload

    async def aclose(self) -> None:
        await self._http.aclose()


def calculate_confidence(payload: dict[str, Any]) -> float:
    """Map mean segment log-probability to a 0-100 confidence score."""
    segments = payload.get("segments") or []
    if not segments:
        return 50.0
    logprobs = []
    for segment in segments:
        value = segment.get("avg_logprob") if isinstance(segment, dict) else None
        logprobs.append(float(value) if value is not None else -1.0)
    mean = sum(logprobs) / len(logprobs)
    return max(0.0, min(100.0, math.exp(mean) * 100.0))


class VoiceService:
    """Transcribes client-recorded audio data URLs."""

    def __init__(
        self,
        *,
        client: Optional[TranscriptionClient] = None,
        model: Optional[str] = None,
        language: Optional[str] = None,
        prompt: Optional[str] = None,
        config: Optional[Settings] = None,
    ) -> None:
        config = config or settings
        self._client = client if client is not None else self._build_default_client(config)
        self._model = model or config.stt_model
        self._language = language if language is not None else config.stt_language
        self._prompt = prompt if prompt is not None else config.stt_prompt
        logger.info("Voice service initialized (model=%s)", self._model)

    @staticmethod
    def _build_default_client(config: Settings) -> GroqTranscriptionClient:
        return GroqTranscriptionClient(
            api_key=config.groq_api_key or "",
            base_url=config.groq_base_url,
            request_timeout_seconds=config.request_timeout_seconds,
        )

    async def transcribe(
        self,
        audio_data: str,
        *,
        language: Optional[str] = None,
        model: Optional[str] = None,
        prompt: Optional[str] = None,
    ) -> TranscriptionResult:
        temp_path: Optional[Path] = None
        try:
            decoded = decode_audio_data_url(audio_data)
            fd, name = tempfile.mkstemp(prefix="catfish-audio-", suffix=f".{decoded.extension}")
            temp_path = Path(name)
            with os.fdopen(fd, "wb") as fh:
                fh.write(decoded.data)

            chosen_model = model or self._model
            logger.info(
                "Starting audio transcription (model=%s, language=%s, bytes=%d)",
                chosen_model,
                language or self._language,
                len(decoded.data),
            )
            payload = await self._client.transcribe_file(
                temp_path,
                model=chosen_model,
                language=language or self._language or None,
                prompt=prompt or self._prompt or None,
            )
        except (VoiceServiceError, ValueError, OSError) as exc:
            logger.error("Audio transcription failed: %s", exc)
            return TranscriptionResult(text="", confidence=0.0, error=str(exc))
        finally:
            if temp_path is not None:
                try:
                    temp_path.unlink()
                except OSError as cleanup_error:
                    logger.warning("Failed to clean up temp file %s: %s", temp_path, cleanup_error)

        text = str(payload.get("text") or "").strip()
        duration = payload.get("duration")
        result = TranscriptionResult(
            text=text,
            language=payload.get("language") or None,
            duration=float(duration) if duration is not None else None,
            confidence=calculate_confidence(payload),
        )
        logger.info(
            "Audio transcription completed (%d chars, confidence %.1f%%)",
            len(result.text),
            result.confidence,
        )
        return result

    async def check_health(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "details": {"groq": "configured", "model": self._model, "apiKey": "present"},
        }

    async def aclose(self) -> None:
        if hasattr(self._client, "aclose"):
            await self._client.aclose()  # type: ignore[attr-defined]


async def check_voice_health(service: Optional[VoiceService]) -> dict[str, Any]:
    """Health details for the voice stack, tolerating a service that failed to build."""
    if service is None:
        return {
            "status": "unhealthy",
            "details": {"groq": "initialization failed", "apiKey": "missing"},
        }
    return await service.check_health()
