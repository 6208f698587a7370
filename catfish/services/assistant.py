from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional, Protocol

from catfish.config import Settings, settings
from catfish.models import AssistantRequest, AssistantResponse, ResponseMetadata, ToolCall
from catfish.services import classifier
from catfish.services.letta import (
    ASSISTANT_MESSAGE,
    REASONING_MESSAGE,
    TOOL_CALL_MESSAGE,
    LettaClient,
    LettaClientConfigError,
    LettaClientError,
    LettaMessage,
)
from catfish.services.ocr import OCRError, OCRResult, perform_ocr
from catfish.services.voice import VoiceService, VoiceServiceError, check_voice_health


logger = logging.getLogger(__name__)

TRANSCRIPTION_FAILED_PLACEHOLDER = "[Audio provided but transcription failed]"
EMPTY_ANSWER_FALLBACK = "I processed your request but couldn't generate a response."
ERROR_ANSWER = (
    "I apologize, but I encountered an error while processing your request. Please try again."
)
DEFAULT_MESSAGE = "I need assistance with my current screen."


class AgentClient(Protocol):
    async def send_message(self, agent_id: str, content: str) -> list[LettaMessage]:
        raise NotImplementedError

    async def list_agents(self) -> list[dict[str, Any]]:
        raise NotImplementedError


OCRFunc = Callable[..., OCRResult]


class AssistantServiceConfigError(RuntimeError):
    """Raised when the assistant cannot be built from configuration."""


def build_user_message(
    *,
    transcript: str,
    screen_text: str,
    clipboard: str,
    analysis: Optional[classifier.ContentAnalysis] = None,
) -> str:
    """Assemble the single text message relayed to the agent.

    The spoken request goes first so the agent treats it as the instruction and
    the screen/clipboard text as supporting context.
    """
    parts: list[str] = []
    if transcript:
        parts.append(f"User's message to you: {transcript}")
    if screen_text:
        parts.append(f'Screen Content (OCR): "{screen_text}"')
    if clipboard:
        parts.append(f'Clipboard Content: "{clipboard}"')
    if not parts:
        return DEFAULT_MESSAGE

    message = "I need help with the following content:\n\n" + "\n\n".join(parts)
    if analysis is not None:
        header = (
            f"Content Type: {analysis.category.value} "
            f"(confidence {analysis.confidence:.2f})\n"
            f"Suggested Actions: {', '.join(analysis.suggested_actions) or 'none'}\n"
            f"{classifier.instructions_for(analysis.category)}"
        )
        message = f"{message}\n\n{header}"
    return message


class AssistantService:
    """Relays screen, voice and clipboard context to a Letta agent."""

    def __init__(
        self,
        *,
        letta: Optional[AgentClient] = None,
        agent_id: Optional[str] = None,
        voice: Optional[VoiceService] = None,
        ocr: Optional[OCRFunc] = None,
        ocr_language: Optional[str] = None,
        config: Optional[Settings] = None,
    ) -> None:
        config = config or settings
        resolved_agent = (agent_id or config.letta_agent_id or "").strip()
        if not resolved_agent:
            raise AssistantServiceConfigError(
                "LETTA_AGENT_ID environment variable is required. Run agent setup first."
            )
        self._agent_id = resolved_agent
        if letta is None:
            try:
                letta = LettaClient(
                    api_key=config.letta_api_key or "",
                    base_url=config.letta_base_url,
                    project=config.letta_project,
                    request_timeout_seconds=config.request_timeout_seconds,
                )
            except LettaClientConfigError as exc:
                raise AssistantServiceConfigError(str(exc)) from exc
        self._letta = letta
        self._voice = voice
        self._ocr = ocr or perform_ocr
        self._ocr_language = ocr_language or config.ocr_language
        logger.info("Assistant initialized with Letta agent %s", self._agent_id)

    @property
    def agent_id(self) -> str:
        return self._agent_id

    async def _extract_screen_text(self, screenshot: Optional[str]) -> str:
        if not screenshot:
            return ""
        try:
            # Tesseract is CPU bound; keep it off the event loop.
            result = await asyncio.to_thread(self._ocr, screenshot, language=self._ocr_language)
        except OCRError as exc:
            logger.warning("Local OCR failed: %s", exc)
            return ""
        logger.info("Local OCR extracted %d characters", len(result.text))
        return result.text

    async def _transcribe(self, audio: Optional[str]) -> str:
        if not audio:
            return ""
        if self._voice is None:
            logger.warning("Audio provided but voice transcription is not configured")
            return TRANSCRIPTION_FAILED_PLACEHOLDER
        try:
            result = await self._voice.transcribe(audio)
        except VoiceServiceError as exc:
            logger.warning("Audio transcription failed: %s", exc)
            return TRANSCRIPTION_FAILED_PLACEHOLDER
        if result.error:
            return TRANSCRIPTION_FAILED_PLACEHOLDER
        logger.info(
            "Audio transcribed: %d characters, confidence %.1f%%",
            len(result.text),
            result.confidence,
        )
        return result.text

    async def process(self, request: AssistantRequest) -> AssistantResponse:
        start = time.perf_counter()
        logger.info(
            "Processing assistant request (screenshot=%s, audio=%s, clipboard=%s)",
            bool(request.screenshot),
            bool(request.audio),
            bool(request.clipboard),
        )

        screen_text = await self._extract_screen_text(request.screenshot)
        transcript = await self._transcribe(request.audio)
        clipboard = request.clipboard or ""
        analysis = classifier.analyze(screen_text, transcript, clipboard)
        message = build_user_message(
            transcript=transcript,
            screen_text=screen_text,
            clipboard=clipboard,
            analysis=analysis,
        )

        try:
            messages = await self._letta.send_message(self._agent_id, message)
        except LettaClientError as exc:
            elapsed = (time.perf_counter() - start) * 1000.0
            logger.error("Assistant request failed after %.0fms: %s", elapsed, exc)
            return AssistantResponse(
                success=False,
                answer=ERROR_ANSWER,
                error=str(exc),
                metadata=ResponseMetadata(processing_time_ms=elapsed),
            )

        answer = ""
        tool_calls: list[ToolCall] = []
        for item in messages:
            if item.message_type == ASSISTANT_MESSAGE:
                answer = item.content or ""
            elif item.message_type == TOOL_CALL_MESSAGE:
                call = item.tool_call or {}
                tool_calls.append(ToolCall(name=call.get("name"), arguments=call.get("arguments")))
            elif item.message_type == REASONING_MESSAGE:
                logger.debug("Agent reasoning: %s", item.reasoning)

        elapsed = (time.perf_counter() - start) * 1000.0
        logger.info(
            "Assistant request completed in %.0fms (%d chars, %d tool calls)",
            elapsed,
            len(answer),
            len(tool_calls),
        )
        return AssistantResponse(
            success=True,
            answer=answer or EMPTY_ANSWER_FALLBACK,
            analysis=analysis.as_dict(),
            tool_calls=tool_calls,
            metadata=ResponseMetadata(
                processing_time_ms=elapsed,
                screen_text_length=len(screen_text),
                transcript_length=len(transcript),
                clipboard_length=len(clipboard),
            ),
        )

    async def check_health(self) -> dict[str, Any]:
        voice_health = await check_voice_health(self._voice)
        try:
            agents = await self._letta.list_agents()
        except LettaClientError as exc:
            return {
                "status": "unhealthy",
                "details": {
                    "letta": "disconnected",
                    "agent": "unknown",
                    "voice": voice_health["details"],
                    "error": str(exc),
                },
            }

        ours = next((agent for agent in agents if agent.get("id") == self._agent_id), None)
        if ours is None:
            return {
                "status": "unhealthy",
                "details": {
                    "letta": "connected",
                    "agent": "not found",
                    "voice": voice_health["details"],
                    "error": f"Agent {self._agent_id} not found",
                },
            }
        return {
            "status": "healthy",
            "details": {
                "letta": "connected",
                "agent": "ready",
                "voice": voice_health["details"],
                "agentName": ours.get("name"),
                "agentId": self._agent_id,
            },
        }

    async def aclose(self) -> None:
        if hasattr(self._letta, "aclose"):
            await self._letta.aclose()  # type: ignore[attr-defined]
        if self._voice is not None:
            await self._voice.aclose()
