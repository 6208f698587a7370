from __future__ import annotations

import re
import time
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


_IMAGE_DATA_URL_RE = re.compile(r"^data:image/[a-z]+;base64,")
_AUDIO_DATA_URL_RE = re.compile(r"^data:audio/[a-z]+;base64,")


def _now_ms() -> float:
  return time.time() * 1000.0


class AssistantRequest(BaseModel):
  screenshot: Optional[str] = None
  audio: Optional[str] = None
  clipboard: Optional[str] = None
  timestamp: float = Field(default_factory=_now_ms)

  @field_validator("screenshot")
  @classmethod
  def _check_screenshot(cls, value: Optional[str]) -> Optional[str]:
    if value and not _IMAGE_DATA_URL_RE.match(value):
      raise ValueError("Screenshot must be a valid base64 image data URL")
    return value or None

  @field_validator("audio")
  @classmethod
  def _check_audio(cls, value: Optional[str]) -> Optional[str]:
    if value and not _AUDIO_DATA_URL_RE.match(value):
      raise ValueError("Audio must be a valid base64 audio data URL")
    return value or None

  @field_validator("clipboard")
  @classmethod
  def _check_clipboard(cls, value: Optional[str]) -> Optional[str]:
    return value or None

  @field_validator("timestamp", mode="before")
  @classmethod
  def _check_timestamp(cls, value: Any) -> Any:
    if value is None or value == "" or value == 0:
      return _now_ms()
    try:
      number = float(value)
    except (TypeError, ValueError) as exc:
      raise ValueError("Timestamp must be a valid positive number") from exc
    if number <= 0:
      raise ValueError("Timestamp must be a valid positive number")
    return number


class ResponseMetadata(BaseModel):
  processing_time_ms: float = 0.0
  screen_text_length: int = 0
  transcript_length: int = 0
  clipboard_length: int = 0
  timestamp: float = Field(default_factory=_now_ms)


class ToolCall(BaseModel):
  name: Optional[str] = None
  arguments: Optional[Any] = None


class AssistantResponse(BaseModel):
  success: bool
  answer: str
  metadata: ResponseMetadata = Field(default_factory=ResponseMetadata)
  analysis: Optional[dict[str, Any]] = None
  tool_calls: list[ToolCall] = Field(default_factory=list)
  error: Optional[str] = None


class ConfigUpdate(BaseModel):
  port: Optional[int] = Field(None, ge=1, le=65_535)
  lettaProject: Optional[str] = None


class ApiKeyValidation(BaseModel):
  apiKey: Optional[str] = None
