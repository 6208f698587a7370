from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from catfish.services.recording import RecordingResult


logger = logging.getLogger(__name__)


class AssistantClientError(RuntimeError):
    """Raised when the local assistant server rejects or fails a request."""


def build_assistant_payload(
    *,
    screenshot: str,
    recording: Optional[RecordingResult] = None,
    clipboard: Optional[str] = None,
) -> dict[str, Any]:
    """Assemble the JSON body for `/api/assistant`.

    Audio is attached only when the recording actually captured samples.
    """
    payload: dict[str, Any] = {
        "screenshot": screenshot,
        "timestamp": int(time.time() * 1000),
    }
    if recording is not None and recording.has_audio:
        payload["audio"] = recording.to_data_url()
    if clipboard:
        payload["clipboard"] = clipboard
    return payload


class AssistantClient:
    """Posts captured context to the local assistant server."""

    def __init__(
        self,
        *,
        base_url: str = "http://localhost:3001",
        token: str,
        timeout_seconds: float = 120.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    def ask(
        self,
        *,
        screenshot: str,
        recording: Optional[RecordingResult] = None,
        clipboard: Optional[str] = None,
    ) -> dict[str, Any]:
        payload = build_assistant_payload(
            screenshot=screenshot, recording=recording, clipboard=clipboard
        )
        try:
            response = self._http.post("/api/assistant", json=payload)
        except httpx.HTTPError as exc:
            raise AssistantClientError(f"Assistant request failed: {exc}") from exc
        if response.is_error:
            raise AssistantClientError(f"Server error: {response.status_code} - {response.text}")
        result = response.json()
        logger.info(
            "Assistant request completed (success=%s, answer=%d chars)",
            result.get("success"),
            len(((result.get("result") or {}).get("answer")) or ""),
        )
        return result

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "AssistantClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        self.close()
