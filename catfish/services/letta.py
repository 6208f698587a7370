from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx


class LettaClientError(RuntimeError):
    """Raised when Letta request/response handling fails."""


class LettaClientConfigError(LettaClientError):
    """Raised when required Letta client configuration is missing."""


ASSISTANT_MESSAGE = "assistant_message"
TOOL_CALL_MESSAGE = "tool_call_message"
REASONING_MESSAGE = "reasoning_message"


@dataclass(slots=True)
class LettaMessage:
    """Normalized entry from an agent message response."""

    message_type: str
    content: Optional[str] = None
    reasoning: Optional[str] = None
    tool_call: Optional[dict[str, Any]] = None
    raw: Optional[dict[str, Any]] = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "LettaMessage":
        # REST responses use snake_case; the JS SDK re-exports camelCase.
        message_type = str(data.get("message_type") or data.get("messageType") or "unknown")
        tool_call = data.get("tool_call") or data.get("toolCall")
        return cls(
            message_type=message_type,
            content=_content_text(data.get("content")),
            reasoning=data.get("reasoning"),
            tool_call=tool_call if isinstance(tool_call, dict) else None,
            raw=data,
        )


def _content_text(content: Any) -> Optional[str]:
    if content is None:
        return None
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            str(part.get("text"))
            for part in content
            if isinstance(part, dict) and part.get("text")
        ]
        return "".join(parts)
    return str(content)


class LettaClient:
    """HTTP client for the Letta Cloud agents API."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.letta.com",
        project: Optional[str] = None,
        request_timeout_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        normalized_key = (api_key or "").strip()
        if not normalized_key:
            raise LettaClientConfigError("LETTA_API_KEY environment variable is required")
        self._api_key = normalized_key
        self._project = (project or "").strip() or None
        self._base_url = base_url.rstrip("/")
        # Keep-alive connections reduce TLS/session setup overhead on hot paths.
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=request_timeout_seconds,
            headers=self.headers,
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            http2=True,
            transport=transport,
        )

    @property
    def headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self._project:
            headers["X-Project"] = self._project
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise LettaClientError(f"Letta request failed: {exc}") from exc
        try:
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise LettaClientError(
                f"Letta {method} {path} failed with status {response.status_code}"
            ) from exc
        try:
            return response.json()
        except ValueError as exc:
            raise LettaClientError(f"Letta {method} {path} returned invalid JSON") from exc

    async def send_message(self, agent_id: str, content: str) -> list[LettaMessage]:
        """Send one user message to a stateful agent and return its response messages."""
        body = {"messages": [{"role": "user", "content": content}]}
        data = await self._request("POST", f"/v1/agents/{agent_id}/messages", json=body)
        if not isinstance(data, dict) or not isinstance(data.get("messages"), list):
            raise LettaClientError(f"Letta response missing messages: {data!r}"[:500])
        return [
            LettaMessage.from_payload(item)
            for item in data["messages"]
            if isinstance(item, dict)
        ]

    async def list_agents(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/v1/agents/")
        if not isinstance(data, list):
            raise LettaClientError(f"Expected agent list from Letta, got {type(data)!r}")
        return [agent for agent in data if isinstance(agent, dict)]

    async def aclose(self) -> None:
        """Close persistent HTTP resources used by this client."""
        await self._http.aclose()
