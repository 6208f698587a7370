from __future__ import annotations

import json
import logging
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from catfish import __version__
from catfish.config import Settings, configure_logging, get_settings, mask_secret
from catfish.models import ApiKeyValidation, AssistantRequest, ConfigUpdate
from catfish.services.assistant import AssistantService, AssistantServiceConfigError
from catfish.services.voice import VoiceService, VoiceServiceConfigError


logger = logging.getLogger(__name__)

APP_NAME = "Catfish Server"
LETTA_KEY_PREFIX = "sk-let-"


def _timestamp() -> str:
  return datetime.now(timezone.utc).isoformat()


def _configured(value: Optional[str]) -> str:
  return "configured" if (value or "").strip() else "missing"


def _cors_origins(settings: Settings) -> list[str]:
  if settings.is_production:
    return ["app://catfish-assistant"]
  return ["http://localhost:3000", "http://127.0.0.1:3000"]


def _build_assistant(settings: Settings) -> AssistantService:
  voice: Optional[VoiceService] = None
  try:
    voice = VoiceService(config=settings)
  except VoiceServiceConfigError as exc:
    logger.warning("Voice transcription disabled: %s", exc)
  return AssistantService(voice=voice, config=settings)


class BodySizeLimitMiddleware:
  """Rejects request bodies over `max_bytes` as they stream in.

  Covers chunked uploads that carry no Content-Length header.
  """

  def __init__(self, app: ASGIApp, *, max_bytes: int) -> None:
    self.app = app
    self.max_bytes = max_bytes

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return
    received = 0

    async def limited_receive() -> Message:
      nonlocal received
      message = await receive()
      if message["type"] == "http.request":
        received += len(message.get("body", b""))
        if received > self.max_bytes:
          raise HTTPException(
            status_code=413, detail=f"Request body exceeds {self.max_bytes} bytes"
          )
      return message

    await self.app(scope, limited_receive, send)


def log_configuration_status(settings: Settings) -> None:
  logger.info("Configuration status:")
  logger.info("APP_ENV: %s", settings.environment)
  logger.info("PORT: %s", settings.port)
  logger.info("LOG_LEVEL: %s", settings.log_level)
  if settings.letta_api_key:
    logger.info("LETTA_API_KEY: found (%s)", mask_secret(settings.letta_api_key))
  else:
    logger.error("LETTA_API_KEY: missing - assistant requests will fail")
  if settings.letta_agent_id:
    logger.info("LETTA_AGENT_ID: found (%s)", settings.letta_agent_id)
  else:
    logger.error("LETTA_AGENT_ID: missing - assistant requests will fail")
  logger.info("LETTA_PROJECT: %s", settings.letta_project or "default")
  if settings.groq_api_key:
    logger.info("GROQ_API_KEY: found (%s)", mask_secret(settings.groq_api_key))
  else:
    logger.warning("GROQ_API_KEY: missing - voice transcription disabled")
  if not (Path.cwd() / ".env").exists():
    logger.warning(".env file not found - using process environment only")


def create_app(
  settings: Optional[Settings] = None,
  *,
  assistant: Optional[AssistantService] = None,
) -> FastAPI:
  settings = settings or get_settings()
  configure_logging(settings.log_level)

  @asynccontextmanager
  async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    log_configuration_status(settings)
    if app.state.assistant is not None:
      health = await app.state.assistant.check_health()
      if health["status"] == "healthy":
        logger.info(
          "Letta Cloud connected (agent %s)", health["details"].get("agentName")
        )
      else:
        logger.error("Letta Cloud check failed: %s", health["details"].get("error"))
    yield
    if app.state.assistant is not None:
      await app.state.assistant.aclose()
    logger.info("Server stopped")

  app = FastAPI(title=APP_NAME, version=__version__, lifespan=lifespan)
  app.state.settings = settings
  app.state.started_at = time.monotonic()

  if assistant is None:
    try:
      assistant = _build_assistant(settings)
    except AssistantServiceConfigError as exc:
      # Server should still start so the user can hit /health and see what's wrong.
      app.state.assistant_init_error = str(exc)
    else:
      app.state.assistant_init_error = None
  else:
    app.state.assistant_init_error = None
  app.state.assistant = assistant

  app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_request_bytes)
  app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(settings),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
  )

  @app.middleware("http")
  async def log_and_limit(request: Request, call_next):  # noqa: ANN001, ANN202
    client = request.client.host if request.client else "-"
    logger.info("%s %s - %s", request.method, request.url.path, client)
    length = request.headers.get("content-length")
    if length and length.isdigit() and int(length) > settings.max_request_bytes:
      return JSONResponse(
        status_code=413,
        content={"error": f"Request body exceeds {settings.max_request_bytes} bytes"},
      )
    return await call_next(request)

  @app.exception_handler(StarletteHTTPException)
  async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
      content: Any = {"error": f"Not Found - {request.url.path}"}
    elif isinstance(exc.detail, dict):
      content = exc.detail
    else:
      content = {"error": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

  @app.exception_handler(RequestValidationError)
  async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    _ = request
    errors = exc.errors()
    message = str(errors[0].get("msg")) if errors else "Invalid request"
    return JSONResponse(status_code=422, content={"error": "Invalid request", "message": message})

  @app.exception_handler(Exception)
  async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"error": "Internal server error", "message": str(exc) or type(exc).__name__}
    if settings.is_development:
      content["stack"] = "".join(traceback.format_exception(exc))
    return JSONResponse(status_code=500, content=content)

  def require_bearer_token(request: Request) -> str:
    header = request.headers.get("authorization")
    if not header:
      raise HTTPException(status_code=401, detail="Authorization header required")
    token = header.replace("Bearer ", "", 1).strip()
    if not token:
      raise HTTPException(status_code=401, detail="Bearer token required")
    if len(token) < settings.auth_min_token_length:
      raise HTTPException(status_code=401, detail="Invalid token format")
    return token

  def require_assistant() -> AssistantService:
    if app.state.assistant is None:
      raise HTTPException(
        status_code=503,
        detail={"error": "Assistant unavailable", "message": app.state.assistant_init_error},
      )
    return app.state.assistant

  def basic_health() -> dict[str, Any]:
    return {
      "status": "ok",
      "timestamp": _timestamp(),
      "uptime": round(time.monotonic() - app.state.started_at, 3),
      "version": __version__,
    }

  async def detailed_health() -> JSONResponse:
    body = basic_health()
    body["environment"] = {
      "appEnv": settings.environment,
      "port": settings.port,
      "logLevel": settings.log_level,
    }
    letta = {
      "apiKey": _configured(settings.letta_api_key),
      "agentId": _configured(settings.letta_agent_id),
      "project": settings.letta_project or "default",
    }
    if app.state.assistant is None:
      body["status"] = "unhealthy"
      letta["connection"] = {
        "status": "unhealthy",
        "details": {"letta": "initialization failed", "error": app.state.assistant_init_error},
      }
    else:
      connection = await app.state.assistant.check_health()
      body["status"] = connection["status"]
      letta["connection"] = connection
    body["letta"] = letta
    return JSONResponse(content=body)

  app.add_api_route("/health", basic_health, methods=["GET"])
  app.add_api_route("/api/health", basic_health, methods=["GET"])
  app.add_api_route("/health/detailed", detailed_health, methods=["GET"])
  app.add_api_route("/api/health/detailed", detailed_health, methods=["GET"])

  @app.get("/api/version")
  async def version() -> dict[str, Any]:
    return {"version": __version__, "name": APP_NAME, "environment": settings.environment}

  @app.get("/api/config")
  async def get_config() -> dict[str, Any]:
    return {
      "environment": settings.environment,
      "port": settings.port,
      "lettaProject": settings.letta_project or "default-project",
      "version": __version__,
      "configuration": {
        "lettaApiKey": _configured(settings.letta_api_key),
        "lettaAgentId": _configured(settings.letta_agent_id),
        "groqApiKey": _configured(settings.groq_api_key),
        "lettaProject": settings.letta_project or "default",
      },
    }

  @app.put("/api/config")
  async def update_config(update: ConfigUpdate) -> dict[str, Any]:
    return {
      "success": True,
      "message": "Configuration updated (not persisted)",
      "config": {
        "port": update.port or settings.port,
        "lettaProject": update.lettaProject or settings.letta_project or "default-project",
      },
    }

  @app.get("/api/auth/status")
  async def auth_status() -> dict[str, Any]:
    return {"authenticated": True, "message": "Authentication is handled via API key"}

  @app.post("/api/auth/validate")
  async def validate_api_key(body: ApiKeyValidation) -> JSONResponse:
    if not body.apiKey:
      return JSONResponse(status_code=400, content={"error": "API key is required"})
    if body.apiKey.startswith(LETTA_KEY_PREFIX):
      return JSONResponse(content={"valid": True, "message": "API key format is valid"})
    return JSONResponse(status_code=401, content={"valid": False, "error": "Invalid API key format"})

  @app.post("/api/assistant")
  async def assistant_request(
    body: AssistantRequest,
    _token: str = Depends(require_bearer_token),
    service: AssistantService = Depends(require_assistant),
  ) -> dict[str, Any]:
    logger.info(
      "Assistant request received (screenshot=%s, audio=%s, clipboard=%s)",
      bool(body.screenshot),
      bool(body.audio),
      bool(body.clipboard),
    )
    if not body.screenshot:
      logger.warning("Assistant request rejected: missing screenshot")
      raise HTTPException(
        status_code=400,
        detail={
          "error": "Screenshot is required",
          "message": "Please provide a screenshot for analysis",
        },
      )
    result = await service.process(body)
    return {"success": True, "result": result.model_dump()}

  @app.websocket("/ws")
  async def assistant_socket(websocket: WebSocket) -> None:
    await websocket.accept()
    logger.info("WebSocket connection established")
    try:
      while True:
        raw = await websocket.receive_text()
        try:
          message = json.loads(raw)
        except ValueError:
          await websocket.send_json({"type": "error", "message": "Failed to process request"})
          continue
        if not isinstance(message, dict) or message.get("type") != "assistant-request":
          continue
        if app.state.assistant is None:
          await websocket.send_json({"type": "error", "message": "Assistant unavailable"})
          continue
        try:
          request = AssistantRequest.model_validate(message.get("data") or {})
        except ValidationError as exc:
          logger.warning("WebSocket request rejected: %s", exc)
          await websocket.send_json({"type": "error", "message": "Failed to process request"})
          continue
        result = await app.state.assistant.process(request)
        await websocket.send_json({"type": "assistant-response", "data": result.model_dump()})
    except WebSocketDisconnect:
      logger.info("WebSocket connection closed")

  return app


def main() -> None:
  settings = get_settings()
  configure_logging(settings.log_level)
  uvicorn.run(
    create_app(settings),
    host=settings.host,
    port=settings.port,
    log_level=settings.log_level.lower(),
  )


if __name__ == "__main__":
  main()
