"""FastAPI app that forwards OpenAI-style chat requests to an upstream backend.

No model runs in this process; every chat call goes through `BackendClient`,
which owns the retry policy.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from semsummarize.proxy.client import BackendClient, BackendError, ProxyError, TransportError, Unavailable

logger = logging.getLogger(__name__)


def create_app(*, client: BackendClient) -> FastAPI:
    app = FastAPI(title="semsummarize proxy", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    async def _forward(call: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(call, *args)
        except BackendError as exc:
            logger.error("Backend error: %s", exc)
            return _error_response(exc.status, exc.message, "backend_error")
        except Unavailable as exc:
            logger.error("Backend unavailable: %s", exc)
            return _error_response(503, "Backend service unavailable", "service_unavailable")
        except TransportError as exc:
            logger.error("Backend transport error: %s", exc)
            return _error_response(502, "Failed to communicate with backend", "bad_gateway")
        except ProxyError as exc:  # pragma: no cover
            logger.error("Proxy error: %s", exc)
            return _error_response(502, "Failed to communicate with backend", "bad_gateway")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "backend": client.base_url}

    @app.get("/v1/models")
    async def list_models() -> Any:
        result = await _forward(client.list_models)
        if isinstance(result, JSONResponse):
            return result
        return JSONResponse(result)

    @app.post("/v1/chat/completions")
    async def chat_completions(request: Request) -> Any:
        try:
            payload = await request.json()
        except Exception:
            payload = None
        if not isinstance(payload, dict):
            return _error_response(400, "Request body must be a JSON object.", "invalid_request_error")
        if not isinstance(payload.get("messages"), list) or not payload["messages"]:
            return _error_response(400, "'messages' must be a non-empty list.", "invalid_request_error")
        if payload.get("stream"):
            return _error_response(400, "Streaming is not supported by this proxy.", "invalid_request_error")

        result = await _forward(client.chat_completions, payload)
        if isinstance(result, JSONResponse):
            return result
        return JSONResponse(result)

    return app


def _error_response(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        {"error": {"message": message, "type": error_type}},
        status_code=status_code,
    )
