"""FastAPI app for the summarization endpoint.

The HTTP layer lives under `apps/` and can depend on heavier deps (FastAPI, uvicorn,
prometheus_client). All model execution is delegated to the core engine
(`semsummarize/engine`) through a `SessionGuard`.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse, Response

from semsummarize.engine.errors import GenerationError
from semsummarize.engine.generation import EngineConfig
from semsummarize.engine.types import GenerationRequest

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 100
DEFAULT_MIN_LENGTH = 20


@dataclass(frozen=True)
class SummarizeRequest:
    text: str
    max_length: int = DEFAULT_MAX_LENGTH
    min_length: int = DEFAULT_MIN_LENGTH


class _Metrics:
    """Prometheus collectors, registered on a per-app registry."""

    def __init__(self) -> None:
        self.registry = CollectorRegistry()
        self.requests_total = Counter(
            "semsummarize_requests_total",
            "Total number of summarization requests",
            registry=self.registry,
        )
        self.request_duration = Histogram(
            "semsummarize_request_duration_seconds",
            "Request duration in seconds",
            registry=self.registry,
        )
        self.errors_total = Counter(
            "semsummarize_errors_total",
            "Total number of errors",
            registry=self.registry,
        )


def build_prompt(text: str, config: EngineConfig) -> str:
    """Keep the first `prompt_max_words` words and apply the prompt template."""
    words = text.split()[: config.prompt_max_words]
    return config.prompt_template.format(text=" ".join(words))


def create_app(
    *,
    engine: Any,
    model_id: str,
    config: EngineConfig | None = None,
) -> FastAPI:
    """Build the app around `engine` (a `SessionGuard` or anything with `agenerate`)."""
    config = config or getattr(getattr(engine, "engine", None), "config", None) or EngineConfig()
    metrics = _Metrics()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        yield
        close = getattr(engine, "close", None)
        if callable(close):
            close()

    app = FastAPI(title="semsummarize", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.metrics = metrics

    @app.exception_handler(StarletteHTTPException)
    async def http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        error_type = "invalid_request_error" if 400 <= exc.status_code < 500 else "internal_error"
        return _error_response(exc.status_code, str(exc.detail), error_type)

    # -------------------------------------------------------------------------
    # Health & Metrics
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "model": model_id}

    @app.get("/metrics")
    async def metrics_handler() -> Response:
        return Response(content=generate_latest(metrics.registry), media_type=CONTENT_TYPE_LATEST)

    # -------------------------------------------------------------------------
    # Summarization
    # -------------------------------------------------------------------------

    @app.post("/summarize")
    async def summarize(request: Request) -> Any:
        started = time.monotonic()
        metrics.requests_total.inc()
        try:
            return await _summarize(request, started)
        finally:
            # Every outcome is timed, including 400 and 500 responses.
            metrics.request_duration.observe(max(time.monotonic() - started, 0.0))

    async def _summarize(request: Request, started: float) -> Any:
        try:
            payload = await request.json()
        except Exception:
            payload = None

        try:
            req = _parse_summarize_request(payload)
        except HTTPException as exc:
            metrics.errors_total.inc()
            return _error_response(exc.status_code, str(exc.detail), "invalid_request_error")

        gen_request = GenerationRequest(
            prompt=build_prompt(req.text, config),
            max_new_tokens=min(req.max_length, config.max_new_tokens_ceiling),
            min_length=req.min_length,
        )

        try:
            result = await engine.agenerate(gen_request)
        except GenerationError as exc:
            logger.error("Generation failed: %s", exc)
            metrics.errors_total.inc()
            return _error_response(500, "Failed to generate summary", "internal_error")
        except Exception:
            logger.exception("Unexpected generation failure")
            metrics.errors_total.inc()
            return _error_response(500, "Failed to generate summary", "internal_error")

        elapsed = max(time.monotonic() - started, 0.0)
        return JSONResponse(
            {
                "summary": result.text,
                "model": model_id,
                "latency_ms": round(elapsed * 1000.0, 3),
            }
        )

    return app


def _error_response(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        {"error": {"message": message, "type": error_type}},
        status_code=status_code,
    )


def _parse_summarize_request(payload: Any) -> SummarizeRequest:
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object.")

    text = payload.get("text")
    if not isinstance(text, str):
        raise HTTPException(status_code=400, detail="'text' is required and must be a string.")
    if not text:
        raise HTTPException(status_code=400, detail="Input text cannot be empty")

    max_length = _parse_length(payload, "max_length", DEFAULT_MAX_LENGTH)
    min_length = _parse_length(payload, "min_length", DEFAULT_MIN_LENGTH)
    return SummarizeRequest(text=text, max_length=max_length, min_length=min_length)


def _parse_length(payload: dict[str, Any], key: str, default: int) -> int:
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise HTTPException(status_code=400, detail=f"'{key}' must be a non-negative integer.")
    if value < 0:
        raise HTTPException(status_code=400, detail=f"'{key}' must be a non-negative integer.")
    return value
