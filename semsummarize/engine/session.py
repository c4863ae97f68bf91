"""Serialized access to the single shared generation engine."""

from __future__ import annotations

import asyncio
import logging
import threading

from .generation import GenerationEngine
from .types import GenerationRequest, GenerationResult

logger = logging.getLogger(__name__)


class SessionGuard:
    """Owns the process-wide `GenerationEngine` and runs one call at a time.

    - `generate()` blocks until the engine is free, then runs the whole decode
      loop while holding an exclusive lock. The lock is released on every exit
      path (success or any `GenerationError`).
    - `agenerate()` does the same from async code. Waiting for the lock and the
      CPU-bound loop both happen on a worker thread, so the event loop keeps
      serving requests that never touch the model (health, metrics).
    - There is no timeout and no cancellation: once a call holds the guard it
      runs to EOS or `max_new_tokens`, even if the client has gone away.

    Lifecycle: build after the adapter is loaded (process start), `close()` at
    process shutdown.
    """

    def __init__(self, engine: GenerationEngine) -> None:
        self._engine = engine
        self._lock = threading.Lock()
        self._closed = False

    @property
    def engine(self) -> GenerationEngine:
        return self._engine

    @property
    def model_info(self) -> dict:
        return self._engine.model_info

    @property
    def in_flight(self) -> bool:
        """True while a generation call holds the guard."""
        return self._lock.locked()

    @property
    def closed(self) -> bool:
        return self._closed

    def generate(self, request: GenerationRequest) -> GenerationResult:
        with self._lock:
            if self._closed:
                raise RuntimeError("SessionGuard is closed; the model has been unloaded.")
            return self._engine.generate(request)

    async def agenerate(self, request: GenerationRequest) -> GenerationResult:
        return await asyncio.to_thread(self.generate, request)

    def close(self) -> None:
        """Wait for any in-flight call, then unload the model."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            logger.info("unloading model")
            self._engine.shutdown()
