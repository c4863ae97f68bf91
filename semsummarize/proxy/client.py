"""HTTP client for the upstream chat backend the proxy forwards to.

Small, dependency-free primitives (urllib) with a retry loop: failed calls are
retried with exponential backoff (100ms * 2**attempt) and the final failure is
mapped onto `BackendError` / `Unavailable` / `TransportError`.
"""

from __future__ import annotations

import json
import logging
import socket
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://shimmy:8080"


class ProxyError(RuntimeError):
    """Base class for upstream failures."""

    retryable = False


class BackendError(ProxyError):
    """The upstream answered with an HTTP error status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"Backend error {status}: {message}")
        self.status = int(status)
        self.message = message

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status >= 500 or self.status == 429


class Unavailable(ProxyError):
    """The upstream timed out or reported itself unavailable (503)."""

    retryable = True


class TransportError(ProxyError):
    """The upstream could not be reached, or answered with something that is not JSON."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


def _join_url(base_url: str, path: str) -> str:
    if not path.startswith("/"):
        path = "/" + path
    # Ensure base_url ends with "/" so urljoin doesn't drop the path.
    return urllib.parse.urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))


def _error_message(body: str | None, fallback: str) -> str:
    if not body:
        return fallback
    try:
        payload = json.loads(body)
    except ValueError:
        return body
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
        if isinstance(err, str):
            return err
        if isinstance(payload.get("detail"), str):
            return payload["detail"]
    return body


class BackendClient:
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_URL,
        timeout_s: float = 120.0,
        max_retries: int = 3,
        backoff_base_s: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s)
        self.max_retries = int(max_retries)
        self.backoff_base_s = float(backoff_base_s)
        self._sleep = sleep

    def backoff_s(self, attempt: int) -> float:
        """Delay before retry number `attempt + 1` (attempt is zero-based)."""
        return self.backoff_base_s * (2**attempt)

    def request_json(
        self,
        method: str,
        path: str,
        *,
        payload: Any | None = None,
        timeout_s: float | None = None,
    ) -> Any:
        """Send one JSON request, retrying retryable failures."""
        attempt = 0
        while True:
            try:
                return self._request_once(method, path, payload=payload, timeout_s=timeout_s)
            except ProxyError as exc:
                if not exc.retryable or attempt >= self.max_retries:
                    raise
                delay = self.backoff_s(attempt)
                logger.warning(
                    "upstream %s %s failed (%s); retry %d/%d in %.0fms",
                    method.upper(),
                    path,
                    exc,
                    attempt + 1,
                    self.max_retries,
                    delay * 1000,
                )
                self._sleep(delay)
                attempt += 1

    def _request_once(
        self,
        method: str,
        path: str,
        *,
        payload: Any | None = None,
        timeout_s: float | None = None,
    ) -> Any:
        url = _join_url(self.base_url, path)

        body: bytes | None = None
        if payload is not None:
            body = json.dumps(payload, ensure_ascii=False).encode("utf-8")

        req = urllib.request.Request(url=url, method=method.upper(), data=body)
        req.add_header("Accept", "application/json")
        if payload is not None:
            req.add_header("Content-Type", "application/json")

        try:
            with urllib.request.urlopen(req, timeout=self.timeout_s if timeout_s is None else timeout_s) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            body_text: str | None
            try:
                body_text = exc.read().decode("utf-8", errors="replace")
            except Exception:
                body_text = None
            status = int(getattr(exc, "code", 0) or 0)
            message = _error_message(body_text, fallback=str(getattr(exc, "reason", "HTTP error")))
            if status == 503:
                raise Unavailable(f"Backend unavailable: {message}") from exc
            raise BackendError(status, message) from exc
        except (socket.timeout, TimeoutError) as exc:
            raise Unavailable(f"Backend timed out after {self.timeout_s:.0f}s: {url}") from exc
        except urllib.error.URLError as exc:
            if isinstance(exc.reason, (socket.timeout, TimeoutError)):
                raise Unavailable(f"Backend timed out after {self.timeout_s:.0f}s: {url}") from exc
            raise TransportError(f"Failed to reach backend at {url}: {exc.reason}") from exc
        except OSError as exc:
            raise TransportError(f"Connection to backend failed: {exc}") from exc

        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            raise TransportError("Invalid JSON response from backend", retryable=False) from exc

    def chat_completions(self, payload: dict[str, Any]) -> dict[str, Any]:
        result = self.request_json("POST", "/v1/chat/completions", payload=payload)
        if not isinstance(result, dict):
            raise TransportError("Invalid /v1/chat/completions response", retryable=False)
        return result

    def list_models(self) -> dict[str, Any]:
        result = self.request_json("GET", "/v1/models")
        if not isinstance(result, dict) or not isinstance(result.get("data"), list):
            raise TransportError("Invalid /v1/models response", retryable=False)
        return result

    def health(self) -> dict[str, Any]:
        result = self.request_json("GET", "/health", timeout_s=min(self.timeout_s, 5.0))
        if not isinstance(result, dict):
            raise TransportError("Invalid /health response", retryable=False)
        return result
