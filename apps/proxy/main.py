"""Chat proxy entrypoint.

Example:
    python -m apps.proxy.main --backend-url http://shimmy:8080 --port 8083
"""

from __future__ import annotations

import argparse
import logging
import os

from apps.proxy.app import create_app
from semsummarize.proxy.client import DEFAULT_URL, BackendClient


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="OpenAI-compatible chat proxy")
    p.add_argument(
        "--backend-url",
        default=os.environ.get("SEMINSTRUCT_SHIMMY_URL", DEFAULT_URL),
        help="Upstream base URL (env: SEMINSTRUCT_SHIMMY_URL)",
    )
    p.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    p.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("SEMINSTRUCT_PORT", "8083")),
        help="Bind port (env: SEMINSTRUCT_PORT, default: 8083)",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=float(os.environ.get("SEMINSTRUCT_TIMEOUT_SECONDS", "120")),
        help="Upstream request timeout in seconds (env: SEMINSTRUCT_TIMEOUT_SECONDS)",
    )
    p.add_argument(
        "--max-retries",
        type=int,
        default=int(os.environ.get("SEMINSTRUCT_MAX_RETRIES", "3")),
        help="Retries after the first failed upstream call (env: SEMINSTRUCT_MAX_RETRIES)",
    )
    p.add_argument("--log-level", default=os.environ.get("SEMINSTRUCT_LOG_LEVEL", "info"))
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    client = BackendClient(
        base_url=args.backend_url,
        timeout_s=args.timeout,
        max_retries=args.max_retries,
    )
    app = create_app(client=client)

    try:
        import uvicorn
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("uvicorn is required to run the proxy.") from exc

    print(
        f"[proxy] forwarding to {client.base_url} "
        f"timeout={client.timeout_s:.0f}s max_retries={client.max_retries}",
        flush=True,
    )
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
