"""semsummarize server entrypoint (FastAPI + /summarize).

Example:
    python -m apps.server.main --model google/flan-t5-small --host 0.0.0.0 --port 8083
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import Any

from apps.server.app import create_app
from semsummarize.engine.generation import EngineConfig, GenerationEngine
from semsummarize.engine.registry import detect_model_family, get_adapter, list_model_families
from semsummarize.engine.session import SessionGuard
from semsummarize.engine.types import SamplingParams


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="semsummarize inference server")
    p.add_argument(
        "--model",
        default=os.environ.get("SEMSUMMARIZE_MODEL", "google/flan-t5-small"),
        help="Model path or HF repo id (env: SEMSUMMARIZE_MODEL)",
    )
    p.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    p.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("SEMSUMMARIZE_PORT", "8083")),
        help="Bind port (env: SEMSUMMARIZE_PORT, default: 8083)",
    )
    p.add_argument(
        "--family",
        default="auto",
        choices=["auto", *list_model_families()],
        help="Model architecture (default: detect from config)",
    )
    p.add_argument("--device", default="cpu", help="Torch device (default: cpu)")
    p.add_argument("--dtype", default="float32", help="Torch dtype: float16|bfloat16|float32 (default: float32)")
    p.add_argument(
        "--use-cache",
        action="store_true",
        help="Enable incremental decoder KV cache for seq2seq models (default: off)",
    )

    p.add_argument("--temperature", type=float, default=0.1, help="Sampling temperature; 0 = greedy (default: 0.1)")
    p.add_argument("--top-p", type=float, default=None, help="Nucleus threshold (default: off)")
    p.add_argument("--repeat-penalty", type=float, default=1.1, help="Repetition penalty (default: 1.1)")
    p.add_argument("--repeat-last-n", type=int, default=64, help="Repetition penalty window (default: 64)")
    p.add_argument("--seed", type=int, default=299792458, help="Sampling seed")
    p.add_argument("--prompt-template", default="summarize: {text}", help="Prompt template with a {text} field")
    p.add_argument("--prompt-max-words", type=int, default=400, help="Words kept from the input text")

    p.add_argument(
        "--log-level",
        default=os.environ.get("SEMSUMMARIZE_LOG_LEVEL", "info"),
        help="Log level (env: SEMSUMMARIZE_LOG_LEVEL, default: info)",
    )
    return p.parse_args(argv)


def _dtype_from_string(dtype: str) -> Any:
    try:
        import torch
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("torch is required to run the server.") from exc

    dt = dtype.strip().lower()
    if dt in {"fp16", "float16", "half"}:
        return torch.float16
    if dt in {"bf16", "bfloat16"}:
        return torch.bfloat16
    if dt in {"fp32", "float32"}:
        return torch.float32
    raise ValueError(f"Unknown dtype: {dtype!r}")


def build_config(args: argparse.Namespace) -> EngineConfig:
    return EngineConfig(
        default_sampling=SamplingParams(
            temperature=args.temperature,
            top_p=args.top_p,
            repeat_penalty=args.repeat_penalty,
            repeat_last_n=args.repeat_last_n,
            seed=args.seed,
        ),
        prompt_max_words=args.prompt_max_words,
        prompt_template=args.prompt_template,
    )


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    family = args.family
    if family == "auto":
        family = detect_model_family(args.model)

    load_kwargs: dict[str, Any] = {"device": args.device, "dtype": _dtype_from_string(args.dtype)}
    if family == "seq2seq":
        load_kwargs["use_cache"] = bool(args.use_cache)

    adapter = get_adapter(family)
    print(
        "[server] loading model... "
        f"model={args.model!r} family={family} device={args.device!r} dtype={args.dtype!r}",
        flush=True,
    )
    adapter.load(args.model, **load_kwargs)
    print("[server] model loaded", flush=True)

    config = build_config(args)
    guard = SessionGuard(GenerationEngine(adapter, config=config))
    app = create_app(engine=guard, model_id=args.model, config=config)

    try:
        import uvicorn
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("uvicorn is required to run the server.") from exc

    print(f"[server] listening on {args.host}:{args.port}", flush=True)
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
