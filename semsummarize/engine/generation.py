"""Shared decode loop and the single-request generation engine.

The loop is architecture-agnostic: it drives any `BaseAdapter` through
`begin()` / `next_token_logits()` and owns sampling, repetition penalty and
stop conditions. It contains no locking and no HTTP code.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Sequence

from .adapters.base import BaseAdapter
from .sampling import LogitsProcessor, apply_repeat_penalty
from .tokenizer import TokenizerAdapter
from .types import (
    MAX_NEW_TOKENS_CEILING,
    GenerationRequest,
    GenerationResult,
    SamplingParams,
    Timing,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """Engine-wide defaults and limits."""

    max_new_tokens_ceiling: int = MAX_NEW_TOKENS_CEILING
    default_sampling: SamplingParams = field(default_factory=SamplingParams)
    prompt_max_words: int = 400
    prompt_template: str = "summarize: {text}"


@dataclass
class DecodeOutcome:
    """Raw result of one decode loop, before detokenization."""

    token_ids: list[int]
    finish_reason: str  # "eos" | "length"
    steps: int
    prompt_tokens: int


def decode_loop(
    adapter: BaseAdapter,
    prompt_ids: Sequence[int],
    *,
    max_new_tokens: int,
    processor: LogitsProcessor,
    repeat_penalty: float = 1.1,
    repeat_last_n: int = 64,
) -> DecodeOutcome:
    """Run Start -> Decoding -> Stopped(eos | length) for one request.

    The adapter's `begin()` resets its per-request state and returns the
    initial sequence (decoder-start token or the prompt). Generated tokens are
    appended after it; the EOS token stops the loop and is never appended.
    """
    sequence = adapter.begin(prompt_ids)
    generated_from = len(sequence)
    eos_token_id = adapter.eos_token_id

    finish_reason = "length"
    steps = 0
    for step in range(max(int(max_new_tokens), 0)):
        steps += 1
        logits = adapter.next_token_logits(sequence, step)

        start_at = max(len(sequence) - repeat_last_n, 0)
        logits = apply_repeat_penalty(logits, repeat_penalty, sequence[start_at:])

        next_token = processor.sample(logits)
        if next_token == eos_token_id:
            finish_reason = "eos"
            break

        sequence.append(next_token)

    return DecodeOutcome(
        token_ids=sequence[generated_from:],
        finish_reason=finish_reason,
        steps=steps,
        prompt_tokens=len(prompt_ids),
    )


class GenerationEngine:
    """Prompt text in, generated text out, for one request at a time.

    Thread-safety:
        Not thread-safe. The adapter holds mutable per-request state (KV cache,
        encoder output); wrap the engine in a `SessionGuard` to share it.
    """

    def __init__(
        self,
        adapter: BaseAdapter,
        tokenizer: TokenizerAdapter | None = None,
        *,
        config: EngineConfig | None = None,
    ) -> None:
        self._adapter = adapter
        self._tokenizer = tokenizer
        self._config = config or EngineConfig()

    @property
    def adapter(self) -> BaseAdapter:
        return self._adapter

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def tokenizer(self) -> TokenizerAdapter:
        tokenizer = self._tokenizer or self._adapter.tokenizer
        if tokenizer is None:
            raise RuntimeError("Adapter has no tokenizer loaded.")
        return tokenizer

    @property
    def model_info(self) -> dict:
        return getattr(self._adapter, "model_info", {})

    def clamp_max_new_tokens(self, requested: int) -> int:
        return max(min(int(requested), self._config.max_new_tokens_ceiling), 0)

    def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate a completion for `request.prompt`.

        Raises:
            EncodingError, DecodingError, ForwardPassError: propagated as-is;
                no partial output is returned.
        """
        started = time.monotonic()
        params = request.sampling or self._config.default_sampling
        max_new_tokens = self.clamp_max_new_tokens(request.max_new_tokens)
        if request.min_length:
            # Accepted for API compatibility; the loop does not enforce it.
            logger.debug("min_length=%d ignored by decode loop", request.min_length)

        tokenizer = self.tokenizer
        prompt_ids = tokenizer.encode(request.prompt)

        outcome = decode_loop(
            self._adapter,
            prompt_ids,
            max_new_tokens=max_new_tokens,
            processor=LogitsProcessor.from_params(params),
            repeat_penalty=params.repeat_penalty,
            repeat_last_n=params.repeat_last_n,
        )

        text = tokenizer.decode(outcome.token_ids, skip_special=True).strip()

        total_s = max(time.monotonic() - started, 0.0)
        completion_tokens = len(outcome.token_ids)
        tok_per_s = completion_tokens / total_s if total_s > 0 and completion_tokens else None
        logger.debug(
            "generation finished: reason=%s steps=%d prompt_tokens=%d completion_tokens=%d total_s=%.3f",
            outcome.finish_reason,
            outcome.steps,
            outcome.prompt_tokens,
            completion_tokens,
            total_s,
        )

        return GenerationResult(
            text=text,
            token_ids=list(outcome.token_ids),
            prompt_tokens=outcome.prompt_tokens,
            completion_tokens=completion_tokens,
            finish_reason=outcome.finish_reason,
            steps=outcome.steps,
            timing=Timing(total_s=total_s, tok_per_s=tok_per_s),
        )

    def shutdown(self) -> None:
        unload = getattr(self._adapter, "unload", None)
        if callable(unload):
            unload()
