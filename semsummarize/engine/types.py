"""Engine request and response types.

These types are used internally by the engine and adapters.
They are independent of any HTTP/API layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

# Hard ceiling on new tokens per request, regardless of what the caller asks for.
MAX_NEW_TOKENS_CEILING = 100

DEFAULT_SEED = 299792458


@dataclass(frozen=True)
class SamplingParams:
    """Sampling and repetition-control knobs for one generation call."""

    temperature: float | None = 0.1  # None or ~0 = greedy
    top_p: float | None = None  # None = no nucleus truncation
    repeat_penalty: float = 1.1
    repeat_last_n: int = 64
    seed: int = DEFAULT_SEED


@dataclass(frozen=True)
class GenerationRequest:
    """Request for text generation."""

    prompt: str
    max_new_tokens: int = MAX_NEW_TOKENS_CEILING
    min_length: int = 20  # accepted but not enforced by the decode loop
    sampling: SamplingParams | None = None  # None = engine default


@dataclass(frozen=True)
class Timing:
    total_s: float | None = None
    tok_per_s: float | None = None


@dataclass(frozen=True)
class GenerationResult:
    """Response from text generation."""

    text: str
    token_ids: list[int] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: Literal["eos", "length"] = "eos"
    steps: int = 0
    timing: Timing = field(default_factory=Timing)


@dataclass
class ModelInfo:
    """Information about a loaded model."""

    model_path: str | None
    model_family: str
    dtype: str
    device: str
    use_cache: bool = False
    extra: dict[str, Any] = field(default_factory=dict)
