"""Repetition penalty and temperature / nucleus sampling over next-token logits."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

from .types import DEFAULT_SEED, SamplingParams

if TYPE_CHECKING:
    import torch

# Temperatures below this are treated as greedy decoding.
GREEDY_EPSILON = 1e-7


def apply_repeat_penalty(logits: torch.Tensor, penalty: float, context: Sequence[int]) -> torch.Tensor:
    """Down-weight every token id present in `context`.

    Positive scores are divided by `penalty`, negative ones multiplied, so the
    score always moves down for penalty > 1. Each distinct id is penalized once.
    Returns a new tensor; `logits` is left untouched.
    """
    import torch

    if penalty == 1.0 or not context:
        return logits

    out = logits.detach().clone().float()
    ids = torch.tensor(sorted({int(t) for t in context}), dtype=torch.long, device=out.device)
    ids = ids[(ids >= 0) & (ids < out.shape[-1])]
    if ids.numel() == 0:
        return out

    scores = out[ids]
    out[ids] = torch.where(scores >= 0, scores / penalty, scores * penalty)
    return out


class LogitsProcessor:
    """Picks the next token from a logits vector.

    Greedy (argmax) when temperature is unset or ~0. Otherwise scales by
    1/temperature, softmaxes in fp32, optionally truncates to the top-p nucleus
    and draws with a `torch.Generator` seeded once at construction.

    Note:
        The generator is seeded per instance, not per draw: two processors built
        with the same seed produce the same sampled sequence for the same logits.
    """

    def __init__(
        self,
        seed: int = DEFAULT_SEED,
        temperature: float | None = None,
        top_p: float | None = None,
    ) -> None:
        import torch

        if temperature is not None and temperature < 0:
            raise ValueError(f"Temperature must be >= 0, got {temperature}")
        if top_p is not None and top_p <= 0:
            raise ValueError(f"top_p must be > 0, got {top_p}")

        self.seed = int(seed)
        self.temperature = temperature
        self.top_p = top_p
        self._generator = torch.Generator(device="cpu")
        self._generator.manual_seed(self.seed)

    @classmethod
    def from_params(cls, params: SamplingParams) -> "LogitsProcessor":
        return cls(seed=params.seed, temperature=params.temperature, top_p=params.top_p)

    @property
    def is_greedy(self) -> bool:
        return self.temperature is None or self.temperature < GREEDY_EPSILON

    def sample(self, logits: torch.Tensor) -> int:
        """Return the chosen token id for a 1-D logits vector."""
        import torch

        logits = logits.detach().reshape(-1)
        if self.is_greedy:
            return int(torch.argmax(logits).item())

        # Numerical stability: compute softmax in fp32 to avoid overflow
        # that can occur with fp16 logits and low temperature.
        logits_f = logits.float().cpu() / float(self.temperature)
        probs = torch.softmax(logits_f, dim=-1)

        if torch.isnan(probs).any() or torch.isinf(probs).any():
            probs = torch.nan_to_num(probs, nan=0.0, posinf=0.0, neginf=0.0)
            z = probs.sum()
            if z <= 0:
                return int(torch.argmax(logits).item())
            probs = probs / z

        if self.top_p is not None and self.top_p < 1.0:
            return self._sample_top_p(probs)

        return int(torch.multinomial(probs, 1, generator=self._generator).item())

    def _sample_top_p(self, probs: torch.Tensor) -> int:
        import torch

        sorted_probs, sorted_ids = torch.sort(probs, descending=True)
        # Keep every token whose preceding mass is still below top_p; this keeps
        # the token that crosses the threshold and always at least one token.
        preceding = torch.cumsum(sorted_probs, dim=-1) - sorted_probs
        keep = preceding < self.top_p
        kept_probs = sorted_probs * keep
        choice = torch.multinomial(kept_probs / kept_probs.sum(), 1, generator=self._generator)
        return int(sorted_ids[choice].item())
