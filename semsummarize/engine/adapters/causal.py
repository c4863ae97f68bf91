"""Adapter for decoder-only models (GPT-2 / Llama style)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Sequence

from ..errors import ForwardPassError
from .base import TransformersAdapter

if TYPE_CHECKING:
    import torch

logger = logging.getLogger(__name__)


def cache_seq_length(cache: Any) -> int:
    """Number of positions already held by `cache` (0 for None)."""
    if cache is None:
        return 0
    get_seq_length = getattr(cache, "get_seq_length", None)
    if callable(get_seq_length):
        return int(get_seq_length())
    # Legacy tuple-of-(key, value) caches: (batch, heads, seq, head_dim).
    try:
        return int(cache[0][0].shape[-2])
    except (IndexError, TypeError, AttributeError):
        return 0


def _require_cache(use_cache: bool) -> None:
    # Causal decoding always runs incrementally.
    if not use_cache:
        raise ValueError("CausalLMAdapter always decodes with a KV cache; use_cache=False is not supported")


class CausalLMAdapter(TransformersAdapter):
    """
    Incremental-cache backend.

    Step 0 feeds the whole prompt at offset 0; every later step feeds only the
    most recent token at `offset = tokens consumed so far`. The KV cache is
    owned by the adapter and rebuilt by `begin()` for every request, so no
    state from a previous call can leak into the next one. `forward()` checks
    the cache length against the offset and refuses to run on a stale cache.
    """

    family = "causal"

    def __init__(self, *, use_cache: bool = True) -> None:
        _require_cache(use_cache)
        super().__init__(use_cache=True)
        self._cache: Any = None

    def load(self, model_path: str, **kwargs) -> None:
        _require_cache(kwargs.pop("use_cache", True))
        super().load(model_path, **kwargs)

    @property
    def cache(self) -> Any:
        return self._cache

    @property
    def eos_token_id(self) -> int:
        self._ensure_loaded()
        eos = self._config_token_id("eos_token_id")
        if eos is None and self._tokenizer is not None:
            eos = self._tokenizer.eos_token_id
        if eos is None:
            raise RuntimeError("Model config defines no eos_token_id")
        return eos

    @property
    def bos_token_id(self) -> int | None:
        self._ensure_loaded()
        bos = self._config_token_id("bos_token_id")
        if bos is None and self._tokenizer is not None:
            bos = self._tokenizer.bos_token_id
        return bos

    # -------------------------------------------------------------------------
    # Engine hooks
    # -------------------------------------------------------------------------

    def begin(self, prompt_ids: Sequence[int]) -> list[int]:
        self._ensure_loaded()
        self._cache = self.new_cache()

        sequence = list(prompt_ids)
        if not sequence:
            # Decoder-only models need at least one context token.
            bos = self.bos_token_id
            sequence = [self.eos_token_id if bos is None else bos]
        logger.debug("causal begin: prompt_tokens=%d cache reset", len(sequence))
        return sequence

    def next_token_logits(self, sequence: Sequence[int], step: int) -> torch.Tensor:
        if step == 0:
            return self.forward(sequence, 0, self._cache)
        return self.forward(sequence[-1:], len(sequence) - 1, self._cache)

    # -------------------------------------------------------------------------
    # Model calls
    # -------------------------------------------------------------------------

    def new_cache(self) -> Any:
        from transformers import DynamicCache

        return DynamicCache()

    def forward(self, context_window: Sequence[int], position_offset: int, cache: Any) -> torch.Tensor:
        """Feed `context_window` at `position_offset`, extending `cache` in place."""
        self._ensure_loaded()

        cached = cache_seq_length(cache)
        if cached != position_offset:
            raise ForwardPassError(
                f"Cache holds {cached} positions but the forward pass starts at {position_offset}"
            )
        if not context_window:
            raise ForwardPassError("Forward pass needs at least one input token")

        try:
            return self._run_model(list(context_window), position_offset, cache)
        except ForwardPassError:
            raise
        except Exception as exc:
            raise ForwardPassError(f"Forward pass failed: {exc}") from exc

    def _run_model(self, input_ids: list[int], position_offset: int, cache: Any) -> torch.Tensor:
        import torch

        ids = self._as_input_ids(input_ids)
        cache_position = torch.arange(
            position_offset,
            position_offset + len(input_ids),
            dtype=torch.long,
            device=ids.device,
        )

        with torch.no_grad():
            outputs = self._model(
                input_ids=ids,
                past_key_values=cache,
                position_ids=cache_position.unsqueeze(0),
                cache_position=cache_position,
                use_cache=True,
                return_dict=True,
            )

        # Cache objects are updated in place; legacy tuples come back as new objects.
        if outputs.past_key_values is not cache:
            self._cache = outputs.past_key_values
        return outputs.logits[0, -1, :]

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _auto_model_class(self) -> Any:
        from transformers import AutoModelForCausalLM

        return AutoModelForCausalLM

    def _reset_request_state(self) -> None:
        self._cache = None
