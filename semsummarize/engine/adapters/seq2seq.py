"""Adapter for encoder-decoder models (T5 / Flan-T5 style)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Sequence

from ..errors import ForwardPassError
from .base import TransformersAdapter

if TYPE_CHECKING:
    import torch

logger = logging.getLogger(__name__)


class Seq2SeqAdapter(TransformersAdapter):
    """
    Encode-once / decode-many backend.

    The prompt is run through the encoder once per request (`begin`). Each
    decode step feeds decoder tokens against that fixed encoder state:

    - step 0 always passes the full decoder sequence (just the start token);
    - with `use_cache=False` (default) every later step re-passes the entire
      decoder history, trading throughput for a stateless decoder;
    - with `use_cache=True` later steps pass only the newest token and reuse a
      per-request `EncoderDecoderCache` that `begin` rebuilds.

    Example:
        >>> adapter = Seq2SeqAdapter()
        >>> adapter.load("google/flan-t5-small")
        >>> seq = adapter.begin(adapter.tokenizer.encode("summarize: ..."))
        >>> logits = adapter.next_token_logits(seq, step=0)
    """

    family = "seq2seq"

    def __init__(self, *, use_cache: bool = False) -> None:
        super().__init__(use_cache=use_cache)
        self._encoder_state: Any = None
        self._cache: Any = None

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
    def decoder_start_token_id(self) -> int:
        self._ensure_loaded()
        start = self._config_token_id("decoder_start_token_id")
        return 0 if start is None else start

    # -------------------------------------------------------------------------
    # Engine hooks
    # -------------------------------------------------------------------------

    def begin(self, prompt_ids: Sequence[int]) -> list[int]:
        self._ensure_loaded()
        self._reset_request_state()
        if self._use_cache:
            self._cache = self.new_cache()

        input_ids = list(prompt_ids)
        if not input_ids:
            # The encoder needs at least one position.
            input_ids = [self.eos_token_id]

        self._encoder_state = self.encode(input_ids)
        logger.debug("seq2seq begin: prompt_tokens=%d use_cache=%s", len(input_ids), self._use_cache)
        return [self.decoder_start_token_id]

    def next_token_logits(self, sequence: Sequence[int], step: int) -> torch.Tensor:
        if self._encoder_state is None:
            raise ForwardPassError("decode step requested before begin() computed the encoder state")

        if step == 0 or not self._use_cache:
            decoder_ids = sequence
        else:
            decoder_ids = sequence[-1:]
        return self.decode_step(decoder_ids, self._encoder_state)

    # -------------------------------------------------------------------------
    # Model calls
    # -------------------------------------------------------------------------

    def new_cache(self) -> Any:
        from transformers import DynamicCache, EncoderDecoderCache

        return EncoderDecoderCache(DynamicCache(), DynamicCache())

    def encode(self, input_ids: Sequence[int]) -> Any:
        """Run the encoder once. Returns the encoder output object."""
        import torch

        self._ensure_loaded()
        try:
            with torch.no_grad():
                return self._model.get_encoder()(
                    input_ids=self._as_input_ids(input_ids),
                    return_dict=True,
                )
        except Exception as exc:
            raise ForwardPassError(f"Encoder forward pass failed: {exc}") from exc

    def decode_step(self, decoder_ids: Sequence[int], encoder_state: Any) -> torch.Tensor:
        """Run the decoder over `decoder_ids`; returns logits for the last position."""
        import torch

        self._ensure_loaded()
        try:
            with torch.no_grad():
                outputs = self._model(
                    encoder_outputs=encoder_state,
                    decoder_input_ids=self._as_input_ids(decoder_ids),
                    past_key_values=self._cache if self._use_cache else None,
                    use_cache=self._use_cache,
                    return_dict=True,
                )
        except Exception as exc:
            raise ForwardPassError(f"Decoder forward pass failed: {exc}") from exc

        if self._use_cache:
            self._cache = outputs.past_key_values
        return outputs.logits[0, -1, :]

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _auto_model_class(self) -> Any:
        from transformers import AutoModelForSeq2SeqLM

        return AutoModelForSeq2SeqLM

    def _reset_request_state(self) -> None:
        self._encoder_state = None
        self._cache = None
