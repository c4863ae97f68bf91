"""Text <-> token id conversion on top of a Hugging Face tokenizer."""

from __future__ import annotations

from typing import Any, Sequence

from .errors import DecodingError, EncodingError


class TokenizerAdapter:
    """
    Thin wrapper around a `transformers` tokenizer.

    Failures of the wrapped tokenizer are surfaced as `EncodingError` /
    `DecodingError` instead of leaking library-specific exceptions. Output is
    not stripped here; trimming whitespace is the engine's job.
    """

    def __init__(self, tokenizer: Any) -> None:
        self._tokenizer = tokenizer

    @classmethod
    def from_pretrained(cls, model_path: str, **kwargs) -> "TokenizerAdapter":
        from transformers import AutoTokenizer

        return cls(AutoTokenizer.from_pretrained(model_path, **kwargs))

    @property
    def raw(self) -> Any:
        """The wrapped tokenizer."""
        return self._tokenizer

    @property
    def vocab_size(self) -> int:
        # len() includes added tokens; vocab_size does not.
        try:
            return len(self._tokenizer)
        except TypeError:
            return int(self._tokenizer.vocab_size)

    @property
    def eos_token_id(self) -> int | None:
        return getattr(self._tokenizer, "eos_token_id", None)

    @property
    def bos_token_id(self) -> int | None:
        return getattr(self._tokenizer, "bos_token_id", None)

    @property
    def pad_token_id(self) -> int | None:
        return getattr(self._tokenizer, "pad_token_id", None)

    @property
    def all_special_ids(self) -> list[int]:
        return list(getattr(self._tokenizer, "all_special_ids", None) or [])

    def encode(self, text: str) -> list[int]:
        if not isinstance(text, str):
            raise EncodingError(f"Expected str, got {type(text).__name__}")
        try:
            ids = self._tokenizer.encode(text, add_special_tokens=True)
        except Exception as exc:
            raise EncodingError(f"Encoding failed: {exc}") from exc
        return [int(i) for i in ids]

    def decode(self, ids: Sequence[int], skip_special: bool = True) -> str:
        vocab_size = self.vocab_size
        token_ids: list[int] = []
        for tid in ids:
            tid = int(tid)
            if tid < 0 or tid >= vocab_size:
                raise DecodingError(f"Token id {tid} is outside the vocabulary (size={vocab_size})")
            token_ids.append(tid)

        try:
            return self._tokenizer.decode(token_ids, skip_special_tokens=skip_special)
        except Exception as exc:
            raise DecodingError(f"Decoding failed: {exc}") from exc
