"""Lookup from architecture family ("seq2seq", "causal") to backend adapter."""

from typing import Type

from .adapters.base import BaseAdapter
from .adapters.causal import CausalLMAdapter
from .adapters.seq2seq import Seq2SeqAdapter

_ADAPTER_REGISTRY: dict[str, Type[BaseAdapter]] = {
    "seq2seq": Seq2SeqAdapter,
    "causal": CausalLMAdapter,
}


def get_adapter(model_family: str, **kwargs) -> BaseAdapter:
    """
    Build an unloaded adapter for `model_family`.

    Args:
        model_family: A registered family name (see `list_model_families()`).
        **kwargs: Constructor options, e.g. `use_cache=True`. Both built-in
            families accept `use_cache`; the causal one only accepts True.

    Raises:
        ValueError: For an unregistered family, or options the adapter rejects.
    """
    adapter_cls = _ADAPTER_REGISTRY.get(model_family)
    if adapter_cls is None:
        available = ", ".join(_ADAPTER_REGISTRY)
        raise ValueError(f"Unknown model family: {model_family!r}. Available: {available}")
    return adapter_cls(**kwargs)


def register_adapter(model_family: str, adapter_cls: Type[BaseAdapter]) -> None:
    """Make `adapter_cls` available under `model_family`, replacing any previous entry."""
    _ADAPTER_REGISTRY[model_family] = adapter_cls


def list_model_families() -> list[str]:
    return list(_ADAPTER_REGISTRY)


def detect_model_family(model_path: str, **kwargs) -> str:
    """Pick "seq2seq" or "causal" from the model's config."""
    from transformers import AutoConfig

    config = AutoConfig.from_pretrained(model_path, **kwargs)
    return "seq2seq" if getattr(config, "is_encoder_decoder", False) else "causal"
