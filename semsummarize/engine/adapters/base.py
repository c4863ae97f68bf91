"""Base adapter interface for model backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    import torch

    from ..tokenizer import TokenizerAdapter


class BaseAdapter(ABC):
    """
    Abstract base class for model backends.

    The generation engine drives every backend through the same two hooks:

    - `begin(prompt_ids)` runs once per request. It must leave the backend in a
      clean state (fresh cache / fresh encoder state) and returns the initial
      token sequence the loop appends to.
    - `next_token_logits(sequence, step)` returns the next-token logits for the
      current sequence. How much of the sequence is actually fed to the model
      is the backend's business.

    Adapters are NOT thread-safe; callers serialize access (see `SessionGuard`).
    """

    family: str = "base"

    @abstractmethod
    def load(self, model_path: str, **kwargs) -> None:
        """
        Load model and tokenizer from the given path or HF repo.

        Args:
            model_path: Local path or HF Hub model identifier.
            **kwargs: Model-specific loading options (dtype, device, etc.).
        """
        pass

    @property
    @abstractmethod
    def tokenizer(self) -> TokenizerAdapter | None:
        """Tokenizer paired with the loaded model, or None before `load()`."""
        pass

    @property
    @abstractmethod
    def eos_token_id(self) -> int:
        """Token id that ends generation. Fixed per backend."""
        pass

    @abstractmethod
    def begin(self, prompt_ids: Sequence[int]) -> list[int]:
        """
        Prepare per-request state and return the initial sequence.

        Args:
            prompt_ids: Encoded prompt.

        Returns:
            The sequence generation starts from. Tokens produced by the loop are
            appended after it and everything before them is excluded from output.
        """
        pass

    @abstractmethod
    def next_token_logits(self, sequence: Sequence[int], step: int) -> torch.Tensor:
        """
        Run one forward step.

        Args:
            sequence: Initial sequence plus every token generated so far.
            step: Zero-based loop iteration.

        Returns:
            1-D logits over the vocabulary for the next position.

        Raises:
            ForwardPassError: If the forward pass fails.
        """
        pass

    @property
    @abstractmethod
    def model_info(self) -> dict[str, Any]:
        """
        Return metadata about the loaded model.

        Returns:
            Dict with keys like 'model_path', 'model_family', 'dtype', 'device'.
        """
        pass

    def unload(self) -> None:
        """
        Unload the model and free resources.

        Default implementation does nothing; override if cleanup is needed.
        """
        pass


class TransformersAdapter(BaseAdapter):
    """Shared loading / teardown for backends built on `transformers` models."""

    def __init__(self, *, use_cache: bool = False) -> None:
        self._model = None
        self._tokenizer: TokenizerAdapter | None = None
        self._model_path: str | None = None
        self._device: str = "cpu"
        self._dtype = None
        self._use_cache = bool(use_cache)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def model(self):
        """Access the underlying model (for advanced use cases)."""
        return self._model

    @property
    def tokenizer(self) -> TokenizerAdapter | None:
        return self._tokenizer

    @property
    def device(self) -> str:
        """Device the model is loaded on."""
        return self._device

    @property
    def use_cache(self) -> bool:
        return self._use_cache

    @property
    def model_info(self) -> dict[str, Any]:
        from dataclasses import asdict

        from ..types import ModelInfo

        info = ModelInfo(
            model_path=self._model_path,
            model_family=self.family,
            dtype=str(self._dtype),
            device=self._device,
            use_cache=self._use_cache,
            extra={"loaded": self._model is not None},
        )
        return asdict(info)

    # -------------------------------------------------------------------------
    # Loading / Unloading
    # -------------------------------------------------------------------------

    def load(self, model_path: str, **kwargs) -> None:
        """Load a model and its tokenizer.

        Args:
            model_path: Path to the model (local or HF hub).
            device: Device to move the model to (default: "cpu").
            dtype: Torch dtype (default: torch.float32).
            use_cache: Enable incremental KV caching (default: adapter setting).
            tokenizer: Pre-built `TokenizerAdapter` to use instead of loading one.
            **kwargs: Additional kwargs passed to from_pretrained().
        """
        import torch

        from ..tokenizer import TokenizerAdapter

        self._model_path = model_path
        self._device = kwargs.pop("device", "cpu")
        self._dtype = kwargs.pop("dtype", torch.float32)
        if "use_cache" in kwargs:
            self._use_cache = bool(kwargs.pop("use_cache"))
        tokenizer = kwargs.pop("tokenizer", None)

        if tokenizer is None:
            tokenizer = TokenizerAdapter.from_pretrained(model_path)

        model = self._auto_model_class().from_pretrained(
            model_path,
            torch_dtype=self._dtype,
            **kwargs,
        )
        self.attach(model, tokenizer)

    def attach(self, model: Any, tokenizer: TokenizerAdapter | None = None) -> None:
        """Adopt an already constructed model (and optional tokenizer)."""
        self._model = model.to(self._device)
        self._model.eval()
        self._dtype = getattr(model, "dtype", self._dtype)
        if tokenizer is not None:
            self._tokenizer = tokenizer
        self._reset_request_state()

    def unload(self) -> None:
        """Drop the model and free memory."""
        import gc

        import torch

        self._reset_request_state()
        self._model = None
        self._tokenizer = None

        gc.collect()
        if torch.cuda.is_available():
            torch.cuda.empty_cache()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _auto_model_class(self) -> Any:
        raise NotImplementedError

    def _reset_request_state(self) -> None:
        """Forget any per-request state (cache, encoder output)."""
        pass

    def _ensure_loaded(self) -> None:
        if self._model is None:
            raise RuntimeError(f"{type(self).__name__}: model not loaded. Call load() first.")

    def _as_input_ids(self, ids: Sequence[int]) -> torch.Tensor:
        import torch

        return torch.tensor([list(ids)], dtype=torch.long, device=self._model.device)

    def _config_token_id(self, name: str) -> int | None:
        value = getattr(getattr(self._model, "config", None), name, None)
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        return None if value is None else int(value)
