"""Typed failures raised by the generation core.

The HTTP layer maps every `GenerationError` to an opaque "generation failed"
response; the engine itself never retries.
"""

from __future__ import annotations


class GenerationError(RuntimeError):
    """Base class for failures inside a single generation call."""


class EncodingError(GenerationError):
    """Prompt text could not be converted into token ids."""


class DecodingError(GenerationError):
    """Token ids could not be converted back into text (e.g. out of vocabulary)."""


class ForwardPassError(GenerationError):
    """The model forward pass failed, most often from a stale or mismatched cache."""
