"""
semsummarize - text summarization / generation service core.

Quick Start:
    from semsummarize import GenerationEngine, GenerationRequest, SessionGuard, get_adapter

    adapter = get_adapter("seq2seq")
    adapter.load("google/flan-t5-small")
    guard = SessionGuard(GenerationEngine(adapter))
    result = guard.generate(GenerationRequest(prompt="summarize: ...", max_new_tokens=60))
    print(result.text)

Submodules:
    - semsummarize.engine: adapters, sampling, decode loop, session guard
    - semsummarize.proxy: retrying client for an upstream chat backend
"""

from semsummarize._version import __version__

from semsummarize.engine.errors import (
    DecodingError,
    EncodingError,
    ForwardPassError,
    GenerationError,
)
from semsummarize.engine.generation import EngineConfig, GenerationEngine, decode_loop
from semsummarize.engine.registry import detect_model_family, get_adapter, list_model_families
from semsummarize.engine.sampling import LogitsProcessor, apply_repeat_penalty
from semsummarize.engine.session import SessionGuard
from semsummarize.engine.tokenizer import TokenizerAdapter
from semsummarize.engine.types import GenerationRequest, GenerationResult, SamplingParams

__all__ = [
    # Version
    "__version__",
    # Errors
    "GenerationError",
    "EncodingError",
    "DecodingError",
    "ForwardPassError",
    # Engine
    "EngineConfig",
    "GenerationEngine",
    "decode_loop",
    "SessionGuard",
    "LogitsProcessor",
    "apply_repeat_penalty",
    "TokenizerAdapter",
    # Adapters
    "get_adapter",
    "detect_model_family",
    "list_model_families",
    # Types
    "GenerationRequest",
    "GenerationResult",
    "SamplingParams",
]
