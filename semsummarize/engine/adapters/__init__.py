# Model backends
#
# Each adapter implements a common interface for:
#   - Loading model + tokenizer
#   - Resetting per-request state (KV cache / encoder output)
#   - Producing next-token logits for the shared decode loop
#
# The engine uses adapters to stay architecture-agnostic.

from .base import BaseAdapter, TransformersAdapter
from .causal import CausalLMAdapter
from .seq2seq import Seq2SeqAdapter

__all__ = ["BaseAdapter", "TransformersAdapter", "CausalLMAdapter", "Seq2SeqAdapter"]
