# Model-agnostic generation engine
#
# This package runs autoregressive generation for encoder-decoder and
# decoder-only models behind one interface.
#
# Key components:
#   - adapters/      Model backends (seq2seq, causal)
#   - registry.py    Maps model families to adapters
#   - tokenizer.py   Text <-> token ids
#   - sampling.py    Repetition penalty + temperature / top-p sampling
#   - generation.py  Shared decode loop and GenerationEngine
#   - session.py     SessionGuard: one generation at a time
#   - types.py       Engine request/response types
#   - errors.py      EncodingError / DecodingError / ForwardPassError
