import pytest

from semsummarize.engine.adapters import CausalLMAdapter, Seq2SeqAdapter
from semsummarize.engine.registry import (
    detect_model_family,
    get_adapter,
    list_model_families,
    register_adapter,
)


def test_builtin_families() -> None:
    assert set(list_model_families()) >= {"seq2seq", "causal"}
    assert isinstance(get_adapter("causal"), CausalLMAdapter)

    adapter = get_adapter("seq2seq", use_cache=True)
    assert isinstance(adapter, Seq2SeqAdapter)
    assert adapter.use_cache is True
    assert get_adapter("seq2seq").use_cache is False


@pytest.mark.parametrize("family", ["seq2seq", "causal"])
def test_use_cache_option_is_accepted_by_every_family(family) -> None:
    adapter = get_adapter(family, use_cache=True)
    assert adapter.use_cache is True
    assert adapter.model_info["use_cache"] is True


def test_causal_adapter_rejects_disabling_the_cache() -> None:
    with pytest.raises(ValueError):
        get_adapter("causal", use_cache=False)
    with pytest.raises(ValueError):
        CausalLMAdapter().load("unused/path", use_cache=False)
    assert CausalLMAdapter().use_cache is True


def test_unknown_family_lists_available() -> None:
    with pytest.raises(ValueError, match="seq2seq"):
        get_adapter("rwkv")


def test_register_adapter(monkeypatch) -> None:
    import semsummarize.engine.registry as registry

    monkeypatch.setattr(registry, "_ADAPTER_REGISTRY", dict(registry._ADAPTER_REGISTRY))

    class _Custom(Seq2SeqAdapter):
        family = "custom"

    register_adapter("custom", _Custom)
    assert "custom" in list_model_families()
    assert isinstance(get_adapter("custom"), _Custom)


def test_detect_model_family_reads_config(tmp_path) -> None:
    transformers = pytest.importorskip("transformers", reason="transformers not installed")

    t5_dir = tmp_path / "t5"
    transformers.T5Config(d_model=16, num_layers=1, num_heads=1).save_pretrained(t5_dir)
    gpt_dir = tmp_path / "gpt2"
    transformers.GPT2Config(n_embd=16, n_layer=1, n_head=1).save_pretrained(gpt_dir)

    assert detect_model_family(str(t5_dir)) == "seq2seq"
    assert detect_model_family(str(gpt_dir)) == "causal"
