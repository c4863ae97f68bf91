import pytest

torch = pytest.importorskip("torch", reason="torch not installed")

from semsummarize.engine.sampling import LogitsProcessor, apply_repeat_penalty
from semsummarize.engine.types import SamplingParams


def test_repeat_penalty_lowers_positive_scores() -> None:
    logits = torch.tensor([2.0, 4.0, 1.0, 3.0])
    out = apply_repeat_penalty(logits, 1.1, [1, 3])

    assert out[1].item() == pytest.approx(4.0 / 1.1)
    assert out[3].item() == pytest.approx(3.0 / 1.1)
    assert out[1] < logits[1]
    assert out[3] < logits[3]
    # Untouched ids keep their score.
    assert out[0].item() == 2.0
    assert out[2].item() == 1.0


def test_repeat_penalty_pushes_negative_scores_further_down() -> None:
    logits = torch.tensor([-2.0, 0.5])
    out = apply_repeat_penalty(logits, 1.5, [0])
    assert out[0].item() == pytest.approx(-3.0)
    assert out[0] < logits[0]


def test_repeat_penalty_counts_each_id_once() -> None:
    logits = torch.tensor([1.0, 8.0])
    out = apply_repeat_penalty(logits, 2.0, [1, 1, 1, 1])
    assert out[1].item() == pytest.approx(4.0)


def test_repeat_penalty_does_not_mutate_input() -> None:
    logits = torch.tensor([1.0, 8.0])
    apply_repeat_penalty(logits, 2.0, [1])
    assert logits.tolist() == [1.0, 8.0]


def test_repeat_penalty_noop_cases() -> None:
    logits = torch.tensor([1.0, 8.0])
    assert torch.equal(apply_repeat_penalty(logits, 1.0, [1]), logits)
    assert torch.equal(apply_repeat_penalty(logits, 1.3, []), logits)
    # Ids outside the vocabulary are ignored rather than raising.
    assert apply_repeat_penalty(logits, 2.0, [99]).tolist() == [1.0, 8.0]


@pytest.mark.parametrize("temperature", [None, 0.0, 1e-9])
def test_greedy_when_temperature_unset_or_zero(temperature) -> None:
    proc = LogitsProcessor(seed=1, temperature=temperature)
    assert proc.is_greedy
    logits = torch.tensor([0.1, 0.2, 5.0, 0.3])
    assert [proc.sample(logits) for _ in range(5)] == [2] * 5


def test_sampling_is_reproducible_for_a_given_seed() -> None:
    logits = torch.zeros(50)
    a = LogitsProcessor(seed=1234, temperature=1.0)
    b = LogitsProcessor(seed=1234, temperature=1.0)
    draws_a = [a.sample(logits) for _ in range(20)]
    draws_b = [b.sample(logits) for _ in range(20)]
    assert draws_a == draws_b
    # A uniform distribution over 50 ids should not collapse to a single id.
    assert len(set(draws_a)) > 1


def test_generator_is_not_reseeded_between_draws() -> None:
    logits = torch.zeros(1000)
    proc = LogitsProcessor(seed=7, temperature=1.0)
    first = [proc.sample(logits) for _ in range(10)]
    second = [proc.sample(logits) for _ in range(10)]
    assert first != second


def test_low_temperature_behaves_like_argmax() -> None:
    proc = LogitsProcessor(seed=0, temperature=0.01)
    logits = torch.tensor([1.0, 3.0, 2.0])
    assert all(proc.sample(logits) == 1 for _ in range(20))


def test_top_p_keeps_only_the_nucleus() -> None:
    # Softmax of these is ~[0.84, 0.11, 0.04, 0.01]; top_p=0.5 keeps only id 0.
    logits = torch.tensor([4.0, 2.0, 1.0, 0.0])
    proc = LogitsProcessor(seed=3, temperature=1.0, top_p=0.5)
    assert all(proc.sample(logits) == 0 for _ in range(50))


def test_top_p_keeps_the_token_that_crosses_the_threshold() -> None:
    logits = torch.tensor([0.0, 0.0, -50.0])  # ~[0.5, 0.5, 0.0]
    proc = LogitsProcessor(seed=3, temperature=1.0, top_p=0.6)
    draws = {proc.sample(logits) for _ in range(100)}
    assert draws == {0, 1}


def test_sampling_fp16_logits_do_not_overflow() -> None:
    logits = torch.tensor([10000.0, -10000.0, 0.0], dtype=torch.float16)
    proc = LogitsProcessor(seed=0, temperature=0.1)
    assert proc.sample(logits) == 0


def test_sampling_falls_back_to_argmax_when_probs_are_nan() -> None:
    logits = torch.tensor([float("nan"), float("nan"), float("nan")])
    proc = LogitsProcessor(seed=0, temperature=0.7)
    # Greedy fallback (argmax) returns 0 by PyTorch convention for all-NaN.
    assert proc.sample(logits) == 0


def test_invalid_parameters_raise() -> None:
    with pytest.raises(ValueError):
        LogitsProcessor(temperature=-1.0)
    with pytest.raises(ValueError):
        LogitsProcessor(temperature=1.0, top_p=0.0)


def test_from_params_copies_sampling_fields() -> None:
    proc = LogitsProcessor.from_params(SamplingParams(temperature=0.5, top_p=0.9, seed=42))
    assert proc.temperature == 0.5
    assert proc.top_p == 0.9
    assert proc.seed == 42
