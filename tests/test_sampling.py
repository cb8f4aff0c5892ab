import math

import numpy as np
import pytest

from trackroute.exceptions import ConfigurationError
from trackroute.sampling import (
    AdaptiveSampler,
    SamplingEngine,
    adaptive_rate,
    check_sample_rate,
    normalized_hash,
    percentage_to_rate,
    rate_to_percentage,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_boundary_rates():
    engine = SamplingEngine(seed=1)
    assert all(engine.should_sample_uniform(1.0) for _ in range(200))
    assert not any(engine.should_sample_uniform(0.0) for _ in range(200))
    assert engine.should_sample_deterministic("user_1", 1.0)
    assert not engine.should_sample_deterministic("user_1", 0.0)


def test_uniform_sampling_is_reproducible_with_injected_generator():
    a = SamplingEngine(rng=np.random.default_rng(7))
    b = SamplingEngine(rng=np.random.default_rng(7))
    assert [a.should_sample(0.3) for _ in range(50)] == [b.should_sample(0.3) for _ in range(50)]


def test_uniform_sampling_rate_is_roughly_respected():
    engine = SamplingEngine(seed=42)
    hits = sum(engine.should_sample_uniform(0.25) for _ in range(4000))
    assert 0.2 < hits / 4000 < 0.3


def test_deterministic_sampling_is_idempotent():
    engine = SamplingEngine(seed=0)
    first = [engine.should_sample_deterministic(f"user_{i}", 0.5) for i in range(100)]
    again = [SamplingEngine(seed=99).should_sample_deterministic(f"user_{i}", 0.5) for i in range(100)]
    assert first == again
    assert 0 < sum(first) < 100


def test_deterministic_sampling_is_monotonic_in_rate():
    engine = SamplingEngine()
    for i in range(50):
        key = f"session_{i}"
        if engine.should_sample_deterministic(key, 0.2):
            assert engine.should_sample_deterministic(key, 0.6)


def test_should_sample_uses_key_when_given():
    engine = SamplingEngine(seed=3)
    expected = normalized_hash("user_42") < 0.5
    assert engine.should_sample(0.5, key="user_42") == expected


def test_bucketed_sampling():
    engine = SamplingEngine()
    bucket = engine.sampling_bucket("user_9", 10)
    assert 0 <= bucket < 10
    assert engine.should_sample_bucketed("user_9", 10, [bucket])
    assert not engine.should_sample_bucketed("user_9", 10, [b for b in range(10) if b != bucket])
    assert engine.sampling_bucket("user_9", 0) == 0


def test_backoff_reduces_rate_for_repeated_events():
    engine = SamplingEngine(seed=5)
    assert engine.should_sample_with_backoff(1, 1.0)
    # 1.0 * 0.5**(40-1) is effectively zero
    assert not any(engine.should_sample_with_backoff(40, 1.0) for _ in range(100))


@pytest.mark.parametrize("rate", [-0.1, 1.5, math.nan, math.inf])
def test_invalid_rates_rejected(rate):
    with pytest.raises(ConfigurationError) as exc_info:
        check_sample_rate(rate)
    assert exc_info.value.field_name == "sample_rate"


def test_percentage_conversions_clamp():
    assert rate_to_percentage(0.25) == 25.0
    assert rate_to_percentage(2.0) == 100.0
    assert percentage_to_rate(50) == 0.5
    assert percentage_to_rate(-10) == 0.0


def test_adaptive_rate():
    assert adaptive_rate(0, 100) == 1.0
    assert adaptive_rate(50, 100) == 1.0
    assert adaptive_rate(400, 100) == 0.25


def test_adaptive_sampler_recomputes_rate_once_per_window():
    clock = FakeClock()
    sampler = AdaptiveSampler(10, window_seconds=60, engine=SamplingEngine(seed=1), clock=clock)

    # first window samples everything
    assert all(sampler.should_sample() for _ in range(40))
    assert sampler.effective_rate == 1.0

    clock.now = 61.0
    assert sampler.effective_rate == pytest.approx(0.25)
    assert sampler.observed_in_window == 0

    # rate stays fixed within the window no matter how many events arrive
    for _ in range(100):
        sampler.should_sample()
    assert sampler.effective_rate == pytest.approx(0.25)

    clock.now = 121.0
    assert sampler.effective_rate == pytest.approx(0.1)


def test_adaptive_sampler_idle_gap_resets_rate():
    clock = FakeClock()
    sampler = AdaptiveSampler(10, window_seconds=60, clock=clock)
    for _ in range(100):
        sampler.should_sample()
    clock.now = 200.0
    assert sampler.effective_rate == 1.0


def test_adaptive_sampler_reset():
    clock = FakeClock()
    sampler = AdaptiveSampler(5, window_seconds=10, clock=clock)
    for _ in range(50):
        sampler.should_sample()
    clock.now = 11.0
    assert sampler.effective_rate < 1.0
    sampler.reset()
    assert sampler.effective_rate == 1.0
    assert sampler.observed_in_window == 0


def test_adaptive_sampler_rejects_bad_parameters():
    with pytest.raises(ConfigurationError):
        AdaptiveSampler(0)
    with pytest.raises(ConfigurationError):
        AdaptiveSampler(10, window_seconds=0)
