import pytest
from pydantic import TypeAdapter, ValidationError

from simdata.core.trends import (
    Constant,
    CyclicGrowth,
    InverseDecay,
    LinearDrift,
    PhasedStep,
    Relative,
    StableJitter,
    Trend,
)


class _ScriptedRandom:
    """Returns scripted draws and records the bounds it was asked for."""

    def __init__(self, *draws: int) -> None:
        self._draws = list(draws)
        self.bounds: list[int] = []

    def randint(self, bound: int) -> int:
        self.bounds.append(bound)
        value = self._draws.pop(0) if self._draws else 0
        assert 0 <= value < bound
        return value


def test_constant_never_draws() -> None:
    rng = _ScriptedRandom()

    assert Constant(value=2).evaluate(3, None, rng, {}) == 2
    assert rng.bounds == []


def test_stable_with_jitter_and_slope() -> None:
    trend = StableJitter(base=100, slope=10, jitter=10)
    rng = _ScriptedRandom(9, 7)

    assert trend.evaluate(0, None, rng, {}) == 109
    assert trend.evaluate(2, None, rng, {}) == 127
    assert rng.bounds == [10, 10]


def test_stable_slope_every_steps_down_in_blocks() -> None:
    trend = StableJitter(base=4, slope=-1, slope_every=15)
    rng = _ScriptedRandom()

    assert [trend.evaluate(d, None, rng, {}) for d in (0, 14, 15, 29, 30)] == [4, 4, 3, 3, 2]
    assert rng.bounds == []


def test_zero_jitter_consumes_no_draw_but_one_does() -> None:
    rng = _ScriptedRandom()
    StableJitter(base=1).evaluate(0, None, rng, {})
    assert rng.bounds == []

    assert StableJitter(base=0, jitter=1).evaluate(0, None, rng, {}) == 0
    assert rng.bounds == [1]


def test_linear_drift_carries_prior_and_steps_every_n_days() -> None:
    trend = LinearDrift(start=80, step=0, step_jitter=5, every=4, maximum=95)
    rng = _ScriptedRandom(4, 3)

    day0 = trend.evaluate(0, None, rng, {})
    day1 = trend.evaluate(1, day0, rng, {})
    day4 = trend.evaluate(4, day1, rng, {})

    assert (day0, day1, day4) == (84, 84, 87)
    assert rng.bounds == [5, 5]


def test_linear_drift_clamps_to_ceiling_and_floor() -> None:
    up = LinearDrift(start=94, step=3, maximum=95)
    down = LinearDrift(start=4, step=-5)
    rng = _ScriptedRandom()

    assert up.evaluate(0, None, rng, {}) == 95
    assert down.evaluate(0, None, rng, {}) == 0


def test_phased_step_switches_to_high_level() -> None:
    trend = PhasedStep(switch_day=3, low=20, low_jitter=10, high=1000, high_slope=100, high_jitter=200)
    rng = _ScriptedRandom(5, 5, 5, 50, 50)

    values = [trend.evaluate(d, None, rng, {}) for d in range(5)]

    assert values == [25, 25, 25, 1050, 1150]
    assert rng.bounds == [10, 10, 10, 200, 200]


def test_inverse_decay_floors_at_minimum() -> None:
    trend = InverseDecay(start=90, step=10, jitter=3)
    rng = _ScriptedRandom(2, 0)

    assert trend.evaluate(0, None, rng, {}) == 92
    assert trend.evaluate(4, None, rng, {}) == 50
    assert InverseDecay(start=10, step=10, minimum=0).evaluate(5, None, rng, {}) == 0


def test_relative_below_and_within() -> None:
    rng = _ScriptedRandom(7, 300)
    refs = {"size": 480}

    assert Relative(ref="size", jitter=20).evaluate(0, None, rng, refs) == 473
    assert Relative(ref="size", mode="within").evaluate(0, None, rng, refs) == 300
    assert rng.bounds == [20, 480]


def test_relative_within_zero_reference_does_not_draw() -> None:
    rng = _ScriptedRandom()

    assert Relative(ref="size", mode="within").evaluate(0, None, rng, {"size": 0}) == 0
    assert rng.bounds == []
    assert Relative(ref="size").references() == ("size",)


def test_trend_union_parses_by_shape() -> None:
    adapter = TypeAdapter(Trend)

    parsed = adapter.validate_python({"shape": "inverse_decay", "start": 90, "step": 10, "jitter": 3})

    assert isinstance(parsed, InverseDecay)
    assert parsed.step == 10


def test_trend_rejects_unknown_shape_and_fields() -> None:
    adapter = TypeAdapter(Trend)

    with pytest.raises(ValidationError):
        adapter.validate_python({"shape": "sinusoidal", "base": 1})
    with pytest.raises(ValidationError):
        adapter.validate_python({"shape": "stable", "base": 1, "jiter": 3})


def test_trend_rejects_inverted_bounds() -> None:
    with pytest.raises(ValidationError, match="maximum"):
        StableJitter(base=1, minimum=10, maximum=5)


def test_stable_jitter_widens_with_jitter_slope() -> None:
    trend = StableJitter(base=30000, slope=34, jitter=26, jitter_slope=26)
    rng = _ScriptedRandom(25, 51, 100)

    assert trend.evaluate(0, None, rng, {}) == 30025
    assert trend.evaluate(1, None, rng, {}) == 30085
    assert trend.evaluate(4, None, rng, {}) == 30236
    assert rng.bounds == [26, 52, 130]


def test_linear_drift_redraws_period_each_day() -> None:
    trend = LinearDrift(start=5, step_jitter=5, every=2, every_jitter=4)
    # day 3 with period 2+1 steps by 4; day 5 with period 2+2 does not step.
    rng = _ScriptedRandom(1, 4, 2)

    assert trend.evaluate(3, 5, rng, {}) == 9
    assert trend.evaluate(5, 9, rng, {}) == 9
    assert rng.bounds == [4, 5, 4]


def test_cyclic_growth_is_deterministic_sawtooth() -> None:
    trend = CyclicGrowth(start=300000, period=15)
    rng = _ScriptedRandom()

    values = []
    prior = None
    for day in range(17):
        prior = trend.evaluate(day, prior, rng, {})
        values.append(prior)

    assert values[:3] == [300000, 300001, 300005]
    assert values[14] == 300000 + sum(k * k for k in range(15))
    assert values[15] == values[14]
    assert values[16] == values[15] + 1
    assert rng.bounds == []
