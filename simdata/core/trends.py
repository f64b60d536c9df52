"""Reusable trend policies.

A trend turns ``(phase_day, prior_value, random_source, same_day_values)``
into the next integer value of a metric. Policies are declarative pydantic
models, discriminated by ``shape``, so scenario files describe the shape of a
metric instead of the code that computes it.

Random draws happen only for positive bounds: ``jitter: 1`` still consumes a
draw (and yields 0), ``jitter: 0`` consumes nothing. The order of draws is part
of the reproducibility contract.
"""

from __future__ import annotations

from typing import Annotated, Literal, Mapping, Optional, Union

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict

from simdata.core.random_source import RandomSource


def _draw(rng: RandomSource, bound: int) -> int:
    return rng.randint(bound) if bound > 0 else 0


class _TrendBase(BaseModel):
    # Every generated metric is a non-negative integer unless a scenario says otherwise.
    minimum: int = 0
    maximum: Optional[int] = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.maximum is not None and self.maximum < self.minimum:
            raise ValueError(f"maximum ({self.maximum}) < minimum ({self.minimum})")
        return self

    def clamp(self, value: int) -> int:
        value = max(self.minimum, value)
        if self.maximum is not None:
            value = min(self.maximum, value)
        return value

    def references(self) -> tuple[str, ...]:
        return ()


class Constant(_TrendBase):
    shape: Literal["constant"] = "constant"
    value: int

    def evaluate(self, day: int, prior: Optional[int], rng: RandomSource, refs: Mapping[str, int]) -> int:
        return self.clamp(self.value)


class StableJitter(_TrendBase):
    """``base + slope * (day // slope_every) + rand(jitter + jitter_slope * day)``.

    With the default ``slope: 0`` this is the plain stable-with-jitter shape;
    a slope expresses a stateless ramp such as "100 + 10 lines a day".
    ``jitter_slope`` widens the noise as the phase goes on.
    """

    shape: Literal["stable"] = "stable"
    base: int
    jitter: int = Field(default=0, ge=0)
    slope: int = 0
    slope_every: int = Field(default=1, ge=1)
    jitter_slope: int = Field(default=0, ge=0)

    def evaluate(self, day: int, prior: Optional[int], rng: RandomSource, refs: Mapping[str, int]) -> int:
        noise = _draw(rng, self.jitter + self.jitter_slope * day)
        value = self.base + self.slope * (day // self.slope_every) + noise
        return self.clamp(value)


class LinearDrift(_TrendBase):
    """Carried value that moves by ``step + rand(step_jitter)`` every ``every`` days.

    The step is applied before the value is reported, including on day 0.
    With ``every_jitter`` the period is redrawn each day as
    ``every + rand(every_jitter)``.
    """

    shape: Literal["linear_drift"] = "linear_drift"
    start: int
    step: int = 0
    step_jitter: int = Field(default=0, ge=0)
    every: int = Field(default=1, ge=1)
    every_jitter: int = Field(default=0, ge=0)

    def evaluate(self, day: int, prior: Optional[int], rng: RandomSource, refs: Mapping[str, int]) -> int:
        value = self.start if prior is None else prior
        every = self.every + _draw(rng, self.every_jitter)
        if day % every == 0:
            value += self.step + _draw(rng, self.step_jitter)
        return self.clamp(value)


class CyclicGrowth(_TrendBase):
    """Carried value that grows by ``factor * (day % period) ** 2``.

    Growth restarts every ``period`` days, giving a deterministic sawtooth of
    increments.
    """

    shape: Literal["cyclic_growth"] = "cyclic_growth"
    start: int
    period: int = Field(ge=1)
    factor: int = 1

    def evaluate(self, day: int, prior: Optional[int], rng: RandomSource, refs: Mapping[str, int]) -> int:
        value = self.start if prior is None else prior
        value += self.factor * (day % self.period) ** 2
        return self.clamp(value)


class PhasedStep(_TrendBase):
    """Low activity until ``switch_day``, then a step to a (possibly rising) high level."""

    shape: Literal["phased_step"] = "phased_step"
    switch_day: int = Field(ge=0)
    low: int
    high: int
    low_jitter: int = Field(default=0, ge=0)
    high_jitter: int = Field(default=0, ge=0)
    high_slope: int = 0

    def evaluate(self, day: int, prior: Optional[int], rng: RandomSource, refs: Mapping[str, int]) -> int:
        if day < self.switch_day:
            value = self.low + _draw(rng, self.low_jitter)
        else:
            value = self.high + self.high_slope * (day - self.switch_day) + _draw(rng, self.high_jitter)
        return self.clamp(value)


class InverseDecay(_TrendBase):
    """``start - step * day + rand(jitter)``, floored at ``minimum``."""

    shape: Literal["inverse_decay"] = "inverse_decay"
    start: int
    step: int = Field(ge=0)
    jitter: int = Field(default=0, ge=0)

    def evaluate(self, day: int, prior: Optional[int], rng: RandomSource, refs: Mapping[str, int]) -> int:
        value = self.start - self.step * day + _draw(rng, self.jitter)
        return self.clamp(value)


class Relative(_TrendBase):
    """Value derived from an earlier track of the same day.

    ``below``: ``ref + offset - rand(jitter)`` (e.g. commit sizes close to the file size).
    ``within``: ``rand(ref)``, i.e. anywhere below the referenced value.
    """

    shape: Literal["relative"] = "relative"
    ref: str
    mode: Literal["below", "within"] = "below"
    jitter: int = Field(default=0, ge=0)
    offset: int = 0

    def references(self) -> tuple[str, ...]:
        return (self.ref,)

    def evaluate(self, day: int, prior: Optional[int], rng: RandomSource, refs: Mapping[str, int]) -> int:
        base = refs[self.ref]
        if self.mode == "within":
            return self.clamp(_draw(rng, base))
        return self.clamp(base + self.offset - _draw(rng, self.jitter))


Trend = Annotated[
    Union[Constant, StableJitter, LinearDrift, CyclicGrowth, PhasedStep, InverseDecay, Relative],
    Field(discriminator="shape"),
]
