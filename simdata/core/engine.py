from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterator, Optional

from simdata.core.event_builder import MetricEventBuilder
from simdata.core.random_source import RandomSource
from simdata.core.trends import Trend
from simdata.schemas.events import MetricEvent, SensorDataType
from simdata.schemas.scenario import (
    BuildTrack,
    CodeIssueTrack,
    CommitTrack,
    ComplexityTrack,
    CouplingTrack,
    CoverageTrack,
    DevTimeTrack,
    FileSizeTrack,
    ScenarioDefinition,
    UnitTestTrack,
)
from simdata.utils.exceptions import InvariantViolationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventOrigin:
    """Where an event came from; attached to submission failures."""

    scenario: str
    phase: str
    day: int
    date: date
    metric: str
    track: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "phase": self.phase,
            "day": self.day,
            "date": self.date.isoformat(),
            "metric": self.metric,
            "track": self.track,
        }


@dataclass
class DayEvents:
    scenario: str
    phase: str
    day: int
    phase_day: int
    date: date
    # Track values of the day, keyed by track name.
    values: dict[str, int] = field(default_factory=dict)
    events: list[tuple[MetricEvent, EventOrigin]] = field(default_factory=list)


@dataclass
class _Draft:
    owner_id: str
    kind: SensorDataType
    resource: str
    base: datetime
    origin: EventOrigin
    run_group: Optional[datetime] = None
    properties: dict[str, Any] = field(default_factory=dict)


class _DayContext:
    def __init__(
        self,
        *,
        phase_day: int,
        day_ts: datetime,
        rng: RandomSource,
        carried: dict[str, int],
    ) -> None:
        self.phase_day = phase_day
        self.day_ts = day_ts
        self.rng = rng
        self.carried = carried
        self.values: dict[str, int] = {}

    def evaluate(self, trend: Trend, key: str) -> int:
        value = trend.evaluate(self.phase_day, self.carried.get(key), self.rng, self.values)
        self.carried[key] = value
        return value


class TrendEngine:
    """Turns a ScenarioDefinition into MetricEvents, day by day.

    Tracks are evaluated in declared order, so the random draws (and thus the
    generated values) only depend on the scenario data and the seed. Each
    call to ``generate`` takes a fresh random source from ``rng_factory``.
    """

    def __init__(self, *, rng_factory: Callable[[], RandomSource]) -> None:
        self._rng_factory = rng_factory
        self._handlers: dict[type, Callable[[Any, _DayContext, EventOrigin], list[_Draft]]] = {
            DevTimeTrack: self._dev_time,
            FileSizeTrack: self._file_size,
            BuildTrack: self._builds,
            UnitTestTrack: self._unit_tests,
            CoverageTrack: self._coverage,
            CommitTrack: self._commits,
            ComplexityTrack: self._complexity,
            CouplingTrack: self._coupling,
            CodeIssueTrack: self._code_issues,
        }

    def generate(self, scenario: ScenarioDefinition, builder: MetricEventBuilder) -> Iterator[DayEvents]:
        rng = self._rng_factory()
        last_timestamp: Optional[datetime] = None

        for offset, phase in scenario.phase_ranges():
            logger.debug(
                "simdata.engine.phase scenario=%s phase=%s first_day=%d days=%d tracks=%d",
                scenario.name,
                phase.name,
                offset,
                phase.duration_days,
                len(phase.tracks),
            )
            # Running values are carried across days within a phase only.
            carried: dict[str, int] = {}

            for phase_day in range(phase.duration_days):
                day = offset + phase_day
                day_ts = scenario.day_timestamp(day)
                ctx = _DayContext(phase_day=phase_day, day_ts=day_ts, rng=rng, carried=carried)

                drafts: list[_Draft] = []
                for track in phase.tracks:
                    origin = EventOrigin(
                        scenario=scenario.name,
                        phase=phase.name,
                        day=day,
                        date=day_ts.date(),
                        metric=track.metric,
                        track=str(track.name),
                    )
                    drafts.extend(self._handlers[type(track)](track, ctx, origin))

                # Stable: events sharing a base keep their declared order.
                drafts.sort(key=lambda d: d.base)

                out = DayEvents(
                    scenario=scenario.name,
                    phase=phase.name,
                    day=day,
                    phase_day=phase_day,
                    date=day_ts.date(),
                    values=dict(ctx.values),
                )
                for draft in drafts:
                    event = builder.build(
                        draft.owner_id,
                        draft.kind,
                        draft.resource,
                        draft.base,
                        run_group_timestamp=draft.run_group,
                        properties=draft.properties,
                    )
                    if last_timestamp is not None and event.timestamp <= last_timestamp:
                        raise InvariantViolationError(
                            "Sequenced timestamps are not strictly increasing",
                            details={
                                **draft.origin.as_dict(),
                                "previous": last_timestamp.isoformat(),
                                "current": event.timestamp.isoformat(),
                            },
                        )
                    last_timestamp = event.timestamp
                    out.events.append((event, draft.origin))

                yield out

    def _repeated(
        self,
        track: Any,
        ctx: _DayContext,
        origin: EventOrigin,
        kind: SensorDataType,
        properties: dict[str, Any],
    ) -> list[_Draft]:
        count = ctx.evaluate(track.value, str(track.name))
        ctx.values[str(track.name)] = count
        return [
            _Draft(track.owner, kind, track.resource, ctx.day_ts, origin, properties=dict(properties))
            for _ in range(count)
        ]

    def _dev_time(self, track: DevTimeTrack, ctx: _DayContext, origin: EventOrigin) -> list[_Draft]:
        count = ctx.evaluate(track.value, str(track.name))
        ctx.values[str(track.name)] = count
        step = timedelta(minutes=track.interval_minutes)
        return [
            _Draft(track.owner, SensorDataType.DEV_ACTIVITY, track.resource, ctx.day_ts + i * step, origin)
            for i in range(count)
        ]

    def _file_size(self, track: FileSizeTrack, ctx: _DayContext, origin: EventOrigin) -> list[_Draft]:
        size = ctx.evaluate(track.value, str(track.name))
        ctx.values[str(track.name)] = size
        return [
            _Draft(
                track.owner,
                SensorDataType.FILE_METRIC,
                track.resource,
                ctx.day_ts,
                origin,
                run_group=ctx.day_ts,
                properties={"TotalLines": size},
            )
        ]

    def _builds(self, track: BuildTrack, ctx: _DayContext, origin: EventOrigin) -> list[_Draft]:
        return self._repeated(track, ctx, origin, SensorDataType.BUILD, {"Result": track.result})

    def _unit_tests(self, track: UnitTestTrack, ctx: _DayContext, origin: EventOrigin) -> list[_Draft]:
        return self._repeated(track, ctx, origin, SensorDataType.UNIT_TEST, {"Result": track.result})

    def _coverage(self, track: CoverageTrack, ctx: _DayContext, origin: EventOrigin) -> list[_Draft]:
        value = ctx.evaluate(track.value, str(track.name))
        ctx.values[str(track.name)] = value
        size = max(0, ctx.values[track.size_ref])
        covered, uncovered = split_coverage(track.basis, value, size)
        return [
            _Draft(
                track.owner,
                SensorDataType.COVERAGE,
                track.resource,
                ctx.day_ts,
                origin,
                run_group=ctx.day_ts,
                properties={
                    f"{track.granularity}_Covered": covered,
                    f"{track.granularity}_Uncovered": uncovered,
                },
            )
        ]

    def _commits(self, track: CommitTrack, ctx: _DayContext, origin: EventOrigin) -> list[_Draft]:
        name = str(track.name)
        count = ctx.evaluate(track.value, name)
        ctx.values[name] = count

        drafts: list[_Draft] = []
        for _ in range(count):
            total = ctx.evaluate(track.total_lines, f"{name}.total_lines")
            added = ctx.evaluate(track.lines_added, f"{name}.lines_added")
            deleted = ctx.evaluate(track.lines_deleted, f"{name}.lines_deleted")
            drafts.append(
                _Draft(
                    track.owner,
                    SensorDataType.COMMIT,
                    track.resource,
                    ctx.day_ts,
                    origin,
                    properties={"totalLines": total, "linesAdded": added, "linesDeleted": deleted},
                )
            )
        return drafts

    def _complexity(self, track: ComplexityTrack, ctx: _DayContext, origin: EventOrigin) -> list[_Draft]:
        value = ctx.evaluate(track.value, str(track.name))
        ctx.values[str(track.name)] = value
        return [
            _Draft(
                track.owner,
                SensorDataType.COMPLEXITY,
                track.resource,
                ctx.day_ts,
                origin,
                run_group=ctx.day_ts,
                properties={
                    "Type": track.complexity_type,
                    "TotalLines": ctx.values[track.size_ref],
                    "CyclomaticComplexity": value,
                },
            )
        ]

    def _coupling(self, track: CouplingTrack, ctx: _DayContext, origin: EventOrigin) -> list[_Draft]:
        value = ctx.evaluate(track.value, str(track.name))
        ctx.values[str(track.name)] = value
        return [
            _Draft(
                track.owner,
                SensorDataType.COUPLING,
                track.resource,
                ctx.day_ts,
                origin,
                properties={"Type": track.coupling_type, "Coupling": value},
            )
        ]

    def _code_issues(self, track: CodeIssueTrack, ctx: _DayContext, origin: EventOrigin) -> list[_Draft]:
        value = ctx.evaluate(track.value, str(track.name))
        ctx.values[str(track.name)] = value
        return [
            _Draft(
                track.owner,
                SensorDataType.CODE_ISSUE,
                track.resource,
                ctx.day_ts,
                origin,
                properties={f"Type_{track.issue_type}": value},
            )
        ]


def split_coverage(basis: str, value: int, size: int) -> tuple[int, int]:
    """Return ``(covered, uncovered)`` lines of a file of ``size`` lines.

    Percentages are clamped to [0, 100] and line counts to [0, size], so the
    two numbers always add up to the file size.
    """
    if basis == "percent":
        percent = min(100, max(0, value))
        covered = size * percent // 100
    elif basis == "covered":
        covered = min(size, max(0, value))
    elif basis == "uncovered":
        covered = size - min(size, max(0, value))
    else:
        raise ValueError(f"Unknown coverage basis: {basis!r}")
    return covered, size - covered
