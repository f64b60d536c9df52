from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict

from simdata.core.trends import Constant, Trend


class _TrackBase(BaseModel):
    # Unique within the phase; other tracks reference the day's value by this name.
    name: Optional[str] = None
    owner: str
    resource: str

    model_config = ConfigDict(extra="forbid")

    def trends(self) -> list[Trend]:
        return [self.value]  # type: ignore[attr-defined]


class DevTimeTrack(_TrackBase):
    """``value`` DevEvents, ``interval_minutes`` apart from the start of the day."""

    metric: Literal["dev_time"] = "dev_time"
    value: Trend
    interval_minutes: int = Field(default=5, ge=1)


class FileSizeTrack(_TrackBase):
    metric: Literal["file_size"] = "file_size"
    value: Trend


class BuildTrack(_TrackBase):
    metric: Literal["builds"] = "builds"
    value: Trend
    result: str = "Success"


class UnitTestTrack(_TrackBase):
    metric: Literal["unit_tests"] = "unit_tests"
    value: Trend
    result: str = "pass"


class CoverageTrack(_TrackBase):
    """Line coverage of ``size_ref``.

    ``basis`` tells what ``value`` counts: a percentage of the file, the
    covered lines, or the uncovered lines.
    """

    metric: Literal["coverage"] = "coverage"
    value: Trend
    size_ref: str
    basis: Literal["percent", "covered", "uncovered"] = "percent"
    granularity: str = "line"


class CommitTrack(_TrackBase):
    """``value`` commits per day; line counts are evaluated per commit, in order."""

    metric: Literal["commits"] = "commits"
    value: Trend = Field(default_factory=lambda: Constant(value=1))
    total_lines: Trend
    lines_added: Trend
    lines_deleted: Trend

    def trends(self) -> list[Trend]:
        return [self.value, self.total_lines, self.lines_added, self.lines_deleted]


class ComplexityTrack(_TrackBase):
    metric: Literal["complexity"] = "complexity"
    value: Trend
    size_ref: str
    complexity_type: str = "Cyclomatic"


class CouplingTrack(_TrackBase):
    metric: Literal["coupling"] = "coupling"
    value: Trend
    coupling_type: str = "class"


class CodeIssueTrack(_TrackBase):
    metric: Literal["code_issues"] = "code_issues"
    value: Trend
    issue_type: str = "Style"


Track = Annotated[
    Union[
        DevTimeTrack,
        FileSizeTrack,
        BuildTrack,
        UnitTestTrack,
        CoverageTrack,
        CommitTrack,
        ComplexityTrack,
        CouplingTrack,
        CodeIssueTrack,
    ],
    Field(discriminator="metric"),
]


class PhaseDefinition(BaseModel):
    """A contiguous day range with its own trend shapes.

    A phase without tracks is an idle range (e.g. a weekend between sprints).
    """

    name: str
    duration_days: int = Field(ge=1)
    tracks: List[Track] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _name_tracks_and_check_refs(self):
        seen: set[str] = set()
        for index, track in enumerate(self.tracks):
            if not track.name:
                track.name = f"{track.metric}-{index}"
            if track.name in seen:
                raise ValueError(f"phase {self.name!r}: duplicate track name {track.name!r}")

            refs: list[str] = []
            for trend in track.trends():
                refs.extend(trend.references())
            size_ref = getattr(track, "size_ref", None)
            if size_ref:
                refs.append(size_ref)
            for ref in refs:
                if ref not in seen:
                    raise ValueError(
                        f"phase {self.name!r}: track {track.name!r} references {ref!r}, "
                        "which is not an earlier track of the same phase"
                    )
            seen.add(track.name)
        return self


class ScenarioDefinition(BaseModel):
    name: str
    description: str = ""
    # Ordered: the first owner creates the project, the others are invited members.
    owner_ids: List[str] = Field(min_length=1)
    project_name: str
    start_date: date
    end_date: date
    # First day of generated data; defaults to the project start.
    data_start_date: Optional[date] = None
    resource_uri_pattern: str
    phases: List[PhaseDefinition] = Field(min_length=1)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_calendar_and_owners(self):
        if len(set(self.owner_ids)) != len(self.owner_ids):
            raise ValueError("owner_ids must be unique")
        if self.end_date < self.start_date:
            raise ValueError("end_date is before start_date")
        if self.first_day < self.start_date:
            raise ValueError("data_start_date is before start_date")

        last_day = self.first_day + timedelta(days=self.total_days - 1)
        if last_day > self.end_date:
            raise ValueError(
                f"phases cover {self.total_days} days up to {last_day}, past end_date {self.end_date}"
            )

        owners = set(self.owner_ids)
        for phase in self.phases:
            for track in phase.tracks:
                if track.owner not in owners:
                    raise ValueError(
                        f"phase {phase.name!r}: track {track.name!r} owner {track.owner!r} "
                        "is not a scenario owner"
                    )
        return self

    @property
    def first_day(self) -> date:
        return self.data_start_date or self.start_date

    @property
    def total_days(self) -> int:
        return sum(p.duration_days for p in self.phases)

    @property
    def project_owner(self) -> str:
        return self.owner_ids[0]

    @property
    def members(self) -> list[str]:
        return list(self.owner_ids[1:])

    def day_timestamp(self, day: int) -> datetime:
        """Midnight (UTC) of scenario day ``day``, counted from ``first_day``."""
        return datetime.combine(self.first_day + timedelta(days=day), time.min, tzinfo=UTC)

    def phase_ranges(self) -> list[tuple[int, PhaseDefinition]]:
        """Return ``(first_scenario_day, phase)``; ranges are contiguous from day 0."""
        out: list[tuple[int, PhaseDefinition]] = []
        offset = 0
        for phase in self.phases:
            out.append((offset, phase))
            offset += phase.duration_days
        return out
