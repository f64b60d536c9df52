from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict


class SensorDataType(str, Enum):
    """Sensor data types understood by the collection service."""

    DEV_ACTIVITY = "DevEvent"
    FILE_METRIC = "FileMetric"
    COMMIT = "Commit"
    BUILD = "Build"
    UNIT_TEST = "UnitTest"
    COVERAGE = "Coverage"
    COMPLEXITY = "Complexity"
    COUPLING = "Coupling"
    CODE_ISSUE = "CodeIssue"


# Tool recorded on each event unless the caller names one.
DEFAULT_TOOLS: dict[SensorDataType, str] = {
    SensorDataType.DEV_ACTIVITY: "Eclipse",
    SensorDataType.FILE_METRIC: "SCLC",
    SensorDataType.COMMIT: "Subversion",
    SensorDataType.BUILD: "Ant",
    SensorDataType.UNIT_TEST: "JUnit",
    SensorDataType.COVERAGE: "Emma",
    SensorDataType.COMPLEXITY: "JavaNCSS",
    SensorDataType.COUPLING: "DependencyFinder",
    SensorDataType.CODE_ISSUE: "PMD",
}


def iso_ms(ts: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    # Always write milliseconds so sequenced timestamps stay distinguishable.
    return ts.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class MetricEvent(BaseModel):
    """One sensor data instance, as submitted to the collection service.

    ``timestamp`` is always sequenced (unique for the whole run) while
    ``run_group_timestamp`` keeps the un-sequenced measurement moment, so that
    a FileMetric and its Coverage reading are analysed together downstream.
    """

    owner_id: str
    kind: SensorDataType
    tool: str
    resource: str
    timestamp: datetime
    run_group_timestamp: datetime
    properties: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid", frozen=True)

    @field_validator("properties", mode="before")
    @classmethod
    def _stringify_properties(cls, value: Any) -> Dict[str, str]:
        if value is None:
            return {}
        return {str(k): str(v) for k, v in dict(value).items()}

    def property_int(self, key: str) -> int:
        return int(self.properties[key])

    def to_payload(self) -> dict[str, Any]:
        """Serialise to the collection service's JSON shape (property order preserved)."""
        return {
            "owner": self.owner_id,
            "sensor_data_type": self.kind.value,
            "tool": self.tool,
            "resource": self.resource,
            "timestamp": iso_ms(self.timestamp),
            "runtime": iso_ms(self.run_group_timestamp),
            "properties": [{"key": k, "value": v} for k, v in self.properties.items()],
        }
