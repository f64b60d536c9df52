from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping, Optional

from simdata.core.sequencer import TimestampSequencer
from simdata.schemas.events import DEFAULT_TOOLS, MetricEvent, SensorDataType
from simdata.utils.exceptions import UnregisteredOwnerError


class MetricEventBuilder:
    """Builds MetricEvents for owners registered with the collection service.

    Every call consumes one sequencer step. ``run_group_timestamp`` defaults to
    the un-sequenced base timestamp.
    """

    def __init__(self, sequencer: TimestampSequencer, registered_owners: Optional[Iterable[str]] = None) -> None:
        self._sequencer = sequencer
        self._registered: set[str] = set(registered_owners or ())

    @property
    def sequencer(self) -> TimestampSequencer:
        return self._sequencer

    def mark_registered(self, owner_id: str) -> None:
        self._registered.add(owner_id)

    def is_registered(self, owner_id: str) -> bool:
        return owner_id in self._registered

    def build(
        self,
        owner_id: str,
        kind: SensorDataType,
        resource: str,
        base_timestamp: datetime,
        run_group_timestamp: Optional[datetime] = None,
        properties: Optional[Mapping[str, object]] = None,
        tool: Optional[str] = None,
    ) -> MetricEvent:
        if owner_id not in self._registered:
            raise UnregisteredOwnerError(
                f"Owner {owner_id} is not registered with the collection service",
                details={"owner_id": owner_id},
            )

        return MetricEvent(
            owner_id=owner_id,
            kind=kind,
            tool=tool or DEFAULT_TOOLS[kind],
            resource=resource,
            timestamp=self._sequencer.next(base_timestamp),
            run_group_timestamp=run_group_timestamp or base_timestamp,
            properties=dict(properties or {}),
        )
