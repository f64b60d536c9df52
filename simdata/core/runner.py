from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx

from simdata.client.collection import CollectionClient
from simdata.config import Settings
from simdata.core.batcher import SubmissionBatcher
from simdata.core.catalog import ScenarioCatalog
from simdata.core.engine import TrendEngine
from simdata.core.event_builder import MetricEventBuilder
from simdata.core.random_source import make_random_source
from simdata.core.sequencer import TimestampSequencer
from simdata.schemas.scenario import ScenarioDefinition
from simdata.utils.exceptions import HostUnreachableError, SimDataException
from simdata.utils.observability import log_duration

logger = logging.getLogger(__name__)


@dataclass
class ScenarioReport:
    scenario: str
    project: str
    days: int = 0
    events: int = 0
    by_kind: Counter = field(default_factory=Counter)
    by_owner: Counter = field(default_factory=Counter)
    first_timestamp: Optional[datetime] = None
    last_timestamp: Optional[datetime] = None


class ScenarioRunner:
    """Sets up owners and the project for a scenario, then generates and submits its data.

    Owners registered by an earlier scenario of the same run are not registered
    again (the portfolio scenarios share one owner).
    """

    def __init__(
        self,
        *,
        client: CollectionClient,
        builder: MetricEventBuilder,
        engine: TrendEngine,
        max_in_flight: int = 8,
        queue_size: int = 1000,
    ) -> None:
        self._client = client
        self._builder = builder
        self._engine = engine
        self._max_in_flight = int(max_in_flight)
        self._queue_size = int(queue_size)

    async def prepare(self, scenario: ScenarioDefinition) -> None:
        for owner_id in scenario.owner_ids:
            if self._builder.is_registered(owner_id):
                logger.debug("simdata.runner.owner_already_registered owner=%s", owner_id)
                continue
            await self._client.register_owner(owner_id)
            self._builder.mark_registered(owner_id)

        await self._client.create_project(scenario)
        for member in scenario.members:
            await self._client.invite_and_accept_member(scenario.project_name, scenario.project_owner, member)

    async def run(self, scenario: ScenarioDefinition) -> ScenarioReport:
        report = ScenarioReport(scenario=scenario.name, project=scenario.project_name)
        logger.info(
            "simdata.runner.scenario_start scenario=%s project=%s owners=%s days=%d",
            scenario.name,
            scenario.project_name,
            ",".join(scenario.owner_ids),
            scenario.total_days,
        )

        with log_duration(logger, "simdata.scenario", scenario=scenario.name):
            try:
                await self.prepare(scenario)
            except SimDataException as exc:
                exc.details.setdefault("scenario", scenario.name)
                raise

            batcher = SubmissionBatcher(
                send=self._client.submit_event,
                max_in_flight=self._max_in_flight,
                queue_size=self._queue_size,
            )
            try:
                for day in self._engine.generate(scenario, self._builder):
                    for event, origin in day.events:
                        await batcher.submit(event, origin)
                        report.events += 1
                        report.by_kind[event.kind.value] += 1
                        report.by_owner[event.owner_id] += 1
                        if report.first_timestamp is None:
                            report.first_timestamp = event.timestamp
                        report.last_timestamp = event.timestamp
                    report.days += 1
                    logger.info(
                        "simdata.runner.day scenario=%s phase=%s day=%d date=%s events=%d",
                        scenario.name,
                        day.phase,
                        day.day,
                        day.date.isoformat(),
                        len(day.events),
                    )
                await batcher.flush()
            finally:
                await batcher.aclose()

        logger.info(
            "simdata.runner.scenario_done scenario=%s days=%d events=%d",
            scenario.name,
            report.days,
            report.events,
        )
        return report


def build_catalog(settings: Settings) -> ScenarioCatalog:
    catalog_dir = Path(settings.CATALOG_DIR) if settings.CATALOG_DIR else None
    return ScenarioCatalog(domain=settings.TEST_DOMAIN, catalog_dir=catalog_dir)


def build_engine(settings: Settings) -> TrendEngine:
    return TrendEngine(rng_factory=lambda: make_random_source(settings.RANDOM_ALGORITHM, settings.SEED))


async def run_simdata(
    host: str,
    settings: Settings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    catalog: Optional[ScenarioCatalog] = None,
    sequencer: Optional[TimestampSequencer] = None,
) -> list[ScenarioReport]:
    """Run the selected catalog scenarios, in catalog order, against ``host``.

    The host is checked before anything else; an unreachable host aborts the
    run before any scenario executes.
    """
    catalog = catalog or build_catalog(settings)
    scenarios = catalog.select(settings.scenario_names())

    async with CollectionClient(
        host,
        timeout=settings.REQUEST_TIMEOUT_SECONDS,
        password=settings.OWNER_PASSWORD,
        transport=transport,
    ) as client:
        if not await client.is_host():
            raise HostUnreachableError(
                f"{host} is not a reachable collection service",
                details={"host": host},
            )

        sequencer = sequencer or TimestampSequencer()
        runner = ScenarioRunner(
            client=client,
            builder=MetricEventBuilder(sequencer),
            engine=build_engine(settings),
            max_in_flight=settings.MAX_IN_FLIGHT,
            queue_size=settings.OWNER_QUEUE_SIZE,
        )

        reports: list[ScenarioReport] = []
        with log_duration(logger, "simdata.run", host=host, scenarios=len(scenarios)):
            for scenario in scenarios:
                reports.append(await runner.run(scenario))
        return reports
