"""
SimData: pytest fixtures and configuration.

Provides:
- Packaged catalog and deterministic settings
- Event generation helpers (registered builders, fresh sequencers)
- An in-process fake SensorBase served through httpx.MockTransport
"""
import base64
import json
from collections import Counter
from datetime import date
from fnmatch import fnmatch
from typing import Callable, Optional

import httpx
import pytest

from simdata.config import Settings
from simdata.core.catalog import ScenarioCatalog
from simdata.core.engine import DayEvents
from simdata.core.event_builder import MetricEventBuilder
from simdata.core.runner import build_engine
from simdata.core.sequencer import TimestampSequencer
from simdata.schemas.scenario import ScenarioDefinition

# =============================================================================
# Constants
# =============================================================================
TEST_DOMAIN = "@hackystat.org"
SENSORBASE_HOST = "http://sensorbase.test/sensorbase"


# =============================================================================
# Fake collection service
# =============================================================================
class FakeSensorBase:
    """Minimal SensorBase: users, projects, invitations and sensor data.

    Mounted under ``/sensorbase/`` like the real service. ``fail_after``
    rejects every sensor data PUT after that many accepted ones.
    """

    PREFIX = "/sensorbase/"

    def __init__(self, *, fail_after: Optional[int] = None, reachable: bool = True) -> None:
        self.fail_after = fail_after
        self.reachable = reachable
        self.users: dict[str, str] = {}
        self.projects: dict[tuple[str, str], dict] = {}
        self.sensor_data: list[dict] = []
        self.requests: list[tuple[str, str]] = []
        self._keys: set[tuple[str, str]] = set()

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # -- request handling --------------------------------------------------

    def _auth_user(self, request: httpx.Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Basic "):
            return None
        user, _, password = base64.b64decode(header[6:]).decode("utf-8").partition(":")
        if self.users.get(user) != password:
            return None
        return user

    def handle(self, request: httpx.Request) -> httpx.Response:
        if not self.reachable:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path
        self.requests.append((request.method, path))
        if not path.startswith(self.PREFIX):
            return httpx.Response(404)
        parts = path[len(self.PREFIX):].split("/")

        if request.method == "GET" and parts == ["ping"]:
            return httpx.Response(200, text="SensorBase")

        if request.method == "POST" and parts == ["register"]:
            email = json.loads(request.content)["email"]
            if email in self.users:
                return httpx.Response(409, json={"error": "user exists"})
            self.users[email] = email
            return httpx.Response(200)

        user = self._auth_user(request)
        if user is None:
            return httpx.Response(401)

        if parts[0] == "projects" and len(parts) >= 3:
            return self._projects(request, user, parts[1], parts[2], parts[3:])
        if parts[0] == "sensordata" and len(parts) == 3 and request.method == "PUT":
            return self._sensordata(request, user, parts[1], parts[2])
        return httpx.Response(404)

    def _projects(self, request: httpx.Request, user: str, owner: str, name: str, rest: list[str]) -> httpx.Response:
        key = (owner, name)
        if rest == ["invitation", "accept"] and request.method == "POST":
            project = self.projects.get(key)
            if project is None or user not in project["invitations"]:
                return httpx.Response(400)
            project["invitations"].remove(user)
            project["members"].append(user)
            return httpx.Response(200)
        if rest:
            return httpx.Response(404)
        if user != owner:
            return httpx.Response(401)
        if request.method == "PUT":
            self.projects[key] = json.loads(request.content)
            return httpx.Response(201)
        if request.method == "GET":
            project = self.projects.get(key)
            if project is None:
                return httpx.Response(404)
            return httpx.Response(200, json=project)
        return httpx.Response(405)

    def _sensordata(self, request: httpx.Request, user: str, owner: str, timestamp: str) -> httpx.Response:
        if user != owner:
            return httpx.Response(401)
        if self.fail_after is not None and len(self.sensor_data) >= self.fail_after:
            return httpx.Response(500, json={"error": "storage unavailable"})
        if (owner, timestamp) in self._keys:
            return httpx.Response(409, json={"error": "duplicate sensor data"})
        payload = json.loads(request.content)
        self._keys.add((owner, timestamp))
        self.sensor_data.append(payload)
        return httpx.Response(201)

    # -- aggregation (what the daily project data service would compute) ---

    def events(
        self,
        *,
        kind: Optional[str] = None,
        day: Optional[date] = None,
        owner: Optional[str] = None,
        project: Optional[tuple[str, str]] = None,
    ) -> list[dict]:
        patterns = self.projects[project]["uri_patterns"] if project else None
        out = []
        for payload in self.sensor_data:
            if kind and payload["sensor_data_type"] != kind:
                continue
            if day and not payload["timestamp"].startswith(day.isoformat()):
                continue
            if owner and payload["owner"] != owner:
                continue
            if patterns and not any(fnmatch(payload["resource"], p) for p in patterns):
                continue
            out.append(payload)
        return out

    @staticmethod
    def prop(payload: dict, key: str) -> int:
        for item in payload["properties"]:
            if item["key"] == key:
                return int(item["value"])
        raise KeyError(key)

    def daily_count(self, kind: str, day: date, **filters) -> int:
        return len(self.events(kind=kind, day=day, **filters))

    def daily_sum(self, kind: str, key: str, day: date, **filters) -> int:
        return sum(self.prop(p, key) for p in self.events(kind=kind, day=day, **filters))

    def dev_time_minutes(self, owner: str, day: date, **filters) -> int:
        return 5 * self.daily_count("DevEvent", day, owner=owner, **filters)

    def churn(self, owner: str, day: date, **filters) -> int:
        return sum(
            self.prop(p, "totalLines") + self.prop(p, "linesAdded") + self.prop(p, "linesDeleted")
            for p in self.events(kind="Commit", day=day, owner=owner, **filters)
        )

    def summary(self) -> Counter:
        """Event counts per (owner, kind, day); equal for equivalent runs."""
        return Counter(
            (p["owner"], p["sensor_data_type"], p["timestamp"][:10]) for p in self.sensor_data
        )


# =============================================================================
# Fixtures
# =============================================================================
@pytest.fixture(scope="session")
def catalog() -> ScenarioCatalog:
    return ScenarioCatalog(domain=TEST_DOMAIN)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        TEST_DOMAIN=TEST_DOMAIN,
        SEED=0,
        RANDOM_ALGORITHM="lcg48",
        SCENARIOS="",
        CATALOG_DIR=None,
        MAX_IN_FLIGHT=4,
    )


@pytest.fixture
def sensorbase() -> FakeSensorBase:
    return FakeSensorBase()


@pytest.fixture
def sensorbase_factory() -> Callable[..., FakeSensorBase]:
    return FakeSensorBase


@pytest.fixture
def sensorbase_host() -> str:
    return SENSORBASE_HOST


@pytest.fixture
def make_builder() -> Callable[..., MetricEventBuilder]:
    def _make(*scenarios: ScenarioDefinition, sequencer: Optional[TimestampSequencer] = None) -> MetricEventBuilder:
        owners = [o for s in scenarios for o in s.owner_ids]
        return MetricEventBuilder(sequencer or TimestampSequencer(), registered_owners=owners)

    return _make


@pytest.fixture
def generate_days(settings: Settings, make_builder) -> Callable[..., list[DayEvents]]:
    """Run the trend engine over a whole scenario with a registered builder."""

    def _generate(
        scenario: ScenarioDefinition,
        *,
        sequencer: Optional[TimestampSequencer] = None,
    ) -> list[DayEvents]:
        engine = build_engine(settings)
        return list(engine.generate(scenario, make_builder(scenario, sequencer=sequencer)))

    return _generate
