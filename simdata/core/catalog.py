from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from jsonschema import Draft202012Validator
from pydantic import ValidationError

from simdata.schemas.scenario import ScenarioDefinition
from simdata.utils.exceptions import ScenarioInvalidError, ScenarioNotFoundError

logger = logging.getLogger(__name__)

PACKAGED_CATALOG_DIR = Path(__file__).resolve().parent.parent / "catalog"
SCHEMA_FILENAME = "scenario.schema.json"
INDEX_FILENAME = "index.json"

_VALIDATORS_BY_SCHEMA_PATH: dict[str, Draft202012Validator] = {}


def get_scenario_validator(*, schema_path: Path) -> Optional[Draft202012Validator]:
    """Returns cached JSONSchema validator if schema exists."""

    key = str(schema_path.resolve())
    cached = _VALIDATORS_BY_SCHEMA_PATH.get(key)
    if cached is not None:
        return cached

    if not schema_path.exists():
        return None

    schema = json.loads(schema_path.read_text(encoding="utf-8"))
    validator = Draft202012Validator(schema)
    _VALIDATORS_BY_SCHEMA_PATH[key] = validator
    return validator


def validate_scenario_raw(*, raw: dict[str, Any], schema_path: Path) -> None:
    validator = get_scenario_validator(schema_path=schema_path)
    if validator is None:
        logger.warning("simdata.catalog.schema_missing path=%s", str(schema_path))
        return

    errors = sorted(validator.iter_errors(raw), key=lambda e: list(e.path))
    if not errors:
        return

    def _err(e):
        return {
            "path": "/".join(str(p) for p in e.path),
            "message": e.message,
        }

    raise ScenarioInvalidError(
        "Scenario invalid",
        details={
            "scenario": raw.get("name") if isinstance(raw, dict) else None,
            "errors": [_err(e) for e in errors[:50]],
        },
    )


def scenario_from_raw(raw: dict[str, Any], *, domain: str) -> ScenarioDefinition:
    """Build a ScenarioDefinition from catalog JSON.

    Owners are written as bare user names in the catalog; the test domain is
    appended here.
    """

    def _owner(user: str) -> str:
        return f"{user}{domain}"

    project = raw.get("project") or {}
    project_name = project.get("name")
    phases = []
    for phase in raw.get("phases") or []:
        tracks = [
            {**t, "owner": _owner(t["owner"])} if "owner" in t else dict(t)
            for t in phase.get("tracks") or []
        ]
        phases.append({**phase, "tracks": tracks})

    data = {
        "name": raw.get("name"),
        "description": raw.get("description") or "",
        "owner_ids": [_owner(u) for u in raw.get("owners") or []],
        "project_name": project_name,
        "start_date": project.get("start_date"),
        "end_date": project.get("end_date"),
        "data_start_date": project.get("data_start_date"),
        "resource_uri_pattern": project.get("uri_pattern") or f"*/{project_name}/*",
        "phases": phases,
    }

    try:
        return ScenarioDefinition.model_validate(data)
    except ValidationError as exc:
        raise ScenarioInvalidError(
            "Scenario invalid",
            details={
                "scenario": raw.get("name"),
                "errors": [
                    {"path": "/".join(str(p) for p in err["loc"]), "message": err["msg"]}
                    for err in exc.errors()[:50]
                ],
            },
        ) from exc


class ScenarioCatalog:
    """The fixed, ordered list of scenarios shipped as JSON data.

    ``index.json`` fixes the order; each scenario lives in
    ``<name>/scenario.json`` and is validated against ``scenario.schema.json``
    before it is parsed.
    """

    def __init__(self, *, domain: str, catalog_dir: Optional[Path] = None) -> None:
        self._domain = domain
        self._dir = Path(catalog_dir) if catalog_dir is not None else PACKAGED_CATALOG_DIR
        self._schema_path = self._dir / SCHEMA_FILENAME
        self._names: Optional[list[str]] = None
        self._loaded: dict[str, ScenarioDefinition] = {}

    @property
    def catalog_dir(self) -> Path:
        return self._dir

    def names(self) -> list[str]:
        if self._names is None:
            index_path = self._dir / INDEX_FILENAME
            if not index_path.exists():
                raise ScenarioNotFoundError(
                    f"Scenario index not found: {index_path}",
                    details={"path": str(index_path)},
                )
            index = json.loads(index_path.read_text(encoding="utf-8"))
            self._names = [str(n) for n in index.get("scenarios") or []]
        return list(self._names)

    def get(self, name: str) -> ScenarioDefinition:
        cached = self._loaded.get(name)
        if cached is not None:
            return cached

        if name not in self.names():
            raise ScenarioNotFoundError(
                f"Scenario {name} not found",
                details={"scenario": name, "available": self.names()},
            )

        scenario_path = self._dir / name / "scenario.json"
        if not scenario_path.exists():
            raise ScenarioNotFoundError(
                f"Scenario file for {name} is missing",
                details={"scenario": name, "path": str(scenario_path)},
            )

        try:
            raw = json.loads(scenario_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ScenarioInvalidError(
                "Scenario invalid",
                details={"scenario": name, "errors": [{"path": "", "message": str(exc)}]},
            ) from exc

        validate_scenario_raw(raw=raw, schema_path=self._schema_path)
        scenario = scenario_from_raw(raw, domain=self._domain)
        if scenario.name != name:
            raise ScenarioInvalidError(
                "Scenario invalid",
                details={
                    "scenario": name,
                    "errors": [{"path": "name", "message": f"expected {name!r}, got {scenario.name!r}"}],
                },
            )

        logger.debug(
            "simdata.catalog.loaded scenario=%s phases=%d days=%d",
            name,
            len(scenario.phases),
            scenario.total_days,
        )
        self._loaded[name] = scenario
        return scenario

    def select(self, names: Optional[Iterable[str]] = None) -> list[ScenarioDefinition]:
        """Return the requested scenarios in catalog order (all of them when empty)."""
        wanted = [n for n in (names or []) if n]
        order = self.names()
        unknown = [n for n in wanted if n not in order]
        if unknown:
            raise ScenarioNotFoundError(
                f"Unknown scenarios: {', '.join(unknown)}",
                details={"unknown": unknown, "available": order},
            )
        chosen = set(wanted) if wanted else set(order)
        return [self.get(n) for n in order if n in chosen]
