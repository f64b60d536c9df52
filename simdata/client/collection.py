from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

import httpx

from simdata.schemas.events import MetricEvent, iso_ms
from simdata.schemas.scenario import ScenarioDefinition
from simdata.utils.exceptions import (
    CollectionServiceError,
    HostUnreachableError,
    RegistrationConflictError,
    SubmissionError,
)

logger = logging.getLogger(__name__)


def _day_iso(value: date) -> str:
    return value.isoformat() + "T00:00:00.000Z"


def _response_detail(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return (resp.text or "")[:500]


class CollectionClient:
    """Async client for the sensor data collection service (a SensorBase).

    Every request is authenticated as the owner it acts for; test owners use
    their own id as password unless ``password`` is given.
    """

    def __init__(
        self,
        host: str,
        *,
        timeout: float = 30.0,
        password: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._host = host.rstrip("/") + "/"
        self._password = password
        self._client = httpx.AsyncClient(
            base_url=self._host,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
            transport=transport,
        )

    @property
    def host(self) -> str:
        return self._host

    async def __aenter__(self) -> "CollectionClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _auth(self, owner_id: str) -> httpx.BasicAuth:
        return httpx.BasicAuth(owner_id, self._password or owner_id)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        owner_id: Optional[str] = None,
        json: Any = None,
    ) -> httpx.Response:
        auth = self._auth(owner_id) if owner_id else None
        try:
            return await self._client.request(method, path, json=json, auth=auth)
        except httpx.TimeoutException as exc:
            raise CollectionServiceError(
                f"{method} {path} timed out",
                details={"host": self._host, "path": path, "error": str(exc)},
            ) from exc
        except httpx.TransportError as exc:
            raise HostUnreachableError(
                f"Collection service at {self._host} is unreachable",
                details={"host": self._host, "path": path, "error": str(exc)},
            ) from exc

    def _ensure_ok(self, resp: httpx.Response, operation: str, **fields: Any) -> None:
        if resp.is_success:
            return
        raise CollectionServiceError(
            f"{operation} failed with HTTP {resp.status_code}",
            status_code=resp.status_code,
            details={**fields, "status_code": resp.status_code, "response": _response_detail(resp)},
        )

    async def is_host(self) -> bool:
        """Return True when the host answers the ping endpoint."""
        try:
            resp = await self._client.get("ping")
        except httpx.HTTPError as exc:
            logger.warning("simdata.client.ping_failed host=%s error=%s", self._host, exc)
            return False
        return resp.is_success

    async def register_owner(self, owner_id: str) -> None:
        resp = await self._request("POST", "register", json={"email": owner_id})
        if resp.status_code == 409:
            raise RegistrationConflictError(
                f"Owner {owner_id} already exists",
                details={"owner_id": owner_id, "response": _response_detail(resp)},
            )
        self._ensure_ok(resp, "register", owner_id=owner_id)
        logger.info("simdata.client.owner_registered owner=%s", owner_id)

    async def create_project(self, scenario: ScenarioDefinition) -> None:
        owner = scenario.project_owner
        path = f"projects/{owner}/{scenario.project_name}"
        body = {
            "name": scenario.project_name,
            "owner": owner,
            "description": scenario.description,
            "start_time": _day_iso(scenario.start_date),
            "end_time": _day_iso(scenario.end_date),
            "uri_patterns": [scenario.resource_uri_pattern],
            "members": [],
            "invitations": [],
        }
        resp = await self._request("PUT", path, owner_id=owner, json=body)
        self._ensure_ok(resp, "create_project", owner_id=owner, project=scenario.project_name)
        logger.info("simdata.client.project_created owner=%s project=%s", owner, scenario.project_name)

    async def invite_and_accept_member(self, project_name: str, owner_id: str, member_id: str) -> None:
        path = f"projects/{owner_id}/{project_name}"

        resp = await self._request("GET", path, owner_id=owner_id)
        self._ensure_ok(resp, "get_project", owner_id=owner_id, project=project_name)
        project = resp.json()
        invitations = list(project.get("invitations") or [])
        if member_id not in invitations:
            invitations.append(member_id)
        project["invitations"] = invitations

        resp = await self._request("PUT", path, owner_id=owner_id, json=project)
        self._ensure_ok(resp, "invite_member", owner_id=owner_id, project=project_name, member=member_id)

        resp = await self._request("POST", f"{path}/invitation/accept", owner_id=member_id)
        self._ensure_ok(resp, "accept_invitation", owner_id=member_id, project=project_name)
        logger.info(
            "simdata.client.member_added owner=%s project=%s member=%s",
            owner_id,
            project_name,
            member_id,
        )

    async def submit_event(self, event: MetricEvent) -> None:
        path = f"sensordata/{event.owner_id}/{iso_ms(event.timestamp)}"
        try:
            resp = await self._request("PUT", path, owner_id=event.owner_id, json=event.to_payload())
        except CollectionServiceError as exc:
            raise SubmissionError(exc.message, details=exc.details) from exc
        if not resp.is_success:
            raise SubmissionError(
                f"Sensor data rejected with HTTP {resp.status_code}",
                details={
                    "owner_id": event.owner_id,
                    "kind": event.kind.value,
                    "timestamp": iso_ms(event.timestamp),
                    "status_code": resp.status_code,
                    "response": _response_detail(resp),
                },
            )
