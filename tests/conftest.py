"""Shared fixtures for Metascope tests."""

import asyncio
from typing import Any, Optional

import pytest

from metascope.core.cache import MetadataCache
from metascope.core.session import BrowserSession
from metascope.models import (
    BusinessUnit,
    EntityMetadata,
    Environment,
    SecurityRole,
    SystemUser,
    Team,
)


ENV_URL = "https://contoso.crm.dynamics.com"
API = f"{ENV_URL}/api/data/v9.2"


def label(text: str) -> dict:
    """Dataverse Label object with a user-localized text."""
    return {"UserLocalizedLabel": {"Label": text}, "LocalizedLabels": [{"Label": text}]}


def entity_record(logical_name: str, display: Optional[str] = None, **extra: Any) -> dict:
    record = {
        "MetadataId": f"meta-{logical_name}",
        "LogicalName": logical_name,
        "SchemaName": logical_name.capitalize(),
        "DisplayName": label(display or logical_name.capitalize()),
        "EntitySetName": f"{logical_name}s",
        "PrimaryIdAttribute": f"{logical_name}id",
        "PrimaryNameAttribute": "name",
        "IsCustomEntity": False,
        "IsManaged": True,
    }
    record.update(extra)
    return record


def make_entity(logical_name: str, display: Optional[str] = None) -> EntityMetadata:
    return EntityMetadata.model_validate(entity_record(logical_name, display))


def make_role(role_id: str, name: Optional[str] = None) -> SecurityRole:
    return SecurityRole(roleid=role_id, name=name or role_id)


def make_team(team_id: str, name: Optional[str] = None, unit: Optional[str] = None) -> Team:
    return Team(teamid=team_id, name=name or team_id, _businessunitid_value=unit)


def make_unit(unit_id: str, parent: Optional[str] = None) -> BusinessUnit:
    return BusinessUnit(businessunitid=unit_id, name=unit_id, _parentbusinessunitid_value=parent)


def make_user(user_id: str = "u1", unit: Optional[str] = None) -> SystemUser:
    data: dict = {"systemuserid": user_id, "fullname": f"User {user_id}", "domainname": f"{user_id}@contoso.com"}
    if unit:
        data["businessunitid"] = {"businessunitid": unit, "name": unit}
    return SystemUser.model_validate(data)


class FakeClient:
    """Stands in for DataverseClient: canned payloads keyed by query handler.

    A response may be a payload, an exception to raise, or a callable that
    receives the query. While ``gate`` is set, fetches wait for it.
    """

    def __init__(self, responses: Optional[dict] = None):
        self.responses = responses or {}
        self.calls: list = []
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    async def fetch(self, env: Environment, query: Any) -> Any:
        self.calls.append((env, query))
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.get(query.handler)
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(query)
        return response

    async def close(self) -> None:
        self.closed = True


class ManualSpawner:
    """Collects fetch coroutines so tests decide when they complete."""

    def __init__(self):
        self.pending: list = []

    def __call__(self, coro) -> None:
        self.pending.append(coro)

    async def drain(self) -> None:
        while self.pending:
            await self.pending.pop(0)

    def run(self) -> None:
        """Complete every pending fetch from synchronous code."""
        asyncio.run(self.drain())


@pytest.fixture
def env() -> Environment:
    return Environment.create(ENV_URL, token="test-token")


@pytest.fixture
def spawner() -> ManualSpawner:
    spawner = ManualSpawner()
    yield spawner
    for coro in spawner.pending:
        coro.close()


@pytest.fixture
def entities() -> list[EntityMetadata]:
    return [
        make_entity("account", "Account"),
        make_entity("contact", "Contact"),
        make_entity("lead", "Lead"),
    ]


@pytest.fixture
def fake_client(entities) -> FakeClient:
    return FakeClient(
        {
            "entities": entities,
            "attributes": [],
            "relationships": [],
            "solutions": [],
            "option_sets": [],
            "users": [],
        }
    )


@pytest.fixture
def cache(fake_client, env, spawner) -> MetadataCache:
    return MetadataCache(fake_client.fetch, env, spawn=spawner)


@pytest.fixture
def session(cache, env, tmp_path) -> BrowserSession:
    return BrowserSession(cache, env, export_dir=tmp_path)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Keep config and log files out of the real home directory."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("DATAVERSE_URL", raising=False)
    monkeypatch.delenv("DATAVERSE_TOKEN", raising=False)
    return home
