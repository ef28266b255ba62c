"""Typed query descriptors.

A query is a small frozen value. Its ``signature`` is what the metadata
cache keys on, so two equal queries always share one cache entry.
"""

import xml.etree.ElementTree as ET
from dataclasses import astuple, dataclass
from typing import ClassVar

from metascope.errors import UserInputInvalid


@dataclass(frozen=True)
class Query:
    """Base class for everything the client knows how to fetch."""

    handler: ClassVar[str] = ""

    @property
    def signature(self) -> tuple:
        return (type(self).__name__, *astuple(self))

    def describe(self) -> str:
        args = ", ".join(str(a) for a in astuple(self))
        return f"{type(self).__name__}({args})"


@dataclass(frozen=True)
class ListEntities(Query):
    handler: ClassVar[str] = "entities"


@dataclass(frozen=True)
class EntityAttributes(Query):
    handler: ClassVar[str] = "attributes"

    logical_name: str


@dataclass(frozen=True)
class EntityRelationships(Query):
    """1:N, N:1 and N:N relationships of one entity."""

    handler: ClassVar[str] = "relationships"

    logical_name: str


@dataclass(frozen=True)
class ListSolutions(Query):
    handler: ClassVar[str] = "solutions"


@dataclass(frozen=True)
class SolutionComponents(Query):
    handler: ClassVar[str] = "solution_components"

    solution_id: str


@dataclass(frozen=True)
class ListUsers(Query):
    handler: ClassVar[str] = "users"

    include_disabled: bool = False


@dataclass(frozen=True)
class UserSecurityQuery(Query):
    """Roles, teams and business-unit chain of one user."""

    handler: ClassVar[str] = "user_security"

    user_id: str


@dataclass(frozen=True)
class ListOptionSets(Query):
    handler: ClassVar[str] = "option_sets"


@dataclass(frozen=True)
class ComponentLayers(Query):
    """Customization layers of one solution-aware component."""

    handler: ClassVar[str] = "component_layers"

    component_id: str
    component_name: str


@dataclass(frozen=True)
class FetchXml(Query):
    handler: ClassVar[str] = "fetch_xml"

    entity_set_name: str
    fetch_xml: str


@dataclass(frozen=True)
class DiscoverEnvironments(Query):
    handler: ClassVar[str] = "discovery"


def fetch_xml_entity(fetch_xml: str) -> str:
    """Validate FetchXML and return the logical name of its root entity.

    Raises:
        UserInputInvalid: If the text is not well-formed or is not a
            ``<fetch>`` with an ``<entity name="...">`` child.
    """
    text = fetch_xml.strip()
    if not text:
        raise UserInputInvalid("FetchXML is empty")
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise UserInputInvalid(f"FetchXML is not well-formed: {e}") from e
    if root.tag != "fetch":
        raise UserInputInvalid(f"Expected a <fetch> root element, got <{root.tag}>")
    entity = root.find("entity")
    if entity is None or not entity.get("name"):
        raise UserInputInvalid("FetchXML needs an <entity name=\"...\"> element")
    return entity.get("name", "")


def fetch_xml_template(logical_name: str, top: int = 50) -> str:
    """Starter query for the console."""
    return f'<fetch top="{top}"><entity name="{logical_name}"><all-attributes /></entity></fetch>'
