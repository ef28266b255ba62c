"""Data models for Metascope."""

from .query import Environment, LookupInfo, QueryResult, normalize_url
from .schemas import (
    AttributeMetadata,
    BusinessUnit,
    BusinessUnitRef,
    ComponentLayer,
    DiscoveryInstance,
    EntityMetadata,
    OptionSetMetadata,
    OptionValue,
    RelationshipDirection,
    RelationshipMetadata,
    SecurityRole,
    Solution,
    SolutionComponent,
    SystemUser,
    Team,
    UserSecurity,
    label_text,
)

__all__ = [
    "AttributeMetadata",
    "BusinessUnit",
    "BusinessUnitRef",
    "ComponentLayer",
    "DiscoveryInstance",
    "EntityMetadata",
    "Environment",
    "LookupInfo",
    "OptionSetMetadata",
    "OptionValue",
    "QueryResult",
    "RelationshipDirection",
    "RelationshipMetadata",
    "SecurityRole",
    "Solution",
    "SolutionComponent",
    "SystemUser",
    "Team",
    "UserSecurity",
    "label_text",
    "normalize_url",
]
