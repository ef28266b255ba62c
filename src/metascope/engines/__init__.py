"""Pure transforms over fetched metadata."""

from .layers import SolutionLayer, order_layers
from .relationships import ClassifiedRelationship, classify_relationship, classify_relationships
from .roles import (
    POLICIES,
    BusinessUnitPolicy,
    OriginKind,
    RoleOrigin,
    SecurityRoleAssignment,
    business_unit_chain,
    no_unit_roles,
    own_unit_only,
    resolve_roles,
    unit_and_ancestors,
)

__all__ = [
    "POLICIES",
    "BusinessUnitPolicy",
    "ClassifiedRelationship",
    "OriginKind",
    "RoleOrigin",
    "SecurityRoleAssignment",
    "SolutionLayer",
    "business_unit_chain",
    "classify_relationship",
    "classify_relationships",
    "no_unit_roles",
    "order_layers",
    "own_unit_only",
    "resolve_roles",
    "unit_and_ancestors",
]
