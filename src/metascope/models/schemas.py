"""Pydantic schemas for Dataverse metadata payloads.

Field aliases are the wire names used by the Web API, so records can be
validated straight from OData ``value`` arrays.
"""

from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base model: wire aliases, unknown keys ignored, immutable."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


def label_text(label: Optional[dict[str, Any]]) -> str:
    """Extract the user's localized text from a Dataverse ``Label`` object."""
    if not label:
        return ""
    user_label = label.get("UserLocalizedLabel") or {}
    text = user_label.get("Label")
    if text:
        return text
    # Fall back to the first localized label
    for localized in label.get("LocalizedLabels") or []:
        if localized.get("Label"):
            return localized["Label"]
    return ""


# =============================================================================
# Entities, attributes, relationships
# =============================================================================


class EntityMetadata(WireModel):
    """A table definition from ``EntityDefinitions``."""

    metadata_id: str = Field(alias="MetadataId")
    logical_name: str = Field(alias="LogicalName")
    schema_name: Optional[str] = Field(default=None, alias="SchemaName")
    display_label: Optional[dict[str, Any]] = Field(default=None, alias="DisplayName")
    description_label: Optional[dict[str, Any]] = Field(default=None, alias="Description")
    primary_id_attribute: Optional[str] = Field(default=None, alias="PrimaryIdAttribute")
    primary_name_attribute: Optional[str] = Field(default=None, alias="PrimaryNameAttribute")
    entity_set_name: Optional[str] = Field(default=None, alias="EntitySetName")
    is_custom_entity: Optional[bool] = Field(default=None, alias="IsCustomEntity")
    is_managed: Optional[bool] = Field(default=None, alias="IsManaged")
    object_type_code: Optional[int] = Field(default=None, alias="ObjectTypeCode")

    @property
    def display_name(self) -> str:
        """Localized display name, or the logical name when unlabelled."""
        return label_text(self.display_label) or self.logical_name

    @property
    def description(self) -> str:
        return label_text(self.description_label)

    @property
    def search_text(self) -> str:
        return f"{self.display_name} {self.logical_name}"


REQUIRED_LEVELS = {"ApplicationRequired", "SystemRequired"}


class AttributeMetadata(WireModel):
    """A column definition from ``EntityDefinitions(...)/Attributes``."""

    metadata_id: str = Field(alias="MetadataId")
    logical_name: str = Field(alias="LogicalName")
    schema_name: Optional[str] = Field(default=None, alias="SchemaName")
    display_label: Optional[dict[str, Any]] = Field(default=None, alias="DisplayName")
    description_label: Optional[dict[str, Any]] = Field(default=None, alias="Description")
    attribute_type: Optional[str] = Field(default=None, alias="AttributeType")
    attribute_type_name: Optional[dict[str, Any]] = Field(default=None, alias="AttributeTypeName")
    required_level: Optional[dict[str, Any]] = Field(default=None, alias="RequiredLevel")
    is_custom_attribute: Optional[bool] = Field(default=None, alias="IsCustomAttribute")
    is_primary_id: Optional[bool] = Field(default=None, alias="IsPrimaryId")
    is_primary_name: Optional[bool] = Field(default=None, alias="IsPrimaryName")

    @property
    def display_name(self) -> str:
        return label_text(self.display_label) or self.logical_name

    @property
    def type_name(self) -> str:
        """``AttributeTypeName.Value`` with ``AttributeType`` as fallback."""
        if self.attribute_type_name and self.attribute_type_name.get("Value"):
            return self.attribute_type_name["Value"]
        return self.attribute_type or "Unknown"

    @property
    def is_required(self) -> bool:
        if not self.required_level:
            return False
        return self.required_level.get("Value") in REQUIRED_LEVELS

    @property
    def search_text(self) -> str:
        return f"{self.display_name} {self.logical_name}"


class RelationshipMetadata(WireModel):
    """A 1:N, N:1 or N:N relationship definition."""

    schema_name: Optional[str] = Field(default=None, alias="SchemaName")
    referencing_entity: Optional[str] = Field(default=None, alias="ReferencingEntity")
    referencing_attribute: Optional[str] = Field(default=None, alias="ReferencingAttribute")
    referenced_entity: Optional[str] = Field(default=None, alias="ReferencedEntity")
    referenced_attribute: Optional[str] = Field(default=None, alias="ReferencedAttribute")
    entity1_logical_name: Optional[str] = Field(default=None, alias="Entity1LogicalName")
    entity2_logical_name: Optional[str] = Field(default=None, alias="Entity2LogicalName")
    intersect_entity_name: Optional[str] = Field(default=None, alias="IntersectEntityName")

    @property
    def name(self) -> str:
        return self.schema_name or "Unknown"

    @property
    def is_many_to_many(self) -> bool:
        return self.intersect_entity_name is not None or self.entity1_logical_name is not None


# =============================================================================
# Solutions and layers
# =============================================================================


class Solution(WireModel):
    """A solution row from ``solutions``."""

    solution_id: str = Field(alias="solutionid")
    unique_name: str = Field(alias="uniquename")
    friendly_name: Optional[str] = Field(default=None, alias="friendlyname")
    version: Optional[str] = Field(default=None, alias="version")
    is_managed: Optional[bool] = Field(default=None, alias="ismanaged")
    description: Optional[str] = Field(default=None, alias="description")
    installed_on: Optional[str] = Field(default=None, alias="installedon")

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.unique_name

    @property
    def search_text(self) -> str:
        return f"{self.display_name} {self.unique_name}"


# Component type codes from the solutioncomponent ``componenttype`` choice
COMPONENT_TYPES: dict[int, str] = {
    1: "Entity",
    2: "Attribute",
    3: "Relationship",
    9: "Option Set",
    10: "Entity Relationship",
    13: "Managed Property",
    14: "Entity Key",
    20: "Security Role",
    21: "Role Privilege",
    26: "View",
    29: "Workflow/Flow",
    31: "Report",
    36: "Email Template",
    44: "Duplicate Rule",
    48: "Entity Ribbon",
    50: "Ribbon",
    59: "Chart",
    60: "Form",
    61: "Web Resource",
    62: "Site Map",
    63: "Connection Role",
    66: "Custom Control",
    70: "Field Security Profile",
    80: "App Module",
    90: "Plugin Type",
    91: "Plugin Assembly",
    92: "Plugin Step",
}

# Names used by ``msdyn_componentlayers.msdyn_solutioncomponentname``
LAYER_COMPONENT_NAMES: dict[int, str] = {
    1: "Entity",
    2: "Attribute",
    9: "OptionSet",
    10: "EntityRelationship",
    20: "Role",
    26: "SavedQuery",
    29: "Workflow",
    59: "SavedQueryVisualization",
    60: "SystemForm",
    61: "WebResource",
    62: "SiteMap",
    80: "AppModule",
    92: "SdkMessageProcessingStep",
}


class SolutionComponent(WireModel):
    """A member of a solution from ``solutioncomponents``."""

    solution_component_id: str = Field(alias="solutioncomponentid")
    component_type: Optional[int] = Field(default=None, alias="componenttype")
    object_id: Optional[str] = Field(default=None, alias="objectid")
    root_component_behavior: Optional[int] = Field(default=None, alias="rootcomponentbehavior")

    @property
    def type_name(self) -> str:
        code = self.component_type or 0
        return COMPONENT_TYPES.get(code, f"Unknown ({code})")

    @property
    def layer_component_name(self) -> Optional[str]:
        return LAYER_COMPONENT_NAMES.get(self.component_type or 0)

    @property
    def search_text(self) -> str:
        return f"{self.type_name} {self.object_id or ''}"


class ComponentLayer(WireModel):
    """One customization layer from ``msdyn_componentlayers``."""

    # The unmanaged layer is always reported under this pseudo solution
    ACTIVE_SOLUTION: ClassVar[str] = "Active"

    layer_id: Optional[str] = Field(default=None, alias="msdyn_componentlayerid")
    solution_name: str = Field(alias="msdyn_solutionname")
    name: Optional[str] = Field(default=None, alias="msdyn_name")
    order: Optional[int] = Field(default=None, alias="msdyn_order")
    publisher_name: Optional[str] = Field(default=None, alias="msdyn_publishername")
    overwrite_time: Optional[str] = Field(default=None, alias="msdyn_overwritetime")
    component_id: Optional[str] = Field(default=None, alias="msdyn_componentid")
    component_name: Optional[str] = Field(default=None, alias="msdyn_solutioncomponentname")
    managed: Optional[bool] = Field(default=None, alias="ismanaged")

    @property
    def is_managed(self) -> bool:
        if self.managed is not None:
            return self.managed
        return self.solution_name != self.ACTIVE_SOLUTION


# =============================================================================
# Users, teams, roles
# =============================================================================


class BusinessUnitRef(WireModel):
    """Expanded ``businessunitid`` navigation property."""

    id: Optional[str] = Field(default=None, alias="businessunitid")
    name: Optional[str] = Field(default=None, alias="name")


class BusinessUnit(WireModel):
    """A row from ``businessunits``."""

    id: str = Field(alias="businessunitid")
    name: str = Field(alias="name")
    parent_id: Optional[str] = Field(default=None, alias="_parentbusinessunitid_value")


class SystemUser(WireModel):
    """A row from ``systemusers``."""

    id: str = Field(alias="systemuserid")
    full_name: Optional[str] = Field(default=None, alias="fullname")
    domain_name: Optional[str] = Field(default=None, alias="domainname")
    email: Optional[str] = Field(default=None, alias="internalemailaddress")
    is_disabled: Optional[bool] = Field(default=None, alias="isdisabled")
    business_unit: Optional[BusinessUnitRef] = Field(default=None, alias="businessunitid")
    title: Optional[str] = Field(default=None, alias="title")
    created_on: Optional[str] = Field(default=None, alias="createdon")

    @property
    def display_name(self) -> str:
        return self.full_name or self.domain_name or "Unknown"

    @property
    def status(self) -> str:
        return "Disabled" if self.is_disabled else "Enabled"

    @property
    def business_unit_id(self) -> Optional[str]:
        return self.business_unit.id if self.business_unit else None

    @property
    def search_text(self) -> str:
        return f"{self.display_name} {self.domain_name or ''} {self.email or ''}"


TEAM_TYPES = {0: "Owner", 1: "Access", 2: "AAD Security Group", 3: "AAD Office Group"}


class Team(WireModel):
    """A row from ``teams``."""

    id: str = Field(alias="teamid")
    name: str = Field(alias="name")
    team_type: Optional[int] = Field(default=None, alias="teamtype")
    description: Optional[str] = Field(default=None, alias="description")
    is_default: Optional[bool] = Field(default=None, alias="isdefault")
    business_unit_id: Optional[str] = Field(default=None, alias="_businessunitid_value")

    @property
    def type_name(self) -> str:
        return TEAM_TYPES.get(self.team_type, "Unknown")

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def search_text(self) -> str:
        return self.name


class SecurityRole(WireModel):
    """A row from ``roles``."""

    id: str = Field(alias="roleid")
    name: str = Field(alias="name")
    business_unit: Optional[BusinessUnitRef] = Field(default=None, alias="businessunitid")
    is_managed: Optional[bool] = Field(default=None, alias="ismanaged")

    @property
    def business_unit_name(self) -> str:
        if self.business_unit and self.business_unit.name:
            return self.business_unit.name
        return "-"

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def search_text(self) -> str:
        return self.name


class UserSecurity(BaseModel):
    """Everything needed to resolve one user's effective security roles.

    Assembled by the client from several requests; not a wire record.
    """

    model_config = ConfigDict(frozen=True)

    user: SystemUser
    direct_roles: list[SecurityRole] = Field(default_factory=list)
    teams: list[Team] = Field(default_factory=list)
    team_roles: dict[str, list[SecurityRole]] = Field(default_factory=dict)
    business_units: dict[str, BusinessUnit] = Field(default_factory=dict)
    business_unit_roles: dict[str, list[SecurityRole]] = Field(default_factory=dict)


# =============================================================================
# Option sets and discovery
# =============================================================================


class OptionValue(WireModel):
    """A single choice value."""

    value: int = Field(alias="Value")
    label: Optional[dict[str, Any]] = Field(default=None, alias="Label")

    @property
    def text(self) -> str:
        return label_text(self.label)


class OptionSetMetadata(WireModel):
    """A global choice from ``GlobalOptionSetDefinitions``."""

    metadata_id: Optional[str] = Field(default=None, alias="MetadataId")
    name: str = Field(alias="Name")
    display_label: Optional[dict[str, Any]] = Field(default=None, alias="DisplayName")
    option_set_type: Optional[str] = Field(default=None, alias="OptionSetType")
    is_global: Optional[bool] = Field(default=None, alias="IsGlobal")
    options: Optional[list[OptionValue]] = Field(default=None, alias="Options")

    @property
    def display_name(self) -> str:
        return label_text(self.display_label) or self.name

    @property
    def search_text(self) -> str:
        return f"{self.display_name} {self.name}"


class DiscoveryInstance(WireModel):
    """An environment returned by the global discovery service."""

    id: str = Field(alias="Id")
    url: str = Field(alias="Url")
    unique_name: Optional[str] = Field(default=None, alias="UniqueName")
    friendly_name: Optional[str] = Field(default=None, alias="FriendlyName")
    region: Optional[str] = Field(default=None, alias="Region")
    version: Optional[str] = Field(default=None, alias="Version")
    state: Optional[int] = Field(default=None, alias="State")

    @property
    def display_name(self) -> str:
        return self.friendly_name or self.unique_name or self.url

    @property
    def search_text(self) -> str:
        return f"{self.display_name} {self.url}"


class RelationshipDirection(str, Enum):
    """Direction of a relationship relative to the entity being viewed."""

    ONE_TO_MANY = "1:N"
    MANY_TO_ONE = "N:1"
    MANY_TO_MANY = "N:N"
