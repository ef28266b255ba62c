"""Remote access to the Dataverse Web API."""

from .auth import AzureCliCredential, CredentialProvider, StaticCredential
from .dataverse import DataverseClient
from .queries import (
    ComponentLayers,
    DiscoverEnvironments,
    EntityAttributes,
    EntityRelationships,
    FetchXml,
    ListEntities,
    ListOptionSets,
    ListSolutions,
    ListUsers,
    Query,
    SolutionComponents,
    UserSecurityQuery,
    fetch_xml_entity,
    fetch_xml_template,
)

__all__ = [
    "AzureCliCredential",
    "ComponentLayers",
    "CredentialProvider",
    "DataverseClient",
    "DiscoverEnvironments",
    "EntityAttributes",
    "EntityRelationships",
    "FetchXml",
    "ListEntities",
    "ListOptionSets",
    "ListSolutions",
    "ListUsers",
    "Query",
    "SolutionComponents",
    "StaticCredential",
    "UserSecurityQuery",
    "fetch_xml_entity",
    "fetch_xml_template",
]
