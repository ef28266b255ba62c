"""Dataverse Web API client.

This module provides functionality to:
- Issue authenticated OData requests against an environment
- Follow ``@odata.nextLink`` paging
- Translate transport and HTTP failures into the Metascope error taxonomy
- Execute typed query descriptors (see :mod:`metascope.client.queries`)
"""

import asyncio
import logging
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from metascope import __version__
from metascope.client.auth import LOGIN_HINT, CredentialProvider
from metascope.client.queries import (
    ComponentLayers,
    DiscoverEnvironments,
    EntityAttributes,
    EntityRelationships,
    FetchXml,
    ListUsers,
    Query,
    SolutionComponents,
    UserSecurityQuery,
    fetch_xml_entity,
)
from metascope.errors import (
    AuthFailure,
    MalformedData,
    MetascopeError,
    NetworkTransient,
    NotFound,
    ServiceRejected,
    UserInputInvalid,
)
from metascope.models import (
    AttributeMetadata,
    BusinessUnit,
    ComponentLayer,
    DiscoveryInstance,
    EntityMetadata,
    Environment,
    OptionSetMetadata,
    QueryResult,
    RelationshipMetadata,
    SecurityRole,
    Solution,
    SolutionComponent,
    SystemUser,
    Team,
    UserSecurity,
)


logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DISCOVERY_RESOURCE = "https://globaldisco.crm.dynamics.com"
DISCOVERY_URL = f"{DISCOVERY_RESOURCE}/api/discovery/v2.0/Instances"

# Throttling and gateway errors are worth retrying by hand
TRANSIENT_STATUSES = {408, 429, 502, 503, 504}

ENTITY_SELECT = (
    "MetadataId,LogicalName,DisplayName,SchemaName,Description,PrimaryIdAttribute,"
    "PrimaryNameAttribute,EntitySetName,IsCustomEntity,IsManaged,ObjectTypeCode"
)
ATTRIBUTE_SELECT = (
    "MetadataId,LogicalName,DisplayName,SchemaName,AttributeType,AttributeTypeName,"
    "RequiredLevel,IsCustomAttribute,IsPrimaryId,IsPrimaryName,Description"
)
ONE_TO_MANY_SELECT = (
    "SchemaName,ReferencingEntity,ReferencingAttribute,ReferencedEntity,ReferencedAttribute"
)
MANY_TO_MANY_SELECT = "SchemaName,Entity1LogicalName,Entity2LogicalName,IntersectEntityName"
USER_SELECT = "systemuserid,fullname,domainname,internalemailaddress,isdisabled,title,createdon"
ROLE_SELECT = "roleid,name,ismanaged"
TEAM_SELECT = "teamid,name,teamtype,description,isdefault,_businessunitid_value"
SOLUTION_SELECT = "solutionid,uniquename,friendlyname,version,ismanaged,description,installedon"
LAYER_SELECT = (
    "msdyn_componentlayerid,msdyn_solutionname,msdyn_name,msdyn_order,"
    "msdyn_publishername,msdyn_overwritetime,msdyn_componentid,msdyn_solutioncomponentname"
)
BU_EXPAND = "businessunitid($select=businessunitid,name)"


def _error_message(response: httpx.Response) -> str:
    """Pull ``error.message`` out of an OData error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return response.reason_phrase


def _validate_all(model: type[M], records: list[Any]) -> list[M]:
    try:
        return [model.model_validate(record) for record in records]
    except ValidationError as e:
        raise MalformedData(f"Unexpected {model.__name__} record: {e.errors()[0]['msg']}") from e


class DataverseClient:
    """Async client for the Dataverse Web API."""

    API_PATH = "/api/data/v9.2"

    def __init__(
        self,
        credentials: Optional[CredentialProvider] = None,
        timeout: float = 30.0,
        max_pages: int = 20,
    ):
        """Initialize the client.

        Args:
            credentials: Token provider. When omitted, ``Environment.token``
                is sent as-is.
            timeout: Per-request timeout in seconds.
            max_pages: Upper bound on ``@odata.nextLink`` pages followed.
        """
        self.credentials = credentials
        self.timeout = timeout
        self.max_pages = max_pages
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "Accept": "application/json",
                    "User-Agent": f"Metascope/{__version__}",
                    "OData-MaxVersion": "4.0",
                    "OData-Version": "4.0",
                    "Prefer": 'odata.include-annotations="*"',
                },
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "DataverseClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _token(self, resource: str, env: Optional[Environment] = None) -> str:
        if self.credentials is not None:
            return await self.credentials.get_token(resource)
        if env is not None and env.token:
            return env.token
        raise AuthFailure("No credential available", hint=LOGIN_HINT)

    def _forget_token(self, resource: str) -> None:
        forget = getattr(self.credentials, "forget", None)
        if forget is not None:
            forget(resource)

    async def _request(
        self,
        url: str,
        token: str,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """GET *url* and map every failure onto the error taxonomy."""
        try:
            response = await self.client.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise NetworkTransient(f"Request timed out: {url}") from e
        except httpx.TransportError as e:
            raise NetworkTransient(f"Network error: {e}") from e

        status = response.status_code
        if response.is_success:
            return response

        message = _error_message(response)
        logger.info("GET %s failed with %s: %s", url, status, message)
        if status in (401, 403):
            raise AuthFailure(message, hint=LOGIN_HINT)
        if status == 404:
            raise NotFound(message)
        if status in TRANSIENT_STATUSES:
            raise NetworkTransient(f"HTTP {status}: {message}")
        raise ServiceRejected(status, message)

    def api_url(self, env: Environment, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{env.url}{self.API_PATH}/{endpoint.lstrip('/')}"

    async def get_json(
        self,
        env: Environment,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Authenticated GET returning the decoded JSON body."""
        token = await self._token(env.url, env)
        try:
            response = await self._request(self.api_url(env, endpoint), token, params)
        except AuthFailure:
            # A rejected token must not be reused by a retry
            self._forget_token(env.url)
            raise
        try:
            return response.json()
        except ValueError as e:
            raise MalformedData(f"Response was not JSON: {e}") from e

    async def get_values(
        self,
        env: Environment,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
    ) -> list[Any]:
        """Collect the ``value`` arrays of every page of an OData response."""
        values: list[Any] = []
        next_url: Optional[str] = endpoint
        pages = 0
        while next_url and pages < self.max_pages:
            body = await self.get_json(env, next_url, params if pages == 0 else None)
            if not isinstance(body, dict) or not isinstance(body.get("value"), list):
                raise MalformedData("Invalid response format: missing 'value' array")
            values.extend(body["value"])
            next_url = body.get("@odata.nextLink")
            pages += 1
        if next_url:
            logger.warning("Stopped paging %s after %d pages", endpoint, pages)
        return values

    # -------------------------------------------------------------------------
    # Typed queries
    # -------------------------------------------------------------------------

    async def fetch(self, env: Environment, query: Query) -> Any:
        """Execute a query descriptor and return its typed payload.

        Raises:
            MetascopeError: Always one of the taxonomy subclasses.
        """
        handler = getattr(self, f"_fetch_{query.handler}", None)
        if handler is None:
            raise MetascopeError(f"Unsupported query: {query.describe()}")
        logger.debug("Fetching %s from %s", query.describe(), env.host)
        return await handler(env, query)

    async def _fetch_entities(self, env: Environment, query: Query) -> list[EntityMetadata]:
        records = await self.get_values(env, "EntityDefinitions", {"$select": ENTITY_SELECT})
        entities = _validate_all(EntityMetadata, records)
        return sorted(entities, key=lambda e: e.logical_name)

    async def _fetch_attributes(
        self, env: Environment, query: EntityAttributes
    ) -> list[AttributeMetadata]:
        records = await self.get_values(
            env,
            f"EntityDefinitions(LogicalName='{query.logical_name}')/Attributes",
            {"$select": ATTRIBUTE_SELECT},
        )
        attributes = _validate_all(AttributeMetadata, records)
        return sorted(attributes, key=lambda a: a.logical_name)

    async def _fetch_relationships(
        self, env: Environment, query: EntityRelationships
    ) -> list[RelationshipMetadata]:
        base = f"EntityDefinitions(LogicalName='{query.logical_name}')"
        one_to_many, many_to_one, many_to_many = await asyncio.gather(
            self.get_values(env, f"{base}/OneToManyRelationships", {"$select": ONE_TO_MANY_SELECT}),
            self.get_values(env, f"{base}/ManyToOneRelationships", {"$select": ONE_TO_MANY_SELECT}),
            self.get_values(env, f"{base}/ManyToManyRelationships", {"$select": MANY_TO_MANY_SELECT}),
        )
        return _validate_all(RelationshipMetadata, one_to_many + many_to_one + many_to_many)

    async def _fetch_solutions(self, env: Environment, query: Query) -> list[Solution]:
        records = await self.get_values(
            env, "solutions", {"$select": SOLUTION_SELECT, "$orderby": "friendlyname"}
        )
        return _validate_all(Solution, records)

    async def _fetch_solution_components(
        self, env: Environment, query: SolutionComponents
    ) -> list[SolutionComponent]:
        records = await self.get_values(
            env,
            "solutioncomponents",
            {
                "$filter": f"_solutionid_value eq {query.solution_id}",
                "$select": "componenttype,objectid,solutioncomponentid,rootcomponentbehavior",
            },
        )
        return _validate_all(SolutionComponent, records)

    async def _fetch_users(self, env: Environment, query: ListUsers) -> list[SystemUser]:
        params = {"$select": USER_SELECT, "$expand": BU_EXPAND, "$orderby": "fullname"}
        if not query.include_disabled:
            params["$filter"] = "isdisabled eq false"
        records = await self.get_values(env, "systemusers", params)
        return _validate_all(SystemUser, records)

    async def _fetch_user_security(
        self, env: Environment, query: UserSecurityQuery
    ) -> UserSecurity:
        user_id = query.user_id
        user_body, direct, teams, units, default_teams = await asyncio.gather(
            self.get_json(
                env, f"systemusers({user_id})", {"$select": USER_SELECT, "$expand": BU_EXPAND}
            ),
            self.get_values(
                env,
                f"systemusers({user_id})/systemuserroles_association",
                {"$select": ROLE_SELECT, "$expand": BU_EXPAND},
            ),
            self.get_values(
                env, f"systemusers({user_id})/teammembership_association", {"$select": TEAM_SELECT}
            ),
            self.get_values(
                env,
                "businessunits",
                {"$select": "businessunitid,name,_parentbusinessunitid_value"},
            ),
            self.get_values(
                env,
                "teams",
                {
                    "$select": TEAM_SELECT,
                    "$filter": "isdefault eq true",
                    "$expand": f"teamroles_association($select={ROLE_SELECT})",
                },
            ),
        )
        try:
            user = SystemUser.model_validate(user_body)
        except ValidationError as e:
            raise MalformedData(f"Unexpected user record: {e.errors()[0]['msg']}") from e

        team_list = _validate_all(Team, teams)
        role_lists = await asyncio.gather(
            *(
                self.get_values(
                    env,
                    f"teams({team.id})/teamroles_association",
                    {"$select": ROLE_SELECT, "$expand": BU_EXPAND},
                )
                for team in team_list
            )
        )

        # Roles of each business unit's default team count as unit-level roles
        unit_roles: dict[str, list[SecurityRole]] = {}
        for record in default_teams:
            unit_id = record.get("_businessunitid_value") if isinstance(record, dict) else None
            if unit_id:
                unit_roles[unit_id] = _validate_all(
                    SecurityRole, record.get("teamroles_association") or []
                )

        return UserSecurity(
            user=user,
            direct_roles=_validate_all(SecurityRole, direct),
            teams=team_list,
            team_roles={
                team.id: _validate_all(SecurityRole, roles)
                for team, roles in zip(team_list, role_lists)
            },
            business_units={bu.id: bu for bu in _validate_all(BusinessUnit, units)},
            business_unit_roles=unit_roles,
        )

    async def _fetch_option_sets(self, env: Environment, query: Query) -> list[OptionSetMetadata]:
        records = await self.get_values(env, "GlobalOptionSetDefinitions")
        named = [r for r in records if not isinstance(r, dict) or r.get("Name")]
        option_sets = _validate_all(OptionSetMetadata, named)
        return sorted(option_sets, key=lambda o: o.name)

    async def _fetch_component_layers(
        self, env: Environment, query: ComponentLayers
    ) -> list[ComponentLayer]:
        records = await self.get_values(
            env,
            "msdyn_componentlayers",
            {
                "$filter": (
                    f"(msdyn_componentid eq '{query.component_id}' and "
                    f"msdyn_solutioncomponentname eq '{query.component_name}')"
                ),
                "$select": LAYER_SELECT,
            },
        )
        return _validate_all(ComponentLayer, records)

    async def _fetch_fetch_xml(self, env: Environment, query: FetchXml) -> QueryResult:
        try:
            body = await self.get_json(env, query.entity_set_name, {"fetchXml": query.fetch_xml})
        except ServiceRejected as e:
            if e.status == 400:
                raise UserInputInvalid(f"FetchXML rejected: {e.detail}") from e
            raise
        return QueryResult.from_json(body)

    async def _fetch_discovery(
        self, env: Environment, query: DiscoverEnvironments
    ) -> list[DiscoveryInstance]:
        return await self.discover()

    async def discover(self) -> list[DiscoveryInstance]:
        """List the environments visible to the signed-in user.

        Raises:
            AuthFailure: Without Azure CLI credentials, or when rejected.
        """
        if self.credentials is None:
            raise AuthFailure(
                "Environment discovery needs Azure CLI credentials",
                hint="Start without --token to use 'az login' credentials.",
            )
        token = await self.credentials.get_token(DISCOVERY_RESOURCE)
        try:
            response = await self._request(DISCOVERY_URL, token)
        except AuthFailure:
            self._forget_token(DISCOVERY_RESOURCE)
            raise
        try:
            body = response.json()
        except ValueError as e:
            raise MalformedData(f"Discovery response was not JSON: {e}") from e
        if not isinstance(body, dict) or not isinstance(body.get("value"), list):
            raise MalformedData("Invalid discovery response: missing 'value' array")
        instances = _validate_all(DiscoveryInstance, body["value"])
        return sorted(instances, key=lambda i: i.display_name.lower())

    async def check_connection(self, env: Environment) -> str:
        """Call ``WhoAmI`` and return the caller's user id.

        Used at startup so an unreachable environment fails fast.
        """
        body = await self.get_json(env, "WhoAmI")
        if not isinstance(body, dict) or "UserId" not in body:
            raise MalformedData("Unexpected WhoAmI response")
        return str(body["UserId"])

    async def entity_set_name(self, env: Environment, logical_name: str) -> str:
        """Look up the entity set (collection) name of one entity."""
        body = await self.get_json(
            env,
            f"EntityDefinitions(LogicalName='{logical_name}')",
            {"$select": "EntitySetName"},
        )
        name = body.get("EntitySetName") if isinstance(body, dict) else None
        if not name:
            raise MalformedData(f"Entity '{logical_name}' has no entity set name")
        return name

    async def execute_fetch_xml(self, env: Environment, fetch_xml: str) -> QueryResult:
        """Validate and run FetchXML, resolving the entity set first."""
        logical_name = fetch_xml_entity(fetch_xml)
        entity_set = await self.entity_set_name(env, logical_name)
        return await self.fetch(env, FetchXml(entity_set, fetch_xml.strip()))
