"""Data binding: which cache entries a frame reads and how rows look.

Each view kind has one source function. A source reads the cache through
:class:`SourceContext` (never awaiting) and returns a :class:`ViewData`
with the items, the columns and a row renderer. Lookups are dispatched on
the frame kind through ``SOURCES``.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from metascope.client.queries import (
    ComponentLayers,
    DiscoverEnvironments,
    EntityAttributes,
    EntityRelationships,
    ListEntities,
    ListOptionSets,
    ListSolutions,
    ListUsers,
    Query,
    SolutionComponents,
    UserSecurityQuery,
)
from metascope.core.cache import CacheEntry, CacheState, MetadataCache
from metascope.core.navigation import ViewFrame, ViewKind
from metascope.core.search import SearchHit, default_key, filter_indices, global_search
from metascope.engines import (
    BusinessUnitPolicy,
    classify_relationships,
    order_layers,
    own_unit_only,
    resolve_roles,
)
from metascope.models import (
    AttributeMetadata,
    EntityMetadata,
    Environment,
    OptionSetMetadata,
    SecurityRole,
    SolutionComponent,
    SystemUser,
)


READY = CacheEntry(CacheState.READY)


def yes_no(value: Optional[bool]) -> str:
    if value is None:
        return "-"
    return "Yes" if value else "No"


@dataclass
class SourceContext:
    """What a source may read: the active environment and the cache."""

    env: Environment
    cache: MetadataCache
    environments: Sequence[str] = ()
    bu_policy: BusinessUnitPolicy = own_unit_only
    fuzzy: bool = False

    def entry(self, query: Query) -> CacheEntry:
        return self.cache.get_or_fetch(self.env, query)

    def payload(self, query: Query) -> Any:
        entry = self.entry(query)
        return entry.payload if entry.is_ready else None

    def derive(self, query: Query, name: str, fn: Callable[[Any], Any]) -> Any:
        self.entry(query)
        return self.cache.derive(self.env, query, name, fn)


@dataclass
class ViewData:
    """Everything the projector needs about a frame's contents."""

    columns: tuple[str, ...] = ()
    items: list[Any] = field(default_factory=list)
    render: Callable[[Any], tuple[str, ...]] = lambda item: (str(item),)
    entry: CacheEntry = READY
    key: Callable[[Any], str] = default_key
    queries: tuple[Query, ...] = ()

    def visible(self, query: str, fuzzy: bool = False) -> list[int]:
        return filter_indices(self.items, query, self.key, fuzzy)

    def rows(self, indices: Sequence[int]) -> list[tuple[str, ...]]:
        return [self.render(self.items[i]) for i in indices]


def combine(entries: Sequence[CacheEntry]) -> CacheEntry:
    """Failed if any failed, pending if any pending, otherwise ready."""
    for entry in entries:
        if entry.is_failed:
            return entry
    for entry in entries:
        if not entry.is_ready:
            return CacheEntry(CacheState.PENDING)
    return READY


def properties(pairs: Sequence[tuple[str, Any]]) -> ViewData:
    """Two-column key/value table (Metadata and Info tabs)."""
    return ViewData(
        columns=("Property", "Value"),
        items=[(name, "-" if value in (None, "") else str(value)) for name, value in pairs],
        render=lambda pair: pair,
        key=lambda pair: f"{pair[0]} {pair[1]}",
    )


# =============================================================================
# Root lists
# =============================================================================


def entities_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    query = ListEntities()
    return ViewData(
        columns=("Display Name", "Logical Name", "Entity Set", "Custom", "Managed"),
        items=ctx.payload(query) or [],
        render=lambda e: (
            e.display_name,
            e.logical_name,
            e.entity_set_name or "-",
            yes_no(e.is_custom_entity),
            yes_no(e.is_managed),
        ),
        entry=ctx.entry(query),
        queries=(query,),
    )


def solutions_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    query = ListSolutions()
    return ViewData(
        columns=("Name", "Unique Name", "Version", "Managed"),
        items=ctx.payload(query) or [],
        render=lambda s: (s.display_name, s.unique_name, s.version or "-", yes_no(s.is_managed)),
        entry=ctx.entry(query),
        queries=(query,),
    )


def users_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    query = ListUsers()
    return ViewData(
        columns=("Name", "Domain Name", "Business Unit", "Status"),
        items=ctx.payload(query) or [],
        render=lambda u: (
            u.display_name,
            u.domain_name or "-",
            u.business_unit.name if u.business_unit and u.business_unit.name else "-",
            u.status,
        ),
        entry=ctx.entry(query),
        queries=(query,),
    )


def option_sets_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    query = ListOptionSets()
    return ViewData(
        columns=("Display Name", "Name", "Type", "Options"),
        items=ctx.payload(query) or [],
        render=lambda o: (
            o.display_name,
            o.name,
            o.option_set_type or "-",
            str(len(o.options or [])),
        ),
        entry=ctx.entry(query),
        queries=(query,),
    )


# =============================================================================
# Detail views
# =============================================================================


def _find_entity(ctx: SourceContext, logical_name: str) -> Optional[EntityMetadata]:
    for entity in ctx.cache.peek(ctx.env, ListEntities()).payload or []:
        if entity.logical_name == logical_name:
            return entity
    return None


def entity_detail_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    logical_name = frame.parent_ref.id if frame.parent_ref else ""
    if frame.tab == 0:
        query = EntityAttributes(logical_name)
        return ViewData(
            columns=("Display Name", "Logical Name", "Type", "Required", "Custom"),
            items=ctx.payload(query) or [],
            render=lambda a: (
                a.display_name,
                a.logical_name,
                a.type_name,
                yes_no(a.is_required),
                yes_no(a.is_custom_attribute),
            ),
            entry=ctx.entry(query),
            queries=(query,),
        )
    if frame.tab == 1:
        query = EntityRelationships(logical_name)
        classified = ctx.derive(
            query, "classified", lambda rels: classify_relationships(logical_name, rels)
        )
        return ViewData(
            columns=("Direction", "Name", "Related Entity", "Attribute"),
            items=classified or [],
            render=lambda r: (r.direction.value, r.name, r.related_entity, r.attribute or "-"),
            entry=ctx.entry(query),
            queries=(query,),
        )

    entity = frame.parent_ref.item if frame.parent_ref else None
    if not isinstance(entity, EntityMetadata):
        entity = _find_entity(ctx, logical_name)
    if entity is None:
        return properties([("Logical Name", logical_name)])
    return properties(
        [
            ("Display Name", entity.display_name),
            ("Logical Name", entity.logical_name),
            ("Schema Name", entity.schema_name),
            ("Entity Set Name", entity.entity_set_name),
            ("Primary Id", entity.primary_id_attribute),
            ("Primary Name", entity.primary_name_attribute),
            ("Object Type Code", entity.object_type_code),
            ("Custom", yes_no(entity.is_custom_entity)),
            ("Managed", yes_no(entity.is_managed)),
            ("Description", entity.description),
            ("Metadata Id", entity.metadata_id),
        ]
    )


def solution_detail_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    query = SolutionComponents(frame.parent_ref.id if frame.parent_ref else "")
    return ViewData(
        columns=("Type", "Object Id", "Root Behavior"),
        items=ctx.payload(query) or [],
        render=lambda c: (
            c.type_name,
            c.object_id or "-",
            "-" if c.root_component_behavior is None else str(c.root_component_behavior),
        ),
        entry=ctx.entry(query),
        queries=(query,),
    )


def _role_row(role: SecurityRole) -> tuple[str, ...]:
    return (role.name, role.business_unit_name, yes_no(role.is_managed))


def user_detail_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    query = UserSecurityQuery(frame.parent_ref.id if frame.parent_ref else "")
    entry = ctx.entry(query)
    security = entry.payload if entry.is_ready else None

    if frame.tab == 0:
        return ViewData(
            columns=("Role", "Business Unit", "Managed"),
            items=list(security.direct_roles) if security else [],
            render=_role_row,
            entry=entry,
            queries=(query,),
        )
    if frame.tab == 1:
        return ViewData(
            columns=("Team", "Type", "Default"),
            items=list(security.teams) if security else [],
            render=lambda t: (t.name, t.type_name, yes_no(t.is_default)),
            entry=entry,
            queries=(query,),
        )
    if frame.tab == 2:
        assignments = ctx.derive(query, "effective_roles", lambda s: resolve_roles(s, ctx.bu_policy))
        return ViewData(
            columns=("Role", "Origin", "Business Unit"),
            items=assignments or [],
            render=lambda a: (a.role.name, a.origin.describe(), a.role.business_unit_name),
            entry=entry,
            queries=(query,),
        )

    user = security.user if security else None
    if user is None and frame.parent_ref and isinstance(frame.parent_ref.item, SystemUser):
        user = frame.parent_ref.item
    if user is None:
        data = properties([])
        data.entry = entry
        data.queries = (query,)
        return data
    data = properties(
        [
            ("Full Name", user.full_name),
            ("Domain Name", user.domain_name),
            ("Email", user.email),
            ("Title", user.title),
            ("Business Unit", user.business_unit.name if user.business_unit else None),
            ("Status", user.status),
            ("Created On", user.created_on),
            ("User Id", user.id),
        ]
    )
    data.entry = entry
    data.queries = (query,)
    return data


def layer_target(item: Any) -> Optional[tuple[str, str]]:
    """``(component id, layer component name)`` for a selected record."""
    if isinstance(item, SolutionComponent):
        if item.object_id and item.layer_component_name:
            return item.object_id, item.layer_component_name
        return None
    if isinstance(item, EntityMetadata):
        return item.metadata_id, "Entity"
    if isinstance(item, AttributeMetadata):
        return item.metadata_id, "Attribute"
    if isinstance(item, OptionSetMetadata) and item.metadata_id:
        return item.metadata_id, "OptionSet"
    if isinstance(item, SecurityRole):
        return item.id, "Role"
    return None


def solution_layers_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    ref = frame.parent_ref
    query = ComponentLayers(ref.id if ref else "", ref.detail if ref else "")
    layers = ctx.derive(query, "ordered", order_layers)
    return ViewData(
        columns=("#", "Solution", "Type", "Publisher", "Applied", "Active"),
        items=layers or [],
        render=lambda layer: (
            str(layer.rank),
            layer.solution,
            f"[{layer.managed_label}]",
            layer.publisher or "-",
            layer.applied_on or "-",
            "*" if layer.active else "",
        ),
        entry=ctx.entry(query),
        queries=(query,),
    )


# =============================================================================
# Modals
# =============================================================================


def fetch_xml_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    if frame.query is None:
        return ViewData(columns=("Result",))
    entry = ctx.entry(frame.query)
    result = entry.payload if entry.is_ready else None
    return ViewData(
        columns=tuple(result.columns) if result else ("Result",),
        items=[tuple(row) for row in result.rows] if result else [],
        render=lambda row: row,
        key=lambda row: " ".join(row),
        entry=entry,
        queries=(frame.query,),
    )


def global_search_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    categories = (
        ("Entity", ListEntities()),
        ("Solution", ListSolutions()),
        ("Choice", ListOptionSets()),
        ("User", ListUsers()),
    )
    queries = tuple(query for _, query in categories)
    entries = [ctx.entry(q) for q in queries]
    hits = global_search(
        [
            (category, entry.payload if entry.is_ready else None)
            for (category, _), entry in zip(categories, entries)
        ],
        frame.text,
        fuzzy=ctx.fuzzy,
    )
    return ViewData(
        columns=("Type", "Name", "Id"),
        items=hits,
        render=_hit_row,
        entry=combine(entries),
        queries=queries,
    )


def _hit_row(hit: SearchHit) -> tuple[str, ...]:
    item = hit.item
    ident = (
        getattr(item, "logical_name", None)
        or getattr(item, "unique_name", None)
        or getattr(item, "domain_name", None)
    )
    return (hit.category, hit.label, ident or getattr(item, "name", "-"))


def environment_switcher_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    urls = list(ctx.environments)
    if ctx.env.url not in urls:
        urls.insert(0, ctx.env.url)
    return ViewData(
        columns=("", "Environment"),
        items=urls,
        render=lambda url: ("*" if url == ctx.env.url else "", url),
        key=str,
    )


def discovery_source(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    query = DiscoverEnvironments()
    return ViewData(
        columns=("Name", "URL", "Region", "Version"),
        items=ctx.payload(query) or [],
        render=lambda i: (i.display_name, i.url, i.region or "-", i.version or "-"),
        entry=ctx.entry(query),
        queries=(query,),
    )


SOURCES: dict[ViewKind, Callable[[ViewFrame, SourceContext], ViewData]] = {
    ViewKind.ENTITIES: entities_source,
    ViewKind.SOLUTIONS: solutions_source,
    ViewKind.USERS: users_source,
    ViewKind.OPTION_SETS: option_sets_source,
    ViewKind.ENTITY_DETAIL: entity_detail_source,
    ViewKind.SOLUTION_DETAIL: solution_detail_source,
    ViewKind.USER_DETAIL: user_detail_source,
    ViewKind.SOLUTION_LAYERS: solution_layers_source,
    ViewKind.FETCH_XML_CONSOLE: fetch_xml_source,
    ViewKind.GLOBAL_SEARCH: global_search_source,
    ViewKind.ENVIRONMENT_SWITCHER: environment_switcher_source,
    ViewKind.DISCOVERY: discovery_source,
}


def resolve(frame: ViewFrame, ctx: SourceContext) -> ViewData:
    """Data for *frame*. The search popup shows nothing of its own."""
    source = SOURCES.get(frame.kind)
    if source is None:
        return ViewData()
    return source(frame, ctx)
