"""Browser session: applies transitions to the view stack.

The session owns the view stack and the active environment and shares the
process-wide :class:`MetadataCache`. Every method here is synchronous;
fetching happens in cache tasks and the UI redraws when they complete.
"""

import logging
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from metascope.client.queries import FetchXml, ListEntities, fetch_xml_entity, fetch_xml_template
from metascope.core.cache import MetadataCache
from metascope.core.keymap import (
    Activate,
    DeleteChar,
    Export,
    InsertText,
    JumpToGlobalView,
    KeyMode,
    MoveCursor,
    OpenModal,
    Pop,
    Push,
    Retry,
    SetFilter,
    SwitchTab,
    TEXT_ENTRY_KINDS,
    Transition,
    dispatch,
)
from metascope.core.navigation import ParentRef, ViewFrame, ViewKind, ViewStack
from metascope.core.projector import FrameView, Snapshot
from metascope.core.sources import SourceContext, ViewData, layer_target, resolve
from metascope.engines import BusinessUnitPolicy, ClassifiedRelationship, own_unit_only
from metascope.errors import UserInputInvalid
from metascope.export import export_table
from metascope.models import (
    DiscoveryInstance,
    EntityMetadata,
    Environment,
    OptionSetMetadata,
    Solution,
    SystemUser,
)


logger = logging.getLogger(__name__)

EnvironmentListener = Callable[[Environment], None]


class BrowserSession:
    """Navigation state of one interactive session."""

    def __init__(
        self,
        cache: MetadataCache,
        env: Environment,
        mode: KeyMode = KeyMode.ARROWS,
        environments: Sequence[str] = (),
        bu_policy: BusinessUnitPolicy = own_unit_only,
        fuzzy: bool = False,
        export_format: str = "csv",
        export_dir: Optional[Path] = None,
        root: ViewKind = ViewKind.ENTITIES,
    ):
        self.cache = cache
        self.env = env
        self.mode = mode
        self.environments = list(environments)
        self.bu_policy = bu_policy
        self.fuzzy = fuzzy
        self.export_format = export_format
        self.export_dir = export_dir or Path.cwd()
        self.stack = ViewStack(root)
        self.status: Optional[str] = None
        self.quit_requested = False
        self._environment_listeners: list[EnvironmentListener] = []
        if cache.environment is None or cache.environment.id != env.id:
            cache.switch_environment(env)

    def on_environment_change(self, listener: EnvironmentListener) -> None:
        self._environment_listeners.append(listener)

    # -------------------------------------------------------------------------
    # Reading state
    # -------------------------------------------------------------------------

    def context(self) -> SourceContext:
        return SourceContext(
            env=self.env,
            cache=self.cache,
            environments=self.environments,
            bu_policy=self.bu_policy,
            fuzzy=self.fuzzy,
        )

    def view(self, frame: ViewFrame) -> FrameView:
        """Resolve *frame*'s data and clamp its cursor to what is visible."""
        data = resolve(frame, self.context())
        visible = data.visible(frame.filter, self.fuzzy)
        if visible:
            frame.cursor = max(0, min(frame.cursor, len(visible) - 1))
        else:
            frame.cursor = 0
        return FrameView(frame, data, visible)

    def selected(self, frame: Optional[ViewFrame] = None) -> Optional[Any]:
        """The item under the cursor of *frame* (default: top frame)."""
        view = self.view(frame or self.stack.top)
        if not view.visible:
            return None
        return view.data.items[view.visible[view.frame.cursor]]

    def snapshot(self) -> Snapshot:
        base = self.stack.underlying()
        top = self.stack.top
        return Snapshot(
            base=self.view(base),
            breadcrumb=self.stack.breadcrumb(),
            env_url=self.env.url,
            mode=self.mode,
            modal=self.view(top) if top.modal else None,
            status=self.status,
        )

    # -------------------------------------------------------------------------
    # Applying transitions
    # -------------------------------------------------------------------------

    def handle_key(self, key: str, character: Optional[str] = None) -> bool:
        """Dispatch and apply one key. Returns False once the user quits."""
        top = self.stack.top
        transition = dispatch(top.kind, top.modal, self.mode, key, character)
        if transition is None:
            return True
        return self.apply(transition)

    def apply(self, transition: Transition) -> bool:
        """Apply *transition*. Returns False when it means quit."""
        self.status = None
        top = self.stack.top

        if isinstance(transition, Pop):
            if top.kind == ViewKind.SEARCH_POPUP:
                self.stack.underlying().filter = ""
            if not self.stack.pop():
                self.quit_requested = True
                return False
        elif isinstance(transition, SwitchTab):
            self.stack.switch_tab(transition.delta)
        elif isinstance(transition, MoveCursor):
            self.stack.move_cursor(transition.delta, len(self.view(top).visible))
        elif isinstance(transition, SetFilter):
            if top.kind in TEXT_ENTRY_KINDS:
                self._set_text(top, transition.text)
            else:
                self.stack.set_filter(transition.text)
        elif isinstance(transition, InsertText):
            self._set_text(top, top.text + transition.text)
        elif isinstance(transition, DeleteChar):
            self._set_text(top, top.text[:-1])
        elif isinstance(transition, JumpToGlobalView):
            self.stack.jump_to_global_view(transition.kind)
        elif isinstance(transition, OpenModal):
            self._open_modal(transition)
        elif isinstance(transition, Push):
            self._push(transition)
        elif isinstance(transition, Activate):
            self._activate()
        elif isinstance(transition, Retry):
            self.retry()
        elif isinstance(transition, Export):
            self.export()
        return True

    def _set_text(self, frame: ViewFrame, text: str) -> None:
        frame.text = text
        frame.message = None
        frame.cursor = 0
        if frame.kind == ViewKind.SEARCH_POPUP:
            base = self.stack.underlying()
            base.filter = text
            base.cursor = 0

    def _open_modal(self, transition: OpenModal) -> None:
        kind = transition.kind
        if self.stack.top.kind == kind:
            return
        if kind == ViewKind.SEARCH_POPUP:
            self.stack.open_modal(kind, text=self.stack.underlying().filter)
        elif kind == ViewKind.FETCH_XML_CONSOLE and transition.from_selection:
            entity = self._selected_entity()
            if entity is None:
                self.status = "Select an entity first"
                return
            self.stack.open_modal(kind, text=fetch_xml_template(entity))
        else:
            self.stack.open_modal(kind)

    def _selected_entity(self) -> Optional[str]:
        base = self.stack.underlying()
        item = self.selected(base)
        if isinstance(item, EntityMetadata):
            return item.logical_name
        if base.kind == ViewKind.ENTITY_DETAIL and base.parent_ref is not None:
            return base.parent_ref.id
        return None

    def _push(self, transition: Push) -> None:
        if transition.parent_ref is not None:
            self.stack.push(transition.kind, transition.parent_ref)
            return
        if transition.kind != ViewKind.SOLUTION_LAYERS:
            self.stack.push(transition.kind)
            return

        base = self.stack.underlying()
        item = self.selected(base)
        if item is None and base.parent_ref is not None:
            item = base.parent_ref.item
        target = layer_target(item)
        if target is None:
            self.status = "No solution layers for this selection"
            return
        component_id, component_name = target
        label = getattr(item, "display_name", None) or getattr(item, "type_name", component_name)
        self.stack.push(
            ViewKind.SOLUTION_LAYERS,
            ParentRef(component_id, label, item=item, detail=component_name),
        )

    def _activate(self) -> None:
        top = self.stack.top
        view = self.view(top)
        if top.kind == ViewKind.FETCH_XML_CONSOLE:
            # The failed entry belongs to the last query; edited text is a new one
            if view.data.entry.is_failed and top.query is not None and top.text.strip() == top.query.fetch_xml:
                self.retry()
            else:
                self.execute_fetch_xml()
            return
        if view.data.entry.is_failed:
            self.retry()
            return

        if top.kind == ViewKind.SEARCH_POPUP:
            self.stack.pop()
            return
        if not view.visible:
            return
        item = view.data.items[view.visible[top.cursor]]

        if top.kind == ViewKind.ENTITIES:
            self._open_entity(item)
        elif top.kind == ViewKind.SOLUTIONS:
            self.stack.push(ViewKind.SOLUTION_DETAIL, ParentRef(item.solution_id, item.display_name, item=item))
        elif top.kind == ViewKind.USERS:
            self.stack.push(ViewKind.USER_DETAIL, ParentRef(item.id, item.display_name, item=item))
        elif top.kind == ViewKind.SOLUTION_DETAIL:
            self._push(Push(ViewKind.SOLUTION_LAYERS))
        elif top.kind == ViewKind.ENTITY_DETAIL and isinstance(item, ClassifiedRelationship):
            self._open_related(item.related_entity)
        elif top.kind == ViewKind.GLOBAL_SEARCH:
            self._open_hit(item.item)
        elif top.kind == ViewKind.ENVIRONMENT_SWITCHER:
            self.switch_environment(item)
        elif top.kind == ViewKind.DISCOVERY and isinstance(item, DiscoveryInstance):
            self.switch_environment(item.url)

    def _open_entity(self, entity: EntityMetadata) -> None:
        self.stack.push(
            ViewKind.ENTITY_DETAIL,
            ParentRef(entity.logical_name, entity.display_name, item=entity),
        )

    def _open_related(self, logical_name: str) -> None:
        entities = self.cache.peek(self.env, ListEntities()).payload or []
        for entity in entities:
            if entity.logical_name == logical_name:
                self._open_entity(entity)
                return
        self.stack.push(ViewKind.ENTITY_DETAIL, ParentRef(logical_name, logical_name))

    def _open_hit(self, item: Any) -> None:
        if isinstance(item, EntityMetadata):
            self.stack.jump_to_global_view(ViewKind.ENTITIES)
            self._open_entity(item)
        elif isinstance(item, Solution):
            self.stack.jump_to_global_view(ViewKind.SOLUTIONS)
            self.stack.push(ViewKind.SOLUTION_DETAIL, ParentRef(item.solution_id, item.display_name, item=item))
        elif isinstance(item, OptionSetMetadata):
            self.stack.jump_to_global_view(ViewKind.OPTION_SETS)
            self.stack.set_filter(item.name)
        elif isinstance(item, SystemUser):
            self.stack.jump_to_global_view(ViewKind.USERS)
            self.stack.push(ViewKind.USER_DETAIL, ParentRef(item.id, item.display_name, item=item))

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def retry(self) -> None:
        """Re-issue failed fetches of the frames on screen."""
        frames = [self.stack.underlying()]
        if self.stack.top is not frames[0]:
            frames.append(self.stack.top)
        retried = 0
        for frame in frames:
            view = self.view(frame)
            for query in view.data.queries:
                if self.cache.peek(self.env, query).is_failed:
                    self.cache.retry(self.env, query)
                    retried += 1
        self.status = "Retrying..." if retried else None

    def execute_fetch_xml(self) -> None:
        """Validate the console text and submit it as a query."""
        frame = self.stack.top
        try:
            logical_name = fetch_xml_entity(frame.text)
        except UserInputInvalid as e:
            frame.message = e.message
            return
        frame.message = None
        frame.cursor = 0
        frame.query = FetchXml(self.entity_set_name(logical_name), frame.text.strip())
        self.cache.get_or_fetch(self.env, frame.query)

    def entity_set_name(self, logical_name: str) -> str:
        """Entity set for a logical name, guessed as ``<name>s`` if unknown."""
        for entity in self.cache.peek(self.env, ListEntities()).payload or []:
            if entity.logical_name == logical_name and entity.entity_set_name:
                return entity.entity_set_name
        return f"{logical_name}s"

    def switch_environment(self, url: str) -> Environment:
        """Activate *url*, clearing the cache and the view stack."""
        env = Environment.create(url, token=self.env.token)
        self.env = env
        self.cache.switch_environment(env)
        self.stack.jump_to_global_view(ViewKind.ENTITIES)
        if env.url not in self.environments:
            self.environments.append(env.url)
        self.status = f"Connected to {env.host}"
        for listener in self._environment_listeners:
            listener(env)
        return env

    def export(self) -> Optional[Path]:
        """Write the visible rows of the active table to a file."""
        top = self.stack.top
        view = self.view(top if top.kind != ViewKind.SEARCH_POPUP else self.stack.underlying())
        if not view.visible:
            self.status = "Nothing to export"
            return None
        data: ViewData = view.data
        name = view.frame.title.replace(":", "").replace(" ", "_").lower()
        try:
            path = export_table(
                data.columns,
                data.rows(view.visible),
                fmt=self.export_format,
                directory=self.export_dir,
                name=name,
            )
        except OSError as e:
            logger.warning("Export failed: %s", e)
            self.status = f"Export failed: {e}"
            return None
        self.status = f"Exported {len(view.visible)} rows to {path}"
        return path
