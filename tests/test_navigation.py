"""Tests for the view stack."""

from metascope.core.navigation import ParentRef, ViewKind, ViewStack


def entity_ref(name: str = "account") -> ParentRef:
    return ParentRef(id=name, label=name.capitalize())


class TestPushPop:
    """Tests for pushing and popping frames."""

    def test_starts_with_root(self) -> None:
        """Test a new stack holds a single root frame."""
        stack = ViewStack()
        assert len(stack) == 1
        assert stack.top.kind == ViewKind.ENTITIES

    def test_push_then_pop_restores_state(self) -> None:
        """Test pushing and popping leaves the previous frame untouched."""
        stack = ViewStack()
        stack.top.cursor = 2
        stack.top.filter = "acc"
        stack.push(ViewKind.ENTITY_DETAIL, entity_ref())
        assert stack.top.parent_ref.id == "account"
        assert stack.pop()
        assert stack.top.kind == ViewKind.ENTITIES
        assert (stack.top.cursor, stack.top.filter) == (2, "acc")

    def test_pop_at_root_is_refused(self) -> None:
        """Test the root frame is never removed."""
        stack = ViewStack(ViewKind.USERS)
        assert not stack.pop()
        assert len(stack) == 1
        assert stack.top.kind == ViewKind.USERS

    def test_modal_frames(self) -> None:
        """Test modals sit on top without hiding the underlying frame."""
        stack = ViewStack()
        stack.push(ViewKind.ENTITY_DETAIL, entity_ref())
        stack.open_modal(ViewKind.SEARCH_POPUP, text="na")
        assert stack.top.modal
        assert stack.top.text == "na"
        assert stack.underlying().kind == ViewKind.ENTITY_DETAIL
        assert stack.breadcrumb() == ["Entities", "Entity: Account"]


class TestGlobalViews:
    """Tests for jumping between root views."""

    def test_jump_replaces_stack(self) -> None:
        """Test a jump leaves exactly one fresh frame."""
        stack = ViewStack()
        stack.push(ViewKind.ENTITY_DETAIL, entity_ref())
        stack.push(ViewKind.SOLUTION_LAYERS, entity_ref())
        stack.jump_to_global_view(ViewKind.SOLUTIONS)
        assert [f.kind for f in stack] == [ViewKind.SOLUTIONS]
        assert stack.top.cursor == 0


class TestTabs:
    """Tests for tab switching."""

    def test_switch_tab_wraps(self) -> None:
        """Test tab index wraps in both directions."""
        stack = ViewStack()
        stack.push(ViewKind.ENTITY_DETAIL, entity_ref())
        assert stack.switch_tab(-1)
        assert stack.top.tab == 2
        assert stack.top.tab_name == "Metadata"
        stack.switch_tab(1)
        assert stack.top.tab == 0

    def test_switch_tab_resets_cursor_and_filter(self) -> None:
        """Test a new tab starts at the top with no filter."""
        stack = ViewStack()
        stack.push(ViewKind.USER_DETAIL, ParentRef("u1", "Ada"))
        stack.top.cursor = 4
        stack.top.filter = "x"
        stack.switch_tab(1)
        assert (stack.top.tab, stack.top.cursor, stack.top.filter) == (1, 0, "")

    def test_switch_tab_without_tabs(self) -> None:
        """Test tab switching is a no-op on views without tabs."""
        stack = ViewStack()
        stack.top.cursor = 3
        assert not stack.switch_tab(1)
        assert (stack.top.tab, stack.top.cursor) == (0, 3)


class TestCursor:
    """Tests for cursor movement and clamping."""

    def test_move_is_clamped(self) -> None:
        """Test the cursor stays within the list."""
        stack = ViewStack()
        stack.move_cursor(5, 3)
        assert stack.top.cursor == 2
        stack.move_cursor(-10, 3)
        assert stack.top.cursor == 0

    def test_empty_list(self) -> None:
        """Test the cursor is zero on an empty list."""
        stack = ViewStack()
        stack.move_cursor(1, 0)
        assert stack.top.cursor == 0

    def test_clamp_after_shrink(self) -> None:
        """Test the cursor is pulled back when the list shrinks."""
        stack = ViewStack()
        stack.move_cursor(9, 10)
        stack.clamp(4)
        assert stack.top.cursor == 3

    def test_set_filter_resets_cursor(self) -> None:
        """Test changing the filter moves the cursor to the first match."""
        stack = ViewStack()
        stack.move_cursor(3, 10)
        stack.set_filter("con")
        assert (stack.top.filter, stack.top.cursor) == ("con", 0)
