"""Tests for filtering and global search."""

from metascope.core.search import filter_indices, filter_items, global_search, is_subsequence

from conftest import make_entity


class TestFilter:
    """Tests for list filtering."""

    def test_empty_query_is_identity(self, entities) -> None:
        """Test an empty query keeps every item in order."""
        assert filter_indices(entities, "") == [0, 1, 2]
        assert filter_indices(entities, "   ") == [0, 1, 2]

    def test_case_insensitive_substring(self, entities) -> None:
        """Test matching ignores case."""
        assert filter_indices(entities, "CONT") == [1]
        assert filter_items(entities, "a")[0].logical_name == "account"

    def test_matches_display_and_logical_name(self) -> None:
        """Test both names are searched."""
        items = [make_entity("new_widget", "Gadget")]
        assert filter_indices(items, "widget") == [0]
        assert filter_indices(items, "gadg") == [0]

    def test_no_match(self, entities) -> None:
        """Test a query matching nothing yields nothing."""
        assert filter_indices(entities, "zzz") == []

    def test_fuzzy(self, entities) -> None:
        """Test fuzzy mode matches in-order subsequences."""
        assert filter_indices(entities, "acu") == []
        assert filter_indices(entities, "acu", fuzzy=True) == [0]

    def test_filter_is_idempotent(self, entities) -> None:
        """Test filtering a filtered result by the same query changes nothing."""
        items = entities + [make_entity("new_account_plan", "Plan"), make_entity("task")]
        for query in ("", "a", "ACC", "zzz"):
            once = filter_items(items, query)
            assert filter_items(once, query) == once
        once = filter_items(items, "acn", fuzzy=True)
        assert filter_items(once, "acn", fuzzy=True) == once

    def test_custom_key(self) -> None:
        """Test a key function replaces the default search text."""
        assert filter_indices(["alpha", "beta"], "ET", key=str.upper) == [1]

    def test_is_subsequence(self) -> None:
        """Test subsequence matching."""
        assert is_subsequence("ace", "abcde")
        assert not is_subsequence("eca", "abcde")


class TestGlobalSearch:
    """Tests for searching across categories."""

    def test_hits_carry_category(self, entities) -> None:
        """Test hits name the category they came from."""
        hits = global_search([("Entity", entities), ("Solution", ["account_tools"])], "account")
        assert [(h.category, h.label) for h in hits] == [
            ("Entity", "Account"),
            ("Solution", "account_tools"),
        ]

    def test_empty_query(self, entities) -> None:
        """Test an empty query returns no hits."""
        assert global_search([("Entity", entities)], "") == []

    def test_unloaded_sources_skipped(self, entities) -> None:
        """Test categories that are not loaded are ignored."""
        hits = global_search([("Solution", None), ("Entity", entities)], "lead")
        assert [h.item.logical_name for h in hits] == ["lead"]

    def test_limit(self) -> None:
        """Test the number of hits is capped."""
        items = [f"item{i}" for i in range(50)]
        assert len(global_search([("X", items)], "item", limit=10)) == 10
