"""Tests for solution layer ordering."""

from metascope.engines import order_layers
from metascope.models import ComponentLayer


def layer(solution: str, order=None, **extra) -> ComponentLayer:
    data = {"msdyn_solutionname": solution, "msdyn_order": order}
    data.update(extra)
    return ComponentLayer.model_validate(data)


class TestOrderLayers:
    """Tests for base-to-top ordering."""

    def test_sorted_by_sequence(self) -> None:
        """Test layers are sorted by sequence and the top is active."""
        layers = order_layers([layer("A", 1), layer("B", 3), layer("C", 2)])
        assert [l.solution for l in layers] == ["A", "C", "B"]
        assert [l.rank for l in layers] == [1, 2, 3]
        assert [l.active for l in layers] == [False, False, True]
        assert layers[-1].solution == "B"

    def test_ties_broken_by_name(self) -> None:
        """Test equal sequences are ordered by solution name."""
        layers = order_layers([layer("Zed", 1), layer("Alpha", 1)])
        assert [l.solution for l in layers] == ["Alpha", "Zed"]

    def test_missing_sequence_sorts_first(self) -> None:
        """Test records without a sequence are treated as the base."""
        layers = order_layers([layer("Top", 2), layer("System")])
        assert layers[0].solution == "System"
        assert layers[0].sequence == -1

    def test_stable_across_calls(self) -> None:
        """Test ordering the same records twice gives the same result."""
        records = [layer("B", 2), layer("A", 2), layer("C", 1)]
        assert order_layers(records) == order_layers(list(reversed(records)))

    def test_empty(self) -> None:
        """Test no records means no layers."""
        assert order_layers([]) == []


class TestManagedFlag:
    """Tests for managed/unmanaged labels."""

    def test_active_solution_is_unmanaged(self) -> None:
        """Test the Active layer is unmanaged and others managed by default."""
        layers = order_layers([layer("Active", 2), layer("Base", 1)])
        assert [l.managed_label for l in layers] == ["Managed", "Unmanaged"]

    def test_explicit_flag_wins(self) -> None:
        """Test an explicit ismanaged value is respected."""
        layers = order_layers([layer("Custom", 1, ismanaged=False)])
        assert layers[0].managed is False
