"""Tests for effective role resolution."""

from metascope.engines import (
    OriginKind,
    RoleOrigin,
    business_unit_chain,
    no_unit_roles,
    resolve_roles,
    unit_and_ancestors,
)
from metascope.models import UserSecurity

from conftest import make_role, make_team, make_unit, make_user


def security(**kwargs) -> UserSecurity:
    kwargs.setdefault("user", make_user("u1", unit="child"))
    return UserSecurity(**kwargs)


class TestResolveRoles:
    """Tests for combining direct, team and unit roles."""

    def test_direct_wins_over_team(self) -> None:
        """Test a role held directly and via a team is reported as direct."""
        result = resolve_roles(
            security(
                direct_roles=[make_role("r1", "Salesperson")],
                teams=[make_team("tx", "TeamX")],
                team_roles={"tx": [make_role("r1", "Salesperson"), make_role("r2", "Marketing")]},
            )
        )
        assert [(a.role_id, a.origin) for a in result] == [
            ("r2", RoleOrigin(OriginKind.TEAM, ("TeamX",))),
            ("r1", RoleOrigin(OriginKind.DIRECT)),
        ]
        assert result[1].origin.describe() == "Direct"
        assert result[0].origin.describe() == "Team: TeamX"

    def test_each_role_once(self) -> None:
        """Test roles reachable through several teams appear once."""
        result = resolve_roles(
            security(
                teams=[make_team("t1", "Alpha"), make_team("t2", "Beta"), make_team("t1", "Alpha")],
                team_roles={"t1": [make_role("r1")], "t2": [make_role("r1")]},
            )
        )
        assert len(result) == 1
        assert result[0].principal == "u1"

    def test_sorted_by_role_name(self) -> None:
        """Test the result is ordered by role name, case-insensitively."""
        result = resolve_roles(
            security(direct_roles=[make_role("r1", "zeta"), make_role("r2", "Alpha"), make_role("r3", "beta")])
        )
        assert [a.role.name for a in result] == ["Alpha", "beta", "zeta"]

    def test_no_roles(self) -> None:
        """Test a user without any assignment resolves to nothing."""
        assert resolve_roles(security()) == []


class TestBusinessUnitPolicies:
    """Tests for business-unit inherited roles."""

    def units(self):
        return {
            "child": make_unit("child", parent="parent"),
            "parent": make_unit("parent", parent="root"),
            "root": make_unit("root"),
        }

    def unit_security(self) -> UserSecurity:
        return security(
            business_units=self.units(),
            business_unit_roles={
                "child": [make_role("r-child", "Child Role")],
                "root": [make_role("r-root", "Root Role")],
            },
        )

    def test_own_unit_only_by_default(self) -> None:
        """Test only the user's own unit contributes by default."""
        result = resolve_roles(self.unit_security())
        assert [a.role_id for a in result] == ["r-child"]
        assert result[0].origin == RoleOrigin(OriginKind.BUSINESS_UNIT, ("child",))

    def test_ancestors(self) -> None:
        """Test every ancestor contributes with the full path as origin."""
        result = resolve_roles(self.unit_security(), policy=unit_and_ancestors)
        origins = {a.role_id: a.origin for a in result}
        assert origins["r-root"].path == ("child", "parent", "root")
        assert origins["r-root"].describe() == "Business unit: child > parent > root"

    def test_no_unit_roles(self) -> None:
        """Test the none policy ignores unit roles entirely."""
        assert resolve_roles(self.unit_security(), policy=no_unit_roles) == []

    def test_team_wins_over_unit(self) -> None:
        """Test a role from a team is preferred to the same role from a unit."""
        data = self.unit_security()
        data.teams.append(make_team("t1", "Sales"))
        data.team_roles["t1"] = [make_role("r-child", "Child Role")]
        result = resolve_roles(data)
        assert result[0].origin.kind == OriginKind.TEAM


class TestBusinessUnitChain:
    """Tests for walking the business-unit hierarchy."""

    def test_chain_to_root(self) -> None:
        """Test the chain runs from the start unit to the root."""
        units = {"a": make_unit("a", "b"), "b": make_unit("b")}
        assert [u.id for u in business_unit_chain("a", units)] == ["a", "b"]

    def test_cycle_terminates(self) -> None:
        """Test a cyclic hierarchy ends the walk."""
        units = {"a": make_unit("a", "b"), "b": make_unit("b", "a")}
        assert [u.id for u in business_unit_chain("a", units)] == ["a", "b"]

    def test_cycle_during_resolution(self) -> None:
        """Test resolution completes on cyclic business units."""
        data = security(
            user=make_user("u1", unit="a"),
            business_units={"a": make_unit("a", "b"), "b": make_unit("b", "a")},
            business_unit_roles={"b": [make_role("r1")]},
        )
        result = resolve_roles(data, policy=unit_and_ancestors)
        assert [a.role_id for a in result] == ["r1"]

    def test_unknown_start(self) -> None:
        """Test an unknown or missing unit yields an empty chain."""
        assert business_unit_chain("missing", {}) == []
        assert business_unit_chain(None, {"a": make_unit("a")}) == []
