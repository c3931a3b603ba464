"""
teamgate/tests/test_authz_resolver.py
Resolver decisions: superuser bypass, team context, plan ceiling, role grants.
"""

import pytest

from teamgate.core.errors import (
    NoTeamContextError,
    NotAMemberError,
    PlanRestrictedError,
    InsufficientRoleError,
)
from teamgate.features.authz.resolver import (
    DecisionReason,
    can,
    current_effective_permissions,
    require,
    is_team_admin,
)
from teamgate.features.catalog.service import list_permissions, toggle_permission
from teamgate.features.members.service import add_member
from teamgate.features.plans.service import list_plans, resolve_plan, effective_ceiling
from teamgate.features.roles.service import list_roles, update_role, assign_to_member
from teamgate.features.teams.service import change_plan


def _role(team_id, name):
    return next(r for r in list_roles(team_id) if r.name == name)


def _grant(team_id, role_name, permissions):
    return update_role(_role(team_id, role_name).id, permissions=permissions)


@pytest.fixture
def acme(make_team, make_user):
    """Pro team with an owner and one plain member holding the 'member' role."""
    team, owner = make_team("pro")
    member = make_user()
    add_member(team.id, member.user_id, "member")
    return team, owner, member


class TestSuperuser:
    """Superusers are allowed before any team lookup"""

    def test_allowed_in_team_they_do_not_belong_to(self, make_team, make_user):
        team, _ = make_team("free")
        root = make_user(superuser=True)
        decision = can(root, team.id, "tiktok_advanced")
        assert decision.allowed
        assert decision.reason == DecisionReason.SUPERUSER

    def test_allowed_without_team_context_and_for_unknown_team(self, seeded, make_user):
        root = make_user(superuser=True)
        assert can(root, None, "manage_roles").reason == DecisionReason.SUPERUSER
        assert can(root, 9999, "manage_roles").reason == DecisionReason.SUPERUSER

    def test_effective_permissions_cover_active_catalog(self, seeded, make_user):
        root = make_user(superuser=True)
        names = current_effective_permissions(root, None)
        assert {p.name for p in list_permissions(active_only=True)} <= names


class TestTeamContext:
    def test_team_independent_permission_without_team(self, seeded, make_user):
        user = make_user()
        decision = can(user, None, "view_profile")
        assert decision.allowed
        assert decision.reason == DecisionReason.TEAM_INDEPENDENT

    def test_team_permission_without_team_is_denied(self, seeded, make_user):
        user = make_user()
        decision = can(user, None, "facebook_basic")
        assert not decision.allowed
        assert decision.reason == DecisionReason.NO_TEAM_CONTEXT

    def test_default_team_used_when_no_explicit_team(self, make_team, refresh_user):
        team, owner = make_team("pro")
        owner = refresh_user(owner)
        assert owner.current_team_id == team.id
        decision = can(owner, None, "facebook_advanced")
        assert decision.allowed
        assert decision.team_id == team.id

    def test_explicit_team_wins_over_default(self, make_team, make_user, refresh_user):
        first, owner = make_team("pro", name="First")
        stranger_team, _ = make_team("pro", name="Other")
        owner = refresh_user(owner)
        assert owner.current_team_id == first.id
        decision = can(owner, stranger_team.id, "facebook_basic")
        assert decision.reason == DecisionReason.NOT_A_MEMBER

    def test_unknown_team_is_not_a_member(self, seeded, make_user):
        user = make_user()
        assert can(user, 424242, "facebook_basic").reason == DecisionReason.NOT_A_MEMBER


class TestPlanCeiling:
    def test_scenario_free_plan_blocks_role_grant(self, acme):
        """Role grants above the plan are restricted by the plan."""
        team, _, member = acme
        _grant(team.id, "member", ["facebook_basic", "facebook_advanced"])
        change_plan(team.id, "free")

        decision = can(member, team.id, "facebook_advanced")
        assert not decision.allowed
        assert decision.reason == DecisionReason.PLAN_RESTRICTED
        with pytest.raises(PlanRestrictedError):
            require(member, team.id, "facebook_advanced")

    def test_scenario_upgrade_allows_without_role_changes(self, acme):
        team, _, member = acme
        _grant(team.id, "member", ["facebook_basic", "facebook_advanced"])
        change_plan(team.id, "free")
        assert not can(member, team.id, "facebook_advanced").allowed

        change_plan(team.id, "pro")
        decision = can(member, team.id, "facebook_advanced")
        assert decision.allowed
        assert decision.reason == DecisionReason.ALLOWED

    def test_ceiling_dominates_every_role_on_every_plan(self, acme):
        team, owner, member = acme
        every_name = [p.name for p in list_permissions()]
        _grant(team.id, "member", every_name)
        _grant(team.id, "admin", every_name)

        for plan in list_plans(active_only=True):
            change_plan(team.id, plan.slug)
            ceiling = effective_ceiling(resolve_plan(plan.slug))
            for name in every_name:
                if name in ceiling:
                    continue
                assert not can(member, team.id, name).allowed
                assert not can(owner, team.id, name).allowed

    def test_inactive_permission_excluded(self, acme):
        team, owner, _ = acme
        assert can(owner, team.id, "facebook_basic").allowed

        perm = next(p for p in list_permissions() if p.name == "facebook_basic")
        toggle_permission(perm.id)
        decision = can(owner, team.id, "facebook_basic")
        assert not decision.allowed
        assert decision.reason == DecisionReason.PLAN_RESTRICTED

        toggle_permission(perm.id)
        assert can(owner, team.id, "facebook_basic").allowed

    def test_wildcard_plan_covers_whole_active_catalog(self, make_team):
        team, owner = make_team("enterprise")
        for perm in list_permissions(active_only=True):
            assert can(owner, team.id, perm.name).allowed


class TestRoleGrants:
    def test_member_without_grant_has_insufficient_role(self, acme):
        team, _, member = acme
        decision = can(member, team.id, "facebook_basic")
        assert decision.reason == DecisionReason.INSUFFICIENT_ROLE
        with pytest.raises(InsufficientRoleError):
            require(member, team.id, "facebook_basic")

    def test_member_with_grant_is_allowed(self, acme):
        team, _, member = acme
        _grant(team.id, "member", ["tiktok_basic"])
        assert can(member, team.id, "tiktok_basic").allowed

    def test_member_without_role_is_denied(self, make_team, make_user):
        team, _ = make_team("pro")
        drifter = make_user()
        add_member(team.id, drifter.user_id)
        assert can(drifter, team.id, "facebook_basic").reason == DecisionReason.INSUFFICIENT_ROLE

    def test_effective_permissions_all_pass_can(self, acme):
        team, owner, member = acme
        _grant(team.id, "member", ["facebook_basic", "tiktok_advanced"])

        owner_names = current_effective_permissions(owner, team.id)
        assert owner_names == {"facebook_basic", "facebook_advanced", "tiktok_basic"}
        for name in owner_names:
            assert can(owner, team.id, name).allowed

        # tiktok_advanced is above the pro ceiling
        assert current_effective_permissions(member, team.id) == {"facebook_basic"}

    def test_stranger_has_no_effective_permissions(self, acme, make_user):
        team, _, _ = acme
        assert current_effective_permissions(make_user(), team.id) == frozenset()


class TestRequire:
    def test_raises_matching_errors(self, acme, make_user):
        team, _, _ = acme
        loner = make_user()
        with pytest.raises(NoTeamContextError):
            require(loner, None, "facebook_basic")
        with pytest.raises(NotAMemberError):
            require(loner, team.id, "facebook_basic")

    def test_returns_decision_when_allowed(self, acme):
        team, owner, _ = acme
        decision = require(owner, team.id, "facebook_basic")
        assert decision.allowed and bool(decision)


class TestTeamAdmin:
    def test_owner_admin_member_superuser(self, acme, make_user):
        team, owner, member = acme
        assert is_team_admin(owner, team.id)
        assert not is_team_admin(member, team.id)
        assert is_team_admin(make_user(superuser=True), team.id)

        assign_to_member(team.id, member.user_id, "admin")
        assert is_team_admin(member, team.id)

    def test_no_team_is_not_admin(self, seeded, make_user):
        assert not is_team_admin(make_user(), None)
