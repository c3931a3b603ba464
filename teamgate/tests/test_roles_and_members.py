"""
teamgate/tests/test_roles_and_members.py
Role directory and membership ledger.
"""

import pytest

from teamgate.core.errors import (
    AlreadyMemberError,
    NotAMemberError,
    NotFoundError,
    PermissionError,
    ProtectedRoleError,
    SeatLimitError,
    ValidationError,
)
from teamgate.features.invitations.service import issue
from teamgate.features.members.service import (
    add_member,
    remove_member,
    get_membership,
    list_members,
    member_count,
    set_token_limit,
    effective_token_limit,
)
from teamgate.features.notifications.service import get_buffered_notifications
from teamgate.features.plans.service import get_plan
from teamgate.features.roles.service import (
    list_roles,
    get_role,
    roles_overview,
    create_role,
    update_role,
    delete_role,
    assign_to_member,
)
from teamgate.features.teams.service import change_plan
from teamgate.features.users.service import get_user


def _role(team_id, name):
    return next(r for r in list_roles(team_id) if r.name == name)


class TestRoleDirectory:
    def test_create_role_keeps_grants_above_ceiling(self, make_team):
        team, _ = make_team("free")
        role = create_role(team.id, "analyst", ["facebook_basic", "tiktok_advanced"], label="Analyst")
        assert role.granted_permissions == {"facebook_basic", "tiktok_advanced"}
        assert get_role(role.id).label == "Analyst"

    def test_unknown_permission_rejected(self, make_team):
        team, _ = make_team("pro")
        with pytest.raises(ValidationError):
            create_role(team.id, "analyst", ["facebook_basic", "made_up"])

    def test_duplicate_name_in_team_rejected(self, make_team):
        team, _ = make_team("pro")
        with pytest.raises(ValidationError):
            create_role(team.id, "member")

    def test_same_name_in_different_teams(self, make_team):
        first, _ = make_team("pro", name="A")
        second, _ = make_team("pro", name="B")
        a = create_role(first.id, "analyst")
        b = create_role(second.id, "analyst")
        assert a.id != b.id

    def test_admin_cannot_be_deleted(self, make_team):
        team, _ = make_team("pro")
        with pytest.raises(ProtectedRoleError):
            delete_role(_role(team.id, "admin").id)

    def test_admin_cannot_be_renamed(self, make_team):
        team, _ = make_team("pro")
        with pytest.raises(ProtectedRoleError):
            update_role(_role(team.id, "admin").id, name="boss")

    def test_admin_label_and_grants_are_editable(self, make_team):
        team, _ = make_team("pro")
        admin = update_role(_role(team.id, "admin").id, name="admin", label="Owner-ish", permissions=["facebook_basic"])
        assert admin.label == "Owner-ish"
        assert admin.granted_permissions == {"facebook_basic"}

    def test_rename_carries_memberships(self, make_team, make_user):
        team, _ = make_team("pro")
        user = make_user()
        add_member(team.id, user.user_id, "member")

        update_role(_role(team.id, "member").id, name="editor")
        assert get_membership(team.id, user.user_id).role_name == "editor"

    def test_rename_to_existing_name_rejected(self, make_team):
        team, _ = make_team("pro")
        with pytest.raises(ValidationError):
            update_role(_role(team.id, "member").id, name="user")

    def test_delete_clears_role_of_members(self, make_team, make_user):
        team, _ = make_team("pro")
        user = make_user()
        add_member(team.id, user.user_id, "member")

        delete_role(_role(team.id, "member").id)
        assert get_membership(team.id, user.user_id).role_name is None
        assert "member" not in {r.name for r in list_roles(team.id)}

    def test_overview_clips_to_ceiling(self, make_team):
        team, _ = make_team("pro")
        update_role(_role(team.id, "member").id, permissions=["facebook_basic", "manage_roles"])
        change_plan(team.id, "free")

        overview = roles_overview(team.id)
        clipped = {r.name: r.granted_permissions for r in overview.roles}
        assert overview.plan_slug == "free"
        assert clipped["member"] == {"facebook_basic"}
        assert [p.name for p in overview.available_permissions] == ["facebook_basic"]
        # stored grants untouched
        assert _role(team.id, "member").granted_permissions == {"facebook_basic", "manage_roles"}

    def test_assign_unknown_role(self, make_team, make_user):
        team, _ = make_team("pro")
        user = make_user()
        add_member(team.id, user.user_id, "member")
        with pytest.raises(NotFoundError):
            assign_to_member(team.id, user.user_id, "ghost")

    def test_assign_to_non_member(self, make_team, make_user):
        team, _ = make_team("pro")
        with pytest.raises(NotAMemberError):
            assign_to_member(team.id, make_user().user_id, "member")

    def test_assign_notifies_owner(self, make_team, make_user):
        team, owner = make_team("pro")
        user = make_user()
        add_member(team.id, user.user_id, "user")
        assign_to_member(team.id, user.user_id, "member", actor_id=owner.user_id)

        event = get_buffered_notifications()[-1]
        assert event["event_type"] == "member.role_changed"
        assert event["data"] == {"user_id": user.user_id, "role": "member"}
        assert event["actor_id"] == owner.user_id


class TestMembership:
    def test_add_and_list(self, make_team, make_user):
        team, owner = make_team("pro")
        user = make_user()
        add_member(team.id, user.user_id, "member", token_limit=50)

        members = list_members(team.id)
        assert [m.user_id for m in members] == [owner.user_id, user.user_id]
        assert member_count(team.id) == 2
        assert get_membership(team.id, user.user_id).token_limit == 50

    def test_duplicate_member(self, make_team, make_user):
        team, _ = make_team("pro")
        user = make_user()
        add_member(team.id, user.user_id, "member")
        with pytest.raises(AlreadyMemberError):
            add_member(team.id, user.user_id, "user")

    def test_unknown_role(self, make_team, make_user):
        team, _ = make_team("pro")
        with pytest.raises(NotFoundError):
            add_member(team.id, make_user().user_id, "ghost")

    def test_seat_limit_counts_pending_invitations(self, make_team, make_user):
        team, owner = make_team("pro")  # 5 seats, owner holds one
        for _ in range(3):
            add_member(team.id, make_user().user_id, "member")
        issue(team.id, "last@x.com", "member", owner.user_id)
        with pytest.raises(SeatLimitError):
            add_member(team.id, make_user().user_id, "member")

    def test_owner_cannot_be_removed(self, make_team):
        team, owner = make_team("pro")
        with pytest.raises(PermissionError):
            remove_member(team.id, owner.user_id)

    def test_remove_clears_default_team(self, make_team, make_user):
        team, _ = make_team("pro")
        user = make_user()
        add_member(team.id, user.user_id, "member")
        assert get_user(user.user_id).current_team_id == team.id

        remove_member(team.id, user.user_id)
        assert get_membership(team.id, user.user_id) is None
        assert get_user(user.user_id).current_team_id is None

    def test_remove_non_member(self, make_team, make_user):
        team, _ = make_team("pro")
        with pytest.raises(NotAMemberError):
            remove_member(team.id, make_user().user_id)

    def test_token_limit_unlimited_values(self, make_team, make_user):
        team, _ = make_team("pro")
        user = make_user()
        add_member(team.id, user.user_id, "member")

        assert set_token_limit(team.id, user.user_id, 200).token_limit == 200
        assert set_token_limit(team.id, user.user_id, -1).token_limit is None
        set_token_limit(team.id, user.user_id, 5)
        assert set_token_limit(team.id, user.user_id, None).token_limit is None

    def test_token_limit_rejects_other_negatives(self, make_team, make_user):
        team, _ = make_team("pro")
        user = make_user()
        add_member(team.id, user.user_id, "member")
        with pytest.raises(ValidationError):
            set_token_limit(team.id, user.user_id, -5)

    def test_effective_token_limit_bounded_by_plan(self, make_team, make_user):
        team, _ = make_team("pro")  # max_tokens 1000
        user = make_user()
        add_member(team.id, user.user_id, "member")
        pro = get_plan("pro")

        assert effective_token_limit(get_membership(team.id, user.user_id), pro) == 1000
        set_token_limit(team.id, user.user_id, 250)
        assert effective_token_limit(get_membership(team.id, user.user_id), pro) == 250
        set_token_limit(team.id, user.user_id, 5000)
        assert effective_token_limit(get_membership(team.id, user.user_id), pro) == 1000
