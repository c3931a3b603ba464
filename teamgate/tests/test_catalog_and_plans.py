"""
Tests for the permission catalog and plan ceiling.
"""
import pytest

from teamgate.core.config import settings
from teamgate.core.errors import ConflictError, NotFoundError, ValidationError
from teamgate.features.catalog.service import (
    DEFAULT_PERMISSIONS,
    seed_permissions,
    list_permissions,
    get_permission,
    create_permission,
    rename_permission,
    toggle_permission,
    delete_permission,
    slugify_permission_name,
)
from teamgate.features.plans.service import (
    FALLBACK_PLAN,
    seed_plans,
    list_plans,
    get_plan,
    resolve_plan,
    effective_ceiling,
    create_plan,
    update_plan,
    set_plan_active,
)
from teamgate.features.roles.service import list_roles, update_role
from teamgate.models.plan import CreatePlanRequest, UpdatePlanRequest


def _perm(name):
    return next(p for p in list_permissions() if p.name == name)


class TestCatalog:
    def test_seed_is_idempotent(self):
        seed_permissions()
        seed_permissions()
        assert len(list_permissions()) == len(DEFAULT_PERMISSIONS)

    def test_ordered_by_module_then_name(self, seeded):
        keys = [(p.module, p.name) for p in list_permissions()]
        assert keys == sorted(keys)

    def test_name_defaults_to_slug_of_label(self, seeded):
        created = create_permission("Generate TikTok Report", "tiktok")
        assert created.name == "generate_tiktok_report"
        assert slugify_permission_name("  Export: CSV!  ") == "export_csv"

    def test_duplicate_name_rejected(self, seeded):
        with pytest.raises(ValidationError):
            create_permission("Facebook Basic", "facebook", name="facebook_basic")

    def test_wildcard_name_reserved(self, seeded):
        with pytest.raises(ValidationError):
            create_permission("Everything", "misc", name=settings.PLAN_WILDCARD_FEATURE)

    def test_rename_never_touches_name(self, seeded):
        perm = _perm("share_public_link")
        renamed = rename_permission(perm.id, "Public Share", "sharing")
        assert renamed.name == "share_public_link"
        assert renamed.label == "Public Share"
        assert renamed.module == "sharing"

    def test_toggle_flips_active(self, seeded):
        perm = _perm("tiktok_basic")
        assert toggle_permission(perm.id).active is False
        assert "tiktok_basic" not in {p.name for p in list_permissions(active_only=True)}
        assert toggle_permission(perm.id).active is True

    def test_missing_permission(self, seeded):
        with pytest.raises(NotFoundError):
            get_permission(999)

    def test_delete_unreferenced(self, seeded):
        created = create_permission("Temporary", "misc")
        delete_permission(created.id)
        with pytest.raises(NotFoundError):
            get_permission(created.id)

    def test_delete_blocked_by_plan_feature(self, seeded):
        # facebook_basic is listed by free and pro
        with pytest.raises(ConflictError):
            delete_permission(_perm("facebook_basic").id)

    def test_delete_blocked_by_role_grant(self, make_team):
        team, _ = make_team("pro")
        member = next(r for r in list_roles(team.id) if r.name == "member")
        update_role(member.id, permissions=["manage_tokens"])
        with pytest.raises(ConflictError):
            delete_permission(_perm("manage_tokens").id)

    def test_wildcard_is_not_a_reference(self, seeded):
        # enterprise lists only the wildcard
        delete_permission(_perm("tiktok_advanced").id)


class TestPlans:
    def test_seed_is_idempotent(self, seeded):
        seed_plans()
        assert [p.slug for p in list_plans()] == ["free", "pro", "enterprise"]

    def test_seeded_values(self, seeded):
        free, pro, enterprise = get_plan("free"), get_plan("pro"), get_plan("enterprise")
        assert free.is_default and free.member_limit == 1
        assert pro.features == {"facebook_basic", "facebook_advanced", "tiktok_basic"}
        assert enterprise.features == {"all"}

    def test_resolve_falls_back_to_default(self, seeded):
        assert resolve_plan("gone").slug == "free"
        assert resolve_plan(None).slug == "free"

    def test_resolve_without_any_plans(self):
        assert resolve_plan("pro") == FALLBACK_PLAN
        assert effective_ceiling(resolve_plan("pro")) == frozenset()

    def test_ceiling_intersects_active_catalog(self, seeded):
        pro = get_plan("pro")
        toggle_permission(_perm("tiktok_basic").id)
        assert effective_ceiling(pro) == {"facebook_basic", "facebook_advanced"}

    def test_wildcard_expands_to_active_catalog(self, seeded):
        toggle_permission(_perm("manage_users").id)
        ceiling = effective_ceiling(get_plan("enterprise"))
        assert "manage_users" not in ceiling
        assert ceiling == {p.name for p in list_permissions(active_only=True)}

    def test_create_rejects_unknown_features(self, seeded):
        with pytest.raises(ValidationError):
            create_plan(CreatePlanRequest(slug="odd", name="Odd", features=["no_such_thing"]))

    def test_create_rejects_duplicate_slug(self, seeded):
        with pytest.raises(ValidationError):
            create_plan(CreatePlanRequest(slug="pro", name="Pro again"))

    def test_update_without_feature_change_has_no_report(self, seeded):
        plan, report = update_plan("pro", UpdatePlanRequest(member_limit=8))
        assert plan.member_limit == 8
        assert report is None

    def test_default_plan_cannot_be_deactivated(self, seeded):
        with pytest.raises(ValidationError):
            set_plan_active("free", False)

    def test_inactive_plans_hidden_from_active_listing(self, seeded):
        set_plan_active("enterprise", False)
        assert "enterprise" not in [p.slug for p in list_plans(active_only=True)]
        assert "enterprise" in [p.slug for p in list_plans()]
