"""
Tests for request and domain models.
"""
import pytest
from pydantic import ValidationError

from teamgate.models.membership import TokenLimitRequest, AssignRoleRequest
from teamgate.models.plan import Plan, CreatePlanRequest, SyncReport


def test_plan_model_frozen():
    plan = Plan(slug="free", name="Free", is_default=True)
    with pytest.raises(ValidationError):
        plan.name = "Modified"


def test_plan_defaults():
    plan = Plan(slug="starter", name="Starter")
    assert plan.member_limit == 1
    assert plan.max_workspaces == 1
    assert plan.features == frozenset()
    assert plan.active is True


def test_create_plan_request_slug_pattern():
    CreatePlanRequest(slug="team_pro-2", name="Team Pro")
    with pytest.raises(ValidationError):
        CreatePlanRequest(slug="Team Pro", name="Team Pro")


def test_create_plan_request_rejects_zero_seats():
    with pytest.raises(ValidationError):
        CreatePlanRequest(slug="zero", name="Zero", member_limit=0)


def test_token_limit_request_accepts_unlimited_sentinel():
    assert TokenLimitRequest(limit=-1).limit == -1
    assert TokenLimitRequest().limit is None
    with pytest.raises(ValidationError):
        TokenLimitRequest(limit=-2)


def test_assign_role_request_requires_name():
    with pytest.raises(ValidationError):
        AssignRoleRequest(role_name="")


def test_sync_report_defaults():
    report = SyncReport(plan_slug="pro")
    assert report.synced == []
    assert report.failed == []
