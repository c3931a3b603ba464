"""
teamgate/api/plans.py
Plan listing and superuser plan administration.
"""

from fastapi import APIRouter, Depends

from teamgate.core.auth import get_current_user, require_superuser
from teamgate.features.plans.service import (
    list_plans as service_list_plans,
    create_plan as service_create_plan,
    update_plan as service_update_plan,
)
from teamgate.models.plan import CreatePlanRequest, UpdatePlanRequest
from teamgate.models.user import User

router = APIRouter()


@router.get("/v1/plans")
def list_plans(user: User = Depends(get_current_user)):
    plans = service_list_plans(active_only=not user.is_superuser)
    return {"success": True, "data": [p.model_dump(mode="json") for p in plans]}


@router.post("/v1/admin/plans")
def create_plan(request: CreatePlanRequest, _: User = Depends(require_superuser)):
    plan = service_create_plan(request)
    return {"success": True, "data": plan.model_dump(mode="json")}


@router.patch("/v1/admin/plans/{slug}")
def update_plan(slug: str, request: UpdatePlanRequest, _: User = Depends(require_superuser)):
    """
    Edit a plan. A feature change re-syncs the admin role of every team on
    the plan; the per-team outcome is returned under ``sync``.
    """
    plan, report = service_update_plan(slug, request)
    return {
        "success": True,
        "data": {
            "plan": plan.model_dump(mode="json"),
            "sync": report.model_dump(mode="json") if report else None,
        },
    }
