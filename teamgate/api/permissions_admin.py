"""
teamgate/api/permissions_admin.py
Superuser management of the global permission catalog.
"""

from fastapi import APIRouter, Depends, Query

from teamgate.core.auth import require_superuser
from teamgate.features.catalog.service import (
    list_permissions as service_list_permissions,
    create_permission as service_create_permission,
    rename_permission,
    toggle_permission as service_toggle_permission,
    delete_permission as service_delete_permission,
)
from teamgate.models.permission import CreatePermissionRequest, UpdatePermissionRequest

router = APIRouter(prefix="/v1/admin/permissions", dependencies=[Depends(require_superuser)])


@router.get("")
def list_permissions(active_only: bool = Query(False)):
    permissions = service_list_permissions(active_only=active_only)
    return {"success": True, "data": [p.model_dump(mode="json") for p in permissions]}


@router.post("")
def create_permission(request: CreatePermissionRequest):
    permission = service_create_permission(request.label, request.module, request.name)
    return {"success": True, "data": permission.model_dump(mode="json")}


@router.patch("/{permission_id}")
def update_permission(permission_id: int, request: UpdatePermissionRequest):
    permission = rename_permission(permission_id, request.label, request.module)
    return {"success": True, "data": permission.model_dump(mode="json")}


@router.post("/{permission_id}/toggle")
def toggle_permission(permission_id: int):
    permission = service_toggle_permission(permission_id)
    return {"success": True, "data": permission.model_dump(mode="json")}


@router.delete("/{permission_id}")
def delete_permission(permission_id: int):
    """409 conflict while any role or plan still references the permission."""
    service_delete_permission(permission_id)
    return {"success": True, "data": {"deleted": permission_id}}
