"""
Penalty settings and user administration endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .dependencies import LendingSystem, get_acting_user, get_lending_system
from .schemas import CreateUserRequest, PenaltySettingsRequest, SetRoleRequest
from ..exceptions import ValidationError
from ..rbac import ADMINS, Role, User


router = APIRouter()


def _parse_role(value: str) -> Role:
    try:
        return Role(value)
    except ValueError:
        allowed = ", ".join(r.value for r in Role)
        raise ValidationError(f"Role must be one of {allowed}, got {value!r}") from None


def _user_to_response(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "role": user.role.value,
        "is_active": user.is_active,
        "created_by": user.created_by,
        "created_at": user.created_at.isoformat(),
    }


@router.get("/settings/penalty")
async def get_penalty_settings(system: LendingSystem = Depends(get_lending_system)):
    """Current penalty amount and grace period"""
    return system.settings_store.get().to_dict()


@router.put("/settings/penalty")
async def update_penalty_settings(
    request: PenaltySettingsRequest,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    settings = system.settings_store.update(
        request.penalty_amount, request.grace_period_days, acting_user
    )
    return settings.to_dict()


@router.get("/users")
async def list_users(
    role: Optional[str] = None,
    system: LendingSystem = Depends(get_lending_system)
):
    users = system.user_directory.list_users(_parse_role(role) if role else None)
    return {"users": [_user_to_response(user) for user in users]}


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    """Register a staff member (admin only)"""
    system.role_policy.require(acting_user, ADMINS, "create users")
    user = system.user_directory.create_user(
        request.user_id, request.username, _parse_role(request.role), created_by=acting_user
    )
    return _user_to_response(user)


@router.put("/users/{user_id}/role")
async def set_user_role(
    user_id: str,
    request: SetRoleRequest,
    acting_user: Optional[str] = Depends(get_acting_user),
    system: LendingSystem = Depends(get_lending_system)
):
    user = system.user_directory.set_role(user_id, _parse_role(request.role), acting_user)
    return _user_to_response(user)
