"""User profile and account endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from bookworm_auth.core.dependencies import get_auth_context, get_db, get_optional_auth_context, get_services
from bookworm_auth.models.user import Role
from bookworm_auth.schemas.auth import MessageResponse
from bookworm_auth.schemas.user import AccountDelete, ProfileEnvelope, ProfileUpdate, UserEnvelope, UserProfile
from bookworm_auth.services.container import IdentityServices
from bookworm_auth.services.guard import AuthContext

router = APIRouter(prefix="/users", tags=["users"])

PRIVATE_PROFILE_FIELDS = ("email", "roles", "email_verified")


@router.patch("/profile", response_model=UserEnvelope)
async def update_profile(
    payload: ProfileUpdate,
    context: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> UserEnvelope:
    user = await services.accounts.update_profile(session, context.user_id, payload)
    return UserEnvelope(user=user, message="Profile updated successfully")


@router.delete("/account", response_model=MessageResponse)
async def delete_account(
    payload: AccountDelete,
    response: Response,
    context: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> MessageResponse:
    await services.accounts.delete_account(session, context.user_id, payload.password)
    response.delete_cookie(services.settings.session_cookie_name, path="/")
    return MessageResponse(message="Account deleted successfully")


@router.get("/{user_id}", response_model=ProfileEnvelope)
async def get_user(
    user_id: str,
    viewer: AuthContext | None = Depends(get_optional_auth_context),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> ProfileEnvelope:
    """Public profile; the owner and admins also see email, roles and verification state."""

    user = await services.accounts.get_user(session, user_id)
    profile = UserProfile(**user.model_dump())
    if viewer is None or (viewer.user_id != user.id and not viewer.has_role(Role.ADMIN)):
        profile = profile.model_copy(update={field: None for field in PRIVATE_PROFILE_FIELDS})
    return ProfileEnvelope(user=profile)
