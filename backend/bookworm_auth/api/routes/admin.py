"""Administrative endpoints; every route requires the ADMIN role."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bookworm_auth.core.dependencies import get_db, get_services, require_roles
from bookworm_auth.models.user import Role
from bookworm_auth.schemas.auth import MessageResponse
from bookworm_auth.schemas.user import Pagination, RoleUpdate, UserEnvelope, UserList
from bookworm_auth.services.accounts import MAX_PAGE_SIZE
from bookworm_auth.services.container import IdentityServices

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_roles(Role.ADMIN))])


@router.get("/users", response_model=UserList)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    search: str | None = Query(None, max_length=255),
    role: Role | None = None,
    verified: bool | None = None,
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> UserList:
    result = await services.accounts.list_users(
        session, page=page, limit=limit, search=search, role=role, verified=verified
    )
    return UserList(
        users=result.users,
        pagination=Pagination(
            page=result.page, limit=result.limit, total=result.total, total_pages=result.total_pages
        ),
    )


@router.patch("/users/{user_id}/roles", response_model=UserEnvelope)
async def update_roles(
    user_id: str,
    payload: RoleUpdate,
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> UserEnvelope:
    if payload.action == "add":
        user = await services.accounts.add_role(session, user_id, payload.role)
    else:
        user = await services.accounts.remove_role(session, user_id, payload.role)
    verb = "added" if payload.action == "add" else "removed"
    return UserEnvelope(user=user, message=f"Role {verb} successfully")


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def remove_user(
    user_id: str,
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> MessageResponse:
    await services.accounts.remove_user(session, user_id)
    return MessageResponse(message="User deleted successfully")


@router.post("/maintenance/purge")
async def purge_expired(
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> dict[str, int]:
    result = await services.accounts.purge_expired(session)
    return {"sessions_deleted": result.sessions_deleted, "tokens_deleted": result.tokens_deleted}
