"""Reusable dependencies for FastAPI routes."""
from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bookworm_auth.models.user import Role
from bookworm_auth.services.container import IdentityServices
from bookworm_auth.services.guard import AuthContext
from bookworm_auth.services.sessions import ClientInfo, classify_device

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})
CSRF_HEADER = "X-CSRF-Token"


def get_services(request: Request) -> IdentityServices:
    return request.app.state.services


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.database.session() as session:
        yield session


def extract_token(request: Request, cookie_name: str) -> tuple[str | None, bool]:
    """Return the bearer token and whether it came from the session cookie."""

    token = request.cookies.get(cookie_name)
    if token:
        return token, True
    header = request.headers.get("Authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip(), False
    return None, False


def get_client_info(request: Request) -> ClientInfo:
    forwarded = request.headers.get("X-Forwarded-For", "")
    ip_address = forwarded.split(",")[0].strip() if forwarded else None
    if not ip_address and request.client:
        ip_address = request.client.host
    user_agent = request.headers.get("User-Agent", "")
    return ClientInfo(ip_address=ip_address, user_agent=user_agent, device=classify_device(user_agent))


async def get_auth_context(
    request: Request,
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> AuthContext:
    token, from_cookie = extract_token(request, services.settings.session_cookie_name)
    context = await services.guard.authenticate(session, token)
    if (
        from_cookie
        and services.settings.csrf_protection_enabled
        and request.method.upper() not in SAFE_METHODS
    ):
        services.guard.verify_csrf(context, request.headers.get(CSRF_HEADER))
    request.state.auth = context
    return context


async def get_optional_auth_context(
    request: Request,
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> AuthContext | None:
    token, _ = extract_token(request, services.settings.session_cookie_name)
    context = await services.guard.authenticate_optional(session, token)
    request.state.auth = context
    return context


def require_roles(*roles: Role) -> Callable[..., Awaitable[AuthContext]]:
    async def _dependency(
        context: AuthContext = Depends(get_auth_context),
        services: IdentityServices = Depends(get_services),
    ) -> AuthContext:
        services.guard.authorize(context, *roles)
        return context

    return _dependency
