"""Authentication endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from bookworm_auth.core.config import Settings
from bookworm_auth.core.dependencies import get_auth_context, get_client_info, get_db, get_services
from bookworm_auth.core.errors import NotFound
from bookworm_auth.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LocationRead,
    LoginRequest,
    LoginResponse,
    LoginSession,
    MeResponse,
    MessageResponse,
    ResetPasswordRequest,
    SessionList,
    SessionRead,
    TokenRequest,
)
from bookworm_auth.schemas.user import OnboardingUpdate, UserCreate, UserEnvelope
from bookworm_auth.services.container import IdentityServices
from bookworm_auth.services.guard import AuthContext
from bookworm_auth.services.sessions import ClientInfo

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_session_cookie(response: Response, settings: Settings, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
        max_age=settings.session_expiry_days * 24 * 60 * 60,
    )


def _clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(settings.session_cookie_name, path="/")


@router.post("/register", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
async def register(
    payload: UserCreate,
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> UserEnvelope:
    user = await services.accounts.register(session, payload)
    return UserEnvelope(
        user=user,
        message="Registration successful. Please check your email to verify your account.",
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    response: Response,
    client: ClientInfo = Depends(get_client_info),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> LoginResponse:
    result = await services.accounts.login(session, payload.email, payload.password, client)
    _set_session_cookie(response, services.settings, result.session.token)
    return LoginResponse(
        user=result.user,
        session=LoginSession(
            token=result.session.token,
            expires_at=result.session.expires_at,
            csrf_token=services.guard.csrf_token_for(result.session),
        ),
        location=LocationRead.model_validate(result.location) if result.location else None,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    context: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> MessageResponse:
    await services.accounts.logout(session, context.token)
    _clear_session_cookie(response, services.settings)
    return MessageResponse(message="Logged out successfully")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    response: Response,
    context: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> MessageResponse:
    await services.accounts.logout_all(session, context.user_id)
    _clear_session_cookie(response, services.settings)
    return MessageResponse(message="Logged out from all devices")


@router.get("/me", response_model=MeResponse)
async def me(
    context: AuthContext = Depends(get_auth_context),
    services: IdentityServices = Depends(get_services),
) -> MeResponse:
    return MeResponse(user=context.user, needs_onboarding=services.accounts.needs_onboarding(context.user))


@router.post("/complete-onboarding", response_model=UserEnvelope)
async def complete_onboarding(
    payload: OnboardingUpdate,
    context: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> UserEnvelope:
    user = await services.accounts.update_profile(session, context.user_id, payload)
    return UserEnvelope(user=user, message="Profile setup completed")


@router.get("/sessions", response_model=SessionList)
async def list_sessions(
    context: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> SessionList:
    active = await services.accounts.list_sessions(session, context.user_id, context.session_id)
    return SessionList(
        sessions=[
            SessionRead.model_validate(item.session).model_copy(update={"is_current": item.is_current})
            for item in active
        ]
    )


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def revoke_session(
    session_id: str,
    context: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> MessageResponse:
    if not await services.accounts.revoke_session(session, session_id, context.user_id):
        raise NotFound("Session not found")
    return MessageResponse(message="Session revoked successfully")


@router.post("/verify-email", response_model=UserEnvelope)
async def verify_email(
    payload: TokenRequest,
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> UserEnvelope:
    user = await services.accounts.verify_email(session, payload.token)
    return UserEnvelope(user=user, message="Email verified successfully")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    context: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> MessageResponse:
    await services.accounts.resend_verification(session, context.user_id)
    return MessageResponse(message="Verification email sent")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    payload: ForgotPasswordRequest,
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> MessageResponse:
    await services.accounts.request_password_reset(session, payload.email)
    return MessageResponse(message="If an account exists for that address, reset instructions have been sent")


@router.post("/reset-password", response_model=UserEnvelope)
async def reset_password(
    payload: ResetPasswordRequest,
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> UserEnvelope:
    user = await services.accounts.reset_password(session, payload.token, payload.password)
    return UserEnvelope(user=user, message="Password reset successfully")


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    context: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_db),
    services: IdentityServices = Depends(get_services),
) -> MessageResponse:
    await services.accounts.change_password(
        session,
        context.user_id,
        payload.current_password,
        payload.new_password,
        keep_current_session=not payload.logout_other_devices,
        current_session_id=context.session_id,
    )
    return MessageResponse(message="Password changed successfully")
