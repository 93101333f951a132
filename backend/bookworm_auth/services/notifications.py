"""Transactional email dispatch.

Delivery is best-effort: ``Notifier`` schedules each email as a background
task and logs delivery failures instead of raising them, so a slow or broken
mail provider can never fail or stall the operation that triggered it.
"""
from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from bookworm_auth.core.config import Settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class NotificationError(RuntimeError):
    """Raised when a notification attempt fails."""


@dataclass(slots=True)
class NotificationMessage:
    to: str
    subject: str
    html: str
    text: str
    tag: str | None = None


class EmailProvider(Protocol):
    async def send(self, message: NotificationMessage) -> None:
        ...


def redact_email(address: str) -> str:
    if "@" not in address:
        return "redacted"
    local, domain = address.split("@", 1)
    return f"{local[:2]}***@{domain}"


class ResendProvider:
    """Send email through the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout
        self._transport = transport

    async def send(self, message: NotificationMessage) -> None:
        payload = {
            "from": self._sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(RESEND_API_URL, json=payload, headers=headers)
        if response.status_code >= 400:
            raise NotificationError(f"Resend response {response.status_code}: {response.text}")


class LoggingProvider:
    """Development fallback that logs instead of sending."""

    async def send(self, message: NotificationMessage) -> None:
        logger.info(
            "Email not sent (no provider configured): to=%s subject=%r",
            redact_email(message.to),
            message.subject,
        )


async def notify(provider: EmailProvider, message: NotificationMessage) -> None:
    try:
        await provider.send(message)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to deliver %s email to %s", message.tag or "notification", redact_email(message.to))
        raise NotificationError(str(exc)) from exc


def _render(title: str, greeting_name: str, paragraphs: list[str], link: str | None = None, link_label: str = "") -> str:
    body = "".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)
    button = ""
    if link:
        escaped = html.escape(link, quote=True)
        button = f'<p><a href="{escaped}">{html.escape(link_label)}</a></p><p>{escaped}</p>'
    return (
        f"<div><h2>{html.escape(title)}</h2>"
        f"<p>Hello <strong>{html.escape(greeting_name)}</strong>,</p>{body}{button}</div>"
    )


class Notifier:
    """Compose account emails and dispatch them without blocking the caller."""

    def __init__(
        self,
        provider: EmailProvider,
        *,
        frontend_url: str,
        app_name: str = "Bookworm",
        verification_expiry_hours: int = 24,
        reset_expiry_hours: int = 1,
    ) -> None:
        self._provider = provider
        self._frontend_url = frontend_url.rstrip("/")
        self._app_name = app_name
        self._verification_expiry_hours = verification_expiry_hours
        self._reset_expiry_hours = reset_expiry_hours
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(cls, settings: Settings, provider: EmailProvider | None = None) -> "Notifier":
        if provider is None:
            if settings.resend_api_key:
                provider = ResendProvider(settings.resend_api_key, settings.email_from)
            else:
                provider = LoggingProvider()
        return cls(
            provider,
            frontend_url=settings.frontend_url,
            app_name=settings.app_name,
            verification_expiry_hours=settings.verification_expiry_hours,
            reset_expiry_hours=settings.password_reset_expiry_hours,
        )

    def send_verification_email(self, address: str, display_name: str, token: str) -> None:
        link = f"{self._frontend_url}/verify-email?token={token}"
        text = (
            f"Hello {display_name},\n\nThanks for joining {self._app_name}! Verify your email address:\n{link}\n\n"
            f"This link expires in {self._verification_expiry_hours} hours. "
            "If you didn't create an account, you can ignore this email."
        )
        self._dispatch(
            NotificationMessage(
                to=address,
                subject=f"Verify your {self._app_name} account",
                html=_render(
                    f"Welcome to {self._app_name}!",
                    display_name,
                    [
                        "Please verify your email address to finish creating your account.",
                        f"This link expires in {self._verification_expiry_hours} hours.",
                    ],
                    link,
                    "Verify Email Address",
                ),
                text=text,
                tag="verification",
            )
        )

    def send_password_reset_email(self, address: str, display_name: str, token: str) -> None:
        link = f"{self._frontend_url}/reset-password?token={token}"
        text = (
            f"Hello {display_name},\n\nReset your {self._app_name} password:\n{link}\n\n"
            f"This link expires in {self._reset_expiry_hours} hour(s). "
            "If you didn't request a reset, you can ignore this email."
        )
        self._dispatch(
            NotificationMessage(
                to=address,
                subject=f"Reset your {self._app_name} password",
                html=_render(
                    "Reset Your Password",
                    display_name,
                    [
                        "We received a request to reset your password.",
                        f"This link expires in {self._reset_expiry_hours} hour(s).",
                    ],
                    link,
                    "Reset Password",
                ),
                text=text,
                tag="password_reset",
            )
        )

    def send_welcome_email(self, address: str, display_name: str) -> None:
        text = f"Hello {display_name},\n\nYour email is verified. Welcome to {self._app_name}!"
        self._dispatch(
            NotificationMessage(
                to=address,
                subject=f"Welcome to {self._app_name}!",
                html=_render(
                    f"Welcome to {self._app_name}!",
                    display_name,
                    ["Your email address is verified and your account is ready."],
                    f"{self._frontend_url}/",
                    "Start exploring",
                ),
                text=text,
                tag="welcome",
            )
        )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for all in-flight deliveries (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _dispatch(self, message: NotificationMessage) -> None:
        task = asyncio.get_running_loop().create_task(notify(self._provider, message))
        self._pending.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        if task.exception() is not None:
            logger.warning("Email delivery dropped: %s", task.exception())
