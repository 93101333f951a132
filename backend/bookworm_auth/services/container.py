"""Process-wide wiring of the identity components."""
from __future__ import annotations

from dataclasses import dataclass

from bookworm_auth.core.config import Settings
from bookworm_auth.core.security import CsrfSigner, PasswordHasher, TokenGenerator
from bookworm_auth.services.accounts import AccountManager
from bookworm_auth.services.geolocation import GeolocationProvider, LocationEnricher
from bookworm_auth.services.guard import AuthorizationGuard
from bookworm_auth.services.notifications import EmailProvider, Notifier
from bookworm_auth.services.sessions import SessionStore
from bookworm_auth.services.tokens import TokenStore


@dataclass(slots=True)
class IdentityServices:
    settings: Settings
    hasher: PasswordHasher
    generator: TokenGenerator
    notifier: Notifier
    enricher: LocationEnricher
    tokens: TokenStore
    sessions: SessionStore
    accounts: AccountManager
    guard: AuthorizationGuard


def build_services(
    settings: Settings,
    *,
    email_provider: EmailProvider | None = None,
    geolocation_provider: GeolocationProvider | None = None,
) -> IdentityServices:
    """Construct every component once; handlers receive them by reference."""

    hasher = PasswordHasher.from_settings(settings)
    generator = TokenGenerator()
    notifier = Notifier.from_settings(settings, email_provider)
    enricher = LocationEnricher.from_settings(settings, geolocation_provider)
    tokens = TokenStore(generator, notifier)
    sessions = SessionStore(generator)
    accounts = AccountManager(settings, hasher, tokens, sessions, enricher, notifier)
    guard = AuthorizationGuard(sessions, CsrfSigner(settings.secret_key))
    return IdentityServices(
        settings=settings,
        hasher=hasher,
        generator=generator,
        notifier=notifier,
        enricher=enricher,
        tokens=tokens,
        sessions=sessions,
        accounts=accounts,
        guard=guard,
    )
