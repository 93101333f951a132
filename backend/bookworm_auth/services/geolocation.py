"""Best-effort resolution of client addresses to coarse locations."""
from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from bookworm_auth.core.config import Settings

logger = logging.getLogger(__name__)

MAXMIND_CITY_URL = "https://geoip.maxmind.com/geoip/v2.1/city/{ip}"

UNKNOWN_LOCATION = "Unknown Location"
LOCAL_DEVELOPMENT = "Local Development"


@dataclass(slots=True)
class LocationInfo:
    ip: str
    formatted: str
    city: str | None = None
    region: str | None = None
    country: str | None = None
    country_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None
    accuracy: int | None = None

    @classmethod
    def unknown(cls, ip: str) -> "LocationInfo":
        return cls(ip=ip, formatted=UNKNOWN_LOCATION)

    @classmethod
    def local(cls, ip: str) -> "LocationInfo":
        return cls(ip=ip, city="Local", country=LOCAL_DEVELOPMENT, country_code="LOCAL", formatted=LOCAL_DEVELOPMENT)


class GeolocationError(RuntimeError):
    """Provider lookup failed; ``reason`` is a short machine-readable tag."""

    def __init__(self, reason: str, message: str = "") -> None:
        super().__init__(message or reason)
        self.reason = reason


class GeolocationProvider(Protocol):
    async def lookup(self, ip: str) -> LocationInfo:
        ...


_MAXMIND_ERROR_REASONS = {
    "IP_ADDRESS_NOT_FOUND": "not_found",
    "IP_ADDRESS_RESERVED": "not_found",
    "AUTHORIZATION_INVALID": "auth",
    "LICENSE_KEY_REQUIRED": "auth",
    "ACCOUNT_ID_REQUIRED": "auth",
    "INSUFFICIENT_FUNDS": "quota",
    "OUT_OF_QUERIES": "quota",
    "PERMISSION_REQUIRED": "permission",
}


def _english(node: dict[str, Any] | None) -> str | None:
    if not node:
        return None
    return (node.get("names") or {}).get("en")


def format_location(city: str | None, region: str | None, country: str | None) -> str:
    parts = [part for part in (city, region, country) if part]
    return ", ".join(parts) if parts else UNKNOWN_LOCATION


class MaxMindProvider:
    """GeoIP2 City lookups against the MaxMind web service."""

    def __init__(
        self,
        account_id: str,
        license_key: str,
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._auth = (account_id, license_key)
        self._timeout = timeout
        self._transport = transport

    async def lookup(self, ip: str) -> LocationInfo:
        url = MAXMIND_CITY_URL.format(ip=ip)
        async with httpx.AsyncClient(timeout=self._timeout, auth=self._auth, transport=self._transport) as client:
            response = await client.get(url, headers={"Accept": "application/json"})
        if response.status_code >= 400:
            code = ""
            try:
                code = response.json().get("code", "")
            except (ValueError, AttributeError):
                pass
            reason = _MAXMIND_ERROR_REASONS.get(code, "unavailable")
            raise GeolocationError(reason, f"MaxMind response {response.status_code}: {code or response.text}")

        data = response.json()
        if not isinstance(data, dict):
            raise GeolocationError("unavailable", f"Unexpected MaxMind payload: {type(data).__name__}")
        city = _english(data.get("city"))
        subdivisions = data.get("subdivisions") or []
        region = _english(subdivisions[0]) if subdivisions else None
        country_node = data.get("country") or {}
        country = _english(country_node)
        location = data.get("location") or {}
        return LocationInfo(
            ip=ip,
            city=city,
            region=region,
            country=country,
            country_code=country_node.get("iso_code"),
            latitude=location.get("latitude"),
            longitude=location.get("longitude"),
            timezone=location.get("time_zone"),
            accuracy=location.get("accuracy_radius"),
            formatted=format_location(city, region, country),
        )


def is_private_address(ip: str) -> bool:
    if ip == "localhost":
        return True
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return address.is_private or address.is_loopback or address.is_link_local


class LocationEnricher:
    """Resolve an address to a location without ever failing the caller."""

    def __init__(self, provider: GeolocationProvider | None, *, timeout: float = 5.0) -> None:
        self._provider = provider
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings, provider: GeolocationProvider | None = None) -> "LocationEnricher":
        if provider is None and settings.maxmind_account_id and settings.maxmind_license_key:
            provider = MaxMindProvider(
                settings.maxmind_account_id,
                settings.maxmind_license_key,
                timeout=settings.geolocation_timeout_seconds,
            )
        elif provider is None:
            logger.warning("MaxMind GeoIP not configured; session locations will be limited")
        return cls(provider, timeout=settings.geolocation_timeout_seconds)

    @property
    def is_configured(self) -> bool:
        return self._provider is not None

    async def resolve(self, ip: str) -> LocationInfo:
        if is_private_address(ip):
            return LocationInfo.local(ip)
        if self._provider is None:
            return LocationInfo.unknown(ip)
        try:
            return await asyncio.wait_for(self._provider.lookup(ip), timeout=self._timeout)
        except GeolocationError as exc:
            if exc.reason == "not_found":
                logger.info("Address %s not found in geolocation database", ip)
            else:
                logger.error("Geolocation lookup failed (%s): %s", exc.reason, exc)
        except asyncio.TimeoutError:
            logger.warning("Geolocation lookup for %s timed out after %.1fs", ip, self._timeout)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Geolocation lookup error for %s: %s", ip, exc)
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected geolocation failure for %s", ip)
        return LocationInfo.unknown(ip)
