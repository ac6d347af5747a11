"""Region classifier — request headers → country code → EU membership.

Used only to bias the default consent UI (strict EU banner vs balanced
default), never to gate functionality.

Resolution order:
  1. Client IP: X-Forwarded-For (first entry) → CF-Connecting-IP → X-Real-IP
  2. No IP at all: CDN country hints CF-IPCountry → X-Country-Code
  3. IP found: external lookup (ipapi.co by default), cached per IP

Every failure resolves to {country_code: None, is_in_eu: False}. Assuming
EU status incorrectly would over-comply, so the non-EU framing is the
fallback. classify() never raises.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping
from typing import Protocol

import httpx
import structlog

from dietitian.models.geo import GeoClassification
from dietitian.services.geo_cache import GeoCache

logger = structlog.get_logger()

# Post-Brexit roster (27 member states), ISO 3166-1 alpha-2
EU_COUNTRY_CODES: frozenset[str] = frozenset({
    "AT",  # Austria
    "BE",  # Belgium
    "BG",  # Bulgaria
    "HR",  # Croatia
    "CY",  # Cyprus
    "CZ",  # Czechia
    "DK",  # Denmark
    "EE",  # Estonia
    "FI",  # Finland
    "FR",  # France
    "DE",  # Germany
    "GR",  # Greece
    "HU",  # Hungary
    "IE",  # Ireland
    "IT",  # Italy
    "LV",  # Latvia
    "LT",  # Lithuania
    "LU",  # Luxembourg
    "MT",  # Malta
    "NL",  # Netherlands
    "PL",  # Poland
    "PT",  # Portugal
    "RO",  # Romania
    "SK",  # Slovakia
    "SI",  # Slovenia
    "ES",  # Spain
    "SE",  # Sweden
})

IP_HEADERS: tuple[str, ...] = ("x-forwarded-for", "cf-connecting-ip", "x-real-ip")
COUNTRY_HINT_HEADERS: tuple[str, ...] = ("cf-ipcountry", "x-country-code")

# Cloudflare placeholders: XX = unknown, T1 = Tor
_PLACEHOLDER_COUNTRIES = frozenset({"XX", "T1"})


def is_eu_country(country_code: str | None) -> bool:
    if not country_code:
        return False
    return country_code.upper() in EU_COUNTRY_CODES


def classification_for(country_code: str | None) -> GeoClassification:
    return GeoClassification(country_code=country_code, is_in_eu=is_eu_country(country_code))


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {k.lower(): v for k, v in headers.items()}


def get_client_ip(headers: Mapping[str, str]) -> str | None:
    """First IP-bearing header wins; X-Forwarded-For contributes its first hop."""
    normalized = _lower_keys(headers)

    forwarded_for = normalized.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        return first or None

    for name in IP_HEADERS[1:]:
        value = (normalized.get(name) or "").strip()
        if value:
            return value
    return None


def get_country_hint(headers: Mapping[str, str]) -> str | None:
    normalized = _lower_keys(headers)
    for name in COUNTRY_HINT_HEADERS:
        value = (normalized.get(name) or "").strip().upper()
        if value and value not in _PLACEHOLDER_COUNTRIES:
            return value
    return None


def is_public_ip(ip: str) -> bool:
    try:
        return ipaddress.ip_address(ip).is_global
    except ValueError:
        return False


def mask_ip(ip: str) -> str:
    """Drop the host part before an IP goes into a log line."""
    if ":" in ip:
        return ":".join(ip.split(":")[:3]) + ":x"
    return ".".join(ip.split(".")[:3]) + ".x"


class CountryLookup(Protocol):
    async def lookup_country(self, ip: str) -> str | None: ...


class IpapiLookup:
    """ipapi.co lookup. Free tier allows ~1000 requests/day, hence the cache."""

    def __init__(
        self,
        url_template: str = "https://ipapi.co/{ip}/json/",
        timeout: float = 3.0,
        user_agent: str = "AI-Dietitian/1.0",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url_template = url_template
        self.timeout = timeout
        self.headers = {"User-Agent": user_agent}
        self._transport = transport

    async def lookup_country(self, ip: str) -> str | None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(self.url_template.format(ip=ip), headers=self.headers)
        except httpx.HTTPError as e:
            logger.warning("geo_lookup_failed", ip=mask_ip(ip), error=str(e))
            return None

        if not resp.is_success:
            logger.warning("geo_lookup_failed", ip=mask_ip(ip), status=resp.status_code)
            return None

        try:
            data = resp.json()
        except ValueError:
            logger.warning("geo_lookup_failed", ip=mask_ip(ip), error="invalid_json")
            return None

        if not isinstance(data, dict):
            return None

        if data.get("error"):
            logger.warning("geo_lookup_failed", ip=mask_ip(ip), error=data.get("reason", "provider_error"))
            return None

        country_code = data.get("country_code") or data.get("countryCode")
        if not isinstance(country_code, str) or not country_code:
            return None
        return country_code.upper()


class RegionClassifier:
    def __init__(
        self,
        lookup: CountryLookup,
        cache: GeoCache | None = None,
        cache_ttl: int = 3600,
    ):
        self.lookup = lookup
        self.cache = cache
        self.cache_ttl = cache_ttl

    async def classify(self, headers: Mapping[str, str]) -> GeoClassification:
        try:
            return await self._classify(headers)
        except Exception as e:
            logger.error("geo_classification_failed", error=str(e))
            return GeoClassification.unknown()

    async def _classify(self, headers: Mapping[str, str]) -> GeoClassification:
        ip = get_client_ip(headers)

        if ip is None:
            hint = get_country_hint(headers)
            if hint is None:
                logger.info("geo_no_client_ip")
                return GeoClassification.unknown()
            return classification_for(hint)

        if self.cache is not None:
            cached = await self.cache.get(ip)
            if cached:
                return classification_for(cached)

        if not is_public_ip(ip):
            logger.info("geo_ip_not_routable", ip=mask_ip(ip))
            return GeoClassification.unknown()

        country_code = await self.lookup.lookup_country(ip)
        if country_code is None:
            return GeoClassification.unknown()

        if self.cache is not None:
            await self.cache.set(ip, country_code, self.cache_ttl)
        return classification_for(country_code)
