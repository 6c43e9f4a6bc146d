import math
from dataclasses import dataclass
from typing import Any, Mapping

from waitlist_api.services.payload import to_optional_string
from waitlist_api.services.submission import WaitlistSubmission


MAX_ADDITIONAL_FIELDS = 24
MAX_ADDITIONAL_FIELD_KEY_LENGTH = 64
MAX_ADDITIONAL_FIELD_VALUE_LENGTH = 1200
USE_CASE_KEYS = ("useCase", "use_case")

METADATA_HEADER_ALLOWLIST = (
    "accept",
    "accept-encoding",
    "accept-language",
    "origin",
    "host",
    "priority",
    "sec-ch-ua",
    "sec-ch-ua-mobile",
    "sec-ch-ua-platform",
    "sec-fetch-dest",
    "sec-fetch-mode",
    "sec-fetch-site",
    "user-agent",
    "x-forwarded-proto",
)


@dataclass(frozen=True)
class RequestFacts:
    method: str
    url: str
    path: str
    query: dict[str, str]
    http_version: str | None = None


@dataclass(frozen=True)
class EdgeSnapshot:
    country: str | None = None
    region: str | None = None
    region_code: str | None = None
    city: str | None = None
    postal_code: str | None = None
    continent: str | None = None
    timezone: str | None = None
    colo: str | None = None
    asn: int | None = None
    as_organization: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    metro_code: str | None = None
    bot_score: int | None = None
    tls_version: str | None = None
    http_protocol: str | None = None

    def to_metadata(self) -> dict[str, Any]:
        return {
            "country": self.country,
            "region": self.region,
            "regionCode": self.region_code,
            "city": self.city,
            "postalCode": self.postal_code,
            "continent": self.continent,
            "timezone": self.timezone,
            "colo": self.colo,
            "asn": self.asn,
            "asOrganization": self.as_organization,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "metroCode": self.metro_code,
            "botScore": self.bot_score,
            "tlsVersion": self.tls_version,
            "httpProtocol": self.http_protocol,
        }


def _header_string(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    return value if value else None


def _header_float(headers: Mapping[str, str], name: str) -> float | None:
    value = headers.get(name)
    if not value or not value.strip():
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def _header_integer(headers: Mapping[str, str], name: str) -> int | None:
    parsed = _header_float(headers, name)
    return None if parsed is None else math.trunc(parsed)


def _colo_from_ray(ray_id: str | None) -> str | None:
    if not ray_id or "-" not in ray_id:
        return None
    colo = ray_id.rsplit("-", 1)[1].strip()
    return colo or None


def read_edge_snapshot(headers: Mapping[str, str], http_version: str | None = None) -> EdgeSnapshot:
    """Collect geo, ASN, bot and TLS facts the edge network attached as headers."""
    http_protocol = _header_string(headers, "cf-http-protocol")
    if http_protocol is None and http_version:
        http_protocol = f"HTTP/{http_version}"

    return EdgeSnapshot(
        country=_header_string(headers, "cf-ipcountry"),
        region=_header_string(headers, "cf-region"),
        region_code=_header_string(headers, "cf-region-code"),
        city=_header_string(headers, "cf-ipcity"),
        postal_code=_header_string(headers, "cf-postal-code"),
        continent=_header_string(headers, "cf-ipcontinent"),
        timezone=_header_string(headers, "cf-timezone"),
        colo=_colo_from_ray(headers.get("cf-ray")),
        asn=_header_integer(headers, "cf-asn"),
        as_organization=_header_string(headers, "cf-as-organization"),
        latitude=_header_float(headers, "cf-iplatitude"),
        longitude=_header_float(headers, "cf-iplongitude"),
        metro_code=_header_string(headers, "cf-metro-code"),
        bot_score=_header_integer(headers, "cf-bot-score"),
        tls_version=_header_string(headers, "cf-tls-version"),
        http_protocol=http_protocol,
    )


def pick_headers(headers: Mapping[str, str], allowed: tuple[str, ...] = METADATA_HEADER_ALLOWLIST) -> dict[str, str]:
    output: dict[str, str] = {}
    for key in allowed:
        value = headers.get(key)
        if value:
            output[key] = value
    return output


def _stringify_loose_value(value: Any) -> str | None:
    if isinstance(value, str):
        return to_optional_string(value)
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return str(int(value)) if value.is_integer() else repr(value)
    return None


def sanitize_additional_fields(value: dict[str, Any] | None) -> dict[str, str]:
    if not value:
        return {}

    output: dict[str, str] = {}
    for raw_key, raw_value in value.items():
        if len(output) >= MAX_ADDITIONAL_FIELDS:
            break
        key = str(raw_key).strip()[:MAX_ADDITIONAL_FIELD_KEY_LENGTH]
        if not key:
            continue
        value_string = _stringify_loose_value(raw_value)
        if not value_string:
            continue
        output[key] = value_string[:MAX_ADDITIONAL_FIELD_VALUE_LENGTH]

    for key in USE_CASE_KEYS:
        output.pop(key, None)
    return output


def build_metadata(
    *,
    submission: WaitlistSubmission,
    request: RequestFacts,
    headers: Mapping[str, str],
    edge: EdgeSnapshot,
) -> dict[str, Any]:
    return {
        "provided": submission.metadata or {},
        "additionalFields": sanitize_additional_fields(submission.additional_fields),
        "request": {
            "method": request.method,
            "path": request.path,
            "query": dict(request.query),
            "source": submission.source or request.url,
            "cfRay": headers.get("cf-ray"),
        },
        "client": {
            "locale": submission.locale,
            "timezone": submission.timezone,
            "timezoneOffsetMinutes": submission.timezone_offset_minutes,
            "screen": submission.screen,
            "viewport": submission.viewport,
            "platform": submission.platform,
            "colorScheme": submission.color_scheme,
            "reducedMotion": submission.reduced_motion,
            "cookieEnabled": submission.cookie_enabled,
            "doNotTrack": submission.do_not_track,
            "deviceMemory": submission.device_memory,
            "hardwareConcurrency": submission.hardware_concurrency,
            "maxTouchPoints": submission.max_touch_points,
            "referrer": headers.get("referer"),
        },
        "headers": pick_headers(headers),
        "cloudflare": edge.to_metadata(),
    }


def build_entry_row(
    *,
    submission: WaitlistSubmission,
    request: RequestFacts,
    headers: Mapping[str, str],
    edge: EdgeSnapshot,
    ip_address: str,
    metadata: dict[str, Any],
    received_at: str,
) -> dict[str, Any]:
    """Column values for one upsert; ``created_at`` is left to the table default."""
    return {
        "email": submission.email.lower(),
        "qualifier": submission.qualifier,
        "use_case": submission.use_case,
        "source_url": submission.source or request.url,
        "landing_path": submission.landing_path or request.path,
        "ip_address": ip_address,
        "user_agent": headers.get("user-agent"),
        "referrer": headers.get("referer"),
        "accept_language": headers.get("accept-language"),
        "origin": headers.get("origin"),
        "host": headers.get("host"),
        "screen_size": submission.screen,
        "viewport_size": submission.viewport,
        "platform": submission.platform,
        "timezone": submission.timezone,
        "timezone_offset_minutes": submission.timezone_offset_minutes,
        "color_scheme": submission.color_scheme,
        "reduced_motion": submission.reduced_motion,
        "cookie_enabled": submission.cookie_enabled,
        "do_not_track": submission.do_not_track,
        "device_memory_gb": submission.device_memory,
        "hardware_concurrency": submission.hardware_concurrency,
        "max_touch_points": submission.max_touch_points,
        "cf_country": edge.country,
        "cf_region": edge.region,
        "cf_region_code": edge.region_code,
        "cf_city": edge.city,
        "cf_postal_code": edge.postal_code,
        "cf_continent": edge.continent,
        "cf_timezone": edge.timezone,
        "cf_colo": edge.colo,
        "cf_asn": edge.asn,
        "cf_as_organization": edge.as_organization,
        "cf_latitude": edge.latitude,
        "cf_longitude": edge.longitude,
        "cf_metro_code": edge.metro_code,
        "cf_bot_score": edge.bot_score,
        "cf_tls_version": edge.tls_version,
        "cf_http_protocol": edge.http_protocol,
        "utm_source": submission.utm_source,
        "utm_medium": submission.utm_medium,
        "utm_campaign": submission.utm_campaign,
        "utm_term": submission.utm_term,
        "utm_content": submission.utm_content,
        "metadata_json": metadata,
        "updated_at": received_at,
    }
