import json
import logging
import math
from typing import Any

from fastapi import Request
from starlette.datastructures import UploadFile


logger = logging.getLogger("waitlist_api")

_FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")
_TRUE_LITERALS = {"true", "1", "yes"}
_FALSE_LITERALS = {"false", "0", "no"}


def _reject_constant(token: str) -> Any:
    raise ValueError(f"non-standard JSON constant {token}")


async def read_request_body(request: Request) -> dict[str, Any]:
    """Decode a JSON or form body into a plain dict.

    Malformed input never raises here; it degrades to an empty dict so the
    submission fails validation like any other payload without an email.
    `NaN` and `Infinity` tokens count as malformed JSON.
    """
    content_type = (request.headers.get("content-type") or "").lower()

    if "application/json" in content_type:
        try:
            body = json.loads(await request.body(), parse_constant=_reject_constant)
        except (ValueError, UnicodeDecodeError):
            return {}
        return body if isinstance(body, dict) else {}

    if any(kind in content_type for kind in _FORM_CONTENT_TYPES):
        try:
            form = await request.form()
        except Exception as exc:
            logger.debug("Discarding undecodable form body: %s", exc)
            return {}
        output: dict[str, Any] = {}
        for key, value in form.multi_items():
            output[key] = value.filename if isinstance(value, UploadFile) else value
        return output

    return {}


def to_optional_string(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def to_optional_number(value: Any) -> float | int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = float(value.strip())
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def to_optional_integer(value: Any) -> int | None:
    parsed = to_optional_number(value)
    if parsed is None:
        return None
    return math.trunc(parsed)


def to_optional_boolean(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if not isinstance(value, str):
        return None
    normalized = value.strip().lower()
    if normalized in _TRUE_LITERALS:
        return True
    if normalized in _FALSE_LITERALS:
        return False
    return None


def parse_loose_object(value: Any) -> dict[str, Any] | None:
    if isinstance(value, dict):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = json.loads(value, parse_constant=_reject_constant)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _first_present(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def normalize_payload(raw: dict[str, Any]) -> dict[str, Any]:
    """Fold the accepted field aliases into one canonical snake_case record."""
    return {
        "email": to_optional_string(raw.get("email")),
        "qualifier": to_optional_string(_first_present(raw, "qualifier", "segment", "role")),
        "use_case": to_optional_string(_first_present(raw, "useCase", "use_case", "intent", "description")),
        "website": to_optional_string(_first_present(raw, "website", "company")),
        "source": to_optional_string(_first_present(raw, "source", "source_url")),
        "landing_path": to_optional_string(_first_present(raw, "landingPath", "landing_path")),
        "utm_source": to_optional_string(_first_present(raw, "utmSource", "utm_source")),
        "utm_medium": to_optional_string(_first_present(raw, "utmMedium", "utm_medium")),
        "utm_campaign": to_optional_string(_first_present(raw, "utmCampaign", "utm_campaign")),
        "utm_term": to_optional_string(_first_present(raw, "utmTerm", "utm_term")),
        "utm_content": to_optional_string(_first_present(raw, "utmContent", "utm_content")),
        "locale": to_optional_string(raw.get("locale")),
        "timezone": to_optional_string(raw.get("timezone")),
        "timezone_offset_minutes": to_optional_integer(
            _first_present(raw, "timezoneOffsetMinutes", "timezone_offset_minutes")
        ),
        "screen": to_optional_string(raw.get("screen")),
        "viewport": to_optional_string(raw.get("viewport")),
        "platform": to_optional_string(raw.get("platform")),
        "color_scheme": to_optional_string(_first_present(raw, "colorScheme", "color_scheme")),
        "reduced_motion": to_optional_string(_first_present(raw, "reducedMotion", "reduced_motion")),
        "cookie_enabled": to_optional_boolean(_first_present(raw, "cookieEnabled", "cookie_enabled")),
        "do_not_track": to_optional_string(_first_present(raw, "doNotTrack", "do_not_track")),
        "device_memory": to_optional_number(_first_present(raw, "deviceMemory", "device_memory")),
        "hardware_concurrency": to_optional_integer(
            _first_present(raw, "hardwareConcurrency", "hardware_concurrency")
        ),
        "max_touch_points": to_optional_integer(_first_present(raw, "maxTouchPoints", "max_touch_points")),
        "additional_fields": parse_loose_object(
            _first_present(raw, "additionalFields", "additional_fields", "fields")
        ),
        "metadata": parse_loose_object(raw.get("metadata")),
    }
