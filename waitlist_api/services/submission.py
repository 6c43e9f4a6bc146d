import logging
import re
from typing import Any, Literal

from pydantic import AnyUrl, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator


logger = logging.getLogger("waitlist_api")

EMAIL_PATTERN = re.compile(
    r"^(?!\.)(?!.*\.\.)[A-Za-z0-9_'+\-.]*[A-Za-z0-9_+\-]@([A-Za-z0-9][A-Za-z0-9\-]*\.)+[A-Za-z]{2,}$"
)

_URL_ADAPTER = TypeAdapter(AnyUrl)


class WaitlistSubmission(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str = Field(max_length=320)
    qualifier: str | None = Field(default=None, max_length=80)
    use_case: str | None = Field(default=None, max_length=1200)
    website: str | None = Field(default=None, max_length=200)
    source: str | None = Field(default=None, max_length=2048)
    landing_path: str | None = Field(default=None, max_length=512)
    utm_source: str | None = Field(default=None, max_length=120)
    utm_medium: str | None = Field(default=None, max_length=120)
    utm_campaign: str | None = Field(default=None, max_length=120)
    utm_term: str | None = Field(default=None, max_length=120)
    utm_content: str | None = Field(default=None, max_length=120)
    locale: str | None = Field(default=None, max_length=32)
    timezone: str | None = Field(default=None, max_length=64)
    timezone_offset_minutes: int | None = Field(default=None, ge=-840, le=840)
    screen: str | None = Field(default=None, max_length=32)
    viewport: str | None = Field(default=None, max_length=32)
    platform: str | None = Field(default=None, max_length=120)
    color_scheme: Literal["light", "dark", "no-preference"] | None = None
    reduced_motion: Literal["reduce", "no-preference"] | None = None
    cookie_enabled: bool | None = None
    do_not_track: str | None = Field(default=None, max_length=24)
    device_memory: float | None = Field(default=None, ge=0, le=128)
    hardware_concurrency: int | None = Field(default=None, ge=1, le=256)
    max_touch_points: int | None = Field(default=None, ge=0, le=64)
    additional_fields: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("email")
    @classmethod
    def _email_syntax(cls, value: str) -> str:
        if not EMAIL_PATTERN.fullmatch(value):
            raise ValueError("invalid email address")
        return value

    @field_validator("source")
    @classmethod
    def _source_is_url(cls, value: str | None) -> str | None:
        if value is None:
            return value
        try:
            _URL_ADAPTER.validate_python(value)
        except ValidationError as exc:
            raise ValueError("source must be an absolute URL") from exc
        return value

    @property
    def is_bot(self) -> bool:
        return bool(self.website)


def validate_submission(normalized: dict[str, Any]) -> WaitlistSubmission | None:
    try:
        return WaitlistSubmission.model_validate(normalized)
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in error["loc"]) for error in exc.errors()})
        logger.debug("Rejected waitlist payload; invalid fields: %s", ", ".join(fields))
        return None
