import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Mapping


UNKNOWN_IP = "unknown"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    submission_count: int
    limit: int
    retry_after_seconds: int | None = None


def to_utc_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_day_window(now: datetime) -> tuple[str, str]:
    """Inclusive [start, end] bounds of the UTC calendar day containing ``now``."""
    day = now.astimezone(timezone.utc).date()
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = datetime.combine(day, time(23, 59, 59, 999000), tzinfo=timezone.utc)
    return to_utc_iso(start), to_utc_iso(end)


def seconds_until_next_utc_day(now: datetime) -> int:
    current = now.astimezone(timezone.utc)
    next_day = datetime.combine(current.date() + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return max(1, math.ceil((next_day - current).total_seconds()))


def get_connecting_ip(headers: Mapping[str, str]) -> str:
    connecting_ip = headers.get("cf-connecting-ip")
    if connecting_ip:
        return connecting_ip

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    return UNKNOWN_IP


def check_rate_limit(submission_count: int, *, limit: int, now: datetime) -> RateLimitDecision:
    if submission_count < limit:
        return RateLimitDecision(allowed=True, submission_count=submission_count, limit=limit)
    return RateLimitDecision(
        allowed=False,
        submission_count=submission_count,
        limit=limit,
        retry_after_seconds=seconds_until_next_utc_day(now),
    )
