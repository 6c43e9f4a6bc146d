import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from waitlist_api.core.config import get_settings
from waitlist_api.core.outcome_codes import ErrorCode, OutcomeMessage
from waitlist_api.repositories.supabase_repo import get_waitlist_repo
from waitlist_api.services.enrichment import RequestFacts, build_entry_row, build_metadata, read_edge_snapshot
from waitlist_api.services.payload import normalize_payload, read_request_body
from waitlist_api.services.rate_limit import check_rate_limit, get_connecting_ip, to_utc_iso, utc_day_window
from waitlist_api.services.submission import validate_submission


logger = logging.getLogger("waitlist_api")

router = APIRouter(prefix="/api/waitlist", tags=["waitlist"])

ALLOWED_METHODS = "POST, OPTIONS"


class WaitlistResponse(BaseModel):
    ok: bool
    message: str
    error: str | None = None


def _utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _respond(
    status_code: int,
    *,
    ok: bool,
    message: str,
    error: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = WaitlistResponse(ok=ok, message=message, error=error)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


@router.options("")
def waitlist_preflight() -> Response:
    return Response(status_code=204, headers={"Allow": ALLOWED_METHODS})


@router.post("", status_code=201, response_model=WaitlistResponse)
def join_waitlist(request: Request, raw_payload: dict[str, Any] = Depends(read_request_body)) -> JSONResponse:
    submission = validate_submission(normalize_payload(raw_payload))
    if submission is None:
        return _respond(
            400,
            ok=False,
            error=ErrorCode.INVALID_PAYLOAD.value,
            message=OutcomeMessage.INVALID_PAYLOAD.value,
        )

    # Honeypot hits get a success-shaped reply and never reach the store.
    if submission.is_bot:
        logger.info("Discarded honeypot submission.")
        return _respond(200, ok=True, message=OutcomeMessage.BOT_ACCEPTED.value)

    limit = get_settings().waitlist_rate_limit_per_day
    now = _utc_now()
    window_start, window_end = utc_day_window(now)
    ip_address = get_connecting_ip(request.headers)

    repo = get_waitlist_repo()
    submission_count = repo.count_submissions(
        ip_address=ip_address,
        window_start=window_start,
        window_end=window_end,
    )
    decision = check_rate_limit(submission_count, limit=limit, now=now)
    if not decision.allowed:
        logger.warning("Rate limit reached: %s submissions today (limit %s).", decision.submission_count, limit)
        return _respond(
            429,
            ok=False,
            error=ErrorCode.RATE_LIMITED.value,
            message=OutcomeMessage.RATE_LIMITED.value,
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )

    facts = RequestFacts(
        method=request.method,
        url=str(request.url),
        path=request.url.path,
        query=dict(request.query_params),
        http_version=request.scope.get("http_version"),
    )
    edge = read_edge_snapshot(request.headers, facts.http_version)
    metadata = build_metadata(submission=submission, request=facts, headers=request.headers, edge=edge)
    row = build_entry_row(
        submission=submission,
        request=facts,
        headers=request.headers,
        edge=edge,
        ip_address=ip_address,
        metadata=metadata,
        received_at=to_utc_iso(now),
    )
    repo.upsert_entry(row, ip_address=ip_address)

    logger.info("Saved waitlist entry for domain %s.", row["email"].rsplit("@", 1)[-1])
    return _respond(201, ok=True, message=OutcomeMessage.JOINED.value)
