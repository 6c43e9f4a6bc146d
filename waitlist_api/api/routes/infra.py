from concurrent.futures import ThreadPoolExecutor, wait

from fastapi import APIRouter
from pydantic import BaseModel

from waitlist_api.core.config import get_settings
from waitlist_api.repositories.supabase_repo import get_waitlist_repo


router = APIRouter(prefix="/api", tags=["infra"])

SERVICE_NAME = "waitlist-api"
READINESS_TIMEOUT_SECONDS = 2.0


class HealthResponse(BaseModel):
    ok: bool
    service: str


class ReadyChecks(BaseModel):
    env: str
    supabase: str


class ReadyDetails(BaseModel):
    failed: list[str]


class ReadyResponse(BaseModel):
    status: str
    checks: ReadyChecks
    details: ReadyDetails


def _check_supabase() -> None:
    get_waitlist_repo().ping()


def _run_store_check(timeout: float) -> tuple[bool, str]:
    if timeout <= 0:
        return False, "timeout"

    executor = ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(_check_supabase)
        done, _ = wait({future}, timeout=timeout)
        if future not in done:
            future.cancel()
            return False, "timeout"
        try:
            future.result()
        except Exception as exc:
            return False, str(exc)
        return True, ""
    finally:
        executor.shutdown(wait=False)


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(ok=True, service=SERVICE_NAME)


@router.get("/ready", response_model=ReadyResponse)
def ready() -> ReadyResponse:
    settings = get_settings()
    failed: list[str] = []
    checks = ReadyChecks(env="ok", supabase="fail")

    missing_env = settings.missing_required_env_for_api()
    if missing_env:
        checks.env = "fail"
        failed.extend([f"env:{name}" for name in missing_env])

    ok_supabase, err_supabase = _run_store_check(READINESS_TIMEOUT_SECONDS)
    if ok_supabase:
        checks.supabase = "ok"
    else:
        failed.append(f"supabase:{err_supabase or 'unknown'}")

    status = "ok" if checks.env == "ok" and checks.supabase == "ok" else "fail"
    return ReadyResponse(status=status, checks=checks, details=ReadyDetails(failed=failed))
