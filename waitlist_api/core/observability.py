import logging
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response

from waitlist_api.core.config import get_settings


logger = logging.getLogger("waitlist_api")


def _configure_logging() -> None:
    settings = get_settings()
    level = logging.getLevelName(settings.log_level.strip().upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)
    if not logging.getLogger().handlers and not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)


def _configure_sentry() -> None:
    settings = get_settings()
    if not settings.sentry_dsn:
        return
    try:
        import sentry_sdk

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.app_env,
            traces_sample_rate=0.1,
            send_default_pii=False,
        )
    except Exception as exc:  # pragma: no cover - defensive
        logger.warning("Failed to initialize Sentry: %s", exc)


def configure_observability(app: FastAPI) -> None:
    _configure_logging()
    _configure_sentry()

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
