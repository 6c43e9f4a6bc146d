from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import Headers

from waitlist_api.api.routes.infra import router as infra_router
from waitlist_api.api.routes.waitlist import ALLOWED_METHODS, router as waitlist_router
from waitlist_api.core.config import get_settings
from waitlist_api.core.observability import configure_observability


class PreflightCORSMiddleware(CORSMiddleware):
    """CORS for cross-origin landing pages; pre-flights always answer 204 with `Allow`.

    A disallowed origin gets the same 204 without any `Access-Control-*`
    headers, so the browser blocks the follow-up request on its own.
    """

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers=request_headers)
        headers = {"Allow": ALLOWED_METHODS}
        if response.status_code < 400:
            for key, value in response.headers.items():
                if key.startswith("access-control-") or key == "vary":
                    headers[key] = value
        return Response(status_code=204, headers=headers)


def create_app() -> FastAPI:
    settings = get_settings()
    settings.validate_runtime()

    app = FastAPI(title="Waitlist API", version="0.1.0")
    allowed_origins = settings.get_cors_allowed_origins()
    if allowed_origins:
        app.add_middleware(
            PreflightCORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=False,
            allow_methods=["POST", "OPTIONS"],
            allow_headers=["*"],
        )
    configure_observability(app)
    app.include_router(infra_router)
    app.include_router(waitlist_router)

    # Everything outside /api is the pre-built landing page.
    app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="site")

    return app


app = create_app()
