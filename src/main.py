"""Entry point for the TTY phone relay service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.relay_routes import router as relay_router
from api.routes import router as api_router
from api.twilio_routes import router as twilio_router
from calls.errors import CallRelayError, ControlPlaneError
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

app = FastAPI(
    title="TTY Phone Relay",
    description="Type-to-speak phone calls with live audio relayed back to the operator.",
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix="/api")
app.include_router(twilio_router, prefix="/api")
app.include_router(relay_router)


@app.exception_handler(CallRelayError)
async def call_relay_error_handler(request: Request, exc: CallRelayError) -> JSONResponse:
    body: dict[str, object] = {"success": False, "error": exc.detail}
    if isinstance(exc, ControlPlaneError) and exc.code is not None:
        body["code"] = exc.code
    if exc.status_code >= 500:
        LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=body)


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
