import logging
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from otpgate.config import Settings, settings as default_settings
from otpgate.database import Database, utcnow
from otpgate.dependencies import build_services
from otpgate.routers import admin, health, otp
from otpgate.services.email import BrevoEmailSender

LOGGER = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    email_sender=None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    settings = settings or default_settings
    database = database or Database(settings.database_url, echo=settings.sql_echo)
    email_sender = email_sender or BrevoEmailSender(settings)

    app = FastAPI(title="OTP Gate")
    app.state.services = build_services(settings, database, email_sender, clock)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["POST", "GET", "DELETE", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    app.include_router(health.router, prefix="/api")
    app.include_router(otp.router, prefix="/api")
    app.include_router(admin.router, prefix="/api")
    app.include_router(otp.router)  # Compatibility for function-style clients calling /send-otp.

    @app.exception_handler(RequestValidationError)
    async def malformed_request(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        detail = errors[0].get("msg", "Malformed request") if errors else "Malformed request"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"message": "Malformed request", "error": detail},
        )

    @app.on_event("startup")
    def startup() -> None:
        database.init_db()
        LOGGER.info("OTP tables ready")

    @app.get("/")
    def root():
        return {"status": "OTP service running"}

    return app


app = create_app()
