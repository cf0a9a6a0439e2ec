"""
FastAPI application for the Tax Compliance Gate and Payout Settlement Engine.

Routes:
- GET  /health                              : liveness check
- /api/tax/*                                : tax forms, compliance status, TIN access
- /api/payouts/*                            : payouts and reserve releases

Usage:
    uvicorn web.app:create_app --factory --host 0.0.0.0 --port 8000
"""

import logging
import uuid
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import Settings, get_settings, validate_startup_security
from services.tax_compliance_service import TaxComplianceService, build_compliance_service
from web.errors import register_exception_handlers
from web.routers import compliance_router, payouts_router

logger = logging.getLogger(__name__)


class RequestIDMiddleware:
    """
    Adds a request ID to every request and response.

    This allows tracking requests across logs and services.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode() or str(uuid.uuid4())

        scope.setdefault("state", {})
        scope["state"]["request_id"] = request_id

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                response_headers = list(message.get("headers", []))
                if not any(name.lower() == b"x-request-id" for name, _ in response_headers):
                    response_headers.append((b"x-request-id", request_id.encode()))
                message["headers"] = response_headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


def create_app(
    settings: Optional[Settings] = None,
    service: Optional[TaxComplianceService] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        settings: Application settings; loaded from the environment if omitted
        service: Prebuilt service graph; built from settings if omitted

    In production, startup fails if the TIN encryption key is missing.
    """
    settings = settings or get_settings()

    if settings.is_production:
        validate_startup_security(settings, exit_on_failure=True)
    else:
        errors = settings.validate_production_security()
        if errors:
            logger.warning(
                f"[SECURITY] Development mode - {len(errors)} security settings "
                "would fail in production. Set APP_ENVIRONMENT=production to enforce."
            )

    app = FastAPI(title=settings.name, version=settings.version, debug=settings.debug)
    app.state.settings = settings
    app.state.compliance_service = service or build_compliance_service(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)
    app.include_router(compliance_router)
    app.include_router(payouts_router)

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "version": settings.version, "environment": settings.environment}

    logger.info(f"{settings.name} API ready ({settings.environment})")
    return app
