"""
FastAPI application entrypoint for the CRM credential broker.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from crm_bridge.api.routes import router as api_router
from crm_bridge.core.config import get_settings
from crm_bridge.core.errors import CredentialBrokerError, InvalidUserInputError
from crm_bridge.core.logging import configure_logging

logger = logging.getLogger(__name__)


async def handle_broker_error(request: Request, exc: CredentialBrokerError) -> JSONResponse:
    """Translate domain errors into the stable error envelope."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return JSONResponse(
        status_code=int(exc.status_code),
        content={"success": False, "error": exc.code, "message": exc.message},
    )


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Answer malformed request bodies with the same envelope as domain errors."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    invalid = InvalidUserInputError("; ".join(problems) or None)
    return JSONResponse(
        status_code=int(invalid.status_code),
        content={"success": False, "error": invalid.code, "message": invalid.message},
    )


def create_app() -> FastAPI:
    """Factory for the FastAPI application; fails fast on incomplete configuration."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="CRM Credential Broker",
        version="0.1.0",
        description="OAuth credential lifecycle and signed webhook intake for the CRM integration.",
    )
    app.add_exception_handler(CredentialBrokerError, handle_broker_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]

if __name__ == "__main__":  # pragma: no cover - manual launch
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "crm_bridge.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
