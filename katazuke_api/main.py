"""
FastAPI main application for Katazuke Navi
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from katazuke_api.core.config import Settings, settings as default_settings
from katazuke_api.core.errors import CleanupServiceError
from katazuke_api.core.logging import setup_logging
from katazuke_api.middleware.logging_middleware import RequestLoggingMiddleware
from katazuke_api.routers import analysis, gemini, system
from katazuke_api.services.generation_client import Sleeper
from katazuke_api.services.usage_tracker import UsageTracker
from katazuke_api.services.vision_backend import GeminiVisionBackend, VisionBackend

logger = logging.getLogger(__name__)


def _key_preview(key: str) -> str:
    return f"{key[:7]}...{key[-4:]}" if len(key) > 11 else "***"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.app_name} v{settings.version} ({settings.environment})...")

    if app.state.api_key_configured:
        if settings.gemini_api_key:
            logger.info(f"✅ GEMINI_API_KEY is set: {_key_preview(settings.gemini_api_key)}")
    elif settings.environment == "production":
        logger.error("❌ GEMINI_API_KEY is NOT set")
        raise RuntimeError("GEMINI_API_KEY must be set in production")
    else:
        logger.warning("⚠️ GEMINI_API_KEY is NOT set - image endpoints will answer MISSING_API_KEY")

    limits = ", ".join(f"{name}={entry['limit']}" for name, entry in app.state.usage_tracker.status().items())
    logger.info(f"📊 Daily limits: {limits}")

    yield

    logger.info("Application stopped")


async def cleanup_service_error_handler(request: Request, exc: CleanupServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        return "Request body must be valid JSON"
    details = []
    for error in errors:
        field = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return "Invalid request body: " + "; ".join(details)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed payloads are client input errors: 400 with a readable message"""
    message = _describe_validation_error(exc)
    logger.warning(f"⚠️ Rejected {request.method} {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"error": message})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": str(exc)})


def create_app(
    settings: Optional[Settings] = None,
    backend: Optional[VisionBackend] = None,
    usage_tracker: Optional[UsageTracker] = None,
    sleep: Optional[Sleeper] = None,
) -> FastAPI:
    """Build the application; tests inject a fake backend, tracker and sleep"""
    settings = settings or default_settings

    app = FastAPI(
        title=settings.app_name,
        description="Room decluttering preview and advice API",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.environment == "development" else None,
        redoc_url="/redoc" if settings.environment == "development" else None,
    )

    if backend is None:
        backend = GeminiVisionBackend(settings.gemini_api_key)
        api_key_configured = backend.configured
    else:
        api_key_configured = True

    app.state.settings = settings
    app.state.backend = backend
    app.state.api_key_configured = api_key_configured
    app.state.usage_tracker = usage_tracker or UsageTracker.from_settings(settings)
    app.state.sleep = sleep or asyncio.sleep

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(CleanupServiceError, cleanup_service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(analysis.router, prefix="/api")
    app.include_router(gemini.router, prefix="/api")
    app.include_router(system.router, prefix="/api")

    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "katazuke_api.main:app",
        host="0.0.0.0",
        port=3001,
        reload=default_settings.environment == "development",
        log_config=None,  # Use our custom logging
        access_log=False,  # We handle this in middleware
    )
