"""AI Dietitian site API.

Entry point: uvicorn dietitian.main:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dietitian.config import settings
from dietitian.middleware import LegalLocaleMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("app_startup", env=settings.APP_ENV)
    yield
    from dietitian.deps import close_redis

    await close_redis()
    logger.info("app_shutdown")


app = FastAPI(
    title="AI Dietitian API",
    description="Region detection and cookie-consent audit for the marketing site",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.APP_ENV == "development" else None,
    redoc_url="/redoc" if settings.APP_ENV == "development" else None,
)

# --- Middleware ---
app.add_middleware(LegalLocaleMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Exception handlers ---

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# --- Routers ---

from dietitian.routers.consent import router as consent_router  # noqa: E402
from dietitian.routers.geo import router as geo_router  # noqa: E402

app.include_router(geo_router, prefix="/api", tags=["geo"])
app.include_router(consent_router, prefix="/api", tags=["consent"])


# --- Health check ---

@app.get("/api/health")
async def health_check():
    return {"status": "ok", "version": "0.1.0"}
