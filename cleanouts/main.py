import logging

from fastapi import FastAPI, Request
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cleanouts.db.init_db import create_database
from cleanouts.db.base import Base
from cleanouts.db.session import engine
from cleanouts.core.config import settings
from cleanouts.core.exceptions import DomainError
from cleanouts.api.v1.router import api_router
from cleanouts.services.availability_cache import AvailabilityCache

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: ensure DB exists and create tables
    if settings.AUTO_CREATE_DATABASE:
        create_database()
    Base.metadata.create_all(bind=engine)

    # One availability cache per process, swept in the background
    cache = AvailabilityCache(
        ttl_seconds=settings.AVAILABILITY_CACHE_TTL_SECONDS,
        sweep_interval_seconds=settings.AVAILABILITY_CACHE_SWEEP_SECONDS,
    )
    app.state.availability_cache = cache
    cache.start()
    logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield

    # Shutdown: cancel the sweep task
    await cache.stop()


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body = {"success": False, "error": "Internal server error"}
    if settings.is_development:
        body["details"] = {"message": str(exc)}
    return JSONResponse(status_code=500, content=body)


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
def read_root():
    return {"name": settings.PROJECT_NAME, "docs": "/docs"}


@app.get("/health")
def health():
    return {"status": "ok"}
