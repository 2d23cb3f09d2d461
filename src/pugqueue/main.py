"""FastAPI application entry point."""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from pugqueue.api.errors import remote_service_error_handler
from pugqueue.api.rate_limit import limiter
from pugqueue.api.router import api_router
from pugqueue.db.models import Base
from pugqueue.db.session import create_engine, create_session_factory
from pugqueue.dependencies import build_services, close_services
from pugqueue.errors import RemoteServiceError
from pugqueue.settings import get_settings


def setup_logging() -> None:
    """Configure logging for the application."""
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Set specific loggers
    level = logging.DEBUG if get_settings().dev_mode else logging.INFO
    logging.getLogger("pugqueue").setLevel(level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)


# Set up logging on import
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()
    logger.info(f"Starting pugqueue (dev_mode={settings.dev_mode})")

    engine = create_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    services = build_services(
        settings,
        session_factory=create_session_factory(engine),
        engine=engine,
    )
    app.state.services = services
    await services.queue.restore()

    yield

    logger.info("Shutting down pugqueue")
    await close_services(services)


app = FastAPI(
    title="pugqueue",
    description="Pick-up game queues with captain drafts and role access control",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()
if settings.dev_mode:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(RemoteServiceError, remote_service_error_handler)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "pugqueue API", "version": "0.1.0"}


# Include API routers
app.include_router(api_router, prefix="/api")
