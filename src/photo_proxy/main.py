"""FastAPI application entry point.

Serve with ``uvicorn --factory photo_proxy.main:create_app``.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from .config import AppConfig, load_config
from .dependencies import include_routers
from .jobs.job_api import request_validation_handler
from .logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await app.state.job_service.drain()


def create_app(config: AppConfig | None = None, **overrides) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()
    app = FastAPI(title="Photo AI Proxy", lifespan=lifespan)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    include_routers(app, cfg, **overrides)

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app

