import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

import backend.models  # noqa: F401  # registers tables on Base.metadata
from backend.api.v1.router import api_v1_router
from backend.config import (
    APP_ENV,
    DATABASE_URL,
    LOG_LEVEL,
    SEED_ON_STARTUP,
    SERVICE_VERSION,
    SMARTHOME_ENV,
    get_allowed_origins,
)
from backend.db.base import Base
from backend.db.migrations import alembic_upgrade_head
from backend.db.seed import seed_demo_data
from backend.db.session import SessionLocal, engine
from backend.exception_handlers import register_exception_handlers
from backend.observability import (
    REQUEST_ID_HEADER,
    RequestTimer,
    configure_logging,
    log_structured,
    request_context,
)

logger = configure_logging(LOG_LEVEL)


def init_db() -> None:
    if engine.dialect.name == "sqlite":
        Base.metadata.create_all(engine)
    else:
        alembic_upgrade_head(DATABASE_URL)


def seed_if_empty() -> None:
    session = SessionLocal()
    try:
        seed_demo_data(session)
    finally:
        session.close()


def reset_db(seed: bool = False) -> None:
    """Drop and recreate every table. Only honoured in the test environment."""
    if SMARTHOME_ENV != "test":
        return
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    if seed:
        seed_if_empty()


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_structured(logging.INFO, "startup", message="Smart home backend initializing", env=SMARTHOME_ENV)
    init_db()
    if APP_ENV == "dev" and SEED_ON_STARTUP:
        logger.info("SEED_ON_STARTUP enabled; seeding demo data")
        seed_if_empty()
    try:
        yield
    finally:
        log_structured(logging.INFO, "shutdown", message="Smart home backend closing", env=SMARTHOME_ENV)


app = FastAPI(
    title="Smart Home Backend",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "meta", "description": "Metadata and discovery endpoints"},
        {"name": "auth", "description": "Authentication and session control"},
        {"name": "houses", "description": "Houses and ownership"},
        {"name": "rooms", "description": "Rooms within a house"},
        {"name": "devices", "description": "Devices within a room"},
        {"name": "metrics", "description": "Device readings, aggregates and latest values"},
    ],
)
app.state.app_env = APP_ENV

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
    expose_headers=["X-Request-Id"],
)

register_exception_handlers(app)
app.include_router(api_v1_router, prefix="/api/v1", tags=["v1"])


@app.middleware("http")
async def request_logger(request: Request, call_next):
    with request_context(request.headers.get(REQUEST_ID_HEADER)) as request_id:
        request.state.request_id = request_id
        timer = RequestTimer(request.method, request.url.path, SMARTHOME_ENV)
        try:
            response = await call_next(request)
        except Exception as exc:
            timer.failed(exc)
            raise
        else:
            timer.status_code = response.status_code
        finally:
            timer.emit()
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


class HealthzResponse(BaseModel):
    status: str
    version: str


@app.get(
    "/healthz",
    response_model=HealthzResponse,
    tags=["meta"],
    summary="Service health check",
    description="Returns the current health and service version.",
)
def healthz() -> HealthzResponse:
    return HealthzResponse(status="ok", version=SERVICE_VERSION)
