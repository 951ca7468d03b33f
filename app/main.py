import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import AUTO_CREATE_SCHEMA, CORS_ORIGINS, DATABASE_URL
from app.core.database import Base, engine
from app.core.logging_setup import configure_logging
from app.core.startup_checks import (
    ensure_migrations_applied,
    validate_database_environment,
    validate_runtime_settings,
)
from app.middleware.observability import ObservabilityMiddleware
import app.models  # models must be registered before create_all
import app.services.event_handlers  # registers event bus handlers

from app.routers.shopify_webhooks import router as shopify_webhooks_router
from app.routers.failed_webhooks import router as failed_webhooks_router
from app.routers.order_remarks import router as order_remarks_router
from app.routers.fulfillment import router as fulfillment_router
from app.routers.rider_delivery import router as rider_delivery_router
from app.routers.internal_metrics import router as internal_metrics_router
from app.routers.staff import router as staff_router

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Cosmo OS API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ObservabilityMiddleware)


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        validate_runtime_settings()
        if DATABASE_URL.startswith("sqlite") and AUTO_CREATE_SCHEMA:
            Base.metadata.create_all(bind=engine)
            logger.info("%s sqlite schema ensured", STARTUP_PREFIX)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    except Exception:
        logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
        raise


# Routers. failed-webhooks must precede the /api/admin/orders/{order_id} routes.
app.include_router(shopify_webhooks_router)
app.include_router(failed_webhooks_router)
app.include_router(order_remarks_router)
app.include_router(fulfillment_router)
app.include_router(rider_delivery_router)
app.include_router(internal_metrics_router)
app.include_router(staff_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
