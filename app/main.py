import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import inspect

from app.core.config import (
    CORS_ORIGINS,
    DATABASE_URL,
    POINT_VALUE_CENTS,
    POINTS_EXPIRATION_MONTHS,
    POINTS_PER_CURRENCY_UNIT,
    POINTS_ROUNDING_THRESHOLD,
)
from app.core.database import Base, SessionLocal, engine
from app.core.logging_setup import configure_logging
from app.core.startup_checks import ensure_migrations_applied, validate_database_environment
from app.middleware.observability import ObservabilityMiddleware
import app.models  # garante que os models são importados antes do create_all
import app.services.event_handlers  # registra handlers do event bus

from app.models.points import PointsSettings
from app.routers.internal_metrics import router as internal_metrics_router
from app.routers.orders import router as orders_router
from app.routers.points import router as points_router
from app.routers.rewards import router as rewards_router

configure_logging()

logger = logging.getLogger(__name__)
BOOTSTRAP_PREFIX = "[BOOTSTRAP]"
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Restaurant Ordering API",
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


def _ensure_core_tables_exist() -> None:
    inspector = inspect(engine)
    required_tables = {"orders", "customers", "points_transactions", "promotions", "outbox_events"}
    missing = [table for table in required_tables if not inspector.has_table(table)]
    if missing:
        logger.error(
            "%s tables missing / migrations not applied missing=%s",
            BOOTSTRAP_PREFIX,
            ",".join(sorted(missing)),
        )
        raise RuntimeError("tables missing / migrations not applied")


def _bootstrap_points_settings() -> None:
    db = SessionLocal()
    try:
        existing = db.query(PointsSettings).first()
        if existing:
            logger.info("%s points settings exist id=%s", BOOTSTRAP_PREFIX, existing.id)
            return

        settings = PointsSettings(
            points_per_currency_unit=POINTS_PER_CURRENCY_UNIT,
            rounding_threshold=POINTS_ROUNDING_THRESHOLD,
            point_value_cents=POINT_VALUE_CENTS,
            expiration_months=POINTS_EXPIRATION_MONTHS,
        )
        db.add(settings)
        db.commit()
        logger.info(
            "%s points settings created per_unit=%s point_value_cents=%s",
            BOOTSTRAP_PREFIX,
            POINTS_PER_CURRENCY_UNIT,
            POINT_VALUE_CENTS,
        )
    except Exception:
        logger.exception("%s ERROR points settings bootstrap failed", BOOTSTRAP_PREFIX)
        raise
    finally:
        db.close()


def _startup_tasks() -> None:
    try:
        validate_database_environment()
        # Cria tabelas (dev). Em produção, use migrations.
        if DATABASE_URL.startswith("sqlite"):
            Base.metadata.create_all(bind=engine)
        ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
        _ensure_core_tables_exist()
        _bootstrap_points_settings()
    except Exception:
        logger.exception("%s ERROR startup failed", BOOTSTRAP_PREFIX)
        raise


# Routers
app.include_router(orders_router)
app.include_router(points_router)
app.include_router(rewards_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
