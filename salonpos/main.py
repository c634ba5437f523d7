import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from salonpos.core.config import AUTO_CREATE_TABLES, CORS_ORIGINS, DATABASE_URL, ENV
from salonpos.core.database import Base, engine
from salonpos.core.logging_setup import configure_logging
from salonpos.core.startup_checks import (
    ensure_migrations_applied,
    validate_database_environment,
    validate_pos_configuration,
)
from salonpos.middleware.observability import ObservabilityMiddleware
import salonpos.models  # models must be imported before create_all

from salonpos.routers.auth import router as auth_router
from salonpos.routers.internal_metrics import router as internal_metrics_router
from salonpos.routers.pos_oauth import router as pos_oauth_router
from salonpos.routers.pos_proxy import router as pos_proxy_router
from salonpos.routers.staff import router as staff_router
from salonpos.routers.stylist_data import router as stylist_data_router
from salonpos.routers.sync import router as sync_router

configure_logging()

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
ENVIRONMENT = os.getenv("ENVIRONMENT", ENV).strip().lower()
REPO_ROOT = Path(__file__).resolve().parents[1]
ALEMBIC_CONFIG_PATH = Path(
    os.getenv("ALEMBIC_CONFIG", str(REPO_ROOT / "alembic.ini"))
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    _startup_tasks()
    yield


app = FastAPI(
    title="Salon POS API",
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
        validate_pos_configuration()
        if DATABASE_URL.startswith("sqlite") and AUTO_CREATE_TABLES:
            # Local sqlite: schema straight from the models, no migration state.
            Base.metadata.create_all(bind=engine)
            logger.info("%s sqlite schema created env=%s", STARTUP_PREFIX, ENVIRONMENT)
        else:
            ensure_migrations_applied(engine=engine, alembic_config_path=ALEMBIC_CONFIG_PATH)
    except Exception:
        logger.exception("%s ERROR startup failed", STARTUP_PREFIX)
        raise


# Routers
app.include_router(auth_router)
app.include_router(pos_oauth_router)
app.include_router(pos_proxy_router)
app.include_router(sync_router)
app.include_router(staff_router)
app.include_router(stylist_data_router)
app.include_router(internal_metrics_router)


@app.get("/")
def root():
    return {"status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
