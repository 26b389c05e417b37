from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.responses import Response

from app.api.v1.router import api_router
from app.config import APP_VERSION, _DEFAULT_SECRET_KEYS, settings
from app.core.errors import register_exception_handlers
from app.core.logging_config import configure_logging
from app.core.metrics import app_info
from app.core.rate_limit import limiter
from app.database import engine
from app.middleware.prometheus import PrometheusMiddleware
from app.models import Base

logger = logging.getLogger(__name__)


def _run_alembic_stamp(alembic_cfg, revision):
    """Run alembic stamp in a thread-safe way."""
    from alembic import command
    command.stamp(alembic_cfg, revision)


def _run_alembic_upgrade(alembic_cfg, revision):
    """Run alembic upgrade in a thread-safe way."""
    from alembic import command
    command.upgrade(alembic_cfg, revision)


async def _ensure_bootstrap_admin() -> None:
    """Create the configured administrator when no active admin exists yet."""
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        return

    from sqlalchemy import select

    from app.core.policy import normalize_email
    from app.core.security import hash_password
    from app.database import async_session
    from app.models.user import User
    from app.services.user_directory import UserDirectory

    async with async_session() as db:
        if await UserDirectory(db).count_active_admins() > 0:
            return
        email = normalize_email(settings.ADMIN_EMAIL)
        existing = await db.execute(select(User).where(User.email == email))
        user = existing.scalar_one_or_none()
        if user is None:
            db.add(
                User(
                    email=email,
                    display_name="Administrator",
                    password_hash=hash_password(settings.ADMIN_PASSWORD),
                    role="admin",
                    is_active=True,
                )
            )
        else:
            user.role = "admin"
            user.is_active = True
            user.session_version = (user.session_version or 0) + 1
        await db.commit()
        logger.info("Bootstrapped administrator account %s", email)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.ENVIRONMENT, settings.LOG_LEVEL)

    # ── Refuse startup with default secret key in non-development envs ──
    if settings.SECRET_KEY in _DEFAULT_SECRET_KEYS:
        env = settings.ENVIRONMENT
        if env != "development":
            raise RuntimeError(
                "SECRET_KEY must be set to a strong random value in production. "
                'Generate one with: python -c "import secrets; print(secrets.token_urlsafe(64))"'
            )
        else:
            logger.warning(
                "Using default SECRET_KEY, acceptable for development only. "
                "Set a strong SECRET_KEY before deploying to production."
            )

    from alembic.config import Config
    from sqlalchemy import inspect as sa_inspect
    from sqlalchemy import text

    alembic_cfg = Config("alembic.ini")

    if settings.RESET_DB:
        # Full reset: drop everything and recreate
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        await asyncio.to_thread(_run_alembic_stamp, alembic_cfg, "head")
    else:
        async with engine.connect() as conn:
            has_alembic = await conn.run_sync(
                lambda sync_conn: sa_inspect(sync_conn).has_table("alembic_version")
            )
            alembic_version = None
            if has_alembic:
                row = await conn.execute(
                    text("SELECT version_num FROM alembic_version LIMIT 1")
                )
                first = row.first()
                alembic_version = first[0] if first else None

        if not has_alembic or alembic_version is None:
            # Fresh DB: create tables from models, then stamp
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            await asyncio.to_thread(_run_alembic_stamp, alembic_cfg, "head")
        else:
            try:
                await asyncio.to_thread(_run_alembic_upgrade, alembic_cfg, "head")
            except Exception:
                logger.exception("Alembic migration failed")
                raise

    await _ensure_bootstrap_admin()
    logger.info("%s %s started (%s)", settings.PROJECT_NAME, APP_VERSION, settings.ENVIRONMENT)

    yield

    await engine.dispose()


# ── Disable OpenAPI docs in production ──
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=APP_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url=None,
    openapi_url="/api/openapi.json" if settings.ENVIRONMENT == "development" else None,
)

app_info.info({"version": APP_VERSION, "environment": settings.ENVIRONMENT})

# ── Rate limiter ──
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)

# ── CORS: restrict origins instead of wildcard ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
app.add_middleware(PrometheusMiddleware)

app.include_router(api_router, prefix=settings.API_V1_PREFIX)


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": APP_VERSION}


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
