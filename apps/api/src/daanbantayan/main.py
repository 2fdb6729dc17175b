"""
Daanbantayan API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Configuration validation (refuses to start without a usable signing secret)
- Token signer, password hasher and OTP service
- Database and Redis connections
- Background job scheduler
- Authentication middleware, route policy and CORS
- API routing and health check endpoints
"""

import logging
from contextlib import asynccontextmanager
from fastapi import APIRouter, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from daanbantayan.api import api_router
from daanbantayan.core.auth import AuthenticationMiddleware, Principal, require_roles
from daanbantayan.core.config import settings, validate_settings
from daanbantayan.core.database import close_db, init_db
from daanbantayan.core.exceptions import register_exception_handlers
from daanbantayan.core.policy import DEFAULT_POLICY
from daanbantayan.core.redis import close_redis, init_redis
from daanbantayan.core.scheduler import list_registered_jobs, start_scheduler, stop_scheduler
from daanbantayan.core.security import PasswordHasher, SigningKey, TokenSigner
from daanbantayan.modules.otp.jobs import register_otp_jobs
from daanbantayan.modules.otp.service import OtpService
from daanbantayan.modules.otp.store import OtpStore
from daanbantayan.modules.users.service import load_user_for_auth

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Configuration validation
    - Security primitives and OTP service
    - Redis and database connections
    - Background job scheduler
    """
    # Startup
    print(f"Starting Daanbantayan API in {settings.python_env} mode...")

    # Configuration problems are always fatal
    try:
        validate_settings(settings)
        print("[OK] Configuration validated")
    except Exception as e:
        print(f"[FAIL] {e}")
        raise

    app.state.token_signer = TokenSigner(SigningKey.from_settings(settings))
    app.state.password_hasher = PasswordHasher(rounds=settings.bcrypt_rounds)

    # Initialize Redis (only the Redis OTP backend needs it)
    redis = None
    if settings.otp_store_backend == "redis":
        try:
            redis = await init_redis()
            print("[OK] Redis connected")
        except Exception as e:
            print(f"[FAIL] Redis connection failed: {e}")
            raise

    # Initialize Database
    try:
        await init_db()
        print("[OK] Database connected")
    except Exception as e:
        print(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    store = OtpStore.from_settings(settings, redis_client=redis)
    app.state.otp_service = OtpService(
        store,
        app.state.token_signer,
        otp_length=settings.otp_length,
        max_requests=settings.otp_max_requests,
    )
    print(f"[OK] OTP service ready ({settings.otp_store_backend} store)")

    # Initialize Background Job Scheduler
    try:
        if settings.otp_store_backend == "memory":
            register_otp_jobs(store)
        await start_scheduler()
        print("[OK] Background scheduler started")
    except Exception as e:
        print(f"[FAIL] Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield  # Application runs here

    # Shutdown
    print("Shutting down Daanbantayan API...")

    await stop_scheduler()
    print("[OK] Background scheduler stopped")

    await close_redis()
    await close_db()
    print("[OK] Cleanup complete")


health_router = APIRouter()


@health_router.get("")
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@health_router.get("/jobs")
async def list_jobs(
    _admin: Principal = Depends(require_roles("ADMIN")),
) -> dict[str, list]:
    """Registered background jobs and their next run time (ADMIN)."""
    return {"jobs": list_registered_jobs()}


def create_app() -> FastAPI:
    """Build the application with its middleware, handlers and routers."""
    application = FastAPI(
        title="Daanbantayan API",
        description="Daanbantayan School Portal API - authentication and sessions",
        version="0.1.0",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    register_exception_handlers(application)

    application.include_router(api_router, prefix="/api")
    application.include_router(health_router, prefix="/api/health", tags=["Health"])

    # Authentication runs inside CORS so preflight responses are never blocked
    application.add_middleware(
        AuthenticationMiddleware,
        user_loader=load_user_for_auth,
        policy=DEFAULT_POLICY,
    )
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return application


app = create_app()
