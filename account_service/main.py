"""
Main FastAPI application for account_service
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from account_service import metrics
from account_service.api.v1.endpoints import auth, second_factor, security
from account_service.core.config import Settings, get_settings
from account_service.core.database import SessionLocal, dispose_db, init_db, init_engine
from account_service.core.exceptions import AccountLocked, AuthError
from account_service.core.redis_client import RedisClient
from account_service.middleware import HTTPMetricsMiddleware, RequestIDMiddleware
from account_service.services.secret_codec import SecretCodec
from account_service.services.token_issuer import TokenIssuer

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}'
    )


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render typed failures as {"error", "message"} without internals"""
    headers = {}
    if isinstance(exc, AccountLocked):
        headers["Retry-After"] = str(exc.retry_after)
    elif exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def create_app(settings: Optional[Settings] = None, redis: Optional[RedisClient] = None) -> FastAPI:
    """
    Build the application

    Configuration is validated here: a missing or malformed encryption key or
    JWT secret raises ConfigurationError and the process does not start.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    secret_codec = SecretCodec.from_settings(settings)
    TokenIssuer.validate_settings(settings)
    init_engine(settings)
    redis = redis or RedisClient.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} v{settings.VERSION} ({settings.ENVIRONMENT})")
        metrics.app_info.info({"version": settings.VERSION, "environment": settings.ENVIRONMENT})

        if settings.ENVIRONMENT == "development":
            init_db()

        yield

        logger.info("Shutting down...")
        redis.close()
        dispose_db()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="Account Service - password login, two-factor authentication and session tokens",
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.secret_codec = secret_codec
    app.state.redis = redis

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOWED_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(HTTPMetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=settings.TRUSTED_PROXIES)

    app.add_exception_handler(AuthError, auth_error_handler)

    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        try:
            redis.ping()
            redis_status = "healthy"
        except Exception:
            redis_status = "unhealthy"

        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            database_status = "healthy"
        except Exception:
            database_status = "unhealthy"
        finally:
            db.close()

        healthy = redis_status == "healthy" and database_status == "healthy"
        return {
            "status": "healthy" if healthy else "degraded",
            "version": settings.VERSION,
            "checks": {
                "database": database_status,
                "redis": redis_status,
            }
        }

    @app.get("/metrics")
    def get_metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(auth.router, prefix=f"{settings.API_V1_PREFIX}/auth", tags=["authentication"])
    app.include_router(second_factor.router, prefix=f"{settings.API_V1_PREFIX}/2fa", tags=["two-factor"])
    app.include_router(security.router, prefix=f"{settings.API_V1_PREFIX}/security", tags=["security"])

    return app


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT)
