"""
The API server for TaskFlow.
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI

from taskflow_api.api_config import settings
from taskflow_api.db import create_all_tables, create_first_admin_user, engine, health_check_db
from taskflow_api.exception_handlers import register_exception_handlers
from taskflow_api.kv_store import RedisExpiringStore, create_expiring_store
from taskflow_api.routes.auth import auth_router
from taskflow_api.routes.core import core_router
from taskflow_api.security import TokenService
from taskflow_api.throttling import LoginThrottle

logging.basicConfig(level=settings.api.log_level, handlers=[logging.StreamHandler(sys.stdout)])

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager that handles startup and shutdown of API server"""
    # startup
    logger.info("Starting up TaskFlow API...")

    settings.validate_api_settings()
    logger.info("All API settings are correctly set.")

    if not await health_check_db():
        raise ConnectionError("Could not connect to the database or db unhealthy. Exiting...")
    logger.info("Database connection healthy.")
    await create_all_tables()
    await create_first_admin_user()

    redis_url = settings.redis.url.get_secret_value() if settings.redis.enabled else None
    store = create_expiring_store(redis_url)
    if isinstance(store, RedisExpiringStore) and not await store.ping():
        raise ConnectionError("Could not connect to Redis. Exiting...")

    app.state.store = store
    app.state.token_service = TokenService(
        store=store,
        secret_key=settings.jwt.secret_key,
        algorithm=settings.jwt.algorithm,
        access_token_expires=timedelta(seconds=settings.jwt.access_token_expires_seconds),
        refresh_token_expires=timedelta(seconds=settings.jwt.refresh_token_expires_seconds),
        password_reset_expires=timedelta(seconds=settings.jwt.password_reset_expires_seconds),
    )
    app.state.login_throttle = LoginThrottle(
        store=store,
        max_failed_attempts=settings.lockout.max_failed_attempts,
        lock_duration=timedelta(seconds=settings.lockout.lock_duration_seconds),
        failed_attempts_ttl=timedelta(seconds=settings.lockout.failed_attempts_ttl_seconds),
    )
    logger.info("TaskFlow API startup events complete.")

    yield

    # cleanup
    logger.info("Shutting down, closing any DB and store connections")
    await store.close()
    await engine.dispose()


app = FastAPI(lifespan=lifespan, title="TaskFlow API", docs_url="/api/v1/docs")

app.include_router(core_router, prefix="/api", tags=["core"])
app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])

register_exception_handlers(app)


def main():
    uvicorn.run("taskflow_api.taskflow_api:app", host="127.0.0.1", port=8000, reload=True)


if __name__ == "__main__":
    main()
