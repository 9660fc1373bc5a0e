"""
FastAPI application factory.

Wires one auth session to one notifications facade through the session
binder and mounts the notification routes.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI

from notifyhub.api.routes import notifications as notification_routes
from notifyhub.cache.local_cache import build_local_cache
from notifyhub.config import Settings
from notifyhub.config import settings as default_settings
from notifyhub.database import create_engine, create_session_maker, init_models
from notifyhub.logging_config import configure_logging
from notifyhub.notifications.facade import NotificationsFacade
from notifyhub.notifications.session import AuthSession, NotificationSessionBinder
from notifyhub.stores.sql_store import SqlNotificationStore

logger = structlog.get_logger(__name__)


def create_app(
    facade: Optional[NotificationsFacade] = None,
    auth: Optional[AuthSession] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        facade: Pre-built facade; when omitted one is created on startup from
            settings (SQL store + configured cache)
        auth: Auth session driving the facade (defaults to a signed-out session)
        settings: Application settings (defaults to global settings)

    Returns:
        Configured FastAPI app
    """
    settings = settings or default_settings
    configure_logging(settings.log_level, settings.json_logs)
    auth = auth or AuthSession()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine = None
        cache = None
        session_facade = facade
        if session_facade is None:
            engine = create_engine(settings.database_url, echo=settings.db_echo)
            await init_models(engine)
            store = SqlNotificationStore(
                create_session_maker(engine),
                poll_interval=settings.store_poll_interval_seconds,
                snapshot_limit=settings.store_snapshot_limit,
            )
            cache = build_local_cache(settings)
            session_facade = NotificationsFacade(store, cache=cache, settings=settings)

        binder = NotificationSessionBinder(auth, session_facade)
        app.state.notifications_facade = session_facade
        app.state.auth_session = auth
        await binder.attach()
        logger.info("notifications_api_started", environment=settings.environment)

        try:
            yield
        finally:
            await binder.detach()
            if engine is not None:
                await engine.dispose()
            if cache is not None:
                await cache.aclose()
            logger.info("notifications_api_stopped")

    app = FastAPI(
        title="notifyhub",
        description="Real-time notifications and toast lifecycle API",
        lifespan=lifespan,
    )
    app.include_router(notification_routes.router)
    return app
