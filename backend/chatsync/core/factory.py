"""Wiring of engine, cache, stores and services.

Everything the routers need hangs off one :class:`Container` that the app
lifespan (or a test fixture) builds and owns.  Routers reach it through the
``get_*`` dependency providers below, never through module globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi import Request
from sqlalchemy import Engine
from sqlalchemy.orm import sessionmaker

from chatsync.auth.strategy import AuthStrategy
from chatsync.auth.strategy import DevAuthStrategy
from chatsync.auth.strategy import JWTAuthStrategy
from chatsync.cache.backends import RedisCacheBackend
from chatsync.cache.cache import Cache
from chatsync.cache.keys import TTLPolicy
from chatsync.cache.stores import CachedChatStore
from chatsync.cache.stores import CachedUserStore
from chatsync.config import Settings
from chatsync.core.implementations import SQLAlchemyChatStore
from chatsync.core.implementations import SQLAlchemyUserStore
from chatsync.core.interfaces import CacheBackend
from chatsync.core.interfaces import ChatStore
from chatsync.core.interfaces import UserStore
from chatsync.database import initialize_database
from chatsync.database import make_engine
from chatsync.database import make_sessionmaker
from chatsync.middleware.rate_limiter import SimpleRateLimiter
from chatsync.services.sync_service import SyncService

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    cache: Cache
    chat_store: ChatStore
    user_store: UserStore
    sync_service: SyncService
    auth_strategy: AuthStrategy
    rate_limiter: SimpleRateLimiter

    def close(self) -> None:
        self.cache.close()
        self.engine.dispose()
        logger.info("Container closed")


def build_container(
    settings: Settings,
    engine: Optional[Engine] = None,
    cache_backend: Optional[CacheBackend] = None,
    auth_strategy: Optional[AuthStrategy] = None,
    chat_store: Optional[ChatStore] = None,
) -> Container:
    """Assemble a :class:`Container` from *settings*.

    Keyword overrides exist for tests: an in-memory engine, an in-process
    cache backend, a specific auth strategy or a wrapped chat store.
    """
    if engine is None:
        engine = make_engine(settings.database_url)
    initialize_database(engine)
    session_factory = make_sessionmaker(engine)

    if cache_backend is None and settings.cache_enabled:
        cache_backend = RedisCacheBackend.from_url(settings.redis_url)
    cache = Cache(cache_backend, TTLPolicy.from_settings(settings))
    if not cache.enabled:
        logger.info("No cache backend configured; reads go straight to the database")

    if chat_store is None:
        chat_store = CachedChatStore(SQLAlchemyChatStore(session_factory), cache)
    user_store = CachedUserStore(SQLAlchemyUserStore(session_factory), cache)

    if auth_strategy is None:
        auth_strategy = DevAuthStrategy() if settings.auth_disabled else JWTAuthStrategy(settings.jwt_secret)

    return Container(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        cache=cache,
        chat_store=chat_store,
        user_store=user_store,
        sync_service=SyncService(chat_store),
        auth_strategy=auth_strategy,
        rate_limiter=SimpleRateLimiter(limit=settings.sync_rate_limit_per_minute, window_seconds=60),
    )


# ---------------------------------------------------------------------------
# Dependency providers
# ---------------------------------------------------------------------------


def get_container(request: Request) -> Container:
    """Dependency provider for the app-wide :class:`Container`."""
    return request.app.state.container


def get_chat_store(container: Container = Depends(get_container)) -> ChatStore:
    return container.chat_store


def get_user_store(container: Container = Depends(get_container)) -> UserStore:
    return container.user_store


def get_sync_service(container: Container = Depends(get_container)) -> SyncService:
    return container.sync_service
