import os

# Must be set before chatsync.config is first imported.
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("NODE_ENV", "test")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from chatsync.auth.strategy import JWTAuthStrategy  # noqa: E402
from chatsync.cache.backends import InMemoryCacheBackend  # noqa: E402
from chatsync.config import get_settings  # noqa: E402
from chatsync.core.factory import build_container  # noqa: E402
from chatsync.database import Base  # noqa: E402
from chatsync.database import make_engine  # noqa: E402
from chatsync.database import make_sessionmaker  # noqa: E402
from chatsync.main import create_app  # noqa: E402
from chatsync.models import models  # noqa: E402,F401
from tests.helpers.auth import TEST_JWT_SECRET  # noqa: E402
from tests.helpers.auth import bearer  # noqa: E402

# Create a test database - using in-memory SQLite for tests
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

test_engine = make_engine(
    SQLALCHEMY_DATABASE_URL,
    poolclass=StaticPool,  # Use StaticPool for in-memory database
)

TestingSessionLocal = make_sessionmaker(test_engine)


@pytest.fixture
def db_session():
    """
    Creates a fresh database for each test, then tears it down after the test is done.
    """
    Base.metadata.create_all(bind=test_engine)

    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def cache_backend():
    return InMemoryCacheBackend()


@pytest.fixture
def make_container(db_session, settings, cache_backend):
    """Factory so tests can swap the chat store or tweak settings first."""

    def _make(**overrides):
        overrides.setdefault("engine", test_engine)
        overrides.setdefault("cache_backend", cache_backend)
        overrides.setdefault("auth_strategy", JWTAuthStrategy(TEST_JWT_SECRET))
        return build_container(settings, **overrides)

    return _make


@pytest.fixture
def container(make_container):
    return make_container()


@pytest.fixture
def chat_store(container):
    return container.chat_store


@pytest.fixture
def user_store(container):
    return container.user_store


@pytest.fixture
def sync_service(container):
    return container.sync_service


@pytest.fixture
def client(container):
    """
    Create a FastAPI TestClient bound to the per-test container.
    """
    app = create_app(container)
    yield TestClient(app)


@pytest.fixture
def auth_headers():
    return bearer("user-1")


@pytest.fixture
def other_auth_headers():
    return bearer("user-2")
