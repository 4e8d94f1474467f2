import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine
from sqlalchemy import create_engine
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

# Create Base class
Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):  # noqa: ARG001 – listener signature
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(db_url: str, **kwargs) -> Engine:
    """Create a SQLAlchemy engine with the given URL and options.

    Args:
        db_url: Database connection URL
        **kwargs: Additional arguments for create_engine

    Returns:
        A SQLAlchemy Engine instance
    """
    connect_args = kwargs.pop("connect_args", {})
    is_sqlite = db_url.startswith("sqlite")
    if is_sqlite:
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
    else:
        kwargs.setdefault("pool_pre_ping", True)

    engine = create_engine(db_url, connect_args=connect_args, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def make_sessionmaker(engine: Engine) -> sessionmaker:
    """Create a sessionmaker bound to the given engine.

    ``expire_on_commit=False`` keeps row attributes readable after the
    ``db_session`` block commits, so stores can convert rows to records
    after the transaction ends.
    """
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@contextmanager
def db_session(session_factory: sessionmaker) -> Iterator[Session]:
    """Context manager for database sessions.

    Commits on success, rolls back on error and always closes the session.

    Usage:
        with db_session(factory) as db:
            result = crud.get_chat(db, user_id, chat_id)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database session error: {e}")
        raise
    except Exception:
        # Domain errors (not found, validation) are expected; just undo the work.
        session.rollback()
        raise
    finally:
        session.close()


def initialize_database(engine: Engine) -> None:
    """Create all tables registered on :data:`Base`."""

    # Registers the mapped classes on Base.metadata
    from chatsync.models import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


__all__ = ["Base", "make_engine", "make_sessionmaker", "db_session", "initialize_database"]
