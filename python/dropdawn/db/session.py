"""Sessions for the conversation store.

Route handlers get a session per request from get_db(). The chat stream
outlives its request, so it takes the session factory instead and opens its
own session once the reply is complete. Writes are wrapped in transaction().
"""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from dropdawn.db.engine import get_engine


def create_session_factory(engine: Any = None) -> sessionmaker[Session]:
    """Session factory for `engine`, or for the DATABASE_URL engine when None.

    Objects stay loaded after commit so service functions can return ids and
    timestamps without another round trip.
    """
    return sessionmaker(
        bind=engine if engine is not None else get_engine(),
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


_session_factory: sessionmaker[Session] | None = None


def get_session_factory() -> sessionmaker[Session]:
    """Process-wide session factory, built on first use."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory()
    return _session_factory


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session dependency; closed when the response is sent."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Generator[None, None, None]:
    """Commit the block's writes, or roll them back and re-raise.

        with transaction(db):
            db.add(message)
            conversation.next_seq += 1
    """
    try:
        yield
        db.commit()
    except Exception:
        db.rollback()
        raise
