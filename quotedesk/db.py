from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from quotedesk.config import settings
from quotedesk.models import Base


logger = logging.getLogger(__name__)


class DatabaseHandle:
    """Engine and session factory created once, on first use.

    Concurrent callers that arrive while initialization is in flight block on
    the condition until it finishes. A failed attempt leaves the handle
    uninitialized so the next caller retries.
    """

    def __init__(
        self,
        name: str,
        url_factory: Callable[[], str],
        *,
        metadata=None,
        engine_factory: Callable[[str], Engine] | None = None,
    ) -> None:
        self.name = name
        self._url_factory = url_factory
        self._metadata = metadata
        self._engine_factory = engine_factory or _default_engine
        self._condition = threading.Condition()
        self._initializing = False
        self._engine: Engine | None = None
        self._sessionmaker: sessionmaker[Session] | None = None

    @property
    def initialized(self) -> bool:
        return self._sessionmaker is not None

    def ensure_initialized(self) -> None:
        if self._sessionmaker is not None:
            return

        with self._condition:
            while self._initializing:
                self._condition.wait()
            if self._sessionmaker is not None:
                return
            self._initializing = True

        engine = None
        try:
            engine = self._engine_factory(self._url_factory())
            if self._metadata is not None:
                self._metadata.create_all(engine)
            factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        except Exception:
            logger.exception('Database %s failed to initialize', self.name)
            if engine is not None:
                engine.dispose()
            with self._condition:
                self._initializing = False
                self._condition.notify_all()
            raise

        with self._condition:
            self._engine = engine
            self._sessionmaker = factory
            self._initializing = False
            self._condition.notify_all()
        logger.info('Database %s initialized', self.name)

    @property
    def engine(self) -> Engine:
        self.ensure_initialized()
        return self._engine

    def session(self) -> Session:
        self.ensure_initialized()
        return self._sessionmaker()

    def dispose(self) -> None:
        with self._condition:
            if self._engine is not None:
                self._engine.dispose()
            self._engine = None
            self._sessionmaker = None

    def configure(
        self,
        *,
        url_factory: Callable[[], str] | None = None,
        engine_factory: Callable[[str], Engine] | None = None,
    ) -> None:
        """Point the handle at another database; takes effect on next use."""
        self.dispose()
        if url_factory is not None:
            self._url_factory = url_factory
        if engine_factory is not None:
            self._engine_factory = engine_factory


def _default_engine(url: str) -> Engine:
    if url.startswith('sqlite'):
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True)


internal_db = DatabaseHandle('internal', lambda: settings.database_url_normalized, metadata=Base.metadata)
# The legacy directory is owned elsewhere; never emit DDL against it.
legacy_db = DatabaseHandle('legacy', lambda: settings.legacy_database_url_normalized)


def SessionLocal() -> Session:
    return internal_db.session()


def get_db() -> Iterator[Session]:
    db = internal_db.session()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_legacy_db() -> Iterator[Session]:
    db = legacy_db.session()
    try:
        yield db
    finally:
        db.close()
