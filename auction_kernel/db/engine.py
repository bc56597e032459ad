"""
Module: auction_kernel.db.engine
Responsibility: SQLAlchemy engine construction, session factory management,
    and transactional scope utilities for the bid worker.
Architecture position: Kernel > DB.  May import from db/base.py.  Imports
    models only inside create_tables() so Base.metadata is populated.

Invariants enforced:
    - PostgreSQL sessions run at READ COMMITTED, with explicit row-level
      locking (FOR UPDATE) on the auction row wherever bids are applied.
    - Connection pooling with pre-ping so a restarted database does not
      hand out dead connections to the worker loop.
    - One Database object per process, constructed explicitly and passed
      to the services that need it.  There is no module-level engine.

Failure modes:
    - OperationalError / DBAPIError propagate out of session_scope() after
      rollback.  The worker classifies them as transient.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from auction_kernel.logging_config import get_logger

logger = get_logger("db.engine")


class Database:
    """
    Engine + session factory with an explicit lifecycle.

    Contract:
        ``session_scope()`` commits on normal exit, rolls back and re-raises
        on exception, and always closes the session.

    Non-goals:
        - Does NOT own the CMS schema.  ``create_tables()`` exists for tests
          and for the worker-owned tables.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    @classmethod
    def from_url(
        cls,
        database_url: str,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 5,
        pool_pre_ping: bool = True,
        pool_recycle: int = 1800,
    ) -> "Database":
        """
        Build a Database from a connection URL.

        PostgreSQL gets a sized QueuePool at READ COMMITTED.  Other backends
        (SQLite in tests) keep SQLAlchemy's default pool for that dialect.
        """
        url = make_url(database_url)
        kwargs: dict = {"echo": echo, "pool_pre_ping": pool_pre_ping}
        if url.get_backend_name() == "postgresql":
            kwargs.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_recycle=pool_recycle,
                isolation_level="READ COMMITTED",
            )

        engine = create_engine(url, **kwargs)
        logger.info(
            "engine_initialized",
            extra={
                "dialect": engine.dialect.name,
                "database": url.render_as_string(hide_password=True),
                "echo": echo,
            },
        )
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    def session(self) -> Session:
        """Get a new, unscoped session. Caller closes it."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Usage:
            with database.session_scope() as session:
                session.add(entity)
                # Commits on successful exit, rolls back on exception
        """
        session = self._session_factory()
        logger.debug("transaction_started")
        try:
            yield session
            session.commit()
            logger.debug("transaction_committed")
        except Exception:
            session.rollback()
            logger.warning("transaction_rolled_back", exc_info=True)
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """Create every mapped table that does not exist yet."""
        from auction_kernel.db.base import Base
        import auction_kernel.models  # noqa: F401

        Base.metadata.create_all(self._engine)

    def drop_tables(self) -> None:
        """Drop all mapped tables. Use with caution - primarily for testing."""
        from auction_kernel.db.base import Base
        import auction_kernel.models  # noqa: F401

        Base.metadata.drop_all(self._engine)

    def dispose(self) -> None:
        """Release all pooled connections."""
        self._engine.dispose()
        logger.info("engine_disposed")
