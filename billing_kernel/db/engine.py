"""
Module: billing_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/, or outer layers (create_tables imports
    models so that Base.metadata knows every table).

Invariants enforced:
    - No process-wide engine: a ``Database`` handle is created once at startup
      and passed into every service, orchestrator and selector.
    - PostgreSQL is the production backend; ``SELECT ... FOR UPDATE`` row
      locks require it.  SQLite is accepted for local runs and tests, where
      row locks compile to no-ops.
    - Session isolation level is READ COMMITTED on PostgreSQL, with explicit
      row-level locking where stronger isolation is needed.

Failure modes:
    - OperationalError when the pool cannot hand out a connection within
      pool_timeout seconds.
    - session_scope() re-raises every exception after rolling back.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from billing_kernel.logging_config import get_logger

logger = get_logger("db.engine")


class Database:
    """
    Handle over one engine and its session factory.

    Contract:
        Every logical operation checks out one session for its transactional
        phase via ``session_scope()`` and uses fresh sessions for post-commit
        reads and guarded writes.

    Usage:
        db = Database.from_url("postgresql+psycopg2://billing@localhost/billing")
        with db.session_scope() as session:
            session.add(entity)
            # Commits on successful exit, rolls back on exception
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=engine, expire_on_commit=False
        )

    @classmethod
    def from_url(
        cls,
        database_url: str,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 5,
        pool_pre_ping: bool = True,
        pool_timeout: int = 30,
        pool_recycle: int = 1800,
    ) -> "Database":
        """
        Build a Database from a connection URL.

        Args:
            database_url: SQLAlchemy URL (postgresql+psycopg2://... in production).
            echo: If True, log all SQL statements.
            pool_size: Number of connections to keep in the pool.
            max_overflow: Max connections beyond pool_size.
            pool_pre_ping: If True, test connections before use.
            pool_timeout: Seconds to wait for a pooled connection.
            pool_recycle: Seconds after which a connection is recycled.
        """
        if database_url.startswith("sqlite"):
            kwargs: dict = {"echo": echo}
            if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
                kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
            engine = create_engine(database_url, **kwargs)
            dialect = "sqlite"
        else:
            engine = create_engine(
                database_url,
                echo=echo,
                poolclass=QueuePool,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=pool_pre_ping,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                isolation_level="READ COMMITTED",
            )
            dialect = engine.dialect.name

        logger.info(
            "engine_initialized",
            extra={
                "dialect": dialect,
                "pool_size": pool_size,
                "max_overflow": max_overflow,
                "echo": echo,
            },
        )
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    def session(self) -> Session:
        """Get a new session.  The caller closes it."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Postconditions: On normal exit, session is committed and closed.
            On exception, session is rolled back and closed.  The exception
            is re-raised to the caller.
        """
        session = self.session()
        logger.debug("transaction_started")
        try:
            yield session
            session.commit()
            logger.debug("transaction_committed")
        except Exception:
            session.rollback()
            logger.debug("transaction_rolled_back")
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """Create every table known to the ORM models."""
        from billing_kernel.db.base import Base
        import billing_kernel.models  # noqa: F401  (registers all tables)

        Base.metadata.create_all(self._engine)
        logger.info("tables_created", extra={"tables": len(Base.metadata.tables)})

    def drop_tables(self) -> None:
        """Drop all tables. Use with caution - primarily for testing."""
        from billing_kernel.db.base import Base
        import billing_kernel.models  # noqa: F401

        Base.metadata.drop_all(self._engine)

    def ping(self) -> bool:
        """Health check: True when a trivial statement round-trips."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.warning("database_ping_failed", exc_info=True)
            return False

    def dispose(self) -> None:
        """Release all pooled connections."""
        self._engine.dispose()
