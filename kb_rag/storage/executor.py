"""
Query Executor - SQLAlchemy engine and transaction management

Wraps a SQLAlchemy Engine behind two operations: read-only statement
execution and a scoped transaction. SQLAlchemy errors are re-raised as
StorageError so callers only see the KB RAG error family.

Dependencies: sqlalchemy, kb_rag.config
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from kb_rag.config import DatabaseConfig
from kb_rag.exceptions import StorageError

logger = logging.getLogger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    parsed = make_url(url)
    return parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:")


def create_db_engine(config: DatabaseConfig) -> Engine:
    """
    Create SQLAlchemy engine with connection health checks

    pool_pre_ping=True verifies connections before use so a stale MySQL
    connection is replaced instead of failing the first query.
    In-memory SQLite URLs get a StaticPool so every checkout sees the same
    database.

    Raises:
        StorageError: If the URL is invalid or the driver is not installed
    """
    try:
        if _is_memory_sqlite(config.url):
            return create_engine(
                config.url,
                echo=config.echo,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_engine(
            config.url,
            echo=config.echo,
            pool_size=config.pool_size,
            pool_pre_ping=True,
        )
    except (SQLAlchemyError, ImportError) as e:
        raise StorageError(f"Could not create database engine: {e}") from e


class QueryExecutor:
    """Parameterized read/write access to the knowledge base database"""

    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "QueryExecutor":
        return cls(create_db_engine(config))

    def fetch_all(self, statement) -> List[Mapping[str, Any]]:
        """Run a read statement on its own connection and return row mappings"""
        try:
            with self.engine.connect() as conn:
                return list(conn.execute(statement).mappings())
        except SQLAlchemyError as e:
            raise StorageError(f"Query failed: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """
        Scoped transaction

        Commits when the block exits normally; rolls back and re-raises on any
        exception. SQLAlchemy errors surface as StorageError, everything else
        propagates unchanged.

        Usage:
            with executor.transaction() as conn:
                conn.execute(delete(...))
                conn.execute(insert(...), rows)
        """
        try:
            with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as e:
            logger.error(f"Transaction rolled back: {e}")
            raise StorageError(f"Transaction failed: {e}") from e

    def dispose(self) -> None:
        self.engine.dispose()
