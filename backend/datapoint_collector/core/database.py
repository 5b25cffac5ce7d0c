"""
Database configuration and session management
"""
import logging
import re
import time
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from datapoint_collector.core.config import get_settings
from datapoint_collector.core.logging_config import LoggingConfig
from datapoint_collector.core.metrics import (db_connection_pool_size,
                                              db_queries_total,
                                              db_query_duration_seconds)

# Lazy initialization - don't create engine at module level
_engine: Optional[Engine] = None

# Base class for models (can be created immediately)
Base = declarative_base()

_TABLE_PATTERNS = {
    "select": re.compile(r"\bFROM\s+\"?(\w+)", re.IGNORECASE),
    "insert": re.compile(r"\bINTO\s+\"?(\w+)", re.IGNORECASE),
    "update": re.compile(r"^\s*UPDATE\s+\"?(\w+)", re.IGNORECASE),
    "delete": re.compile(r"\bFROM\s+\"?(\w+)", re.IGNORECASE),
}


def _statement_labels(statement: str):
    """Extract (operation, table) metric labels from a SQL statement"""
    words = statement.strip().split()
    operation = words[0].lower() if words else "unknown"
    table = "unknown"
    pattern = _TABLE_PATTERNS.get(operation)
    if pattern:
        match = pattern.search(statement)
        if match:
            table = match.group(1).lower()
    return operation, table


def _update_pool_metrics(engine: Engine):
    pool = engine.pool
    checkedout = getattr(pool, "checkedout", None)
    size = getattr(pool, "size", None)
    if checkedout is None or size is None:
        return
    db_connection_pool_size.labels(state="active").set(checkedout())
    db_connection_pool_size.labels(state="idle").set(max(size() - checkedout(), 0))


def setup_db_metrics(engine: Engine):
    """Setup SQLAlchemy event listeners for database metrics"""

    @event.listens_for(engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        """Record query start time"""
        conn.info.setdefault('query_start_time', []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        """Record query metrics"""
        if conn.info.get('query_start_time'):
            duration = time.perf_counter() - conn.info['query_start_time'].pop()
            operation, table = _statement_labels(statement)
            db_queries_total.labels(operation=operation, table=table).inc()
            db_query_duration_seconds.labels(operation=operation, table=table).observe(duration)

    @event.listens_for(engine, "checkout")
    def receive_checkout(dbapi_conn, connection_record, connection_proxy):
        """Update connection pool metrics on checkout"""
        _update_pool_metrics(engine)

    @event.listens_for(engine, "checkin")
    def receive_checkin(dbapi_conn, connection_record):
        """Update connection pool metrics on checkin"""
        _update_pool_metrics(engine)


def _enable_sqlite_wal(engine: Engine):
    """Switch file-backed SQLite to WAL so open query cursors do not block writers"""

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()


def build_engine(database_url: str, pool_size: int = 10, max_overflow: int = 10, echo: bool = False) -> Engine:
    """Create an engine for the given URL with metrics listeners attached"""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 5}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
    else:
        kwargs = {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_pre_ping": True,
        }
        if database_url.startswith("postgresql"):
            kwargs["connect_args"] = {"connect_timeout": 5}

    engine = create_engine(database_url, echo=echo, **kwargs)
    if database_url.startswith("sqlite") and kwargs.get("poolclass") is not StaticPool:
        _enable_sqlite_wal(engine)
    setup_db_metrics(engine)
    return engine


def get_engine() -> Engine:
    """Get or create database engine (lazy initialization)"""
    global _engine
    if _engine is None:
        settings = get_settings()
        LoggingConfig.configure()

        _engine = build_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=settings.log_sqlalchemy,
        )

        if not settings.log_sqlalchemy:
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return _engine


def create_tables(engine: Optional[Engine] = None):
    """Create all mapped tables that do not exist yet"""
    import datapoint_collector.models  # noqa: F401 - register models on Base

    Base.metadata.create_all(bind=engine or get_engine())


def dispose_engine():
    """Close all pooled connections and forget the engine"""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None
