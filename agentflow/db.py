"""
Database wiring
Engine creation and schema bootstrap shared by the API, the tests and Alembic.
"""

from sqlalchemy import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from . import models  # noqa: F401  (registra las tablas en SQLModel.metadata)


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Build an engine for ``database_url``.

    SQLite connections are shared with TestClient/worker threads, so
    ``check_same_thread`` is disabled; an in-memory SQLite database keeps ONE
    live connection (StaticPool) or every new connection would see an empty DB.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    kwargs = {"connect_args": {"check_same_thread": False}, "echo": echo}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


def create_schema(engine: Engine) -> None:
    """Create all database tables"""
    SQLModel.metadata.create_all(engine)
