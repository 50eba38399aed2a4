from __future__ import annotations

import logging

try:
    from sqlalchemy import create_engine
    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import declarative_base, sessionmaker
    from sqlalchemy.pool import StaticPool
    from sqlalchemy.schema import CreateSchema
except ImportError as exc:  # pragma: no cover - dependency guard
    raise RuntimeError(
        "SQLAlchemy must be installed to use the database features "
        "(pip install sqlalchemy)."
    ) from exc

from ..config import get_database_schema, get_database_url

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """
    Explicit data-access handle owning one engine and its session factory.

    The API opens a handle in its lifespan and disposes it at shutdown; the
    CLI opens one per invocation. Models are declared without a schema, and
    the configured namespace is applied through ``schema_translate_map`` so
    the same metadata works on SQLite (no schemas) and PostgreSQL.

    Example:
        ```python
        database = Database.from_url("sqlite+pysqlite:///:memory:")
        database.create_all()
        with database.session_factory() as session:
            ...
        database.dispose()
        ```
    """

    def __init__(self, engine: Engine, schema: str | None = None) -> None:
        self.engine = engine
        self.schema = schema
        self.session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            future=True,
        )

    @classmethod
    def from_url(
        cls,
        database_url: str | None = None,
        *,
        schema: str | None = None,
        echo: bool = False,
    ) -> "Database":
        """
        Build a handle for a database URL (defaults to the configured one).

        In-memory SQLite URLs share a single connection so every session sees
        the same database.
        """
        url = database_url or get_database_url()
        if schema is None:
            schema = get_database_schema(url)

        kwargs: dict = {"echo": echo, "future": True}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in url:
                kwargs["poolclass"] = StaticPool

        engine = create_engine(url, **kwargs)
        if schema:
            engine = engine.execution_options(schema_translate_map={None: schema})
        logger.info("Opened database %s", engine.url.render_as_string(hide_password=True))
        return cls(engine, schema=schema)

    def create_all(self) -> None:
        """
        Import models and create database tables when missing.
        """
        from . import models  # noqa: F401

        if self.schema:
            with self.engine.begin() as conn:
                conn.execute(CreateSchema(self.schema, if_not_exists=True))
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Closed database connections")
