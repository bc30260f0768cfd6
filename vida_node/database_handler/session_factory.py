"""Lightweight session manager shared by the writer and the HTTP stack."""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator

from loguru import logger
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from vida_node.database_handler.models import Base


class DatabaseSessionManager:
    """Minimal helper to create SQLAlchemy sessions."""

    def __init__(self, database_url: str, **engine_kwargs):
        url = make_url(database_url)

        if url.get_backend_name() == "sqlite":
            default_kwargs = dict(connect_args={"check_same_thread": False})
            if url.database in (None, "", ":memory:"):
                # every session must see the same in-memory database
                default_kwargs["poolclass"] = StaticPool
        else:
            pool_size = int(
                engine_kwargs.pop(
                    "pool_size", os.environ.get("DATABASE_POOL_SIZE", 5)
                )
            )
            max_overflow = int(
                engine_kwargs.pop(
                    "max_overflow", os.environ.get("DATABASE_MAX_OVERFLOW", 5)
                )
            )
            default_kwargs = dict(
                pool_pre_ping=True,
                pool_recycle=3600,
                pool_timeout=30,
                pool_size=pool_size,
                max_overflow=max_overflow,
            )
        default_kwargs.update(engine_kwargs)

        self.engine: Engine = create_engine(url, **default_kwargs)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def open_session(self) -> Session:
        return self.SessionLocal()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One unit of work: committed when the block exits cleanly, rolled
        back and re-raised otherwise. The session is always closed."""
        session = self.open_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            logger.debug(f"Rolling back database transaction: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
