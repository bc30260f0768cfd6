import os
from typing import Iterable

import pytest
from sqlalchemy import text

from vida_node.database_handler.models import Base
from vida_node.database_handler.session_factory import DatabaseSessionManager


@pytest.fixture
def database_url(tmp_path) -> str:
    # TEST_DATABASE_URL points the suite at a real server, e.g. postgres
    return os.getenv("TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'vida_node.db'}"


@pytest.fixture
def db_manager(database_url) -> Iterable[DatabaseSessionManager]:
    manager = DatabaseSessionManager(database_url)
    Base.metadata.create_all(manager.engine)
    yield manager

    # Clean up: empty the table so a shared server stays reusable
    with manager.engine.connect() as conn:
        if manager.engine.dialect.has_table(conn, "kv_entries"):
            conn.execute(text("DELETE FROM kv_entries"))
            conn.commit()

    manager.dispose()
