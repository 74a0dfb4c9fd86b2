"""
Tests for database initialization with different database types.
"""

import os
import tempfile

import pytest
from sqlalchemy import inspect, text
from sqlalchemy import create_engine as sa_create_engine

from slacksync.config import DatabaseConfig
from slacksync.database import init_database, create_engine, get_engine, get_session

SYNC_TABLES = {"tenants", "conversations", "slack_users"}


class TestDatabaseInitialization:
    """Test database initialization with different database configurations."""

    def test_sqlite_file_runs_migrations(self):
        """A file-backed SQLite database is migrated with Alembic."""
        with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as tmp_file:
            db_path = tmp_file.name

        try:
            db_url = f"sqlite:///{db_path}"
            engine = sa_create_engine(db_url)

            init_database(engine, db_url)

            tables = set(inspect(engine).get_table_names())
            assert SYNC_TABLES <= tables
            assert "alembic_version" in tables

            with engine.connect() as conn:
                version = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
            assert version == "0001"

            engine.dispose()
        finally:
            if os.path.exists(db_path):
                os.unlink(db_path)

    def test_migrations_are_repeatable(self):
        with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as tmp_file:
            db_path = tmp_file.name

        try:
            db_url = f"sqlite:///{db_path}"
            engine = sa_create_engine(db_url)

            init_database(engine, db_url)
            init_database(engine, db_url)

            assert SYNC_TABLES <= set(inspect(engine).get_table_names())
            engine.dispose()
        finally:
            if os.path.exists(db_path):
                os.unlink(db_path)

    def test_in_memory_creates_tables_directly(self):
        engine, database_url = create_engine(DatabaseConfig(url="sqlite:///:memory:"))

        init_database(engine, database_url)

        tables = set(inspect(engine).get_table_names())
        assert SYNC_TABLES <= tables
        assert "alembic_version" not in tables

    def test_create_engine_registers_engine_for_sessions(self):
        engine, database_url = create_engine(DatabaseConfig(url="sqlite:///:memory:"))

        assert database_url == "sqlite:///:memory:"
        assert get_engine() is engine

        session = next(get_session())
        try:
            assert session.get_bind() is engine
        finally:
            session.close()

    def test_failed_initialization_raises(self, monkeypatch):
        monkeypatch.setenv("DATABASE_INIT_MAX_ATTEMPTS", "1")
        engine = sa_create_engine("sqlite:////nonexistent-dir/slacksync.db")

        with pytest.raises(RuntimeError, match="Database initialization failed"):
            init_database(engine, "sqlite:////nonexistent-dir/slacksync.db")
