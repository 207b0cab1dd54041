"""Tests for app.db module."""

from sqlalchemy import inspect

from app.db import get_database_url, init_db


class TestInitDb:
    """Tests for database initialization."""

    def test_creates_database_file(self, temp_db):
        """init_db should create the database file."""
        db_path, _, _ = temp_db
        assert db_path.exists()

    def test_creates_all_tables(self, temp_db):
        """init_db should create all defined tables."""
        _, engine, _ = temp_db

        tables = inspect(engine).get_table_names()

        assert "generation_jobs" in tables
        assert "job_components" in tables

    def test_component_unique_constraint(self, temp_db):
        """job_components should be unique per (job_id, component)."""
        _, engine, _ = temp_db

        constraints = inspect(engine).get_unique_constraints("job_components")
        columns = [tuple(c["column_names"]) for c in constraints]
        assert ("job_id", "component") in columns

    def test_idempotent(self, temp_db):
        """init_db should be safe to call multiple times."""
        db_path, _, _ = temp_db

        engine2, _ = init_db(db_path)

        tables = inspect(engine2).get_table_names()
        assert "generation_jobs" in tables
        engine2.dispose()


def test_database_url_uses_override():
    assert get_database_url("/tmp/x.db") == "sqlite:////tmp/x.db"
