"""Tests for the Alembic migration scripts.

These checks read the revision graph without a database. Applying the
migrations needs PostgreSQL (pgcrypto, JSONB) and is done with
`alembic upgrade head` from the migrations/ directory.
"""

from pathlib import Path

import pytest
from alembic.config import Config
from alembic.script import ScriptDirectory

from mystery.db.models import Base


def get_migrations_dir() -> Path:
    """Get the path to the migrations directory."""
    # From python/tests/, go up to repo root, then into migrations/
    return Path(__file__).parent.parent.parent / "migrations"


@pytest.fixture(scope="module")
def script_directory() -> ScriptDirectory:
    config = Config(str(get_migrations_dir() / "alembic.ini"))
    config.set_main_option("script_location", str(get_migrations_dir() / "alembic"))
    return ScriptDirectory.from_config(config)


class TestRevisionGraph:
    def test_single_head(self, script_directory: ScriptDirectory):
        assert len(script_directory.get_heads()) == 1

    def test_base_revision_has_no_parent(self, script_directory: ScriptDirectory):
        base = script_directory.get_revision("0001")

        assert base is not None
        assert base.down_revision is None

    def test_every_revision_has_downgrade(self, script_directory: ScriptDirectory):
        for revision in script_directory.walk_revisions():
            assert hasattr(revision.module, "downgrade"), revision.revision


class TestSchemaCoverage:
    def test_migrations_create_every_orm_table(self, script_directory: ScriptDirectory):
        source = "".join(
            Path(revision.path).read_text() for revision in script_directory.walk_revisions()
        )

        for table_name in Base.metadata.tables:
            assert f'"{table_name}"' in source, f"No migration creates {table_name}"
