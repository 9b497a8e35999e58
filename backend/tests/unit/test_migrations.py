"""Tests for the Alembic migration history."""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect

import models  # noqa: F401
from database import Base

BACKEND_DIR = Path(__file__).resolve().parents[2]


@pytest.fixture
def alembic_config(tmp_path):
    config = Config()
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{tmp_path / 'migrated.db'}")
    return config


@pytest.fixture
def migrated_engine(alembic_config):
    command.upgrade(alembic_config, "head")
    engine = create_engine(alembic_config.get_main_option("sqlalchemy.url"))
    yield engine
    engine.dispose()


def test_single_head(alembic_config):
    assert len(ScriptDirectory.from_config(alembic_config).get_heads()) == 1


def test_upgrade_creates_every_model_table(migrated_engine):
    tables = set(inspect(migrated_engine).get_table_names())

    assert set(Base.metadata.tables) <= tables
    assert tables - set(Base.metadata.tables) == {"alembic_version"}


def test_columns_match_models(migrated_engine):
    inspector = inspect(migrated_engine)

    for table in Base.metadata.sorted_tables:
        migrated = {c["name"]: c for c in inspector.get_columns(table.name)}
        assert set(migrated) == set(table.columns.keys()), table.name
        for column in table.columns:
            assert migrated[column.name]["nullable"] == column.nullable, (
                f"{table.name}.{column.name}"
            )


def test_indexes_match_models(migrated_engine):
    inspector = inspect(migrated_engine)

    for table in Base.metadata.sorted_tables:
        migrated = {i["name"]: bool(i["unique"]) for i in inspector.get_indexes(table.name)}
        expected = {i.name: bool(i.unique) for i in table.indexes}
        assert migrated == expected, table.name


def test_named_unique_constraints_exist(migrated_engine):
    inspector = inspect(migrated_engine)

    accounts = {u["name"] for u in inspector.get_unique_constraints("bank_accounts")}
    deleted = {u["name"] for u in inspector.get_unique_constraints("deleted_plaid_transactions")}

    assert "uix_item_plaid_account" in accounts
    assert "uix_deleted_owner_plaid_txn" in deleted


def test_downgrade_to_base(alembic_config, migrated_engine):
    command.downgrade(alembic_config, "base")

    assert set(inspect(migrated_engine).get_table_names()) == {"alembic_version"}
