"""
Database setup tests.

Verifies:
- Created tables carry the index and foreign key names the migration uses
- Each engine gets lock-wait options matching its own database URL
"""

from flask import Flask
from sqlalchemy import inspect

from branchpos import _configure_engines
from branchpos.config import Config
from branchpos.extensions import db


class TestSchemaNames:

    def test_column_indexes_are_named(self, app):
        inspector = inspect(db.engines[None])

        indexes = {index["name"]: index for index in inspector.get_indexes("branches")}
        assert set(indexes) == {"ix_branches_code", "ix_branches_is_active"}
        assert indexes["ix_branches_code"]["unique"]

        names = {index["name"] for index in inspector.get_indexes("session_tokens")}
        assert "ix_session_tokens_token_hash" in names

    def test_branch_bind_indexes_are_named(self, app):
        inspector = inspect(db.engines["branch"])

        names = {index["name"] for index in inspector.get_indexes("tables")}
        assert {"ix_tables_branch_id", "ix_tables_zone_id", "ix_tables_status"} <= names

    def test_foreign_keys_are_named(self, app):
        inspector = inspect(db.engines["branch"])

        assert [fk["name"] for fk in inspector.get_foreign_keys("tables")] == ["fk_tables_zone_id_zones"]


class TestEngineOptions:

    @staticmethod
    def _configured(**config):
        app = Flask(__name__)
        app.config.update(DB_TIMEOUT_SECONDS=5, **config)
        _configure_engines(app)
        return app.config

    def test_sqlite_head_office_with_postgres_branch(self):
        config = self._configured(
            SQLALCHEMY_DATABASE_URI="sqlite:///head_office.sqlite3",
            SQLALCHEMY_BINDS={"branch": "postgresql://pos@branch-db/branch"},
        )

        assert config["SQLALCHEMY_ENGINE_OPTIONS"] == {"connect_args": {"timeout": 5}}
        assert config["SQLALCHEMY_BINDS"]["branch"] == {
            "url": "postgresql://pos@branch-db/branch",
            "pool_pre_ping": True,
            "pool_timeout": 5,
        }

    def test_postgres_head_office_with_sqlite_branch(self):
        config = self._configured(
            SQLALCHEMY_DATABASE_URI="postgresql://pos@ho-db/head_office",
            SQLALCHEMY_BINDS={"branch": "sqlite:///branch.sqlite3"},
        )

        assert config["SQLALCHEMY_ENGINE_OPTIONS"] == {"pool_pre_ping": True, "pool_timeout": 5}
        assert config["SQLALCHEMY_BINDS"]["branch"] == {
            "url": "sqlite:///branch.sqlite3",
            "connect_args": {"timeout": 5},
        }

    def test_explicit_bind_options_win(self):
        config = self._configured(
            SQLALCHEMY_DATABASE_URI="sqlite://",
            SQLALCHEMY_BINDS={"branch": {"url": "postgresql://pos@branch-db/branch", "pool_timeout": 30}},
        )

        assert config["SQLALCHEMY_BINDS"]["branch"]["pool_timeout"] == 30
        assert config["SQLALCHEMY_BINDS"]["branch"]["pool_pre_ping"] is True

    def test_config_class_is_not_mutated(self):
        before = dict(Config.SQLALCHEMY_BINDS)
        self._configured(
            SQLALCHEMY_DATABASE_URI=Config.SQLALCHEMY_DATABASE_URI,
            SQLALCHEMY_BINDS=Config.SQLALCHEMY_BINDS,
        )

        assert Config.SQLALCHEMY_BINDS == before
