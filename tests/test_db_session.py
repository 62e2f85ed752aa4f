"""Tests for engine and session management."""

from pathlib import Path

import pytest

from earshot.db import session as db_session
from earshot.db.schema import SurveyConfig
from earshot.db.session import (
    DEFAULT_DB_PATH,
    dispose_engines,
    get_db_session,
    get_engine,
    init_db,
    resolve_db_path,
)


@pytest.fixture(autouse=True)
def fresh_engines():
    dispose_engines()
    yield
    dispose_engines()


class TestResolveDbPath:
    """Explicit path, then environment, then default."""

    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("EARSHOT_DB_PATH", str(tmp_path / "env.db"))
        assert resolve_db_path(tmp_path / "arg.db") == tmp_path / "arg.db"

    def test_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("EARSHOT_DB_PATH", str(tmp_path / "env.db"))
        assert resolve_db_path() == tmp_path / "env.db"

    def test_default(self, monkeypatch):
        monkeypatch.delenv("EARSHOT_DB_PATH", raising=False)
        assert resolve_db_path() == DEFAULT_DB_PATH

    def test_accepts_strings(self, tmp_path):
        assert resolve_db_path(str(tmp_path / "x.db")) == Path(tmp_path / "x.db")


class TestEngineCache:
    """One engine per database file."""

    def test_same_path_same_engine(self, tmp_path):
        db_path = tmp_path / "nested" / "earshot.db"
        engine = get_engine(db_path)

        assert get_engine(str(db_path)) is engine
        assert db_path.parent.is_dir()

    def test_dispose_forgets_engines(self, tmp_path):
        db_path = tmp_path / "earshot.db"
        engine = get_engine(db_path)
        dispose_engines()

        assert db_session._databases == {}
        assert get_engine(db_path) is not engine


class TestGetDbSession:
    """Commit on success, rollback on error."""

    def test_commits(self, tmp_path):
        db_path = tmp_path / "earshot.db"
        init_db(db_path)
        with get_db_session(db_path) as session:
            session.add(SurveyConfig(key="segment_duration_ms", value="15000"))

        with get_db_session(db_path) as session:
            assert session.get(SurveyConfig, "segment_duration_ms").value == "15000"

    def test_rolls_back_on_error(self, tmp_path):
        db_path = tmp_path / "earshot.db"
        init_db(db_path)
        with pytest.raises(RuntimeError):
            with get_db_session(db_path) as session:
                session.add(SurveyConfig(key="segment_duration_ms", value="15000"))
                session.flush()
                raise RuntimeError("boom")

        with get_db_session(db_path) as session:
            assert session.get(SurveyConfig, "segment_duration_ms") is None
