"""Shared pytest fixtures for earshot tests."""

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from earshot.db.schema import (
    Answer,
    Base,
    CandidateFile,
    ListeningDevice,
    QualityOption,
    SourceFile,
)

NOW = datetime(2025, 6, 1, 12, 0, 0)


class ScriptedRandom:
    """Deterministic stand-in for random.Random.

    ``random()`` pops from ``draws``; ``choice()`` pops an index from
    ``picks`` (defaulting to the first element once exhausted).
    """

    def __init__(self, draws=None, picks=None):
        self.draws = list(draws or [])
        self.picks = list(picks or [])
        self.choices_seen = []

    def random(self):
        return self.draws.pop(0) if self.draws else 0.0

    def choice(self, seq):
        self.choices_seen.append(list(seq))
        index = self.picks.pop(0) if self.picks else 0
        return seq[index]


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


def add_source(session, source_id, *, duration_ms=60_000, genre=None, approved=True, title=None):
    session.add(
        SourceFile(
            source_id=source_id,
            storage_key=f"sources/{source_id}.flac",
            title=title or f"Track {source_id}",
            artist="Test Artist",
            genre=genre,
            duration_ms=duration_ms,
            approved_at=NOW if approved else None,
        )
    )


def add_candidate(session, source_id, codec, bitrate, candidate_id=None):
    candidate_id = candidate_id or f"{source_id}-{codec}_{bitrate}"
    session.add(
        CandidateFile(
            candidate_id=candidate_id,
            source_id=source_id,
            codec=codec,
            bitrate=bitrate,
            storage_key=f"candidates/{candidate_id}",
        )
    )
    return candidate_id


def add_options(session, *encodings, enabled=True):
    for codec, bitrate in encodings:
        session.add(QualityOption(codec=codec, bitrate=bitrate, enabled=enabled))


def add_device(session, device_id="dev-1", *, device_type="headphones", price_tier="mid"):
    session.add(
        ListeningDevice(
            device_id=device_id,
            device_type=device_type,
            connection_type="wired",
            brand="Acme",
            model="Studio",
            price_tier=price_tier,
            approved_at=NOW,
        )
    )
    return device_id


def add_answer(
    session,
    answer_id,
    candidate_a_id,
    candidate_b_id,
    selected,
    *,
    device_id="dev-1",
    pairing_type="same_source",
    transition_mode="gapless",
    response_time_ms=None,
    created_at=NOW,
):
    session.add(
        Answer(
            answer_id=answer_id,
            device_id=device_id,
            candidate_a_id=candidate_a_id,
            candidate_b_id=candidate_b_id,
            selected=selected,
            pairing_type=pairing_type,
            transition_mode=transition_mode,
            start_time_ms=0,
            segment_duration_ms=12_000,
            response_time_ms=response_time_ms,
            created_at=created_at,
        )
    )


def seed_catalog(session):
    """Two approved sources with flac/opus/mp3 renditions and one device.

    s1 also has the opus_256 preview rendition.
    """
    add_source(session, "s1", duration_ms=60_000, genre="Rock")
    add_source(session, "s2", duration_ms=30_000, genre="jazz")
    add_options(session, ("flac", 0), ("opus", 128), ("opus", 256), ("mp3", 128))
    for codec, bitrate in (("flac", 0), ("opus", 128), ("opus", 256), ("mp3", 128)):
        add_candidate(session, "s1", codec, bitrate)
    for codec, bitrate in (("flac", 0), ("mp3", 128)):
        add_candidate(session, "s2", codec, bitrate)
    add_device(session)
    session.commit()


@pytest.fixture
def catalog(session):
    seed_catalog(session)
    return session


def create_test_app_and_client():
    """Create app with test database and return (client, engine)."""
    from fastapi.testclient import TestClient
    from sqlalchemy.orm import Session
    from sqlalchemy.pool import StaticPool

    from earshot.api.app import create_app, get_db_session

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    app = create_app()

    def override_get_db():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    client = TestClient(app)

    return client, engine
