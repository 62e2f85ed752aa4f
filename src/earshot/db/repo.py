"""Repository pattern for database operations.

Encapsulates all SQLAlchemy queries, keeping domain logic pure.
Returns domain models (not SQLAlchemy entities) to external callers.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlalchemy.orm import Session

from earshot.db.schema import (
    Answer,
    CandidateFile,
    ListeningDevice,
    QualityOption,
    ResultSnapshot,
    SourceFile,
    StreamToken,
    SurveyConfig,
)
from earshot.models.domain import (
    AnswerEntity,
    CandidateEntity,
    DeviceEntity,
    QualityOptionEntity,
    SnapshotEntity,
    SourceEntity,
    StreamTokenEntity,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session as DbSession
else:
    DbSession = Session

# Re-export for external use
__all__ = ["DbSession"]

_SNAPSHOT_FIELDS = tuple(f.name for f in fields(SnapshotEntity))


# ============================================================================
# Converters: SQLAlchemy -> Domain
# ============================================================================


def _source_to_entity(source: SourceFile) -> SourceEntity:
    """Convert SQLAlchemy SourceFile to domain entity."""
    return SourceEntity(
        source_id=source.source_id,
        title=source.title,
        duration_ms=source.duration_ms,
        storage_key=source.storage_key,
        artist=source.artist,
        stream_url=source.stream_url,
        genre=source.genre,
        genre_secondary=source.genre_secondary,
        approved_at=source.approved_at,
    )


def _candidate_to_entity(candidate: CandidateFile) -> CandidateEntity:
    """Convert SQLAlchemy CandidateFile to domain entity."""
    return CandidateEntity(
        candidate_id=candidate.candidate_id,
        source_id=candidate.source_id,
        codec=candidate.codec,
        bitrate=candidate.bitrate,
        storage_key=candidate.storage_key,
    )


def _quality_option_to_entity(option: QualityOption) -> QualityOptionEntity:
    """Convert SQLAlchemy QualityOption to domain entity."""
    return QualityOptionEntity(codec=option.codec, bitrate=option.bitrate, enabled=option.enabled)


def _device_to_entity(device: ListeningDevice) -> DeviceEntity:
    """Convert SQLAlchemy ListeningDevice to domain entity."""
    return DeviceEntity(
        device_id=device.device_id,
        device_type=device.device_type,
        connection_type=device.connection_type,
        brand=device.brand,
        model=device.model,
        price_tier=device.price_tier,
        approved_at=device.approved_at,
    )


def _token_to_entity(token: StreamToken) -> StreamTokenEntity:
    """Convert SQLAlchemy StreamToken to domain entity."""
    return StreamTokenEntity(
        token=token.token,
        candidate_id=token.candidate_id,
        expires_at=token.expires_at,
        kind=token.kind,
        round_id=token.round_id,
    )


def _answer_to_entity(answer: Answer) -> AnswerEntity:
    """Convert SQLAlchemy Answer to domain entity."""
    return AnswerEntity(
        answer_id=answer.answer_id,
        device_id=answer.device_id,
        candidate_a_id=answer.candidate_a_id,
        candidate_b_id=answer.candidate_b_id,
        selected=answer.selected,
        pairing_type=answer.pairing_type,
        transition_mode=answer.transition_mode,
        start_time_ms=answer.start_time_ms,
        segment_duration_ms=answer.segment_duration_ms,
        response_time_ms=answer.response_time_ms,
        session_id=answer.session_id,
        created_at=answer.created_at,
    )


def _snapshot_to_entity(snapshot: ResultSnapshot) -> SnapshotEntity:
    """Convert SQLAlchemy ResultSnapshot to domain entity."""
    return SnapshotEntity(**{name: getattr(snapshot, name) for name in _SNAPSHOT_FIELDS})


# ============================================================================
# Catalog Repository
# ============================================================================


def get_approved_sources(session: DbSession) -> list[SourceEntity]:
    """Get all approved source files, ordered by ID."""
    sources = (
        session.query(SourceFile)
        .filter(SourceFile.approved_at.is_not(None))
        .order_by(SourceFile.source_id)
        .all()
    )
    return [_source_to_entity(s) for s in sources]


def get_source(session: DbSession, source_id: str) -> SourceEntity | None:
    """Get source file by ID."""
    source = session.query(SourceFile).filter(SourceFile.source_id == source_id).first()
    return _source_to_entity(source) if source else None


def get_enabled_quality_options(session: DbSession) -> list[QualityOptionEntity]:
    """Get all enabled encoding configurations."""
    options = session.query(QualityOption).filter(QualityOption.enabled.is_(True)).all()
    return [_quality_option_to_entity(o) for o in options]


def get_candidates_for_source(session: DbSession, source_id: str) -> list[CandidateEntity]:
    """Get all encoded renditions of a source, ordered by (codec, bitrate)."""
    candidates = (
        session.query(CandidateFile)
        .filter(CandidateFile.source_id == source_id)
        .order_by(CandidateFile.codec, CandidateFile.bitrate)
        .all()
    )
    return [_candidate_to_entity(c) for c in candidates]


def get_candidate(session: DbSession, candidate_id: str) -> CandidateEntity | None:
    """Get candidate file by ID."""
    candidate = (
        session.query(CandidateFile).filter(CandidateFile.candidate_id == candidate_id).first()
    )
    return _candidate_to_entity(candidate) if candidate else None


def find_candidate(
    session: DbSession, source_id: str, codec: str, bitrate: int
) -> CandidateEntity | None:
    """Get the rendition of a source with a specific encoding."""
    candidate = (
        session.query(CandidateFile)
        .filter(
            CandidateFile.source_id == source_id,
            CandidateFile.codec == codec,
            CandidateFile.bitrate == bitrate,
        )
        .first()
    )
    return _candidate_to_entity(candidate) if candidate else None


def get_device(session: DbSession, device_id: str) -> DeviceEntity | None:
    """Get listening device by ID."""
    device = session.query(ListeningDevice).filter(ListeningDevice.device_id == device_id).first()
    return _device_to_entity(device) if device else None


# ============================================================================
# Stream Token Repository
# ============================================================================


def create_stream_token(session: DbSession, entity: StreamTokenEntity) -> StreamTokenEntity:
    """Create a new stream token."""
    session.add(
        StreamToken(
            token=entity.token,
            candidate_id=entity.candidate_id,
            expires_at=entity.expires_at,
            kind=entity.kind,
            round_id=entity.round_id,
        )
    )
    return entity


def get_stream_token(session: DbSession, token: str) -> StreamTokenEntity | None:
    """Get stream token by value."""
    row = session.query(StreamToken).filter(StreamToken.token == token).first()
    return _token_to_entity(row) if row else None


def delete_stream_token(session: DbSession, token: str) -> bool:
    """Delete a stream token. Returns False if it was already gone."""
    result = session.execute(delete(StreamToken).where(StreamToken.token == token))
    return result.rowcount > 0


def delete_round_tokens(session: DbSession, round_id: str) -> int:
    """Delete every token issued for a round. Returns number deleted."""
    result = session.execute(delete(StreamToken).where(StreamToken.round_id == round_id))
    return result.rowcount


def delete_expired_stream_tokens(session: DbSession, now: datetime) -> int:
    """Delete all tokens past their expiry. Returns number deleted."""
    result = session.execute(delete(StreamToken).where(StreamToken.expires_at < now))
    return result.rowcount


# ============================================================================
# Answer Repository
# ============================================================================


def create_answer(session: DbSession, entity: AnswerEntity) -> AnswerEntity:
    """Append a new answer."""
    answer = Answer(
        answer_id=entity.answer_id,
        device_id=entity.device_id,
        candidate_a_id=entity.candidate_a_id,
        candidate_b_id=entity.candidate_b_id,
        selected=entity.selected,
        pairing_type=entity.pairing_type,
        transition_mode=entity.transition_mode,
        start_time_ms=entity.start_time_ms,
        segment_duration_ms=entity.segment_duration_ms,
        response_time_ms=entity.response_time_ms,
        session_id=entity.session_id,
    )
    if entity.created_at is not None:
        answer.created_at = entity.created_at
    session.add(answer)
    return entity


def get_all_answers(session: DbSession) -> list[AnswerEntity]:
    """Get the full answer history in insertion order."""
    answers = session.query(Answer).order_by(Answer.created_at).all()
    return [_answer_to_entity(a) for a in answers]


# ============================================================================
# Survey Config Repository
# ============================================================================


def get_config_value(session: DbSession, key: str) -> str | None:
    """Get raw survey config value by key."""
    row = session.query(SurveyConfig).filter(SurveyConfig.key == key).first()
    return row.value if row else None


def set_config_value(session: DbSession, key: str, value: str) -> None:
    """Insert or update a survey config value."""
    session.merge(SurveyConfig(key=key, value=value))


# ============================================================================
# Snapshot Repository
# ============================================================================


def create_snapshot(session: DbSession, entity: SnapshotEntity) -> SnapshotEntity:
    """Create a new result snapshot."""
    session.add(ResultSnapshot(**{name: getattr(entity, name) for name in _SNAPSHOT_FIELDS}))
    return entity


def get_latest_snapshot(session: DbSession) -> SnapshotEntity | None:
    """Get the most recently created snapshot."""
    snapshot = session.query(ResultSnapshot).order_by(ResultSnapshot.created_at.desc()).first()
    return _snapshot_to_entity(snapshot) if snapshot else None


def get_expired_snapshot_ids(session: DbSession, now: datetime) -> list[str]:
    """Get IDs of snapshots past expiry, newest first."""
    rows = (
        session.query(ResultSnapshot.snapshot_id)
        .filter(ResultSnapshot.expires_at < now)
        .order_by(ResultSnapshot.created_at.desc())
        .all()
    )
    return [r[0] for r in rows]


def delete_snapshot(session: DbSession, snapshot_id: str) -> bool:
    """Delete a snapshot. Returns False if it was already gone."""
    result = session.execute(
        delete(ResultSnapshot).where(ResultSnapshot.snapshot_id == snapshot_id)
    )
    return result.rowcount > 0


# ============================================================================
# Batch Operations
# ============================================================================


def commit(session: DbSession) -> None:
    """Commit current transaction."""
    session.commit()


def rollback(session: DbSession) -> None:
    """Roll back current transaction."""
    session.rollback()
