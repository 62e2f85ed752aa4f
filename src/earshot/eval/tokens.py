"""Ephemeral stream tokens.

A token is an opaque, time-bound handle for one candidate rendition.
The delivery layer streams bytes against it without ever seeing storage
keys. Expiry is checked at the moment of use; consumed tokens are
deleted, so re-use fails the same way an unknown token does.

Tokens come in two kinds. "round" tokens are the A/B pair a listener
answers against; "preview" tokens only stream the opus_256 rendition
shown after a round. Every token minted for one round shares its
``round_id``, so the whole round is invalidated together.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import datetime, timedelta

from earshot.db import repo
from earshot.db.repo import DbSession
from earshot.models.domain import TOKEN_KINDS, CandidateEntity, StreamTokenEntity, utcnow

logger = logging.getLogger(__name__)

ROUND_TOKEN_TTL = timedelta(minutes=10)
PREVIEW_TOKEN_TTL = timedelta(minutes=2)


class StreamTokenError(ValueError):
    """Base error for unusable stream tokens."""


class TokenInvalidError(StreamTokenError):
    """Token is unknown, already consumed, or not part of a submittable round."""


class TokenExpiredError(StreamTokenError):
    """Token exists but is past its expiry."""


def issue_token(
    session: DbSession,
    candidate_id: str,
    ttl: timedelta,
    *,
    kind: str = "round",
    round_id: str | None = None,
    now: datetime | None = None,
) -> str:
    """Mint a token for a candidate. Caller commits."""
    if kind not in TOKEN_KINDS:
        raise ValueError(f"Invalid token kind: {kind}")

    now = now or utcnow()
    token = StreamTokenEntity(
        token=str(uuid.uuid4()),
        candidate_id=candidate_id,
        expires_at=now + ttl,
        kind=kind,
        round_id=round_id,
    )
    repo.create_stream_token(session, token)
    return token.token


def _lookup(
    session: DbSession,
    token: str,
    now: datetime,
) -> tuple[StreamTokenEntity, CandidateEntity]:
    entity = repo.get_stream_token(session, token)
    if entity is None:
        logger.warning(f"Rejected unknown stream token {token[:8]}...")
        raise TokenInvalidError("Stream token invalid")

    if entity.is_expired(now):
        repo.delete_stream_token(session, token)
        repo.commit(session)
        logger.warning(f"Rejected expired stream token {token[:8]}...")
        raise TokenExpiredError("Stream token expired")

    candidate = repo.get_candidate(session, entity.candidate_id)
    if candidate is None:
        raise TokenInvalidError("Stream token points at a missing candidate")
    return entity, candidate


def resolve_token(
    session: DbSession,
    token: str,
    *,
    now: datetime | None = None,
) -> CandidateEntity:
    """Resolve a token of either kind to its candidate.

    Expired tokens are deleted on discovery.

    Raises:
        TokenInvalidError: Unknown/consumed token or dangling candidate.
        TokenExpiredError: Token past expiry.
    """
    _, candidate = _lookup(session, token, now or utcnow())
    return candidate


def resolve_round(
    session: DbSession,
    token_a: str,
    token_b: str,
    *,
    now: datetime | None = None,
) -> tuple[str, CandidateEntity, CandidateEntity]:
    """Resolve the A/B tokens of one round.

    Both tokens must be live "round" tokens issued for the same round.

    Returns:
        (round_id, candidate_a, candidate_b)

    Raises:
        TokenInvalidError: Unknown/consumed token, a preview token, or
            tokens from different rounds.
        TokenExpiredError: Either token past expiry.
    """
    now = now or utcnow()
    entity_a, candidate_a = _lookup(session, token_a, now)
    entity_b, candidate_b = _lookup(session, token_b, now)

    if entity_a.kind != "round" or entity_b.kind != "round":
        logger.warning("Rejected preview token submitted as a round token")
        raise TokenInvalidError("Preview tokens cannot be submitted")
    if entity_a.round_id is None or entity_a.round_id != entity_b.round_id:
        logger.warning("Rejected stream tokens from different rounds")
        raise TokenInvalidError("Stream tokens belong to different rounds")

    return entity_a.round_id, candidate_a, candidate_b


def consume_tokens(session: DbSession, tokens: Iterable[str | None]) -> int:
    """Delete the given tokens. Missing ones are ignored.

    Returns:
        Number of tokens actually deleted. Caller commits.
    """
    consumed = 0
    for token in dict.fromkeys(t for t in tokens if t):
        if repo.delete_stream_token(session, token):
            consumed += 1
    return consumed


def consume_round(session: DbSession, round_id: str) -> int:
    """Delete every remaining token of a round, previews included. Caller commits."""
    return repo.delete_round_tokens(session, round_id)


def purge_expired_tokens(session: DbSession, *, now: datetime | None = None) -> int:
    """Delete every token past expiry."""
    deleted = repo.delete_expired_stream_tokens(session, now or utcnow())
    repo.commit(session)
    if deleted:
        logger.info(f"Purged {deleted} expired stream tokens")
    return deleted
