"""Scheduled snapshot job.

Run periodically (cron or any scheduler). Each invocation purges expired
stream tokens, then writes one analytics snapshot. A failed run writes
nothing; the next run starts from scratch.
"""

from __future__ import annotations

import logging
from pathlib import Path

from earshot.aggregation.snapshot import generate_snapshot
from earshot.db.session import get_db_session, init_db
from earshot.eval.tokens import purge_expired_tokens
from earshot.models.domain import SnapshotEntity, utcnow

logger = logging.getLogger(__name__)


def run_snapshot_job(db_path: Path | None = None) -> SnapshotEntity:
    """Open a managed session and aggregate the answer history.

    Args:
        db_path: Optional path to database file.

    Returns:
        The snapshot that was written.
    """
    init_db(db_path)
    now = utcnow()

    with get_db_session(db_path) as session:
        purge_expired_tokens(session, now=now)
        snapshot = generate_snapshot(session, now=now)

    logger.info(f"Snapshot job finished: {snapshot.total_responses} responses")
    return snapshot
