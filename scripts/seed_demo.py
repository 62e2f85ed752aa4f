#!/usr/bin/env python3
"""Seed a demo listening test with simulated answers.

Creates a catalog (sources, encodings, devices), plays simulated
listeners through real rounds, then writes one analytics snapshot so
the stats endpoint has something to show.

Usage:
    python scripts/seed_demo.py [--answers N] [--seed S]

This script:
1. Initializes the demo database
2. Seeds sources, quality options, candidates and devices
3. Simulates listeners answering rounds
4. Generates a snapshot
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from earshot.aggregation.snapshot import generate_snapshot  # noqa: E402
from earshot.db.schema import (  # noqa: E402
    CandidateFile,
    ListeningDevice,
    QualityOption,
    SourceFile,
)
from earshot.db.session import get_db_session, init_db  # noqa: E402
from earshot.eval.answers import AnswerInput, submit_answer  # noqa: E402
from earshot.eval.rounds import Round, next_round  # noqa: E402
from earshot.models.domain import utcnow  # noqa: E402

# Constants
DEMO_DB_PATH = PROJECT_ROOT / "demo.db"

DEMO_SOURCES = [
    ("src-rock", "Feedback Loop", "The Demos", "rock", 214_000),
    ("src-jazz", "Brushes at Midnight", "Trio Placeholder", "jazz", 187_000),
    ("src-classical", "Adagio in Test Minor", "Sample Ensemble", "classical", 302_000),
    ("src-electronic", "Square Wave", "Synthetic", "electronic", 241_000),
]

DEMO_ENCODINGS = [
    ("flac", 0),
    ("opus", 64),
    ("opus", 96),
    ("opus", 128),
    ("opus", 256),
    ("aac", 128),
    ("aac", 256),
    ("mp3", 128),
    ("mp3", 192),
    ("mp3", 320),
]

DEMO_DEVICES = [
    ("dev-earbuds", "headphones", "bluetooth", "Generic", "Buds", "budget"),
    ("dev-studio", "headphones", "wired", "Monitor", "HD-1", "premium"),
    ("dev-bookshelf", "speaker", "wired", "Shelf", "B2", "mid"),
]

# Perceived transparency per encoding, 0-1; lossless is the reference
PERCEIVED_QUALITY = {
    "flac_0": 1.0,
    "opus_64": 0.72,
    "opus_96": 0.86,
    "opus_128": 0.94,
    "opus_256": 0.99,
    "aac_128": 0.9,
    "aac_256": 0.98,
    "mp3_128": 0.8,
    "mp3_192": 0.9,
    "mp3_320": 0.97,
}


def seed_catalog() -> None:
    """Insert sources, encodings, candidates and devices (idempotent)."""
    now = utcnow()
    with get_db_session(DEMO_DB_PATH) as session:
        if session.query(SourceFile).count() > 0:
            print("Catalog already seeded")
            return

        for source_id, title, artist, genre, duration_ms in DEMO_SOURCES:
            session.add(
                SourceFile(
                    source_id=source_id,
                    storage_key=f"sources/{source_id}.flac",
                    title=title,
                    artist=artist,
                    genre=genre,
                    duration_ms=duration_ms,
                    approved_at=now,
                )
            )
            for codec, bitrate in DEMO_ENCODINGS:
                candidate_id = f"{source_id}-{codec}_{bitrate}"
                session.add(
                    CandidateFile(
                        candidate_id=candidate_id,
                        source_id=source_id,
                        codec=codec,
                        bitrate=bitrate,
                        storage_key=f"candidates/{candidate_id}",
                    )
                )
            print(f"  Created source: {title}")

        for codec, bitrate in DEMO_ENCODINGS:
            session.add(QualityOption(codec=codec, bitrate=bitrate, enabled=True))

        for device_id, device_type, connection, brand, model, tier in DEMO_DEVICES:
            session.add(
                ListeningDevice(
                    device_id=device_id,
                    device_type=device_type,
                    connection_type=connection,
                    brand=brand,
                    model=model,
                    price_tier=tier,
                    approved_at=now,
                )
            )

    print("Catalog seeded successfully!")


def simulate_choice(proposed: Round, rng: random.Random) -> str:
    """Simulated listener: hears the difference in proportion to the quality gap."""
    quality_a = PERCEIVED_QUALITY.get(proposed.candidate_a.key, 0.5)
    quality_b = PERCEIVED_QUALITY.get(proposed.candidate_b.key, 0.5)
    gap = abs(quality_a - quality_b)

    if rng.random() > gap * 4:
        return rng.choice(["a", "b", "neither"])
    return "a" if quality_a > quality_b else "b"


def simulate_answers(count: int, seed: int) -> int:
    """Play ``count`` rounds through the real sampler and answer path."""
    rng = random.Random(seed)
    recorded = 0

    with get_db_session(DEMO_DB_PATH) as session:
        for i in range(count):
            proposed = next_round(session, rng=rng)
            if proposed is None:
                print("No round available; is the catalog empty?")
                break

            device_id = rng.choice(DEMO_DEVICES)[0]
            submit_answer(
                session,
                AnswerInput(
                    token_a=proposed.token_a,
                    token_b=proposed.token_b,
                    selected=simulate_choice(proposed, rng),
                    transition_mode=proposed.transition_mode,
                    device_id=device_id,
                    start_time_ms=proposed.start_time_ms,
                    segment_duration_ms=proposed.duration_ms,
                    response_time_ms=int(rng.uniform(1_500, 9_000)),
                    session_id=f"demo-session-{i // 20}",
                ),
            )
            recorded += 1

    return recorded


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed a demo Earshot database")
    parser.add_argument("--answers", type=int, default=500, help="Simulated answers to record")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for the simulation")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING)

    print("=" * 60)
    print("Earshot Demo Seeding Script")
    print("=" * 60)

    print("\n[1/3] Seeding catalog...")
    init_db(DEMO_DB_PATH)
    seed_catalog()

    print(f"\n[2/3] Simulating {args.answers} answers...")
    recorded = simulate_answers(args.answers, args.seed)
    print(f"  Recorded {recorded} answers")

    print("\n[3/3] Generating snapshot...")
    with get_db_session(DEMO_DB_PATH) as session:
        snapshot = generate_snapshot(session)

    print("\n" + "=" * 60)
    print("Demo seeding complete!")
    print(f"Database: {DEMO_DB_PATH}")
    print(f"Snapshot: {snapshot.snapshot_id} ({snapshot.total_responses} responses)")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())
