#!/usr/bin/env python3
"""Aggregate all answers into a new analytics snapshot.

Meant to be run from cron (every few minutes is plenty; snapshots
expire after 30 minutes).

Usage:
    python scripts/generate_snapshot.py [--db PATH] [-v]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from earshot.worker.snapshots import run_snapshot_job  # noqa: E402


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Generate an Earshot analytics snapshot")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    snapshot = run_snapshot_job(args.db)
    print(f"Snapshot {snapshot.snapshot_id}: {snapshot.total_responses} responses")
    return 0


if __name__ == "__main__":
    sys.exit(main())
