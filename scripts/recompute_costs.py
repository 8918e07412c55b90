#!/usr/bin/env python3
"""Repair job: re-derive every task's time and cost totals from its sessions.

Safe to run at any time and as often as needed; totals are recomputed from
source rather than incremented.
"""
from __future__ import annotations

import argparse
import asyncio
import logging

from app.db.mongo import get_mongo_db, close_mongo_client
from app.services.task_engine import recompute_all


async def main(verbose: bool) -> int:
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    db = get_mongo_db()
    try:
        results = await recompute_all(db)
    finally:
        close_mongo_client()
    stale = [r for r in results if not r.cost_updated]
    print(f"Recomputed {len(results)} tasks; {len(stale)} kept a stale cost (company missing or inactive).")
    for r in stale:
        print(f"  - {r.task_id}: {r.total_time_spent} min, cost left at {r.total_cost:.2f}")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(args.verbose)))
