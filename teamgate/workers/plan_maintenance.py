"""
Plan maintenance worker.

Downgrades teams whose subscription lapsed and re-syncs admin roles after a
plan's feature list changes. Meant to run from cron; each team is handled
in its own transaction so one bad team does not block the rest.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
from datetime import datetime
from typing import Optional, Sequence

from teamgate.core.database import init_engine
from teamgate.core.logging import configure_logging
from teamgate.features.teams.service import expire_subscriptions, sync_plan_teams


logger = logging.getLogger("teamgate")


def _parse_now(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise argparse.ArgumentTypeError("--now must include a UTC offset")
    return parsed


def run(*, plan_slug: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    """Expire lapsed subscriptions, then optionally sync one plan's teams."""
    result = {"expired": expire_subscriptions(now).model_dump()}
    if plan_slug:
        result["synced"] = sync_plan_teams(plan_slug).model_dump()

    failed = len(result["expired"]["failed"]) + len(result.get("synced", {}).get("failed", []))
    logger.info(
        "[plan_maintenance] done",
        extra={"downgraded": len(result["expired"]["synced"]), "failed_teams": failed},
    )
    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Expire lapsed subscriptions and re-sync plan teams.")
    parser.add_argument("--sync-plan", dest="plan_slug", help="Also re-sync admin roles for every team on this plan.")
    parser.add_argument("--now", dest="now", type=_parse_now, help="ISO timestamp to evaluate expiry against.")
    parser.add_argument("--database-url", dest="database_url", default=None)
    args = parser.parse_args(argv)

    configure_logging(os.getenv("ENV", "development"))
    if args.database_url:
        init_engine(args.database_url)

    result = run(plan_slug=args.plan_slug, now=args.now)
    print(json.dumps(result))
    failed = result["expired"]["failed"] or result.get("synced", {}).get("failed")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
