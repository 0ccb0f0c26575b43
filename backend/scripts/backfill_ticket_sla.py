"""Apply the SLA cascade and initial deadlines to tickets that have no SLA yet.

Usage examples:

    python scripts/backfill_ticket_sla.py                      # dry run over all active tenants
    python scripts/backfill_ticket_sla.py --execute
    python scripts/backfill_ticket_sla.py --execute --tenant acme
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
sys.path.append(str(BASE_DIR))

from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from sla_engine.core.config import settings  # noqa: E402
from sla_engine.core.exceptions import SLAEngineException  # noqa: E402
from sla_engine.core.logging import setup_logging  # noqa: E402
from sla_engine.db.session import get_provider  # noqa: E402
from sla_engine.services.sla.catalog import backfill_ticket_sla  # noqa: E402
from sla_engine.services.tenants import list_active_tenant_codes  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill SLA definitions and deadlines on existing tickets")
    parser.add_argument("--execute", action="store_true", help="Write changes (default is a dry run)")
    parser.add_argument("--tenant", action="append", default=[], help="Limit to this tenant code (repeatable)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(settings.LOG_LEVEL)
    dry_run = not args.execute
    provider = get_provider()

    try:
        tenant_codes = args.tenant or list_active_tenant_codes(provider)
    except (SLAEngineException, SQLAlchemyError) as exc:
        print(f"Could not list tenants: {exc}")
        provider.dispose_all()
        return 1

    print(f"Mode: {'DRY-RUN' if dry_run else 'EXECUTE'}")
    print(f"Tenants: {len(tenant_codes)}")

    exit_code = 0
    total_candidates = 0
    total_updated = 0
    try:
        for tenant_code in tenant_codes:
            try:
                result = backfill_ticket_sla(tenant_code, dry_run=dry_run, provider=provider)
            except (SLAEngineException, SQLAlchemyError) as exc:
                print(f"  {tenant_code}: ERROR - {exc}")
                exit_code = 1
                continue
            total_candidates += result["candidates"]
            total_updated += result["updated"]
            if dry_run:
                print(f"  {tenant_code}: would update {result['candidates']} tickets")
            else:
                print(
                    f"  {tenant_code}: updated={result['updated']} skipped={result['skipped']} "
                    f"failed={result['failed']} of {result['candidates']}"
                )
    finally:
        provider.dispose_all()

    if dry_run:
        print(f"Total tickets that would be updated: {total_candidates}")
        print("Run with --execute to apply changes.")
    else:
        print(f"Total tickets updated: {total_updated}")
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
