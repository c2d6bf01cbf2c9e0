"""
Backfill ``client_trainer_relationships`` for clients that carry a ``trainer_id``.

    python -m studio_api.cli.repair_client_relationships [--tenant NAME] [--dry-run]
"""

import argparse
import json
import logging
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

from studio_api.database.connection import SessionLocal
from studio_api.database.tenant_connection import tenant_session
from studio_api.services.client_service import ClientService

logger = logging.getLogger(__name__)


def run(*, tenant: Optional[str] = None, dry_run: bool = False) -> dict:
    if tenant:
        with tenant_session(tenant) as session:
            return ClientService(session).repair_relationships(dry_run=dry_run)
    session = SessionLocal()
    try:
        return ClientService(session).repair_relationships(dry_run=dry_run)
    finally:
        session.close()


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="studio-repair-client-relationships")
    parser.add_argument("--tenant", type=str, default=None)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    result = run(tenant=args.tenant, dry_run=bool(args.dry_run))
    logger.info(
        f"Checked {result['checked']} clients: {len(result['created'])} relationships to create, "
        f"{len(result['reactivated'])} to reactivate{' (dry run)' if result['dry_run'] else ''}"
    )
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
