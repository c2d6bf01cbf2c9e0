import argparse
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

from studio_api.database.connection import get_database_url
from studio_api.database.migration_runner import upgrade_head
from studio_api.database.tenant_connection import get_tenant_database_url


def resolve_targets(tenants: Optional[List[str]]) -> List[tuple]:
    """``(lock_name, url)`` pairs: the default database, or each named tenant."""
    if not tenants:
        return [("studio-db", get_database_url())]
    out = []
    for t in tenants:
        name = str(t).strip().lower()
        url = get_tenant_database_url(name)
        if not url:
            raise SystemExit("TENANT_DATABASE_URL_TEMPLATE is not configured")
        out.append((f"tenant:{name}", url))
    return out


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="studio-migrate")
    parser.add_argument("--tenant", action="append", default=None, help="tenant name; repeatable")
    parser.add_argument("--fail-fast", action="store_true")
    parser.add_argument("--lock-timeout-seconds", type=int, default=120)
    args = parser.parse_args(argv)

    try:
        targets = resolve_targets(args.tenant)
    except ValueError as e:
        raise SystemExit(f"Invalid tenant: {e}")

    failed: List[str] = []
    for lock_name, url in targets:
        try:
            upgrade_head(
                sqlalchemy_url=url,
                lock_name=lock_name,
                lock_timeout_seconds=int(args.lock_timeout_seconds),
            )
        except Exception as e:
            failed.append(f"{lock_name}: {e}")
            if args.fail_fast:
                break

    if failed:
        msg = "\n".join(failed)
        raise SystemExit(f"Migrations failed ({len(failed)}/{len(targets)}):\n{msg}")


if __name__ == "__main__":
    main()
