#!/usr/bin/env python3
"""SafeReport ops CLI.

Usage:
  python scripts/safereport_cli.py init             # Create tables + seed privileged accounts
  python scripts/safereport_cli.py token <user-id>  # Print an access token for an existing user
  python scripts/safereport_cli.py stats            # Print dashboard counts
"""
import asyncio
import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _durable_store():
    from safereport.db.engine import async_session
    from safereport.store.sql import SqlStore
    return SqlStore(async_session)


async def cmd_init(args):
    from safereport.db.engine import engine
    from safereport.db.tables import Base
    from safereport.store.seed import seed_privileged_accounts

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    count = await seed_privileged_accounts(_durable_store())
    await engine.dispose()
    print(f"Tables ready, {count} privileged accounts checked")


async def cmd_token(args):
    from safereport.auth import create_access_token
    from safereport.db.engine import engine

    if not args:
        print("token needs a user id")
        sys.exit(1)
    user = await _durable_store().get_user(args[0])
    await engine.dispose()
    if user is None:
        print(f"No user {args[0]}")
        sys.exit(1)
    print(create_access_token(user)["access_token"])


async def cmd_stats(args):
    from safereport.db.engine import engine
    from safereport.models import utcnow

    stats = await _durable_store().stats(utcnow() - timedelta(hours=24))
    await engine.dispose()
    print(f"  Users:            {stats.total_users:>6}")
    print(f"  Reports:          {stats.total_reports:>6}")
    print(f"    pending:        {stats.pending_reports:>6}")
    print(f"    resolved:       {stats.resolved_reports:>6}")
    print(f"    last 24h:       {stats.recent_reports:>6}")
    print(f"  Active chats:     {stats.active_chats:>6}")


COMMANDS = {
    "init": cmd_init,
    "token": cmd_token,
    "stats": cmd_stats,
}


def main():
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(__doc__)
        sys.exit(1)
    asyncio.run(COMMANDS[sys.argv[1]](sys.argv[2:]))


if __name__ == "__main__":
    main()
