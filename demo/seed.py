#!/usr/bin/env python3
"""
Demo seed script — populates the database with sample accounts for demos.

!! NOT FOR PRODUCTION !!
This script creates accounts with known passwords, already email-verified,
and the default RBAC catalogue. It is intended ONLY for local demos and
frontend development.

Usage:
    python demo/seed.py            # create tables, catalogue and accounts
    python demo/seed.py --reset    # delete the SQLite database file and exit

Login credentials after seeding:
    ┌──────────────────────────────┬─────────┬───────────────────┬─────────┐
    │ Email                        │ Type    │ Password          │ Role    │
    ├──────────────────────────────┼─────────┼───────────────────┼─────────┤
    │ admin@identitydemo.com       │ user    │ AdminDemo123!     │ admin   │
    │ audit@identitydemo.com       │ user    │ AuditDemo123!     │ auditor │
    │ alice.chen@example.com       │ user    │ AliceDemo123!     │ -       │
    │ bookings@travelco.example    │ agency  │ AgencyDemo123!    │ -       │
    └──────────────────────────────┴─────────┴───────────────────┴─────────┘
"""

import argparse
import asyncio
import os

from authcore import models  # noqa: F401
from authcore.database import AsyncSessionLocal, Base, engine
from authcore.exceptions import ConflictError
from authcore.models.account import AccountKind
from authcore.services import credential_service, rbac_service

DEMO_ACCOUNTS = [
    {
        "kind": AccountKind.USER,
        "email": "admin@identitydemo.com",
        "password": "AdminDemo123!",
        "profile": {"first_name": "Admin", "last_name": "User"},
        "role": "admin",
    },
    {
        "kind": AccountKind.USER,
        "email": "audit@identitydemo.com",
        "password": "AuditDemo123!",
        "profile": {"first_name": "Audit", "last_name": "User"},
        "role": "auditor",
    },
    {
        "kind": AccountKind.USER,
        "email": "alice.chen@example.com",
        "password": "AliceDemo123!",
        "profile": {"first_name": "Alice", "last_name": "Chen"},
        "role": None,
    },
    {
        "kind": AccountKind.AGENCY,
        "email": "bookings@travelco.example",
        "password": "AgencyDemo123!",
        "profile": {
            "first_name": "Tara",
            "last_name": "Osei",
            "agency_name": "TravelCo",
            "business_type": "tour_operator",
        },
        "role": None,
    },
]


def log(msg: str) -> None:
    print(f"  {msg}")


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("\nCreating RBAC catalogue...")
        await rbac_service.ensure_default_catalogue(db)
        await db.commit()

        print("\nCreating demo accounts...")
        for entry in DEMO_ACCOUNTS:
            try:
                account = await credential_service.register(
                    db,
                    kind=entry["kind"],
                    email=entry["email"],
                    password=entry["password"],
                    profile=entry["profile"],
                )
            except ConflictError:
                log(f"{entry['email']} already exists, skipping")
                continue
            account.email_verified = True
            if entry["role"]:
                await rbac_service.assign_role(db, account.id, account.kind, entry["role"])
            await db.commit()
            log(f"{entry['email']} ({entry['kind'].value})")

    await engine.dispose()

    print("\n========================================")
    print("  SEED COMPLETE — Login Credentials")
    print("========================================")
    print(f"\n  {'Email':<30s} {'Type':<8s} {'Password':<18s} {'Role'}")
    print(f"  {'─' * 30} {'─' * 8} {'─' * 18} {'─' * 7}")
    for entry in DEMO_ACCOUNTS:
        print(f"  {entry['email']:<30s} {entry['kind'].value:<8s} {entry['password']:<18s} {entry['role'] or '-'}")
    print()


def reset_database() -> None:
    """Delete the SQLite database file so the next start recreates it."""
    db_path = os.path.join(os.path.dirname(__file__), "..", "data", "identity.db")
    db_path = os.path.normpath(db_path)

    if os.path.exists(db_path):
        os.remove(db_path)
        print(f"\n  Deleted {db_path}\n")
    else:
        print(f"\n  No database found at {db_path}\n")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

async def main() -> None:
    parser = argparse.ArgumentParser(
        description="Demo seed script — NOT FOR PRODUCTION",
        epilog="Creates the RBAC catalogue and sample user/agency accounts.",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Delete the database file and exit",
    )
    args = parser.parse_args()

    if args.reset:
        reset_database()
        return

    await seed()


if __name__ == "__main__":
    asyncio.run(main())
