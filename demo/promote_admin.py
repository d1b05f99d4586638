#!/usr/bin/env python3
"""Grant the admin role to an existing account. Run on the server.

Usage:
    python demo/promote_admin.py someone@example.com [--agency]
"""
import argparse
import asyncio

from authcore import models  # noqa: F401
from authcore.database import AsyncSessionLocal, engine
from authcore.models.account import AccountKind
from authcore.services import credential_service, rbac_service


async def promote(email: str, kind: AccountKind):
    async with AsyncSessionLocal() as s:
        account = await credential_service.find_by_email(s, kind, email)
        if account is None:
            print(f"No {kind.value} account for {email}")
        else:
            await rbac_service.ensure_default_catalogue(s)
            await rbac_service.assign_role(s, account.id, account.kind, "admin")
            await s.commit()
            print(f"Granted admin to {account.id}")
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("email")
    parser.add_argument("--agency", action="store_true")
    args = parser.parse_args()
    asyncio.run(promote(args.email, AccountKind.AGENCY if args.agency else AccountKind.USER))
