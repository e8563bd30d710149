#!/usr/bin/env python3
"""
Demo seed script: populates the database with sample data for demos.

!! NOT FOR PRODUCTION !!
This script writes a demo user, accounts, a payee and payment rules straight
into DATABASE_URL, then prints a bearer token and ready-to-send request
bodies. The service has no signup or account-opening endpoints, so rows are
created through the ORM rather than through the API.

Usage:
    # Seed the database configured in .env / environment:
    python demo/seed.py

    # Seed, then send one of each request type to a running server:
    python demo/seed.py --exercise --base-url http://localhost:8000

    # Delete the SQLite database file:
    python demo/seed.py --reset

Seeded data:
    ┌────────────────────────┬──────────────────────────────────────────┐
    │ User                   │ alice.chen@example.com                   │
    │ Checking (balance)     │ 850.00                                   │
    │ Savings (balance)      │ 5000.00                                  │
    │ Payee                  │ City Power & Light                       │
    │ Rules                  │ bill pay 120.00, internal 200.00,        │
    │                        │ external 75.00                           │
    └────────────────────────┴──────────────────────────────────────────┘
"""

import argparse
import asyncio
import json
import os
import sys
import uuid
from decimal import Decimal

import httpx
from sqlalchemy.engine import make_url

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from ledger_core.config import settings  # noqa: E402
from ledger_core.database import Database  # noqa: E402
from ledger_core.models import (  # noqa: E402
    Account,
    BillPayRule,
    Payee,
    Transaction,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
    TransferRule,
    User,
)
from ledger_core.security import create_access_token  # noqa: E402


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def log(msg: str) -> None:
    print(f"  {msg}")


def new_account_number() -> str:
    return str(uuid.uuid4().int)[:12]


def opening_deposit(account: Account) -> Transaction:
    """Approved row backing a seeded balance, so balance and ledger agree."""
    return Transaction(
        account_id=account.id,
        amount=account.balance,
        transaction_type=TransactionType.DEPOSIT,
        direction=TransactionDirection.INBOUND,
        status=TransactionStatus.APPROVED,
    )


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

async def seed() -> dict:
    """Create the demo rows and return the identifiers needed for requests."""
    database = Database.from_url(settings.DATABASE_URL)
    await database.create_all()

    try:
        async with database.sessionmaker() as session:
            user = User(email=f"alice.chen+{uuid.uuid4().hex[:6]}@example.com")
            session.add(user)
            await session.flush()

            checking = Account(
                user_id=user.id,
                account_number=new_account_number(),
                balance=Decimal("850.00"),
            )
            savings = Account(
                user_id=user.id,
                account_number=new_account_number(),
                balance=Decimal("5000.00"),
            )
            session.add_all([checking, savings])
            await session.flush()
            session.add_all([opening_deposit(checking), opening_deposit(savings)])

            payee = Payee(
                business_name="City Power & Light",
                routing_number="021000021",
                account_number="99887766",
            )
            session.add(payee)
            await session.flush()

            bill_pay = BillPayRule(
                user_id=user.id,
                source_account_id=checking.id,
                payee_id=payee.id,
                amount=Decimal("120.00"),
                frequency="monthly",
            )
            internal = TransferRule(
                user_id=user.id,
                source_account_id=savings.id,
                destination_account_id=checking.id,
                amount=Decimal("200.00"),
                frequency="monthly",
            )
            external = TransferRule(
                user_id=user.id,
                source_account_id=checking.id,
                external_routing_number="011000015",
                external_account_number="5550001234",
                amount=Decimal("75.00"),
            )
            session.add_all([bill_pay, internal, external])
            await session.commit()
    finally:
        await database.dispose()

    log(f"User          {user.email}  ({user.id})")
    log(f"Checking      {checking.account_number}  850.00")
    log(f"Savings       {savings.account_number}  5000.00")
    log(f"Bill pay rule {bill_pay.id}")
    log(f"Internal rule {internal.id}")
    log(f"External rule {external.id}")

    return {
        "user_id": str(user.id),
        "checking": checking.account_number,
        "savings": savings.account_number,
        "bill_pay_rule_id": str(bill_pay.id),
        "internal_rule_id": str(internal.id),
        "external_rule_id": str(external.id),
    }


def sample_requests(ids: dict) -> list[tuple[str, dict, bool]]:
    """(label, body, authenticated) for one request of each type."""
    return [
        ("deposit", {
            "requested_transaction_type": "deposit",
            "transaction_direction": "inbound",
            "destination_account_number": ids["checking"],
            "requested_amount": "50.00",
        }, True),
        ("withdrawal", {
            "requested_transaction_type": "withdrawal",
            "transaction_direction": "outbound",
            "source_account_number": ids["checking"],
            "requested_amount": "20.00",
        }, True),
        ("billpay", {
            "requested_transaction_type": "billpay",
            "bill_pay_rule_id": ids["bill_pay_rule_id"],
        }, True),
        ("internal_transfer", {
            "requested_transaction_type": "internal_transfer",
            "transfer_rule_id": ids["internal_rule_id"],
        }, True),
        ("external_transfer (outbound)", {
            "requested_transaction_type": "external_transfer",
            "transfer_rule_id": ids["external_rule_id"],
        }, True),
        ("external_transfer (inbound)", {
            "requested_transaction_type": "external_transfer",
            "transaction_direction": "inbound",
            "destination_account_number": ids["checking"],
            "source_account_number": "4400112233",
            "source_routing_number": "011000015",
            "requested_amount": "300.00",
        }, False),
    ]


async def exercise(base_url: str, token: str, ids: dict) -> None:
    """Send each sample request twice with the same key to show replay."""
    print("\n  Sending sample requests...\n")
    async with httpx.AsyncClient(base_url=base_url, timeout=10.0) as client:
        for label, body, authenticated in sample_requests(ids):
            headers = {"Idempotency-Key": f"demo-{uuid.uuid4().hex[:8]}"}
            if authenticated:
                headers["Authorization"] = f"Bearer {token}"
            for attempt in ("first", "retry"):
                resp = await client.post("/transactions", json=body, headers=headers)
                log(f"{label:<30} {attempt:<6} {resp.status_code}  {resp.json()}")

        resp = await client.get(
            f"/accounts/{ids['checking']}/balance",
            headers={"Authorization": f"Bearer {token}"},
        )
        log(f"checking balance: {resp.json()}")


def reset_database() -> None:
    """Delete the SQLite database file named by DATABASE_URL."""
    url = make_url(settings.DATABASE_URL)
    if url.get_backend_name() != "sqlite" or not url.database:
        print("\n  --reset only applies to file-backed SQLite databases\n")
        return

    db_path = os.path.normpath(url.database)
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
        description="Demo seed script (NOT FOR PRODUCTION)",
        epilog="Creates a demo user, accounts, a payee and payment rules.",
    )
    parser.add_argument(
        "--base-url", default="http://localhost:8000",
        help="Base URL of the running API (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--exercise", action="store_true",
        help="After seeding, send one request of each type to --base-url",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Delete the SQLite database file and exit",
    )
    args = parser.parse_args()

    if args.reset:
        reset_database()
        return

    print("\n  Seeding...\n")
    ids = await seed()
    token = create_access_token(ids["user_id"])

    print(f"\n  Bearer token (valid {settings.ACCESS_TOKEN_EXPIRE_MINUTES} min):\n  {token}\n")
    print("  Sample request bodies for POST /transactions:\n")
    for label, body, authenticated in sample_requests(ids):
        auth_note = "" if authenticated else "  (no Authorization header)"
        log(f"# {label}{auth_note}")
        log(json.dumps(body))

    if args.exercise:
        await exercise(args.base_url, token, ids)
    print()


if __name__ == "__main__":
    asyncio.run(main())
