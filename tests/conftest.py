"""
Test fixtures for the ledger test suite.

  - database: fresh file-backed SQLite database for each test
  - gateway: scriptable SimulatedPaymentGateway (set .outcome to drive
    failure and timeout paths; .submitted records every instruction)
  - app / client: the real application with both injected on app.state
  - factory: builds users, accounts, payees and rules straight through the ORM
  - ledger: reads balances and rows back for assertions

Key design decisions:
  - A file database under tmp_path rather than in-memory SQLite: an
    in-memory database lives on a single shared connection, so concurrent
    requests would share one transaction and the overdraft tests would
    prove nothing.
  - ASGITransport does not run the lifespan, so the fixtures place the
    Database and gateway on app.state themselves.
  - There is no signup in this service; tokens are minted with
    create_access_token, standing in for the external auth provider.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import or_, select

from ledger_core.database import Database
from ledger_core.main import create_app
from ledger_core.models import (
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
from ledger_core.security import create_access_token
from ledger_core.services.gateway import SimulatedPaymentGateway

# Marks the rows that back a fixture account's opening balance
OPENING_BALANCE_KEY = "opening-balance"


@pytest_asyncio.fixture
async def database(tmp_path):
    """Create a fresh database with all tables for each test."""
    db = Database.from_url(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def gateway():
    return SimulatedPaymentGateway()


@pytest.fixture
def app(database, gateway):
    application = create_app()
    application.state.database = database
    application.state.payment_gateway = gateway
    return application


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP test client (no Authorization header set)."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


def auth_headers(user: User, idempotency_key: str | None = None) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {create_access_token(str(user.id))}"}
    if idempotency_key is not None:
        headers["Idempotency-Key"] = idempotency_key
    return headers


class Factory:
    """Creates rows directly in the test database; each call commits."""

    def __init__(self, database: Database):
        self.database = database
        self._numbers = iter(range(100000001, 199999999))

    async def _save(self, obj):
        async with self.database.sessionmaker() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def user(self, email: str | None = None, is_active: bool = True) -> User:
        return await self._save(User(
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            is_active=is_active,
        ))

    async def account(
        self,
        owner: User,
        balance: str = "0.00",
        is_active: bool = True,
        account_number: str | None = None,
    ) -> Account:
        """
        Create an account holding ``balance``.

        A non-zero opening balance is backed by an approved deposit row so
        that the ledger sum matches the cached balance.
        """
        account = Account(
            user_id=owner.id,
            account_number=account_number or str(next(self._numbers)),
            balance=Decimal(balance),
            is_active=is_active,
        )
        async with self.database.sessionmaker() as session:
            session.add(account)
            await session.flush()
            if Decimal(balance) > 0:
                session.add(Transaction(
                    account_id=account.id,
                    amount=Decimal(balance),
                    transaction_type=TransactionType.DEPOSIT,
                    direction=TransactionDirection.INBOUND,
                    status=TransactionStatus.APPROVED,
                    idempotency_key=OPENING_BALANCE_KEY,
                ))
            await session.commit()
        return account

    async def payee(self, is_active: bool = True) -> Payee:
        return await self._save(Payee(
            business_name="City Power & Light",
            routing_number="021000021",
            account_number="99887766",
            is_active=is_active,
        ))

    async def bill_pay_rule(
        self, owner: User, source: Account, payee: Payee, amount: str = "40.00"
    ) -> BillPayRule:
        return await self._save(BillPayRule(
            user_id=owner.id,
            source_account_id=source.id,
            payee_id=payee.id,
            amount=Decimal(amount),
            frequency="monthly",
        ))

    async def internal_transfer_rule(
        self, owner: User, source: Account, destination: Account, amount: str = "25.00"
    ) -> TransferRule:
        return await self._save(TransferRule(
            user_id=owner.id,
            source_account_id=source.id,
            destination_account_id=destination.id,
            amount=Decimal(amount),
        ))

    async def external_transfer_rule(
        self, owner: User, source: Account, amount: str = "30.00"
    ) -> TransferRule:
        return await self._save(TransferRule(
            user_id=owner.id,
            source_account_id=source.id,
            external_routing_number="011000015",
            external_account_number="5550001234",
            amount=Decimal(amount),
        ))


class LedgerReader:
    """Reads committed state back for assertions. Opening-balance rows are skipped."""

    def __init__(self, database: Database):
        self.database = database

    async def balance(self, account: Account) -> Decimal:
        async with self.database.sessionmaker() as session:
            return await session.scalar(
                select(Account.balance).where(Account.id == account.id)
            )

    async def rows(
        self, account: Account | None = None, status: TransactionStatus | None = None
    ) -> list[Transaction]:
        """Rows written by the engine (for ``account`` if given), oldest first."""
        query = select(Transaction).where(
            or_(
                Transaction.idempotency_key.is_(None),
                Transaction.idempotency_key != OPENING_BALANCE_KEY,
            )
        )
        if account is not None:
            query = query.where(Transaction.account_id == account.id)
        if status is not None:
            query = query.where(Transaction.status == status)
        async with self.database.sessionmaker() as session:
            result = await session.execute(query.order_by(Transaction.created_at))
            return list(result.scalars().all())


@pytest.fixture
def factory(database):
    return Factory(database)


@pytest.fixture
def ledger(database):
    return LedgerReader(database)


@pytest.fixture
def auth():
    """Header builder: auth(user) or auth(user, idempotency_key)."""
    return auth_headers
