"""
Tests for authentication and request-level errors.

These tests verify:
  - Every request type except the inbound external transfer needs a valid
    bearer token; failures answer 401 with WWW-Authenticate and write nothing
  - Malformed bodies answer 400 and schema failures 422 with field details
  - An unexpected failure answers 500 and leaves no partial writes
"""

import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from httpx import AsyncClient, ASGITransport

from ledger_core.security import create_access_token
from ledger_core.services import ledger as ledger_service


def deposit_body(account_number="100000001", amount="10.00"):
    return {
        "requested_transaction_type": "deposit",
        "transaction_direction": "inbound",
        "destination_account_number": account_number,
        "requested_amount": amount,
    }


class TestAuthentication:
    """Tests for bearer token verification."""

    async def test_missing_token(self, client, factory, ledger):
        user = await factory.user()
        account = await factory.account(user)

        response = await client.post("/transactions", json=deposit_body(account.account_number))
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["error_type"] == "unauthenticated"
        assert await ledger.rows() == []

    async def test_garbage_token(self, client):
        response = await client.post(
            "/transactions",
            json=deposit_body(),
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    async def test_expired_token(self, client, factory):
        user = await factory.user()
        token = create_access_token(str(user.id), expires_delta=timedelta(minutes=-1))

        response = await client.post(
            "/transactions",
            json=deposit_body(),
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401

    async def test_token_for_unknown_user(self, client):
        token = create_access_token(str(uuid.uuid4()))
        response = await client.post(
            "/transactions",
            json=deposit_body(),
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 401

    async def test_inactive_user(self, client, factory, auth):
        user = await factory.user(is_active=False)
        account = await factory.account(user)

        response = await client.post(
            "/transactions", json=deposit_body(account.account_number), headers=auth(user)
        )
        assert response.status_code == 401

    async def test_read_endpoints_require_token(self, client, factory):
        user = await factory.user()
        account = await factory.account(user)

        response = await client.get(f"/accounts/{account.account_number}/balance")
        assert response.status_code == 401


class TestRequestErrors:
    """Tests for bodies that never reach the engine."""

    async def test_invalid_json_is_400(self, client, factory, auth, ledger):
        user = await factory.user()
        response = await client.post(
            "/transactions",
            content=b"{not json",
            headers={**auth(user), "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid JSON body."
        assert await ledger.rows() == []

    async def test_malformed_body_is_400_even_without_token(self, client):
        response = await client.post("/transactions", content=b"[]")
        assert response.status_code == 400

    async def test_schema_failure_is_422_with_details(self, client, factory, auth, ledger):
        user = await factory.user()
        account = await factory.account(user)

        response = await client.post(
            "/transactions",
            json=deposit_body(account.account_number, amount="10.001"),
            headers=auth(user),
        )
        assert response.status_code == 422
        data = response.json()
        assert data["detail"] == "Invalid request body."
        assert data["error_type"] == "invalid_request"
        assert any("requested_amount" in error["loc"] for error in data["details"])
        assert await ledger.rows() == []

    async def test_unexpected_error_is_500_without_partial_writes(self, app, factory, ledger, auth):
        """A crash after the debit rolls the whole unit of work back."""
        user = await factory.user()
        account = await factory.account(user, balance="100.00")

        original_post = ledger_service.post_entries

        async def post_then_fail(db, entries):
            await original_post(db, entries)
            raise RuntimeError("disk on fire")

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            with patch(
                "ledger_core.services.ledger.post_entries",
                new=AsyncMock(side_effect=post_then_fail),
            ):
                response = await client.post(
                    "/transactions",
                    json={
                        "requested_transaction_type": "withdrawal",
                        "transaction_direction": "outbound",
                        "source_account_number": account.account_number,
                        "requested_amount": "40.00",
                    },
                    headers=auth(user),
                )

        assert response.status_code == 500
        assert response.json()["error_type"] == "internal_error"
        assert await ledger.balance(account) == Decimal("100.00")
        assert await ledger.rows() == []

    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "abc-123"
