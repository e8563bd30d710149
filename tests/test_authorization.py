"""
Tests for ownership boundaries.

A caller must never be able to move money out of, or even detect, another
user's account or rule. "Missing" and "not yours" both answer 404 with the
same message, and neither writes a ledger row.
"""

import uuid
from decimal import Decimal


class TestCrossUserAccountAccess:
    """Account-number-addressed requests are scoped to the caller."""

    async def test_cannot_withdraw_from_other_users_account(self, client, factory, ledger, auth):
        owner = await factory.user()
        intruder = await factory.user()
        account = await factory.account(owner, balance="100.00")

        response = await client.post(
            "/transactions",
            json={
                "requested_transaction_type": "withdrawal",
                "transaction_direction": "outbound",
                "source_account_number": account.account_number,
                "requested_amount": "10.00",
            },
            headers=auth(intruder),
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Account not found."

        assert await ledger.balance(account) == Decimal("100.00")
        assert await ledger.rows() == []

    async def test_foreign_and_missing_accounts_look_the_same(self, client, factory, auth):
        owner = await factory.user()
        intruder = await factory.user()
        account = await factory.account(owner)

        def body(number):
            return {
                "requested_transaction_type": "deposit",
                "transaction_direction": "inbound",
                "destination_account_number": number,
                "requested_amount": "1.00",
            }

        foreign = await client.post("/transactions", json=body(account.account_number), headers=auth(intruder))
        missing = await client.post("/transactions", json=body("999999999"), headers=auth(intruder))

        assert foreign.status_code == missing.status_code == 404
        assert foreign.json() == missing.json()

    async def test_cannot_view_other_users_balance(self, client, factory, auth):
        owner = await factory.user()
        intruder = await factory.user()
        account = await factory.account(owner)

        response = await client.get(
            f"/accounts/{account.account_number}/balance", headers=auth(intruder)
        )
        assert response.status_code == 404


class TestCrossUserRuleAccess:
    """Rules must belong to the caller, and so must the rule's source account."""

    async def test_cannot_run_other_users_bill_pay_rule(self, client, factory, ledger, auth, gateway):
        owner = await factory.user()
        intruder = await factory.user()
        source = await factory.account(owner, balance="100.00")
        payee = await factory.payee()
        rule = await factory.bill_pay_rule(owner, source, payee)

        response = await client.post(
            "/transactions",
            json={"requested_transaction_type": "billpay", "bill_pay_rule_id": str(rule.id)},
            headers=auth(intruder),
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Bill pay rule not found."
        assert gateway.submitted == []
        assert await ledger.rows() == []

    async def test_cannot_run_other_users_transfer_rule(self, client, factory, ledger, auth):
        owner = await factory.user()
        intruder = await factory.user()
        source = await factory.account(owner, balance="100.00")
        destination = await factory.account(intruder)
        rule = await factory.internal_transfer_rule(owner, source, destination)

        response = await client.post(
            "/transactions",
            json={"requested_transaction_type": "internal_transfer", "transfer_rule_id": str(rule.id)},
            headers=auth(intruder),
        )
        assert response.status_code == 404
        assert await ledger.balance(source) == Decimal("100.00")

    async def test_own_rule_cannot_drain_foreign_source_account(self, client, factory, ledger, auth):
        """A rule owned by the caller but pointing at someone else's account is not usable."""
        victim = await factory.user()
        attacker = await factory.user()
        victim_account = await factory.account(victim, balance="100.00")
        attacker_account = await factory.account(attacker)
        rule = await factory.internal_transfer_rule(attacker, victim_account, attacker_account)

        response = await client.post(
            "/transactions",
            json={"requested_transaction_type": "internal_transfer", "transfer_rule_id": str(rule.id)},
            headers=auth(attacker),
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Account not found."
        assert await ledger.balance(victim_account) == Decimal("100.00")
        assert await ledger.rows() == []

    async def test_unknown_rule(self, client, factory, auth):
        user = await factory.user()
        response = await client.post(
            "/transactions",
            json={"requested_transaction_type": "billpay", "bill_pay_rule_id": str(uuid.uuid4())},
            headers=auth(user),
        )
        assert response.status_code == 404
