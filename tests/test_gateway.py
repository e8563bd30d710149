"""
Tests for the payment gateway implementations.

The HTTP gateway is driven through httpx.MockTransport, so no network is
involved. These tests verify that HTTP failures map to gateway outcomes and
that execute_payment enforces its timeout.
"""

import json
from decimal import Decimal

import httpx
import pytest

from ledger_core.config import Settings
from ledger_core.services.gateway import (
    GatewayOutcome,
    HttpPaymentGateway,
    PaymentInstruction,
    SimulatedPaymentGateway,
    build_payment_gateway,
    execute_payment,
)

INSTRUCTION = PaymentInstruction(
    amount=Decimal("40.00"),
    source_account_number="100000001",
    source_routing_number="724722907",
    destination_routing_number="021000021",
    destination_account_number="99887766",
    reference="b1",
)


class TestHttpPaymentGateway:
    """Tests for the httpx-backed gateway."""

    async def test_success_posts_instruction(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["payload"] = json.loads(request.content)
            seen["key"] = request.headers.get("Idempotency-Key")
            return httpx.Response(201, json={"status": "accepted"})

        gateway = HttpPaymentGateway(
            "http://payments.test/payments", transport=httpx.MockTransport(handler)
        )
        result = await gateway.submit(INSTRUCTION)
        await gateway.aclose()

        assert result.outcome is GatewayOutcome.SUCCESS
        assert seen["payload"]["amount"] == "40.00"
        assert seen["payload"]["destination"]["routing_number"] == "021000021"
        assert seen["key"] == "b1"

    @pytest.mark.parametrize("status_code", [400, 422, 500, 503])
    async def test_error_status_is_failure(self, status_code):
        gateway = HttpPaymentGateway(
            "http://payments.test/payments",
            transport=httpx.MockTransport(lambda request: httpx.Response(status_code)),
        )
        result = await gateway.submit(INSTRUCTION)
        await gateway.aclose()

        assert result.outcome is GatewayOutcome.FAILURE
        assert str(status_code) in result.detail

    async def test_transport_timeout_is_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        gateway = HttpPaymentGateway(
            "http://payments.test/payments", transport=httpx.MockTransport(handler)
        )
        result = await gateway.submit(INSTRUCTION)
        await gateway.aclose()

        assert result.outcome is GatewayOutcome.TIMEOUT

    async def test_connection_error_is_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        gateway = HttpPaymentGateway(
            "http://payments.test/payments", transport=httpx.MockTransport(handler)
        )
        result = await gateway.submit(INSTRUCTION)
        await gateway.aclose()

        assert result.outcome is GatewayOutcome.FAILURE


class TestExecutePayment:
    """Tests for the timeout wrapper."""

    async def test_hung_gateway_times_out(self):
        gateway = SimulatedPaymentGateway(GatewayOutcome.TIMEOUT)
        result = await execute_payment(gateway, INSTRUCTION, timeout=0.05)
        assert result.outcome is GatewayOutcome.TIMEOUT

    async def test_slow_but_in_time(self):
        gateway = SimulatedPaymentGateway(delay_seconds=0.01)
        result = await execute_payment(gateway, INSTRUCTION, timeout=1.0)
        assert result.ok

    async def test_failure_is_passed_through(self):
        gateway = SimulatedPaymentGateway("failure")
        result = await execute_payment(gateway, INSTRUCTION, timeout=1.0)
        assert result.outcome is GatewayOutcome.FAILURE
        assert gateway.submitted == [INSTRUCTION]


class TestBuildPaymentGateway:
    def test_simulated_by_default(self):
        gateway = build_payment_gateway(Settings(SECRET_KEY="x"))
        assert isinstance(gateway, SimulatedPaymentGateway)
        assert gateway.outcome is GatewayOutcome.SUCCESS

    async def test_http_mode(self):
        gateway = build_payment_gateway(Settings(
            SECRET_KEY="x",
            PAYMENT_GATEWAY_MODE="http",
            PAYMENT_GATEWAY_URL="http://payments.test/payments",
        ))
        assert isinstance(gateway, HttpPaymentGateway)
        assert gateway.url == "http://payments.test/payments"
        await gateway.aclose()
