"""
Payment gateway: how money leaves the bank.

Bill payments and outbound external transfers must be accepted by an
external payment network before the source account is debited. The engine
talks to that network through the PaymentGateway capability:

  - SimulatedPaymentGateway: in-process, with a configurable outcome. The
    default deployment and the test suite use it.
  - HttpPaymentGateway: POSTs the instruction to PAYMENT_GATEWAY_URL with
    httpx and maps HTTP failures to gateway outcomes.

execute_payment() bounds every call with a timeout and attempts it once;
there is no retry. A gateway that fails or times out leaves the balance
untouched and the engine records a denial.
"""

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

import httpx

from ledger_core.config import Settings

logger = logging.getLogger(__name__)


class GatewayOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class PaymentInstruction:
    """What to pay, from where, to whom."""

    amount: Decimal
    source_account_number: str
    source_routing_number: str
    destination_routing_number: str
    destination_account_number: str
    # Idempotency key of the originating request, if the client sent one
    reference: str | None = None

    def to_payload(self) -> dict:
        return {
            "amount": f"{self.amount:.2f}",
            "source": {
                "routing_number": self.source_routing_number,
                "account_number": self.source_account_number,
            },
            "destination": {
                "routing_number": self.destination_routing_number,
                "account_number": self.destination_account_number,
            },
            "reference": self.reference,
        }


@dataclass(frozen=True)
class GatewayResult:
    outcome: GatewayOutcome
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is GatewayOutcome.SUCCESS


class PaymentGateway(ABC):
    """Capability for sending one payment instruction to the payment network."""

    @abstractmethod
    async def submit(self, instruction: PaymentInstruction) -> GatewayResult:
        ...

    async def aclose(self) -> None:
        """Release any resources held by the gateway."""


class SimulatedPaymentGateway(PaymentGateway):
    """
    In-process gateway with a fixed outcome.

    ``outcome`` may be changed between calls (tests do this). A TIMEOUT
    outcome sleeps past any reasonable deadline so that execute_payment's
    own timeout fires, exactly as with a hung network call.
    """

    def __init__(
        self,
        outcome: GatewayOutcome | str = GatewayOutcome.SUCCESS,
        delay_seconds: float = 0.0,
    ):
        self.outcome = GatewayOutcome(outcome)
        self.delay_seconds = delay_seconds
        self.submitted: list[PaymentInstruction] = []

    async def submit(self, instruction: PaymentInstruction) -> GatewayResult:
        self.submitted.append(instruction)
        if self.outcome is GatewayOutcome.TIMEOUT:
            await asyncio.sleep(3600)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.outcome is GatewayOutcome.FAILURE:
            return GatewayResult(GatewayOutcome.FAILURE, "Payment rejected by simulated network")
        return GatewayResult(GatewayOutcome.SUCCESS)


class HttpPaymentGateway(PaymentGateway):
    """Gateway backed by an HTTP payment service."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def submit(self, instruction: PaymentInstruction) -> GatewayResult:
        headers = {}
        if instruction.reference:
            headers["Idempotency-Key"] = instruction.reference
        try:
            response = await self._client.post(
                self.url,
                json=instruction.to_payload(),
                headers=headers,
            )
            response.raise_for_status()
        except httpx.TimeoutException:
            return GatewayResult(GatewayOutcome.TIMEOUT, "Payment service timed out")
        except httpx.HTTPStatusError as e:
            return GatewayResult(
                GatewayOutcome.FAILURE,
                f"Payment service returned {e.response.status_code}",
            )
        except httpx.RequestError as e:
            return GatewayResult(GatewayOutcome.FAILURE, f"Payment service unreachable: {e}")
        return GatewayResult(GatewayOutcome.SUCCESS)

    async def aclose(self) -> None:
        await self._client.aclose()


async def execute_payment(
    gateway: PaymentGateway,
    instruction: PaymentInstruction,
    timeout: float,
) -> GatewayResult:
    """Submit ``instruction`` once, giving up after ``timeout`` seconds."""
    try:
        result = await asyncio.wait_for(gateway.submit(instruction), timeout=timeout)
    except asyncio.TimeoutError:
        result = GatewayResult(GatewayOutcome.TIMEOUT, f"No answer within {timeout}s")

    if not result.ok:
        logger.warning(
            "Payment gateway did not accept payment",
            extra={"outcome": result.outcome.value, "gateway_detail": result.detail},
        )
    return result


def build_payment_gateway(settings: Settings) -> PaymentGateway:
    """Build the gateway selected by PAYMENT_GATEWAY_MODE."""
    if settings.PAYMENT_GATEWAY_MODE == "http":
        return HttpPaymentGateway(
            settings.PAYMENT_GATEWAY_URL,
            timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
        )
    return SimulatedPaymentGateway(settings.SIMULATED_GATEWAY_OUTCOME)
