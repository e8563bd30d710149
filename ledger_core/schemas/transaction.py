"""
Pydantic schemas for the transaction endpoint.

POST /transactions accepts six request shapes, selected by the
``requested_transaction_type`` field. ``external_transfer`` covers two shapes:
an authenticated outbound transfer driven by a transfer rule, and an
unauthenticated inbound transfer initiated by a third party. The presence of
``transfer_rule_id`` tells them apart.

Every shape forbids unknown fields, so a body can never satisfy two shapes at
once. Amounts are exact 2-decimal Decimals (see ledger_core.money); floats
never appear.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    Discriminator,
    StringConstraints,
    Tag,
    TypeAdapter,
)

from ledger_core.models.transaction import (
    DenialReason,
    TransactionDirection,
    TransactionStatus,
    TransactionType,
)
from ledger_core.money import parse_amount

Amount = Annotated[Decimal, BeforeValidator(parse_amount)]
AccountNumber = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=17)
]
RoutingNumber = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=1, max_length=9)
]

_REQUEST_CONFIG = {"extra": "forbid", "frozen": True}


class DepositRequest(BaseModel):
    """Money into one of the caller's accounts."""
    requested_transaction_type: Literal["deposit"]
    transaction_direction: Literal["inbound"]
    destination_account_number: AccountNumber
    requested_amount: Amount

    model_config = _REQUEST_CONFIG


class WithdrawalRequest(BaseModel):
    """Money out of one of the caller's accounts."""
    requested_transaction_type: Literal["withdrawal"]
    transaction_direction: Literal["outbound"]
    source_account_number: AccountNumber
    requested_amount: Amount

    model_config = _REQUEST_CONFIG


class BillPayRequest(BaseModel):
    """Execute a bill-pay rule: the rule fixes source, payee and amount."""
    requested_transaction_type: Literal["billpay"]
    bill_pay_rule_id: uuid.UUID

    model_config = _REQUEST_CONFIG


class InternalTransferRequest(BaseModel):
    """Execute a transfer rule between two accounts held at this bank."""
    requested_transaction_type: Literal["internal_transfer"]
    transfer_rule_id: uuid.UUID

    model_config = _REQUEST_CONFIG


class ExternalTransferOutboundRequest(BaseModel):
    """Execute a transfer rule that sends money to another bank."""
    requested_transaction_type: Literal["external_transfer"]
    transfer_rule_id: uuid.UUID

    model_config = _REQUEST_CONFIG


class ExternalTransferInboundRequest(BaseModel):
    """Money arriving from another bank. Initiated by a third party, so unauthenticated."""
    requested_transaction_type: Literal["external_transfer"]
    transaction_direction: Literal["inbound"]
    destination_account_number: AccountNumber
    source_account_number: AccountNumber
    source_routing_number: RoutingNumber
    requested_amount: Amount

    model_config = _REQUEST_CONFIG


_TAGGED_VARIANTS: dict[str, type[BaseModel]] = {
    "deposit": DepositRequest,
    "withdrawal": WithdrawalRequest,
    "billpay": BillPayRequest,
    "internal_transfer": InternalTransferRequest,
    "external_transfer_outbound": ExternalTransferOutboundRequest,
    "external_transfer_inbound": ExternalTransferInboundRequest,
}

REQUEST_VARIANTS: tuple[type[BaseModel], ...] = tuple(_TAGGED_VARIANTS.values())


def request_variant_tag(body: Any) -> str | None:
    """
    Pick the union member for a raw body (dict) or an already-built model.

    Returns None for an unknown or missing ``requested_transaction_type``,
    which pydantic reports as a validation error.
    """
    if isinstance(body, BaseModel):
        for tag, variant in _TAGGED_VARIANTS.items():
            if isinstance(body, variant):
                return tag
        return None

    if not isinstance(body, dict):
        return None
    kind = body.get("requested_transaction_type")
    if kind == "external_transfer":
        if "transfer_rule_id" in body:
            return "external_transfer_outbound"
        return "external_transfer_inbound"
    if kind in _TAGGED_VARIANTS:
        return kind
    return None


TransactionRequest = Annotated[
    Union[
        Annotated[DepositRequest, Tag("deposit")],
        Annotated[WithdrawalRequest, Tag("withdrawal")],
        Annotated[BillPayRequest, Tag("billpay")],
        Annotated[InternalTransferRequest, Tag("internal_transfer")],
        Annotated[ExternalTransferOutboundRequest, Tag("external_transfer_outbound")],
        Annotated[ExternalTransferInboundRequest, Tag("external_transfer_inbound")],
    ],
    Discriminator(
        request_variant_tag,
        custom_error_type="invalid_transaction_type",
        custom_error_message=(
            "requested_transaction_type must be one of: deposit, withdrawal, "
            "billpay, internal_transfer, external_transfer"
        ),
    ),
]

transaction_request_adapter: TypeAdapter[TransactionRequest] = TypeAdapter(TransactionRequest)


class TransactionResultResponse(BaseModel):
    """200 body for an approved or replayed request."""
    status: str
    transaction_ids: list[uuid.UUID]
    duplicate: bool = False


class TransactionDeniedResponse(BaseModel):
    """403 / 409 / 502 body for a denied request. The denied row is kept for audit."""
    detail: str
    error_type: str
    transaction_id: uuid.UUID


class TransactionResponse(BaseModel):
    """Public representation of one ledger row."""
    id: uuid.UUID
    account_id: uuid.UUID
    amount: Decimal
    transaction_type: TransactionType
    direction: TransactionDirection
    status: TransactionStatus
    denial_reason: DenialReason | None
    bill_pay_rule_id: uuid.UUID | None
    transfer_rule_id: uuid.UUID | None
    external_routing_number: str | None
    external_account_number: str | None
    idempotency_key: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
