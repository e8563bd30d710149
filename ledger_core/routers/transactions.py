"""
Transactions router: the single entry point that moves money.

  POST /transactions    deposit, withdrawal, bill pay, internal transfer,
                         external transfer (outbound or inbound)

The body is read raw and handed to the classifier instead of being declared
as a pydantic parameter: malformed JSON must answer 400 (FastAPI would say
422), and whether the caller has to be authenticated depends on which request
shape arrived.
"""

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_core.config import settings
from ledger_core.database import get_db
from ledger_core.dependencies import authenticate, bearer_scheme, get_payment_gateway
from ledger_core.schemas.transaction import (
    TransactionDeniedResponse,
    TransactionResultResponse,
)
from ledger_core.services import transaction_service
from ledger_core.services.classifier import classify
from ledger_core.services.gateway import PaymentGateway
from ledger_core.services.idempotency import normalize_key
from ledger_core.services.outcomes import OutcomeKind

router = APIRouter()


@router.post(
    "",
    response_model=TransactionResultResponse,
    responses={
        400: {"description": "Body is not valid JSON"},
        401: {"description": "Missing or invalid bearer token"},
        403: {"model": TransactionDeniedResponse, "description": "Inactive account or payee"},
        404: {"description": "Account or rule not found"},
        409: {"model": TransactionDeniedResponse, "description": "Insufficient funds or balance ceiling reached"},
        422: {"description": "Body matches no transaction shape"},
        502: {"model": TransactionDeniedResponse, "description": "Payment gateway failed or timed out"},
    },
    summary="Process a transaction",
)
async def create_transaction(
    request: Request,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Process one transaction request.

    The body's **requested_transaction_type** selects the shape. Send an
    **Idempotency-Key** header to make retries safe: repeating the same
    request with the same key returns the original result without moving
    money again.

    Approved and replayed requests answer 200 with the transaction ids.
    Denied requests (inactive party, insufficient funds, payment failure)
    answer 403 / 409 / 502 and are kept on the ledger as denied rows.
    """
    classified = classify(await request.body())

    principal_id = None
    if classified.requires_auth:
        user = await authenticate(db, credentials)
        principal_id = user.id

    outcome = await transaction_service.process_transaction(
        db,
        classified.request,
        principal_id=principal_id,
        idempotency_key=normalize_key(idempotency_key),
        gateway=gateway,
        gateway_timeout=settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
    )

    # Commit before answering so a failed commit surfaces as a 500, not after a 200
    await db.commit()

    if outcome.kind is OutcomeKind.DENIED:
        body = TransactionDeniedResponse(
            detail=outcome.message,
            error_type=outcome.denial_reason.value,
            transaction_id=outcome.transaction_ids[0],
        )
    else:
        body = TransactionResultResponse(
            status=outcome.message,
            transaction_ids=outcome.transaction_ids,
            duplicate=outcome.kind is OutcomeKind.REPLAYED,
        )
    return JSONResponse(status_code=outcome.status_code, content=body.model_dump(mode="json"))
