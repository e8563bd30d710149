"""
Request classifier.

Takes the raw body of POST /transactions and returns exactly one typed
request variant (see ledger_core.schemas.transaction), along with whether the
variant needs an authenticated caller. Only the inbound external transfer
does not: a third party initiates it.

JSON numbers are decoded straight to Decimal so an amount never passes
through a float.
"""

import json
from dataclasses import dataclass
from decimal import Decimal

from pydantic import BaseModel, ValidationError

from ledger_core.exceptions import MalformedRequestError, RequestSchemaError
from ledger_core.schemas.transaction import (
    ExternalTransferInboundRequest,
    transaction_request_adapter,
)


@dataclass(frozen=True)
class ClassifiedRequest:
    request: BaseModel
    requires_auth: bool


def _error_details(exc: ValidationError) -> list[dict]:
    return [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]


def classify(raw: bytes | str) -> ClassifiedRequest:
    """
    Parse and validate a request body.

    Raises:
        MalformedRequestError: body is not JSON, or not a JSON object (400).
        RequestSchemaError: body matches none of the request shapes (422).
    """
    try:
        body = json.loads(raw, parse_float=Decimal)
    except ValueError:
        raise MalformedRequestError()
    if not isinstance(body, dict):
        raise MalformedRequestError()

    try:
        request = transaction_request_adapter.validate_python(body)
    except ValidationError as e:
        raise RequestSchemaError(_error_details(e))

    return ClassifiedRequest(
        request=request,
        requires_auth=not isinstance(request, ExternalTransferInboundRequest),
    )
