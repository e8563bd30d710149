"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain errors without importing HTTP concepts; the
handlers registered here translate them into responses with a consistent
JSON shape: {"detail": "...", "error_type": "..."}.

Exception hierarchy (every one of these is raised BEFORE any ledger write,
so none of them leaves a transaction row behind):
    LedgerAPIError (base)
    ├── MalformedRequestError    body is not parseable JSON          (400)
    ├── RequestSchemaError       body fails the request schema       (422)
    ├── AuthenticationError      missing/invalid bearer token        (401)
    └── ResourceNotFoundError    missing OR not owned by the caller  (404)

Business denials (inactive account or payee, insufficient funds, gateway
failure) are deliberately NOT exceptions. They are normal outcomes returned
by the engine, recorded as denied rows, and committed with the request's unit
of work.

Anything else that escapes a request is an internal error: get_db has
already rolled the unit of work back, and the catch-all handler answers 500.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class LedgerAPIError(Exception):
    """Base exception for all ledger domain errors."""

    status_code = 400
    error_type = "ledger_error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    def to_content(self) -> dict[str, Any]:
        return {"detail": self.detail, "error_type": self.error_type}


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class MalformedRequestError(LedgerAPIError):
    """Raised when the request body cannot be parsed at all."""

    status_code = 400
    error_type = "malformed_request"

    def __init__(self, detail: str = "Invalid JSON body."):
        super().__init__(detail)


class RequestSchemaError(LedgerAPIError):
    """
    Raised when a parseable body matches none of the transaction shapes.

    Attributes:
        errors: Field-level problems, each {"loc": [...], "msg": ..., "type": ...}.
    """

    status_code = 422
    error_type = "invalid_request"

    def __init__(self, errors: list[dict[str, Any]]):
        self.errors = errors
        super().__init__("Invalid request body.")

    def to_content(self) -> dict[str, Any]:
        content = super().to_content()
        content["details"] = self.errors
        return content


class AuthenticationError(LedgerAPIError):
    """Raised when an operation needs a principal and none could be established."""

    status_code = 401
    error_type = "unauthenticated"

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(detail)


class ResourceNotFoundError(LedgerAPIError):
    """
    Raised when an account or rule does not exist OR belongs to someone else.

    The two cases are collapsed on purpose: answering 403 for a foreign
    account would confirm to the caller that the account number exists.
    """

    status_code = 404
    error_type = "not_found"

    def __init__(self, detail: str = "Not found."):
        super().__init__(detail)


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the exception handlers with the FastAPI application.

    Called once from create_app() in main.py.
    """

    @app.exception_handler(LedgerAPIError)
    async def ledger_error_handler(
        request: Request, exc: LedgerAPIError
    ) -> JSONResponse:
        headers = None
        if isinstance(exc, AuthenticationError):
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_content(),
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def internal_error_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "Unhandled error while processing request",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "path": request.url.path,
            },
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal Server Error", "error_type": "internal_error"},
        )
