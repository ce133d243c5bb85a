"""Domain errors raised by ledger, cosmetic and account services.

Each error is an ``HTTPException`` with a structured ``detail`` payload; the
handler registered in ``main`` renders it as ``{"error": ..., **details}``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException


class ServiceError(HTTPException):
    status_code_default = 500
    message_default = "Internal server error"

    def __init__(self, message: Optional[str] = None, **details: Any) -> None:
        self.message = message or self.message_default
        self.details: Dict[str, Any] = details
        super().__init__(status_code=self.status_code_default, detail={"error": self.message, **details})

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, **self.details}


class ValidationError(ServiceError):
    status_code_default = 400
    message_default = "Invalid request"


class InsufficientTokens(ServiceError):
    """Debit rejected; carries the shortfall the UI needs to render."""

    status_code_default = 400
    message_default = "Insufficient tokens"

    def __init__(self, *, needed: int, current: int, required: int) -> None:
        self.needed = needed
        self.current = current
        self.required = required
        super().__init__(
            tokensNeeded=needed,
            currentBalance=current,
            required=required,
        )


class AlreadyOwned(ServiceError):
    status_code_default = 400
    message_default = "Feature is already enabled"


class NotFound(ServiceError):
    status_code_default = 404
    message_default = "User not found"


class Unauthorized(ServiceError):
    status_code_default = 401
    message_default = "Authentication required"


class Forbidden(ServiceError):
    status_code_default = 403
    message_default = "Forbidden"


class PersistenceFailure(ServiceError):
    status_code_default = 500
    message_default = "Database operation failed"
