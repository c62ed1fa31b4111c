"""
errors.py — AppError hierarchy and error code registry.

Every error returned by the RoomSplit API uses a code defined here.
Services raise one of the AppError subclasses below; routes never catch
them, the global handler in app/__init__.py turns them into the JSON
error envelope.

Taxonomy:
  ValidationError     (422) — malformed or inconsistent input that passed
                              the schema layer (e.g. missing payment address)
  AuthorizationError  (403) — caller is not allowed to act on the resource
  NotFoundError       (404) — expense / participant / profile does not exist
  ConsistencyError    (500) — a multi-statement ledger write failed part-way

401 (unauthenticated) and 403 (unauthorized) are never swapped: 401 comes
from the auth middleware, 403 from services.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class ValidationError(AppError):
    """Business-rule input error. Not to be confused with marshmallow's."""

    def __init__(self, code: str, message: str, field: str | None = None) -> None:
        super().__init__(code, message, 422, field=field)


class AuthorizationError(AppError):

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(code or ErrorCode.FORBIDDEN, message, 403)


class NotFoundError(AppError):

    def __init__(self, code: str, message: str, field: str | None = None) -> None:
        super().__init__(code, message, 404, field=field)


class ConsistencyError(AppError):

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.LEDGER_WRITE_FAILED, message, 500)


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response; do not rename them.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_CATEGORY           = "INVALID_CATEGORY"
    INVALID_UPI_ID             = "INVALID_UPI_ID"
    EMPTY_PARTICIPANTS         = "EMPTY_PARTICIPANTS"
    DUPLICATE_EXPENSE_ENTRY    = "DUPLICATE_EXPENSE_ENTRY"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    PROFILE_NOT_FOUND          = "PROFILE_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    PARTICIPANT_NOT_FOUND      = "PARTICIPANT_NOT_FOUND"
    NOTIFICATION_NOT_FOUND     = "NOTIFICATION_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYMENT_ADDRESS_MISSING    = "PAYMENT_ADDRESS_MISSING"
    SELF_SETTLEMENT            = "SELF_SETTLEMENT"
    BUYER_ALWAYS_SETTLED       = "BUYER_ALWAYS_SETTLED"
    NO_OUTSTANDING_SHARE       = "NO_OUTSTANDING_SHARE"
    SHARE_MISMATCH             = "SHARE_MISMATCH"
    NET_AMOUNT_MISMATCH        = "NET_AMOUNT_MISMATCH"
    INCOMPLETE_SETTLEMENT      = "INCOMPLETE_SETTLEMENT"
    NOTHING_TO_SETTLE          = "NOTHING_TO_SETTLE"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    LEDGER_WRITE_FAILED        = "LEDGER_WRITE_FAILED"
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # A second settle click on an already-settled share: nothing is written,
    # the existing ledger row is returned.
    ALREADY_SETTLED = "ALREADY_SETTLED"
