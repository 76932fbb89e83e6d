"""
core/errors.py -- Failure taxonomy and the error classifier.

Every failure the identity layer can produce carries a FailureCause tag. The
HTTP boundary never inspects exception text: it hands the exception to
classify(), which resolves it to exactly one (status_code, body) pair.

classify() is total. Unknown exceptions fall through to the generic 404
envelope, SQLAlchemy connectivity errors become 503. Raw store messages and
password material never reach the body -- only the classified message and,
for field-level validation, the field name plus a human message.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


class FailureCause(str, Enum):
    WRONG_CREDENTIAL = "wrong_credential"
    UNKNOWN_IDENTITY = "unknown_identity"
    REAUTHENTICATION_FAILED = "reauthentication_failed"
    PASSWORD_CONFIRMATION_MISMATCH = "password_confirmation_mismatch"
    MALFORMED_IDENTIFIER = "malformed_identifier"
    MALFORMED_PAGINATION_QUERY = "malformed_pagination_query"
    VALIDATION_FAILURE = "validation_failure"
    DUPLICATE_UNIQUE = "duplicate_unique"
    TRANSIENT_STORE_FAILURE = "transient_store_failure"
    NO_SEARCH_MATCHES = "no_search_matches"


@dataclass(frozen=True)
class FieldError:
    """One offending field reported by store-level validation."""

    field: str
    message: str


class IdentityFailure(Exception):
    """A tagged failure raised by the credential and update layers.

    message overrides the default user-facing text for the cause. field_errors
    is non-empty only for store-level validation and uniqueness failures.
    """

    def __init__(
        self,
        cause: FailureCause,
        message: str | None = None,
        field_errors: list[FieldError] | tuple[FieldError, ...] = (),
    ) -> None:
        self.cause = cause
        self.message = message or DEFAULT_MESSAGES[cause]
        self.field_errors = tuple(field_errors)
        super().__init__(self.message)


DEFAULT_MESSAGES: dict[FailureCause, str] = {
    FailureCause.WRONG_CREDENTIAL: "Wrong email or password.",
    FailureCause.UNKNOWN_IDENTITY: "User not found.",
    FailureCause.REAUTHENTICATION_FAILED: "The password you supplied is incorrect.",
    FailureCause.PASSWORD_CONFIRMATION_MISMATCH: "New password and confirmation password do not match.",
    FailureCause.MALFORMED_IDENTIFIER: "User id must be an integer.",
    FailureCause.MALFORMED_PAGINATION_QUERY: "limit must be a positive integer and offset a non-negative integer.",
    FailureCause.VALIDATION_FAILURE: "One or more fields are invalid.",
    FailureCause.DUPLICATE_UNIQUE: "A user with that email or username already exists.",
    FailureCause.TRANSIENT_STORE_FAILURE: "Your connection is probably slow. Please try again after a while.",
    FailureCause.NO_SEARCH_MATCHES: "No user matches your search.",
}

_STATUS_BY_CAUSE: dict[FailureCause, int] = {
    FailureCause.WRONG_CREDENTIAL: 401,
    FailureCause.UNKNOWN_IDENTITY: 404,
    FailureCause.REAUTHENTICATION_FAILED: 403,
    FailureCause.PASSWORD_CONFIRMATION_MISMATCH: 403,
    FailureCause.MALFORMED_IDENTIFIER: 400,
    FailureCause.MALFORMED_PAGINATION_QUERY: 406,
    FailureCause.VALIDATION_FAILURE: 403,
    FailureCause.DUPLICATE_UNIQUE: 403,
    FailureCause.TRANSIENT_STORE_FAILURE: 503,
    FailureCause.NO_SEARCH_MATCHES: 404,
}

GENERIC_FAILURE_CODE = "request_failed"
GENERIC_FAILURE_MESSAGE = "The request could not be completed."


@dataclass(frozen=True)
class Classified:
    """The rendered outcome of a failure: an HTTP status and a JSON body."""

    status_code: int
    body: dict = field(default_factory=dict)


def _envelope(code: str, message: str, field_errors: tuple[FieldError, ...] = ()) -> dict:
    error: dict = {"code": code, "message": message}
    if field_errors:
        error["fields"] = [{"field": fe.field, "message": fe.message} for fe in field_errors]
    return {"error": error}


def classify(failure: BaseException) -> Classified:
    """Resolve any failure to exactly one status/body pair.

    IdentityFailure maps by cause. SQLAlchemy connectivity and pool timeouts
    are transient (503). Everything else gets the least-specific fallback.
    """
    if isinstance(failure, IdentityFailure):
        return Classified(
            status_code=_STATUS_BY_CAUSE[failure.cause],
            body=_envelope(failure.cause.value, failure.message, failure.field_errors),
        )
    if isinstance(failure, (OperationalError, PoolTimeoutError)):
        cause = FailureCause.TRANSIENT_STORE_FAILURE
        return Classified(status_code=503, body=_envelope(cause.value, DEFAULT_MESSAGES[cause]))
    return Classified(status_code=404, body=_envelope(GENERIC_FAILURE_CODE, GENERIC_FAILURE_MESSAGE))
