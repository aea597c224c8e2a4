"""Error taxonomy and the IdP failure normalizer.

``normalize_failure`` is a pure, total function: every ``IdpFailure`` maps to
exactly one ``ErrorKind``. Provider status codes and bodies never leave the
process except through log lines.
"""
from __future__ import annotations
import logging
from enum import Enum
from typing import Any, Dict, Optional

from .keycloak.results import FailureReason, IdpFailure, IdpOperation

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    AUTH_FAILED = "AUTH_FAILED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    TOKEN_INVALID = "TOKEN_INVALID"
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"
    NOT_FOUND = "NOT_FOUND"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL = "INTERNAL"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]

    @property
    def default_message(self) -> str:
        return _DEFAULT_MESSAGES[self]


_HTTP_STATUS = {
    ErrorKind.AUTH_FAILED: 401,
    ErrorKind.TOKEN_EXPIRED: 401,
    ErrorKind.TOKEN_INVALID: 401,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.SERVICE_UNAVAILABLE: 503,
    ErrorKind.INTERNAL: 500,
}

_DEFAULT_MESSAGES = {
    ErrorKind.AUTH_FAILED: "Authentication failed",
    ErrorKind.TOKEN_EXPIRED: "Access token has expired",
    ErrorKind.TOKEN_INVALID: "Access token is invalid",
    ErrorKind.BAD_REQUEST: "Invalid request parameters",
    ErrorKind.VALIDATION_ERROR: "Submitted data is not valid",
    ErrorKind.CONFLICT: "Resource already exists",
    ErrorKind.NOT_FOUND: "Resource not found",
    ErrorKind.SERVICE_UNAVAILABLE: "Identity provider temporarily unavailable, please retry later",
    ErrorKind.INTERNAL: "An unexpected error occurred",
}

# Per-operation status overrides, consulted before the generic table
_TOKEN_EXCHANGE = {401: ErrorKind.AUTH_FAILED, 400: ErrorKind.BAD_REQUEST}

_OPERATION_STATUS: Dict[IdpOperation, Dict[int, ErrorKind]] = {
    IdpOperation.PASSWORD_GRANT: _TOKEN_EXCHANGE,
    IdpOperation.REFRESH_GRANT: _TOKEN_EXCHANGE,
    IdpOperation.LOGOUT: {400: ErrorKind.BAD_REQUEST},
    IdpOperation.USERINFO: {400: ErrorKind.BAD_REQUEST},
    IdpOperation.CREATE_USER: {409: ErrorKind.CONFLICT},
    IdpOperation.ROLE_LOOKUP: {404: ErrorKind.BAD_REQUEST},
    IdpOperation.DELETE_USER: {404: ErrorKind.NOT_FOUND},
}

_GENERIC_STATUS = {
    400: ErrorKind.BAD_REQUEST,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    503: ErrorKind.SERVICE_UNAVAILABLE,
}


def normalize_failure(failure: IdpFailure) -> ErrorKind:
    """Classify an adapter failure into exactly one ErrorKind."""
    if failure.reason in (FailureReason.TIMEOUT, FailureReason.CONNECTION):
        return ErrorKind.SERVICE_UNAVAILABLE
    if failure.reason is FailureReason.DECODE or failure.status_code is None:
        return ErrorKind.INTERNAL

    status = failure.status_code
    if status == 503:
        return ErrorKind.SERVICE_UNAVAILABLE

    if failure.operation is IdpOperation.USERINFO and status == 401:
        return ErrorKind.TOKEN_EXPIRED if failure.token_expired else ErrorKind.TOKEN_INVALID

    overrides = _OPERATION_STATUS.get(failure.operation, {})
    if status in overrides:
        return overrides[status]

    # Creation and deletion surface every other client/provider status as a bad request
    if failure.operation is IdpOperation.CREATE_USER and status >= 400:
        return ErrorKind.BAD_REQUEST
    if failure.operation is IdpOperation.DELETE_USER and status >= 400:
        return ErrorKind.BAD_REQUEST

    return _GENERIC_STATUS.get(status, ErrorKind.INTERNAL)


class BrokerError(Exception):
    """Domain error raised by the services and rendered as the error envelope.

    Attributes:
        kind: ErrorKind of the failure
        message: User-facing message (never contains provider internals)
        details: Optional structured details
        validation_errors: Field -> message map for VALIDATION_ERROR
        correlation_id: Set by the request tracer when the error leaves a trace
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: Optional[str] = None,
        *,
        details: Any = None,
        validation_errors: Optional[Dict[str, str]] = None,
    ):
        self.kind = kind
        self.message = message or kind.default_message
        self.details = details
        self.validation_errors = validation_errors
        self.correlation_id: Optional[str] = None
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def status(self) -> int:
        return self.kind.http_status

    @classmethod
    def from_failure(
        cls,
        failure: IdpFailure,
        messages: Optional[Dict[ErrorKind, str]] = None,
    ) -> "BrokerError":
        """Normalize an adapter failure.

        Args:
            failure: Adapter failure (status and body stay out of the error)
            messages: Caller wording per kind; other kinds keep the generic message
        """
        kind = normalize_failure(failure)
        return cls(kind, (messages or {}).get(kind))

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        if self.validation_errors:
            payload["validation_errors"] = self.validation_errors
        return payload


def error_code_for(exc: BaseException) -> str:
    """Code recorded in trace logs for any exception."""
    if isinstance(exc, BrokerError):
        return exc.code
    return ErrorKind.INTERNAL.value


def idp_error(
    action: str,
    failure: IdpFailure,
    messages: Optional[Dict[ErrorKind, str]] = None,
    subject: Optional[str] = None,
) -> BrokerError:
    """Log an adapter failure with its provider details and return the normalized error."""
    error = BrokerError.from_failure(failure, messages)
    logger.warning(
        f"IdP call failed | action={action} | subject={subject or '-'} | "
        f"error_code={error.code} | {failure.describe()}"
    )
    return error
