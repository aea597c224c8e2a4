"""Result values returned by every Keycloak adapter call.

Adapter methods never raise for IdP or transport outcomes. They return an
``IdpResult`` holding either the decoded value or an ``IdpFailure`` that
describes what went wrong, and leave classification to
``identity_broker.core.errors.normalize_failure``.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class IdpOperation(str, Enum):
    """Adapter operations, used to pick the status mapping for a failure."""

    SERVICE_TOKEN = "service_token"
    PASSWORD_GRANT = "password_grant"
    REFRESH_GRANT = "refresh_grant"
    LOGOUT = "logout"
    USERINFO = "userinfo"
    CREATE_USER = "create_user"
    SET_PASSWORD = "set_password"
    GET_USER = "get_user"
    LIST_USERS = "list_users"
    COUNT_USERS = "count_users"
    UPDATE_USER = "update_user"
    DELETE_USER = "delete_user"
    ROLE_LOOKUP = "role_lookup"
    USER_ROLES = "user_roles"
    ASSIGN_ROLES = "assign_roles"
    REMOVE_ROLES = "remove_roles"
    LIST_ROLES = "list_roles"
    CREATE_ROLE = "create_role"


class FailureReason(str, Enum):
    STATUS = "status"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    DECODE = "decode"


@dataclass(frozen=True)
class IdpFailure:
    """A failed IdP round trip.

    Attributes:
        operation: Adapter operation that failed
        reason: Transport outcome (HTTP status, timeout, connection, decode)
        status_code: HTTP status when the IdP answered, else None
        body: Raw response body or transport error text (log output only)
        endpoint: URL that was called
        token_expired: For userinfo calls, whether the bearer's exp claim is past
    """

    operation: IdpOperation
    reason: FailureReason = FailureReason.STATUS
    status_code: Optional[int] = None
    body: str = ""
    endpoint: str = ""
    token_expired: bool = False

    def describe(self) -> str:
        status = self.status_code if self.status_code is not None else "-"
        return (
            f"operation={self.operation.value} | reason={self.reason.value} | "
            f"idp_status={status} | endpoint={self.endpoint} | idp_body={self.body[:500]}"
        )


@dataclass(frozen=True)
class IdpResult(Generic[T]):
    """Either a value or an ``IdpFailure``, never both."""

    value: Optional[T] = None
    failure: Optional[IdpFailure] = None

    @classmethod
    def success(cls, value: T = None) -> "IdpResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, failure: IdpFailure) -> "IdpResult[T]":
        return cls(failure=failure)

    @property
    def ok(self) -> bool:
        return self.failure is None
