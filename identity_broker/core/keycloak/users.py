"""Keycloak user management operations."""
from __future__ import annotations
from typing import Any, Dict, List
from urllib.parse import quote

from .client import KeycloakClient, decode_json
from .results import FailureReason, IdpFailure, IdpOperation, IdpResult
from ..models import UserProfile


class UserService:
    """Service for managing Keycloak users."""

    def __init__(self, client: KeycloakClient):
        """Initialize user service.

        Args:
            client: Keycloak client holding the service-account credentials
        """
        self.client = client

    def create_user(self, profile: UserProfile, password: str) -> IdpResult[str]:
        """Create the account, then set a permanent password credential.

        A creation status >= 400 is returned as-is and the password step is
        not attempted.

        Args:
            profile: Account fields
            password: Initial (non-temporary) password

        Returns:
            IdpResult holding the new user ID
        """
        created = self.client.post("/users", IdpOperation.CREATE_USER, json=profile.to_representation())
        if not created.ok:
            return IdpResult.fail(created.failure)

        location = created.value.headers.get("Location", "")
        user_id = location.rstrip("/").rsplit("/", 1)[-1] if location else ""
        if not user_id:
            return IdpResult.fail(
                IdpFailure(
                    IdpOperation.CREATE_USER,
                    FailureReason.DECODE,
                    created.value.status_code,
                    "user created without a Location header",
                    self.client.admin_url("/users"),
                )
            )

        password_set = self.set_password(user_id, password)
        if not password_set.ok:
            return IdpResult.fail(password_set.failure)
        return IdpResult.success(user_id)

    def set_password(self, user_id: str, password: str, temporary: bool = False) -> IdpResult[None]:
        """Reset the user's password credential."""
        result = self.client.put(
            f"{_user_path(user_id)}/reset-password",
            IdpOperation.SET_PASSWORD,
            json={"type": "password", "value": password, "temporary": temporary},
        )
        if not result.ok:
            return IdpResult.fail(result.failure)
        return IdpResult.success(None)

    def get_user(self, user_id: str) -> IdpResult[Dict[str, Any]]:
        """Return the user representation for an ID (404 when unknown).

        An ID that collides with an admin sub-resource (``count``,
        ``profile``) answers 200 with some other payload; anything that is
        not an object carrying an ``id`` is reported as a 404.
        """
        result = self.client.get(_user_path(user_id), IdpOperation.GET_USER)
        if not result.ok:
            return IdpResult.fail(result.failure)
        decoded = decode_json(result.value, IdpOperation.GET_USER)
        if not decoded.ok:
            return decoded
        if not isinstance(decoded.value, dict) or not decoded.value.get("id"):
            return IdpResult.fail(
                IdpFailure(
                    IdpOperation.GET_USER,
                    FailureReason.STATUS,
                    404,
                    "response is not a user representation",
                    self.client.admin_url(_user_path(user_id)),
                )
            )
        return decoded

    def list_users(self, offset: int, limit: int) -> IdpResult[List[Dict[str, Any]]]:
        """Return one slice of the realm's users, ordered by the IdP."""
        result = self.client.get("/users", IdpOperation.LIST_USERS, params={"first": offset, "max": limit})
        if not result.ok:
            return IdpResult.fail(result.failure)
        return self._expect(decode_json(result.value, IdpOperation.LIST_USERS), list, IdpOperation.LIST_USERS)

    def count_users(self) -> IdpResult[int]:
        result = self.client.get("/users/count", IdpOperation.COUNT_USERS)
        if not result.ok:
            return IdpResult.fail(result.failure)
        decoded = decode_json(result.value, IdpOperation.COUNT_USERS)
        if not decoded.ok:
            return IdpResult.fail(decoded.failure)
        if isinstance(decoded.value, bool) or not isinstance(decoded.value, int):
            return IdpResult.fail(
                IdpFailure(IdpOperation.COUNT_USERS, FailureReason.DECODE, body=f"unexpected count: {decoded.value!r}")
            )
        return IdpResult.success(decoded.value)

    def update_user(self, user_id: str, fields: Dict[str, Any]) -> IdpResult[None]:
        """Overwrite the given representation fields, leaving the others unchanged.

        Args:
            user_id: User ID
            fields: Keycloak representation fields (firstName, email, enabled, ...)
        """
        current = self.get_user(user_id)
        if not current.ok:
            return IdpResult.fail(current.failure)

        user_rep = dict(current.value)
        user_rep.update(fields)
        result = self.client.put(_user_path(user_id), IdpOperation.UPDATE_USER, json=user_rep)
        if not result.ok:
            return IdpResult.fail(result.failure)
        return IdpResult.success(None)

    def delete_user(self, user_id: str) -> IdpResult[None]:
        result = self.client.delete(_user_path(user_id), IdpOperation.DELETE_USER)
        if not result.ok:
            return IdpResult.fail(result.failure)
        return IdpResult.success(None)

    @staticmethod
    def _expect(decoded: IdpResult, expected: type, operation: IdpOperation) -> IdpResult:
        if decoded.ok and not isinstance(decoded.value, expected):
            return IdpResult.fail(
                IdpFailure(operation, FailureReason.DECODE, body=f"expected {expected.__name__} payload")
            )
        return decoded


def _user_path(user_id: str) -> str:
    """Admin path for one user, with the ID quoted into a single path segment."""
    return f"/users/{quote(user_id, safe='')}"
