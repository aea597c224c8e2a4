"""Keycloak realm role catalog and user role-mapping operations."""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

from .client import KeycloakClient, decode_json
from .results import FailureReason, IdpFailure, IdpOperation, IdpResult


class RoleService:
    """Service for the realm role catalog and per-user realm role mappings."""

    def __init__(self, client: KeycloakClient):
        """Initialize role service.

        Args:
            client: Keycloak client holding the service-account credentials
        """
        self.client = client

    @property
    def default_role_name(self) -> str:
        """Composite role Keycloak maps onto every new user of the realm."""
        return f"default-roles-{self.client.realm}"

    # ─────────────────────────────────────────────────────────────────────────
    # Catalog
    # ─────────────────────────────────────────────────────────────────────────
    def list_roles(self, offset: Optional[int] = None, limit: Optional[int] = None) -> IdpResult[List[Dict[str, Any]]]:
        """Return realm roles; the whole catalog when no slice is requested."""
        params = {}
        if offset is not None and limit is not None:
            params = {"first": offset, "max": limit}
        result = self.client.get("/roles", IdpOperation.LIST_ROLES, params=params or None)
        if not result.ok:
            return IdpResult.fail(result.failure)
        decoded = decode_json(result.value, IdpOperation.LIST_ROLES)
        if decoded.ok and not isinstance(decoded.value, list):
            return IdpResult.fail(IdpFailure(IdpOperation.LIST_ROLES, FailureReason.DECODE, body="expected list payload"))
        return decoded

    def count_roles(self) -> IdpResult[int]:
        """Count the realm role catalog (Keycloak has no count endpoint for roles)."""
        roles = self.list_roles()
        if not roles.ok:
            return IdpResult.fail(roles.failure)
        return IdpResult.success(len(roles.value))

    def get_role(self, role_name: str) -> IdpResult[Dict[str, Any]]:
        """Resolve a role name to its representation (404 when unknown)."""
        result = self.client.get(f"/roles/{quote(role_name, safe='')}", IdpOperation.ROLE_LOOKUP)
        if not result.ok:
            return IdpResult.fail(result.failure)
        return decode_json(result.value, IdpOperation.ROLE_LOOKUP)

    def create_role(self, role_name: str, description: str = "") -> IdpResult[bool]:
        """Idempotently create a realm-level role.

        Returns:
            IdpResult holding True when the role was created, False when it existed
        """
        existing = self.get_role(role_name)
        if existing.ok:
            return IdpResult.success(False)
        if existing.failure.status_code != 404:
            return IdpResult.fail(existing.failure)

        payload = {"name": role_name, "description": description, "clientRole": False}
        result = self.client.post("/roles", IdpOperation.CREATE_ROLE, json=payload)
        if not result.ok:
            if result.failure.status_code == 409:
                return IdpResult.success(False)
            return IdpResult.fail(result.failure)
        return IdpResult.success(True)

    # ─────────────────────────────────────────────────────────────────────────
    # User role mappings
    # ─────────────────────────────────────────────────────────────────────────
    def list_user_role_names(self, user_id: str) -> IdpResult[List[str]]:
        """Return the realm roles mapped directly onto the user.

        The realm's default composite role is left out.
        """
        mappings = self._user_role_mappings(user_id)
        if not mappings.ok:
            return IdpResult.fail(mappings.failure)
        return IdpResult.success(sorted({role["name"] for role in mappings.value}))

    def resolve_roles(self, role_names: Iterable[str]) -> IdpResult[List[Dict[str, Any]]]:
        """Resolve role names to the minimal representations used in mappings.

        The first unknown name stops resolution with a ROLE_LOOKUP failure.
        """
        resolved = []
        for name in role_names:
            role = self.get_role(name)
            if not role.ok:
                return IdpResult.fail(role.failure)
            if not isinstance(role.value, dict):
                return IdpResult.fail(IdpFailure(IdpOperation.ROLE_LOOKUP, FailureReason.DECODE, body="expected dict payload"))
            resolved.append({"id": role.value.get("id"), "name": role.value.get("name")})
        return IdpResult.success(resolved)

    def assign_roles(self, user_id: str, role_names: Iterable[str]) -> IdpResult[None]:
        """Resolve each role name, then add all of them to the user's realm mappings.

        An unknown role name fails the whole call before anything is assigned.
        """
        resolved = self.resolve_roles(role_names)
        if not resolved.ok:
            return IdpResult.fail(resolved.failure)
        return self.add_role_mappings(user_id, resolved.value)

    def add_role_mappings(self, user_id: str, roles: List[Dict[str, Any]]) -> IdpResult[None]:
        """Add already-resolved realm roles to the user."""
        if not roles:
            return IdpResult.success(None)
        result = self.client.post(_mappings_path(user_id), IdpOperation.ASSIGN_ROLES, json=roles)
        if not result.ok:
            return IdpResult.fail(result.failure)
        return IdpResult.success(None)

    def clear_roles(self, user_id: str) -> IdpResult[None]:
        """Remove every directly mapped realm role except the realm default."""
        mappings = self._user_role_mappings(user_id)
        if not mappings.ok:
            return IdpResult.fail(mappings.failure)
        if not mappings.value:
            return IdpResult.success(None)

        payload = [{"id": role.get("id"), "name": role.get("name")} for role in mappings.value]
        result = self.client.delete(_mappings_path(user_id), IdpOperation.REMOVE_ROLES, json=payload)
        if not result.ok:
            return IdpResult.fail(result.failure)
        return IdpResult.success(None)

    def _user_role_mappings(self, user_id: str) -> IdpResult[List[Dict[str, Any]]]:
        result = self.client.get(_mappings_path(user_id), IdpOperation.USER_ROLES)
        if not result.ok:
            return IdpResult.fail(result.failure)
        decoded = decode_json(result.value, IdpOperation.USER_ROLES)
        if not decoded.ok:
            return decoded
        if not isinstance(decoded.value, list):
            return IdpResult.fail(IdpFailure(IdpOperation.USER_ROLES, FailureReason.DECODE, body="expected list payload"))
        return IdpResult.success(
            [role for role in decoded.value if role.get("name") and role.get("name") != self.default_role_name]
        )


def _mappings_path(user_id: str) -> str:
    return f"/users/{quote(user_id, safe='')}/role-mappings/realm"
