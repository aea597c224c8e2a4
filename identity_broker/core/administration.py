"""Identity administration: user CRUD, paged listings and the role catalog.

Every IdP call goes through the blocking pool. Role sets reported here never
include the realm's default composite role.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, List
from urllib.parse import unquote

from .concurrency import BlockingPool
from .errors import ErrorKind, idp_error
from .keycloak import IdpFailure, IdpOperation, RoleService, UserService
from .models import CreatedUser, PagedResult, Role, UserIdentity, UserProfile, UserUpdate, utcnow
from .validators import validate_page

logger = logging.getLogger(__name__)

# Batch size used when walking every account for the unpaged listing
LIST_ALL_BATCH = 100


class IdentityAdministrationService:
    """Admin operations over the realm's users and realm roles."""

    def __init__(self, users: UserService, roles: RoleService, pool: BlockingPool):
        self.users = users
        self.roles = roles
        self.pool = pool

    # ─────────────────────────────────────────────────────────────────────────
    # Users
    # ─────────────────────────────────────────────────────────────────────────
    async def create_user(self, profile: UserProfile, password: str) -> CreatedUser:
        """Create the account, set its password, then assign the requested roles.

        Role assignment is not compensated: when it fails the account stays
        created without roles, a ``partial_failure=true`` warning names the
        new user ID, and the normalized role error is raised.
        """
        created = await self.pool.run(self.users.create_user, profile, password)
        if not created.ok:
            raise idp_error(
                "create_user",
                created.failure,
                {ErrorKind.CONFLICT: f"User already exists: {profile.username}"},
                subject=profile.username,
            )
        user_id = created.value

        if profile.roles:
            assigned = await self.pool.run(self.roles.assign_roles, user_id, profile.roles)
            if not assigned.ok:
                error = idp_error(
                    "create_user",
                    assigned.failure,
                    _role_messages(assigned.failure),
                    subject=profile.username,
                )
                logger.warning(
                    f"User created without roles | partial_failure=true | user_id={user_id} | "
                    f"username={profile.username} | requested_roles={','.join(profile.roles)}"
                )
                raise error

        logger.info(
            f"User created | username={profile.username} | user_id={user_id} | "
            f"roles={','.join(profile.roles) or '-'}"
        )
        return CreatedUser(user_id=user_id, created_at=utcnow())

    async def get_user(self, user_id: str) -> UserIdentity:
        rep = await self.pool.run(self.users.get_user, user_id)
        if not rep.ok:
            raise idp_error("get_user", rep.failure, _not_found(user_id), subject=user_id)
        return await self._with_roles(rep.value)

    async def list_all_users(self) -> List[UserIdentity]:
        """Every account with its role set, read in batches until a short page."""
        identities: List[UserIdentity] = []
        offset = 0
        while True:
            batch = await self.pool.run(self.users.list_users, offset, LIST_ALL_BATCH)
            if not batch.ok:
                raise idp_error("list_all_users", batch.failure)
            identities.extend(await self._all_with_roles(batch.value))
            if len(batch.value) < LIST_ALL_BATCH:
                return identities
            offset += LIST_ALL_BATCH

    async def list_users(self, page: int, size: int) -> PagedResult[UserIdentity]:
        """One page of accounts.

        The slice and the total come from two separate IdP calls, so the
        total may drift from the slice under concurrent writes.
        """
        validate_page(page, size)
        batch = await self.pool.run(self.users.list_users, page * size, size)
        if not batch.ok:
            raise idp_error("list_users", batch.failure)
        total = await self.pool.run(self.users.count_users)
        if not total.ok:
            raise idp_error("list_users", total.failure)

        identities = await self._all_with_roles(batch.value[:size])
        return PagedResult.build(identities, total.value, page, size)

    async def update_user(self, user_id: str, update: UserUpdate) -> UserIdentity:
        """Apply a partial update; a role list replaces every current role.

        Requested role names are resolved before anything is written, so an
        unknown name leaves both the profile fields and the existing role
        assignment untouched.
        """
        messages = _not_found(user_id)
        resolved_roles = None
        if update.roles is not None:
            resolved = await self.pool.run(self.roles.resolve_roles, update.roles)
            if not resolved.ok:
                raise idp_error("update_user", resolved.failure, _role_messages(resolved.failure), subject=user_id)
            resolved_roles = resolved.value

        fields = update.representation_fields()
        if fields:
            updated = await self.pool.run(self.users.update_user, user_id, fields)
            if not updated.ok:
                raise idp_error("update_user", updated.failure, messages, subject=user_id)

        if resolved_roles is not None:
            cleared = await self.pool.run(self.roles.clear_roles, user_id)
            if not cleared.ok:
                raise idp_error("update_user", cleared.failure, messages, subject=user_id)
            assigned = await self.pool.run(self.roles.add_role_mappings, user_id, resolved_roles)
            if not assigned.ok:
                raise idp_error("update_user", assigned.failure, messages, subject=user_id)

        return await self.get_user(user_id)

    async def delete_user(self, user_id: str) -> None:
        deleted = await self.pool.run(self.users.delete_user, user_id)
        if not deleted.ok:
            raise idp_error("delete_user", deleted.failure, _not_found(user_id), subject=user_id)
        logger.info(f"User deleted | user_id={user_id}")

    # ─────────────────────────────────────────────────────────────────────────
    # Roles
    # ─────────────────────────────────────────────────────────────────────────
    async def list_all_roles(self) -> List[Role]:
        result = await self.pool.run(self.roles.list_roles)
        if not result.ok:
            raise idp_error("list_all_roles", result.failure)
        return [Role.from_representation(rep) for rep in result.value]

    async def list_roles(self, page: int, size: int) -> PagedResult[Role]:
        validate_page(page, size)
        result = await self.pool.run(self.roles.list_roles, page * size, size)
        if not result.ok:
            raise idp_error("list_roles", result.failure)
        total = await self.pool.run(self.roles.count_roles)
        if not total.ok:
            raise idp_error("list_roles", total.failure)
        return PagedResult.build([Role.from_representation(rep) for rep in result.value], total.value, page, size)

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────
    async def _with_roles(self, rep: Dict[str, Any]) -> UserIdentity:
        names = await self.pool.run(self.roles.list_user_role_names, rep["id"])
        if not names.ok:
            raise idp_error("user_roles", names.failure, _not_found(rep["id"]), subject=rep["id"])
        return UserIdentity.from_representation(rep, names.value)

    async def _all_with_roles(self, reps: List[Dict[str, Any]]) -> List[UserIdentity]:
        return list(await asyncio.gather(*(self._with_roles(rep) for rep in reps)))


def _not_found(user_id: str) -> Dict[ErrorKind, str]:
    return {ErrorKind.NOT_FOUND: f"User not found: {user_id}"}


def _role_messages(failure: IdpFailure) -> Dict[ErrorKind, str]:
    """Name the unknown role when a role lookup fails."""
    if failure.operation is not IdpOperation.ROLE_LOOKUP or not failure.endpoint:
        return {}
    role_name = unquote(failure.endpoint.rstrip("/").rsplit("/", 1)[-1])
    return {ErrorKind.BAD_REQUEST: f"Role not found: {role_name}"}
