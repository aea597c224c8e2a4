"""Authentication service: login, refresh, logout, identity resolution, registration.

Each entry point is linear (started -> succeeded | failed). Local checks run
before any IdP call; IdP failures are logged with their provider details and
re-raised as normalized ``BrokerError`` values.
"""
from __future__ import annotations
import logging
from typing import Optional

from .concurrency import BlockingPool
from .errors import BrokerError, ErrorKind, idp_error
from .keycloak import TokenService, UserService
from .models import CreatedUser, CurrentUser, TokenSet, UserProfile, utcnow
from .validators import validate_credentials, validate_token

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "

_LOGIN_MESSAGES = {ErrorKind.AUTH_FAILED: "Invalid username or password"}
_REFRESH_MESSAGES = {ErrorKind.AUTH_FAILED: "Refresh token is invalid or expired"}
_REGISTER_MESSAGES = {
    ErrorKind.CONFLICT: "Username or email already exists",
    ErrorKind.BAD_REQUEST: "Registration rejected by the identity provider",
}


class AuthenticationService:
    """End-user authentication flows against the realm's OIDC endpoints."""

    def __init__(self, tokens: TokenService, users: UserService, pool: BlockingPool):
        self.tokens = tokens
        self.users = users
        self.pool = pool

    async def login(self, username: str, password: str) -> TokenSet:
        """Exchange username/password for a token set (password grant)."""
        username, password = validate_credentials(username, password)
        result = await self.pool.run(self.tokens.exchange_password, username, password)
        if not result.ok:
            raise idp_error("login", result.failure, _LOGIN_MESSAGES, subject=username)
        return result.value

    async def refresh(self, refresh_token: str) -> TokenSet:
        """Exchange a refresh token for a new token set with a fresh issuance time."""
        refresh_token = validate_token(refresh_token)
        result = await self.pool.run(self.tokens.exchange_refresh, refresh_token)
        if not result.ok:
            raise idp_error("refresh", result.failure, _REFRESH_MESSAGES)
        return result.value

    async def logout(self, refresh_token: str) -> None:
        """End the IdP session; succeeds whenever the IdP reports no error."""
        refresh_token = validate_token(refresh_token)
        result = await self.pool.run(self.tokens.revoke, refresh_token)
        if not result.ok:
            raise idp_error("logout", result.failure)

    async def resolve_identity(self, authorization: Optional[str]) -> CurrentUser:
        """Resolve the caller from an ``Authorization: Bearer <token>`` header.

        Raises:
            BrokerError: AUTH_FAILED when the header is missing, BAD_REQUEST when
                it is not a Bearer header (neither contacts the IdP), or the
                normalized userinfo failure (TOKEN_EXPIRED / TOKEN_INVALID / ...)
        """
        if not authorization:
            raise BrokerError(ErrorKind.AUTH_FAILED, "Authorization header is required")
        if not authorization.startswith(BEARER_PREFIX):
            raise BrokerError(ErrorKind.BAD_REQUEST, "Authorization header must use the Bearer scheme")
        access_token = authorization[len(BEARER_PREFIX):].strip()
        if not access_token:
            raise BrokerError(ErrorKind.BAD_REQUEST, "Bearer token is empty")

        result = await self.pool.run(self.tokens.fetch_userinfo, access_token)
        if not result.ok:
            raise idp_error("resolve_identity", result.failure)
        return CurrentUser.from_claims(result.value)

    async def register(self, profile: UserProfile, password: str) -> CreatedUser:
        """Self-service account creation: enabled, email unverified, no roles."""
        profile = UserProfile(
            username=profile.username,
            email=profile.email,
            first_name=profile.first_name,
            last_name=profile.last_name,
            enabled=True,
            email_verified=False,
        )
        result = await self.pool.run(self.users.create_user, profile, password)
        if not result.ok:
            raise idp_error("register", result.failure, _REGISTER_MESSAGES, subject=profile.username)
        logger.info(f"User registered | username={profile.username} | user_id={result.value}")
        return CreatedUser(user_id=result.value, created_at=utcnow())
