"""OpenID Connect token, userinfo and logout calls made on behalf of end users."""
from __future__ import annotations
import time
from typing import Dict

import jwt

from .client import KeycloakClient, decode_json
from .results import FailureReason, IdpFailure, IdpOperation, IdpResult
from ..models import TOKEN_TYPE, TokenSet, utcnow

LOGIN_SCOPE = "openid profile email"


class TokenService:
    """Password/refresh grants, logout and userinfo against the realm's OIDC endpoints."""

    def __init__(self, client: KeycloakClient, client_id: str, client_secret: str):
        """Initialize token service.

        Args:
            client: Keycloak client (only its transport and URLs are used)
            client_id: Public-facing OIDC client used for password/refresh grants
            client_secret: Secret of that client
        """
        self.client = client
        self.client_id = client_id
        self._client_secret = client_secret

    def exchange_password(self, username: str, password: str) -> IdpResult[TokenSet]:
        """Exchange username/password for a token set (resource owner password grant)."""
        data = self._client_form(
            grant_type="password",
            username=username,
            password=password,
            scope=LOGIN_SCOPE,
        )
        return self._token_request(data, IdpOperation.PASSWORD_GRANT)

    def exchange_refresh(self, refresh_token: str) -> IdpResult[TokenSet]:
        """Exchange a refresh token for a new token set."""
        data = self._client_form(grant_type="refresh_token", refresh_token=refresh_token)
        return self._token_request(data, IdpOperation.REFRESH_GRANT)

    def revoke(self, refresh_token: str) -> IdpResult[None]:
        """End the IdP session bound to the refresh token. No body is expected."""
        data = self._client_form(refresh_token=refresh_token)
        result = self.client.send("POST", self.client.oidc_url("logout"), IdpOperation.LOGOUT, data=data)
        if not result.ok:
            return IdpResult.fail(result.failure)
        return IdpResult.success(None)

    def fetch_userinfo(self, access_token: str) -> IdpResult[dict]:
        """Return the userinfo claims for a bearer access token."""
        url = self.client.oidc_url("userinfo")
        result = self.client.send(
            "GET",
            url,
            IdpOperation.USERINFO,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not result.ok:
            failure = result.failure
            if failure.status_code == 401:
                failure = IdpFailure(
                    failure.operation,
                    failure.reason,
                    failure.status_code,
                    failure.body,
                    failure.endpoint,
                    token_expired=token_is_expired(access_token),
                )
            return IdpResult.fail(failure)

        claims = decode_json(result.value, IdpOperation.USERINFO)
        if claims.ok and not isinstance(claims.value, dict):
            return IdpResult.fail(
                IdpFailure(IdpOperation.USERINFO, FailureReason.DECODE, result.value.status_code, "claims not an object", url)
            )
        return claims

    def _client_form(self, **fields: str) -> Dict[str, str]:
        form = {"client_id": self.client_id, "client_secret": self._client_secret}
        form.update(fields)
        return form

    def _token_request(self, data: Dict[str, str], operation: IdpOperation) -> IdpResult[TokenSet]:
        url = self.client.oidc_url("token")
        result = self.client.send("POST", url, operation, data=data)
        if not result.ok:
            return IdpResult.fail(result.failure)

        payload = decode_json(result.value, operation)
        if not payload.ok:
            return IdpResult.fail(payload.failure)

        body = payload.value if isinstance(payload.value, dict) else {}
        access_token = body.get("access_token")
        refresh_token = body.get("refresh_token")
        if not access_token or not refresh_token:
            return IdpResult.fail(
                IdpFailure(operation, FailureReason.DECODE, result.value.status_code, "token response missing tokens", url)
            )
        try:
            token_set = TokenSet(
                access_token=access_token,
                refresh_token=refresh_token,
                expires_in=int(body.get("expires_in") or 0),
                refresh_expires_in=int(body.get("refresh_expires_in") or 0),
                issued_at=utcnow(),
                token_type=TOKEN_TYPE,
            )
        except (TypeError, ValueError):
            return IdpResult.fail(
                IdpFailure(operation, FailureReason.DECODE, result.value.status_code, "non-numeric token lifetime", url)
            )
        return IdpResult.success(token_set)


def token_is_expired(access_token: str, leeway: int = 0) -> bool:
    """Return True when the (unverified) exp claim of a JWT is in the past.

    The signature is not checked: the IdP already rejected the token and this
    only decides between "expired" and "invalid". Opaque or malformed tokens
    count as not expired.
    """
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False, "verify_exp": False})
    except jwt.PyJWTError:
        return False
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return False
    return exp + leeway < time.time()
