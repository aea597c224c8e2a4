"""Low-level HTTP client for the Keycloak OIDC and Admin REST APIs.

Handles service-account authentication, token refresh, connection pooling and
the translation of transport/status outcomes into ``IdpResult`` values.
"""
from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from .results import FailureReason, IdpFailure, IdpOperation, IdpResult

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5
DEFAULT_POOL_SIZE = 16

# Refresh the service-account token this long before Keycloak says it expires
TOKEN_REFRESH_LEEWAY = timedelta(seconds=10)


class KeycloakClient:
    """HTTP client for one Keycloak realm with automatic service-account tokens.

    Features:
    - One pooled ``requests.Session`` shared by every call
    - Mandatory timeout on every outbound request
    - Service-account (client credentials) token fetched lazily and refreshed
      before expiry
    - No exceptions for IdP outcomes: every call returns an ``IdpResult``

    Usage:
        client = KeycloakClient("http://keycloak:8080", "library",
                                service_client_id="user-service",
                                service_client_secret="secret")
        result = client.get("/users/count", IdpOperation.COUNT_USERS)
        if result.ok:
            print(result.value.json())
    """

    def __init__(
        self,
        base_url: str,
        realm: str,
        *,
        service_realm: Optional[str] = None,
        service_client_id: str = "",
        service_client_secret: str = "",
        timeout: float = REQUEST_TIMEOUT,
        pool_size: int = DEFAULT_POOL_SIZE,
        session: Optional[requests.Session] = None,
    ):
        """Initialize Keycloak client.

        Args:
            base_url: Keycloak server URL (e.g. http://keycloak:8080)
            realm: Realm holding the library's users and roles
            service_realm: Realm of the service-account client (defaults to realm)
            service_client_id: Service-account client ID for the admin API
            service_client_secret: Service-account client secret
            timeout: Per-request timeout in seconds
            pool_size: Maximum pooled connections to Keycloak
            session: Pre-built session (tests inject a stub here)
        """
        self.base_url = base_url.rstrip("/")
        self.realm = realm
        self.service_realm = service_realm or realm
        self.service_client_id = service_client_id
        self.timeout = timeout
        self._service_client_secret = service_client_secret
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self._session = session or self._build_session(pool_size)

    @staticmethod
    def _build_session(pool_size: int) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    # ─────────────────────────────────────────────────────────────────────────
    # URL helpers
    # ─────────────────────────────────────────────────────────────────────────
    def oidc_url(self, endpoint: str) -> str:
        """Return the realm's OIDC endpoint URL (token, userinfo, logout)."""
        return f"{self.base_url}/realms/{self.realm}/protocol/openid-connect/{endpoint}"

    def admin_url(self, path: str) -> str:
        """Return an Admin REST API URL relative to the realm."""
        return f"{self.base_url}/admin/realms/{self.realm}{path}"

    # ─────────────────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────────────────
    def send(
        self,
        method: str,
        url: str,
        operation: IdpOperation,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> IdpResult[requests.Response]:
        """Send one request without service-account authentication.

        Used for the OIDC endpoints, which authenticate with the caller's own
        credentials (form-encoded client secret or bearer token).
        """
        try:
            resp = self._session.request(method, url, headers=headers or {}, timeout=self.timeout, **kwargs)
        except requests.Timeout as exc:
            return IdpResult.fail(IdpFailure(operation, FailureReason.TIMEOUT, body=str(exc), endpoint=url))
        except requests.ConnectionError as exc:
            return IdpResult.fail(IdpFailure(operation, FailureReason.CONNECTION, body=str(exc), endpoint=url))
        except requests.exceptions.ContentDecodingError as exc:
            return IdpResult.fail(IdpFailure(operation, FailureReason.DECODE, body=str(exc), endpoint=url))
        except requests.RequestException as exc:
            # Redirect loops, broken chunked bodies, invalid URLs
            return IdpResult.fail(IdpFailure(operation, FailureReason.CONNECTION, body=str(exc), endpoint=url))

        if resp.status_code >= 400:
            return IdpResult.fail(
                IdpFailure(operation, FailureReason.STATUS, resp.status_code, resp.text or "", url)
            )
        return IdpResult.success(resp)

    def admin(
        self,
        method: str,
        path: str,
        operation: IdpOperation,
        **kwargs: Any,
    ) -> IdpResult[requests.Response]:
        """Execute an Admin API request with the service-account token.

        Args:
            method: HTTP method
            path: Path relative to /admin/realms/{realm} (e.g. "/users/count")
            operation: Adapter operation, recorded on failures
            **kwargs: Additional arguments for requests (json, params, ...)

        Returns:
            IdpResult holding the response or the failure
        """
        auth = self._ensure_authenticated()
        if not auth.ok:
            return IdpResult.fail(auth.failure)

        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {auth.value}"
        return self.send(method, self.admin_url(path), operation, headers=headers, **kwargs)

    def get(self, path: str, operation: IdpOperation, params: Optional[Dict] = None) -> IdpResult[requests.Response]:
        return self.admin("GET", path, operation, params=params)

    def post(self, path: str, operation: IdpOperation, json: Any = None) -> IdpResult[requests.Response]:
        return self.admin("POST", path, operation, json=json)

    def put(self, path: str, operation: IdpOperation, json: Any = None) -> IdpResult[requests.Response]:
        return self.admin("PUT", path, operation, json=json)

    def delete(self, path: str, operation: IdpOperation, json: Any = None) -> IdpResult[requests.Response]:
        return self.admin("DELETE", path, operation, json=json)

    # ─────────────────────────────────────────────────────────────────────────
    # Service account
    # ─────────────────────────────────────────────────────────────────────────
    def _ensure_authenticated(self) -> IdpResult[str]:
        """Return a valid service-account token, fetching a new one if needed."""
        now = datetime.now(timezone.utc)
        if self._token and self._token_expires_at and now < self._token_expires_at - TOKEN_REFRESH_LEEWAY:
            return IdpResult.success(self._token)

        url = f"{self.base_url}/realms/{self.service_realm}/protocol/openid-connect/token"
        data = {
            "grant_type": "client_credentials",
            "client_id": self.service_client_id,
            "client_secret": self._service_client_secret,
        }
        result = self.send("POST", url, IdpOperation.SERVICE_TOKEN, data=data)
        if not result.ok:
            logger.error(f"Service account authentication failed | {result.failure.describe()}")
            return IdpResult.fail(result.failure)

        payload = decode_json(result.value, IdpOperation.SERVICE_TOKEN)
        if not payload.ok:
            return IdpResult.fail(payload.failure)
        token = payload.value.get("access_token") if isinstance(payload.value, dict) else None
        if not token:
            return IdpResult.fail(
                IdpFailure(IdpOperation.SERVICE_TOKEN, FailureReason.DECODE, body="missing access_token", endpoint=url)
            )

        expires_in = int(payload.value.get("expires_in") or 60)
        self._token = token
        self._token_expires_at = now + timedelta(seconds=expires_in)
        logger.debug(f"Service account token refreshed | client_id={self.service_client_id} | expires_in={expires_in}")
        return IdpResult.success(token)

    def close(self) -> None:
        self._session.close()


def decode_json(resp: requests.Response, operation: IdpOperation) -> IdpResult[Any]:
    """Decode a JSON body, turning a malformed payload into a DECODE failure."""
    try:
        return IdpResult.success(resp.json())
    except ValueError:
        return IdpResult.fail(
            IdpFailure(
                operation,
                FailureReason.DECODE,
                resp.status_code,
                (resp.text or "")[:500],
                getattr(resp, "url", "") or "",
            )
        )
