"""Pytest shared fixtures: an in-memory Keycloak realm and a wired broker app."""
import itertools
import json
import os
import pathlib
import sys
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")

import jwt
import pytest
import requests

from identity_broker.config import AppConfig
from identity_broker.flask_app import create_app

KC_URL = "http://keycloak.test"
REALM = "library"
SERVICE_CLIENT_ID = "user-service"
SERVICE_SECRET = "service-secret"
OIDC_CLIENT_ID = "library-portal"
OIDC_SECRET = "portal-secret"
SERVICE_TOKEN = "service-account-token"

OIDC_PREFIX = f"/realms/{REALM}/protocol/openid-connect/"
ADMIN_PREFIX = f"/admin/realms/{REALM}"
TOKEN_PATH = f"{OIDC_PREFIX}token"

_NO_BODY = object()


# ─────────────────────────────────────────────────────────────────────────────
# Stub HTTP responses
# ─────────────────────────────────────────────────────────────────────────────
class StubResponse:
    """The slice of requests.Response the adapter reads."""

    def __init__(self, status_code: int = 200, payload: Any = _NO_BODY, headers: Optional[dict] = None,
                 text: Optional[str] = None, url: str = ""):
        self.status_code = status_code
        self._payload = payload
        if text is not None:
            self.text = text
        else:
            self.text = "" if payload is _NO_BODY else json.dumps(payload)
        self.headers = headers or {}
        self.url = url

    def json(self):
        if self._payload is _NO_BODY:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


def make_access_token(subject: str = "u-1", expires_in: int = 300) -> str:
    """HS256 JWT whose exp claim is ``expires_in`` seconds from now."""
    return jwt.encode({"sub": subject, "exp": int(time.time()) + expires_in}, "test-signing-key", algorithm="HS256")


# ─────────────────────────────────────────────────────────────────────────────
# In-memory Keycloak
# ─────────────────────────────────────────────────────────────────────────────
class FakeKeycloak:
    """One Keycloak realm speaking the OIDC and Admin REST calls the broker makes.

    Used as the adapter's HTTP session. Service-account token requests are
    answered but not recorded; every other request lands in ``calls`` as
    ``(method, path, kwargs)`` with the path relative to the server URL.
    Register a canned response or exception with ``fail(method, path, ...)``
    to inject provider failures.
    """

    def __init__(self, realm: str = REALM):
        self.realm = realm
        self.users: Dict[str, dict] = {}
        self.passwords: Dict[str, str] = {}
        self.roles: Dict[str, dict] = {}
        self.mappings: Dict[str, List[str]] = {}
        self.sessions: Dict[str, str] = {}
        self.access_tokens: Dict[str, str] = {}
        self.calls: List[Tuple[str, str, dict]] = []
        self.failures: Dict[Tuple[str, str], Any] = {}
        self.service_token_requests = 0
        self.closed = False
        self._ids = itertools.count(1)
        self.add_role(f"default-roles-{realm}", "Default realm roles", composite=True)

    # Seeding ---------------------------------------------------------------
    def add_role(self, name: str, description: str = "", composite: bool = False) -> dict:
        rep = {
            "id": f"role-{name.lower()}",
            "name": name,
            "description": description,
            "composite": composite,
            "clientRole": False,
            "containerId": self.realm,
        }
        self.roles[name] = rep
        return rep

    def add_user(self, username: str, password: str = "s3cret", *, email: Optional[str] = None,
                 first_name: str = "Test", last_name: str = "User", enabled: bool = True,
                 roles: Tuple[str, ...] = ()) -> str:
        user_id = self._create_user({
            "username": username,
            "email": email or f"{username}@library.test",
            "firstName": first_name,
            "lastName": last_name,
            "enabled": enabled,
            "emailVerified": True,
        })
        self.passwords[user_id] = password
        self.mappings[user_id].extend(roles)
        return user_id

    def fail(self, method: str, path: str, outcome: Any) -> None:
        """Answer ``method path`` with a StubResponse or raise an exception."""
        self.failures[(method, path)] = outcome

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [path for verb, path, _ in self.calls if method is None or verb == method]

    # Session interface -----------------------------------------------------
    def request(self, method: str, url: str, headers: Optional[dict] = None, timeout: Any = None, **kwargs):
        if timeout is None:
            raise AssertionError(f"request without timeout: {method} {url}")
        if not url.startswith(KC_URL):
            raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")
        headers = headers or {}
        path = url[len(KC_URL):]
        form = kwargs.get("data") or {}

        if method == "POST" and path == TOKEN_PATH and form.get("grant_type") == "client_credentials":
            self.service_token_requests += 1
            if form.get("client_id") != SERVICE_CLIENT_ID or form.get("client_secret") != SERVICE_SECRET:
                return StubResponse(401, {"error": "unauthorized_client"})
            return StubResponse(200, {"access_token": SERVICE_TOKEN, "expires_in": 300, "token_type": "Bearer"})

        self.calls.append((method, path, kwargs))
        outcome = self.failures.get((method, path))
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return outcome

        if path.startswith(OIDC_PREFIX):
            return self._oidc(method, path[len(OIDC_PREFIX):], headers, form)
        if path.startswith(ADMIN_PREFIX):
            if headers.get("Authorization") != f"Bearer {SERVICE_TOKEN}":
                return StubResponse(401, {"error": "HTTP 401 Unauthorized"})
            return self._admin(method, path[len(ADMIN_PREFIX):], kwargs.get("params") or {}, kwargs.get("json"), url)
        raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")

    def close(self):
        self.closed = True

    # OIDC endpoints --------------------------------------------------------
    def _oidc(self, method: str, endpoint: str, headers: dict, form: dict):
        if endpoint == "userinfo" and method == "GET":
            token = headers.get("Authorization", "")[len("Bearer "):]
            user_id = self.access_tokens.get(token)
            if user_id is None or user_id not in self.users:
                return StubResponse(401, {"error": "invalid_token"})
            rep = self.users[user_id]
            return StubResponse(200, {
                "sub": user_id,
                "preferred_username": rep["username"],
                "email": rep.get("email"),
                "given_name": rep.get("firstName"),
                "family_name": rep.get("lastName"),
                "email_verified": rep.get("emailVerified", False),
            })

        if form.get("client_id") != OIDC_CLIENT_ID or form.get("client_secret") != OIDC_SECRET:
            return StubResponse(401, {"error": "unauthorized_client"})

        if endpoint == "logout" and method == "POST":
            if self.sessions.pop(form.get("refresh_token"), None) is None:
                return StubResponse(400, {"error": "invalid_grant", "error_description": "Invalid refresh token"})
            return StubResponse(204)

        if endpoint == "token" and method == "POST":
            grant = form.get("grant_type")
            if grant == "password":
                for user_id, rep in self.users.items():
                    if (rep["username"] == form.get("username") and rep.get("enabled")
                            and self.passwords.get(user_id) == form.get("password")):
                        return self._issue(user_id)
                return StubResponse(401, {"error": "invalid_grant", "error_description": "Invalid user credentials"})
            if grant == "refresh_token":
                user_id = self.sessions.pop(form.get("refresh_token"), None)
                if user_id is None:
                    return StubResponse(400, {"error": "invalid_grant", "error_description": "Token is not active"})
                return self._issue(user_id)
            return StubResponse(400, {"error": "unsupported_grant_type"})

        raise RuntimeError(f"Unexpected OIDC call in unit test: {method} {endpoint}")

    def _issue(self, user_id: str):
        access_token = make_access_token(user_id)
        refresh_token = f"refresh-{next(self._ids)}"
        self.access_tokens[access_token] = user_id
        self.sessions[refresh_token] = user_id
        return StubResponse(200, {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "Bearer",
            "expires_in": 300,
            "refresh_expires_in": 1800,
        })

    # Admin REST API --------------------------------------------------------
    def _admin(self, method: str, path: str, params: dict, body: Any, url: str):
        parts = [unquote(part) for part in path.strip("/").split("/")]

        if parts == ["users"]:
            if method == "GET":
                return StubResponse(200, self._slice(list(self.users.values()), params))
            if method == "POST":
                if any(rep["username"] == body["username"] for rep in self.users.values()):
                    return StubResponse(409, {"errorMessage": "User exists with same username"})
                user_id = self._create_user(body)
                return StubResponse(201, headers={"Location": f"{KC_URL}{ADMIN_PREFIX}/users/{user_id}"})

        if parts == ["users", "count"] and method == "GET":
            return StubResponse(200, len(self.users))

        if parts[0] == "users" and len(parts) >= 2:
            user_id = parts[1]
            if user_id not in self.users:
                return StubResponse(404, {"error": "User not found"}, url=url)
            rest = parts[2:]
            if not rest:
                if method == "GET":
                    return StubResponse(200, self.users[user_id], url=url)
                if method == "PUT":
                    self.users[user_id].update(body)
                    return StubResponse(204)
                if method == "DELETE":
                    del self.users[user_id]
                    self.mappings.pop(user_id, None)
                    return StubResponse(204)
            if rest == ["reset-password"] and method == "PUT":
                self.passwords[user_id] = body["value"]
                return StubResponse(204)
            if rest == ["role-mappings", "realm"]:
                if method == "GET":
                    return StubResponse(200, [self.roles[name] for name in self.mappings[user_id]])
                if method == "POST":
                    for role in body:
                        if role["name"] not in self.mappings[user_id]:
                            self.mappings[user_id].append(role["name"])
                    return StubResponse(204)
                if method == "DELETE":
                    removed = {role["name"] for role in body}
                    self.mappings[user_id] = [name for name in self.mappings[user_id] if name not in removed]
                    return StubResponse(204)

        if parts == ["roles"]:
            if method == "GET":
                return StubResponse(200, self._slice(list(self.roles.values()), params))
            if method == "POST":
                if body["name"] in self.roles:
                    return StubResponse(409, {"errorMessage": "Role with same name exists"})
                self.add_role(body["name"], body.get("description", ""))
                return StubResponse(201)

        if parts[0] == "roles" and len(parts) == 2 and method == "GET":
            role = self.roles.get(parts[1])
            if role is None:
                return StubResponse(404, {"error": "Could not find role"}, url=url)
            return StubResponse(200, role, url=url)

        raise RuntimeError(f"Unexpected admin call in unit test: {method} {path}")

    def _create_user(self, rep: dict) -> str:
        user_id = f"u-{next(self._ids)}"
        stored = dict(rep)
        stored.update({"id": user_id, "createdTimestamp": int(time.time() * 1000)})
        self.users[user_id] = stored
        self.mappings[user_id] = [f"default-roles-{self.realm}"]
        return user_id

    @staticmethod
    def _slice(items: list, params: dict) -> list:
        if "first" not in params:
            return items
        first = int(params["first"])
        return items[first:first + int(params["max"])]


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_real_http(monkeypatch, request):
    """Keep unit tests off the network; integration tests opt out with the marker."""
    if request.node.get_closest_marker("integration"):
        return

    def _guard(self, method, url, *args, **kwargs):
        raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")

    monkeypatch.setattr(requests.Session, "request", _guard)


# ─────────────────────────────────────────────────────────────────────────────
# Broker fixtures
# ─────────────────────────────────────────────────────────────────────────────
def make_config(**overrides) -> AppConfig:
    base = dict(
        demo_mode=False,
        keycloak_url=KC_URL,
        keycloak_realm=REALM,
        keycloak_service_realm=REALM,
        keycloak_service_client_id=SERVICE_CLIENT_ID,
        keycloak_service_client_secret=SERVICE_SECRET,
        oidc_client_id=OIDC_CLIENT_ID,
        oidc_client_secret=OIDC_SECRET,
        idp_request_timeout=2.0,
        idp_worker_pool_size=4,
    )
    base.update(overrides)
    return AppConfig(**base)


@pytest.fixture()
def keycloak():
    kc = FakeKeycloak()
    kc.add_role("PATRON", "Regular library user with borrowing privileges")
    kc.add_role("LIBRARIAN", "Professional librarian with full library services access")
    kc.add_role("GUEST", "Limited access user for basic services")
    return kc


@pytest.fixture()
def app(keycloak):
    flask_app = create_app(make_config(), session=keycloak)
    flask_app.config.update(TESTING=True)
    yield flask_app
    flask_app.config["BROKER"].close()


@pytest.fixture()
def broker(app):
    return app.config["BROKER"]


@pytest.fixture()
def client(app):
    """Flask test client wired to the in-memory realm."""
    with app.test_client() as client:
        yield client
