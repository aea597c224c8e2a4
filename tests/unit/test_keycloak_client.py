"""Tests for the Keycloak HTTP client: service-account token, transport outcomes."""
from datetime import datetime, timedelta, timezone

import pytest
import requests

from conftest import ADMIN_PREFIX, KC_URL, REALM, SERVICE_CLIENT_ID, SERVICE_SECRET, SERVICE_TOKEN, StubResponse
from identity_broker.core.keycloak import FailureReason, IdpOperation, KeycloakClient, decode_json


@pytest.fixture()
def kc_client(keycloak):
    return KeycloakClient(
        KC_URL,
        REALM,
        service_client_id=SERVICE_CLIENT_ID,
        service_client_secret=SERVICE_SECRET,
        timeout=2.0,
        session=keycloak,
    )


def test_url_helpers(kc_client):
    assert kc_client.oidc_url("token") == f"{KC_URL}/realms/library/protocol/openid-connect/token"
    assert kc_client.admin_url("/users/count") == f"{KC_URL}/admin/realms/library/users/count"


def test_trailing_slash_in_base_url_is_dropped(keycloak):
    client = KeycloakClient(f"{KC_URL}/", REALM, session=keycloak)
    assert client.admin_url("/roles") == f"{KC_URL}/admin/realms/library/roles"
    assert client.service_realm == REALM


def test_admin_call_sends_service_token_and_timeout(kc_client, keycloak):
    keycloak.add_user("alice")

    result = kc_client.get("/users/count", IdpOperation.COUNT_USERS)

    assert result.ok
    assert result.value.json() == 1
    method, path, kwargs = keycloak.calls[-1]
    assert (method, path) == ("GET", f"{ADMIN_PREFIX}/users/count")


def test_service_token_is_cached(kc_client, keycloak):
    kc_client.get("/users/count", IdpOperation.COUNT_USERS)
    kc_client.get("/roles", IdpOperation.LIST_ROLES)

    assert keycloak.service_token_requests == 1
    assert kc_client._token == SERVICE_TOKEN


def test_service_token_refreshed_near_expiry(kc_client, keycloak):
    kc_client.get("/users/count", IdpOperation.COUNT_USERS)
    kc_client._token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=5)

    kc_client.get("/users/count", IdpOperation.COUNT_USERS)

    assert keycloak.service_token_requests == 2


def test_service_token_failure_stops_admin_call(keycloak):
    client = KeycloakClient(KC_URL, REALM, service_client_id=SERVICE_CLIENT_ID,
                            service_client_secret="wrong", session=keycloak)

    result = client.get("/users/count", IdpOperation.COUNT_USERS)

    assert not result.ok
    assert result.failure.operation is IdpOperation.SERVICE_TOKEN
    assert result.failure.status_code == 401
    assert keycloak.calls == []


def test_error_status_becomes_failure(kc_client, keycloak):
    result = kc_client.get("/users/missing", IdpOperation.GET_USER)

    assert not result.ok
    failure = result.failure
    assert failure.reason is FailureReason.STATUS
    assert failure.status_code == 404
    assert failure.operation is IdpOperation.GET_USER
    assert failure.endpoint == f"{KC_URL}{ADMIN_PREFIX}/users/missing"
    assert "User not found" in failure.body


@pytest.mark.parametrize(
    "exc, reason",
    [
        (requests.Timeout("read timed out"), FailureReason.TIMEOUT),
        (requests.ConnectionError("connection refused"), FailureReason.CONNECTION),
        (requests.TooManyRedirects("exceeded 30 redirects"), FailureReason.CONNECTION),
        (requests.exceptions.ChunkedEncodingError("connection broken"), FailureReason.CONNECTION),
        (requests.exceptions.InvalidURL("invalid label"), FailureReason.CONNECTION),
        (requests.exceptions.ContentDecodingError("incorrect header check"), FailureReason.DECODE),
    ],
)
def test_transport_errors_become_failures(kc_client, keycloak, exc, reason):
    keycloak.fail("GET", f"{ADMIN_PREFIX}/users/count", exc)

    result = kc_client.get("/users/count", IdpOperation.COUNT_USERS)

    assert not result.ok
    assert result.failure.reason is reason
    assert result.failure.status_code is None


def test_decode_json_reports_malformed_body():
    resp = StubResponse(200, text="<html>gateway</html>", url="http://keycloak.test/x")

    result = decode_json(resp, IdpOperation.LIST_USERS)

    assert not result.ok
    assert result.failure.reason is FailureReason.DECODE
    assert result.failure.status_code == 200
    assert result.failure.body == "<html>gateway</html>"


def test_close_closes_session(kc_client, keycloak):
    kc_client.close()
    assert keycloak.closed
