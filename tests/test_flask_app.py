import logging

from conftest import make_config
from identity_broker.api.envelope import CORRELATION_HEADER
from identity_broker.core.broker import Broker
from identity_broker.flask_app import create_app


def test_create_app_wires_broker(app, keycloak):
    broker = app.config["BROKER"]

    assert isinstance(broker, Broker)
    assert broker.client.realm == "library"
    assert broker.pool.max_workers == 4
    assert app.config["APP_CONFIG"].keycloak_url == "http://keycloak.test"
    assert keycloak.calls == []


def test_blueprints_registered(app):
    rules = {rule.rule for rule in app.url_map.iter_rules()}
    for expected in (
        "/auth/login",
        "/auth/refresh",
        "/auth/logout",
        "/auth/me",
        "/auth/register",
        "/users",
        "/users/all",
        "/users/<user_id>",
        "/roles",
        "/roles/all",
        "/health",
        "/ready",
    ):
        assert expected in rules


def test_api_prefix_mounts_routes(keycloak):
    app = create_app(make_config(api_prefix="/api/v1"), session=keycloak)
    try:
        with app.test_client() as client:
            assert client.get("/api/v1/roles").status_code == 200
            assert client.get("/roles").status_code == 404
            assert client.get("/health").status_code == 200
    finally:
        app.config["BROKER"].close()


def test_correlation_header_matches_trace_log(client, caplog):
    caplog.set_level(logging.INFO, logger="identity_broker")

    response = client.get("/roles")

    correlation_id = response.headers[CORRELATION_HEADER]
    assert correlation_id == response.get_json()["correlation_id"]
    trace_lines = [r.getMessage() for r in caplog.records if f"correlation_id={correlation_id}" in r.getMessage()]
    assert trace_lines[0].startswith("list_roles started")
    assert trace_lines[-1].startswith("list_roles successful")


def test_each_request_gets_new_correlation_id(client):
    first = client.get("/roles").headers[CORRELATION_HEADER]
    second = client.get("/roles").headers[CORRELATION_HEADER]
    assert first != second


def test_health_has_no_correlation_header(client):
    assert CORRELATION_HEADER not in client.get("/health").headers


def test_broker_close_releases_session(keycloak):
    app = create_app(make_config(), session=keycloak)
    app.config["BROKER"].close()
    assert keycloak.closed
