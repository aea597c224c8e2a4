import asyncio
import logging

import pytest
from flask import g

from identity_broker.api import decorators
from identity_broker.core.errors import BrokerError, ErrorKind


def test_current_broker_reads_app_config(app):
    with app.app_context():
        assert decorators.current_broker() is app.config["BROKER"]


def test_json_body_returns_object(app):
    with app.test_request_context("/", method="POST", json={"username": "alice"}):
        assert decorators.json_body() == {"username": "alice"}


@pytest.mark.parametrize("kwargs", [
    {"json": ["alice"]},
    {"data": "not json", "content_type": "application/json"},
    {},
])
def test_json_body_rejects_non_objects(app, kwargs):
    with app.test_request_context("/", method="POST", **kwargs):
        with pytest.raises(BrokerError) as exc:
            decorators.json_body()
    assert exc.value.kind is ErrorKind.BAD_REQUEST


@pytest.mark.parametrize("query, expected", [("", 10), ("?size=", 10), ("?size=25", 25), ("?size=-1", -1)])
def test_int_arg(app, query, expected):
    with app.test_request_context(f"/roles{query}"):
        assert decorators.int_arg("size", 10) == expected


def test_int_arg_rejects_non_integer(app):
    with app.test_request_context("/roles?page=two"):
        with pytest.raises(BrokerError) as exc:
            decorators.int_arg("page", 0)
    assert exc.value.kind is ErrorKind.BAD_REQUEST
    assert "page" in exc.value.message


def test_from_path_and_from_body(app):
    assert decorators.from_path("user_id")({"user_id": "u-1"}) == "u-1"
    assert decorators.from_path("user_id")({}) is None

    with app.test_request_context("/", method="POST", json={"username": "alice", "password": ""}):
        assert decorators.from_body("username")({}) == "alice"
        assert decorators.from_body("password")({}) is None
        assert decorators.from_body("missing")({}) is None


def test_traced_publishes_correlation_id(app, caplog):
    caplog.set_level(logging.INFO, logger="identity_broker")

    @decorators.traced("get_user", subject=decorators.from_path("user_id"))
    async def view(user_id):
        return g.correlation_id, user_id

    with app.test_request_context("/users/u-1"):
        correlation_id, user_id = asyncio.run(view(user_id="u-1"))
        assert g.trace.correlation_id == correlation_id

    assert user_id == "u-1"
    messages = [r.getMessage() for r in caplog.records if f"correlation_id={correlation_id}" in r.getMessage()]
    assert messages[0].startswith("get_user started")
    assert "subject=u-1" in messages[0]
    assert messages[-1].startswith("get_user successful")


def test_traced_reraises_broker_errors(app):
    @decorators.traced("delete_user")
    async def view():
        raise BrokerError(ErrorKind.NOT_FOUND, "User not found")

    with app.test_request_context("/users/u-1", method="DELETE"):
        with pytest.raises(BrokerError) as exc:
            asyncio.run(view())
        assert g.correlation_id

    assert exc.value.kind is ErrorKind.NOT_FOUND
