"""Flask decorators and request helpers shared by the broker blueprints.

``traced`` wraps an async view in the broker's request tracer and publishes
the correlation ID on ``g`` so the envelope, the error handlers and the
``X-Correlation-Id`` header all report the same value.
"""
from __future__ import annotations
from functools import wraps
from typing import Any, Callable, Dict, Optional

from flask import current_app, g, request

from ..core.broker import Broker
from ..core.errors import BrokerError, ErrorKind

SubjectFn = Callable[[Dict[str, Any]], Optional[str]]


def current_broker() -> Broker:
    return current_app.config["BROKER"]


def from_path(name: str) -> SubjectFn:
    """Trace subject taken from a URL variable (e.g. user_id)."""
    return lambda view_kwargs: view_kwargs.get(name)


def from_body(field: str) -> SubjectFn:
    """Trace subject taken from a JSON body field (e.g. username)."""

    def _subject(view_kwargs: Dict[str, Any]) -> Optional[str]:
        body = request.get_json(silent=True)
        value = body.get(field) if isinstance(body, dict) else None
        return value if isinstance(value, str) and value else None

    return _subject


def traced(operation: str, subject: Optional[SubjectFn] = None):
    """Run an async view inside ``RequestTracer.trace(operation)``.

    Usage:
        @bp.route("/<user_id>", methods=["GET"])
        @traced("get_user", subject=from_path("user_id"))
        async def get_user(user_id):
            ...
    """

    def decorator(view):
        @wraps(view)
        async def wrapper(*args, **kwargs):
            tracer = current_broker().tracer
            async with tracer.trace(operation, subject(kwargs) if subject else None) as trace:
                g.correlation_id = trace.correlation_id
                g.trace = trace
                return await view(*args, **kwargs)

        return wrapper

    return decorator


def json_body() -> Dict[str, Any]:
    """Return the JSON object body or raise BAD_REQUEST."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BrokerError(ErrorKind.BAD_REQUEST, "Request body must be a JSON object")
    return body


def int_arg(name: str, default: int) -> int:
    """Read an integer query parameter; non-integers are BAD_REQUEST."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise BrokerError(ErrorKind.BAD_REQUEST, f"Query parameter '{name}' must be an integer") from None
