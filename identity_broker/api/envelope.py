"""Uniform JSON response envelope.

Success:
    {"success": true, "message": "...", "data": {...}, "pagination": {...},
     "correlation_id": "...", "timestamp": "2025-01-01T00:00:00+00:00"}

Error:
    {"success": false, "message": "Operation failed",
     "error": {"code": "NOT_FOUND", "message": "...", "validation_errors": {...}},
     "correlation_id": "...", "timestamp": "..."}

Optional members are omitted when absent.
"""
from __future__ import annotations
import uuid
from typing import Any, Optional

from flask import Response, g, jsonify

from ..core.errors import BrokerError
from ..core.models import PagedResult, isoformat, utcnow

CORRELATION_HEADER = "X-Correlation-Id"
DEFAULT_SUCCESS_MESSAGE = "Operation successful"
ERROR_MESSAGE = "Operation failed"


def current_correlation_id() -> str:
    """Correlation ID of the current request, created on first use."""
    correlation_id = g.get("correlation_id")
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        g.correlation_id = correlation_id
    return correlation_id


def build(
    success: bool,
    message: str,
    *,
    data: Any = None,
    error: Optional[dict] = None,
    pagination: Optional[dict] = None,
    correlation_id: Optional[str] = None,
) -> dict:
    body: dict = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    if pagination is not None:
        body["pagination"] = pagination
    if correlation_id:
        body["correlation_id"] = correlation_id
    body["timestamp"] = isoformat(utcnow())
    return body


def success(data: Any = None, message: str = DEFAULT_SUCCESS_MESSAGE, status: int = 200) -> tuple[Response, int]:
    """Success envelope for route handlers."""
    return jsonify(build(True, message, data=data, correlation_id=current_correlation_id())), status


def paged(page: PagedResult, message: str = DEFAULT_SUCCESS_MESSAGE) -> tuple[Response, int]:
    """Success envelope carrying one page of serializable items."""
    body = build(
        True,
        message,
        data=[item.to_dict() for item in page.content],
        pagination=page.pagination(),
        correlation_id=current_correlation_id(),
    )
    return jsonify(body), 200


def failure(error: BrokerError) -> tuple[Response, int]:
    """Error envelope for a BrokerError; the status comes from its kind."""
    correlation_id = error.correlation_id or current_correlation_id()
    return jsonify(build(False, ERROR_MESSAGE, error=error.to_dict(), correlation_id=correlation_id)), error.status
