"""Error handlers for the application.

Every error leaves the broker as the JSON error envelope with the request's
correlation ID. Provider details never reach the payload; unexpected
exceptions are logged with their traceback and reported as INTERNAL.
"""
import logging

from flask import g
from werkzeug.exceptions import HTTPException

from ..core.errors import BrokerError, ErrorKind
from . import envelope

logger = logging.getLogger(__name__)

_HTTP_KINDS = {
    400: (ErrorKind.BAD_REQUEST, "Malformed request"),
    401: (ErrorKind.AUTH_FAILED, "Authentication required"),
    404: (ErrorKind.NOT_FOUND, "Resource not found"),
    405: (ErrorKind.BAD_REQUEST, "Method not allowed for this resource"),
    413: (ErrorKind.BAD_REQUEST, "Request payload too large"),
    415: (ErrorKind.BAD_REQUEST, "Unsupported media type"),
}


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(BrokerError)
    def handle_broker_error(error: BrokerError):
        """Handle normalized broker errors raised by services and views."""
        return envelope.failure(error)

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        """Handle routing/protocol errors raised by Flask itself (404, 405, ...)."""
        status = error.code or 500
        kind, message = _HTTP_KINDS.get(
            status,
            (ErrorKind.BAD_REQUEST, "Invalid request") if status < 500 else (ErrorKind.INTERNAL, None),
        )
        body, _ = envelope.failure(BrokerError(kind, message))
        return body, status

    @app.errorhandler(Exception)
    def handle_exception(error: Exception):
        """Handle uncaught exceptions."""
        logger.error(
            f"Unhandled exception | correlation_id={g.get('correlation_id', '-')} | "
            f"error_type={type(error).__name__} | error={error}",
            exc_info=True,
        )
        return envelope.failure(BrokerError(ErrorKind.INTERNAL))
