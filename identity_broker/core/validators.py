"""Input validation for request payloads.

Field checks raise ``ValueError`` with a user-facing message. The payload
helpers collect those messages per field and raise a single
``BrokerError(VALIDATION_ERROR)`` carrying the ``{field: message}`` map, so
invalid input never reaches the identity provider.
"""
from __future__ import annotations
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import BrokerError, ErrorKind
from .models import UserProfile, UserUpdate

MAX_PAGE_SIZE = 100


def normalize_username(raw: str) -> str:
    """Normalize and validate username.

    Args:
        raw: Raw username input

    Returns:
        Normalized username

    Raises:
        ValueError: If username is invalid
    """
    normalized = "".join(char for char in raw.lower().strip() if char.isalnum() or char in {".", "-", "_", "@"})

    if len(normalized) < 3:
        raise ValueError("Username must be at least 3 characters")
    if len(normalized) > 64:
        raise ValueError("Username must not exceed 64 characters")
    if normalized[0] in {".", "-", "_"} or normalized[-1] in {".", "-", "_"}:
        raise ValueError("Username cannot start or end with special characters")

    return normalized


def validate_email(email: str) -> str:
    """Validate email address.

    Returns:
        Normalized (trimmed, lower-case) email address

    Raises:
        ValueError: If email is invalid
    """
    email = email.strip().lower()
    if not email or "@" not in email:
        raise ValueError("Invalid email format")

    local, domain = email.rsplit("@", 1)
    if not local or not domain or "." not in domain:
        raise ValueError("Invalid email format")
    if len(email) > 254:
        raise ValueError("Email exceeds maximum length")

    return email


def validate_name(name: str, field: str) -> str:
    """Validate first/last name fields.

    Args:
        name: Name to validate
        field: Field name for error messages (e.g., "First name")

    Raises:
        ValueError: If name is invalid
    """
    name = name.strip()
    if not name:
        raise ValueError(f"{field} is required")
    if len(name) > 128:
        raise ValueError(f"{field} exceeds maximum length")

    if any(char in name for char in "<>\"'`;&|$"):
        raise ValueError(f"{field} contains invalid characters")

    return name


def require_text(value: Any, field: str) -> str:
    """Return a non-blank string; passwords and tokens are kept as given."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} is required")
    return value


def validate_role_names(value: Any) -> Tuple[str, ...]:
    """Validate a list of role names, dropping duplicates but keeping order."""
    if not isinstance(value, list):
        raise ValueError("Roles must be a list of role names")
    names = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ValueError("Role names must be non-empty strings")
        if item.strip() not in names:
            names.append(item.strip())
    return tuple(names)


def validate_page(page: int, size: int) -> None:
    """Reject out-of-range pagination before any IdP call."""
    if page < 0:
        raise BrokerError(ErrorKind.BAD_REQUEST, "Page number must be non-negative")
    if size < 1 or size > MAX_PAGE_SIZE:
        raise BrokerError(ErrorKind.BAD_REQUEST, f"Page size must be between 1 and {MAX_PAGE_SIZE}")


# ─────────────────────────────────────────────────────────────────────────────
# Payload helpers
# ─────────────────────────────────────────────────────────────────────────────
class _FieldErrors:
    """Runs field checks and remembers the first message for each failing field."""

    def __init__(self):
        self.errors: Dict[str, str] = {}

    def check(self, field: str, check: Callable[..., Any], *args: Any) -> Any:
        try:
            return check(*args)
        except ValueError as exc:
            self.errors.setdefault(field, str(exc))
            return None

    def raise_if_any(self) -> None:
        if self.errors:
            raise BrokerError(ErrorKind.VALIDATION_ERROR, validation_errors=dict(self.errors))


def _text(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else ""


def validate_credentials(username: Any, password: Any) -> Tuple[str, str]:
    """Login input: both fields must be present and non-blank."""
    fields = _FieldErrors()
    username = fields.check("username", require_text, username, "Username")
    password = fields.check("password", require_text, password, "Password")
    fields.raise_if_any()
    return username.strip(), password


def validate_token(refresh_token: Any) -> str:
    """Refresh/logout input: the refresh token must be a non-blank string."""
    fields = _FieldErrors()
    token = fields.check("refresh_token", require_text, refresh_token, "Refresh token")
    fields.raise_if_any()
    return token.strip()


def validate_new_user(payload: Dict[str, Any], *, allow_roles: bool = True) -> Tuple[UserProfile, str]:
    """Validate a create-user or registration body.

    Returns:
        (profile, password)

    Raises:
        BrokerError: VALIDATION_ERROR with one message per invalid field
    """
    fields = _FieldErrors()
    username = fields.check("username", normalize_username, _text(payload, "username"))
    email = fields.check("email", validate_email, _text(payload, "email"))
    password = fields.check("password", require_text, payload.get("password"), "Password")
    first_name = fields.check("first_name", validate_name, _text(payload, "first_name"), "First name")
    last_name = fields.check("last_name", validate_name, _text(payload, "last_name"), "Last name")

    enabled = payload.get("enabled", True)
    if enabled is None:
        enabled = True
    if not isinstance(enabled, bool):
        fields.errors["enabled"] = "Enabled must be a boolean"

    roles: Tuple[str, ...] = ()
    if allow_roles and payload.get("roles") is not None:
        roles = fields.check("roles", validate_role_names, payload.get("roles")) or ()

    fields.raise_if_any()
    profile = UserProfile(
        username=username,
        email=email,
        first_name=first_name,
        last_name=last_name,
        enabled=enabled,
        roles=roles,
    )
    return profile, password


def validate_user_update(payload: Dict[str, Any]) -> UserUpdate:
    """Validate a partial update; absent or null fields stay unchanged."""
    fields = _FieldErrors()
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    enabled: Optional[bool] = None
    roles: Optional[Tuple[str, ...]] = None

    if payload.get("email") is not None:
        email = fields.check("email", validate_email, _text(payload, "email"))
    if payload.get("first_name") is not None:
        first_name = fields.check("first_name", validate_name, _text(payload, "first_name"), "First name")
    if payload.get("last_name") is not None:
        last_name = fields.check("last_name", validate_name, _text(payload, "last_name"), "Last name")
    if payload.get("enabled") is not None:
        if isinstance(payload["enabled"], bool):
            enabled = payload["enabled"]
        else:
            fields.errors["enabled"] = "Enabled must be a boolean"
    if payload.get("roles") is not None:
        roles = fields.check("roles", validate_role_names, payload["roles"])

    fields.raise_if_any()
    return UserUpdate(email=email, first_name=first_name, last_name=last_name, enabled=enabled, roles=roles)
