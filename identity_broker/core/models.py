"""Domain records exchanged between the services and the HTTP layer."""
from __future__ import annotations
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

TOKEN_TYPE = "Bearer"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def from_epoch_millis(value: Any) -> Optional[datetime]:
    """Convert Keycloak's createdTimestamp (epoch ms) to an aware datetime."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


@dataclass(frozen=True)
class TokenSet:
    """Access/refresh token pair returned by a password or refresh grant."""

    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int
    issued_at: datetime
    token_type: str = TOKEN_TYPE

    def to_dict(self, issued_key: str = "login_time") -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "refresh_expires_in": self.refresh_expires_in,
            issued_key: isoformat(self.issued_at),
        }


@dataclass(frozen=True)
class CurrentUser:
    """Userinfo claims projected for GET /auth/me."""

    username: Optional[str]
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    email_verified: bool
    active: bool = True

    @classmethod
    def from_claims(cls, claims: dict) -> "CurrentUser":
        return cls(
            username=claims.get("preferred_username"),
            email=claims.get("email"),
            first_name=claims.get("given_name"),
            last_name=claims.get("family_name"),
            email_verified=bool(claims.get("email_verified", False)),
        )

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email_verified": self.email_verified,
            "active": self.active,
        }


@dataclass(frozen=True)
class UserIdentity:
    user_id: str
    username: str
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    enabled: bool
    email_verified: bool
    created_at: Optional[datetime]
    roles: Tuple[str, ...] = ()

    @classmethod
    def from_representation(cls, rep: dict, roles: Sequence[str] = ()) -> "UserIdentity":
        """Build from a Keycloak UserRepresentation plus its role names."""
        return cls(
            user_id=rep["id"],
            username=rep.get("username", ""),
            email=rep.get("email"),
            first_name=rep.get("firstName"),
            last_name=rep.get("lastName"),
            enabled=bool(rep.get("enabled", False)),
            email_verified=bool(rep.get("emailVerified", False)),
            created_at=from_epoch_millis(rep.get("createdTimestamp")),
            roles=tuple(sorted(set(roles))),
        )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "enabled": self.enabled,
            "email_verified": self.email_verified,
            "created_at": isoformat(self.created_at),
            "roles": list(self.roles),
        }


@dataclass(frozen=True)
class Role:
    id: str
    name: str
    description: Optional[str]
    composite: bool
    client_role: bool
    container_id: Optional[str]

    @classmethod
    def from_representation(cls, rep: dict) -> "Role":
        return cls(
            id=rep.get("id", ""),
            name=rep.get("name", ""),
            description=rep.get("description"),
            composite=bool(rep.get("composite", False)),
            client_role=bool(rep.get("clientRole", False)),
            container_id=rep.get("containerId"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "composite": self.composite,
            "client_role": self.client_role,
            "container_id": self.container_id,
        }


@dataclass(frozen=True)
class UserProfile:
    """Account fields for a create or registration call (password kept apart)."""

    username: str
    email: str
    first_name: str
    last_name: str
    enabled: bool = True
    email_verified: bool = False
    roles: Tuple[str, ...] = ()

    def to_representation(self) -> dict:
        return {
            "username": self.username,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "enabled": self.enabled,
            "emailVerified": self.email_verified,
        }


@dataclass(frozen=True)
class UserUpdate:
    """Partial update; ``None`` leaves the stored value unchanged."""

    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    enabled: Optional[bool] = None
    roles: Optional[Tuple[str, ...]] = None

    def representation_fields(self) -> dict:
        """Keycloak representation fields that this update overwrites."""
        mapping = {
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "enabled": self.enabled,
        }
        return {key: value for key, value in mapping.items() if value is not None}


@dataclass(frozen=True)
class CreatedUser:
    user_id: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "created_at": isoformat(self.created_at)}


@dataclass(frozen=True)
class PagedResult(Generic[T]):
    content: List[T]
    total_elements: int
    total_pages: int
    current_page: int
    page_size: int

    @classmethod
    def build(cls, content: Sequence[T], total_elements: int, page: int, size: int) -> "PagedResult[T]":
        """Assemble one page; total_pages is ceil(total_elements / size)."""
        return cls(
            content=list(content)[:size],
            total_elements=total_elements,
            total_pages=math.ceil(total_elements / size),
            current_page=page,
            page_size=size,
        )

    def pagination(self) -> dict:
        return {
            "total_elements": self.total_elements,
            "total_pages": self.total_pages,
            "current_page": self.current_page,
            "page_size": self.page_size,
        }
