"""Keycloak client adapter.

This package shapes every outbound call to the identity provider and decodes
its responses. No call raises for an IdP or transport outcome; each returns an
``IdpResult``.

Architecture:
- client.py: pooled HTTP transport, timeouts, service-account token
- results.py: IdpResult / IdpFailure values
- tokens.py: password and refresh grants, logout, userinfo
- users.py: user CRUD through the Admin REST API
- roles.py: realm role catalog and user role mappings

Usage:
    from identity_broker.core.keycloak import KeycloakClient, UserService

    client = KeycloakClient("http://keycloak:8080", "library",
                            service_client_id="user-service",
                            service_client_secret="secret")
    result = UserService(client).count_users()
"""
from .client import KeycloakClient, REQUEST_TIMEOUT, decode_json
from .results import FailureReason, IdpFailure, IdpOperation, IdpResult
from .roles import RoleService
from .tokens import TokenService, token_is_expired
from .users import UserService

__all__ = [
    "KeycloakClient",
    "REQUEST_TIMEOUT",
    "decode_json",
    "FailureReason",
    "IdpFailure",
    "IdpOperation",
    "IdpResult",
    "RoleService",
    "TokenService",
    "token_is_expired",
    "UserService",
]
