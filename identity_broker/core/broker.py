"""The broker handle: configuration, IdP client, worker pool and services.

Built once per process by ``build_broker`` and passed by reference to every
request handler (``app.config["BROKER"]``).
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from ..config import AppConfig
from .administration import IdentityAdministrationService
from .authentication import AuthenticationService
from .concurrency import BlockingPool
from .keycloak import KeycloakClient, RoleService, TokenService, UserService
from .tracing import RequestTracer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Broker:
    config: AppConfig
    client: KeycloakClient
    pool: BlockingPool
    tracer: RequestTracer
    auth: AuthenticationService
    admin: IdentityAdministrationService

    def close(self) -> None:
        self.pool.shutdown(wait=False)
        self.client.close()


def build_broker(cfg: AppConfig, session: Optional[requests.Session] = None) -> Broker:
    """Wire the adapter, pool and services for one Keycloak realm.

    Args:
        cfg: Loaded settings
        session: Optional pre-built HTTP session (tests pass a stub)
    """
    client = KeycloakClient(
        cfg.keycloak_url,
        cfg.keycloak_realm,
        service_realm=cfg.keycloak_service_realm,
        service_client_id=cfg.keycloak_service_client_id,
        service_client_secret=cfg.service_client_secret_resolved,
        timeout=cfg.idp_request_timeout,
        pool_size=cfg.idp_worker_pool_size,
        session=session,
    )
    pool = BlockingPool(cfg.idp_worker_pool_size)
    users = UserService(client)
    roles = RoleService(client)
    tokens = TokenService(client, cfg.oidc_client_id, cfg.oidc_client_secret)

    logger.info(
        f"Broker ready | keycloak_url={cfg.keycloak_url} | realm={cfg.keycloak_realm} | "
        f"workers={cfg.idp_worker_pool_size} | timeout={cfg.idp_request_timeout}"
    )
    return Broker(
        config=cfg,
        client=client,
        pool=pool,
        tracer=RequestTracer(),
        auth=AuthenticationService(tokens, users, pool),
        admin=IdentityAdministrationService(users, roles, pool),
    )
