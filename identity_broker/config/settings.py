"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 5.0
DEFAULT_WORKER_POOL_SIZE = 16
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                logger.info(f"Loaded secret from /run/secrets | name={secret_name}")
                return secret_value
        except OSError as e:
            logger.warning(f"Failed to read secret file | name={secret_name} | error={e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            logger.info(f"Loaded secret from environment | name={env_var}")
            return secret_value

    return None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Keycloak
    keycloak_url: str = ""
    keycloak_realm: str = "library"
    keycloak_service_realm: str = "library"

    # Service account (admin API)
    keycloak_service_client_id: str = "user-service"
    keycloak_service_client_secret: str = ""

    # OIDC client used for password/refresh grants
    oidc_client_id: str = "user-service"
    oidc_client_secret: str = ""

    # IdP calls
    idp_request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    idp_worker_pool_size: int = DEFAULT_WORKER_POOL_SIZE

    # HTTP surface
    api_prefix: str = ""
    log_level: str = "INFO"

    @property
    def service_client_secret_resolved(self) -> str:
        """Get Keycloak service account client secret with smart fallback.

        Priority:
        1. Configured value in keycloak_service_client_secret
        2. Docker secrets: /run/secrets/keycloak_service_client_secret
        3. Environment variable: KEYCLOAK_SERVICE_CLIENT_SECRET
        4. Demo mode: "demo-service-secret"

        Raises:
            ValueError: If secret not found in production mode
        """
        if self.keycloak_service_client_secret:
            return self.keycloak_service_client_secret

        for secret_name in ["keycloak_service_client_secret", "keycloak-service-client-secret"]:
            secret_path = Path("/run/secrets") / secret_name
            if secret_path.exists():
                secret = secret_path.read_text().strip()
                if secret:
                    return secret

        secret = os.environ.get("KEYCLOAK_SERVICE_CLIENT_SECRET")
        if secret:
            return secret

        if self.demo_mode:
            return "demo-service-secret"

        raise ValueError(
            "KEYCLOAK_SERVICE_CLIENT_SECRET not found. "
            "Set DEMO_MODE=true or provide secret via Docker secrets or environment variable."
        )


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        logger.info(f"Using demo default | name={var_name}")
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _number(var_name: str, default, cast):
    raw = os.environ.get(var_name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {var_name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise RuntimeError(f"Environment variable {var_name} must be positive, got {raw!r}")
    return value


def _normalize_prefix(raw: str) -> str:
    """'/api/v1/' -> '/api/v1'; empty stays empty."""
    raw = raw.strip().strip("/")
    return f"/{raw}" if raw else ""


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"

    # ─────────────────────────────────────────────────────────────────────────
    # Secrets: /run/secrets > environment variables > demo defaults
    # ─────────────────────────────────────────────────────────────────────────
    keycloak_service_client_secret = _load_secret_from_file(
        "keycloak_service_client_secret",
        "KEYCLOAK_SERVICE_CLIENT_SECRET",
    )
    if not keycloak_service_client_secret:
        keycloak_service_client_secret = _get_or_generate(
            "KEYCLOAK_SERVICE_CLIENT_SECRET",
            demo_default="demo-service-secret",
            demo_mode=demo_mode,
        )

    oidc_client_secret = _load_secret_from_file("oidc_client_secret", "OIDC_CLIENT_SECRET")
    if not oidc_client_secret:
        oidc_client_secret = _get_or_generate(
            "OIDC_CLIENT_SECRET",
            demo_default="demo-client-secret",
            demo_mode=demo_mode,
        )

    # Keycloak
    keycloak_url = _get_or_generate(
        "KEYCLOAK_URL",
        demo_default="http://127.0.0.1:8080",
        demo_mode=demo_mode,
    ).rstrip("/")
    keycloak_realm = os.environ.get("KEYCLOAK_REALM", "library")
    keycloak_service_realm = os.environ.get("KEYCLOAK_SERVICE_REALM", keycloak_realm)

    keycloak_service_client_id = _get_or_generate(
        "KEYCLOAK_SERVICE_CLIENT_ID",
        demo_default="user-service",
        demo_mode=demo_mode,
    )
    oidc_client_id = os.environ.get("OIDC_CLIENT_ID", keycloak_service_client_id)

    # IdP calls
    idp_request_timeout = _number("IDP_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT, float)
    idp_worker_pool_size = _number("IDP_WORKER_POOL_SIZE", DEFAULT_WORKER_POOL_SIZE, int)

    api_prefix = _normalize_prefix(os.environ.get("API_PREFIX", ""))
    log_level = os.environ.get("LOG_LEVEL", "INFO").strip().upper()
    if log_level not in LOG_LEVELS:
        logger.warning(f"Unknown LOG_LEVEL, using INFO | value={log_level}")
        log_level = "INFO"

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    logger.info(
        f"Settings loaded | mode={mode_label} | realm={keycloak_realm} | "
        f"client_id={oidc_client_id} | service_client_id={keycloak_service_client_id} | "
        f"timeout={idp_request_timeout} | workers={idp_worker_pool_size}"
    )
    if demo_mode:
        logger.warning("Demo credentials in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        keycloak_url=keycloak_url,
        keycloak_realm=keycloak_realm,
        keycloak_service_realm=keycloak_service_realm,
        keycloak_service_client_id=keycloak_service_client_id,
        keycloak_service_client_secret=keycloak_service_client_secret,
        oidc_client_id=oidc_client_id,
        oidc_client_secret=oidc_client_secret,
        idp_request_timeout=idp_request_timeout,
        idp_worker_pool_size=idp_worker_pool_size,
        api_prefix=api_prefix,
        log_level=log_level,
    )
