"""Seed the library realm with its role catalog.

Creates each library role that does not exist yet; existing roles are left
untouched, so the command can be run on every deployment.

Usage:
    python scripts/seed_roles.py
    python scripts/seed_roles.py --realm library --only PATRON GUEST
"""
from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from identity_broker.config import load_settings
from identity_broker.core.keycloak import KeycloakClient, RoleService

logger = logging.getLogger("scripts.seed_roles")

LIBRARY_ROLES: List[Tuple[str, str]] = [
    ("SUPER_ADMIN", "Full system administrator with complete access"),
    ("LIBRARY_MANAGER", "Library manager with administrative privileges"),
    ("LIBRARIAN", "Professional librarian with full library services access"),
    ("CIRCULATION_STAFF", "Staff handling check-out/check-in operations"),
    ("CATALOGER", "Staff responsible for cataloging and metadata management"),
    ("REFERENCE_LIBRARIAN", "Specialist providing research and reference services"),
    ("ACQUISITIONS_LIBRARIAN", "Staff managing collection development and purchases"),
    ("SYSTEMS_ADMIN", "Technical administrator for library systems"),
    ("PATRON", "Regular library user with borrowing privileges"),
    ("GUEST", "Limited access user for basic services"),
]


def seed_roles(roles: RoleService, catalog: Sequence[Tuple[str, str]] = LIBRARY_ROLES) -> int:
    """Create missing roles; return the number of failures."""
    failures = 0
    for name, description in catalog:
        result = roles.create_role(name, description)
        if not result.ok:
            failures += 1
            logger.error(f"Role creation failed | role={name} | {result.failure.describe()}")
        elif result.value:
            logger.info(f"Role created | role={name}")
        else:
            logger.info(f"Role already exists, skipping | role={name}")
    return failures


def main(argv: Optional[Sequence[str]] = None) -> int:
    cfg = load_settings()

    parser = argparse.ArgumentParser(description="Seed the library realm roles in Keycloak")
    parser.add_argument("--kc-url", default=cfg.keycloak_url)
    parser.add_argument("--realm", default=cfg.keycloak_realm)
    parser.add_argument("--auth-realm", default=cfg.keycloak_service_realm)
    parser.add_argument("--svc-client-id", default=cfg.keycloak_service_client_id)
    parser.add_argument("--svc-client-secret", default=None,
                        help="Defaults to the configured service-account secret")
    parser.add_argument("--only", nargs="*", metavar="ROLE",
                        help="Seed only these roles from the catalog")
    args = parser.parse_args(argv)

    logging.basicConfig(level=cfg.log_level, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    catalog = LIBRARY_ROLES
    if args.only:
        known = {name for name, _ in LIBRARY_ROLES}
        unknown = [name for name in args.only if name not in known]
        if unknown:
            print(f"[seed] Error: unknown role(s): {', '.join(unknown)}", file=sys.stderr)
            return 2
        catalog = [(name, desc) for name, desc in LIBRARY_ROLES if name in args.only]

    client = KeycloakClient(
        args.kc_url,
        args.realm,
        service_realm=args.auth_realm,
        service_client_id=args.svc_client_id,
        service_client_secret=args.svc_client_secret or cfg.service_client_secret_resolved,
        timeout=cfg.idp_request_timeout,
    )
    try:
        failures = seed_roles(RoleService(client), catalog)
    finally:
        client.close()

    if failures:
        print(f"[seed] Error: {failures} role(s) could not be created", file=sys.stderr)
        return 1
    print(f"[seed] {len(catalog)} role(s) present in realm {args.realm}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
