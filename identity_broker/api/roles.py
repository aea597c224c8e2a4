"""Realm role catalog endpoints (read-only)."""
from flask import Blueprint, request

from . import envelope
from .decorators import current_broker, int_arg, traced

bp = Blueprint("roles", __name__)

DEFAULT_PAGE = 0
DEFAULT_PAGE_SIZE = 10


@bp.route("", methods=["GET"])
@traced("list_roles")
async def list_roles():
    """Whole catalog, or one page when ?page= or ?size= is given."""
    admin = current_broker().admin
    if "page" not in request.args and "size" not in request.args:
        roles = await admin.list_all_roles()
        return envelope.success([role.to_dict() for role in roles], "Roles retrieved successfully")

    result = await admin.list_roles(int_arg("page", DEFAULT_PAGE), int_arg("size", DEFAULT_PAGE_SIZE))
    return envelope.paged(result, "Roles retrieved successfully")


@bp.route("/all", methods=["GET"])
@traced("list_all_roles")
async def list_all_roles():
    roles = await current_broker().admin.list_all_roles()
    return envelope.success([role.to_dict() for role in roles], "Roles retrieved successfully")
