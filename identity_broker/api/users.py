"""User administration endpoints."""
from flask import Blueprint

from ..core.validators import validate_new_user, validate_user_update
from . import envelope
from .decorators import current_broker, from_body, from_path, int_arg, json_body, traced

bp = Blueprint("users", __name__)

DEFAULT_PAGE = 0
DEFAULT_PAGE_SIZE = 10


@bp.route("", methods=["POST"])
@traced("create_user", subject=from_body("username"))
async def create_user():
    """Create an account with its password and optional roles.

    Returns:
        201 Created with {user_id, created_at}
    """
    profile, password = validate_new_user(json_body())
    created = await current_broker().admin.create_user(profile, password)
    return envelope.success(created.to_dict(), "User created successfully", status=201)


@bp.route("", methods=["GET"])
@traced("list_users")
async def list_users():
    """Paged listing; ?page= (zero-based, default 0) & size= (1-100, default 10)."""
    page = int_arg("page", DEFAULT_PAGE)
    size = int_arg("size", DEFAULT_PAGE_SIZE)
    result = await current_broker().admin.list_users(page, size)
    return envelope.paged(result, "Users retrieved successfully")


@bp.route("/all", methods=["GET"])
@traced("list_all_users")
async def list_all_users():
    users = await current_broker().admin.list_all_users()
    return envelope.success([user.to_dict() for user in users], "Users retrieved successfully")


@bp.route("/<user_id>", methods=["GET"])
@traced("get_user", subject=from_path("user_id"))
async def get_user(user_id: str):
    user = await current_broker().admin.get_user(user_id)
    return envelope.success(user.to_dict(), "User retrieved successfully")


@bp.route("/<user_id>", methods=["PUT"])
@traced("update_user", subject=from_path("user_id"))
async def update_user(user_id: str):
    """Partial update; a roles list replaces the current role set."""
    update = validate_user_update(json_body())
    user = await current_broker().admin.update_user(user_id, update)
    return envelope.success(user.to_dict(), "User updated successfully")


@bp.route("/<user_id>", methods=["DELETE"])
@traced("delete_user", subject=from_path("user_id"))
async def delete_user(user_id: str):
    await current_broker().admin.delete_user(user_id)
    return envelope.success(message="User deleted successfully")
