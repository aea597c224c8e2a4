"""Authentication endpoints: login, refresh, logout, current user, registration."""
from flask import Blueprint, request

from ..core.validators import validate_new_user
from . import envelope
from .decorators import current_broker, from_body, json_body, traced

bp = Blueprint("auth", __name__)


@bp.route("/login", methods=["POST"])
@traced("login", subject=from_body("username"))
async def login():
    """Password grant; returns the token set with its login time."""
    body = json_body()
    token_set = await current_broker().auth.login(body.get("username"), body.get("password"))
    return envelope.success(token_set.to_dict(), "Login successful")


@bp.route("/refresh", methods=["POST"])
@traced("refresh")
async def refresh():
    body = json_body()
    token_set = await current_broker().auth.refresh(body.get("refresh_token"))
    return envelope.success(token_set.to_dict(issued_key="refreshed_at"), "Token refreshed successfully")


@bp.route("/logout", methods=["POST"])
@traced("logout")
async def logout():
    body = json_body()
    await current_broker().auth.logout(body.get("refresh_token"))
    return envelope.success(message="Logout successful")


@bp.route("/me", methods=["GET"])
@traced("me")
async def me():
    """Resolve the caller from the Authorization: Bearer header."""
    user = await current_broker().auth.resolve_identity(request.headers.get("Authorization"))
    return envelope.success(user.to_dict(), "User information retrieved successfully")


@bp.route("/register", methods=["POST"])
@traced("register", subject=from_body("username"))
async def register():
    profile, password = validate_new_user(json_body(), allow_roles=False)
    created = await current_broker().auth.register(profile, password)
    return envelope.success(created.to_dict(), "Registration successful", status=201)
