# backend/stockpos/routes/users.py
"""
Staff user routes. Admin only.
"""
from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_user, require_role
from ..errors import StockError
from ..extensions import db
from ..models.auth import ROLE_ADMIN
from ..services import user_service
from ..services.concurrency import commit_with_retry


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_user
@require_role(ROLE_ADMIN)
def list_users():
    """
    List users.

    Query parameters:
        role: admin or cashier (optional)
        active: "true" to list active users only
    """
    try:
        users = user_service.list_users(
            role=request.args.get("role") or None,
            active_only=request.args.get("active", "").lower() == "true",
        )
        return jsonify([u.to_dict() for u in users]), 200
    except StockError as e:
        return jsonify({"error": e.message}), e.status_code


@users_bp.post("")
@require_user
@require_role(ROLE_ADMIN)
def create_user():
    """
    Create a user.

    Request body:
    {
        "username": str,
        "email": str,
        "role": "admin" | "cashier"
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        user = user_service.create_user(
            username=data.get("username"),
            email=data.get("email"),
            role=data.get("role"),
        )
        commit_with_retry()
        return jsonify(user.to_dict()), 201

    except StockError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": f"Unexpected error: {e}"}), 500


@users_bp.patch("/<int:user_id>")
@require_user
@require_role(ROLE_ADMIN)
def set_user_active(user_id: int):
    """
    Activate or deactivate a user. Inactive users are refused by every route.

    Request body:
    {
        "is_active": bool
    }
    """
    data = request.get_json(silent=True) or {}

    if not isinstance(data.get("is_active"), bool):
        return jsonify({"error": "is_active must be a boolean"}), 400

    try:
        user = user_service.set_user_active(user_id=user_id, is_active=data["is_active"])
        commit_with_retry()
        return jsonify(user.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
