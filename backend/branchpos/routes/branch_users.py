# Overview: Flask API routes for branch user management; every write goes through the sync coordinator.

"""
Branch user management API

Available to: branch Managers (own branch only) and head office Admins.
Writes land in the head office credential store first and are mirrored to
the branch tier; a failed mirror write does not fail the request.
"""

from flask import Blueprint, jsonify, request, current_app, g

from ..decorators import require_auth, require_role, resolve_branch_id
from ..errors import BranchPosError, error_response
from ..services import branch_user_service, permission_service
from ..services.permission_service import ROLE_MANAGER


branch_users_bp = Blueprint("branch_users", __name__, url_prefix="/api/branch-users")


def _load_authorized(user_id: str):
    user = branch_user_service.get_branch_user(user_id)
    permission_service.require(g.session_context, ROLE_MANAGER, user.branch_id)
    return user


@branch_users_bp.get("")
@require_auth
@require_role(ROLE_MANAGER)
def list_branch_users():
    try:
        branch_id = resolve_branch_id(ROLE_MANAGER)
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        users = branch_user_service.list_branch_users(branch_id, include_inactive=include_inactive)
        return jsonify({"users": [user.to_dict() for user in users]}), 200
    except BranchPosError as exc:
        return error_response(exc)


@branch_users_bp.post("")
@require_auth
@require_role(ROLE_MANAGER)
def create_branch_user():
    data = request.get_json(silent=True) or {}
    try:
        branch_id = resolve_branch_id(ROLE_MANAGER)
        user = branch_user_service.create_branch_user(
            branch_id,
            data,
            created_by=g.session_context.principal_id,
        )
        return jsonify({"user": user.to_dict()}), 201
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to create branch user")
        return jsonify({"error": "Internal server error"}), 500


@branch_users_bp.get("/<user_id>")
@require_auth
@require_role(ROLE_MANAGER)
def get_branch_user(user_id: str):
    try:
        user = _load_authorized(user_id)
        return jsonify({"user": user.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)


@branch_users_bp.put("/<user_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_branch_user(user_id: str):
    data = request.get_json(silent=True) or {}
    try:
        _load_authorized(user_id)
        user = branch_user_service.update_branch_user(user_id, data)
        return jsonify({"user": user.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to update branch user")
        return jsonify({"error": "Internal server error"}), 500


@branch_users_bp.delete("/<user_id>")
@require_auth
@require_role(ROLE_MANAGER)
def delete_branch_user(user_id: str):
    """Soft delete by default; ?hard=true removes the user when nothing references it."""
    try:
        _load_authorized(user_id)
        hard = request.args.get("hard", "false").lower() == "true"
        mode = branch_user_service.delete_branch_user(user_id, hard=hard)
        return jsonify({"id": user_id, "deleted": mode}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to delete branch user")
        return jsonify({"error": "Internal server error"}), 500
