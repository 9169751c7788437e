# Overview: Flask API routes for branch management; head office administrators only.

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_auth, require_role
from ..errors import BranchPosError, error_response
from ..services import branch_service
from ..services.permission_service import ROLE_ADMIN


branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


@branches_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_branches():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    branches = branch_service.list_branches(include_inactive=include_inactive)
    return jsonify({"branches": [branch.to_dict() for branch in branches]}), 200


@branches_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_branch():
    """Create a branch. Its default 'admin' user is provisioned in the same call."""
    data = request.get_json(silent=True) or {}
    try:
        branch = branch_service.create_branch(
            code=data.get("code"),
            name=data.get("name"),
            tax_rate_bps=data.get("tax_rate_bps", 0),
        )
        return jsonify({"branch": branch.to_dict()}), 201
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to create branch")
        return jsonify({"error": "Internal server error"}), 500


@branches_bp.get("/<int:branch_id>")
@require_auth
@require_role(ROLE_ADMIN)
def get_branch(branch_id: int):
    try:
        branch = branch_service.get_branch(branch_id)
        return jsonify({"branch": branch.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)


@branches_bp.put("/<int:branch_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_branch(branch_id: int):
    data = request.get_json(silent=True) or {}
    try:
        branch = branch_service.update_branch(
            branch_id,
            name=data.get("name"),
            tax_rate_bps=data.get("tax_rate_bps"),
            is_active=data.get("is_active"),
        )
        return jsonify({"branch": branch.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to update branch")
        return jsonify({"error": "Internal server error"}), 500
