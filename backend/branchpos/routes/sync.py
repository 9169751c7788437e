# Overview: Flask API routes for mirror reconciliation and the sync issue queue.

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_auth, require_role
from ..errors import BranchPosError, ValidationError, error_response
from ..services import mirror_service, reconcile_service
from ..services.permission_service import ROLE_ADMIN


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


def _optional_branch_id():
    value = request.args.get("branch_id")
    if value is None and request.is_json:
        value = (request.get_json(silent=True) or {}).get("branch_id")
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("branch_id must be an integer", details={"field": "branch_id"})


@sync_bp.post("/branch-users")
@require_auth
@require_role(ROLE_ADMIN)
def reconcile_branch_users():
    """Run reconciliation now for one branch (branch_id) or all active branches."""
    try:
        reports = reconcile_service.reconcile(_optional_branch_id())
        return jsonify({
            "reports": [report.to_dict() for report in reports],
            "failed": any(report.failed for report in reports),
        }), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to reconcile branch users")
        return jsonify({"error": "Internal server error"}), 500


@sync_bp.get("/issues")
@require_auth
@require_role(ROLE_ADMIN)
def list_sync_issues():
    try:
        issues = mirror_service.list_open_issues(_optional_branch_id())
        return jsonify({"issues": [issue.to_dict() for issue in issues]}), 200
    except BranchPosError as exc:
        return error_response(exc)
