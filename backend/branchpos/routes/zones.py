# Overview: Flask API routes for dining zones.

from flask import Blueprint, jsonify, request, current_app

from ..decorators import require_auth, require_role, resolve_branch_id
from ..errors import BranchPosError, error_response
from ..services import zone_service
from ..services.permission_service import ROLE_CASHIER, ROLE_MANAGER


zones_bp = Blueprint("zones", __name__, url_prefix="/api/zones")


@zones_bp.get("")
@require_auth
@require_role(ROLE_CASHIER)
def list_zones():
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        zones = zone_service.list_zones(branch_id, include_inactive=include_inactive)
        return jsonify({"zones": [zone.to_dict() for zone in zones]}), 200
    except BranchPosError as exc:
        return error_response(exc)


@zones_bp.post("")
@require_auth
@require_role(ROLE_MANAGER)
def create_zone():
    data = request.get_json(silent=True) or {}
    try:
        branch_id = resolve_branch_id(ROLE_MANAGER)
        zone = zone_service.create_zone(
            branch_id,
            data.get("name"),
            description=data.get("description"),
            display_order=data.get("display_order", 0),
        )
        return jsonify({"zone": zone.to_dict()}), 201
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to create zone")
        return jsonify({"error": "Internal server error"}), 500


@zones_bp.put("/<int:zone_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_zone(zone_id: int):
    data = request.get_json(silent=True) or {}
    try:
        branch_id = resolve_branch_id(ROLE_MANAGER)
        zone = zone_service.update_zone(
            zone_id,
            branch_id,
            name=data.get("name"),
            description=data.get("description"),
            display_order=data.get("display_order"),
            is_active=data.get("is_active"),
        )
        return jsonify({"zone": zone.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to update zone")
        return jsonify({"error": "Internal server error"}), 500


@zones_bp.delete("/<int:zone_id>")
@require_auth
@require_role(ROLE_MANAGER)
def delete_zone(zone_id: int):
    try:
        branch_id = resolve_branch_id(ROLE_MANAGER)
        zone_service.delete_zone(zone_id, branch_id)
        return jsonify({"id": zone_id, "deleted": True}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to delete zone")
        return jsonify({"error": "Internal server error"}), 500
