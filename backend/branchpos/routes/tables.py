# Overview: Flask API routes for tables; configuration plus the table/order state machine.

"""
Table API routes

Floor operations (start, pay, complete, clear, transfer, reserve):
available to Cashiers and above in their own branch.
Table configuration and clear-all: Managers and above.

Tables are addressed by their number for floor operations and by id for
configuration.
"""

from flask import Blueprint, jsonify, request, current_app, g

from ..decorators import require_auth, require_role, resolve_branch_id
from ..errors import BranchPosError, error_response
from ..services import table_order_service, table_service
from ..services.permission_service import ROLE_CASHIER, ROLE_MANAGER


tables_bp = Blueprint("tables", __name__, url_prefix="/api/tables")


def _json() -> dict:
    return request.get_json(silent=True) or {}


# =============================================================================
# FLOOR VIEW
# =============================================================================

@tables_bp.get("/status")
@require_auth
@require_role(ROLE_CASHIER)
def tables_status():
    """All active tables with their current order, paid flag and elapsed time."""
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        zone_id = request.args.get("zone_id", type=int)
        tables = table_service.get_tables_with_status(branch_id, zone_id=zone_id)
        return jsonify({"tables": tables}), 200
    except BranchPosError as exc:
        return error_response(exc)


# =============================================================================
# CONFIGURATION
# =============================================================================

@tables_bp.get("")
@require_auth
@require_role(ROLE_CASHIER)
def list_tables():
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        tables = table_service.list_tables(branch_id, zone_id=request.args.get("zone_id", type=int))
        return jsonify({"tables": [table.to_dict() for table in tables]}), 200
    except BranchPosError as exc:
        return error_response(exc)


@tables_bp.post("")
@require_auth
@require_role(ROLE_MANAGER)
def create_table():
    try:
        branch_id = resolve_branch_id(ROLE_MANAGER)
        table = table_service.create_table(branch_id, _json())
        return jsonify({"table": table.to_dict()}), 201
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to create table")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.get("/<int:table_id>")
@require_auth
@require_role(ROLE_CASHIER)
def get_table(table_id: int):
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        table = table_service.get_table(table_id, branch_id)
        return jsonify({"table": table.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)


@tables_bp.get("/number/<int:table_number>")
@require_auth
@require_role(ROLE_CASHIER)
def get_table_by_number(table_number: int):
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        table = table_service.get_table_by_number(branch_id, table_number)
        return jsonify({"table": table.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)


@tables_bp.put("/<int:table_id>")
@require_auth
@require_role(ROLE_MANAGER)
def update_table(table_id: int):
    try:
        branch_id = resolve_branch_id(ROLE_MANAGER)
        table = table_service.update_table(table_id, branch_id, _json())
        return jsonify({"table": table.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to update table")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.delete("/<int:table_id>")
@require_auth
@require_role(ROLE_MANAGER)
def delete_table(table_id: int):
    try:
        branch_id = resolve_branch_id(ROLE_MANAGER)
        table_service.delete_table(table_id, branch_id)
        return jsonify({"id": table_id, "deleted": True}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to delete table")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TABLE / ORDER STATE MACHINE
# =============================================================================

@tables_bp.post("/<int:table_number>/start")
@require_auth
@require_role(ROLE_CASHIER)
def start_order(table_number: int):
    """Open a dine-in order. Body: {guest_count, items?, discount_cents?, notes?}"""
    data = _json()
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sale = table_order_service.start_order(
            branch_id,
            table_number,
            guest_count=data.get("guest_count"),
            user_id=g.session_context.principal_id,
            items=data.get("items"),
            discount_cents=data.get("discount_cents", 0),
            notes=data.get("notes"),
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to start table order")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.post("/<int:table_number>/complete-without-payment")
@require_auth
@require_role(ROLE_CASHIER)
def complete_without_payment(table_number: int):
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sale = table_order_service.complete_without_payment(branch_id, table_number)
        return jsonify({"sale": sale.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to complete table order")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.post("/<int:table_number>/pay")
@require_auth
@require_role(ROLE_CASHIER)
def pay_table(table_number: int):
    """Body: {amount_cents, payment_method, discount_cents?}"""
    data = _json()
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sale = table_order_service.process_payment(
            branch_id,
            table_number,
            data.get("amount_cents"),
            data.get("payment_method"),
            discount_cents=data.get("discount_cents"),
        )
        return jsonify({"sale": sale.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to pay table order")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.post("/<int:table_number>/clear")
@require_auth
@require_role(ROLE_CASHIER)
def clear_table(table_number: int):
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sale = table_order_service.clear_table(branch_id, table_number)
        return jsonify({
            "table_number": table_number,
            "cleared": sale is not None,
            "sale": sale.to_dict() if sale else None,
        }), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to clear table")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.post("/transfer")
@require_auth
@require_role(ROLE_CASHIER)
def transfer_order():
    """Body: {sale_id, from_table_number, to_table_number}"""
    data = _json()
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sale_id = data.get("sale_id")
        from_number = data.get("from_table_number")
        to_number = data.get("to_table_number")
        if sale_id is None or from_number is None or to_number is None:
            return jsonify({"error": "sale_id, from_table_number and to_table_number required",
                            "code": "ValidationError", "details": {}}), 400

        sale = table_order_service.transfer_order(branch_id, int(sale_id), int(from_number), int(to_number))
        return jsonify({"sale": sale.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except (TypeError, ValueError):
        return jsonify({"error": "sale_id and table numbers must be integers",
                        "code": "ValidationError", "details": {}}), 400
    except Exception:
        current_app.logger.exception("Failed to transfer table order")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.post("/clear-all")
@require_auth
@require_role(ROLE_MANAGER)
def clear_all():
    """Pay every unpaid table order with payment_method, then clear all paid tables."""
    data = _json()
    try:
        branch_id = resolve_branch_id(ROLE_MANAGER)
        results = table_order_service.clear_all(branch_id, data.get("payment_method"))
        return jsonify({
            "results": results,
            "cleared": sum(1 for r in results if r["cleared"]),
            "failed": sum(1 for r in results if not r["cleared"]),
        }), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to clear all tables")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.post("/<int:table_number>/reserve")
@require_auth
@require_role(ROLE_CASHIER)
def reserve_table(table_number: int):
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        table = table_order_service.reserve_table(branch_id, table_number)
        return jsonify({"table": table.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)


@tables_bp.post("/<int:table_number>/release")
@require_auth
@require_role(ROLE_CASHIER)
def release_table(table_number: int):
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        table = table_order_service.release_table(branch_id, table_number)
        return jsonify({"table": table.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
