# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes. Available to Cashiers and above in their own branch."""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role, resolve_branch_id
from ..errors import BranchPosError, error_response
from ..services import sales_service
from ..services.permission_service import ROLE_CASHIER


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_role(ROLE_CASHIER)
def create_sale_route():
    """
    Create an open sale.

    Body: {order_type, items, table_number?, guest_count?, discount_cents?, notes?}
    With table_number the order is attached to that table and the table
    becomes occupied.
    """
    data = request.get_json(silent=True) or {}
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        table_number = data.get("table_number")
        sale = sales_service.create_sale(
            branch_id,
            g.session_context.principal_id,
            order_type=data.get("order_type") or (
                sales_service.ORDER_DINE_IN if table_number is not None else sales_service.ORDER_TAKE_OUT
            ),
            items=data.get("items"),
            table_number=int(table_number) if table_number is not None else None,
            guest_count=data.get("guest_count"),
            discount_cents=data.get("discount_cents", 0),
            notes=data.get("notes"),
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201
    except BranchPosError as exc:
        return error_response(exc)
    except (TypeError, ValueError):
        return jsonify({"error": "table_number must be an integer",
                        "code": "ValidationError", "details": {"field": "table_number"}}), 400
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
@require_role(ROLE_CASHIER)
def list_sales_route():
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sales, total = sales_service.list_sales(
            branch_id,
            status=request.args.get("status"),
            order_type=request.args.get("order_type"),
            table_number=request.args.get("table_number", type=int),
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"sales": [sale.to_dict() for sale in sales], "total": total}), 200
    except BranchPosError as exc:
        return error_response(exc)


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_role(ROLE_CASHIER)
def get_sale_route(sale_id: int):
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sale = sales_service.get_sale(sale_id, branch_id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200
    except BranchPosError as exc:
        return error_response(exc)


@sales_bp.post("/<int:sale_id>/items")
@require_auth
@require_role(ROLE_CASHIER)
def add_items_route(sale_id: int):
    """Body: {items: [{product_name, quantity, unit_price_cents, discount_type?, discount_value?}]}"""
    data = request.get_json(silent=True) or {}
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sale = sales_service.add_items(sale_id, branch_id, data.get("items"))
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to add sale items")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/park")
@require_auth
@require_role(ROLE_CASHIER)
def park_sale_route(sale_id: int):
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sale = sales_service.park_sale(sale_id, branch_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to park sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/resume")
@require_auth
@require_role(ROLE_CASHIER)
def resume_sale_route(sale_id: int):
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sale = sales_service.resume_sale(sale_id, branch_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to resume sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>/payment")
@require_auth
@require_role(ROLE_CASHIER)
def apply_payment_route(sale_id: int):
    """Body: {amount_cents, payment_method, discount_cents?}"""
    data = request.get_json(silent=True) or {}
    try:
        branch_id = resolve_branch_id(ROLE_CASHIER)
        sale = sales_service.apply_payment(
            sale_id,
            branch_id,
            data.get("amount_cents"),
            data.get("payment_method"),
            discount_cents=data.get("discount_cents"),
        )
        return jsonify({"sale": sale.to_dict()}), 200
    except BranchPosError as exc:
        return error_response(exc)
    except Exception:
        current_app.logger.exception("Failed to apply payment")
        return jsonify({"error": "Internal server error"}), 500
