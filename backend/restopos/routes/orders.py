# Overview: Flask API routes for order operations; parses input and returns JSON responses.

"""Order API routes: creation, listing, tracking, status, payment and void"""

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import OperationalError

from ..decorators import current_caller, optional_auth, require_auth, require_permission
from ..errors import OrderEngineError
from ..services import lifecycle_service, order_service, payment_service
from ..validation import parse_create_order, parse_int, parse_order_filters, parse_payment, parse_status, parse_str


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _requested_branch_id():
    return parse_int(request.args.get("branch_id"), "branch_id", minimum=1, required=False)


def _busy():
    current_app.logger.warning("Database busy; request rejected as retryable", exc_info=True)
    return jsonify({"error": "Database busy, please retry"}), 503


@orders_bp.post("")
@optional_auth
def create_order_route():
    """
    Create an order with atomic stock reservation.

    POS: requires authentication + CREATE_ORDER (branch from session)
    WEB: guests pass ?branch_id=
    """
    try:
        data = parse_create_order(request.get_json(silent=True))
        order = order_service.create_order(
            current_caller(),
            data,
            requested_branch_id=_requested_branch_id(),
        )
        return jsonify({"order": order.to_dict()}), 201

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except OperationalError:
        return _busy()
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
@require_permission("VIEW_ORDERS")
def list_orders_route():
    try:
        filters = parse_order_filters(request.args, max_limit=current_app.config["ORDER_LIST_MAX_LIMIT"])
        orders, pagination = order_service.list_orders(current_caller(), filters, _requested_branch_id())
        return jsonify({
            "orders": [o.to_dict() for o in orders],
            "pagination": pagination,
        }), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/kitchen")
@require_auth
@require_permission("VIEW_KITCHEN")
def kitchen_orders_route():
    """Active orders (CONFIRMED/COOKING), oldest first."""
    try:
        result = order_service.kitchen_orders(current_caller(), _requested_branch_id())
        return jsonify({
            "orders": [o.to_dict() for o in result["orders"]],
            "summary": result["summary"],
        }), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load kitchen orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/track/<order_number>")
def track_order_route(order_number: str):
    """Public order tracking (minimal fields)."""
    try:
        return jsonify({"order": order_service.track_order(order_number, _requested_branch_id())}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to track order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(current_caller(), order_id, _requested_branch_id())
        return jsonify({"order": order.to_dict()}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_permission("UPDATE_ORDER_STATUS")
def update_status_route(order_id: int):
    """
    Move an order along PENDING -> CONFIRMED -> COOKING -> READY -> COMPLETED.

    CANCELLED additionally requires VOID_ORDER (it restores stock).
    """
    try:
        new_status = parse_status(request.get_json(silent=True))
        order = lifecycle_service.update_status(current_caller(), order_id, new_status)
        return jsonify({"order": order.to_dict()}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except OperationalError:
        return _busy()
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/pay")
@require_auth
@require_permission("TAKE_PAYMENT")
def pay_order_route(order_id: int):
    try:
        method, amount = parse_payment(request.get_json(silent=True))
        result = payment_service.pay(current_caller(), order_id, method, amount)
        return jsonify(result.to_dict()), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except OperationalError:
        return _busy()
    except Exception:
        current_app.logger.exception("Failed to process payment")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/void")
@require_auth
@require_permission("VOID_ORDER")
def void_order_route(order_id: int):
    """Cancel the order, restore its stock and release its table."""
    try:
        data = request.get_json(silent=True) or {}
        reason = parse_str(data.get("reason"), "reason", max_length=255)
        order = lifecycle_service.void_order(current_caller(), order_id, reason=reason)
        return jsonify({
            "order": order.to_dict(),
            "message": "Order voided and stock restored",
        }), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except OperationalError:
        return _busy()
    except Exception:
        current_app.logger.exception("Failed to void order")
        return jsonify({"error": "Internal server error"}), 500
