# Overview: Flask API routes for the kitchen display workflow; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import OperationalError

from ..decorators import current_caller, require_auth, require_permission
from ..errors import OrderEngineError, ValidationError
from ..services import lifecycle_service, order_service
from ..time_utils import to_utc_z
from ..validation import parse_int


kitchen_bp = Blueprint("kitchen", __name__, url_prefix="/api/kitchen")


def _requested_branch_id():
    return parse_int(request.args.get("branch_id"), "branch_id", minimum=1, required=False)


def _kitchen_row(order) -> dict:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "table_number": order.table_number,
        "notes": order.notes,
        "created_at": to_utc_z(order.created_at),
        "items": [item.to_dict() for item in order.items],
    }


@kitchen_bp.get("/orders")
@require_auth
@require_permission("VIEW_KITCHEN")
def kitchen_orders_route():
    """FIFO queue of CONFIRMED/COOKING orders."""
    try:
        result = order_service.kitchen_orders(current_caller(), _requested_branch_id())
        return jsonify({
            "orders": [_kitchen_row(o) for o in result["orders"]],
            "summary": result["summary"],
        }), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load kitchen orders")
        return jsonify({"error": "Internal server error"}), 500


@kitchen_bp.get("/stats")
@require_auth
@require_permission("VIEW_KITCHEN")
def kitchen_stats_route():
    try:
        return jsonify({"stats": lifecycle_service.kitchen_stats(current_caller(), _requested_branch_id())}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load kitchen stats")
        return jsonify({"error": "Internal server error"}), 500


@kitchen_bp.patch("/orders/<int:order_id>/status")
@require_auth
@require_permission("KITCHEN_UPDATE")
def kitchen_status_route(order_id: int):
    """Kitchen can only set COOKING (from CONFIRMED) or READY (from COOKING)."""
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            raise ValidationError("status is required")
        order = lifecycle_service.kitchen_update(current_caller(), order_id, status)
        return jsonify({
            "order": _kitchen_row(order),
            "message": f"Order status updated to {order.status}",
        }), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except OperationalError:
        current_app.logger.warning("Database busy on kitchen update", exc_info=True)
        return jsonify({"error": "Database busy, please retry"}), 503
    except Exception:
        current_app.logger.exception("Failed to update kitchen status")
        return jsonify({"error": "Internal server error"}), 500


@kitchen_bp.post("/orders/<int:order_id>/bump")
@require_auth
@require_permission("KITCHEN_UPDATE")
def bump_order_route(order_id: int):
    try:
        order = lifecycle_service.bump_order(current_caller(), order_id)
        return jsonify({
            "order": _kitchen_row(order),
            "message": f"Order bumped to {order.status}",
        }), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except OperationalError:
        current_app.logger.warning("Database busy on bump", exc_info=True)
        return jsonify({"error": "Database busy, please retry"}), 503
    except Exception:
        current_app.logger.exception("Failed to bump order")
        return jsonify({"error": "Internal server error"}), 500
