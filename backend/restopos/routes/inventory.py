# Overview: Flask API routes for stock adjustments and the inventory log; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import OperationalError

from ..decorators import current_caller, require_auth, require_permission
from ..errors import OrderEngineError
from ..services import stock_service
from ..services.tenant_service import read_scope, resolve_write_branch
from ..validation import parse_int, parse_pagination, parse_str


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _requested_branch_id():
    return parse_int(request.args.get("branch_id"), "branch_id", minimum=1, required=False)


@inventory_bp.post("/adjust")
@require_auth
@require_permission("MANAGE_INVENTORY")
def adjust_stock_route():
    """
    Restock, wastage or manual adjustment.

    Body: {product_id, qty_change (signed, non-zero), reason, notes?}
    """
    try:
        data = request.get_json(silent=True) or {}
        caller = current_caller()
        branch = resolve_write_branch(caller, parse_int(data.get("branch_id"), "branch_id", minimum=1, required=False))
        entry = stock_service.adjust_stock(
            branch.id,
            parse_int(data.get("product_id"), "product_id", minimum=1),
            parse_int(data.get("qty_change"), "qty_change"),
            parse_str(data.get("reason"), "reason", max_length=16, required=True),
            actor_user_id=caller.user_id,
            notes=parse_str(data.get("notes"), "notes", max_length=200),
        )
        return jsonify({"log": entry.to_dict()}), 201

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except OperationalError:
        current_app.logger.warning("Database busy on stock adjustment", exc_info=True)
        return jsonify({"error": "Database busy, please retry"}), 503
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/logs")
@require_auth
@require_permission("MANAGE_INVENTORY")
def list_logs_route():
    try:
        page, limit = parse_pagination(request.args, max_limit=current_app.config["ORDER_LIST_MAX_LIMIT"], default_limit=50)
        logs, pagination = stock_service.list_logs(
            read_scope(current_caller(), _requested_branch_id()),
            product_id=parse_int(request.args.get("product_id"), "product_id", minimum=1, required=False),
            reason=request.args.get("reason") or None,
            page=page,
            limit=limit,
        )
        return jsonify({"logs": [entry.to_dict() for entry in logs], "pagination": pagination}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory logs")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/reconcile/<int:product_id>")
@require_auth
@require_permission("MANAGE_INVENTORY")
def reconcile_route(product_id: int):
    """Stock counter vs. sum of logged changes."""
    try:
        result = stock_service.reconcile(read_scope(current_caller()), product_id)
        return jsonify({"reconciliation": result}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile stock")
        return jsonify({"error": "Internal server error"}), 500
