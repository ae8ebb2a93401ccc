# Overview: Flask API routes for table operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import OperationalError

from ..decorators import current_caller, require_auth, require_permission
from ..errors import OrderEngineError, ValidationError
from ..models.tables import TABLE_AVAILABLE
from ..services import table_service
from ..validation import parse_bool, parse_datetime, parse_int, parse_str


tables_bp = Blueprint("tables", __name__, url_prefix="/api/tables")


def _requested_branch_id():
    return parse_int(request.args.get("branch_id"), "branch_id", minimum=1, required=False)


@tables_bp.get("")
@require_auth
@require_permission("VIEW_TABLES")
def list_tables_route():
    try:
        status = request.args.get("status") or None
        if parse_bool(request.args.get("available_only"), "available_only"):
            status = TABLE_AVAILABLE
        tables = table_service.list_tables(
            current_caller(), status=status, requested_branch_id=_requested_branch_id()
        )
        return jsonify({"tables": [t.to_dict() for t in tables]}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list tables")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.get("/summary")
@require_auth
@require_permission("VIEW_TABLES")
def table_summary_route():
    try:
        return jsonify({"summary": table_service.summary(current_caller(), _requested_branch_id())}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load table summary")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.get("/<int:table_id>")
@require_auth
@require_permission("VIEW_TABLES")
def get_table_route(table_id: int):
    """Table with its current order (if any)."""
    try:
        return jsonify({"table": table_service.get_table(current_caller(), table_id)}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get table")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.post("/<int:table_id>/reserve")
@require_auth
@require_permission("MANAGE_TABLES")
def reserve_table_route(table_id: int):
    try:
        data = request.get_json(silent=True) or {}
        reservation_time = parse_datetime(data.get("reservation_time"), "reservation_time")
        if reservation_time is None:
            raise ValidationError("reservation_time is required")

        table = table_service.reserve(
            current_caller(),
            table_id,
            name=parse_str(data.get("name"), "name", max_length=100, required=True),
            whatsapp=parse_str(data.get("whatsapp"), "whatsapp", max_length=32, required=True),
            pax=parse_int(data.get("pax"), "pax", minimum=1),
            reservation_time=reservation_time,
        )
        return jsonify({"table": table.to_dict(), "message": "Table reserved successfully"}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except OperationalError:
        current_app.logger.warning("Database busy on table reserve", exc_info=True)
        return jsonify({"error": "Database busy, please retry"}), 503
    except Exception:
        current_app.logger.exception("Failed to reserve table")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.post("/<int:table_id>/release")
@require_auth
@require_permission("MANAGE_TABLES")
def release_table_route(table_id: int):
    """Manual release; refused while the linked order is still active."""
    try:
        table = table_service.release_table(current_caller(), table_id)
        return jsonify({"table": table.to_dict(), "message": "Table released"}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except OperationalError:
        current_app.logger.warning("Database busy on table release", exc_info=True)
        return jsonify({"error": "Database busy, please retry"}), 503
    except Exception:
        current_app.logger.exception("Failed to release table")
        return jsonify({"error": "Internal server error"}), 500


@tables_bp.patch("/<int:table_id>/reset")
@require_auth
@require_permission("MANAGE_TABLES")
def reset_table_route(table_id: int):
    """
    Reset a table when guests leave.

    400 with the unpaid orders unless {"force": true}.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = table_service.reset(current_caller(), table_id, force=parse_bool(data.get("force"), "force"))
        body = {"table": result["table"], "message": "Table reset to Available"}
        if result["warning"]:
            body["warning"] = result["warning"]
        return jsonify(body), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except OperationalError:
        current_app.logger.warning("Database busy on table reset", exc_info=True)
        return jsonify({"error": "Database busy, please retry"}), 503
    except Exception:
        current_app.logger.exception("Failed to reset table")
        return jsonify({"error": "Internal server error"}), 500
