# Overview: Per-location read models and period-end inputs: stock, reconciliation, mandays.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import ELEVATED_ROLES, require_identity, require_location_access, require_role
from ..errors import StockLedgerError
from ..services import manday_service, reconciliation_service, stock_service
from ..validation import coerce_int


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("/<int:location_id>/stock")
@require_identity
@require_location_access("location_id")
def location_stock_route(location_id: int):
    """On-hand, WAC and value per item. ?include_zero=true lists empty rows too."""
    try:
        rows = stock_service.get_location_stock(
            location_id,
            include_zero=request.args.get("include_zero") == "true",
        )
        return jsonify({
            "location_id": location_id,
            "items": rows,
            "total_value": str(stock_service.get_stock_value(location_id)),
        }), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load location stock")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@locations_bp.get("/<int:location_id>/reconciliations/<int:period_id>")
@require_identity
@require_location_access("location_id")
def get_reconciliation_route(location_id: int, period_id: int):
    try:
        return jsonify(reconciliation_service.get_reconciliation(period_id, location_id)), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load reconciliation")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@locations_bp.patch("/<int:location_id>/reconciliations/<int:period_id>")
@require_identity
@require_role(*ELEVATED_ROLES)
@require_location_access("location_id")
def save_reconciliation_route(location_id: int, period_id: int):
    """
    Save manual adjustments and refresh the ledger-derived figures.

    Request body (any subset):
    {
        "back_charges": "0.00",
        "credits": "0.00",
        "condemnations": "0.00",
        "adjustments": "-15.00"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        reconciliation_service.save_reconciliation_adjustments(
            period_id,
            location_id,
            data,
            user_id=g.identity.user_id,
        )
        return jsonify(reconciliation_service.get_reconciliation(period_id, location_id)), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save reconciliation")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@locations_bp.get("/<int:location_id>/mandays")
@require_identity
@require_location_access("location_id")
def list_mandays_route(location_id: int):
    """Query: period_id."""
    try:
        period_id = coerce_int(request.args.get("period_id"), "period_id")
        entries = manday_service.list_mandays(period_id, location_id)
        return jsonify({
            "period_id": period_id,
            "location_id": location_id,
            "entries": [e.to_dict() for e in entries],
            "total_mandays": manday_service.get_total_mandays(period_id, location_id),
        }), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list mandays")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@locations_bp.post("/<int:location_id>/mandays")
@require_identity
@require_location_access("location_id")
def record_mandays_route(location_id: int):
    """
    Request body:
    {
        "period_id": 7,
        "entries": [{"date": "2026-03-01", "crew_count": 40, "extra_count": 2}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        period_id = coerce_int(data.get("period_id"), "period_id")
        entries = manday_service.record_mandays(
            period_id=period_id,
            location_id=location_id,
            entries=data.get("entries"),
            user_id=g.identity.user_id,
        )
        return jsonify({
            "entries": [e.to_dict() for e in entries],
            "total_mandays": manday_service.get_total_mandays(period_id, location_id),
        }), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record mandays")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500
