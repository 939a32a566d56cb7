# Overview: Flask API routes for the period lifecycle; parses input and returns JSON responses.

"""
Period API

SECURITY:
- Creating, opening, pricing, closing and rolling forward: ADMIN
- Marking a location ready / unready: SUPERVISOR or ADMIN with access
  to the location
- Reads: any identified caller
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import ELEVATED_ROLES, require_identity, require_location_access, require_role
from ..errors import StockLedgerError
from ..services import period_service


periods_bp = Blueprint("periods", __name__, url_prefix="/api/periods")


@periods_bp.get("")
@require_identity
def list_periods_route():
    try:
        periods = period_service.list_periods(status=request.args.get("status"))
        return jsonify({"periods": [p.to_dict() for p in periods]}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list periods")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.post("")
@require_identity
@require_role("ADMIN")
def create_period_route():
    """
    Request body:
    {
        "name": "March 2026",
        "start_date": "2026-03-01",
        "end_date": "2026-03-31"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        period = period_service.create_period(
            name=data.get("name"),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            user_id=g.identity.user_id,
        )
        return jsonify({"period": period.to_dict(include_locations=True)}), 201
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create period")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.get("/current")
@require_identity
def current_period_route():
    try:
        period = period_service.require_current_period()
        return jsonify({"period": period.to_dict(include_locations=True)}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load current period")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.get("/<int:period_id>")
@require_identity
def get_period_route(period_id: int):
    try:
        period = period_service.get_period(period_id)
        data = period.to_dict(include_locations=True)
        if request.args.get("include_snapshots") == "true":
            data["locations"] = [pl.to_dict(include_snapshot=True) for pl in period.period_locations]
        return jsonify({"period": data}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load period")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.post("/<int:period_id>/open")
@require_identity
@require_role("ADMIN")
def open_period_route(period_id: int):
    try:
        period = period_service.open_period(period_id, user_id=g.identity.user_id)
        return jsonify({"period": period.to_dict(include_locations=True)}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open period")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.get("/<int:period_id>/prices")
@require_identity
def get_prices_route(period_id: int):
    try:
        period_service.get_period(period_id)
        prices = period_service.get_period_prices(period_id)
        return jsonify({"prices": [p.to_dict() for p in prices.values()]}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load period prices")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.post("/<int:period_id>/prices")
@require_identity
@require_role("ADMIN")
def set_prices_route(period_id: int):
    """
    Request body:
    {
        "prices": [{"item_id": 1, "price": "25.00"}]
    }

    Returns:
        200: Prices saved
        400: PERIOD_CLOSED once the period has left DRAFT
    """
    try:
        data = request.get_json(silent=True) or {}
        prices = period_service.set_period_prices(period_id, data.get("prices"), user_id=g.identity.user_id)
        return jsonify({"prices": [p.to_dict() for p in prices]}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set period prices")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.post("/<int:period_id>/prices/copy")
@require_identity
@require_role("ADMIN")
def copy_prices_route(period_id: int):
    try:
        data = request.get_json(silent=True) or {}
        copied = period_service.copy_prices_from_previous(
            period_id,
            source_period_id=data.get("source_period_id"),
            user_id=g.identity.user_id,
        )
        return jsonify({"copied": copied}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to copy period prices")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.patch("/<int:period_id>/locations/<int:location_id>/ready")
@require_identity
@require_role(*ELEVATED_ROLES)
@require_location_access("location_id")
def mark_ready_route(period_id: int, location_id: int):
    """
    Returns:
        200: Location READY
        400: RECONCILIATION_NOT_COMPLETED when no reconciliation exists
    """
    try:
        pl = period_service.mark_location_ready(period_id, location_id, user_id=g.identity.user_id)
        return jsonify({"period_location": pl.to_dict()}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark location ready")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.patch("/<int:period_id>/locations/<int:location_id>/unready")
@require_identity
@require_role(*ELEVATED_ROLES)
@require_location_access("location_id")
def mark_unready_route(period_id: int, location_id: int):
    try:
        pl = period_service.mark_location_unready(period_id, location_id, user_id=g.identity.user_id)
        return jsonify({"period_location": pl.to_dict()}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark location unready")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.post("/<int:period_id>/close")
@require_identity
@require_role("ADMIN")
def request_close_route(period_id: int):
    """
    Returns:
        201: PERIOD_CLOSE approval created, period PENDING_CLOSE
        400: LOCATIONS_NOT_READY with the list of locations
    """
    try:
        approval = period_service.request_period_close(period_id, user_id=g.identity.user_id)
        return jsonify({"approval": approval.to_dict()}), 201
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to request period close")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@periods_bp.post("/<int:period_id>/roll-forward")
@require_identity
@require_role("ADMIN")
def roll_forward_route(period_id: int):
    """
    Request body (optional):
    {
        "name": "April 2026",
        "end_date": "2026-04-30",
        "copy_prices": true
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        period = period_service.roll_forward_period(
            period_id,
            end_date=data.get("end_date"),
            name=data.get("name"),
            copy_prices=data.get("copy_prices", True) is not False,
            user_id=g.identity.user_id,
        )
        return jsonify({"period": period.to_dict(include_locations=True)}), 201
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to roll period forward")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500
