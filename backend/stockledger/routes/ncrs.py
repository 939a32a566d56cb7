# Overview: Flask API routes for non-conformance reports.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import ELEVATED_ROLES, require_identity, require_location_access
from ..errors import StockLedgerError, ValidationError
from ..services import ncr_service
from ..validation import coerce_int


ncrs_bp = Blueprint("ncrs", __name__, url_prefix="/api/ncrs")


@ncrs_bp.post("")
@require_identity
@require_location_access("location_id")
def create_ncr_route():
    """
    Raise a manual NCR. PRICE_VARIANCE NCRs are only created by delivery posting.

    Request body:
    {
        "location_id": 1,
        "reason": "Damaged on arrival",
        "value": "120.00",                  (optional when lines are given)
        "quantity": "4",                    (optional)
        "delivery_id": 12,                  (optional)
        "delivery_line_id": 30,             (optional)
        "lines": [{"item_id": 1, "quantity": "4", "unit_value": "30.00"}]  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        ncr = ncr_service.create_manual_ncr(
            location_id=coerce_int(data.get("location_id"), "location_id"),
            reason=data.get("reason"),
            value=data.get("value"),
            quantity=data.get("quantity"),
            delivery_id=data.get("delivery_id"),
            delivery_line_id=data.get("delivery_line_id"),
            lines=data.get("lines"),
            user_id=g.identity.user_id,
        )
        return jsonify({"ncr": ncr.to_dict()}), 201
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create NCR")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@ncrs_bp.get("/summary")
@require_identity
def ncr_summary_route():
    """Query: period_id, location_id."""
    try:
        period_id = coerce_int(request.args.get("period_id"), "period_id")
        location_id = coerce_int(request.args.get("location_id"), "location_id")
        if not g.identity.can_access(location_id):
            return jsonify({"error": {"code": "FORBIDDEN", "message": "No access to this location", "details": {}}}), 403
        summary = ncr_service.summarize_ncrs(period_id, location_id)
        return jsonify({"period_id": period_id, "location_id": location_id, "summary": summary}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to summarize NCRs")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@ncrs_bp.get("/<int:ncr_id>")
@require_identity
def get_ncr_route(ncr_id: int):
    try:
        ncr = ncr_service.get_ncr(ncr_id)
        if not g.identity.can_access(ncr.location_id):
            return jsonify({"error": {"code": "FORBIDDEN", "message": "No access to this location", "details": {}}}), 403
        return jsonify({"ncr": ncr.to_dict()}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load NCR")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@ncrs_bp.patch("/<int:ncr_id>")
@require_identity
def update_ncr_route(ncr_id: int):
    """
    Request body:
    {
        "status": "RESOLVED",
        "resolution_type": "Supplier credit note",   (required for RESOLVED)
        "financial_impact": "CREDIT",                (required for RESOLVED)
        "resolution_notes": "..."                    (optional)
    }

    Settling an NCR (CREDITED, REJECTED, RESOLVED) needs SUPERVISOR or ADMIN.
    """
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            raise ValidationError("status is required", {"field": "status"})

        ncr = ncr_service.get_ncr(ncr_id)
        if not g.identity.can_access(ncr.location_id):
            return jsonify({"error": {"code": "FORBIDDEN", "message": "No access to this location", "details": {}}}), 403
        if str(status).upper() in ncr_service.SETTLED_STATUSES and g.identity.role not in ELEVATED_ROLES:
            return jsonify({"error": {"code": "FORBIDDEN", "message": f"Requires role: {', '.join(ELEVATED_ROLES)}", "details": {}}}), 403

        ncr = ncr_service.update_ncr_status(
            ncr_id,
            status=str(status).upper(),
            resolution_type=data.get("resolution_type"),
            financial_impact=data.get("financial_impact"),
            resolution_notes=data.get("resolution_notes"),
            user_id=g.identity.user_id,
        )
        return jsonify({"ncr": ncr.to_dict()}), 200
    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update NCR")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500
