# Overview: Flask API routes for deliveries; parses input and returns JSON responses.

"""
Delivery API

- POST /api/locations/<id>/deliveries   record a DRAFT or POSTED delivery
- POST /api/deliveries/<id>/post        post a DRAFT delivery
- GET  /api/locations/<id>/deliveries   deliveries at a location
- GET  /api/deliveries/<id>             delivery with lines

Price variance never fails a post. Auto-created NCRs come back in
"ncrs_created" so the client can surface them.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_identity, require_location_access
from ..errors import StockLedgerError
from ..services import delivery_service


deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api")


def _posting_response(result: dict) -> dict:
    return {
        "delivery": result["delivery"].to_dict(),
        "ncrs_created": [ncr.to_dict() for ncr in result["ncrs_created"]],
        "ncr_count": len(result["ncrs_created"]),
    }


@deliveries_bp.post("/locations/<int:location_id>/deliveries")
@require_identity
@require_location_access("location_id")
def create_delivery_route(location_id: int):
    """
    Request body:
    {
        "supplier_id": 3,
        "invoice_no": "INV-1001",        (required when status is POSTED)
        "delivery_date": "2026-03-04",   (optional, default today)
        "delivery_note": "...",          (optional)
        "status": "POSTED",              (optional, DRAFT or POSTED)
        "period_id": 7,                  (optional, must be the open period)
        "lines": [{"item_id": 1, "quantity": "10", "unit_price": "26.00"}]
    }

    Returns:
        201: Delivery recorded
        400: Validation or business rule failure
        409: Duplicate invoice
    """
    try:
        data = request.get_json(silent=True) or {}

        result = delivery_service.post_delivery(
            location_id=location_id,
            supplier_id=data.get("supplier_id"),
            lines=data.get("lines"),
            invoice_no=data.get("invoice_no"),
            delivery_date=data.get("delivery_date"),
            delivery_note=data.get("delivery_note"),
            status=str(data.get("status") or "POSTED").upper(),
            period_id=data.get("period_id"),
            user_id=g.identity.user_id,
        )
        return jsonify(_posting_response(result)), 201

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record delivery")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@deliveries_bp.post("/deliveries/<int:delivery_id>/post")
@require_identity
def post_draft_delivery_route(delivery_id: int):
    try:
        delivery = delivery_service.get_delivery(delivery_id)
        if not g.identity.can_access(delivery.location_id):
            return jsonify({"error": {"code": "FORBIDDEN", "message": "No access to this location", "details": {}}}), 403

        data = request.get_json(silent=True) or {}
        result = delivery_service.post_draft_delivery(
            delivery_id,
            invoice_no=data.get("invoice_no"),
            user_id=g.identity.user_id,
        )
        return jsonify(_posting_response(result)), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to post delivery")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@deliveries_bp.get("/deliveries/<int:delivery_id>")
@require_identity
def get_delivery_route(delivery_id: int):
    try:
        delivery = delivery_service.get_delivery(delivery_id)
        if not g.identity.can_access(delivery.location_id):
            return jsonify({"error": {"code": "FORBIDDEN", "message": "No access to this location", "details": {}}}), 403
        return jsonify({"delivery": delivery.to_dict()}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load delivery")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@deliveries_bp.get("/locations/<int:location_id>/deliveries")
@require_identity
@require_location_access("location_id")
def list_deliveries_route(location_id: int):
    """Query: period_id, status."""
    try:
        deliveries = delivery_service.list_deliveries(
            location_id=location_id,
            period_id=request.args.get("period_id", type=int),
            status=request.args.get("status"),
        )
        return jsonify({"deliveries": [d.to_dict(include_lines=False) for d in deliveries]}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list deliveries")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500
