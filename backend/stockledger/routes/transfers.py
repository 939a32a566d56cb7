# backend/stockledger/routes/transfers.py
"""
Inter-location transfer API routes.

Approve/reject here and PATCH /api/approvals/<id>/approve|reject reach the
same execution routine.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import ELEVATED_ROLES, require_identity, require_location_access, require_role
from ..errors import StockLedgerError
from ..services import transfer_service


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.route("", methods=["POST"])
@require_identity
@require_location_access("from_location_id")
def create_transfer():
    """
    Create a transfer request.

    Request body:
    {
        "from_location_id": int,
        "to_location_id": int,
        "notes": str (optional),
        "submit": bool (optional, default true; false keeps it DRAFT),
        "lines": [{"item_id": int, "quantity": "50"}]
    }

    Returns:
        201: Transfer created (PENDING_APPROVAL or DRAFT)
        400: Invalid request or insufficient source stock
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.create_transfer(
            from_location_id=data.get("from_location_id"),
            to_location_id=data.get("to_location_id"),
            lines=data.get("lines"),
            notes=data.get("notes"),
            submit=data.get("submit", True) is not False,
            user_id=g.identity.user_id,
        )
        return jsonify({"transfer": transfer.to_dict()}), 201

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@transfers_bp.route("/<int:transfer_id>/submit", methods=["PATCH"])
@require_identity
def submit_transfer(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(transfer_id)
        if not g.identity.can_access(transfer.from_location_id):
            return jsonify({"error": {"code": "FORBIDDEN", "message": "No access to this location", "details": {}}}), 403

        transfer = transfer_service.submit_transfer(transfer_id, user_id=g.identity.user_id)
        return jsonify({"transfer": transfer.to_dict()}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to submit transfer")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@transfers_bp.route("/<int:transfer_id>/approve", methods=["PATCH"])
@require_identity
@require_role(*ELEVATED_ROLES)
def approve_transfer(transfer_id: int):
    """
    Approve and complete a transfer (supervisor action).

    Returns:
        200: Transfer COMPLETED
        400: Insufficient source stock; transfer stays PENDING_APPROVAL
        404: Transfer not found
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.approve_transfer(
            transfer_id,
            user_id=g.identity.user_id,
            comment=data.get("comment"),
        )
        return jsonify({"transfer": transfer.to_dict()}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve transfer")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@transfers_bp.route("/<int:transfer_id>/reject", methods=["PATCH"])
@require_identity
@require_role(*ELEVATED_ROLES)
def reject_transfer(transfer_id: int):
    """
    Request body:
    {
        "comment": str (required)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.reject_transfer(
            transfer_id,
            user_id=g.identity.user_id,
            comment=data.get("comment"),
        )
        return jsonify({"transfer": transfer.to_dict()}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject transfer")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
@require_identity
def get_transfer(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(transfer_id)
        if not (
            g.identity.can_access(transfer.from_location_id)
            or g.identity.can_access(transfer.to_location_id)
        ):
            return jsonify({"error": {"code": "FORBIDDEN", "message": "No access to this transfer", "details": {}}}), 403
        return jsonify({"transfer": transfer.to_dict()}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load transfer")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@transfers_bp.route("", methods=["GET"])
@require_identity
def list_transfers():
    """
    Query: location_id (either side), status.

    Without location_id, callers limited to some locations only see
    transfers touching one of them.
    """
    try:
        location_id = request.args.get("location_id", type=int)
        if location_id is not None and not g.identity.can_access(location_id):
            return jsonify({"error": {"code": "FORBIDDEN", "message": "No access to this location", "details": {}}}), 403

        transfers = transfer_service.list_transfers(
            location_id=location_id,
            status=request.args.get("status"),
        )
        visible = [
            t for t in transfers
            if g.identity.can_access(t.from_location_id) or g.identity.can_access(t.to_location_id)
        ]
        return jsonify({"transfers": [t.to_dict() for t in visible]}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500
