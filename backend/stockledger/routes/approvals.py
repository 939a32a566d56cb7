# Overview: Generic approval endpoints; execution is dispatched by entity type.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import ELEVATED_ROLES, require_identity, require_role
from ..errors import StockLedgerError
from ..models.enums import ApprovalEntityType
from ..services import approval_service


approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")

# Roles allowed to decide each approval type
DECIDERS = {
    ApprovalEntityType.PERIOD_CLOSE.value: ("ADMIN",),
}


def _forbidden_for(approval):
    allowed = DECIDERS.get(approval.entity_type, ELEVATED_ROLES)
    if g.identity.role not in allowed:
        return jsonify({
            "error": {
                "code": "FORBIDDEN",
                "message": f"Requires role: {', '.join(allowed)}",
                "details": {"entity_type": approval.entity_type},
            }
        }), 403
    return None


@approvals_bp.get("")
@require_identity
@require_role(*ELEVATED_ROLES)
def list_approvals_route():
    try:
        approvals = approval_service.list_approvals(
            status=request.args.get("status"),
            entity_type=request.args.get("entity_type"),
        )
        return jsonify({"approvals": [a.to_dict() for a in approvals]}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list approvals")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@approvals_bp.get("/<int:approval_id>")
@require_identity
def get_approval_route(approval_id: int):
    try:
        approval = approval_service.get_approval(approval_id)
        return jsonify({"approval": approval.to_dict()}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load approval")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@approvals_bp.patch("/<int:approval_id>/approve")
@require_identity
@require_role(*ELEVATED_ROLES)
def approve_route(approval_id: int):
    """
    Request body (optional):
    {
        "comment": "..."
    }

    Returns:
        200: Approved and executed
        400: Execution failed (approval stays PENDING) or already decided
    """
    try:
        forbidden = _forbidden_for(approval_service.get_approval(approval_id))
        if forbidden:
            return forbidden

        data = request.get_json(silent=True) or {}
        approval = approval_service.approve(
            approval_id,
            user_id=g.identity.user_id,
            comment=data.get("comment"),
        )
        return jsonify({"approval": approval.to_dict()}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve approval %s", approval_id)
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@approvals_bp.patch("/<int:approval_id>/reject")
@require_identity
@require_role(*ELEVATED_ROLES)
def reject_route(approval_id: int):
    """
    Request body:
    {
        "comment": "..."   (required)
    }
    """
    try:
        forbidden = _forbidden_for(approval_service.get_approval(approval_id))
        if forbidden:
            return forbidden

        data = request.get_json(silent=True) or {}
        approval = approval_service.reject(
            approval_id,
            user_id=g.identity.user_id,
            comment=data.get("comment"),
        )
        return jsonify({"approval": approval.to_dict()}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject approval %s", approval_id)
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500
