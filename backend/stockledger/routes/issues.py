# Overview: Flask API routes for stock issues.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_identity, require_location_access
from ..errors import StockLedgerError
from ..services import issue_service


issues_bp = Blueprint("issues", __name__, url_prefix="/api")


@issues_bp.post("/locations/<int:location_id>/issues")
@require_identity
@require_location_access("location_id")
def post_issue_route(location_id: int):
    """
    Request body:
    {
        "cost_centre": "FOOD",
        "issue_date": "2026-03-04",  (optional)
        "notes": "...",              (optional)
        "lines": [{"item_id": 1, "quantity": "5"}]
    }

    Returns:
        201: Issue posted
        400: Validation failure or INSUFFICIENT_STOCK (nothing moved)
    """
    try:
        data = request.get_json(silent=True) or {}

        issue = issue_service.post_issue(
            location_id=location_id,
            cost_centre=data.get("cost_centre"),
            lines=data.get("lines"),
            issue_date=data.get("issue_date"),
            notes=data.get("notes"),
            user_id=g.identity.user_id,
        )
        return jsonify({"issue": issue.to_dict()}), 201

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to post issue")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@issues_bp.get("/issues/<int:issue_id>")
@require_identity
def get_issue_route(issue_id: int):
    try:
        issue = issue_service.get_issue(issue_id)
        if not g.identity.can_access(issue.location_id):
            return jsonify({"error": {"code": "FORBIDDEN", "message": "No access to this location", "details": {}}}), 403
        return jsonify({"issue": issue.to_dict()}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load issue")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500


@issues_bp.get("/locations/<int:location_id>/issues")
@require_identity
@require_location_access("location_id")
def list_issues_route(location_id: int):
    try:
        issues = issue_service.list_issues(
            location_id=location_id,
            period_id=request.args.get("period_id", type=int),
        )
        return jsonify({"issues": [i.to_dict() for i in issues]}), 200

    except StockLedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list issues")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}}}), 500
