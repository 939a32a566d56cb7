# Overview: Issue processor: stock consumption at WAC, all lines or none.

from __future__ import annotations

from ..extensions import db
from ..models import Issue, IssueLine, Item, Location
from ..models.enums import CostCentre, enum_values
from ..errors import NotFoundError, ValidationError
from ..money import ZERO, quantize_money, quantize_qty
from ..time_utils import utcnow
from ..validation import coerce_date, optional_text, parse_item_lines
from .concurrency import run_with_retry
from .document_service import next_document_number
from .ledger_service import append_ledger_event
from . import costing_service, period_service, stock_service


def post_issue(
    *,
    location_id: int,
    cost_centre: str,
    lines,
    issue_date=None,
    notes: str | None = None,
    user_id: int | None = None,
) -> Issue:
    """
    Consume stock at a location.

    Sufficiency is checked for every item (same-item lines summed) before
    any row changes, so a shortfall anywhere aborts the whole issue.
    wac_at_issue is the WAC of the row locked for that check; WAC itself
    does not move.
    """
    cost_centre = (cost_centre or "").strip().upper() if isinstance(cost_centre, str) else cost_centre
    if cost_centre not in enum_values(CostCentre):
        raise ValidationError(
            f"cost_centre must be one of: {', '.join(enum_values(CostCentre))}",
            {"field": "cost_centre"},
        )
    parsed = parse_item_lines(lines)
    notes = optional_text(notes)
    issued_on = coerce_date(issue_date, "issue_date") if issue_date not in (None, "") else None

    def _op():
        location = db.session.query(Location).filter_by(id=location_id).first()
        if not location:
            raise NotFoundError("location", location_id)
        period, _ = period_service.require_open_period_location(location_id)

        for index, line in enumerate(parsed, start=1):
            item = db.session.query(Item).filter_by(id=line["item_id"]).first()
            if not item:
                raise NotFoundError("item", line["item_id"])
            if not item.is_active:
                raise ValidationError(f"Line {index}: item {item.code} is inactive", {"line": index})

        rows = stock_service.check_sufficiency(
            location_id,
            [(line["item_id"], line["quantity"]) for line in parsed],
            lock=True,
        )

        issue = Issue(
            issue_no=next_document_number(document_type="ISSUE"),
            location_id=location_id,
            period_id=period.id,
            cost_centre=cost_centre,
            issue_date=issued_on or utcnow().date(),
            notes=notes,
            posted_by_user_id=user_id,
            posted_at=utcnow(),
        )

        total = ZERO
        for line in parsed:
            wac = rows[line["item_id"]].wac
            quantity = quantize_qty(line["quantity"])
            value = costing_service.line_value(quantity, wac)
            issue.lines.append(
                IssueLine(item_id=line["item_id"], quantity=quantity, wac_at_issue=wac, line_value=value)
            )
            total += value
            stock_service.apply_delta(location_id, line["item_id"], -quantity)

        issue.total_value = quantize_money(total)
        db.session.add(issue)
        db.session.flush()

        append_ledger_event(
            location_id=location_id,
            period_id=period.id,
            event_type="issue.posted",
            event_category="issues",
            entity_type="issue",
            entity_id=issue.id,
            actor_user_id=user_id,
            occurred_at=issue.posted_at,
            note=issue.issue_no,
            payload={"cost_centre": cost_centre, "total_value": str(issue.total_value), "lines": len(parsed)},
        )
        db.session.commit()
        return issue

    return run_with_retry(_op)


def get_issue(issue_id: int) -> Issue:
    issue = db.session.query(Issue).filter_by(id=issue_id).first()
    if not issue:
        raise NotFoundError("issue", issue_id)
    return issue


def list_issues(*, location_id: int | None = None, period_id: int | None = None) -> list[Issue]:
    query = db.session.query(Issue)
    if location_id is not None:
        query = query.filter(Issue.location_id == location_id)
    if period_id is not None:
        query = query.filter(Issue.period_id == period_id)
    return query.order_by(Issue.id.desc()).all()
