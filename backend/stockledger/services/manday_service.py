# Overview: Daily headcount (POB) entries, the denominator of manday cost.

from __future__ import annotations

from ..extensions import db
from ..models import Location, MandayEntry, Period
from ..models.enums import PeriodStatus
from ..errors import NotFoundError, PeriodClosed, ValidationError
from ..validation import coerce_date, coerce_int
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event


def record_mandays(
    *,
    period_id: int,
    location_id: int,
    entries: list[dict],
    user_id: int | None = None,
) -> list[MandayEntry]:
    """
    Upsert daily POB counts for a location: [{date, crew_count, extra_count}].

    Dates must fall inside the period. Counts are non-negative integers.
    Entries can only change while the period is DRAFT or OPEN.
    """
    if not isinstance(entries, list) or not entries:
        raise ValidationError("At least one entry is required", {"field": "entries"})

    def _op():
        period = db.session.query(Period).filter_by(id=period_id).first()
        if not period:
            raise NotFoundError("period", period_id)
        if period.status not in (PeriodStatus.DRAFT.value, PeriodStatus.OPEN.value):
            raise PeriodClosed(
                f"Mandays cannot be changed while the period is {period.status}",
                {"period_id": period_id, "status": period.status},
            )
        if not db.session.query(Location).filter_by(id=location_id).first():
            raise NotFoundError("location", location_id)

        saved = []
        seen = set()
        for index, raw in enumerate(entries, start=1):
            if not isinstance(raw, dict):
                raise ValidationError(f"Entry {index} must be an object", {"entry": index})
            entry_date = coerce_date(raw.get("date"), f"entries[{index}].date")
            if entry_date < period.start_date or entry_date > period.end_date:
                raise ValidationError(
                    f"Entry {index}: {entry_date.isoformat()} is outside the period",
                    {"entry": index, "start_date": period.start_date.isoformat(), "end_date": period.end_date.isoformat()},
                )
            if entry_date in seen:
                raise ValidationError(f"Entry {index}: duplicate date {entry_date.isoformat()}", {"entry": index})
            seen.add(entry_date)

            crew = coerce_int(raw.get("crew_count", 0), f"entries[{index}].crew_count")
            extra = coerce_int(raw.get("extra_count", 0), f"entries[{index}].extra_count")
            if crew < 0 or extra < 0:
                raise ValidationError(f"Entry {index}: counts must be >= 0", {"entry": index})

            entry = (
                db.session.query(MandayEntry)
                .filter_by(period_id=period_id, location_id=location_id, entry_date=entry_date)
                .first()
            )
            if entry is None:
                entry = MandayEntry(period_id=period_id, location_id=location_id, entry_date=entry_date)
                db.session.add(entry)
            entry.crew_count = crew
            entry.extra_count = extra
            entry.entered_by_user_id = user_id
            saved.append(entry)

        db.session.flush()
        append_ledger_event(
            location_id=location_id,
            period_id=period_id,
            event_type="mandays.recorded",
            event_category="reconciliations",
            entity_type="period",
            entity_id=period_id,
            actor_user_id=user_id,
            payload={"days": len(saved)},
        )
        db.session.commit()
        return saved

    return run_with_retry(_op)


def get_total_mandays(period_id: int, location_id: int) -> int:
    total = (
        db.session.query(
            db.func.coalesce(db.func.sum(MandayEntry.crew_count + MandayEntry.extra_count), 0)
        )
        .filter(MandayEntry.period_id == period_id, MandayEntry.location_id == location_id)
        .scalar()
    )
    return int(total or 0)


def list_mandays(period_id: int, location_id: int) -> list[MandayEntry]:
    return (
        db.session.query(MandayEntry)
        .filter_by(period_id=period_id, location_id=location_id)
        .order_by(MandayEntry.entry_date.asc())
        .all()
    )
