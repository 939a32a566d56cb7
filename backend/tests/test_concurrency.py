from datetime import datetime

import pytest
from sqlalchemy.orm.exc import StaleDataError

from stockledger.errors import ConcurrencyConflict
from stockledger.models import LedgerEvent
from stockledger.services import ledger_service
from stockledger.services.concurrency import run_with_retry
from stockledger.services.document_service import next_document_number


def test_retry_recovers_from_stale_data(db_session):
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise StaleDataError("version mismatch")
        return "done"

    assert run_with_retry(flaky, attempts=3, backoff_base=0) == "done"
    assert len(attempts) == 3


def test_retry_gives_up_with_conflict(db_session):
    def always_stale():
        raise StaleDataError("version mismatch")

    with pytest.raises(ConcurrencyConflict) as exc:
        run_with_retry(always_stale, attempts=2, backoff_base=0)
    assert exc.value.status_code == 409
    assert exc.value.details == {"attempts": 2}


def test_business_errors_are_not_retried(db_session):
    attempts = []

    def invalid():
        attempts.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        run_with_retry(invalid, attempts=3, backoff_base=0)
    assert len(attempts) == 1


def test_document_numbers_are_sequential_per_type_and_year(db_session):
    assert next_document_number(document_type="DELIVERY", year=2026) == "DEL-2026-0001"
    assert next_document_number(document_type="DELIVERY", year=2026) == "DEL-2026-0002"
    assert next_document_number(document_type="ISSUE", year=2026) == "ISS-2026-0001"
    assert next_document_number(document_type="DELIVERY", year=2027) == "DEL-2027-0001"
    db_session.commit()


def test_rolled_back_number_is_reused(db_session):
    next_document_number(document_type="NCR", year=2026)
    db_session.commit()

    assert next_document_number(document_type="NCR", year=2026) == "NCR-2026-0002"
    db_session.rollback()

    assert next_document_number(document_type="NCR", year=2026) == "NCR-2026-0002"


def test_ledger_events_filter_by_entity(db_session, kitchen):
    ledger_service.append_ledger_event(
        location_id=kitchen.id,
        event_type="issue.posted",
        event_category="issues",
        entity_type="issue",
        entity_id=1,
        occurred_at=datetime(2026, 3, 2, 9, 0),
    )
    ledger_service.append_ledger_event(
        location_id=kitchen.id,
        event_type="delivery.posted",
        event_category="deliveries",
        entity_type="delivery",
        entity_id=1,
        occurred_at=datetime(2026, 3, 1, 9, 0),
    )
    db_session.commit()

    assert db_session.query(LedgerEvent).count() == 2
    events = ledger_service.list_ledger_events(location_id=kitchen.id, entity_type="issue")
    assert [e.event_type for e in events] == ["issue.posted"]
