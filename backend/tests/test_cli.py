from stockledger.extensions import db
from stockledger.models import Location, Period

from conftest import add_stock


def test_add_location_and_duplicate(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["master", "add-location", "--code", "K9", "--name", "Galley", "--type", "KITCHEN"])
    assert "PASS Created location: Galley" in result.output
    assert db.session.query(Location).filter_by(code="K9").count() == 1

    result = runner.invoke(args=["master", "add-location", "--code", "K9", "--name", "Galley", "--type", "KITCHEN"])
    assert "FAIL Location with code 'K9' already exists" in result.output


def test_period_create_and_open(app, db_session, kitchen):
    runner = app.test_cli_runner()

    result = runner.invoke(
        args=["periods", "create", "--name", "May 2026", "--start", "2026-05-01", "--end", "2026-05-31"]
    )
    assert "PASS Created period: May 2026" in result.output

    period = db.session.query(Period).filter_by(name="May 2026").one()
    result = runner.invoke(args=["periods", "open", str(period.id)])
    assert "PASS Opened period: May 2026" in result.output

    result = runner.invoke(args=["periods", "list"])
    assert "May 2026" in result.output
    assert "OPEN" in result.output


def test_period_errors_are_reported(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(
        args=["periods", "create", "--name", "Backwards", "--start", "2026-05-31", "--end", "2026-05-01"]
    )
    assert "FAIL VALIDATION_ERROR" in result.output


def test_stock_show(app, db_session, kitchen, rice):
    add_stock(kitchen.id, rice.id, 4, "25.00")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["stock", "show", "--location", str(kitchen.id)])

    assert "RICE-25" in result.output
    assert "Total value: 100.00" in result.output
