"""
Flask CLI command groups.
"""

from sqlalchemy import update

from tiretrack.models import ChartOfAccount, Supplier, User
from tiretrack.permissions import DISPOSE_TIRES
from tiretrack.services import permission_service, tire_service


def test_seed_accounts(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "seed-accounts"])
    assert result.exit_code == 0
    assert "PASS 15 account(s) seeded" in result.output

    result = runner.invoke(args=["system", "seed-accounts"])
    assert "PASS 0 account(s) seeded" in result.output
    assert db_session.query(ChartOfAccount).count() == 15


def test_users_create_grant_revoke(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["users", "create", "--username", "jdoe", "--full-name", "Jane Doe"])
    assert "PASS Created user: jdoe" in result.output
    user = db_session.query(User).filter_by(username="jdoe").one()

    result = runner.invoke(args=["users", "grant", "jdoe", DISPOSE_TIRES])
    assert "PASS Granted" in result.output
    assert permission_service.user_has_permission(user.id, DISPOSE_TIRES)

    result = runner.invoke(args=["users", "revoke", "jdoe", DISPOSE_TIRES])
    assert "PASS Revoked" in result.output
    result = runner.invoke(args=["users", "revoke", "jdoe", DISPOSE_TIRES])
    assert "WARN" in result.output

    result = runner.invoke(args=["users", "grant", "nobody", DISPOSE_TIRES])
    assert "FAIL User 'nobody' not found" in result.output

    result = runner.invoke(args=["users", "grant", "jdoe", "FLY_PLANES"])
    assert result.exit_code != 0


def test_integrity_check_exit_codes(app, db_session, receive_tires, tire_supplier):
    runner = app.test_cli_runner()
    receive_tires(2)

    result = runner.invoke(args=["integrity", "check"])
    assert result.exit_code == 0
    assert "PASS stock" in result.output
    assert "FAIL" not in result.output

    db_session.execute(update(Supplier).where(Supplier.id == tire_supplier.id).values(balance_cents=1))
    db_session.commit()

    result = runner.invoke(args=["integrity", "check"])
    assert result.exit_code == 1
    assert "FAIL supplier_balance: 1 violation(s)" in result.output

    result = runner.invoke(args=["suppliers", "reconcile", "--fix"])
    assert "PASS Fixed 1 drifted balance(s)" in result.output

    result = runner.invoke(args=["integrity", "check"])
    assert result.exit_code == 0


def test_tire_history(app, db_session, receive_tires):
    runner = app.test_cli_runner()
    tire = tire_service.get_tire(receive_tires(1)[0])

    result = runner.invoke(args=["tires", "history", tire.serial_number])
    assert result.exit_code == 0
    assert "status=IN_STORE" in result.output
    assert "PURCHASE_RECEIPT" in result.output

    result = runner.invoke(args=["tires", "history", "NO-SUCH-SERIAL"])
    assert "FAIL" in result.output


def test_stock_commands(app, db_session, receive_tires):
    runner = app.test_cli_runner()
    receive_tires(1)

    assert "PASS Stock counters match" in runner.invoke(args=["stock", "reconcile"]).output
    assert "No catalog rows need reordering." in runner.invoke(args=["stock", "reorder"]).output
