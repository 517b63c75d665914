"""Flask CLI commands."""

from pharmacy.models import User


def test_users_create_and_list(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create",
        "--username", "cashier",
        "--email", "cashier@pharmacy.local",
        "--password", "Till!Open42",
    ])
    assert "PASS Created user: cashier" in result.output
    assert db_session.query(User).filter_by(username="cashier").count() == 1

    result = runner.invoke(args=["users", "list"])
    assert "cashier@pharmacy.local" in result.output


def test_users_create_weak_password(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "users", "create",
        "--username", "cashier",
        "--email", "cashier@pharmacy.local",
        "--password", "weak",
    ])
    assert "FAIL Password validation failed" in result.output
    assert db_session.query(User).count() == 0


def test_init_db_is_idempotent(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init-db"])
    assert result.exit_code == 0
    assert "PASS" in result.output
