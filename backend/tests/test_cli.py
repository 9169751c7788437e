"""CLI command tests (Flask test CLI runner)."""

from branchpos.extensions import db
from branchpos.models import Branch, BranchUser, BranchUserMirror


def test_branches_create_provisions_admin(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["branches", "create", "--code", "jed01", "--name", "Jeddah", "--tax-rate-bps", "1500"])

    assert result.exit_code == 0, result.output
    assert "PASS" in result.output
    branch = db.session.query(Branch).filter_by(code="JED01").one()
    admin = db.session.query(BranchUser).filter_by(branch_id=branch.id, username_normalized="admin").one()
    assert db.session.get(BranchUserMirror, admin.id) is not None


def test_sync_reconcile_reports_inserted_rows(app, branch_a):
    db.session.query(BranchUserMirror).delete()
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["sync", "reconcile", "--branch-id", str(branch_a.id)])

    assert result.exit_code == 0, result.output
    assert f"PASS Branch {branch_a.id}: checked 1, inserted 1" in result.output


def test_sync_reconcile_unknown_branch(app, db_session):
    result = app.test_cli_runner().invoke(args=["sync", "reconcile", "--branch-id", "999"])

    assert result.exit_code == 1
    assert "FAIL Branch not found" in result.output
