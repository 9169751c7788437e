# Overview: Flask CLI command groups for bootstrap, branch provisioning, and mirror reconciliation.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--username admin --email admin@branchpos.local --password "..."]
#   Create all tables on both databases and the first head office admin.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions
#   Delete expired and revoked sessions older than 30 days.
#
# Branches:
# - python -m flask branches list [--all]
# - python -m flask branches create --code RYD01 --name "Riyadh Main" --tax-rate-bps 1500
#   Also provisions the branch's default 'admin' user in both stores.
#
# Branch users:
# - python -m flask branch-users list --branch-id 1 [--all]
# - python -m flask branch-users create --branch-id 1 --username cashier1 --password "..." --role Cashier
#
# Mirror sync:
# - python -m flask sync reconcile [--branch-id 1]
#   Copy credential store records to the branch mirror where they differ.
# - python -m flask sync run-scheduler [--interval 3600]
#   Run reconcile on a fixed interval until interrupted.
# - python -m flask sync issues [--branch-id 1]
#   List queued mirror write failures.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import BranchPosError
from .extensions import db
from .models import HeadOfficeUser
from .services import auth_service, branch_service, branch_user_service, mirror_service, reconcile_service
from .services import session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--username', default='admin', help='Head office admin username')
@click.option('--email', default='admin@branchpos.local', help='Head office admin email')
@click.option('--password', default='Password123!', help='Head office admin password')
@with_appcontext
def init_system(username, email, password):
    """
    Create the schema on both databases and the first head office admin.

    Idempotent: an existing admin is left untouched.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing BranchPOS...")

    db.create_all()
    click.echo("PASS Tables created (head office and branch)")

    existing = db.session.query(HeadOfficeUser).filter(
        db.func.lower(HeadOfficeUser.username) == username.lower()
    ).first()
    if existing:
        click.echo(f"PASS Using existing head office admin: {existing.username}")
        return

    try:
        user = auth_service.create_head_office_user(username, email, password)
    except BranchPosError as exc:
        click.echo(f"FAIL {exc.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created head office admin: {user.username}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables on both databases and recreate the schema.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete")


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} expired sessions")


@click.group('branches')
def branches_group():
    """Branch provisioning commands."""


@branches_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive branches')
@with_appcontext
def list_branches(include_inactive):
    branches = branch_service.list_branches(include_inactive=include_inactive)
    if not branches:
        click.echo("No branches found.")
        return

    click.echo("\n" + "=" * 70)
    click.echo(f"{'ID':<5} {'Code':<12} {'Name':<30} {'Tax bps':<8} {'Active'}")
    click.echo("=" * 70)
    for branch in branches:
        active_str = "Yes" if branch.is_active else "No"
        click.echo(f"{branch.id:<5} {branch.code:<12} {branch.name:<30} {branch.tax_rate_bps:<8} {active_str}")
    click.echo("=" * 70 + "\n")


@branches_group.command('create')
@click.option('--code', prompt=True, help='Branch code used at login')
@click.option('--name', prompt=True, help='Branch name')
@click.option('--tax-rate-bps', default=0, type=int, help='Sales tax in basis points (1500 = 15%)')
@with_appcontext
def create_branch(code, name, tax_rate_bps):
    try:
        branch = branch_service.create_branch(code, name, tax_rate_bps)
    except BranchPosError as exc:
        click.echo(f"FAIL {exc.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created branch {branch.code} (ID: {branch.id})")
    click.echo(f"PASS Provisioned default user '{branch_user_service.DEFAULT_ADMIN_USERNAME}' (Manager)")


@click.group('branch-users')
def branch_users_group():
    """Branch user inspection and bootstrap."""


@branch_users_group.command('list')
@click.option('--branch-id', type=int, help='Filter by branch ID')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive users')
@with_appcontext
def list_branch_users(branch_id, include_inactive):
    users = branch_user_service.list_branch_users(branch_id, include_inactive=include_inactive)
    if not users:
        click.echo("No branch users found.")
        return

    click.echo("\n" + "=" * 100)
    click.echo(f"{'ID':<38} {'Branch':<7} {'Username':<20} {'Role':<10} {'Active':<7} {'Synced'}")
    click.echo("=" * 100)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        synced_str = user.synced_at.isoformat(timespec="seconds") if user.synced_at else "never"
        click.echo(f"{user.id:<38} {user.branch_id:<7} {user.username:<20} {user.role:<10} {active_str:<7} {synced_str}")
    click.echo("=" * 100 + "\n")


@branch_users_group.command('create')
@click.option('--branch-id', type=int, prompt=True)
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(['Manager', 'Cashier']), default='Cashier')
@click.option('--full-name', default=None)
@with_appcontext
def create_branch_user(branch_id, username, password, role, full_name):
    try:
        user = branch_user_service.create_branch_user(branch_id, {
            "username": username,
            "password": password,
            "role": role,
            "full_name_en": full_name,
        })
    except BranchPosError as exc:
        click.echo(f"FAIL {exc.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created {user.role} '{user.username}' in branch {user.branch_id} (ID: {user.id})")


@click.group('sync')
def sync_group():
    """Branch mirror reconciliation."""


def _echo_reports(reports):
    for report in reports:
        if report.failed:
            click.echo(f"FAIL Branch {report.branch_id}: {report.error}")
            continue
        click.echo(
            f"PASS Branch {report.branch_id}: checked {report.checked}, "
            f"inserted {len(report.inserted)}, updated {len(report.updated)}, "
            f"orphaned {len(report.orphaned)}"
        )
        for user_id in report.orphaned:
            click.echo(f"WARN   mirror-only user {user_id}")


@sync_group.command('reconcile')
@click.option('--branch-id', type=int, default=None, help='Reconcile a single branch')
@with_appcontext
def reconcile(branch_id):
    try:
        reports = reconcile_service.reconcile(branch_id)
    except BranchPosError as exc:
        click.echo(f"FAIL {exc.message}")
        raise SystemExit(1)
    if not reports:
        click.echo("No active branches.")
        return
    _echo_reports(reports)
    if any(report.failed for report in reports):
        raise SystemExit(1)


@sync_group.command('run-scheduler')
@click.option('--interval', type=int, default=None, help='Seconds between sweeps (default RECONCILE_INTERVAL_SECONDS)')
@with_appcontext
def run_scheduler(interval):
    app = current_app._get_current_object()
    interval = interval or app.config["RECONCILE_INTERVAL_SECONDS"]
    click.echo(f"START Reconciling every {interval}s (Ctrl+C to stop)")
    try:
        reconcile_service.run_scheduler(app, interval)
    except KeyboardInterrupt:
        click.echo("STOP Scheduler stopped")


@sync_group.command('issues')
@click.option('--branch-id', type=int, default=None)
@with_appcontext
def list_issues(branch_id):
    issues = mirror_service.list_open_issues(branch_id)
    if not issues:
        click.echo("No open sync issues.")
        return
    for issue in issues:
        click.echo(
            f"{issue.id:<5} branch {issue.branch_id:<4} user {issue.branch_user_id} "
            f"{issue.operation:<10} attempts {issue.attempts}: {issue.error}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(branch_users_group)
    app.cli.add_command(sync_group)
