# Overview: Reconciliation of the branch mirror store against the credential store.

"""
Mirror reconciliation.

One-way: credential store -> mirror. For every credential record whose
mirror row is missing or differs in a synced field, the credential version
is re-applied. Mirror rows with no credential record are reported as
discrepancies and left in place; deleting them is an operator decision.

Runs on demand (API, CLI) and periodically from the CLI scheduler.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFound
from ..extensions import db
from ..models import Branch, BranchUser, BranchUserMirror
from branchpos.time_utils import utcnow
from . import mirror_service


@dataclass
class ReconcileReport:
    branch_id: int
    checked: int = 0
    inserted: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)
    resolved_issues: int = 0
    failed: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "branch_id": self.branch_id,
            "checked": self.checked,
            "inserted": self.inserted,
            "updated": self.updated,
            "orphaned": self.orphaned,
            "resolved_issues": self.resolved_issues,
            "failed": self.failed,
            "error": self.error,
        }


def _reconcile_branch(branch_id: int) -> ReconcileReport:
    report = ReconcileReport(branch_id=branch_id)

    credentials = db.session.query(BranchUser).filter_by(branch_id=branch_id).all()
    mirrors = {
        mirror.id: mirror
        for mirror in db.session.query(BranchUserMirror).filter_by(branch_id=branch_id).all()
    }
    report.checked = len(credentials)

    now = utcnow()
    repaired: list[BranchUser] = []
    for user in credentials:
        mirror = mirrors.get(user.id)
        changed = mirror_service.differing_fields(user, mirror)
        if not changed:
            continue

        if mirror is None:
            mirror = BranchUserMirror(id=user.id)
            db.session.add(mirror)
            report.inserted.append(user.id)
        else:
            report.updated.append(user.id)

        for name in mirror_service.SYNCED_FIELDS:
            setattr(mirror, name, getattr(user, name))
        mirror.synced_at = now
        repaired.append(user)

    credential_ids = {user.id for user in credentials}
    report.orphaned = sorted(mirror_id for mirror_id in mirrors if mirror_id not in credential_ids)
    for mirror_id in report.orphaned:
        current_app.logger.warning(
            "Mirror discrepancy in branch %s: user %s exists in mirror but not in credential store",
            branch_id, mirror_id,
        )

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("Reconciliation of branch %s failed: %s", branch_id, exc)
        report.failed = True
        report.error = str(exc)
        report.inserted = []
        report.updated = []
        return report

    for user in repaired:
        user.synced_at = now
    report.resolved_issues = mirror_service.resolve_issues(sorted(credential_ids))
    db.session.commit()

    if report.inserted or report.updated or report.orphaned:
        current_app.logger.info(
            "Reconciled branch %s: %s inserted, %s updated, %s orphaned",
            branch_id, len(report.inserted), len(report.updated), len(report.orphaned),
        )
    return report


def reconcile(branch_id: int | None = None) -> list[ReconcileReport]:
    """
    Reconcile one branch, or every active branch when ``branch_id`` is None.

    A failing branch does not stop the others; its report has failed=True.
    """
    if branch_id is not None:
        branch = db.session.get(Branch, branch_id)
        if not branch:
            raise NotFound("Branch not found")
        branch_ids = [branch.id]
    else:
        branch_ids = [
            row.id for row in db.session.query(Branch.id).filter(Branch.is_active.is_(True)).order_by(Branch.id).all()
        ]

    return [_reconcile_branch(bid) for bid in branch_ids]


def run_scheduler(app, interval_seconds: int, stop_event: threading.Event | None = None,
                  max_runs: int | None = None) -> int:
    """
    Run reconcile() every ``interval_seconds`` until stopped.

    Returns the number of completed sweeps.
    """
    stop_event = stop_event or threading.Event()
    runs = 0
    while not stop_event.is_set():
        with app.app_context():
            try:
                reports = reconcile()
                app.logger.info(
                    "Reconciliation sweep finished: %s branches, %s failed",
                    len(reports), sum(1 for report in reports if report.failed),
                )
            except Exception:
                app.logger.exception("Reconciliation sweep failed")
        runs += 1
        if max_runs is not None and runs >= max_runs:
            break
        stop_event.wait(interval_seconds)
    return runs
