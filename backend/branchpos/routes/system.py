"""
System health endpoint.

Reports the head office and branch databases separately: login depends on
the first only, so a branch outage is a degraded state, not a failure.
"""

import time
from flask import Blueprint, jsonify, current_app
from ..extensions import db
from ..models import Branch, BranchUser, DiningTable, MirrorSyncIssue
from branchpos.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_head_office_health() -> dict:
    start_time = time.time()
    try:
        branch_count = db.session.query(Branch).count()
        user_count = db.session.query(BranchUser).count()
        open_issues = db.session.query(MirrorSyncIssue).filter(MirrorSyncIssue.resolved_at.is_(None)).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "branches": branch_count,
                "branch_users": user_count,
                "open_sync_issues": open_issues,
            },
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Head office database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_branch_health() -> dict:
    start_time = time.time()
    try:
        table_count = db.session.query(DiningTable).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"tables": table_count},
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Branch database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    checks = {
        "head_office_db": check_head_office_health(),
        "branch_db": check_branch_health(),
    }
    if checks["head_office_db"]["status"] != "healthy":
        status, code = "unhealthy", 503
    elif checks["branch_db"]["status"] != "healthy":
        status, code = "degraded", 200
    else:
        status, code = "healthy", 200

    return jsonify({
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }), code
