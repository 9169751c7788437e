"""Health endpoint tests."""

from branchpos.routes import system


def test_health_reports_both_databases(client, db_session):
    resp = client.get('/api/health')

    assert resp.status_code == 200
    assert resp.json["status"] == "healthy"
    assert set(resp.json["checks"]) == {"head_office_db", "branch_db"}


def test_branch_outage_is_degraded(client, db_session, monkeypatch):
    monkeypatch.setattr(system, "check_branch_health", lambda: {"status": "unhealthy", "error": "Database error"})

    resp = client.get('/api/health')

    assert resp.status_code == 200
    assert resp.json["status"] == "degraded"


def test_head_office_outage_is_unhealthy(client, db_session, monkeypatch):
    monkeypatch.setattr(system, "check_head_office_health", lambda: {"status": "unhealthy", "error": "Database error"})

    resp = client.get('/api/health')

    assert resp.status_code == 503
    assert resp.json["status"] == "unhealthy"
