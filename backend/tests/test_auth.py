"""
Authentication tests.

Verifies:
- Branch login authenticates against the credential store only
- Every credential failure returns the same 401 body
- Deactivation blocks login and open sessions even when the mirror disagrees
- Credential store outage returns 503 (no fallback)
- Login timestamps reach the mirror
"""

import pytest
from sqlalchemy.exc import OperationalError

from branchpos.extensions import db
from branchpos.models import BranchUserMirror
from branchpos.services import auth_service, branch_user_service, session_service
from conftest import DEFAULT_PASSWORD, auth_headers, get_branch_token


def _login(client, branch_code, username, password=DEFAULT_PASSWORD):
    return client.post('/api/auth/branch/login', json={
        'branch_code': branch_code,
        'username': username,
        'password': password,
    })


class TestBranchLogin:

    def test_success_returns_scoped_token(self, client, branch_a, cashier_a):
        resp = _login(client, "bra", "Cashier_A")

        assert resp.status_code == 200
        body = resp.json
        assert body["token"]
        assert body["user"]["id"] == cashier_a.id
        assert body["branch_id"] == branch_a.id
        assert body["role"] == "Cashier"
        assert "password_hash" not in body["user"]

    @pytest.mark.parametrize(
        "branch_code,username,password",
        [
            ("NOPE", "cashier_a", DEFAULT_PASSWORD),
            ("BRA", "nobody", DEFAULT_PASSWORD),
            ("BRA", "cashier_a", "WrongPassword1!"),
            ("BRA", "", DEFAULT_PASSWORD),
        ],
    )
    def test_failures_are_indistinguishable(self, client, branch_a, cashier_a, branch_code, username, password):
        resp = _login(client, branch_code, username, password)

        assert resp.status_code == 401
        assert resp.json == {"error": "Invalid credentials", "code": "InvalidCredentials", "details": {}}

    def test_user_of_other_branch_cannot_login_here(self, client, branch_a, branch_b, manager_b):
        resp = _login(client, "BRA", "manager_b")
        assert resp.status_code == 401

    def test_default_admin_can_login(self, client, branch_a):
        resp = _login(client, "BRA", "admin", "Admin@12345")
        assert resp.status_code == 200
        assert resp.json["role"] == "Manager"

    def test_login_updates_mirror_timestamps(self, client, branch_a, cashier_a):
        assert _login(client, "BRA", "cashier_a").status_code == 200

        db.session.expire_all()
        mirror = db.session.get(BranchUserMirror, cashier_a.id)
        credential = branch_user_service.get_branch_user(cashier_a.id)
        assert credential.last_login_at is not None
        assert mirror.last_login_at == credential.last_login_at
        assert mirror.last_activity_at == credential.last_activity_at

    def test_credential_store_outage_returns_503(self, client, branch_a, cashier_a, monkeypatch):
        def unreachable(branch_code, username):
            raise OperationalError("SELECT", {}, Exception("could not connect to server"))

        monkeypatch.setattr(auth_service, "_find_credential", unreachable)

        resp = _login(client, "BRA", "cashier_a")

        assert resp.status_code == 503
        assert resp.json["code"] == "ServiceUnavailable"


class TestDeactivation:

    def test_deactivated_user_cannot_login_even_if_mirror_active(self, client, branch_a, cashier_a):
        branch_user_service.update_branch_user(cashier_a.id, {"is_active": False})

        mirror = db.session.get(BranchUserMirror, cashier_a.id)
        mirror.is_active = True
        db.session.commit()

        resp = _login(client, "BRA", "cashier_a")
        assert resp.status_code == 401
        assert resp.json["code"] == "InvalidCredentials"

    def test_deactivation_revokes_open_sessions(self, client, branch_a, cashier_a):
        token = get_branch_token(client, "BRA", "cashier_a", DEFAULT_PASSWORD)
        assert client.get('/api/tables/status', headers=auth_headers(token)).status_code == 200

        branch_user_service.update_branch_user(cashier_a.id, {"is_active": False})

        assert session_service.validate_session(token) is None
        assert client.get('/api/tables/status', headers=auth_headers(token)).status_code == 401

    def test_password_change_revokes_sessions(self, client, branch_a, cashier_a):
        token = get_branch_token(client, "BRA", "cashier_a", DEFAULT_PASSWORD)
        branch_user_service.update_branch_user(cashier_a.id, {"new_password": "Changed123!"})

        assert session_service.validate_session(token) is None
        assert _login(client, "BRA", "cashier_a", "Changed123!").status_code == 200

    def test_demotion_revokes_sessions(self, client, manager_a, manager_headers):
        token = manager_headers["Authorization"].split(" ", 1)[1]
        branch_user_service.update_branch_user(manager_a.id, {"role": "Cashier"})

        assert session_service.validate_session(token) is None
        resp = client.post('/api/branch-users', headers=manager_headers, json={
            "username": "sneaky",
            "password": DEFAULT_PASSWORD,
            "role": "Manager",
        })
        assert resp.status_code == 401

        cashier_token = get_branch_token(client, "BRA", "manager_a", DEFAULT_PASSWORD)
        assert session_service.validate_session(cashier_token).role == "Cashier"
        resp = client.post('/api/branch-users', headers=auth_headers(cashier_token), json={
            "username": "sneaky",
            "password": DEFAULT_PASSWORD,
        })
        assert resp.status_code == 403

    def test_unchanged_role_keeps_sessions(self, client, cashier_a, cashier_headers):
        branch_user_service.update_branch_user(cashier_a.id, {"role": "Cashier", "phone": "0500000000"})
        assert client.get('/api/auth/me', headers=cashier_headers).status_code == 200

    def test_session_role_checked_against_credential_store(self, client, branch_a, manager_a):
        token = get_branch_token(client, "BRA", "manager_a", DEFAULT_PASSWORD)

        manager_a.role = "Cashier"
        db.session.commit()

        assert session_service.validate_session(token) is None

    def test_deactivated_branch_blocks_sessions(self, client, branch_a, cashier_a):
        from branchpos.services import branch_service

        token = get_branch_token(client, "BRA", "cashier_a", DEFAULT_PASSWORD)
        branch_service.update_branch(branch_a.id, is_active=False)

        assert session_service.validate_session(token) is None
        assert _login(client, "BRA", "cashier_a").status_code == 401


class TestSessions:

    def test_logout_revokes_token(self, client, cashier_headers):
        assert client.post('/api/auth/logout', headers=cashier_headers).status_code == 200
        assert client.get('/api/auth/me', headers=cashier_headers).status_code == 401

    def test_validate_endpoint(self, client, cashier_headers, cashier_a):
        token = cashier_headers["Authorization"].split(" ", 1)[1]

        resp = client.post('/api/auth/validate', json={"token": token})
        assert resp.status_code == 200
        assert resp.json["valid"] is True
        assert resp.json["user"]["id"] == cashier_a.id

        resp = client.post('/api/auth/validate', json={"token": "not-a-token"})
        assert resp.status_code == 401
        assert resp.json["valid"] is False

    def test_head_office_login(self, client, head_office_admin):
        resp = client.post('/api/auth/login', json={"username": "HOADMIN", "password": DEFAULT_PASSWORD})

        assert resp.status_code == 200
        assert resp.json["role"] == "Admin"
        assert resp.json["branch_id"] is None

    def test_head_office_login_wrong_password(self, client, head_office_admin):
        resp = client.post('/api/auth/login', json={"username": "hoadmin", "password": "Nope12345!"})
        assert resp.status_code == 401


class TestPasswords:

    @pytest.mark.parametrize(
        "password",
        ["Short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigitsHere!", "NoSpecial123"],
    )
    def test_weak_passwords_rejected(self, app, password):
        from branchpos.errors import PasswordValidationError

        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(password)

    def test_verify_password_handles_malformed_hash(self, app):
        assert auth_service.verify_password("Password123!", "not-a-bcrypt-hash") is False
