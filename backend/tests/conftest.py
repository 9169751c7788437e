"""
Pytest fixtures for BranchPOS backend tests.

Provides an app with in-memory head office and branch databases, per-test
data cleanup, seeded branches/users, and auth helpers for the test client.
"""

import pytest
from branchpos import create_app
from branchpos.config import Config
from branchpos.extensions import db
from branchpos.models import HeadOfficeUser
from branchpos.services import branch_service, branch_user_service
from branchpos.services.auth_service import hash_password


DEFAULT_PASSWORD = "Password123!"


class BranchPosTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_BINDS = {"branch": "sqlite://"}
    BCRYPT_ROUNDS = 4
    DEFAULT_BRANCH_ADMIN_PASSWORD = "Admin@12345"
    MIRROR_ASYNC_WRITES = False


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(BranchPosTestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh data for each test on both databases."""
    with app.app_context():
        for metadata in db.metadatas.values():
            for table in reversed(metadata.sorted_tables):
                db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()
        db.session.expunge_all()


@pytest.fixture(scope='function')
def branch_a(db_session):
    """Branch A, with its default 'admin' provisioned."""
    return branch_service.create_branch("BRA", "Branch A", tax_rate_bps=1500)


@pytest.fixture(scope='function')
def branch_b(db_session):
    """Branch B, with its default 'admin' provisioned."""
    return branch_service.create_branch("BRB", "Branch B", tax_rate_bps=0)


@pytest.fixture(scope='function')
def manager_a(db_session, branch_a):
    return branch_user_service.create_branch_user(branch_a.id, {
        "username": "manager_a",
        "password": DEFAULT_PASSWORD,
        "role": "Manager",
    })


@pytest.fixture(scope='function')
def cashier_a(db_session, branch_a):
    return branch_user_service.create_branch_user(branch_a.id, {
        "username": "cashier_a",
        "password": DEFAULT_PASSWORD,
        "role": "Cashier",
    })


@pytest.fixture(scope='function')
def manager_b(db_session, branch_b):
    return branch_user_service.create_branch_user(branch_b.id, {
        "username": "manager_b",
        "password": DEFAULT_PASSWORD,
        "role": "Manager",
    })


@pytest.fixture(scope='function')
def head_office_admin(db_session):
    user = HeadOfficeUser(
        username="hoadmin",
        email="hoadmin@branchpos.local",
        password_hash=hash_password(DEFAULT_PASSWORD),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager_headers(client, branch_a, manager_a):
    return auth_headers(get_branch_token(client, branch_a.code, "manager_a", DEFAULT_PASSWORD))


@pytest.fixture(scope='function')
def cashier_headers(client, branch_a, cashier_a):
    return auth_headers(get_branch_token(client, branch_a.code, "cashier_a", DEFAULT_PASSWORD))


@pytest.fixture(scope='function')
def admin_headers(client, head_office_admin):
    return auth_headers(get_auth_token(client, "hoadmin", DEFAULT_PASSWORD))


def get_branch_token(client, branch_code: str, username: str, password: str) -> str:
    """Helper to get a branch user's auth token."""
    response = client.post('/api/auth/branch/login', json={
        'branch_code': branch_code,
        'username': username,
        'password': password,
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get a head office admin's auth token."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
