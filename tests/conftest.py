import os
import sys
from datetime import date

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Override env vars for testing
os.environ["SECRET_KEY"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_ENV"] = "testing"
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from sqlalchemy import event
from sqlalchemy.engine import Engine

from policyhub import create_app
from policyhub.auth import issue_token
from policyhub.extensions import db
from policyhub.models import Role
from policyhub.services import accounts, catalog, subscriptions
from policyhub.services.access import Principal


@pytest.fixture
def app():
    """Provide a Flask app instance configured for tests."""
    flask_app = create_app({
        "TESTING": True,
        "WTF_CSRF_ENABLED": False,
        "RATELIMIT_ENABLED": False,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "ENV": "testing",
        "SESSION_COOKIE_SECURE": False,
    })
    yield flask_app


@pytest.fixture
def client(app):
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    client = app.test_client()
    yield client
    db.session.remove()
    db.drop_all()
    ctx.pop()


# SQLite pragma event listener for foreign key constraints
# Registered at module level and persists across all tests
def _enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


event.listen(Engine, "connect", _enable_sqlite_foreign_keys)


# -------------------- ACCOUNTS --------------------

@pytest.fixture
def customer(client):
    return accounts.register_customer("Carol Customer", "carol@example.com", "secret1").unwrap()


@pytest.fixture
def other_customer(client):
    return accounts.register_customer("Dave Customer", "dave@example.com", "secret1").unwrap()


@pytest.fixture
def agent(client):
    return accounts.create_agent("Alice Agent", "alice@example.com", "secret1").unwrap()


@pytest.fixture
def other_agent(client):
    return accounts.create_agent("Bob Agent", "bob@example.com", "secret1").unwrap()


@pytest.fixture
def admin(client):
    return accounts.create_admin("Ada Admin", "ada@example.com", "secret1").unwrap()


@pytest.fixture
def customer_principal(customer):
    return Principal(id=customer.id, role=Role.CUSTOMER)


@pytest.fixture
def agent_principal(agent):
    return Principal(id=agent.id, role=Role.AGENT)


@pytest.fixture
def other_agent_principal(other_agent):
    return Principal(id=other_agent.id, role=Role.AGENT)


@pytest.fixture
def admin_principal(admin):
    return Principal(id=admin.id, role=Role.ADMIN)


def auth_headers(principal):
    """Bearer header for a principal; needs an app context."""
    return {"Authorization": f"Bearer {issue_token(principal)}"}


# -------------------- CATALOG & SUBSCRIPTIONS --------------------

@pytest.fixture
def product(client, agent):
    """HEALTH1: premium 500 over 12 months, assigned to ``agent``."""
    created = catalog.create_product({
        "code": "HEALTH1",
        "title": "Health Basic",
        "premium": 500,
        "term_months": 12,
        "min_sum_insured": 100000,
        "max_sum_insured": 500000,
    }).unwrap()
    return catalog.assign_agent(created.id, agent.id).unwrap()


@pytest.fixture
def pending_policy(customer, product):
    return subscriptions.purchase(customer.id, product.id, date(2024, 1, 1)).unwrap()


@pytest.fixture
def approved_policy(pending_policy, admin_principal):
    return subscriptions.approve(pending_policy.id, admin_principal).unwrap()


@pytest.fixture
def headers_for():
    """Return a callable building bearer headers for a principal."""
    return auth_headers
