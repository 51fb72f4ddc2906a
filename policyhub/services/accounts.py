"""
Account directory: customers, agents and admins.

Agent codes (AGT001, AGT002, ...) come from a named counter row that is
incremented with a single UPDATE, so two concurrent agent creations never
receive the same code.
"""

import re

from flask import current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from policyhub.errors import ConflictError, UnauthenticatedError, ValidationError
from policyhub.extensions import db
from policyhub.models import ACCOUNT_MODELS, Admin, Agent, Counter, Customer, Role
from policyhub.services import audit
from policyhub.services.access import Principal, require_role
from policyhub.services.base import OperationResult, service_operation

AGENT_CODE_COUNTER = 'agentCode'
AGENT_CODE_PREFIX = 'AGT'
PASSWORD_MIN_LENGTH = 6
NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 100

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def next_sequence(name):
    """Atomically increment and return the counter called ``name``. The caller commits."""
    if db.session.get(Counter, name) is None:
        db.session.add(Counter(name=name, seq=0))
        db.session.flush()
    Counter.query.filter(Counter.name == name).update(
        {Counter.seq: Counter.seq + 1}, synchronize_session=False
    )
    return db.session.query(Counter.seq).filter(Counter.name == name).scalar()


def format_agent_code(seq):
    return f"{AGENT_CODE_PREFIX}{seq:03d}"


def _clean_account_fields(name, email, password):
    errors = []
    name = (name or '').strip()
    email = (email or '').strip().lower()
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        errors.append(f"name must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters")
    if not EMAIL_PATTERN.match(email):
        errors.append("email must be a valid email address")
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password is required and must be at least {PASSWORD_MIN_LENGTH} characters.")
    if errors:
        raise ValidationError("Validation error", details=errors)
    return name, email


def _create_account(model, name, email, password, **extra):
    name, email = _clean_account_fields(name, email, password)
    if model.query.filter_by(email=email).first():
        raise ConflictError(f"{model.role.value} with this email already exists.")
    account = model(name=name, email=email, password_hash=generate_password_hash(password), **extra)
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"{model.role.value} with this email already exists.")
    current_app.logger.info(f"{model.role.value} account {account.id} created")
    return account


@service_operation
def register_customer(name, email, password):
    return _create_account(Customer, name, email, password)


@service_operation
def create_admin(name, email, password):
    return _create_account(Admin, name, email, password)


@service_operation
def create_agent(name, email, password, actor=None):
    """Create an agent with the next sequential agent code."""
    if actor is not None:
        require_role(actor, Role.ADMIN)
    _clean_account_fields(name, email, password)
    if Agent.query.filter_by(email=(email or '').strip().lower()).first():
        raise ConflictError("Agent with this email already exists.")

    agent_code = format_agent_code(next_sequence(AGENT_CODE_COUNTER))
    agent = _create_account(Agent, name, email, password, agent_code=agent_code)

    warning = audit.record_audit(
        audit.AGENT_CREATED, user_id=agent.id, actor=actor, details=f"Agent {agent.agent_code} created"
    )
    return OperationResult.ok(agent, warnings=audit.collect_warnings(warning))


@service_operation
def authenticate(role, email, password):
    """Return the Principal for valid credentials of the given role."""
    try:
        role = Role.from_string(role)
    except ValueError:
        raise ValidationError(f"Unknown role: {role}")
    model = ACCOUNT_MODELS[role]
    account = model.query.filter_by(email=(email or '').strip().lower()).first()
    if not account or not check_password_hash(account.password_hash, password or ''):
        current_app.logger.warning(f"Failed {role.value} login for {email}")
        raise UnauthenticatedError("Invalid credentials")
    return Principal(id=account.id, role=role)


@service_operation
def list_agents():
    return Agent.query.order_by(Agent.agent_code.asc()).all()

