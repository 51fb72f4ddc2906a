"""
Database models for PolicyHub.

All SQLAlchemy models are defined here with proper relationships and properties.
Times are stored as UTC in the database. Identifiers are opaque 24-hex tokens.
"""

from datetime import datetime, timezone
import enum
import secrets

from policyhub.extensions import db


def _utc_now():
    """Helper function for timezone-aware datetime defaults in SQLAlchemy models."""
    return datetime.now(timezone.utc)


def new_object_id():
    """Return a new 24-character hex identifier."""
    return secrets.token_hex(12)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# -------------------- ENUMS --------------------

class Role(enum.Enum):
    """Principal roles. Admin supersedes Agent-only restrictions."""
    CUSTOMER = 'Customer'
    AGENT = 'Agent'
    ADMIN = 'Admin'

    @classmethod
    def from_string(cls, value):
        """Convert string to enum (case-insensitive), raising ValueError if invalid."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value.lower() == str(value or '').lower():
                return member
        raise ValueError(f"Invalid Role: {value}")


class PolicyStatus(enum.Enum):
    PENDING = 'Pending'
    APPROVED = 'Approved'
    REJECTED = 'Rejected'
    CANCELLED = 'Cancelled'
    EXPIRED = 'Expired'
    CLAIMED = 'Claimed'

    @property
    def is_terminal(self):
        return self in TERMINAL_POLICY_STATUSES


TERMINAL_POLICY_STATUSES = frozenset({
    PolicyStatus.REJECTED,
    PolicyStatus.CANCELLED,
    PolicyStatus.EXPIRED,
    PolicyStatus.CLAIMED,
})

# Subscriptions that still block deletion of their product
ACTIVE_POLICY_STATUSES = frozenset({PolicyStatus.PENDING, PolicyStatus.APPROVED})


class VerificationType(enum.Enum):
    AGENT = 'Agent'
    ADMIN = 'Admin'
    NONE = 'None'

    @classmethod
    def for_role(cls, role):
        if role == Role.ADMIN:
            return cls.ADMIN
        if role == Role.AGENT:
            return cls.AGENT
        return cls.NONE


class ClaimStatus(enum.Enum):
    PENDING = 'Pending'
    APPROVED = 'Approved'
    REJECTED = 'Rejected'


class PaymentMethod(enum.Enum):
    CARD = 'Card'
    NETBANKING = 'Netbanking'
    OFFLINE = 'Offline'
    UPI = 'UPI'
    SIMULATED = 'Simulated'

    @classmethod
    def from_string(cls, value):
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ValueError(f"Invalid PaymentMethod: {value}")


NOMINEE_RELATIONS = ('Spouse', 'Parent', 'Child', 'Sibling', 'Relative', 'Friend', 'Other')


# -------------------- ACCOUNT MODELS --------------------

class Customer(db.Model):
    __tablename__ = 'customers'
    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    # All times stored as UTC (see header note)
    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    role = Role.CUSTOMER

    def __repr__(self):
        return f'<Customer {self.email}>'


class Agent(db.Model):
    __tablename__ = 'agents'
    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    agent_code = db.Column(db.String(20), unique=True, nullable=True, index=True)  # AGT001, AGT002, ...
    created_at = db.Column(db.DateTime, default=_utc_now)

    role = Role.AGENT

    def __repr__(self):
        return f'<Agent {self.agent_code or self.email}>'


class Admin(db.Model):
    __tablename__ = 'admins'
    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=_utc_now)

    role = Role.ADMIN

    def __repr__(self):
        return f'<Admin {self.email}>'


# Role -> account table. Principal lookups dispatch through this mapping.
ACCOUNT_MODELS = {
    Role.CUSTOMER: Customer,
    Role.AGENT: Agent,
    Role.ADMIN: Admin,
}


class Counter(db.Model):
    """Named sequence row, incremented atomically (e.g. agent codes)."""
    __tablename__ = 'counters'
    name = db.Column(db.String(50), primary_key=True)
    seq = db.Column(db.Integer, nullable=False, default=0)


# -------------------- POLICY MODELS --------------------

class PolicyProduct(db.Model):
    __tablename__ = 'policy_products'
    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False, default='')
    premium = db.Column(db.Float, nullable=False)  # Per-installment amount
    term_months = db.Column(db.Integer, nullable=False)  # Number of monthly installments
    min_sum_insured = db.Column(db.Float, nullable=False, default=0)
    max_sum_insured = db.Column(db.Float, nullable=True)

    assigned_agent_id = db.Column(db.String(24), db.ForeignKey('agents.id', ondelete='SET NULL'), nullable=True)
    assigned_agent_name = db.Column(db.String(100), nullable=True)  # Snapshot taken on assignment

    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)

    assigned_agent = db.relationship('Agent', backref=db.backref('assigned_products', lazy='dynamic'))
    subscriptions = db.relationship('UserPolicy', backref='product', lazy='dynamic')

    def __repr__(self):
        return f'<PolicyProduct {self.code}>'


class UserPolicy(db.Model):
    """A customer's subscription to a PolicyProduct."""
    __tablename__ = 'user_policies'
    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    user_id = db.Column(db.String(24), db.ForeignKey('customers.id'), nullable=False, index=True)
    policy_product_id = db.Column(
        db.String(24), db.ForeignKey('policy_products.id', ondelete='SET NULL'), nullable=True, index=True
    )

    # Product snapshot, kept when a product is later deleted
    product_code = db.Column(db.String(20), nullable=True)
    product_title = db.Column(db.String(100), nullable=True)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    # premium_paid == sum(payments.amount) and payments_count == count(payments);
    # both only change together inside the pay transaction.
    premium_paid = db.Column(db.Float, nullable=False, default=0)
    payments_count = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(
        db.Enum(PolicyStatus, values_callable=_enum_values, name='policy_status_enum'),
        nullable=False,
        default=PolicyStatus.PENDING,
        index=True,
    )
    verification_type = db.Column(
        db.Enum(VerificationType, values_callable=_enum_values, name='verification_type_enum'),
        nullable=False,
        default=VerificationType.NONE,
    )
    assigned_agent_id = db.Column(db.String(24), db.ForeignKey('agents.id'), nullable=True, index=True)

    nominee_name = db.Column(db.String(100), nullable=True)
    nominee_relation = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime, default=_utc_now)
    updated_at = db.Column(db.DateTime, default=_utc_now, onupdate=_utc_now)
    decided_at = db.Column(db.DateTime, nullable=True)

    customer = db.relationship('Customer', backref=db.backref('policies', lazy='dynamic'))
    assigned_agent = db.relationship('Agent', backref=db.backref('assigned_policies', lazy='dynamic'))
    payments = db.relationship('Payment', backref='user_policy', lazy='dynamic')
    claims = db.relationship('Claim', backref='user_policy', lazy='dynamic')

    @property
    def nominee(self):
        if not self.nominee_name:
            return None
        return {'name': self.nominee_name, 'relation': self.nominee_relation}

    def __repr__(self):
        return f'<UserPolicy {self.id} {self.status.value if self.status else None}>'


class Payment(db.Model):
    """One installment. Immutable once created."""
    __tablename__ = 'payments'
    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    user_id = db.Column(db.String(24), db.ForeignKey('customers.id'), nullable=False, index=True)
    user_policy_id = db.Column(db.String(24), db.ForeignKey('user_policies.id'), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)  # Always the product premium, never client supplied
    method = db.Column(
        db.Enum(PaymentMethod, values_callable=_enum_values, name='payment_method_enum'),
        nullable=False,
        default=PaymentMethod.SIMULATED,
    )
    reference = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=_utc_now, nullable=False)

    customer = db.relationship('Customer', backref=db.backref('payments', lazy='dynamic'))


class Claim(db.Model):
    __tablename__ = 'claims'
    id = db.Column(db.String(24), primary_key=True, default=new_object_id)
    user_id = db.Column(db.String(24), db.ForeignKey('customers.id'), nullable=False, index=True)
    user_policy_id = db.Column(db.String(24), db.ForeignKey('user_policies.id'), nullable=False, index=True)

    incident_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=False)
    amount_claimed = db.Column(db.Float, nullable=False)

    status = db.Column(
        db.Enum(ClaimStatus, values_callable=_enum_values, name='claim_status_enum'),
        nullable=False,
        default=ClaimStatus.PENDING,
        index=True,
    )
    decision_notes = db.Column(db.Text, nullable=True)
    decided_by_agent_id = db.Column(db.String(24), db.ForeignKey('agents.id'), nullable=True)
    decided_by_admin_id = db.Column(db.String(24), db.ForeignKey('admins.id'), nullable=True)
    verification_type = db.Column(
        db.Enum(VerificationType, values_callable=_enum_values, name='verification_type_enum'),
        nullable=False,
        default=VerificationType.NONE,
    )

    created_at = db.Column(db.DateTime, default=_utc_now)
    decided_at = db.Column(db.DateTime, nullable=True)

    customer = db.relationship('Customer', backref=db.backref('claims', lazy='dynamic'))
    decided_by_agent = db.relationship('Agent', backref='decided_claims')
    decided_by_admin = db.relationship('Admin', backref='decided_claims')

    def __repr__(self):
        return f'<Claim {self.id} {self.status.value if self.status else None}>'


# ---- Audit Log Model ----
class AuditLog(db.Model):
    """Append-only trail of privileged actions."""
    __tablename__ = 'audit_logs'
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    user_id = db.Column(db.String(24), nullable=True, index=True)  # Subject of the action
    actor_id = db.Column(db.String(24), nullable=True)
    actor_role = db.Column(db.String(20), nullable=True)
    details = db.Column(db.Text, nullable=True)
    timestamp = db.Column(db.DateTime, default=_utc_now, nullable=False, index=True)
