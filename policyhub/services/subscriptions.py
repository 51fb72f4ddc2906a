"""
Subscription engine: the UserPolicy lifecycle.

    Pending  --agent/admin approve-->  Approved
    Pending  --agent/admin reject--->  Rejected
    Approved --customer cancel------>  Cancelled
    Approved --claim approved------->  Claimed   (see services.claims)
    Approved --end date passed------>  Expired   (see expire_lapsed_policies)

Every transition is a compare-and-swap on the current status, so two
concurrent decisions on the same Pending subscription cannot both succeed.
"""

from datetime import datetime, timezone

from flask import current_app

from policyhub.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from policyhub.extensions import db
from policyhub.models import (
    NOMINEE_RELATIONS, Customer, PolicyProduct, PolicyStatus, Role, UserPolicy, VerificationType,
)
from policyhub.services import audit
from policyhub.services.access import authorize_policy, authorize_policy_decision, require_role
from policyhub.services.base import OperationResult, service_operation
from policyhub.utils.dates import compute_end_date, parse_date, utc_today


def get_user_policy_or_404(user_policy_id):
    user_policy = db.session.get(UserPolicy, user_policy_id) if user_policy_id else None
    if not user_policy:
        raise NotFoundError("User policy not found")
    return user_policy


def compare_and_set_status(user_policy_id, expected, values, extra_filters=()):
    """
    Atomically apply ``values`` if the row's status is one of ``expected``.

    Returns True when exactly one row changed. The caller commits.
    """
    query = UserPolicy.query.filter(
        UserPolicy.id == user_policy_id,
        UserPolicy.status.in_(list(expected)),
        *extra_filters,
    )
    values = dict(values)
    values.setdefault(UserPolicy.updated_at, datetime.now(timezone.utc))
    return query.update(values, synchronize_session=False) == 1


def _clean_nominee(nominee):
    if not nominee:
        return None, None
    if not isinstance(nominee, dict):
        raise ValidationError("Validation error", details=["nominee must be an object with name and relation"])
    name = str(nominee.get('name') or '').strip()
    relation = str(nominee.get('relation') or '').strip()
    errors = []
    if not name:
        errors.append("nominee.name is required")
    if relation not in NOMINEE_RELATIONS:
        errors.append(f"nominee.relation must be one of {', '.join(NOMINEE_RELATIONS)}")
    if errors:
        raise ValidationError("Validation error", details=errors)
    return name, relation


# -------------------- PURCHASE --------------------

@service_operation
def purchase(user_id, product_id, start_date, nominee=None):
    """
    Create a Pending subscription for a customer.

    The end date is derived from the product term, and the product's
    assigned agent is copied onto the subscription.
    """
    try:
        start = parse_date(start_date)
    except ValueError:
        raise ValidationError("Validation error", details=["start_date must be a valid date (YYYY-MM-DD)"])
    nominee_name, nominee_relation = _clean_nominee(nominee)

    if not db.session.get(Customer, user_id):
        raise NotFoundError("Customer not found")
    product = db.session.get(PolicyProduct, product_id) if product_id else None
    if not product:
        raise NotFoundError("Policy not found")

    user_policy = UserPolicy(
        user_id=user_id,
        policy_product_id=product.id,
        product_code=product.code,
        product_title=product.title,
        start_date=start,
        end_date=compute_end_date(start, product.term_months),
        premium_paid=0,
        payments_count=0,
        status=PolicyStatus.PENDING,
        verification_type=VerificationType.NONE,
        assigned_agent_id=product.assigned_agent_id,
        nominee_name=nominee_name,
        nominee_relation=nominee_relation,
    )
    db.session.add(user_policy)
    db.session.commit()
    current_app.logger.info(
        f"Customer {user_id} purchased {product.code} as user policy {user_policy.id} (pending)"
    )
    return user_policy


# -------------------- DECISIONS --------------------

def _decide(user_policy_id, actor, new_status, via_request):
    require_role(actor, Role.AGENT, Role.ADMIN)
    user_policy = get_user_policy_or_404(user_policy_id)
    authorize_policy_decision(actor, user_policy)

    if user_policy.status != PolicyStatus.PENDING:
        raise ConflictError(
            f"Only pending policies can be decided (current status: {user_policy.status.value})"
        )

    now = datetime.now(timezone.utc)
    values = {
        UserPolicy.status: new_status,
        UserPolicy.verification_type: VerificationType.for_role(actor.role),
        UserPolicy.decided_at: now,
    }
    if new_status == PolicyStatus.APPROVED and via_request:
        product = user_policy.product
        if product is None:
            raise ConflictError("Linked policy product not found")
        today = utc_today()
        values[UserPolicy.start_date] = today
        values[UserPolicy.end_date] = compute_end_date(today, product.term_months)

    if not compare_and_set_status(user_policy.id, (PolicyStatus.PENDING,), values):
        raise ConflictError("Policy has already been decided")
    db.session.commit()
    db.session.refresh(user_policy)
    current_app.logger.info(
        f"User policy {user_policy.id} {new_status.value.lower()} by {actor.role.value} {actor.id}"
    )

    if new_status == PolicyStatus.APPROVED:
        action = audit.POLICY_REQUEST_APPROVED if via_request else audit.POLICY_APPROVED
    else:
        action = audit.POLICY_REQUEST_REJECTED if via_request else audit.POLICY_REJECTED
    warning = audit.record_audit(
        action,
        user_id=user_policy.user_id,
        actor=actor,
        details=f"User policy {user_policy.id} ({user_policy.product_code}) {new_status.value.lower()}",
    )
    return OperationResult.ok(user_policy, warnings=audit.collect_warnings(warning))


@service_operation
def approve(user_policy_id, actor, via_request=False):
    """
    Approve a Pending subscription.

    ``via_request`` marks the agent policy-request flow, which restarts the
    coverage window from today.
    """
    return _decide(user_policy_id, actor, PolicyStatus.APPROVED, via_request)


@service_operation
def reject(user_policy_id, actor, via_request=False):
    return _decide(user_policy_id, actor, PolicyStatus.REJECTED, via_request)


@service_operation
def cancel(user_policy_id, user_id):
    """Cancel an Approved subscription on behalf of its owner."""
    user_policy = get_user_policy_or_404(user_policy_id)
    if user_policy.user_id != user_id:
        current_app.logger.warning(f"Customer {user_id} tried to cancel user policy {user_policy.id}")
        raise ForbiddenError("You do not have permission to cancel this policy")
    if user_policy.status == PolicyStatus.CANCELLED:
        raise ConflictError("Policy is already cancelled.")
    if user_policy.status != PolicyStatus.APPROVED:
        raise ConflictError("Only approved policies can be cancelled.")

    if not compare_and_set_status(
        user_policy.id, (PolicyStatus.APPROVED,), {UserPolicy.status: PolicyStatus.CANCELLED}
    ):
        raise ConflictError("Policy status changed, please retry")
    db.session.commit()
    db.session.refresh(user_policy)
    current_app.logger.info(f"User policy {user_policy.id} cancelled by customer {user_id}")
    return user_policy


# -------------------- EXPIRY --------------------

@service_operation
def expire_lapsed_policies(today=None):
    """
    Move Approved subscriptions whose end date has passed to Expired.

    Each row is switched with the same compare-and-swap as the other
    transitions, so a concurrent cancel or claim approval wins cleanly.
    """
    today = today or utc_today()
    candidates = UserPolicy.query.filter(
        UserPolicy.status == PolicyStatus.APPROVED,
        UserPolicy.end_date < today,
    ).all()

    expired = []
    for user_policy in candidates:
        if compare_and_set_status(
            user_policy.id,
            (PolicyStatus.APPROVED,),
            {UserPolicy.status: PolicyStatus.EXPIRED},
            extra_filters=(UserPolicy.end_date < today,),
        ):
            expired.append((user_policy.id, user_policy.user_id, user_policy.product_code))
    db.session.commit()

    warnings = []
    for policy_id, user_id, code in expired:
        warnings.append(audit.record_audit(
            audit.POLICY_EXPIRED, user_id=user_id, details=f"User policy {policy_id} ({code}) expired"
        ))
    if expired:
        current_app.logger.info(f"Expired {len(expired)} lapsed user policies")
    return OperationResult.ok(
        len(expired),
        warnings=audit.collect_warnings(*warnings),
        meta={'expiredIds': [policy_id for policy_id, _, _ in expired]},
    )


# -------------------- READS --------------------

@service_operation
def get_policy(user_policy_id, actor):
    user_policy = get_user_policy_or_404(user_policy_id)
    authorize_policy(actor, user_policy)
    return user_policy


@service_operation
def list_customer_policies(user_id):
    return UserPolicy.query.filter_by(user_id=user_id).order_by(UserPolicy.created_at.desc()).all()


@service_operation
def list_all_policies(status=None):
    query = UserPolicy.query
    if status:
        try:
            query = query.filter(UserPolicy.status == PolicyStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown policy status: {status}")
    return query.order_by(UserPolicy.created_at.desc()).all()


def _agent_query(agent_id):
    return UserPolicy.query.filter(UserPolicy.assigned_agent_id == agent_id)


@service_operation
def list_agent_policies(agent_id):
    return _agent_query(agent_id).order_by(UserPolicy.created_at.desc()).all()


@service_operation
def list_policy_requests(agent_id):
    """Pending subscriptions waiting on this agent."""
    return (
        _agent_query(agent_id)
        .filter(UserPolicy.status == PolicyStatus.PENDING)
        .order_by(UserPolicy.created_at.asc())
        .all()
    )


@service_operation
def list_approved_customers(agent_id):
    return (
        _agent_query(agent_id)
        .filter(UserPolicy.status == PolicyStatus.APPROVED)
        .order_by(UserPolicy.decided_at.desc())
        .all()
    )


@service_operation
def list_policy_customers(agent_id, product_id):
    """Subscriptions of one product that are assigned to this agent."""
    if not db.session.get(PolicyProduct, product_id):
        raise NotFoundError("Policy product not found")
    return (
        _agent_query(agent_id)
        .filter(UserPolicy.policy_product_id == product_id)
        .order_by(UserPolicy.created_at.desc())
        .all()
    )
