"""
Dashboard read models for agents and admins.
"""

from sqlalchemy import func

from policyhub.extensions import db
from policyhub.models import (
    Agent, Claim, ClaimStatus, Customer, Payment, PolicyStatus, UserPolicy,
)
from policyhub.services.base import service_operation

# Statuses that count as a sold policy
SOLD_POLICY_STATUSES = (PolicyStatus.APPROVED, PolicyStatus.CLAIMED, PolicyStatus.EXPIRED)


def _status_counts(column, query):
    rows = query.with_entities(column, func.count()).group_by(column).all()
    return {status.value: count for status, count in rows}


def _claims_by_status(query):
    counts = _status_counts(Claim.status, query)
    return {status.value: counts.get(status.value, 0) for status in ClaimStatus}


def _payment_totals(query):
    count, total = query.with_entities(
        func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0.0)
    ).one()
    return count, float(total)


@service_operation
def agent_dashboard_stats(agent_id):
    """KPIs for the subscriptions assigned to one agent."""
    policies = UserPolicy.query.filter(UserPolicy.assigned_agent_id == agent_id)
    by_status = _status_counts(UserPolicy.status, policies)

    claims = Claim.query.join(UserPolicy, Claim.user_policy_id == UserPolicy.id).filter(
        UserPolicy.assigned_agent_id == agent_id
    )
    payments = Payment.query.join(UserPolicy, Payment.user_policy_id == UserPolicy.id).filter(
        UserPolicy.assigned_agent_id == agent_id
    )
    payments_count, payments_total = _payment_totals(payments)

    customers = (
        db.session.query(func.count(func.distinct(UserPolicy.user_id)))
        .filter(UserPolicy.assigned_agent_id == agent_id)
        .scalar()
    )
    return {
        'customersCount': customers or 0,
        'policiesByStatus': {status.value: by_status.get(status.value, 0) for status in PolicyStatus},
        'pendingRequests': by_status.get(PolicyStatus.PENDING.value, 0),
        'policiesSold': sum(by_status.get(s.value, 0) for s in SOLD_POLICY_STATUSES),
        'claimsByStatus': _claims_by_status(claims),
        'paymentsCount': payments_count,
        'totalPayments': payments_total,
    }


@service_operation
def admin_summary():
    """System-wide KPIs."""
    policies_sold = UserPolicy.query.filter(UserPolicy.status.in_(list(SOLD_POLICY_STATUSES))).count()
    claims = _claims_by_status(Claim.query)
    payments_count, payments_total = _payment_totals(Payment.query)
    return {
        'customersCount': Customer.query.count(),
        'agentsCount': Agent.query.count(),
        'policiesSold': policies_sold,
        'pendingPolicies': UserPolicy.query.filter(UserPolicy.status == PolicyStatus.PENDING).count(),
        'claimsPending': claims[ClaimStatus.PENDING.value],
        'claimsApproved': claims[ClaimStatus.APPROVED.value],
        'claimsRejected': claims[ClaimStatus.REJECTED.value],
        'paymentsCount': payments_count,
        'totalPayments': payments_total,
    }


@service_operation
def customer_details():
    """
    Every customer with their subscriptions and payments.

    Returns a list of dicts: ``{'customer', 'policies', 'payments'}`` holding
    model instances for the route layer to serialize.
    """
    customers = Customer.query.order_by(Customer.created_at.asc()).all()
    details = []
    for customer in customers:
        details.append({
            'customer': customer,
            'policies': customer.policies.order_by(UserPolicy.created_at.desc()).all(),
            'payments': (
                Payment.query.filter_by(user_id=customer.id)
                .order_by(Payment.created_at.desc())
                .all()
            ),
        })
    return details
