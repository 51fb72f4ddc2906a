"""
Claims engine: Claim lifecycle and its side effect on the parent subscription.

    Pending --approve--> Approved   (parent UserPolicy -> Claimed)
    Pending --reject---> Rejected   (parent untouched)

The claim decision and the parent status change are committed together; if
either compare-and-swap loses a race nothing is written.
"""

import math
from datetime import datetime, timezone

from flask import current_app

from policyhub.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from policyhub.extensions import db
from policyhub.models import Claim, ClaimStatus, PolicyStatus, UserPolicy, VerificationType
from policyhub.services import audit
from policyhub.services.access import (
    authorize_claim, authorize_claim_decision, authorize_policy, require_principal,
)
from policyhub.services.base import OperationResult, service_operation
from policyhub.services.subscriptions import compare_and_set_status, get_user_policy_or_404
from policyhub.utils.dates import parse_date, utc_today

DESCRIPTION_MAX_LENGTH = 2000

# Parent statuses that may still move to Claimed when a claim is approved
CLAIMABLE_POLICY_STATUSES = (PolicyStatus.APPROVED, PolicyStatus.EXPIRED, PolicyStatus.CLAIMED)

CUSTOMER_EDITABLE_FIELDS = ('incident_date', 'description', 'amount_claimed')
REVIEWER_EDITABLE_FIELDS = CUSTOMER_EDITABLE_FIELDS + ('decision_notes',)


def get_claim_or_404(claim_id):
    claim = db.session.get(Claim, claim_id) if claim_id else None
    if not claim:
        raise NotFoundError("Claim not found")
    return claim


def _clean_claim_fields(data, partial=False):
    errors = []
    values = {}

    if not partial:
        for name in ('incident_date', 'description', 'amount_claimed'):
            if data.get(name) in (None, ''):
                errors.append(f"{name} is required")

    if data.get('incident_date') not in (None, ''):
        try:
            incident = parse_date(data['incident_date'])
        except ValueError:
            errors.append("incident_date must be a valid date (YYYY-MM-DD)")
        else:
            if incident > utc_today():
                errors.append("incident_date cannot be in the future")
            values['incident_date'] = incident

    if 'description' in data and data['description'] is not None:
        description = str(data['description']).strip()
        if not description:
            errors.append("description must not be empty")
        elif len(description) > DESCRIPTION_MAX_LENGTH:
            errors.append(f"description must be at most {DESCRIPTION_MAX_LENGTH} characters")
        values['description'] = description

    if 'amount_claimed' in data and data['amount_claimed'] is not None:
        amount = data['amount_claimed']
        valid = isinstance(amount, (int, float)) and not isinstance(amount, bool) and math.isfinite(amount)
        if not valid or amount <= 0:
            errors.append("amount_claimed must be a positive number")
        values['amount_claimed'] = amount

    if 'decision_notes' in data:
        notes = data['decision_notes']
        values['decision_notes'] = str(notes).strip() if notes is not None else None

    if errors:
        raise ValidationError("Validation error", details=errors)
    return values


def _parse_outcome(outcome):
    value = outcome.value if isinstance(outcome, ClaimStatus) else str(outcome or '').strip().capitalize()
    if value not in (ClaimStatus.APPROVED.value, ClaimStatus.REJECTED.value):
        raise ValidationError("Validation error", details=["outcome must be Approved or Rejected"])
    return ClaimStatus(value)


# -------------------- OPERATIONS --------------------

@service_operation
def raise_claim(user_id, user_policy_id, incident_date, description, amount_claimed):
    """File a Pending claim against the caller's Approved subscription."""
    values = _clean_claim_fields({
        'incident_date': incident_date,
        'description': description,
        'amount_claimed': amount_claimed,
    })

    user_policy = get_user_policy_or_404(user_policy_id)
    if user_policy.user_id != user_id:
        current_app.logger.warning(f"Customer {user_id} tried to claim on user policy {user_policy.id}")
        raise ForbiddenError("You do not have permission to claim on this policy")
    if user_policy.status != PolicyStatus.APPROVED:
        raise ConflictError(
            f"Claims can only be raised on approved policies (current status: {user_policy.status.value})"
        )

    claim = Claim(
        user_id=user_id,
        user_policy_id=user_policy.id,
        status=ClaimStatus.PENDING,
        verification_type=VerificationType.NONE,
        **values,
    )
    db.session.add(claim)
    db.session.commit()
    current_app.logger.info(
        f"Claim {claim.id} raised by customer {user_id} on user policy {user_policy.id} "
        f"for {claim.amount_claimed:.2f}"
    )
    return claim


@service_operation
def decide(claim_id, actor, outcome, decision_notes=None):
    """
    Approve or reject a Pending claim.

    Only the agent assigned to the claim's subscription, or an admin, may
    decide. Approval moves the parent subscription to Claimed in the same
    transaction; rejection leaves it untouched.
    """
    require_principal(actor)
    outcome = _parse_outcome(outcome)
    claim = get_claim_or_404(claim_id)
    authorize_claim_decision(actor, claim)

    if claim.status != ClaimStatus.PENDING:
        raise ConflictError(f"Claim has already been decided ({claim.status.value})")

    user_policy = claim.user_policy
    if outcome == ClaimStatus.APPROVED and user_policy.status not in CLAIMABLE_POLICY_STATUSES:
        raise ConflictError(
            f"Claim cannot be approved while the policy is {user_policy.status.value}"
        )

    values = {
        Claim.status: outcome,
        Claim.verification_type: VerificationType.for_role(actor.role),
        Claim.decided_at: datetime.now(timezone.utc),
    }
    if decision_notes is not None:
        values[Claim.decision_notes] = str(decision_notes).strip() or None
    if actor.is_agent:
        values[Claim.decided_by_agent_id] = actor.id
    elif actor.is_admin:
        values[Claim.decided_by_admin_id] = actor.id

    updated = Claim.query.filter(
        Claim.id == claim.id,
        Claim.status == ClaimStatus.PENDING,
    ).update(values, synchronize_session=False)
    if updated != 1:
        raise ConflictError("Claim has already been decided")

    if outcome == ClaimStatus.APPROVED:
        if not compare_and_set_status(
            user_policy.id, CLAIMABLE_POLICY_STATUSES, {UserPolicy.status: PolicyStatus.CLAIMED}
        ):
            raise ConflictError("Policy status changed while deciding the claim, please retry")

    db.session.commit()
    db.session.refresh(claim)
    db.session.refresh(user_policy)
    current_app.logger.info(
        f"Claim {claim.id} {outcome.value.lower()} by {actor.role.value} {actor.id}; "
        f"user policy {user_policy.id} is {user_policy.status.value}"
    )

    action = audit.CLAIM_APPROVED if outcome == ClaimStatus.APPROVED else audit.CLAIM_REJECTED
    warning = audit.record_audit(
        action,
        user_id=claim.user_id,
        actor=actor,
        details=f"Claim {claim.id} on user policy {user_policy.id} {outcome.value.lower()}",
    )
    return OperationResult.ok(claim, warnings=audit.collect_warnings(warning))


@service_operation
def update(claim_id, actor, patch):
    """
    Patch the editable fields of a Pending claim.

    The owning customer may change incident_date, description and
    amount_claimed; the assigned agent or an admin may also set
    decision_notes. Status never changes here.
    """
    require_principal(actor)
    claim = get_claim_or_404(claim_id)
    if actor.is_customer:
        authorize_claim(actor, claim)
        allowed = CUSTOMER_EDITABLE_FIELDS
    else:
        authorize_claim_decision(actor, claim)
        allowed = REVIEWER_EDITABLE_FIELDS

    patch = dict(patch or {})
    if not patch:
        raise ValidationError("Validation error", details=["At least one field must be provided"])
    disallowed = sorted(set(patch) - set(allowed))
    if disallowed:
        raise ForbiddenError(f"You may not change: {', '.join(disallowed)}")

    if claim.status != ClaimStatus.PENDING:
        raise ConflictError("Decided claims can no longer be edited")

    values = _clean_claim_fields(patch, partial=True)
    if not values:
        raise ValidationError("Validation error", details=["At least one field must be provided"])
    updated = Claim.query.filter(
        Claim.id == claim.id,
        Claim.status == ClaimStatus.PENDING,
    ).update({getattr(Claim, name): value for name, value in values.items()}, synchronize_session=False)
    if updated != 1:
        raise ConflictError("Decided claims can no longer be edited")
    db.session.commit()
    db.session.refresh(claim)
    current_app.logger.info(f"Claim {claim.id} updated by {actor.role.value} {actor.id}: {sorted(values)}")
    return claim


# -------------------- READS --------------------

@service_operation
def get_claim(claim_id, actor):
    claim = get_claim_or_404(claim_id)
    authorize_claim(actor, claim)
    return claim


@service_operation
def list_customer_claims(user_id):
    return Claim.query.filter_by(user_id=user_id).order_by(Claim.created_at.desc()).all()


@service_operation
def list_agent_claims(agent_id, status=None):
    query = (
        Claim.query.join(UserPolicy, Claim.user_policy_id == UserPolicy.id)
        .filter(UserPolicy.assigned_agent_id == agent_id)
    )
    if status:
        query = query.filter(Claim.status == _status_filter(status))
    return query.order_by(Claim.created_at.desc()).all()


@service_operation
def list_all_claims(status=None):
    query = Claim.query
    if status:
        query = query.filter(Claim.status == _status_filter(status))
    return query.order_by(Claim.created_at.desc()).all()


@service_operation
def list_policy_claims(user_policy_id, actor):
    user_policy = get_user_policy_or_404(user_policy_id)
    authorize_policy(actor, user_policy)
    return user_policy.claims.order_by(Claim.created_at.desc()).all()


def _status_filter(status):
    try:
        return ClaimStatus(str(status).capitalize())
    except ValueError:
        raise ValidationError(f"Unknown claim status: {status}")
