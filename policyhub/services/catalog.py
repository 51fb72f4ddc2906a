"""
Policy catalog: PolicyProduct definitions managed by admins.

Products are created, patched, assigned to an agent and deleted here. A
product cannot be deleted while Pending or Approved subscriptions still
reference it.
"""

import math

from flask import current_app
from sqlalchemy.exc import IntegrityError

from policyhub.errors import ConflictError, NotFoundError, ValidationError
from policyhub.extensions import db
from policyhub.models import ACTIVE_POLICY_STATUSES, Agent, PolicyProduct, Role, UserPolicy
from policyhub.services import audit
from policyhub.services.access import require_role
from policyhub.services.base import OperationResult, service_operation

CODE_MIN_LENGTH = 2
CODE_MAX_LENGTH = 20
TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
TERM_MIN_MONTHS = 1
TERM_MAX_MONTHS = 600

PRODUCT_FIELDS = (
    'code', 'title', 'description', 'premium', 'term_months', 'min_sum_insured', 'max_sum_insured',
)


def _is_number(value):
    """True for finite ints and floats; bools, NaN and infinities are rejected."""
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _clean_product_fields(data, partial=False):
    """
    Normalise and validate product input.

    Returns a dict with only the recognised keys present in ``data``. Raises
    ValidationError listing every problem found.
    """
    errors = []
    values = {}

    unknown = sorted(set(data) - set(PRODUCT_FIELDS))
    if unknown:
        errors.append(f"Unknown fields: {', '.join(unknown)}")

    required = () if partial else ('code', 'title', 'premium', 'term_months')
    for name in required:
        if data.get(name) is None:
            errors.append(f"{name} is required")

    if data.get('code') is not None:
        code = str(data['code']).strip()
        if not CODE_MIN_LENGTH <= len(code) <= CODE_MAX_LENGTH:
            errors.append(f"code must be {CODE_MIN_LENGTH}-{CODE_MAX_LENGTH} characters")
        values['code'] = code

    if data.get('title') is not None:
        title = str(data['title']).strip()
        if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
            errors.append(f"title must be {TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH} characters")
        values['title'] = title

    if 'description' in data:
        description = str(data['description'] or '').strip()
        if len(description) > DESCRIPTION_MAX_LENGTH:
            errors.append(f"description must be at most {DESCRIPTION_MAX_LENGTH} characters")
        values['description'] = description

    if data.get('premium') is not None:
        premium = data['premium']
        if not _is_number(premium) or premium <= 0:
            errors.append("premium must be a positive number")
        values['premium'] = premium

    if data.get('term_months') is not None:
        term = data['term_months']
        if isinstance(term, float) and term.is_integer():
            term = int(term)
        if not isinstance(term, int) or isinstance(term, bool) or not TERM_MIN_MONTHS <= term <= TERM_MAX_MONTHS:
            errors.append(f"term_months must be an integer between {TERM_MIN_MONTHS} and {TERM_MAX_MONTHS}")
        values['term_months'] = term

    for name in ('min_sum_insured', 'max_sum_insured'):
        if name in data:
            amount = data[name]
            if amount is None:
                values[name] = 0 if name == 'min_sum_insured' else None
                continue
            if not _is_number(amount) or amount < 0:
                errors.append(f"{name} must be a non-negative number")
            values[name] = amount

    if errors:
        raise ValidationError("Validation error", details=errors)
    return values


def _check_sum_insured_bounds(min_sum, max_sum):
    if max_sum is not None and min_sum is not None and max_sum < min_sum:
        raise ValidationError(
            "Validation error",
            details=["max_sum_insured must be greater than or equal to min_sum_insured"],
        )


def _get_product_or_404(product_id):
    product = db.session.get(PolicyProduct, product_id) if product_id else None
    if not product:
        raise NotFoundError("Policy product not found")
    return product


def _ensure_code_available(code, exclude_id=None):
    query = PolicyProduct.query.filter(PolicyProduct.code == code)
    if exclude_id:
        query = query.filter(PolicyProduct.id != exclude_id)
    if query.first():
        raise ConflictError("Policy with this code already exists")


def _commit_product(product):
    """Commit, translating a unique-code race into ConflictError."""
    code, product_id = product.code, product.id
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if PolicyProduct.query.filter(PolicyProduct.code == code, PolicyProduct.id != product_id).first():
            raise ConflictError("Policy with this code already exists")
        raise
    return product


# -------------------- OPERATIONS --------------------

@service_operation
def create_product(data, actor=None):
    """Create a PolicyProduct after validating bounds and code uniqueness."""
    if actor is not None:
        require_role(actor, Role.ADMIN)

    values = _clean_product_fields(data)
    values.setdefault('description', '')
    values.setdefault('min_sum_insured', 0)
    _check_sum_insured_bounds(values['min_sum_insured'], values.get('max_sum_insured'))
    _ensure_code_available(values['code'])

    product = PolicyProduct(**values)
    db.session.add(product)
    _commit_product(product)
    current_app.logger.info(f"Policy product {product.code} created ({product.id})")

    warning = audit.record_audit(
        audit.PRODUCT_CREATED, actor=actor, details=f"Product {product.code} created"
    )
    return OperationResult.ok(product, warnings=audit.collect_warnings(warning))


@service_operation
def update_product(product_id, patch, actor=None):
    """Apply a partial update; a changed code is re-checked for uniqueness."""
    if actor is not None:
        require_role(actor, Role.ADMIN)

    product = _get_product_or_404(product_id)
    if not patch:
        raise ValidationError("Validation error", details=["At least one field must be provided"])
    values = _clean_product_fields(patch, partial=True)

    _check_sum_insured_bounds(
        values.get('min_sum_insured', product.min_sum_insured),
        values.get('max_sum_insured', product.max_sum_insured),
    )
    if 'code' in values and values['code'] != product.code:
        _ensure_code_available(values['code'], exclude_id=product.id)

    for name, value in values.items():
        setattr(product, name, value)
    _commit_product(product)
    current_app.logger.info(f"Policy product {product.code} updated: {sorted(values)}")

    warning = audit.record_audit(
        audit.PRODUCT_UPDATED, actor=actor,
        details=f"Product {product.code} updated ({', '.join(sorted(values))})",
    )
    return OperationResult.ok(product, warnings=audit.collect_warnings(warning))


@service_operation
def assign_agent(product_id, agent_id, actor=None):
    """Assign an agent to a product. New purchases inherit this agent."""
    if actor is not None:
        require_role(actor, Role.ADMIN)

    product = _get_product_or_404(product_id)
    agent = db.session.get(Agent, agent_id) if agent_id else None
    if not agent:
        raise NotFoundError("Agent not found")

    product.assigned_agent_id = agent.id
    product.assigned_agent_name = agent.name
    db.session.commit()
    current_app.logger.info(f"Policy product {product.code} assigned to agent {agent.id}")

    warning = audit.record_audit(
        audit.AGENT_ASSIGNED, user_id=agent.id, actor=actor,
        details=f"Product {product.code} assigned to agent {agent.agent_code or agent.id}",
    )
    return OperationResult.ok(product, warnings=audit.collect_warnings(warning))


@service_operation
def unassign_agent(product_id, actor=None):
    if actor is not None:
        require_role(actor, Role.ADMIN)

    product = _get_product_or_404(product_id)
    previous_agent_id = product.assigned_agent_id
    product.assigned_agent_id = None
    product.assigned_agent_name = None
    db.session.commit()
    current_app.logger.info(f"Policy product {product.code} unassigned (was {previous_agent_id})")

    warning = audit.record_audit(
        audit.AGENT_UNASSIGNED, user_id=previous_agent_id, actor=actor,
        details=f"Product {product.code} unassigned",
    )
    return OperationResult.ok(product, warnings=audit.collect_warnings(warning))


@service_operation
def delete_product(product_id, actor=None):
    """
    Hard-delete a product.

    Refused with ConflictError while Pending or Approved subscriptions
    reference it. Terminal subscriptions keep their code/title snapshot and
    lose the product reference.
    """
    if actor is not None:
        require_role(actor, Role.ADMIN)

    product = _get_product_or_404(product_id)
    active_count = UserPolicy.query.filter(
        UserPolicy.policy_product_id == product.id,
        UserPolicy.status.in_(list(ACTIVE_POLICY_STATUSES)),
    ).count()
    if active_count:
        raise ConflictError(
            f"Policy product has {active_count} active subscription(s) and cannot be deleted"
        )

    deleted = {'deletedPolicyId': product.id, 'deletedPolicyCode': product.code, 'deletedPolicyTitle': product.title}
    UserPolicy.query.filter(UserPolicy.policy_product_id == product.id).update(
        {UserPolicy.policy_product_id: None}, synchronize_session=False
    )
    db.session.delete(product)
    db.session.commit()
    current_app.logger.info(f"Policy product {deleted['deletedPolicyCode']} deleted")

    warning = audit.record_audit(
        audit.PRODUCT_DELETED, actor=actor, details=f"Product {deleted['deletedPolicyCode']} deleted"
    )
    return OperationResult.ok(deleted, warnings=audit.collect_warnings(warning))


@service_operation
def list_products():
    return PolicyProduct.query.order_by(PolicyProduct.created_at.asc()).all()


@service_operation
def get_product(product_id):
    return _get_product_or_404(product_id)
