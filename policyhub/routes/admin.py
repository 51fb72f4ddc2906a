"""
Admin routes for PolicyHub.

Catalog management, agent directory, system-wide views of subscriptions,
payments and claims, KPIs and the audit trail.
"""

from flask import Blueprint, g, request

from policyhub.auth import admin_required
from policyhub.errors import ValidationError
from policyhub.extensions import csrf
from policyhub.forms import (
    AgentCreateForm, AssignAgentForm, ClaimDecisionForm, ClaimUpdateForm, PolicyProductForm,
    PolicyProductUpdateForm, bind_json_form,
)
from policyhub.serializers import (
    serialize_agent, serialize_audit_log, serialize_claim, serialize_customer_details,
    serialize_payment, serialize_payment_summary, serialize_product, serialize_user_policy,
)
from policyhub.services import accounts, audit, catalog, claims, payments, reports, subscriptions
from policyhub.utils.helpers import error_response, result_response

# Create blueprint
admin_bp = Blueprint('admin', __name__, url_prefix='/api/admin')
csrf.exempt(admin_bp)


# -------------------- CATALOG --------------------

@admin_bp.route('/products')
@admin_required
def list_products():
    return result_response(catalog.list_products(), key='policies', serializer=serialize_product)


@admin_bp.route('/products', methods=['POST'])
@admin_required
def add_product():
    try:
        form, _ = bind_json_form(PolicyProductForm)
    except ValidationError as exc:
        return error_response(exc)

    result = catalog.create_product(form.product_data(), actor=g.principal)
    return result_response(result, key='policy', serializer=serialize_product, status=201)


@admin_bp.route('/products/<string:product_id>')
@admin_required
def get_product(product_id):
    return result_response(catalog.get_product(product_id), key='policy', serializer=serialize_product)


@admin_bp.route('/products/<string:product_id>', methods=['PATCH', 'PUT'])
@admin_required
def update_product(product_id):
    try:
        form, provided = bind_json_form(PolicyProductUpdateForm)
    except ValidationError as exc:
        return error_response(exc)

    result = catalog.update_product(product_id, form.product_data(provided), actor=g.principal)
    return result_response(result, key='policy', serializer=serialize_product)


@admin_bp.route('/products/<string:product_id>', methods=['DELETE'])
@admin_required
def delete_product(product_id):
    result = catalog.delete_product(product_id, actor=g.principal)
    if not result.success:
        return error_response(result.error)
    return result_response(result, message='Policy deleted successfully', **result.value)


@admin_bp.route('/products/<string:product_id>/assign', methods=['POST'])
@admin_required
def assign_agent(product_id):
    try:
        form, _ = bind_json_form(AssignAgentForm)
    except ValidationError as exc:
        return error_response(exc)

    result = catalog.assign_agent(product_id, form.agent_id.data, actor=g.principal)
    return result_response(result, key='policy', serializer=serialize_product)


@admin_bp.route('/products/<string:product_id>/unassign', methods=['POST'])
@admin_required
def unassign_agent(product_id):
    result = catalog.unassign_agent(product_id, actor=g.principal)
    return result_response(result, key='policy', serializer=serialize_product)


# -------------------- AGENTS & CUSTOMERS --------------------

@admin_bp.route('/agents')
@admin_required
def list_agents():
    return result_response(accounts.list_agents(), key='agents', serializer=serialize_agent)


@admin_bp.route('/agents', methods=['POST'])
@admin_required
def create_agent():
    try:
        form, _ = bind_json_form(AgentCreateForm)
    except ValidationError as exc:
        return error_response(exc)

    result = accounts.create_agent(form.name.data, form.email.data, form.password.data, actor=g.principal)
    return result_response(result, key='agent', serializer=serialize_agent, status=201)


@admin_bp.route('/customers')
@admin_required
def customer_details():
    return result_response(reports.customer_details(), key='customers', serializer=serialize_customer_details)


# -------------------- SUBSCRIPTIONS --------------------

@admin_bp.route('/userpolicies')
@admin_required
def all_user_policies():
    result = subscriptions.list_all_policies(status=request.args.get('status'))
    return result_response(result, key='userPolicies', serializer=serialize_user_policy)


@admin_bp.route('/userpolicies/<string:user_policy_id>')
@admin_required
def get_user_policy(user_policy_id):
    result = subscriptions.get_policy(user_policy_id, g.principal)
    return result_response(result, key='userPolicy', serializer=serialize_user_policy)


@admin_bp.route('/userpolicies/<string:user_policy_id>/approve', methods=['POST'])
@admin_required
def approve_policy(user_policy_id):
    result = subscriptions.approve(user_policy_id, g.principal)
    return result_response(result, key='userPolicy', serializer=serialize_user_policy)


@admin_bp.route('/userpolicies/<string:user_policy_id>/reject', methods=['POST'])
@admin_required
def reject_policy(user_policy_id):
    result = subscriptions.reject(user_policy_id, g.principal)
    return result_response(result, key='userPolicy', serializer=serialize_user_policy)


@admin_bp.route('/userpolicies/<string:user_policy_id>/payments')
@admin_required
def policy_payments(user_policy_id):
    result = payments.payment_summary(user_policy_id, g.principal)
    return result_response(result, key='summary', serializer=serialize_payment_summary)


@admin_bp.route('/expire-policies', methods=['POST'])
@admin_required
def expire_policies():
    """Run the expiry sweep now instead of waiting for the scheduler."""
    result = subscriptions.expire_lapsed_policies()
    return result_response(result, key='expiredCount')


# -------------------- PAYMENTS --------------------

@admin_bp.route('/payments')
@admin_required
def all_payments():
    return result_response(payments.list_all_payments(), key='payments', serializer=serialize_payment)


# -------------------- CLAIMS --------------------

@admin_bp.route('/claims')
@admin_required
def all_claims():
    result = claims.list_all_claims(status=request.args.get('status'))
    return result_response(result, key='claims', serializer=serialize_claim)


@admin_bp.route('/claims/<string:claim_id>')
@admin_required
def get_claim(claim_id):
    return result_response(claims.get_claim(claim_id, g.principal), key='claim', serializer=serialize_claim)


@admin_bp.route('/claims/<string:claim_id>/decision', methods=['POST'])
@admin_required
def decide_claim(claim_id):
    try:
        form, _ = bind_json_form(ClaimDecisionForm)
    except ValidationError as exc:
        return error_response(exc)

    result = claims.decide(
        claim_id, g.principal, form.status.data, decision_notes=form.decision_notes.data or None
    )
    return result_response(result, key='claim', serializer=serialize_claim)


@admin_bp.route('/claims/<string:claim_id>', methods=['PATCH'])
@admin_required
def update_claim(claim_id):
    try:
        form, provided = bind_json_form(ClaimUpdateForm)
    except ValidationError as exc:
        return error_response(exc)

    result = claims.update(claim_id, g.principal, form.patch(provided))
    return result_response(result, key='claim', serializer=serialize_claim)


# -------------------- REPORTS --------------------

@admin_bp.route('/summary')
@admin_required
def summary():
    return result_response(reports.admin_summary(), key='summary')


@admin_bp.route('/audit-logs')
@admin_required
def audit_logs():
    result = audit.recent_audit_logs(request.args.get('limit', audit.DEFAULT_AUDIT_LIMIT))
    return result_response(result, key='logs', serializer=serialize_audit_log)
