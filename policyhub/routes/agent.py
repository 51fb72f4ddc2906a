"""
Agent routes for PolicyHub.

Agents see and decide only the subscriptions assigned to them. Admins may
call these routes too; their decisions are recorded with the Admin
verification type.
"""

from flask import Blueprint, g, request

from policyhub.auth import agent_required
from policyhub.errors import ValidationError
from policyhub.extensions import csrf
from policyhub.forms import ClaimDecisionForm, ClaimUpdateForm, bind_json_form
from policyhub.serializers import (
    serialize_claim, serialize_payment, serialize_payment_summary, serialize_user_policy,
)
from policyhub.services import claims, payments, reports, subscriptions
from policyhub.utils.helpers import error_response, result_response

# Create blueprint
agent_bp = Blueprint('agent', __name__, url_prefix='/api/agent')
csrf.exempt(agent_bp)


@agent_bp.route('/dashboard')
@agent_required
def dashboard():
    return result_response(reports.agent_dashboard_stats(g.principal.id), key='stats')


# -------------------- SUBSCRIPTIONS --------------------

@agent_bp.route('/assignedpolicies')
@agent_required
def assigned_policies():
    result = subscriptions.list_agent_policies(g.principal.id)
    return result_response(result, key='userPolicies', serializer=serialize_user_policy)


@agent_bp.route('/requests')
@agent_required
def policy_requests():
    """Pending subscriptions waiting on this agent."""
    result = subscriptions.list_policy_requests(g.principal.id)
    return result_response(result, key='requests', serializer=serialize_user_policy)


@agent_bp.route('/requests/<string:user_policy_id>/<string:action>', methods=['POST'])
@agent_required
def decide_request(user_policy_id, action):
    """Approve or reject a policy request; approval restarts coverage from today."""
    if action == 'approve':
        result = subscriptions.approve(user_policy_id, g.principal, via_request=True)
    elif action == 'reject':
        result = subscriptions.reject(user_policy_id, g.principal, via_request=True)
    else:
        return error_response(ValidationError(f"Unknown action: {action}"))
    return result_response(result, key='userPolicy', serializer=serialize_user_policy)


@agent_bp.route('/policies/<string:user_policy_id>/approve', methods=['POST'])
@agent_required
def approve_policy(user_policy_id):
    result = subscriptions.approve(user_policy_id, g.principal)
    return result_response(result, key='userPolicy', serializer=serialize_user_policy)


@agent_bp.route('/policies/<string:user_policy_id>/reject', methods=['POST'])
@agent_required
def reject_policy(user_policy_id):
    result = subscriptions.reject(user_policy_id, g.principal)
    return result_response(result, key='userPolicy', serializer=serialize_user_policy)


@agent_bp.route('/policies/<string:user_policy_id>')
@agent_required
def view_policy(user_policy_id):
    result = subscriptions.get_policy(user_policy_id, g.principal)
    return result_response(result, key='userPolicy', serializer=serialize_user_policy)


@agent_bp.route('/approvedcustomers')
@agent_required
def approved_customers():
    result = subscriptions.list_approved_customers(g.principal.id)
    return result_response(result, key='userPolicies', serializer=serialize_user_policy)


@agent_bp.route('/products/<string:product_id>/customers')
@agent_required
def policy_customers(product_id):
    result = subscriptions.list_policy_customers(g.principal.id, product_id)
    return result_response(result, key='userPolicies', serializer=serialize_user_policy)


# -------------------- PAYMENTS --------------------

@agent_bp.route('/assignedpayments')
@agent_required
def assigned_payments():
    result = payments.list_agent_payments(g.principal.id)
    return result_response(result, key='payments', serializer=serialize_payment)


@agent_bp.route('/policies/<string:user_policy_id>/payments')
@agent_required
def policy_payments(user_policy_id):
    result = payments.payment_summary(user_policy_id, g.principal)
    return result_response(result, key='summary', serializer=serialize_payment_summary)


@agent_bp.route('/policies/<string:user_policy_id>/claims')
@agent_required
def policy_claims(user_policy_id):
    result = claims.list_policy_claims(user_policy_id, g.principal)
    return result_response(result, key='claims', serializer=serialize_claim)


# -------------------- CLAIMS --------------------

@agent_bp.route('/claims')
@agent_required
def assigned_claims():
    result = claims.list_agent_claims(g.principal.id, status=request.args.get('status'))
    return result_response(result, key='claims', serializer=serialize_claim)


@agent_bp.route('/claims/<string:claim_id>')
@agent_required
def view_claim(claim_id):
    return result_response(claims.get_claim(claim_id, g.principal), key='claim', serializer=serialize_claim)


@agent_bp.route('/claims/<string:claim_id>/decision', methods=['POST'])
@agent_required
def decide_claim(claim_id):
    """Approve or reject a claim. Approval marks the subscription Claimed."""
    try:
        form, _ = bind_json_form(ClaimDecisionForm)
    except ValidationError as exc:
        return error_response(exc)

    result = claims.decide(
        claim_id, g.principal, form.status.data, decision_notes=form.decision_notes.data or None
    )
    return result_response(result, key='claim', serializer=serialize_claim)


@agent_bp.route('/claims/<string:claim_id>', methods=['PATCH'])
@agent_required
def update_claim(claim_id):
    try:
        form, provided = bind_json_form(ClaimUpdateForm)
    except ValidationError as exc:
        return error_response(exc)

    result = claims.update(claim_id, g.principal, form.patch(provided))
    return result_response(result, key='claim', serializer=serialize_claim)
