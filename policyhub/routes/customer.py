"""
Customer routes for PolicyHub.

Browse the catalog, purchase and cancel subscriptions, pay premium
installments and raise claims. Every route acts on behalf of the
authenticated customer only.
"""

from flask import Blueprint, g

from policyhub.auth import customer_required
from policyhub.errors import ValidationError
from policyhub.extensions import csrf
from policyhub.forms import ClaimForm, ClaimUpdateForm, PaymentForm, PurchaseForm, bind_json_form
from policyhub.serializers import (
    serialize_claim, serialize_payment, serialize_payment_summary, serialize_product,
    serialize_user_policy,
)
from policyhub.services import catalog, claims, payments, subscriptions
from policyhub.utils.helpers import error_response, result_response

# Create blueprint
customer_bp = Blueprint('customer', __name__, url_prefix='/api/customer')
csrf.exempt(customer_bp)


# -------------------- CATALOG --------------------

@customer_bp.route('/policies')
@customer_required
def view_policies():
    """List every policy product on offer."""
    return result_response(catalog.list_products(), key='policies', serializer=serialize_product)


@customer_bp.route('/policies/<string:product_id>')
@customer_required
def view_policy(product_id):
    return result_response(catalog.get_product(product_id), key='policy', serializer=serialize_product)


# -------------------- SUBSCRIPTIONS --------------------

@customer_bp.route('/purchase', methods=['POST'])
@customer_required
def purchase_policy():
    try:
        form, _ = bind_json_form(PurchaseForm)
    except ValidationError as exc:
        return error_response(exc)

    result = subscriptions.purchase(
        g.principal.id,
        form.policy_product_id.data,
        form.start_date.data,
        nominee=form.nominee_data(),
    )
    return result_response(result, key='userPolicy', serializer=serialize_user_policy, status=201)


@customer_bp.route('/mypolicies')
@customer_required
def my_policies():
    result = subscriptions.list_customer_policies(g.principal.id)
    return result_response(result, key='userPolicies', serializer=serialize_user_policy)


@customer_bp.route('/mypolicies/<string:user_policy_id>')
@customer_required
def my_policy(user_policy_id):
    result = subscriptions.get_policy(user_policy_id, g.principal)
    return result_response(result, key='userPolicy', serializer=serialize_user_policy)


@customer_bp.route('/mypolicies/<string:user_policy_id>/cancel', methods=['POST'])
@customer_required
def cancel_policy(user_policy_id):
    result = subscriptions.cancel(user_policy_id, g.principal.id)
    return result_response(result, key='userPolicy', serializer=serialize_user_policy)


# -------------------- PAYMENTS --------------------

@customer_bp.route('/pay', methods=['POST'])
@customer_required
def make_payment():
    """Pay the next premium installment; the amount is always the product premium."""
    try:
        form, _ = bind_json_form(PaymentForm)
    except ValidationError as exc:
        return error_response(exc)

    result = payments.pay(
        form.user_policy_id.data,
        g.principal.id,
        form.method.data,
        reference=form.reference.data or None,
    )
    return result_response(result, key='payment', serializer=serialize_payment, status=201)


@customer_bp.route('/payments')
@customer_required
def payment_history():
    result = payments.history(g.principal.id)
    return result_response(result, key='payments', serializer=serialize_payment)


@customer_bp.route('/mypolicies/<string:user_policy_id>/payments')
@customer_required
def policy_payments(user_policy_id):
    result = payments.payment_summary(user_policy_id, g.principal)
    return result_response(result, key='summary', serializer=serialize_payment_summary)


# -------------------- CLAIMS --------------------

@customer_bp.route('/claims', methods=['POST'])
@customer_required
def raise_claim():
    try:
        form, _ = bind_json_form(ClaimForm)
    except ValidationError as exc:
        return error_response(exc)

    result = claims.raise_claim(
        g.principal.id,
        form.user_policy_id.data,
        form.incident_date.data,
        form.description.data,
        form.amount_claimed.data,
    )
    return result_response(result, key='claim', serializer=serialize_claim, status=201)


@customer_bp.route('/claims')
@customer_required
def my_claims():
    result = claims.list_customer_claims(g.principal.id)
    return result_response(result, key='claims', serializer=serialize_claim)


@customer_bp.route('/mypolicies/<string:user_policy_id>/claims')
@customer_required
def policy_claims(user_policy_id):
    result = claims.list_policy_claims(user_policy_id, g.principal)
    return result_response(result, key='claims', serializer=serialize_claim)


@customer_bp.route('/claims/<string:claim_id>')
@customer_required
def my_claim(claim_id):
    return result_response(claims.get_claim(claim_id, g.principal), key='claim', serializer=serialize_claim)


@customer_bp.route('/claims/<string:claim_id>', methods=['PATCH'])
@customer_required
def update_claim(claim_id):
    try:
        form, provided = bind_json_form(ClaimUpdateForm)
    except ValidationError as exc:
        return error_response(exc)

    result = claims.update(claim_id, g.principal, form.patch(provided))
    return result_response(result, key='claim', serializer=serialize_claim)
