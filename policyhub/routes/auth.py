"""
Authentication routes for PolicyHub.

Customer self-registration, per-role login returning a signed bearer token,
logout and a "who am I" endpoint.
"""

from flask import Blueprint, current_app, jsonify

from policyhub.auth import get_current_principal, issue_token, login_session, logout_session
from policyhub.errors import UnauthenticatedError, ValidationError
from policyhub.extensions import csrf, limiter
from policyhub.forms import LoginForm, RegisterForm, bind_json_form
from policyhub.models import Role
from policyhub.serializers import serialize_admin, serialize_agent, serialize_customer
from policyhub.services import accounts
from policyhub.services.access import Principal, load_account
from policyhub.utils.helpers import error_response

# Create blueprint
auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')
csrf.exempt(auth_bp)

ACCOUNT_SERIALIZERS = {
    Role.CUSTOMER: serialize_customer,
    Role.AGENT: serialize_agent,
    Role.ADMIN: serialize_admin,
}


def _session_payload(principal, account):
    return {
        'success': True,
        'token': issue_token(principal),
        'principal': principal.to_dict(),
        'account': ACCOUNT_SERIALIZERS[principal.role](account),
    }


@auth_bp.route('/register', methods=['POST'])
@limiter.limit("10 per minute")
def register():
    """Create a customer account and sign the new customer in."""
    try:
        form, _ = bind_json_form(RegisterForm)
    except ValidationError as exc:
        return error_response(exc)

    result = accounts.register_customer(form.name.data, form.email.data, form.password.data)
    if not result.success:
        return error_response(result.error)

    customer = result.value
    principal = Principal(id=customer.id, role=Role.CUSTOMER)
    login_session(principal)
    return jsonify(_session_payload(principal, customer)), 201


@auth_bp.route('/login/<string:role>', methods=['POST'])
@limiter.limit("10 per minute")
def login(role):
    """Log in as a customer, agent or admin."""
    try:
        form, _ = bind_json_form(LoginForm)
    except ValidationError as exc:
        return error_response(exc)

    result = accounts.authenticate(role, form.email.data, form.password.data)
    if not result.success:
        return error_response(result.error)

    principal = result.value
    login_session(principal)
    current_app.logger.info(f"{principal.role.value} {principal.id} logged in")
    return jsonify(_session_payload(principal, load_account(principal)))


@auth_bp.route('/logout', methods=['POST'])
def logout():
    logout_session()
    return jsonify(success=True)


@auth_bp.route('/me')
def me():
    principal = get_current_principal()
    if principal is None:
        return error_response(UnauthenticatedError("Authentication required"))
    account = load_account(principal)
    return jsonify(
        success=True,
        principal=principal.to_dict(),
        account=ACCOUNT_SERIALIZERS[principal.role](account),
    )
