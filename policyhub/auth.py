"""
Authentication and authorization utilities for PolicyHub.

Resolves the calling Principal from a signed bearer token (or the Flask
session) and provides role decorators for the JSON blueprints.
"""

from datetime import datetime, timezone
from functools import wraps

from flask import current_app, g, request, session
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from policyhub.errors import ForbiddenError, UnauthenticatedError
from policyhub.models import Role
from policyhub.services.access import Principal, load_account
from policyhub.utils.helpers import error_response


# -------------------- TOKEN CONFIGURATION --------------------

TOKEN_SALT = 'policyhub-auth'
DEFAULT_TOKEN_MAX_AGE_SECONDS = 8 * 60 * 60


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=TOKEN_SALT)


def issue_token(principal):
    """Sign ``{id, role}`` for use as a bearer token."""
    return _serializer().dumps(principal.to_dict())


def principal_from_token(token, max_age=None):
    """Return the Principal encoded in ``token``, or None if it is invalid or expired."""
    if max_age is None:
        max_age = current_app.config.get('TOKEN_MAX_AGE_SECONDS', DEFAULT_TOKEN_MAX_AGE_SECONDS)
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("Rejected expired bearer token")
        return None
    except BadSignature:
        current_app.logger.warning("Rejected bearer token with a bad signature")
        return None

    if not isinstance(data, dict) or not data.get('id'):
        return None
    try:
        role = Role.from_string(data.get('role'))
    except ValueError:
        return None
    return Principal(id=data['id'], role=role)


# -------------------- SESSION HELPERS --------------------

def login_session(principal):
    """Store the principal in the Flask session."""
    session['principal_id'] = principal.id
    session['principal_role'] = principal.role.value
    session['login_time'] = datetime.now(timezone.utc).isoformat()


def logout_session():
    session.pop('principal_id', None)
    session.pop('principal_role', None)
    session.pop('login_time', None)


def _principal_from_session():
    principal_id = session.get('principal_id')
    if not principal_id:
        return None
    try:
        role = Role.from_string(session.get('principal_role'))
    except ValueError:
        logout_session()
        return None
    return Principal(id=principal_id, role=role)


def get_current_principal():
    """
    Resolve the caller.

    A ``Authorization: Bearer <token>`` header takes precedence over the
    session. Principals whose account no longer exists are treated as
    anonymous.
    """
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        principal = principal_from_token(header[len('Bearer '):].strip())
    else:
        principal = _principal_from_session()

    if principal is None:
        return None
    if load_account(principal) is None:
        current_app.logger.warning(f"Principal {principal.role.value} {principal.id} has no account")
        return None
    return principal


# -------------------- AUTHENTICATION DECORATORS --------------------

def _role_required(*roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = get_current_principal()
            if principal is None:
                return error_response(UnauthenticatedError("Authentication required"))
            if principal.role not in roles:
                current_app.logger.warning(
                    f"{principal.role.value} {principal.id} denied access to {request.path}"
                )
                return error_response(ForbiddenError("You do not have permission to access this resource"))
            g.principal = principal
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def customer_required(f):
    """Require an authenticated customer. The principal is stored on ``g.principal``."""
    return _role_required(Role.CUSTOMER)(f)


def agent_required(f):
    """Require an agent; admins are accepted too."""
    return _role_required(Role.AGENT, Role.ADMIN)(f)


def admin_required(f):
    return _role_required(Role.ADMIN)(f)
