"""
Role-based authorization for PolicyHub resources.

A Principal is the authenticated caller: an id plus a Role. The predicates
here answer "may this principal act on that record":

- Admin: unrestricted.
- Agent: only subscriptions/claims whose subscription is assigned to them.
- Customer: only subscriptions/claims/payments they own.
"""

from dataclasses import dataclass

from flask import current_app

from policyhub.errors import ForbiddenError, UnauthenticatedError
from policyhub.models import ACCOUNT_MODELS, Role
from policyhub.extensions import db


@dataclass(frozen=True)
class Principal:
    id: str
    role: Role

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

    @property
    def is_agent(self):
        return self.role == Role.AGENT

    @property
    def is_customer(self):
        return self.role == Role.CUSTOMER

    def to_dict(self):
        return {'id': self.id, 'role': self.role.value}


def require_principal(actor):
    """Raise UnauthenticatedError unless an actor is present."""
    if actor is None or not getattr(actor, 'id', None):
        raise UnauthenticatedError("Authentication required")
    return actor


def load_account(principal):
    """Return the account row backing a principal, or None."""
    model = ACCOUNT_MODELS.get(principal.role)
    if model is None:
        return None
    return db.session.get(model, principal.id)


def can_access_policy(actor, user_policy):
    if actor.is_admin:
        return True
    if actor.is_agent:
        return user_policy.assigned_agent_id is not None and user_policy.assigned_agent_id == actor.id
    return user_policy.user_id == actor.id


def can_decide_for_policy(actor, user_policy):
    """Approve/reject rights: the assigned agent or any admin, never the customer."""
    if actor.is_admin:
        return True
    return actor.is_agent and can_access_policy(actor, user_policy)


def can_access_claim(actor, claim):
    if actor.is_customer:
        return claim.user_id == actor.id
    return can_access_policy(actor, claim.user_policy)


def _deny(actor, what):
    current_app.logger.warning(f"Access denied: {actor.role.value} {actor.id} on {what}")
    raise ForbiddenError("You do not have permission to perform this action")


def authorize_policy(actor, user_policy):
    require_principal(actor)
    if not can_access_policy(actor, user_policy):
        _deny(actor, f"user policy {user_policy.id}")


def authorize_policy_decision(actor, user_policy):
    require_principal(actor)
    if not can_decide_for_policy(actor, user_policy):
        _deny(actor, f"decision on user policy {user_policy.id}")


def authorize_claim(actor, claim):
    require_principal(actor)
    if not can_access_claim(actor, claim):
        _deny(actor, f"claim {claim.id}")


def authorize_claim_decision(actor, claim):
    require_principal(actor)
    if not can_decide_for_policy(actor, claim.user_policy):
        _deny(actor, f"decision on claim {claim.id}")


def require_role(actor, *roles):
    """Raise ForbiddenError unless the actor holds one of ``roles`` (Admin always passes)."""
    require_principal(actor)
    if actor.is_admin or actor.role in roles:
        return actor
    _deny(actor, f"{'/'.join(r.value for r in roles)} operation")
