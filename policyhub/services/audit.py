"""
Append-only audit trail of privileged actions.

Audit writes happen after the business transition has been committed. A
failed write is logged and reported back as a warning string; it never
undoes the transition it describes.
"""

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from policyhub.extensions import db
from policyhub.models import AuditLog
from policyhub.services.base import service_operation

# Action tags
POLICY_APPROVED = 'POLICY_APPROVED'
POLICY_REJECTED = 'POLICY_REJECTED'
POLICY_REQUEST_APPROVED = 'POLICY_REQUEST_APPROVED'
POLICY_REQUEST_REJECTED = 'POLICY_REQUEST_REJECTED'
POLICY_EXPIRED = 'POLICY_EXPIRED'
CLAIM_APPROVED = 'CLAIM_APPROVED'
CLAIM_REJECTED = 'CLAIM_REJECTED'
PRODUCT_CREATED = 'PRODUCT_CREATED'
PRODUCT_UPDATED = 'PRODUCT_UPDATED'
PRODUCT_DELETED = 'PRODUCT_DELETED'
AGENT_ASSIGNED = 'AGENT_ASSIGNED'
AGENT_UNASSIGNED = 'AGENT_UNASSIGNED'
AGENT_CREATED = 'AGENT_CREATED'

DEFAULT_AUDIT_LIMIT = 20
MAX_AUDIT_LIMIT = 500


def _write_entry(entry):
    db.session.add(entry)
    db.session.commit()


def record_audit(action, user_id=None, actor=None, details=None):
    """
    Append an audit entry in its own transaction.

    Returns None on success, or a warning message when the entry could not
    be written.
    """
    entry = AuditLog(
        action=action,
        user_id=user_id,
        actor_id=actor.id if actor else None,
        actor_role=actor.role.value if actor else None,
        details=details,
    )
    try:
        _write_entry(entry)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(f"Audit write failed for {action} (subject={user_id}): {exc}")
        return f"Audit entry '{action}' could not be recorded"
    return None


def collect_warnings(*warnings):
    """Drop empty entries from a list of audit warnings."""
    return [w for w in warnings if w]


@service_operation
def recent_audit_logs(limit=DEFAULT_AUDIT_LIMIT):
    """Return the newest audit entries first."""
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = DEFAULT_AUDIT_LIMIT
    limit = max(1, min(limit, MAX_AUDIT_LIMIT))
    return AuditLog.query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
