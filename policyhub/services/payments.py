"""
Payment ledger: premium installments against an Approved subscription.

The installment amount is always the product premium. The count check and
the premium_paid increment are one conditional UPDATE on the subscription
row, committed together with the Payment insert, so concurrent payments can
never push a subscription past its term.
"""

from flask import current_app
from sqlalchemy import func

from policyhub.errors import ConflictError, ForbiddenError, ValidationError
from policyhub.extensions import db
from policyhub.models import Payment, PaymentMethod, PolicyStatus, UserPolicy
from policyhub.services.access import authorize_policy
from policyhub.services.base import OperationResult, service_operation
from policyhub.services.subscriptions import get_user_policy_or_404
from policyhub.utils.helpers import generate_payment_reference

REFERENCE_MAX_LENGTH = 100


def _paid_installments(user_policy):
    """Installments already paid, as recorded on the subscription."""
    return user_policy.payments_count or 0


def ledger_totals(user_policy_id):
    """Return (count, total) computed from the Payment rows themselves."""
    count, total = db.session.query(
        func.count(Payment.id), func.coalesce(func.sum(Payment.amount), 0.0)
    ).filter(Payment.user_policy_id == user_policy_id).one()
    return count, float(total)


def installment_meta(paid_count, term_months, installment_amount):
    return {
        'paidCount': paid_count,
        'termMonths': term_months,
        'remaining': max(0, term_months - paid_count),
        'installmentAmount': installment_amount,
    }


@service_operation
def pay(user_policy_id, user_id, method, reference=None):
    """
    Record one installment for the owner of an Approved subscription.

    Returns the Payment with installment metadata
    (paidCount, termMonths, remaining, installmentAmount).
    """
    try:
        method = PaymentMethod.from_string(method)
    except ValueError:
        raise ValidationError(
            "Validation error",
            details=[f"method must be one of {', '.join(m.value for m in PaymentMethod)}"],
        )
    if reference is not None:
        reference = str(reference).strip()
        if len(reference) > REFERENCE_MAX_LENGTH:
            raise ValidationError("Validation error", details=["reference is too long"])

    user_policy = get_user_policy_or_404(user_policy_id)
    if user_policy.user_id != user_id:
        current_app.logger.warning(f"Customer {user_id} tried to pay for user policy {user_policy.id}")
        raise ForbiddenError("You do not have permission to pay for this policy")
    if user_policy.status != PolicyStatus.APPROVED:
        raise ConflictError("Payments are allowed only for approved policies")

    product = user_policy.product
    if product is None:
        raise ConflictError("Linked policy product not found")
    installment_amount = product.premium
    term_months = product.term_months

    if _paid_installments(user_policy) >= term_months:
        raise ConflictError("All installments for this policy have already been paid")

    # Atomic increment-and-check; a concurrent payment that got here first
    # leaves this UPDATE matching zero rows.
    updated = UserPolicy.query.filter(
        UserPolicy.id == user_policy.id,
        UserPolicy.status == PolicyStatus.APPROVED,
        UserPolicy.payments_count < term_months,
    ).update(
        {
            UserPolicy.payments_count: UserPolicy.payments_count + 1,
            UserPolicy.premium_paid: UserPolicy.premium_paid + installment_amount,
        },
        synchronize_session=False,
    )
    if updated != 1:
        raise ConflictError("All installments for this policy have already been paid")

    payment = Payment(
        user_id=user_id,
        user_policy_id=user_policy.id,
        amount=installment_amount,
        method=method,
        reference=reference or generate_payment_reference(),
    )
    db.session.add(payment)
    db.session.commit()
    db.session.refresh(user_policy)

    paid_count = user_policy.payments_count
    current_app.logger.info(
        f"Payment {payment.id} of {installment_amount:.2f} recorded for user policy {user_policy.id} "
        f"({paid_count}/{term_months})"
    )
    return OperationResult.ok(
        payment,
        meta=installment_meta(paid_count, term_months, installment_amount),
    )


@service_operation
def history(user_id):
    """Payment history for a customer, newest first."""
    return (
        Payment.query.filter_by(user_id=user_id)
        .order_by(Payment.created_at.desc())
        .all()
    )


@service_operation
def list_all_payments():
    return Payment.query.order_by(Payment.created_at.desc()).all()


@service_operation
def list_agent_payments(agent_id):
    return (
        Payment.query.join(UserPolicy, Payment.user_policy_id == UserPolicy.id)
        .filter(UserPolicy.assigned_agent_id == agent_id)
        .order_by(Payment.created_at.desc())
        .all()
    )


@service_operation
def payment_summary(user_policy_id, actor):
    """
    Installment progress for one subscription.

    Visible to the owner, the assigned agent and admins. Logs an error when
    the stored running total disagrees with the Payment rows.
    """
    user_policy = get_user_policy_or_404(user_policy_id)
    authorize_policy(actor, user_policy)

    count, total = ledger_totals(user_policy.id)
    if count != user_policy.payments_count or abs(total - (user_policy.premium_paid or 0)) > 1e-6:
        current_app.logger.error(
            f"Ledger mismatch on user policy {user_policy.id}: rows={count}/{total:.2f} "
            f"recorded={user_policy.payments_count}/{user_policy.premium_paid:.2f}"
        )

    product = user_policy.product
    term_months = product.term_months if product else count
    installment_amount = product.premium if product else None
    payments = (
        Payment.query.filter_by(user_policy_id=user_policy.id)
        .order_by(Payment.created_at.asc())
        .all()
    )
    summary = {
        'userPolicy': user_policy,
        'payments': payments,
        'premiumPaid': user_policy.premium_paid,
        'totalPremium': (installment_amount or 0) * term_months,
    }
    return OperationResult.ok(
        summary, meta=installment_meta(user_policy.payments_count, term_months, installment_amount)
    )
