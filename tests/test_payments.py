from datetime import date

from policyhub.extensions import db
from policyhub.models import Payment, PaymentMethod, UserPolicy
from policyhub.services import payments, subscriptions


def test_pay_records_product_premium(client, approved_policy, customer):
    result = payments.pay(approved_policy.id, customer.id, "UPI", reference="TXN-1")

    assert result.success
    payment = result.value
    assert payment.amount == 500
    assert payment.method == PaymentMethod.UPI
    assert payment.reference == "TXN-1"
    assert result.meta == {"paidCount": 1, "termMonths": 12, "remaining": 11, "installmentAmount": 500}
    assert db.session.get(UserPolicy, approved_policy.id).premium_paid == 500


def test_pay_generates_reference(client, approved_policy, customer):
    payment = payments.pay(approved_policy.id, customer.id, "Card").unwrap()

    assert payment.reference.startswith("PAY_")


def test_full_term_then_conflict(client, customer, product, admin_principal):
    """HEALTH1 bought on 2024-01-01: twelve installments, the thirteenth is refused."""
    user_policy = subscriptions.purchase(customer.id, product.id, date(2024, 1, 1)).unwrap()
    assert user_policy.end_date == date(2024, 12, 31)
    subscriptions.approve(user_policy.id, admin_principal).unwrap()

    for installment in range(1, 13):
        result = payments.pay(user_policy.id, customer.id, "Simulated")
        assert result.success
        assert result.meta["paidCount"] == installment

    assert result.meta["remaining"] == 0

    thirteenth = payments.pay(user_policy.id, customer.id, "Simulated")

    assert thirteenth.error_kind == "ConflictError"
    refreshed = db.session.get(UserPolicy, user_policy.id)
    assert refreshed.premium_paid == 6000
    assert refreshed.payments_count == 12
    assert Payment.query.filter_by(user_policy_id=user_policy.id).count() == 12


def test_racing_payment_on_last_installment(client, approved_policy, customer, monkeypatch):
    """
    Two payments both read paidCount == term - 1. The first wins; the second
    must be stopped by the conditional update even though its read was stale.
    """
    for _ in range(11):
        payments.pay(approved_policy.id, customer.id, "Offline").unwrap()

    first = payments.pay(approved_policy.id, customer.id, "Offline")
    assert first.success

    monkeypatch.setattr(payments, "_paid_installments", lambda user_policy: 11)
    second = payments.pay(approved_policy.id, customer.id, "Offline")

    assert second.error_kind == "ConflictError"
    refreshed = db.session.get(UserPolicy, approved_policy.id)
    assert refreshed.premium_paid == 6000
    assert refreshed.payments_count == 12
    assert Payment.query.count() == 12


def test_pay_requires_owner(client, approved_policy, other_customer):
    result = payments.pay(approved_policy.id, other_customer.id, "UPI")

    assert result.error_kind == "ForbiddenError"
    assert Payment.query.count() == 0


def test_pay_requires_approved_status(client, pending_policy, customer):
    result = payments.pay(pending_policy.id, customer.id, "UPI")

    assert result.error_kind == "ConflictError"
    assert result.error.message == "Payments are allowed only for approved policies"


def test_pay_after_cancel_is_conflict(client, approved_policy, customer):
    subscriptions.cancel(approved_policy.id, customer.id).unwrap()

    assert payments.pay(approved_policy.id, customer.id, "UPI").error_kind == "ConflictError"


def test_pay_rejects_unknown_method(client, approved_policy, customer):
    assert payments.pay(approved_policy.id, customer.id, "Cheque").error_kind == "ValidationError"


def test_pay_missing_policy(client, customer):
    assert payments.pay("d" * 24, customer.id, "UPI").error_kind == "NotFoundError"


def test_history_and_agent_listing(client, approved_policy, customer, other_customer, agent, other_agent):
    payments.pay(approved_policy.id, customer.id, "UPI").unwrap()
    payments.pay(approved_policy.id, customer.id, "Card").unwrap()

    assert len(payments.history(customer.id).value) == 2
    assert payments.history(other_customer.id).value == []
    assert len(payments.list_agent_payments(agent.id).value) == 2
    assert payments.list_agent_payments(other_agent.id).value == []
    assert len(payments.list_all_payments().value) == 2


def test_payment_summary(client, approved_policy, customer_principal, customer, other_agent_principal):
    payments.pay(approved_policy.id, customer.id, "UPI").unwrap()

    result = payments.payment_summary(approved_policy.id, customer_principal)

    assert result.success
    assert result.value["premiumPaid"] == 500
    assert result.value["totalPremium"] == 6000
    assert len(result.value["payments"]) == 1
    assert result.meta["remaining"] == 11

    denied = payments.payment_summary(approved_policy.id, other_agent_principal)
    assert denied.error_kind == "ForbiddenError"
