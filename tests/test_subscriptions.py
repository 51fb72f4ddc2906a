from datetime import date

from policyhub.extensions import db
from policyhub.models import AuditLog, PolicyStatus, UserPolicy, VerificationType
from policyhub.services import subscriptions
from policyhub.utils.dates import add_months, compute_end_date, utc_today


def test_purchase_computes_end_date_in_months(client, customer, product, agent):
    result = subscriptions.purchase(customer.id, product.id, "2024-01-01")

    assert result.success
    user_policy = result.value
    assert user_policy.start_date == date(2024, 1, 1)
    assert user_policy.end_date == date(2024, 12, 31)
    assert user_policy.status == PolicyStatus.PENDING
    assert user_policy.verification_type == VerificationType.NONE
    assert user_policy.assigned_agent_id == agent.id
    assert user_policy.product_code == "HEALTH1"
    assert user_policy.premium_paid == 0


def test_month_arithmetic_clamps_to_month_end():
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert compute_end_date(date(2024, 3, 15), 6) == date(2024, 9, 14)


def test_purchase_with_nominee(client, customer, product):
    result = subscriptions.purchase(
        customer.id, product.id, date(2024, 1, 1), nominee={"name": "Eve", "relation": "Spouse"}
    )

    assert result.value.nominee == {"name": "Eve", "relation": "Spouse"}


def test_purchase_rejects_unknown_nominee_relation(client, customer, product):
    result = subscriptions.purchase(
        customer.id, product.id, date(2024, 1, 1), nominee={"name": "Eve", "relation": "Neighbour"}
    )

    assert result.error_kind == "ValidationError"


def test_purchase_missing_product(client, customer):
    result = subscriptions.purchase(customer.id, "a" * 24, date(2024, 1, 1))

    assert result.error_kind == "NotFoundError"


def test_purchase_bad_start_date(client, customer, product):
    assert subscriptions.purchase(customer.id, product.id, "01/01/2024").error_kind == "ValidationError"


def test_admin_approves_pending(client, pending_policy, admin_principal):
    result = subscriptions.approve(pending_policy.id, admin_principal)

    assert result.success
    assert result.value.status == PolicyStatus.APPROVED
    assert result.value.verification_type == VerificationType.ADMIN
    assert result.value.start_date == date(2024, 1, 1)
    assert AuditLog.query.filter_by(action="POLICY_APPROVED").count() == 1


def test_assigned_agent_approves_pending(client, pending_policy, agent_principal):
    result = subscriptions.approve(pending_policy.id, agent_principal)

    assert result.value.status == PolicyStatus.APPROVED
    assert result.value.verification_type == VerificationType.AGENT


def test_policy_request_approval_restarts_coverage(client, pending_policy, agent_principal):
    result = subscriptions.approve(pending_policy.id, agent_principal, via_request=True)

    today = utc_today()
    assert result.value.start_date == today
    assert result.value.end_date == compute_end_date(today, 12)
    entry = AuditLog.query.filter_by(action="POLICY_REQUEST_APPROVED").one()
    assert entry.actor_id == agent_principal.id
    assert entry.user_id == pending_policy.user_id


def test_unassigned_agent_cannot_decide(client, pending_policy, other_agent_principal):
    approve = subscriptions.approve(pending_policy.id, other_agent_principal)
    reject = subscriptions.reject(pending_policy.id, other_agent_principal)

    assert approve.error_kind == "ForbiddenError"
    assert reject.error_kind == "ForbiddenError"
    assert db.session.get(UserPolicy, pending_policy.id).status == PolicyStatus.PENDING


def test_customer_cannot_approve(client, pending_policy, customer_principal):
    result = subscriptions.approve(pending_policy.id, customer_principal)

    assert result.error_kind == "ForbiddenError"


def test_reject_pending(client, pending_policy, agent_principal):
    result = subscriptions.reject(pending_policy.id, agent_principal)

    assert result.value.status == PolicyStatus.REJECTED
    assert result.value.verification_type == VerificationType.AGENT


def test_second_decision_is_conflict(client, pending_policy, admin_principal, agent_principal):
    subscriptions.approve(pending_policy.id, admin_principal).unwrap()

    assert subscriptions.approve(pending_policy.id, agent_principal).error_kind == "ConflictError"
    assert subscriptions.reject(pending_policy.id, admin_principal).error_kind == "ConflictError"
    assert db.session.get(UserPolicy, pending_policy.id).status == PolicyStatus.APPROVED


def test_lost_status_race_is_conflict(client, pending_policy, admin_principal, monkeypatch):
    """A decision whose compare-and-swap matches no row writes nothing."""
    monkeypatch.setattr(subscriptions, "compare_and_set_status", lambda *args, **kwargs: False)

    result = subscriptions.approve(pending_policy.id, admin_principal)

    assert result.error_kind == "ConflictError"
    assert db.session.get(UserPolicy, pending_policy.id).status == PolicyStatus.PENDING
    assert AuditLog.query.filter_by(action="POLICY_APPROVED").count() == 0


def test_approve_missing_policy(client, admin_principal):
    assert subscriptions.approve("b" * 24, admin_principal).error_kind == "NotFoundError"


def test_cancel_approved(client, approved_policy, customer):
    result = subscriptions.cancel(approved_policy.id, customer.id)

    assert result.value.status == PolicyStatus.CANCELLED


def test_cancel_twice_fails_second_time(client, approved_policy, customer):
    subscriptions.cancel(approved_policy.id, customer.id).unwrap()

    result = subscriptions.cancel(approved_policy.id, customer.id)

    assert result.error_kind == "ConflictError"
    assert result.error.message == "Policy is already cancelled."


def test_cancel_pending_is_conflict(client, pending_policy, customer):
    result = subscriptions.cancel(pending_policy.id, customer.id)

    assert result.error_kind == "ConflictError"
    assert result.error.message == "Only approved policies can be cancelled."


def test_cancel_by_other_customer_is_forbidden(client, approved_policy, other_customer):
    result = subscriptions.cancel(approved_policy.id, other_customer.id)

    assert result.error_kind == "ForbiddenError"
    assert db.session.get(UserPolicy, approved_policy.id).status == PolicyStatus.APPROVED


def test_listings(client, pending_policy, customer, agent, other_agent):
    assert [p.id for p in subscriptions.list_customer_policies(customer.id).value] == [pending_policy.id]
    assert [p.id for p in subscriptions.list_policy_requests(agent.id).value] == [pending_policy.id]
    assert subscriptions.list_policy_requests(other_agent.id).value == []
    assert subscriptions.list_approved_customers(agent.id).value == []
    assert len(subscriptions.list_all_policies(status="Pending").value) == 1
    assert subscriptions.list_all_policies(status="Bogus").error_kind == "ValidationError"


def test_policy_customers_for_product(client, approved_policy, agent, product):
    result = subscriptions.list_policy_customers(agent.id, product.id)

    assert [p.id for p in result.value] == [approved_policy.id]
    assert subscriptions.list_policy_customers(agent.id, "c" * 24).error_kind == "NotFoundError"


def test_get_policy_enforces_access(client, pending_policy, customer_principal, other_agent_principal):
    assert subscriptions.get_policy(pending_policy.id, customer_principal).success
    assert subscriptions.get_policy(pending_policy.id, other_agent_principal).error_kind == "ForbiddenError"
    assert subscriptions.get_policy(pending_policy.id, None).error_kind == "UnauthenticatedError"
