from datetime import date, timedelta

import pytest

from policyhub.extensions import db
from policyhub.models import AuditLog, Claim, ClaimStatus, PolicyStatus, Role, UserPolicy, VerificationType
from policyhub.services import claims, subscriptions
from policyhub.services.access import Principal
from policyhub.utils.dates import utc_today


@pytest.fixture
def claim(approved_policy, customer):
    return claims.raise_claim(
        customer.id, approved_policy.id, date(2024, 3, 10), "Hospital admission", 25000
    ).unwrap()


def test_raise_claim_on_approved_policy(client, claim, approved_policy):
    assert claim.status == ClaimStatus.PENDING
    assert claim.verification_type == VerificationType.NONE
    assert claim.user_policy_id == approved_policy.id
    assert claim.incident_date == date(2024, 3, 10)


def test_raise_claim_requires_approved_policy(client, pending_policy, customer):
    result = claims.raise_claim(customer.id, pending_policy.id, date(2024, 3, 10), "Fall", 100)

    assert result.error_kind == "ConflictError"
    assert Claim.query.count() == 0


def test_raise_claim_requires_ownership(client, approved_policy, other_customer):
    result = claims.raise_claim(other_customer.id, approved_policy.id, date(2024, 3, 10), "Fall", 100)

    assert result.error_kind == "ForbiddenError"


def test_raise_claim_missing_policy(client, customer):
    result = claims.raise_claim(customer.id, "e" * 24, date(2024, 3, 10), "Fall", 100)

    assert result.error_kind == "NotFoundError"


@pytest.mark.parametrize("incident_date, description, amount", [
    (None, "Fall", 100),
    (date(2024, 3, 10), "", 100),
    (date(2024, 3, 10), "Fall", 0),
    (date(2024, 3, 10), "Fall", -5),
    ("not-a-date", "Fall", 100),
])
def test_raise_claim_validation(client, approved_policy, customer, incident_date, description, amount):
    result = claims.raise_claim(customer.id, approved_policy.id, incident_date, description, amount)

    assert result.error_kind == "ValidationError"


def test_future_incident_date_is_invalid(client, approved_policy, customer):
    tomorrow = utc_today() + timedelta(days=1)

    result = claims.raise_claim(customer.id, approved_policy.id, tomorrow, "Fall", 100)

    assert result.error_kind == "ValidationError"


def test_assigned_agent_approves_claim(client, claim, approved_policy, agent_principal, agent):
    result = claims.decide(claim.id, agent_principal, "Approved", decision_notes="verified")

    assert result.success
    decided = result.value
    assert decided.status == ClaimStatus.APPROVED
    assert decided.decision_notes == "verified"
    assert decided.decided_by_agent_id == agent.id
    assert decided.verification_type == VerificationType.AGENT
    assert decided.decided_at is not None
    assert db.session.get(UserPolicy, approved_policy.id).status == PolicyStatus.CLAIMED
    assert AuditLog.query.filter_by(action="CLAIM_APPROVED").count() == 1


def test_rejection_leaves_policy_untouched(client, claim, approved_policy, admin_principal, admin):
    result = claims.decide(claim.id, admin_principal, "Rejected", decision_notes="no cover")

    assert result.value.status == ClaimStatus.REJECTED
    assert result.value.decided_by_admin_id == admin.id
    assert result.value.verification_type == VerificationType.ADMIN
    assert db.session.get(UserPolicy, approved_policy.id).status == PolicyStatus.APPROVED


def test_second_claim_on_claimed_policy(client, claim, approved_policy, customer, admin_principal):
    second = claims.raise_claim(customer.id, approved_policy.id, date(2024, 4, 1), "Follow-up", 5000).unwrap()
    claims.decide(claim.id, admin_principal, "Approved").unwrap()

    result = claims.decide(second.id, admin_principal, "Approved")

    assert result.success
    assert db.session.get(UserPolicy, approved_policy.id).status == PolicyStatus.CLAIMED


def test_approval_refused_when_policy_cancelled(client, claim, approved_policy, customer, admin_principal):
    subscriptions.cancel(approved_policy.id, customer.id).unwrap()

    result = claims.decide(claim.id, admin_principal, "Approved")

    assert result.error_kind == "ConflictError"
    assert db.session.get(Claim, claim.id).status == ClaimStatus.PENDING
    assert db.session.get(UserPolicy, approved_policy.id).status == PolicyStatus.CANCELLED


def test_claim_and_policy_change_together(client, claim, approved_policy, admin_principal, monkeypatch):
    """If the parent status swap loses, the claim decision is not kept either."""
    monkeypatch.setattr(claims, "compare_and_set_status", lambda *args, **kwargs: False)

    result = claims.decide(claim.id, admin_principal, "Approved")

    assert result.error_kind == "ConflictError"
    assert db.session.get(Claim, claim.id).status == ClaimStatus.PENDING
    assert db.session.get(UserPolicy, approved_policy.id).status == PolicyStatus.APPROVED


def test_unassigned_agent_cannot_decide(client, claim, other_agent_principal):
    result = claims.decide(claim.id, other_agent_principal, "Approved")

    assert result.error_kind == "ForbiddenError"


def test_customer_cannot_decide(client, claim, customer_principal):
    assert claims.decide(claim.id, customer_principal, "Approved").error_kind == "ForbiddenError"


def test_decided_claim_is_terminal(client, claim, admin_principal):
    claims.decide(claim.id, admin_principal, "Rejected").unwrap()

    assert claims.decide(claim.id, admin_principal, "Approved").error_kind == "ConflictError"


def test_invalid_outcome(client, claim, admin_principal):
    assert claims.decide(claim.id, admin_principal, "Pending").error_kind == "ValidationError"


def test_customer_updates_pending_claim(client, claim, customer_principal):
    result = claims.update(claim.id, customer_principal, {"amount_claimed": 20000, "description": "Updated"})

    assert result.value.amount_claimed == 20000
    assert result.value.description == "Updated"
    assert result.value.status == ClaimStatus.PENDING


def test_customer_cannot_set_decision_notes(client, claim, customer_principal):
    result = claims.update(claim.id, customer_principal, {"decision_notes": "approve me"})

    assert result.error_kind == "ForbiddenError"


def test_status_cannot_be_patched(client, claim, admin_principal):
    result = claims.update(claim.id, admin_principal, {"status": "Approved"})

    assert result.error_kind == "ForbiddenError"
    assert db.session.get(Claim, claim.id).status == ClaimStatus.PENDING


def test_agent_adds_decision_notes(client, claim, agent_principal):
    result = claims.update(claim.id, agent_principal, {"decision_notes": "awaiting documents"})

    assert result.value.decision_notes == "awaiting documents"


def test_other_customer_cannot_update(client, claim, other_customer):
    intruder = Principal(id=other_customer.id, role=Role.CUSTOMER)

    assert claims.update(claim.id, intruder, {"description": "x"}).error_kind == "ForbiddenError"


def test_decided_claim_cannot_be_updated(client, claim, admin_principal, customer_principal):
    claims.decide(claim.id, admin_principal, "Rejected").unwrap()

    result = claims.update(claim.id, customer_principal, {"description": "late edit"})

    assert result.error_kind == "ConflictError"


def test_claim_listings(client, claim, customer, agent, other_agent):
    assert [c.id for c in claims.list_customer_claims(customer.id).value] == [claim.id]
    assert [c.id for c in claims.list_agent_claims(agent.id).value] == [claim.id]
    assert claims.list_agent_claims(other_agent.id).value == []
    assert len(claims.list_all_claims(status="pending").value) == 1
    assert claims.list_all_claims(status="Approved").value == []


def test_claims_for_one_policy(client, claim, approved_policy, customer_principal, other_agent_principal):
    assert [c.id for c in claims.list_policy_claims(approved_policy.id, customer_principal).value] == [claim.id]
    assert claims.list_policy_claims(approved_policy.id, other_agent_principal).error_kind == "ForbiddenError"


@pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_claim_amount(client, approved_policy, customer, amount):
    result = claims.raise_claim(customer.id, approved_policy.id, date(2024, 3, 10), "Fall", amount)

    assert result.error_kind == "ValidationError"
    assert Claim.query.count() == 0


def test_update_that_cleans_to_nothing_is_validation_error(client, claim, customer_principal):
    result = claims.update(claim.id, customer_principal, {"description": None})

    assert result.error_kind == "ValidationError"
    assert result.error.details == ["At least one field must be provided"]
