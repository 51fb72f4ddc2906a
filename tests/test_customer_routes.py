from policyhub.models import Role
from policyhub.services import claims
from policyhub.services.access import Principal


def test_anonymous_is_rejected(client):
    resp = client.get('/api/customer/policies')

    assert resp.status_code == 401
    assert resp.json["error"] == "UnauthenticatedError"


def test_agent_cannot_use_customer_routes(client, agent_principal, headers_for):
    resp = client.get('/api/customer/mypolicies', headers=headers_for(agent_principal))

    assert resp.status_code == 403
    assert resp.json["error"] == "ForbiddenError"


def test_browse_catalog(client, product, customer_principal, headers_for):
    headers = headers_for(customer_principal)

    listing = client.get('/api/customer/policies', headers=headers)
    single = client.get(f'/api/customer/policies/{product.id}', headers=headers)

    assert [p["code"] for p in listing.json["policies"]] == ["HEALTH1"]
    assert single.json["policy"]["termMonths"] == 12
    assert client.get('/api/customer/policies/' + "0" * 24, headers=headers).status_code == 404


def test_purchase_pay_and_claim_flow(client, product, customer_principal, admin_principal, headers_for):
    customer_headers = headers_for(customer_principal)

    purchased = client.post('/api/customer/purchase', headers=customer_headers, json={
        "policyProductId": product.id,
        "startDate": "2024-01-01",
        "nominee": {"name": "Eve", "relation": "Spouse"},
    })
    assert purchased.status_code == 201
    user_policy = purchased.json["userPolicy"]
    assert user_policy["status"] == "Pending"
    assert user_policy["endDate"] == "2024-12-31"
    assert user_policy["nominee"] == {"name": "Eve", "relation": "Spouse"}
    assert user_policy["product"]["code"] == "HEALTH1"

    early = client.post('/api/customer/pay', headers=customer_headers, json={
        "userPolicyId": user_policy["id"], "method": "UPI",
    })
    assert early.status_code == 409

    client.post(f'/api/admin/userpolicies/{user_policy["id"]}/approve', headers=headers_for(admin_principal))

    paid = client.post('/api/customer/pay', headers=customer_headers, json={
        "userPolicyId": user_policy["id"], "method": "UPI", "amount": 1,
    })
    assert paid.status_code == 201
    assert paid.json["payment"]["amount"] == 500
    assert paid.json["meta"]["remaining"] == 11

    summary = client.get(f'/api/customer/mypolicies/{user_policy["id"]}/payments', headers=customer_headers)
    assert summary.json["summary"]["premiumPaid"] == 500

    claim = client.post('/api/customer/claims', headers=customer_headers, json={
        "userPolicyId": user_policy["id"],
        "incidentDate": "2024-03-10",
        "description": "Hospital admission",
        "amountClaimed": 25000,
    })
    assert claim.status_code == 201
    assert claim.json["claim"]["status"] == "Pending"

    listed = client.get('/api/customer/claims', headers=customer_headers)
    assert len(listed.json["claims"]) == 1


def test_purchase_validation_error(client, customer_principal, headers_for):
    resp = client.post('/api/customer/purchase', headers=headers_for(customer_principal), json={"startDate": "x"})

    assert resp.status_code == 400
    assert resp.json["error"] == "ValidationError"


def test_pay_rejects_unknown_method(client, approved_policy, customer_principal, headers_for):
    resp = client.post('/api/customer/pay', headers=headers_for(customer_principal), json={
        "userPolicyId": approved_policy.id, "method": "Barter",
    })

    assert resp.status_code == 400


def test_cancel_and_cancel_again(client, approved_policy, customer_principal, headers_for):
    headers = headers_for(customer_principal)
    url = f'/api/customer/mypolicies/{approved_policy.id}/cancel'

    first = client.post(url, headers=headers)
    second = client.post(url, headers=headers)

    assert first.json["userPolicy"]["status"] == "Cancelled"
    assert second.status_code == 409
    assert second.json["message"] == "Policy is already cancelled."


def test_customer_sees_only_own_policy(client, pending_policy, other_customer, headers_for):
    intruder = Principal(id=other_customer.id, role=Role.CUSTOMER)
    resp = client.get(f'/api/customer/mypolicies/{pending_policy.id}', headers=headers_for(intruder))

    assert resp.status_code == 403


def test_patch_claim_status_is_forbidden(client, approved_policy, customer, customer_principal, headers_for):
    claim = claims.raise_claim(customer.id, approved_policy.id, "2024-03-10", "Fall", 100).unwrap()

    resp = client.patch(f'/api/customer/claims/{claim.id}', headers=headers_for(customer_principal), json={
        "status": "Approved",
    })

    assert resp.status_code == 403


def test_patch_claim_with_blank_amount(client, approved_policy, customer, customer_principal, headers_for):
    claim = claims.raise_claim(customer.id, approved_policy.id, "2024-03-10", "Fall", 100).unwrap()

    resp = client.patch(f'/api/customer/claims/{claim.id}', headers=headers_for(customer_principal), json={
        "amountClaimed": "",
    })

    assert resp.status_code == 400
    assert resp.json["error"] == "ValidationError"


def test_raise_claim_with_nan_amount(client, approved_policy, customer_principal, headers_for):
    resp = client.post('/api/customer/claims', headers=headers_for(customer_principal), json={
        "userPolicyId": approved_policy.id,
        "incidentDate": "2024-03-10",
        "description": "Fall",
        "amountClaimed": "nan",
    })

    assert resp.status_code == 400
