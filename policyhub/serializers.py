"""
JSON representations of PolicyHub models.

Keys are camelCase to match the public API. Related entities are expanded
one level: a subscription carries its product and assigned agent, a claim
carries its subscription, a payment carries its subscription.
"""

from policyhub.utils.helpers import format_date, format_utc_iso


def serialize_agent(agent):
    if agent is None:
        return None
    return {
        'id': agent.id,
        'name': agent.name,
        'email': agent.email,
        'agentCode': agent.agent_code,
        'role': agent.role.value,
        'createdAt': format_utc_iso(agent.created_at),
    }


def serialize_customer(customer):
    if customer is None:
        return None
    return {
        'id': customer.id,
        'name': customer.name,
        'email': customer.email,
        'role': customer.role.value,
        'createdAt': format_utc_iso(customer.created_at),
    }


def serialize_admin(admin):
    return {
        'id': admin.id,
        'name': admin.name,
        'email': admin.email,
        'role': admin.role.value,
    }


def serialize_product(product):
    if product is None:
        return None
    return {
        'id': product.id,
        'code': product.code,
        'title': product.title,
        'description': product.description,
        'premium': product.premium,
        'termMonths': product.term_months,
        'minSumInsured': product.min_sum_insured,
        'maxSumInsured': product.max_sum_insured,
        'assignedAgentId': product.assigned_agent_id,
        'assignedAgentName': product.assigned_agent_name,
        'createdAt': format_utc_iso(product.created_at),
        'updatedAt': format_utc_iso(product.updated_at),
    }


def serialize_user_policy(user_policy, expand=True):
    data = {
        'id': user_policy.id,
        'userId': user_policy.user_id,
        'policyProductId': user_policy.policy_product_id,
        'productCode': user_policy.product_code,
        'productTitle': user_policy.product_title,
        'startDate': format_date(user_policy.start_date),
        'endDate': format_date(user_policy.end_date),
        'premiumPaid': user_policy.premium_paid,
        'paymentsCount': user_policy.payments_count,
        'status': user_policy.status.value,
        'verificationType': user_policy.verification_type.value,
        'assignedAgentId': user_policy.assigned_agent_id,
        'nominee': user_policy.nominee,
        'createdAt': format_utc_iso(user_policy.created_at),
        'updatedAt': format_utc_iso(user_policy.updated_at),
        'decidedAt': format_utc_iso(user_policy.decided_at),
    }
    if expand:
        data['product'] = serialize_product(user_policy.product)
        data['assignedAgent'] = serialize_agent(user_policy.assigned_agent)
        data['customer'] = serialize_customer(user_policy.customer)
    return data


def serialize_payment(payment, expand=True):
    data = {
        'id': payment.id,
        'userId': payment.user_id,
        'userPolicyId': payment.user_policy_id,
        'amount': payment.amount,
        'method': payment.method.value,
        'reference': payment.reference,
        'createdAt': format_utc_iso(payment.created_at),
    }
    if expand:
        data['userPolicy'] = serialize_user_policy(payment.user_policy, expand=False)
    return data


def serialize_claim(claim, expand=True):
    data = {
        'id': claim.id,
        'userId': claim.user_id,
        'userPolicyId': claim.user_policy_id,
        'incidentDate': format_date(claim.incident_date),
        'description': claim.description,
        'amountClaimed': claim.amount_claimed,
        'status': claim.status.value,
        'decisionNotes': claim.decision_notes,
        'decidedByAgentId': claim.decided_by_agent_id,
        'decidedByAdminId': claim.decided_by_admin_id,
        'verificationType': claim.verification_type.value,
        'createdAt': format_utc_iso(claim.created_at),
        'decidedAt': format_utc_iso(claim.decided_at),
    }
    if expand:
        user_policy = claim.user_policy
        data['userPolicy'] = serialize_user_policy(user_policy, expand=False)
        data['product'] = serialize_product(user_policy.product) if user_policy else None
    return data


def serialize_audit_log(entry):
    return {
        'id': entry.id,
        'action': entry.action,
        'userId': entry.user_id,
        'actorId': entry.actor_id,
        'actorRole': entry.actor_role,
        'details': entry.details,
        'timestamp': format_utc_iso(entry.timestamp),
    }


def serialize_payment_summary(summary):
    return {
        'userPolicy': serialize_user_policy(summary['userPolicy']),
        'payments': [serialize_payment(p, expand=False) for p in summary['payments']],
        'premiumPaid': summary['premiumPaid'],
        'totalPremium': summary['totalPremium'],
    }


def serialize_customer_details(entry):
    data = serialize_customer(entry['customer'])
    data['policies'] = [serialize_user_policy(p, expand=False) for p in entry['policies']]
    data['payments'] = [serialize_payment(p, expand=False) for p in entry['payments']]
    return data
