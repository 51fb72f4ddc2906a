"""
Service layer for PolicyHub.

- catalog: policy product definitions
- subscriptions: the UserPolicy lifecycle and expiry sweep
- payments: premium installments
- claims: claim lifecycle
- access / audit: authorization predicates and the audit trail
- accounts / reports: account directory and dashboards
"""
