"""
Utility modules for PolicyHub.

This package contains reusable helpers:
- dates: month arithmetic and date parsing for policy terms
- helpers: JSON response helpers and payment reference generation
"""

from policyhub.utils.dates import add_months, compute_end_date, parse_date, utc_today
from policyhub.utils.helpers import generate_payment_reference, result_response

__all__ = [
    'add_months',
    'compute_end_date',
    'parse_date',
    'utc_today',
    'generate_payment_reference',
    'result_response',
]
