"""
Common utility functions for PolicyHub routes and services.
"""

import secrets
import time
from datetime import timezone

from flask import jsonify


def generate_payment_reference():
    """Return a default payment reference, e.g. ``PAY_1718000000000_3FA9``."""
    return f"PAY_{int(time.time() * 1000)}_{secrets.token_hex(2).upper()}"


def format_utc_iso(dt):
    """Return a UTC ISO-8601 string (with trailing Z) for a datetime or None."""
    if not dt:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def format_date(value):
    """Return YYYY-MM-DD for a date, or None."""
    return value.isoformat() if value else None


def error_response(error):
    """Render a PolicyHubError as a JSON failure with its mapped status."""
    payload = {'success': False}
    payload.update(error.to_dict())
    return jsonify(payload), error.http_status


def result_response(result, key=None, serializer=None, status=200, **extra):
    """
    Render an OperationResult as JSON.

    On success the value is serialized (when a serializer is given) and placed
    under ``key``; warnings and meta are included when present. On failure the
    error kind, message and mapped HTTP status are returned.
    """
    if not result.success:
        return error_response(result.error)

    payload = {'success': True}
    if key is not None:
        value = result.value
        if serializer is not None:
            if isinstance(value, (list, tuple)):
                value = [serializer(item) for item in value]
            else:
                value = serializer(value)
        payload[key] = value
    if result.meta:
        payload['meta'] = result.meta
    if result.warnings:
        payload['warnings'] = result.warnings
    payload.update(extra)
    return jsonify(payload), status
