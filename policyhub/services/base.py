"""
Result type and boundary wrapper shared by all service modules.

Business-rule violations never escape a service call: they are returned as a
failed ``OperationResult``. Storage failures are rolled back and reported as
``InternalError``.
"""

from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from policyhub.errors import InternalError, PolicyHubError
from policyhub.extensions import db


@dataclass
class OperationResult:
    """Outcome of a service operation."""
    success: bool
    value: Any = None
    error: Optional[PolicyHubError] = None
    warnings: List[str] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, value=None, warnings=None, meta=None):
        return cls(True, value=value, warnings=list(warnings or []), meta=dict(meta or {}))

    @classmethod
    def failure(cls, error):
        return cls(False, error=error)

    @property
    def error_kind(self):
        return self.error.kind if self.error else None

    def unwrap(self):
        """Return the value, re-raising the error for callers that prefer exceptions."""
        if not self.success:
            raise self.error
        return self.value


def service_operation(func):
    """
    Wrap a service function so it always returns an OperationResult.

    The wrapped function may return a plain value (wrapped as success) or an
    OperationResult (passed through). Business errors roll back any pending
    writes so a failed operation leaves no partial state behind.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            outcome = func(*args, **kwargs)
        except PolicyHubError as exc:
            db.session.rollback()
            current_app.logger.info(f"{func.__name__} rejected: {exc.kind}: {exc.message}")
            return OperationResult.failure(exc)
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception(f"{func.__name__} failed with a storage error")
            return OperationResult.failure(InternalError("Storage unavailable, please retry"))
        if isinstance(outcome, OperationResult):
            return outcome
        return OperationResult.ok(outcome)
    return wrapper
