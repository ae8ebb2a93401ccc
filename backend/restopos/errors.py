# Overview: Typed domain errors raised by the order engine and mapped to HTTP responses.

"""
Error taxonomy

- ValidationError:     bad input, rejected before any mutation (400)
- NotFoundError:       entity absent OR outside the caller's branch scope (404).
                       Both cases use the same wording so cross-tenant
                       existence is never revealed.
- BusinessRuleError:   a valid request that conflicts with current state (400)
- PermissionDeniedError / AuthenticationError: 403 / 401

Datastore failures are NOT wrapped here; SQLAlchemy errors propagate and
are answered as retryable 503s by the app-level handler.
"""

from __future__ import annotations


class OrderEngineError(Exception):
    """Base class for all recoverable, reportable engine errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(OrderEngineError):
    status_code = 400


class NotFoundError(OrderEngineError):
    status_code = 404

    @classmethod
    def scoped(cls, entity: str, entity_id=None) -> "NotFoundError":
        details = {"id": entity_id} if entity_id is not None else None
        return cls(f"{entity} not found or access denied", details)


class AuthenticationError(OrderEngineError):
    status_code = 401


class PermissionDeniedError(OrderEngineError):
    status_code = 403


class BusinessRuleError(OrderEngineError):
    status_code = 400


class InsufficientStockError(BusinessRuleError):
    def __init__(self, product_id: int, name: str, requested: int, available: int):
        super().__init__(
            f'Insufficient stock for "{name}". Requested: {requested}, Available: {available}',
            details={
                "product_id": product_id,
                "name": name,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.name = name
        self.requested = requested
        self.available = available


class InvalidTransitionError(BusinessRuleError):
    def __init__(self, current: str, requested: str, message: str | None = None):
        super().__init__(
            message or f"Invalid transition from {current} to {requested}",
            details={"current_status": current, "requested_status": requested},
        )
        self.current = current
        self.requested = requested


class AlreadyPaidError(BusinessRuleError):
    pass


class InsufficientPaymentError(BusinessRuleError):
    pass


class OrderNotPayableError(BusinessRuleError):
    pass


class AlreadyCancelledError(BusinessRuleError):
    pass


class TableUnavailableError(BusinessRuleError):
    pass


class UnpaidOrdersError(BusinessRuleError):
    pass
