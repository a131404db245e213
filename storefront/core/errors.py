"""
Error taxonomy for the storefront.

Every business failure raised by the workflow or the stores derives from
StorefrontError and carries the HTTP status it maps to, so the exception
handlers in storefront.main can render it without a lookup table.
"""
from typing import Any, Dict, List, Optional


class StorefrontError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(self.message)


class ValidationError(StorefrontError):
    status_code = 400
    default_message = "Validation failed"


class NotFound(StorefrontError):
    status_code = 404
    default_message = "Not found"


class InactiveProduct(StorefrontError):
    status_code = 400

    def __init__(self, product_id: str, name: Optional[str] = None):
        self.product_id = product_id
        super().__init__(
            f"Product {name or product_id} is no longer available",
            [{"field": "items", "product_id": product_id, "message": "inactive"}],
        )


class InsufficientStock(StorefrontError):
    status_code = 400

    def __init__(self, product_id: str, name: Optional[str] = None, requested: int = 0):
        self.product_id = product_id
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {name or product_id}",
            [{"field": "items", "product_id": product_id, "message": f"requested {requested}, insufficient stock"}],
        )


class InvalidTransition(StorefrontError):
    status_code = 400
    default_message = "Invalid order status transition"


class PaymentDeclined(StorefrontError):
    status_code = 400
    default_message = "Payment failed"


class Unauthorized(StorefrontError):
    status_code = 401
    default_message = "Could not validate credentials"


class Forbidden(StorefrontError):
    status_code = 403
    default_message = "Admin role required"


class Conflict(StorefrontError):
    status_code = 409
    default_message = "Conflicting update, please retry"


class DuplicateOrderNumber(Conflict):
    default_message = "Order number already in use"


class AdapterFailure(StorefrontError):
    status_code = 502
    default_message = "External service unavailable"


def field_errors(errors, skip_prefix=("body", "query", "path")) -> List[Dict[str, Any]]:
    """Flatten pydantic error dicts into {"field", "message"} pairs."""
    out = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ())]
        if loc and loc[0] in skip_prefix:
            loc = loc[1:]
        out.append({"field": ".".join(loc) or "body", "message": err.get("msg", "invalid value")})
    return out
