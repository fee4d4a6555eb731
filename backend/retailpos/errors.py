# Overview: Typed domain errors raised by the service layer and mapped to HTTP by routes.

from __future__ import annotations


class DomainError(Exception):
    """Base class for business-rule failures. Routes map these to JSON errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(DomainError):
    """400-level input problem."""


class NotFoundError(DomainError):
    status_code = 404


class ConflictError(DomainError):
    """409-level business rule conflict."""

    status_code = 409


# -----------------------------------------------------------------------------
# Stock ledger
# -----------------------------------------------------------------------------

class InsufficientStockError(ConflictError):
    """A decrementing movement would drive a stock record negative."""

    def __init__(self, product_id: int, location_id: int, available, requested, product_name: str | None = None):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label} at location {location_id}. "
            f"Available: {available}, requested: {requested}",
            details={
                "product_id": product_id,
                "location_id": location_id,
                "available": str(available),
                "requested": str(requested),
            },
        )
        self.product_id = product_id
        self.location_id = location_id
        self.available = available
        self.requested = requested


class InvalidMovementError(ValidationError):
    pass


class MissingActorError(ValidationError):
    """Mutating operations must be attributed to a user."""


# -----------------------------------------------------------------------------
# Catalog / locations
# -----------------------------------------------------------------------------

class InvalidLocationError(ValidationError):
    def __init__(self, location_id):
        super().__init__(f"Location {location_id} not found", details={"location_id": location_id})
        self.location_id = location_id


class InvalidProductError(ValidationError):
    def __init__(self, product_id, reason: str = "not found"):
        super().__init__(f"Product {product_id} {reason}", details={"product_id": product_id})
        self.product_id = product_id


class CatalogError(ConflictError):
    pass


# -----------------------------------------------------------------------------
# Sales
# -----------------------------------------------------------------------------

class SaleError(ValidationError):
    pass


class EmptyCartError(SaleError):
    def __init__(self):
        super().__init__("At least one item is required")


class PriceMismatchError(SaleError):
    def __init__(self, product_id: int, supplied, current):
        super().__init__(
            f"Price for product {product_id} does not match catalog price",
            details={"product_id": product_id, "supplied": str(supplied), "current": str(current)},
        )


class SaleNotFoundError(NotFoundError):
    def __init__(self, sale_id):
        super().__init__(f"Sale {sale_id} not found", details={"sale_id": sale_id})


# -----------------------------------------------------------------------------
# Returns
# -----------------------------------------------------------------------------

class ReturnError(ValidationError):
    pass


class EmptyReturnError(ReturnError):
    def __init__(self):
        super().__init__("At least one item with a positive quantity is required")


class InvalidSaleItemError(ReturnError):
    def __init__(self, sale_item_id, sale_id):
        super().__init__(
            f"Sale item {sale_item_id} does not belong to sale {sale_id}",
            details={"sale_item_id": sale_item_id, "sale_id": sale_id},
        )


class OverReturnError(ConflictError):
    """Cumulative returned quantity would exceed the quantity sold on a line."""

    def __init__(self, sale_item_id: int, sold, already_returned, requested):
        super().__init__(
            f"Cannot return {requested} of sale item {sale_item_id}. "
            f"Sold: {sold}, already returned: {already_returned}, "
            f"available: {sold - already_returned}",
            details={
                "sale_item_id": sale_item_id,
                "sold": str(sold),
                "already_returned": str(already_returned),
                "requested": str(requested),
            },
        )
        self.sale_item_id = sale_item_id


class ReturnNotFoundError(NotFoundError):
    def __init__(self, return_id):
        super().__init__(f"Return {return_id} not found", details={"return_id": return_id})


class InvalidReturnTransitionError(ConflictError):
    def __init__(self, return_id: int, current: str, target: str):
        super().__init__(
            f"Cannot move return {return_id} from {current} to {target}",
            details={"return_id": return_id, "status": current, "target": target},
        )


# -----------------------------------------------------------------------------
# Auth
# -----------------------------------------------------------------------------

class AuthError(DomainError):
    status_code = 401


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


class TransientConflictError(DomainError):
    """Lock contention persisted through every retry; the caller may try again later."""

    status_code = 503
