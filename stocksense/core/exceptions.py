"""
Typed exceptions for stock reconciliation.

Every error carries a machine-readable ``code`` and the HTTP ``status_code``
routers translate it to. Sensor listeners log and drop these; HTTP routes
return them to the caller with the message as detail.

    InventoryError
    +-- NotFoundError                  404
    +-- BadRequestError                400
    |   +-- InvalidMovementType
    |   +-- ProductInactive
    |   +-- DecimalNotAllowed
    |   +-- EntryModeDisabled
    +-- ConflictError                  409
    |   +-- InsufficientStock
    |   +-- StockBusy                  (retryable)
    |   +-- RfidTagConflict            (retryable)
    +-- UnauthorizedError              401
    +-- UpstreamError                  502
"""

from decimal import Decimal
from typing import Optional


class InventoryError(Exception):
    code: str = "INVENTORY_ERROR"
    status_code: int = 400
    retryable: bool = False


class NotFoundError(InventoryError):
    code: str = "NOT_FOUND"
    status_code: int = 404


class ProductNotFound(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id):
        self.product_id = product_id
        super().__init__("Product not found")


class BadRequestError(InventoryError):
    code: str = "BAD_REQUEST"
    status_code: int = 400


class InvalidMovementType(BadRequestError):
    code: str = "INVALID_MOVEMENT_TYPE"

    def __init__(self, type_id):
        self.type_id = type_id
        super().__init__("Invalid movement type")


class ProductInactive(BadRequestError):
    code: str = "PRODUCT_INACTIVE"

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__("Product is inactive")


class DecimalNotAllowed(BadRequestError):
    code: str = "DECIMAL_NOT_ALLOWED"

    def __init__(self, product_id: int, quantity: Decimal):
        self.product_id = product_id
        self.quantity = quantity
        super().__init__("This product does not allow decimal quantities")


class EntryModeDisabled(BadRequestError):
    code: str = "ENTRY_MODE_DISABLED"

    def __init__(self):
        super().__init__("RFID entry mode is not active")


class ConflictError(InventoryError):
    code: str = "CONFLICT"
    status_code: int = 409


class InsufficientStock(ConflictError):
    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, available: Decimal, requested: Decimal):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock: {requested} requested, {available} available"
        )


class StockBusy(ConflictError):
    """Another operation held the product longer than the lock timeout."""

    code: str = "STOCK_BUSY"
    retryable: bool = True

    def __init__(self, product_id: int, timeout: float):
        self.product_id = product_id
        self.timeout = timeout
        super().__init__(
            f"Product {product_id} is busy, retry the operation"
        )


class RfidTagConflict(ConflictError):
    """A tag in the batch was registered by a concurrent request."""

    code: str = "RFID_TAG_CONFLICT"
    retryable: bool = True

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(
            f"An RFID tag for product {product_id} was registered concurrently, retry the operation"
        )


class UnauthorizedError(InventoryError):
    code: str = "UNAUTHORIZED"
    status_code: int = 401


class UpstreamError(InventoryError):
    code: str = "UPSTREAM_ERROR"
    status_code: int = 502

    def __init__(self, service: str, reason: Optional[str] = None):
        self.service = service
        self.reason = reason
        message = f"{service} unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


__all__ = [
    "BadRequestError",
    "ConflictError",
    "DecimalNotAllowed",
    "EntryModeDisabled",
    "InsufficientStock",
    "InvalidMovementType",
    "InventoryError",
    "NotFoundError",
    "ProductInactive",
    "ProductNotFound",
    "RfidTagConflict",
    "StockBusy",
    "UnauthorizedError",
    "UpstreamError",
]
