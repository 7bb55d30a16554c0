from dataclasses import dataclass
from typing import List, Optional


@dataclass
class Shortage:
    product_id: int
    sku: Optional[str]
    name: Optional[str]
    requested: int
    available: int
    inactive: bool = False

    def describe(self) -> str:
        if self.inactive:
            return f"Product {self.name} is no longer available"
        return (
            f"Insufficient stock for {self.name}. "
            f"Available: {self.available}, Requested: {self.requested}"
        )

    def as_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "requested": self.requested,
            "available": self.available,
            "inactive": self.inactive,
        }


class ServiceError(Exception):
    """Base for errors rendered as {"error": ..., "details": [...]}."""

    status_code = 500

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = list(self.details)
        return body


class AccessError(ServiceError):
    """Unauthenticated (401) or wrong tenant / insufficient role (403)."""

    def __init__(self, message: str, status_code: int = 403):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(ServiceError):
    status_code = 404


class ValidationError(ServiceError):
    status_code = 400


class ConflictError(ValidationError):
    """Duplicate of a uniquely keyed entity (e.g. client company/email)."""


class InventoryShortageError(ValidationError):
    def __init__(self, shortages: List[Shortage], message: str = "Inventory validation failed"):
        super().__init__(message, details=[s.describe() for s in shortages])
        self.shortages = shortages

    def to_body(self) -> dict:
        body = super().to_body()
        body["shortages"] = [s.as_dict() for s in self.shortages]
        return body


class StoreError(ServiceError):
    status_code = 500


class RemoteUnavailableError(ServiceError):
    status_code = 503


class RemoteSyncError(Exception):
    """Raised by commerce backend adapters; never escapes RemoteSyncService."""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
