# Overview: Error kinds raised by the store services.

from __future__ import annotations


class StoreError(Exception):
    """Base class for every error the store layer raises."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(StoreError, ValueError):
    """Malformed input, rejected before any storage call."""


class DuplicateKeyError(StoreError):
    """Unique constraint violation (product SKU, category name)."""
    def __init__(self, field: str, value=None, entity: str | None = None):
        label = entity or "record"
        super().__init__(
            f"A {label} with this {field} already exists.",
            details={"field": field, "value": value},
        )
        self.field = field
        self.value = value


class NotFoundError(StoreError):
    """Referenced product, category or transaction is absent."""
    def __init__(self, entity: str, entity_id=None):
        super().__init__(
            f"{entity.capitalize()} not found: {entity_id}",
            details={"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InsufficientStockError(StoreError):
    """Requested more units than are on hand."""
    def __init__(self, message: str = "Insufficient stock", items: list[dict] | None = None):
        super().__init__(message, details={"items": items or []})
        self.items = items or []


class StorageFailure(StoreError):
    """Underlying engine error; the unit of work has been rolled back."""
