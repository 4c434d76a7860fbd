"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from StockKernelError:

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |
    +-- ItemError
    |   +-- ItemNotFoundError
    |   +-- DuplicateNameError
    |   +-- InsufficientStockError
    |
    +-- ImmutabilityViolationError
    |
    +-- StorageError
        +-- StorageTransientError
        +-- StorageFatalError
        +-- MigrationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                   | When Raised
-------------|------------------------|----------------------------------------
Validation   | VALIDATION_ERROR       | Negative price, empty name, qty <= 0
             | INVALID_QUANTITY       | update_stock with a negative quantity
-------------|------------------------|----------------------------------------
Item         | ITEM_NOT_FOUND         | Operation on an unknown item id
             | DUPLICATE_ITEM_NAME    | add_item with a name already in use
             | INSUFFICIENT_STOCK     | Sale exceeds the available quantity
-------------|------------------------|----------------------------------------
Immutability | IMMUTABILITY_VIOLATION | UPDATE of a persisted transaction row
-------------|------------------------|----------------------------------------
Storage      | STORAGE_TRANSIENT      | Connection-not-ready style failure
             |                        | (retried, never surfaced on success)
             | STORAGE_FATAL          | Retries exhausted / non-transient error
             | MIGRATION_FAILED       | Schema migration failed (aborts init)

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        ledger.record_sale(item_id, 5)
    except InsufficientStockError as e:
        show(f"Only {e.available} left")      # nothing happened, fix input
    except StorageFatalError as e:
        report_outage(e.operation, e.attempts)  # systemic problem

``is_user_correctable()`` answers the "nothing happened" question for the
UI layer without it having to know the taxonomy.
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation exceptions


class ValidationError(StockKernelError):
    """Malformed input rejected before any mutation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


class InvalidQuantityError(ValidationError):
    """Requested stock quantity is not a non-negative integer."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, value: object):
        super().__init__("new_quantity", value, "must be a non-negative integer")


# Item exceptions


class ItemError(StockKernelError):
    """Base exception for item-related business rule failures."""

    code: str = "ITEM_ERROR"


class ItemNotFoundError(ItemError):
    """Item with given id does not exist."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: int):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class DuplicateNameError(ItemError):
    """An item with the same name already exists."""

    code: str = "DUPLICATE_ITEM_NAME"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Item name already exists: {name!r}")


class InsufficientStockError(ItemError):
    """Requested quantity exceeds the stock on hand."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: int, requested: int, available: int):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for item {item_id}: "
            f"requested {requested}, available {available}"
        )


# Immutability exceptions


class ImmutabilityViolationError(StockKernelError):
    """Attempt to modify an append-only ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Storage exceptions


class StorageError(StockKernelError):
    """Base exception for storage-layer failures."""

    code: str = "STORAGE_ERROR"


class StorageTransientError(StorageError):
    """
    Storage handle was not ready (locked, closed, rejected).

    Retried by the StorageGateway; only visible in logs unless every
    attempt fails, in which case a StorageFatalError is raised instead.
    """

    code: str = "STORAGE_TRANSIENT"

    def __init__(self, operation: str, attempt: int, detail: str):
        self.operation = operation
        self.attempt = attempt
        self.detail = detail
        super().__init__(
            f"Transient storage failure in {operation} "
            f"(attempt {attempt}): {detail}"
        )


class StorageFatalError(StorageError):
    """Storage operation failed permanently."""

    code: str = "STORAGE_FATAL"

    def __init__(self, operation: str, attempts: int, detail: str):
        self.operation = operation
        self.attempts = attempts
        self.detail = detail
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): {detail}"
        )


class MigrationError(StorageError):
    """Schema migration failed; initialization is aborted."""

    code: str = "MIGRATION_FAILED"

    def __init__(self, table: str, step: str, detail: str):
        self.table = table
        self.step = step
        self.detail = detail
        super().__init__(
            f"Migration of {table} failed during {step}: {detail}"
        )


_USER_CORRECTABLE = (ValidationError, ItemError)


def is_user_correctable(exc: BaseException) -> bool:
    """True when the failure left no state change and new input may succeed."""
    return isinstance(exc, _USER_CORRECTABLE)
