"""
Error taxonomy for the order engine.

Every error carries an HTTP status code and a short machine-readable code so
the API layer can render it without knowing the individual classes. Extra
context (for example the offending drug id) travels in ``extra``.
"""
from typing import Any, Dict, Optional


class OrderEngineError(Exception):
    """Base class for all errors raised by the order engine."""
    status_code = 500
    code = "order_engine_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for an API response body."""
        return {"detail": self.message, "error": self.code, **self.extra}


# --- 400: rejected before any write -------------------------------------------

class ValidationError(OrderEngineError):
    """Malformed or missing input."""
    status_code = 400
    code = "validation_error"


class InvalidItemsList(ValidationError):
    code = "invalid_items_list"


class InvalidTransactionType(ValidationError):
    code = "invalid_transaction_type"

    def __init__(self, transaction_type: Any):
        super().__init__(
            f"Unsupported transaction type: {transaction_type!r}",
            transaction_type=transaction_type,
        )


class MissingManufacturerFields(ValidationError):
    code = "missing_manufacturer_fields"


class RecipientNotAnInstitute(ValidationError):
    code = "recipient_not_an_institute"

    def __init__(self, recipient_id: Optional[int]):
        super().__init__("Recipient must be a valid institute", recipient_id=recipient_id)


# --- 404 ----------------------------------------------------------------------

class NotFoundError(OrderEngineError):
    """Referenced entity does not exist or is not visible to the caller."""
    status_code = 404
    code = "not_found"


class OrderNotFound(NotFoundError):
    code = "order_not_found"

    def __init__(self, order_id: int):
        super().__init__("Order not found", order_id=order_id)


class ItemNotFound(NotFoundError):
    code = "item_not_found"

    def __init__(self, item_id: int):
        super().__init__("Order item not found", item_id=item_id)


class DrugNotFound(NotFoundError):
    code = "drug_not_found"

    def __init__(self, drug_id: int, message: Optional[str] = None):
        super().__init__(message or f"Drug with ID {drug_id} not found", drug_id=drug_id)


# --- 409: the state of the system does not allow the operation ----------------

class ConflictError(OrderEngineError):
    status_code = 409
    code = "conflict"


class IllegalTransition(ConflictError):
    code = "illegal_transition"

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Invalid status transition: {current} -> {target}",
            current_status=current,
            target_status=target,
        )


class IllegalEdit(ConflictError):
    code = "illegal_edit"

    def __init__(self, status: str):
        super().__init__(
            f"Quantity can only be edited while the item is pending (current status: {status})",
            current_status=status,
        )


class InsufficientStock(ConflictError):
    code = "insufficient_stock"

    def __init__(self, drug_id: int, requested: int, available: Optional[int] = None):
        message = f"Insufficient stock for drug {drug_id}. Requested: {requested}"
        if available is not None:
            message += f", Available: {available}"
        super().__init__(message, drug_id=drug_id, requested=requested, available=available)


# --- 403 ----------------------------------------------------------------------

class AuthorizationError(OrderEngineError):
    status_code = 403
    code = "forbidden"


# --- 500 ----------------------------------------------------------------------

class StorageError(OrderEngineError):
    """A database transaction failed and was rolled back."""
    status_code = 500
    code = "storage_error"
