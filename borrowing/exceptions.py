class LifecycleError(Exception):
    """Base for every user-facing failure raised by the borrowing services."""

    code = 'lifecycle_error'
    status = 400

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}


class ValidationError(LifecycleError):
    """Bad input shape or range."""
    code = 'validation_error'
    status = 422


class NotFoundError(LifecycleError):
    code = 'not_found'
    status = 404


class InvalidStateError(LifecycleError):
    """The operation is not legal in the record's current lifecycle state."""
    code = 'invalid_state'
    status = 409


class InsufficientStockError(LifecycleError):
    code = 'insufficient_stock'
    status = 409
