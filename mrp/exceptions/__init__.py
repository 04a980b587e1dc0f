"""Custom exceptions for the MRP fulfillment service."""


class MrpError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class ValidationError(MrpError):
    """Raised for missing or malformed input. Nothing has been mutated."""
    def __init__(self, message, errors=None):
        payload = {'errors': errors} if errors else None
        super().__init__(message, 400, payload)
        self.errors = errors or {}


class NotFoundError(MrpError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ConflictError(MrpError):
    """Raised when a request conflicts with the current state of a resource."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class InvalidTransitionError(ConflictError):
    """Raised when a status change is not allowed from the current status."""
    def __init__(self, entity, current, requested):
        message = f"Invalid {entity} status transition: {current} -> {requested}"
        super().__init__(message, {'from': current, 'to': requested})
        self.current = current
        self.requested = requested


class DuplicateSerialError(ConflictError):
    """Raised when a serial number already exists anywhere in the system."""
    def __init__(self, serial_number):
        super().__init__(f"Serial number {serial_number} already exists",
                         {'serial_number': serial_number})
        self.serial_number = serial_number


class LedgerInvariantError(ConflictError):
    """Raised when a stock mutation would leave reserved outside [0, on_hand]."""
    def __init__(self, ipn, message):
        super().__init__(f"{ipn}: {message}", {'ipn': ipn})
        self.ipn = ipn


class CircularBOMError(ValidationError):
    """Raised when a multi-level BOM explosion revisits an assembly."""
    def __init__(self, path):
        super().__init__(f"Circular BOM reference: {' -> '.join(path)}")
        self.path = list(path)


class TransactionFailedError(MrpError):
    """Raised when the store fails mid-mutation. The whole operation was rolled back."""
    def __init__(self, message="Transaction failed and was rolled back"):
        super().__init__(message, 500)
