"""Custom exceptions for the POS application."""


class PosError(Exception):
    """Base exception for all application errors."""
    kind = 'INTERNAL_ERROR'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['error'] = self.kind
        rv['status'] = 'error'
        return rv


class ValidationError(PosError):
    """Rejected input: empty cart, bad quantity, price or discount."""
    kind = 'VALIDATION_ERROR'

    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)


class InsufficientPayment(PosError):
    """Raised when the tendered amount does not cover the order total."""
    kind = 'INSUFFICIENT_PAYMENT'

    def __init__(self, amount_paid, total):
        self.amount_paid = amount_paid
        self.total = total
        message = f"Insufficient payment: paid {amount_paid}, total is {total}"
        super().__init__(message, 400, {
            'amountPaid': str(amount_paid),
            'totalAmount': str(total),
        })


class InsufficientStock(PosError):
    """Raised when one or more lines would drive a product's stock below zero."""
    kind = 'INSUFFICIENT_STOCK'

    def __init__(self, shortages):
        # shortages: list of dicts with productId, sku, requested, available
        self.shortages = list(shortages)
        names = ', '.join(s.get('sku') or str(s['productId']) for s in self.shortages)
        super().__init__(f"Insufficient stock for: {names}", 400, {'products': self.shortages})


class NotFoundError(PosError):
    """Exception raised when a resource is not found."""
    kind = 'NOT_FOUND'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class UnauthorizedError(PosError):
    """Raised when no authenticated operator is attached to the request."""
    kind = 'UNAUTHORIZED'

    def __init__(self, message="Unauthorized"):
        super().__init__(message, 401)


class ForbiddenError(PosError):
    """Raised when a user lacks permission for an action."""
    kind = 'FORBIDDEN'

    def __init__(self, message="Forbidden"):
        super().__init__(message, 403)


class ConflictError(PosError):
    """Raised on duplicate unique values (SKU, email, member code)."""
    kind = 'CONFLICT'

    def __init__(self, message):
        super().__init__(message, 409)


class PersistenceFailure(PosError):
    """Storage failure; details are logged, never shown to the caller."""
    kind = 'PERSISTENCE_FAILURE'

    def __init__(self, message="Internal server error"):
        super().__init__(message, 500)
