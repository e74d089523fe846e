"""Custom exceptions for the marketplace order service."""


class MarketplaceError(Exception):
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


class BusinessLogicError(MarketplaceError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class DiscountValidationError(BusinessLogicError):
    """Raised when a discount definition is malformed."""
    def __init__(self, message, field=None):
        payload = {'field': field} if field else None
        super().__init__(message, status_code=422, payload=payload)
        self.field = field


class DiscountUsageLimitError(BusinessLogicError):
    """Raised when a discount has no remaining uses."""
    def __init__(self, discount_id, usage_limit):
        message = f"Discount {discount_id} reached its usage limit of {usage_limit}"
        super().__init__(message, status_code=409, payload={'discount_id': discount_id})


class NotFoundError(MarketplaceError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)
