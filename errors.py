"""
Service Errors

Every business-rule failure raised by the services is a ServiceError subclass.
The HTTP layer maps ``status_code`` and ``message`` onto the error envelope;
5xx errors are reported with a generic message.
"""


class ConfigurationError(RuntimeError):
    """Raised at startup when required configuration is missing."""


class ServiceError(Exception):
    status_code = 500
    message = "internal server error"

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


# 400
class InvalidInput(ServiceError):
    status_code = 400
    message = "invalid input"


class InvalidQuery(InvalidInput):
    message = "invalid query"


class EmptyCart(InvalidInput):
    message = "cart is empty"


class NoAddresses(InvalidInput):
    message = "no addresses found"


# 401 / 403
class Unauthorized(ServiceError):
    status_code = 401
    message = "not authenticated"


class TokenExpired(Unauthorized):
    message = "token is expired"


class TokenInvalid(Unauthorized):
    message = "the token is invalid"


class Forbidden(ServiceError):
    status_code = 403
    message = "access denied"


# 404
class NotFound(ServiceError):
    status_code = 404
    message = "not found"


class UserNotFound(NotFound):
    message = "user not found"


class ProductNotFound(NotFound):
    message = "product not found"


class ItemNotFound(NotFound):
    message = "item not found in cart"


class AddressNotFound(NotFound):
    message = "address not found"


# 409
class Conflict(ServiceError):
    status_code = 409
    message = "conflict"


class DuplicateInCart(Conflict):
    message = "product already in cart"


class AlreadySold(Conflict):
    message = "product has already been sold"


class DuplicateUser(Conflict):
    message = "user already exists"


# 500
class StoreError(ServiceError):
    message = "database error"


class StoreTimeout(StoreError):
    message = "database timeout"


class PersistError(ServiceError):
    message = "failed to save changes"
