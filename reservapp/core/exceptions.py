class ReservAppException(Exception):
    """Base exception for the reservation API"""

    pass


class UnauthorizedException(ReservAppException):
    """Raised when the caller cannot be authenticated"""

    pass


class MissingTokenError(UnauthorizedException):
    """Authorization header absent or not a Bearer credential"""

    pass


class InvalidTokenError(UnauthorizedException):
    """Token signature or encoding is invalid"""

    pass


class ExpiredTokenError(UnauthorizedException):
    """Token expiry is in the past"""

    pass


class MalformedClaimError(UnauthorizedException):
    """Token decoded but a required claim is missing"""

    pass


class ForbiddenException(ReservAppException):
    """Raised when the caller's role lacks a permission"""

    pass


class NotFoundException(ReservAppException):
    """Raised when resource not found"""

    pass


class PaymentNotFoundError(NotFoundException):
    pass


class ReservationNotFoundError(NotFoundException):
    pass


class ValidationException(ReservAppException):
    """Raised for business logic validation errors"""

    pass


class InvalidPaymentStateError(ValidationException):
    """Payment is not in a state that allows the requested operation"""

    pass


class ConflictException(ReservAppException):
    """Raised on duplicates and concurrent modification"""

    pass


class PaymentGatewayException(ReservAppException):
    """Raised when a call to the payment gateway fails"""

    pass
