class BookingError(Exception):
    """Base class for errors raised by the quote and payment core."""
    status_code = 400
    kind = "booking_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Missing or malformed input (instrument fields, trip parameters)."""
    status_code = 422
    kind = "validation_error"


class NotFoundError(BookingError):
    status_code = 404
    kind = "not_found"


class InvalidStateError(BookingError):
    """Operation not allowed in the session's current payment state."""
    status_code = 409
    kind = "invalid_state"


class GatewayError(BookingError):
    """Opaque failure reported by the payment gateway."""
    status_code = 502
    kind = "gateway_error"
