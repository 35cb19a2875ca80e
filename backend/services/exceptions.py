"""Custom exceptions for the ride services.

Every error a caller can act on derives from ``RideServiceError`` and carries
a machine readable ``code`` plus the HTTP status the API layer answers with.
"""


class RideServiceError(Exception):
    """Base class for ride service errors."""
    code = "ride_error"
    status_code = 400

    def __init__(self, message="", code=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


# ---- ValidationError family: fix the input and try again ----

class RideValidationError(RideServiceError):
    """Raised for malformed or missing input (locations, service tier, booking meta)."""
    code = "validation_error"
    status_code = 400


class InvalidOtpError(RideValidationError):
    """Raised when a start/stop OTP does not match."""
    code = "invalid_otp"


# ---- ConflictError family: another actor got there first ----

class RideConflictError(RideServiceError):
    """Raised when the operation conflicts with concurrent or existing state."""
    code = "conflict"
    status_code = 409


class ActiveRideExistsError(RideConflictError):
    """Raised when the rider already has an active ride."""
    code = "active_ride_exists"


class RideLockHeldError(RideConflictError):
    """Raised when another request holds the lock for the same resource."""
    code = "lock_held"


class RideAlreadyAssignedError(RideConflictError):
    """Raised when another driver already holds the ride."""
    code = "ride_already_assigned"


class RideNotAvailableError(RideConflictError):
    """Raised when a ride is no longer waiting for a driver."""
    code = "ride_not_available"


class DriverNotAvailableError(RideConflictError):
    """Raised when the driver cannot take the ride (overlapping booking, offline)."""
    code = "driver_not_available"


# ---- NotFoundError family ----

class RideNotFoundError(RideServiceError):
    """Raised when a ride cannot be found."""
    code = "ride_not_found"
    status_code = 404


class DriverNotFoundError(RideServiceError):
    """Raised when a driver profile cannot be found."""
    code = "driver_not_found"
    status_code = 404


# ---- StateError: can never succeed for this ride ----

class InvalidRideStateError(RideServiceError):
    """Raised when the operation is invalid for the ride's current status."""
    code = "invalid_ride_state"
    status_code = 409


# ---- ExternalServiceError family ----

class ExternalServiceError(RideServiceError):
    """Raised when a collaborator (pricing, payment gateway) is unreachable."""
    code = "external_service_error"
    status_code = 503


class PricingUnavailableError(ExternalServiceError):
    """Raised when no pricing configuration can be read."""
    code = "pricing_unavailable"


class PaymentGatewayError(ExternalServiceError):
    """Raised when the payment gateway rejects or fails a call."""
    code = "payment_gateway_error"
    status_code = 502


class EarningsConsistencyWarning(UserWarning):
    """Emitted when an earnings split had to be corrected to sum to the fare."""
    pass
