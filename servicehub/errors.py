"""Errors raised by the booking and gamification core.

Each error carries a human-readable message and the HTTP status the API layer
should answer with.
"""


class ServiceHubError(Exception):
    status_code = 400
    default_message = "Operation rejected"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(ServiceHubError):
    status_code = 404
    default_message = "Resource not found"


class Unauthorized(ServiceHubError):
    status_code = 403
    default_message = "Not authorized"


class InvalidTransition(ServiceHubError):
    status_code = 409
    default_message = "Invalid booking status transition"


class SlotUnavailable(ServiceHubError):
    status_code = 409
    default_message = "The selected time slot is not available"


class RewardUnavailable(ServiceHubError):
    status_code = 404
    default_message = "Reward not available"


class OutOfStock(ServiceHubError):
    status_code = 409
    default_message = "Reward out of stock"


class InsufficientPoints(ServiceHubError):
    status_code = 400
    default_message = "Insufficient points"
