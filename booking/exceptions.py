"""Domain errors raised by the booking services.

They subclass ValueError so callers that only know "the booking rules said
no" can keep catching ValueError.
"""


class BookingError(ValueError):
    """A booking rule blocked the requested action."""


class SlotUnavailable(BookingError):
    """The chosen slot was taken (or vanished) before it could be claimed."""

    def __init__(self, message="This slot is no longer available, please pick another."):
        super().__init__(message)


class InvalidTransition(BookingError):
    """The booking's current status does not allow the requested change."""
