"""Exceptions raised by the notification services."""


class NotificationError(Exception):
    """Base exception for notification service errors."""

    pass


class MissingAppointmentId(NotificationError, ValueError):
    """An appointment-bound intent was enqueued without an appointment id."""

    pass


class AppointmentNotFound(NotificationError):
    """Appointment does not exist or is already cancelled."""

    pass


class AppointmentAlreadyPickedUp(NotificationError):
    """Appointment was already picked up and cannot be cancelled."""

    pass


class AppointmentInPast(NotificationError):
    """Appointment pickup window has already ended."""

    pass


class InvalidResendRequest(NotificationError):
    """Manual resend was rejected (wrong intent or too close to pickup)."""

    pass


class SmsConfigurationError(NotificationError):
    """SMS transport is not properly configured."""

    pass
