"""Custom exceptions for the venue CRM automation engine."""


class VenueCRMException(Exception):
    """Base exception for the venue CRM application."""

    pass


class ConfigurationError(VenueCRMException):
    """Raised when runtime configuration is invalid."""

    pass


class NotFoundError(VenueCRMException):
    """Raised when a lead or document is not found."""

    pass


class ConfigMissing(VenueCRMException):
    """Raised by the store when a policy document is absent.

    The policy accessor catches this and falls back to built-in defaults.
    """

    def __init__(self, key: str) -> None:
        super().__init__(f"Config document missing: {key}")
        self.key = key


class StoreUnavailable(VenueCRMException):
    """Raised when the lead/config store fails with a transient I/O error."""

    pass


class InvalidTransition(VenueCRMException):
    """Raised when a stage value is outside the known stage enum."""

    def __init__(self, current: str | None, requested: str | None) -> None:
        super().__init__(f"Transition not allowed: {current} -> {requested}")
        self.current = current
        self.requested = requested


class NoEligibleAssignee(VenueCRMException):
    """Raised when the assignment roster is empty."""

    pass
