"""
Exception hierarchy for the TB3 core.

Only configuration problems, rejected user input and runtime misuse raise.
Inventory shortfalls, missing maxes and below-bar targets are ordinary
result values.
"""


class TB3Error(Exception):
    """Base class for all TB3 errors."""


class ConfigurationError(TB3Error):
    """A template or lift-slot configuration cannot be resolved."""


class UnknownTemplateError(ConfigurationError, ValueError):
    """Raised when a template id is not in the registry."""


class LiftSelectionError(ConfigurationError, ValueError):
    """Raised when a slot's lift selection violates its definition."""


class DomainValidationError(TB3Error, ValueError):
    """Raised when user input is outside the accepted range."""


class StaleScheduleError(TB3Error):
    """Raised when a session is started from an outdated compiled schedule."""


class SessionStateError(TB3Error):
    """Raised when a runtime operation is not valid in the current state."""
