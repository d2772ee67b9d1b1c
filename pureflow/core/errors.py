class PureflowError(Exception):
    """Base class for relay errors."""


class ConfigurationError(PureflowError):
    """Required configuration is missing; raised before serving requests."""


class InvalidTokenError(PureflowError, ValueError):
    """Device token is empty or not a string."""


class ProviderError(PureflowError):
    """A delivery provider failed to hand off a notification."""
