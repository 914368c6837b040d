"""
Uplink Monitor error taxonomy.
"""


class UplinkError(Exception):
    """Base class for errors raised by the monitoring core."""


class ProviderError(UplinkError):
    """One external identity lookup failed."""

    def __init__(self, provider: str, cause):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider}: {cause}")


class SubFetchError(UplinkError):
    """One metric source failed after exhausting its retries."""

    def __init__(self, name: str, cause: BaseException):
        self.name = name
        self.cause = cause
        super().__init__(f"{name} failed: {cause}")


class PersistenceError(UplinkError):
    """A storage read or write failed."""


class FatalInitError(UplinkError):
    """The store could not be opened or its schema created."""
