"""Exception hierarchy for ShieldMatch"""


class ShieldMatchError(Exception):
    """Base class for all ShieldMatch errors"""


class ConfigurationError(ShieldMatchError):
    """Required configuration is missing or invalid.

    Raised at construction time so that a misconfigured process fails fast
    instead of running with insecure defaults.
    """


class PersistenceError(ShieldMatchError):
    """A datastore operation failed"""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class PermissionDeniedError(PersistenceError):
    """The datastore refused the operation for authorization reasons"""


class DuplicateMatchRequestError(PersistenceError):
    """A match request for the same (project, contractor) pair already exists"""
