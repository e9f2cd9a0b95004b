"""Exception hierarchy for the bandarmology engine."""


class BandarmologyError(Exception):
    """Base class for all engine errors."""


class InvalidInputError(BandarmologyError, ValueError):
    """Raised when collaborator rows violate the input contract."""

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = errors or []


class ConfigurationError(BandarmologyError):
    """Raised when an EngineConfig is internally inconsistent."""


class UnknownPolicyError(BandarmologyError, KeyError):
    """Raised when a scoring policy name is not registered."""

    def __str__(self):
        return str(self.args[0]) if self.args else "Unknown scoring policy"
