"""Custom exceptions for the Phaestus orchestrator."""


class PhaestusError(Exception):
    """Base exception for Phaestus."""

    pass


class ConfigError(PhaestusError):
    """Configuration-related errors."""

    pass


class LLMError(PhaestusError):
    """The LLM adapter could not produce a response."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class LLMTimeoutError(LLMError):
    """An LLM call exceeded its per-call timeout."""

    def __init__(self, message: str):
        super().__init__(message, retryable=True)


class SnapshotError(PhaestusError):
    """A persisted project snapshot could not be loaded."""

    pass
