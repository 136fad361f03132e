"""Exception types raised inside the memory lifecycle engine.

Public service operations never surface these: model and embedding failures
are caught where the call is made and replaced by the rule-engine result.
"""


class MemoryLifecycleError(Exception):
    """Base exception for the engine."""


class ConfigurationError(MemoryLifecycleError):
    """Raised when configuration values are missing or out of range."""

    def __init__(self, message: str, key: str = ""):
        super().__init__(message)
        self.key = key


class ReplyParseError(MemoryLifecycleError):
    """Raised when a structured model reply cannot be interpreted."""

    def __init__(self, message: str, reply: str = ""):
        super().__init__(message)
        self.reply = reply
