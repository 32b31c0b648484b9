"""Exceptions raised by the permission arbiter."""


class ArbiterError(Exception):
    """Base class for arbiter errors."""


class MalformedRequestError(ArbiterError, ValueError):
    """Raised when a runtime callback payload cannot be turned into a request."""

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Malformed {kind} request: {reason}")
