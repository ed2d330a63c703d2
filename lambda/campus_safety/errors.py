class OracleError(Exception):
    """Base class for failures talking to the language model."""


class TransientOracleError(OracleError):
    """Rate limited or over quota. Safe to retry after a delay."""

    status = 429


class TerminalOracleError(OracleError):
    """Any other transport, auth or service failure. Not retried."""


class MalformedResponseError(OracleError):
    """The model answered, but not in the expected shape."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw
