"""Exceptions raised by the quota stores."""


class QuotaStoreError(Exception):
    """Base class for every error raised by a store"""


class StoppedError(QuotaStoreError):
    """Raised by every operation once the store has been closed.

    Terminal for the store instance, retrying will not help.
    """

    def __init__(self, message: str = "store is stopped"):
        super().__init__(message)


class ConnectionUnavailableError(QuotaStoreError):
    """The connection pool could not supply a usable Redis connection"""


class ProcedureExecutionError(QuotaStoreError):
    """Redis rejected the token bucket script or an administrative command"""


class MalformedResponseError(QuotaStoreError):
    """
    Redis answered with a reply of the wrong shape.

    This means the script loaded on the server does not match this client,
    which is a configuration problem and never transient.
    """

    def __init__(self, expected: int, reply):
        self.expected = expected
        self.reply = reply
        super().__init__(f"response has less than {expected} values: {reply!r}")
