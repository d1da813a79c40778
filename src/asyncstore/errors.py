"""Errors raised by asyncstore."""


class CancellationSignal(Exception):
    """A newer call superseded this one.

    Raised into the pending result of a rebounced call when it is replaced
    or aborted, and when the task running it is cancelled. Stores treat it
    as "wait for the newer result", never as a failure: it is not logged and
    does not move a store to ERROR.
    """

    def __init__(self, message: str = "The function was rebounced.") -> None:
        super().__init__(message)
