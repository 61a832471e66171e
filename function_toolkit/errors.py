from __future__ import annotations


class FunctionToolkitError(Exception):
    """Base class for errors raised by the function context."""


class BodyReadError(FunctionToolkitError):
    """The request body could not be read in full."""


class BodyDecodeError(FunctionToolkitError, ValueError):
    """The request body is not valid JSON for the requested shape."""


class UnrecoverableResponseError(FunctionToolkitError):
    """
    The response could not be serialized or sent to the client.

    Handlers should let this propagate; the host turns it into a 500 when nothing
    was written yet, or drops the connection otherwise.
    """


class RequestCancelledError(FunctionToolkitError):
    """The request was cancelled or its deadline has passed."""
