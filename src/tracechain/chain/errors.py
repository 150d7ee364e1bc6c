"""
TraceChain exceptions.

Only OutputWriteFailure is allowed to end a run; every other error is caught
by the stage that raised it and turned into a Diagnostic.
"""


class TraceChainError(Exception):
    """Base class for TraceChain errors."""


class MalformedBody(TraceChainError):
    """A body claims a supported content type but does not parse."""


class LocatorResolutionMismatch(TraceChainError):
    """A locator path does not resolve against its document."""


class CollaboratorFailure(TraceChainError):
    """The naming or locator-resolution collaborator failed or answered badly."""


class OutputWriteFailure(TraceChainError):
    """The assembled collection could not be written."""
