"""
Error taxonomy for NetLens.

Line-level problems never raise; they are logged into the record's
parse-error list. The exceptions here cover what a caller must react to:
an exhausted arbitration, an unknown engine, a bad configuration file and
a cooperative cancellation request.
"""

from typing import Optional, Protocol


class CancelSignal(Protocol):
    """Anything with an ``is_set()`` method, e.g. ``threading.Event``."""

    def is_set(self) -> bool: ...


class NetLensError(Exception):
    """Base class for all NetLens errors."""


class NoUsableParserError(NetLensError):
    """No registered engine produced a usable record for a file."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        message = f"Could not determine log format for {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class EngineNotRegisteredError(NetLensError):
    """An explicit vendor was requested but no engine is registered for it."""

    def __init__(self, vendor):
        self.vendor = vendor
        name = getattr(vendor, "value", vendor)
        super().__init__(f"Parser for {name} is not available")


class ParseCancelled(NetLensError):
    """A cooperative stop request interrupted parsing."""


class ConfigError(NetLensError):
    """Invalid settings file or environment override."""


def raise_if_cancelled(cancel: Optional[CancelSignal]) -> None:
    if cancel is not None and cancel.is_set():
        raise ParseCancelled("parsing cancelled")
