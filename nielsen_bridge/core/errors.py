"""
Nielsen Bridge — Error Conditions

Each failure the bridge can signal has its own type so callers can tell
which field, limit or collaborator failed without parsing messages.
"""

from __future__ import annotations


class NielsenError(Exception):
    """Base class for every condition raised by the bridge."""


class MissingFieldError(NielsenError, ValueError):
    """A required metadata field is absent (None or never set)."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Failed to build Nielsen metadata: Missing required field '{field}'.")


class MetadataSizeError(NielsenError, ValueError):
    """Metadata stays above the byte ceiling after every optional field is trimmed."""

    def __init__(self, limit: int, size: int) -> None:
        self.limit = limit
        self.size = size
        super().__init__(
            f"Failed to build metadata: Required fields exceed {limit} bytes ({size} bytes)"
        )


class TransportNotReadyError(NielsenError, RuntimeError):
    """The tracking transport was read before the SDK bootstrap succeeded."""


class PlayerNotAttachedError(NielsenError, RuntimeError):
    """The player was read before `attach_to` bound one."""


class SdkLoadError(NielsenError, RuntimeError):
    """The Nielsen SDK could not be loaded or did not become ready in time."""
