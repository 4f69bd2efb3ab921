"""
Errors raised by the snapshot rotation engine.

Fatal errors abort the pipeline of the instance they belong to; sibling
instances and sibling events keep running. ``CopyQuotaExceeded`` is the one
AWS failure that is not fatal: the copy is skipped for this run.
"""


class RotationError(Exception):
    """Base class for rotation errors."""

    def __init__(self, message, instance_id=None, code=None):
        super().__init__(message)
        self.message = message
        self.instance_id = instance_id
        self.code = code

    def __str__(self):
        details = self.message
        if self.code:
            details = f"{details} ({self.code})"
        if self.instance_id:
            details = f"[{self.instance_id}] {details}"
        return details


class ConfigurationError(RotationError, ValueError):
    """A required setting is missing or invalid."""


class CatalogUnavailable(RotationError):
    """Listing database instances failed, possibly part way through pagination."""


class InventoryUnavailable(RotationError):
    """Listing snapshots for an instance failed."""


class ProbeError(RotationError):
    """The destination existence probe failed with something other than "not found"."""


class CopyError(RotationError):
    """The cross-region copy request failed."""


class CopyQuotaExceeded(CopyError):
    """The destination region has no snapshot quota left. The copy is skipped."""


class DeleteError(RotationError):
    """Deleting an expired destination snapshot failed."""


class UnexpectedEventShape(RotationError):
    """A trigger record matched none of the known shapes."""


class MalformedEventPayload(RotationError):
    """A recognised trigger record carried a payload that could not be read."""


class RotationFailed(RotationError):
    """At least one event or instance pipeline failed during the invocation."""

    def __init__(self, message, failures=None):
        super().__init__(message)
        self.failures = list(failures or [])
