"""Exception types shared across the agent core."""

from __future__ import annotations


class WardenError(Exception):
    """Base class for errors raised by warden."""


class ConfirmationNotFoundError(WardenError, LookupError):
    """Raised when resolving a confirmation request id the bus never issued."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Unknown confirmation request: {request_id}")
        self.request_id = request_id


class ToolValidationError(WardenError, ValueError):
    """Raised by ``DeclarativeTool.build`` when parameters fail validation."""


class BrowserUnavailableError(WardenError):
    """Raised when the browser cannot be provided because a dependency is missing."""


class ModelBuildError(WardenError):
    """Raised when a model client cannot be built from configuration."""
