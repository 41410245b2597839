"""Exception definitions for entity-merge."""

from typing import Any


class EntityMergeError(Exception):
    """Base exception for entity merge errors."""

    def __init__(self, message: str, context: dict | None = None):
        """Initialize merge error with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dict with error context (types, properties, paths, etc.)
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}


class MetadataError(EntityMergeError):
    """Raised when entity metadata is misconfigured (e.g. unique key names a missing property)."""

    pass


class ConversionError(EntityMergeError):
    """Raised when a JSON scalar cannot be converted to a property's declared type."""

    pass


class EntityNotFoundError(EntityMergeError):
    """Raised when the entity to be patched cannot be found."""

    pass


class MergeValidationError(EntityMergeError):
    """Raised when a merge-patch fails; carries the diagnostic messages for the client."""

    def __init__(self, message: str, messages: list[Any] | None = None, context: dict | None = None):
        """Initialize validation error with the diagnostics that caused it.

        Args:
            message: Human-readable error message
            messages: DiagnosticMessage items collected during the merge
            context: Optional dict with error context
        """
        super().__init__(message, context)
        self.messages = list(messages or [])
