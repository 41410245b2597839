"""Entity Merge - JSON merge-patch of typed, in-memory entities."""

from .exceptions import ConversionError
from .exceptions import EntityMergeError
from .exceptions import EntityNotFoundError
from .exceptions import MergeValidationError
from .exceptions import MetadataError
from .merger import EntityMerger
from .merger import merge
from .patch import apply_merge_patch
from .patch import parse_document
from .protocols import EntityMetadataProviderProtocol
from .reflection import ModelMetadataProvider
from .schema import DiagnosticMessage
from .schema import MergeOptions
from .schema import MergeOutcome
from .schema import MergeResult
from .schema import MessageType
from .schema import PropertyDescriptor

__all__ = [
    # Merging
    "EntityMerger",
    "merge",
    # Patch workflow
    "apply_merge_patch",
    "parse_document",
    # Metadata
    "ModelMetadataProvider",
    "PropertyDescriptor",
    # Schemas
    "MergeResult",
    "MergeOutcome",
    "MergeOptions",
    "DiagnosticMessage",
    "MessageType",
    # Protocols
    "EntityMetadataProviderProtocol",
    # Exceptions
    "EntityMergeError",
    "MetadataError",
    "ConversionError",
    "EntityNotFoundError",
    "MergeValidationError",
]

__version__ = "0.1.0"
