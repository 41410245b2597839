"""Protocols for the entity metadata dependency of the merge engine."""

from collections.abc import Iterable
from typing import Any
from typing import Protocol

from .schema import PropertyDescriptor


class EntityMetadataProviderProtocol(Protocol):
    """Protocol for the entity metadata provider queried by the merge engine.

    This allows entity-merge to merge into any entity model without knowing how
    property mappings, complex types and identity keys are discovered.

    Example implementations:
        - ModelMetadataProvider for pydantic models (bundled)
        - Code-generated providers for hand-written entity classes
        - Mock implementation for testing
    """

    def resolve_property(self, entity_type: type, json_name: str) -> PropertyDescriptor | None:
        """Resolve a JSON property name (case-insensitive) to its descriptor.

        Args:
            entity_type: Entity class being merged into
            json_name: Property name as found in the JSON document

        Returns:
            PropertyDescriptor, or None where the entity has no such property

        Raises:
            MetadataError: If the entity type's metadata is misconfigured
        """
        ...

    def create_default_instance(self, entity_type: type) -> Any:
        """Create a new blank instance of an entity (or collection item) type."""
        ...

    def coerce_scalar(self, value: Any, target_type: Any) -> Any:
        """Convert a JSON scalar to the target type.

        Raises:
            ConversionError: If the value cannot be converted
        """
        ...

    def sequence_equals(self, left: Iterable[Any] | None, right: Iterable[Any] | None) -> bool:
        """Compare two collections element by element (order-sensitive)."""
        ...

    def get_property(self, instance: Any, name: str) -> Any:
        """Get the current value of the named attribute."""
        ...

    def set_property(self, instance: Any, name: str, value: Any) -> bool:
        """Set the named attribute, returning True where the value changed."""
        ...

    def copy_values(self, source: Any, target: Any) -> None:
        """Copy every property value of source onto target (same type), in place."""
        ...
