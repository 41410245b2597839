"""Entity metadata provider for pydantic models.

Derives the property descriptors the merge engine needs directly from pydantic
``BaseModel`` entity classes:

- The JSON name of a property is its field alias where declared, else the field name
- JSON names are matched case-insensitively
- A field typed as a model (optionally ``None``) is a nested object
- A field typed as a list, a sequence or a homogeneous ``tuple[X, ...]`` of models is a
  complex collection; of anything else, a primitive collection. Tuple fields are
  assigned tuples, every other collection is assigned a list
- A field typed as a ``dict`` or mapping is merged entry by entry, keys and values
  converted to the declared key and value types
- An item model declares its identity key with a ``__unique_key__`` class attribute
  listing JSON property names, in key order

Descriptors and type adapters are computed once per type and cached without bound,
which suits a fixed set of entity classes; models created at runtime stay cached for
the life of the process.
"""

import types
from collections.abc import Iterable
from collections.abc import Mapping
from collections.abc import MutableMapping
from collections.abc import MutableSequence
from collections.abc import Sequence
from functools import lru_cache
from typing import Any
from typing import Union
from typing import get_args
from typing import get_origin

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import TypeAdapter
from pydantic import ValidationError

from .exceptions import ConversionError
from .exceptions import MetadataError
from .schema import PropertyDescriptor

_COLLECTION_ORIGINS = (list, tuple, Sequence, MutableSequence)
_MAPPING_ORIGINS = (dict, Mapping, MutableMapping)


def is_entity_type(value: Any) -> bool:
    """Return True where value is a pydantic model class."""
    return isinstance(value, type) and issubclass(value, BaseModel)


def strip_optional(annotation: Any) -> Any:
    """Strip ``None`` from an ``X | None`` annotation, returning ``X``."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _collection_item_type(declared: Any) -> Any | None:
    """Return the item type of a collection annotation, or None where it is not a collection."""
    if declared in (list, tuple):
        return Any

    origin = get_origin(declared)
    if origin not in _COLLECTION_ORIGINS:
        return None

    args = get_args(declared)
    if origin is tuple:
        # Only homogeneous tuples are collections; tuple[int, str] is a fixed-shape scalar
        if len(args) != 2 or args[1] is not Ellipsis:
            return None
    return args[0] if args else Any


def describe_field(name: str, json_name: str, annotation: Any) -> PropertyDescriptor:
    """Build the descriptor for a single model field from its annotation."""
    declared = strip_optional(annotation)

    if is_entity_type(declared):
        return PropertyDescriptor(
            name=name,
            json_name=json_name,
            property_type=declared,
            is_complex=True,
            item_type=declared,
        )

    if declared is dict or get_origin(declared) in _MAPPING_ORIGINS:
        args = get_args(declared)
        return PropertyDescriptor(
            name=name,
            json_name=json_name,
            property_type=declared,
            is_complex=True,
            is_mapping=True,
            key_type=args[0] if args else Any,
            item_type=args[1] if len(args) > 1 else Any,
        )

    item_type = _collection_item_type(declared)
    if item_type is not None:
        collection_type = tuple if declared is tuple or get_origin(declared) is tuple else list
        entity_item = strip_optional(item_type)
        if is_entity_type(entity_item):
            unique_key = getattr(entity_item, "__unique_key__", None)
            return PropertyDescriptor(
                name=name,
                json_name=json_name,
                property_type=declared,
                is_complex=True,
                is_collection=True,
                is_item_complex=True,
                collection_type=collection_type,
                item_type=entity_item,
                unique_key=tuple(unique_key) if unique_key else None,
            )

        return PropertyDescriptor(
            name=name,
            json_name=json_name,
            property_type=declared,
            is_complex=True,
            is_collection=True,
            collection_type=collection_type,
            item_type=item_type,
        )

    # Scalars keep the full annotation so that None stays assignable where declared
    return PropertyDescriptor(name=name, json_name=json_name, property_type=annotation)


@lru_cache(maxsize=None)
def describe_model(model_type: type[BaseModel]) -> dict[str, PropertyDescriptor]:
    """
    Describe every field of a pydantic model, keyed by lower-cased JSON name.

    Args:
        model_type: Pydantic model class

    Returns:
        Dict of lower-cased JSON name to PropertyDescriptor

    Raises:
        MetadataError: If model_type is not a pydantic model, or two fields share a JSON name
    """
    if not is_entity_type(model_type):
        raise MetadataError(
            f"Type '{getattr(model_type, '__name__', model_type)}' is not a pydantic model and cannot be merged into.",
            {"type": model_type},
        )

    descriptors: dict[str, PropertyDescriptor] = {}
    for name, field in model_type.model_fields.items():
        json_name = field.alias or name
        key = json_name.lower()
        if key in descriptors:
            raise MetadataError(
                f"Type '{model_type.__name__}' declares the JSON property '{json_name}' more than once.",
                {"type": model_type, "property": json_name},
            )
        descriptors[key] = describe_field(name, json_name, field.annotation)

    return descriptors


@lru_cache(maxsize=None)
def _type_adapter(target_type: Any) -> TypeAdapter:
    # Models carry their own config and reject an override
    if is_entity_type(target_type):
        return TypeAdapter(target_type)
    return TypeAdapter(target_type, config=ConfigDict(coerce_numbers_to_str=True))


class ModelMetadataProvider:
    """Entity metadata provider backed by pydantic model introspection."""

    def resolve_property(self, entity_type: type, json_name: str) -> PropertyDescriptor | None:
        """
        Resolve a JSON property name (case-insensitive) to its descriptor.

        Args:
            entity_type: Pydantic model class
            json_name: Property name as found in the JSON document

        Returns:
            PropertyDescriptor, or None where the model has no such property

        Raises:
            MetadataError: If entity_type is not a pydantic model
        """
        return describe_model(entity_type).get(json_name.lower())

    def create_default_instance(self, entity_type: type) -> Any:
        """
        Create a blank instance without validation, so required fields do not block creation.

        Raises:
            MetadataError: If entity_type is not a pydantic model
        """
        if not is_entity_type(entity_type):
            raise MetadataError(
                f"Type '{getattr(entity_type, '__name__', entity_type)}' is not a pydantic model and cannot be "
                "created.",
                {"type": entity_type},
            )
        return entity_type.model_construct()

    def coerce_scalar(self, value: Any, target_type: Any) -> Any:
        """
        Convert a JSON scalar to target_type using pydantic lax-mode validation.

        Numbers are accepted for strings; numeric strings for numbers; ISO strings
        for dates, times and UUIDs.

        Raises:
            ConversionError: If the value cannot be converted
        """
        try:
            return _type_adapter(target_type).validate_python(value)
        except ValidationError as e:
            errors = e.errors()
            reason = errors[0]["msg"] if errors else str(e)
            raise ConversionError(f"{reason}.", {"value": value, "type": target_type}) from e

    def sequence_equals(self, left: Iterable[Any] | None, right: Iterable[Any] | None) -> bool:
        """Compare two collections element by element; None only equals None."""
        if left is None or right is None:
            return left is None and right is None
        return list(left) == list(right)

    def get_property(self, instance: Any, name: str) -> Any:
        return getattr(instance, name, None)

    def set_property(self, instance: Any, name: str, value: Any) -> bool:
        """Assign the attribute, returning True where the value differed."""
        current = getattr(instance, name, None)
        if current is value or (current == value and type(current) is type(value)):
            return False
        setattr(instance, name, value)
        return True

    def copy_values(self, source: Any, target: Any) -> None:
        """
        Copy every field value of source onto target, an instance of the same model.

        Nested models present on both sides are copied into recursively, so that the
        nested instances held by target keep their identity.
        """
        for name in type(target).model_fields:
            value = getattr(source, name, None)
            current = getattr(target, name, None)
            if current is not value and is_entity_type(type(value)) and type(current) is type(value):
                self.copy_values(value, current)
            else:
                setattr(target, name, value)
