"""Entity merge-patch engine.

This module merges a partial JSON document into an existing, typed, in-memory
entity (RFC 7386 style), reporting whether anything changed rather than
replacing the whole value.

Key principles:
- Scalars are converted to the declared type and assigned; change is detected per value
- Nested objects are merged recursively, created where currently None
- Primitive arrays replace the collection only where the sequence differs
- Entity arrays without a unique key are always fully replaced
- Entity arrays with a unique key are reconciled item by item: matched items are
  merged in place, unmatched items are created, and items missing from the array are dropped
- Mappings merge a JSON object entry by entry; a JSON array of objects replaces them

Errors never raise (except for metadata misconfiguration); they are reported as
diagnostic messages and an ERROR result. Two abort behaviors coexist deliberately:
a malformed or unconvertible scalar fails the enclosing object before any of its
properties are applied, whereas unknown properties and nested/collection errors are
recorded and the remaining properties are still merged.
"""

import copy
import logging
from typing import Any

from .exceptions import ConversionError
from .exceptions import MetadataError
from .protocols import EntityMetadataProviderProtocol
from .reflection import ModelMetadataProvider
from .schema import DiagnosticMessage
from .schema import MergeOptions
from .schema import MergeOutcome
from .schema import MergeResult
from .schema import MessageType
from .schema import PropertyDescriptor

logger = logging.getLogger(__name__)

DOCUMENT_MALFORMED = "The JSON document is malformed and could not be parsed."
PATH_NOT_VALID = "The JSON path is not valid for the entity."
TOKEN_MALFORMED = "The JSON token is malformed and could not be parsed."
TOKEN_MALFORMED_REASON = "The JSON token is malformed: {reason}"
KEYED_ITEM_NOT_OBJECT = "The JSON token must be an object where Unique Key value(s) are required."
KEYED_ITEM_MISSING_KEY = "The JSON object must specify the '{name}' token as required for the unique key."


def _property_path(path: str | None, name: str) -> str:
    return name if not path else f"{path}.{name}"


def _item_path(path: str, index: int) -> str:
    return f"{path}[{index}]"


class _MergeRun:
    """State for a single merge call: the provider, the options and the messages raised."""

    def __init__(self, provider: EntityMetadataProviderProtocol, options: MergeOptions):
        self.provider = provider
        self.options = options
        self.messages: list[DiagnosticMessage] = []

    def log(self, path: str | None, message_type: MessageType, text: str) -> MergeResult:
        """Publish a diagnostic and return the result it implies (ERROR or UNCHANGED)."""
        message = self.options.log(DiagnosticMessage(path=path, type=message_type, text=text))
        self.messages.append(message)

        if message.is_error:
            logger.info("Merge error at '%s': %s", path or "", text)
            return MergeResult.ERROR

        logger.debug("Merge warning at '%s': %s", path or "", text)
        return MergeResult.UNCHANGED

    def error(self, path: str | None, text: str) -> MergeResult:
        return self.log(path, MessageType.ERROR, text)

    def merge_object(self, document: dict[str, Any], entity: Any, path: str | None) -> MergeResult:
        """
        Merge each property of a JSON object into the entity, in document order.

        Args:
            document: JSON object (already known to be a dict)
            entity: Entity instance to merge into (mutated in place)
            path: JSON path of the object; None for the document root

        Returns:
            ERROR if any property failed, else CHANGED if any property changed, else UNCHANGED
        """
        entity_type = type(entity)

        # Resolve and convert every scalar first; a bad scalar aborts before anything in this object is applied
        plan: list[tuple[str, PropertyDescriptor | None, Any]] = []
        for name, value in document.items():
            prop_path = _property_path(path, name)
            descriptor = self.provider.resolve_property(entity_type, name)
            if descriptor is not None and not descriptor.is_complex:
                if isinstance(value, (dict, list)):
                    return self.error(prop_path, TOKEN_MALFORMED)

                try:
                    value = self.provider.coerce_scalar(value, descriptor.property_type)
                except ConversionError as e:
                    return self.error(prop_path, TOKEN_MALFORMED_REASON.format(reason=e.message))

            plan.append((prop_path, descriptor, value))

        result = MergeResult.UNCHANGED
        for prop_path, descriptor, value in plan:
            if descriptor is None:
                result = result.combine(self.log(prop_path, MessageType.WARNING, PATH_NOT_VALID))
            elif not descriptor.is_complex:
                if self.provider.set_property(entity, descriptor.name, value):
                    result = result.combine(MergeResult.CHANGED)
            else:
                result = result.combine(self.merge_complex(descriptor, value, entity, prop_path))

        return result

    def merge_complex(self, descriptor: PropertyDescriptor, value: Any, entity: Any, path: str) -> MergeResult:
        """Merge a nested object or collection property."""
        if value is None:
            changed = self.provider.set_property(entity, descriptor.name, None)
            return MergeResult.CHANGED if changed else MergeResult.UNCHANGED

        if descriptor.is_mapping:
            return self.merge_mapping(descriptor, value, entity, path)

        if not descriptor.is_collection:
            if not isinstance(value, dict):
                return self.error(path, TOKEN_MALFORMED)

            created = False
            current = self.provider.get_property(entity, descriptor.name)
            if current is None:
                created = True
                current = self.provider.create_default_instance(descriptor.item_type)
                self.provider.set_property(entity, descriptor.name, current)

            result = self.merge_object(value, current, path)
            if created and result == MergeResult.UNCHANGED:
                return MergeResult.CHANGED
            return result

        if not isinstance(value, list):
            return self.error(path, TOKEN_MALFORMED)

        if not value:
            return self.update_collection(descriptor, entity, [])

        if not descriptor.is_item_complex:
            return self.merge_primitive_items(descriptor, value, entity, path)

        if descriptor.has_unique_key:
            return self.merge_keyed_items(descriptor, value, entity, path)

        return self.merge_replace_items(descriptor, value, entity, path)

    def update_collection(self, descriptor: PropertyDescriptor, entity: Any, items: list[Any]) -> MergeResult:
        """Replace the collection where the new items differ (order-sensitive)."""
        items = descriptor.collection_type(items)
        current = self.provider.get_property(entity, descriptor.name)
        if self.provider.sequence_equals(current, items):
            return MergeResult.UNCHANGED

        self.provider.set_property(entity, descriptor.name, items)
        return MergeResult.CHANGED

    def merge_primitive_items(
        self, descriptor: PropertyDescriptor, values: list[Any], entity: Any, path: str
    ) -> MergeResult:
        """Convert every element to the item type and compare the whole sequence."""
        has_error = False
        items = []
        for index, value in enumerate(values):
            if isinstance(value, (dict, list)):
                has_error = True
                self.error(_item_path(path, index), TOKEN_MALFORMED)
                continue

            try:
                items.append(self.provider.coerce_scalar(value, descriptor.item_type))
            except ConversionError as e:
                has_error = True
                self.error(_item_path(path, index), TOKEN_MALFORMED_REASON.format(reason=e.message))

        if has_error:
            return MergeResult.ERROR

        return self.update_collection(descriptor, entity, items)

    def merge_replace_items(
        self, descriptor: PropertyDescriptor, values: list[Any], entity: Any, path: str
    ) -> MergeResult:
        """
        Replace an entity collection that has no unique key.

        Without a key there is no way to match existing items, so every element is
        merged into a new item and the property is always reported as changed.
        """
        has_error = False
        items: list[Any] = []
        for index, value in enumerate(values):
            if value is None:
                items.append(None)
                continue

            item_path = _item_path(path, index)
            if not isinstance(value, dict):
                has_error = True
                self.error(item_path, TOKEN_MALFORMED)
                continue

            item = self.provider.create_default_instance(descriptor.item_type)
            if self.merge_object(value, item, item_path) == MergeResult.ERROR:
                has_error = True
            else:
                items.append(item)

        if has_error:
            return MergeResult.ERROR

        self.provider.set_property(entity, descriptor.name, descriptor.collection_type(items))
        return MergeResult.CHANGED

    def merge_keyed_items(
        self, descriptor: PropertyDescriptor, values: list[Any], entity: Any, path: str
    ) -> MergeResult:
        """
        Reconcile an entity collection using the item type's unique key.

        Each element is matched to an existing item by key and merged into it in place,
        or merged into a new item where there is no match; matched items keep their
        identity. Existing items absent from the array are dropped; that is detected by
        the processed count differing from the current count. Where any element fails,
        every matched item is restored from the snapshot taken before it was merged and
        the collection is left as it was.
        """
        key_properties = self.resolve_unique_key(descriptor)
        current = self.provider.get_property(entity, descriptor.name)
        current_items = [item for item in (current or []) if item is not None]

        has_error = False
        has_changes = current is None
        count = 0
        items: list[Any] = []
        snapshots: list[tuple[Any, Any]] = []

        for index, value in enumerate(values):
            item_path = _item_path(path, index)
            if not isinstance(value, dict):
                has_error = True
                self.error(item_path, KEYED_ITEM_NOT_OBJECT)
                continue

            key = self.extract_unique_key(key_properties, value, item_path)
            if key is None:
                has_error = True
                continue

            item = self.find_by_unique_key(key_properties, current_items, key)
            if item is None:
                has_changes = True
                item = self.provider.create_default_instance(descriptor.item_type)
            else:
                snapshots.append((item, copy.deepcopy(item)))

            count += 1
            result = self.merge_object(value, item, item_path)
            if result == MergeResult.ERROR:
                has_error = True
                continue

            if result == MergeResult.CHANGED:
                has_changes = True
            items.append(item)

        if has_error:
            # Newest first, so an item matched twice ends at its original state
            for item, snapshot in reversed(snapshots):
                self.provider.copy_values(snapshot, item)
            return MergeResult.ERROR

        # Nothing changed and every existing item was referenced: nothing was deleted either
        if not has_changes and count == len(current_items):
            return MergeResult.UNCHANGED

        self.provider.set_property(entity, descriptor.name, descriptor.collection_type(items))
        return MergeResult.CHANGED

    def merge_mapping(self, descriptor: PropertyDescriptor, value: Any, entity: Any, path: str) -> MergeResult:
        """
        Merge a mapping property.

        A JSON object merges its entries into a copy of the current mapping (created
        where None). A JSON array of objects replaces the mapping with their combined
        entries and always counts as a change; an empty array clears it. Keys and
        values are converted to the declared types; the mapping is only assigned where
        every entry converted.
        """
        if isinstance(value, dict):
            entries = self.convert_entries(descriptor, [value], path)
            if entries is None:
                return MergeResult.ERROR

            current = self.provider.get_property(entity, descriptor.name)
            merged = dict(current) if current is not None else {}
            changed = current is None
            for key, item in entries.items():
                if key not in merged or merged[key] != item:
                    changed = True
                merged[key] = item

            if not changed:
                return MergeResult.UNCHANGED

            self.provider.set_property(entity, descriptor.name, merged)
            return MergeResult.CHANGED

        if not isinstance(value, list):
            return self.error(path, TOKEN_MALFORMED)

        if not value:
            changed = self.provider.set_property(entity, descriptor.name, {})
            return MergeResult.CHANGED if changed else MergeResult.UNCHANGED

        if not all(isinstance(element, dict) for element in value):
            return self.error(path, TOKEN_MALFORMED)

        entries = self.convert_entries(descriptor, value, path)
        if entries is None:
            return MergeResult.ERROR

        self.provider.set_property(entity, descriptor.name, entries)
        return MergeResult.CHANGED

    def convert_entries(
        self, descriptor: PropertyDescriptor, objects: list[dict[str, Any]], path: str
    ) -> dict[Any, Any] | None:
        """Convert the entries of JSON objects to the mapping's key and value types; None on the first failure."""
        entries: dict[Any, Any] = {}
        for document in objects:
            for name, value in document.items():
                try:
                    key = self.provider.coerce_scalar(name, descriptor.key_type)
                    entries[key] = self.provider.coerce_scalar(value, descriptor.item_type)
                except ConversionError as e:
                    self.error(path, TOKEN_MALFORMED_REASON.format(reason=e.message))
                    return None

        return entries

    def resolve_unique_key(self, descriptor: PropertyDescriptor) -> list[PropertyDescriptor]:
        """
        Resolve the item type's unique key names to their descriptors.

        Raises:
            MetadataError: If a key names a missing or non-scalar property
        """
        key_properties = []
        for key_name in descriptor.unique_key or ():
            key_property = self.provider.resolve_property(descriptor.item_type, key_name)
            if key_property is None or key_property.is_complex:
                type_name = getattr(descriptor.item_type, "__name__", descriptor.item_type)
                raise MetadataError(
                    f"Type '{type_name}' references a unique key property '{key_name}' that does not exist "
                    "or is not a scalar.",
                    {"type": descriptor.item_type, "property": key_name},
                )
            key_properties.append(key_property)

        return key_properties

    def extract_unique_key(
        self, key_properties: list[PropertyDescriptor], value: dict[str, Any], path: str
    ) -> tuple[Any, ...] | None:
        """Read and convert the unique key straight from the JSON element; None where invalid."""
        key = []
        for key_property in key_properties:
            if key_property.json_name not in value:
                self.error(path, KEYED_ITEM_MISSING_KEY.format(name=key_property.json_name))
                return None

            token = value[key_property.json_name]
            try:
                key.append(self.provider.coerce_scalar(token, key_property.property_type))
            except ConversionError as e:
                self.error(
                    _property_path(path, key_property.json_name), TOKEN_MALFORMED_REASON.format(reason=e.message)
                )
                return None

        return tuple(key)

    def find_by_unique_key(
        self, key_properties: list[PropertyDescriptor], items: list[Any], key: tuple[Any, ...]
    ) -> Any | None:
        for item in items:
            item_key = tuple(self.provider.get_property(item, p.name) for p in key_properties)
            if item_key == key:
                return item
        return None


class EntityMerger:
    """Merges JSON merge-patch documents into entities described by a metadata provider."""

    def __init__(self, provider: EntityMetadataProviderProtocol | None = None):
        """
        Initialize entity merger.

        Args:
            provider: Optional entity metadata provider; defaults to pydantic model introspection
        """
        self.provider = provider or ModelMetadataProvider()

    def merge(self, document: Any, target: Any, options: MergeOptions | None = None) -> MergeOutcome:
        """
        Merge a JSON document into the target entity in place.

        Args:
            document: Parsed JSON value; anything other than an object (dict), JSON null included,
                is reported as a malformed document
            target: Entity to merge into (mutated in place, never copied)
            options: Optional merge options (diagnostic sink, warning escalation, force changed)

        Returns:
            MergeOutcome with the tri-state status and every diagnostic raised

        Raises:
            ValueError: If target is None
            MetadataError: If the target's metadata is misconfigured
        """
        if target is None:
            raise ValueError("target must not be None")

        options = options or MergeOptions()
        run = _MergeRun(self.provider, options)
        logger.debug("Merging JSON document into %s", type(target).__name__)

        if not isinstance(document, dict):
            status = run.error(None, DOCUMENT_MALFORMED)
        else:
            status = run.merge_object(document, target, None)

        if status == MergeResult.UNCHANGED and options.force_changed:
            status = MergeResult.CHANGED

        logger.debug("Merge into %s completed: %s", type(target).__name__, status.value)
        return MergeOutcome(status=status, messages=run.messages)


def merge(
    document: Any,
    target: Any,
    options: MergeOptions | None = None,
    provider: EntityMetadataProviderProtocol | None = None,
) -> MergeOutcome:
    """
    Merge a JSON merge-patch document into an entity.

    Args:
        document: Parsed JSON object to merge
        target: Entity to merge into (mutated in place)
        options: Optional merge options
        provider: Optional metadata provider; defaults to pydantic model introspection

    Returns:
        MergeOutcome with the tri-state status and diagnostics

    Example:
        >>> class Address(BaseModel):
        ...     street: str | None = None
        >>> class Person(BaseModel):
        ...     name: str | None = None
        ...     address: Address | None = None
        >>> person = Person(name="Fred")
        >>> merge({"address": {"street": "Main St"}}, person).status
        <MergeResult.CHANGED: 'changed'>
        >>> person.address.street
        'Main St'
        >>> merge({"name": "Fred"}, person).status
        <MergeResult.UNCHANGED: 'unchanged'>
    """
    return EntityMerger(provider).merge(document, target, options)
