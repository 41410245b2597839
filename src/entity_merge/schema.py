"""Pydantic schemas for entity merge-patch results, diagnostics and options."""

from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


class MergeResult(str, Enum):
    """Tri-state result of a merge-patch.

    ERROR dominates everything; CHANGED dominates UNCHANGED.
    """

    ERROR = "error"
    CHANGED = "changed"
    UNCHANGED = "unchanged"

    def combine(self, other: "MergeResult") -> "MergeResult":
        """Combine two results using the dominance rules."""
        if MergeResult.ERROR in (self, other):
            return MergeResult.ERROR
        if MergeResult.CHANGED in (self, other):
            return MergeResult.CHANGED
        return MergeResult.UNCHANGED


class MessageType(str, Enum):
    """Severity of a diagnostic message."""

    WARNING = "warning"
    ERROR = "error"


class DiagnosticMessage(BaseModel):
    """A single diagnostic raised while merging, addressed by JSON path."""

    model_config = ConfigDict(frozen=True)

    path: str | None = Field(None, description="JSON path of the offending token; None for the document root")
    type: MessageType = Field(..., description="Message severity")
    text: str = Field(..., description="Human-readable message text")

    @property
    def is_error(self) -> bool:
        return self.type == MessageType.ERROR


class MergeOptions(BaseModel):
    """Options that control a single merge-patch call."""

    on_diagnostic: Callable[[DiagnosticMessage], None] | None = Field(
        None, description="Callback invoked for every diagnostic message as it is raised"
    )
    treat_warnings_as_errors: bool = Field(False, description="Escalate all warnings to errors")
    force_changed: bool = Field(
        False, description="Report CHANGED even where nothing differs (unconditional persistence)"
    )

    def log(self, message: DiagnosticMessage) -> DiagnosticMessage:
        """
        Escalate (where configured) and publish a diagnostic message.

        Args:
            message: Message to publish

        Returns:
            The published message, with its type escalated to ERROR where
            warnings are treated as errors
        """
        if self.treat_warnings_as_errors and message.type == MessageType.WARNING:
            message = message.model_copy(update={"type": MessageType.ERROR})

        if self.on_diagnostic is not None:
            self.on_diagnostic(message)

        return message


class MergeOutcome(BaseModel):
    """Outcome of a merge-patch: the tri-state status plus every diagnostic raised."""

    model_config = ConfigDict(frozen=True)

    status: MergeResult
    messages: list[DiagnosticMessage] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return self.status == MergeResult.ERROR

    @property
    def is_changed(self) -> bool:
        return self.status == MergeResult.CHANGED


class PropertyDescriptor(BaseModel):
    """Metadata for a single entity property as seen by the merge engine.

    Collections and mappings are always complex (they are reconciled as a whole);
    whether collection items are themselves entities is stated by ``is_item_complex``.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., description="Attribute name on the entity")
    json_name: str = Field(..., description="Property name as it appears in JSON")
    property_type: Any = Field(
        None, description="Declared type; the full annotation for scalars, Optional stripped for complex properties"
    )
    is_complex: bool = Field(False, description="True for nested objects, collections and mappings")
    is_collection: bool = Field(False, description="True where the property holds a sequence of items")
    is_item_complex: bool = Field(False, description="True where collection items are entities")
    is_mapping: bool = Field(False, description="True where the property holds a key/value mapping")
    collection_type: Any = Field(list, description="Concrete sequence type assigned for collections (list or tuple)")
    key_type: Any = Field(None, description="Declared key type for mappings")
    item_type: Any = Field(None, description="Declared item type for collections; value type for mappings")
    unique_key: tuple[str, ...] | None = Field(
        None, description="JSON names of the item properties forming the identity key, in order"
    )

    @property
    def has_unique_key(self) -> bool:
        return bool(self.unique_key)
