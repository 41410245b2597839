"""Merge-patch workflow: load the current entity, merge the document, update where changed."""

import json
import logging
from collections.abc import Callable
from typing import Any
from typing import TypeVar

from .exceptions import EntityNotFoundError
from .exceptions import MergeValidationError
from .merger import EntityMerger
from .protocols import EntityMetadataProviderProtocol
from .schema import DiagnosticMessage
from .schema import MergeOptions
from .schema import MergeResult
from .schema import MessageType

logger = logging.getLogger(__name__)

TEntity = TypeVar("TEntity")


def parse_document(document: str | bytes | Any) -> Any:
    """Parse JSON text; already-parsed values are returned as is.

    Raises:
        MergeValidationError: If the text is not valid JSON
    """
    if not isinstance(document, (str, bytes, bytearray)):
        return document

    try:
        return json.loads(document)
    except json.JSONDecodeError as e:
        text = f"The JSON document is malformed: {e.msg}."
        message = DiagnosticMessage(path=None, type=MessageType.ERROR, text=text)
        raise MergeValidationError(message.text, [message]) from e


def apply_merge_patch(
    document: str | bytes | Any,
    get_current: Callable[[], TEntity | None],
    update: Callable[[TEntity], TEntity | None],
    *,
    provider: EntityMetadataProviderProtocol | None = None,
    options: MergeOptions | None = None,
    message_prefix: str | None = "value",
) -> TEntity:
    """
    Apply a merge-patch to the current entity and persist it only where it changed.

    Steps:
    1. Load the current entity (must exist)
    2. Merge the document into it, collecting diagnostics
    3. On error raise MergeValidationError; on no changes skip the update

    Args:
        document: JSON text or parsed JSON object
        get_current: Loads the current entity; returns None where it does not exist
        update: Persists the merged entity; may return the updated entity
        provider: Optional metadata provider
        options: Optional merge options; their diagnostic callback still receives every message
        message_prefix: Prefix applied to diagnostic paths (e.g. "value.name"); None for no prefix

    Returns:
        The updated entity (update's result where it returns one), or the unchanged current entity

    Raises:
        EntityNotFoundError: If get_current returns None
        MergeValidationError: If the document is malformed or the merge reports ERROR
    """
    parsed = parse_document(document)

    entity = get_current()
    if entity is None:
        raise EntityNotFoundError("The entity to be patched was not found.")

    options = options or MergeOptions()
    outcome = EntityMerger(provider).merge(parsed, entity, options)

    if outcome.status == MergeResult.ERROR:
        messages = [_prefix_message(message, message_prefix) for message in outcome.messages if message.is_error]
        raise MergeValidationError(
            f"The merge-patch could not be applied: {len(messages)} error(s).",
            messages,
            {"entity_type": type(entity).__name__},
        )

    if outcome.status == MergeResult.UNCHANGED:
        logger.debug("Merge-patch resulted in no changes to %s; update skipped", type(entity).__name__)
        return entity

    result = update(entity)
    return entity if result is None else result


def _prefix_message(message: DiagnosticMessage, prefix: str | None) -> DiagnosticMessage:
    if not prefix or not message.path:
        return message
    return message.model_copy(update={"path": f"{prefix}.{message.path}"})
