"""Tests for the merge-patch workflow and outcome/option schemas."""

import json

import pytest
from merge_entities import PatchData
from merge_entities import SubData

from entity_merge import DiagnosticMessage
from entity_merge import EntityNotFoundError
from entity_merge import MergeOptions
from entity_merge import MergeResult
from entity_merge import MergeValidationError
from entity_merge import MessageType
from entity_merge import apply_merge_patch
from entity_merge import parse_document


class FakeStore:
    """In-memory store recording updates."""

    def __init__(self, entity: PatchData | None):
        self.entity = entity
        self.updates: list[PatchData] = []

    def get(self) -> PatchData | None:
        return self.entity

    def update(self, entity: PatchData) -> None:
        self.updates.append(entity)


class TestApplyMergePatch:
    """Test get, merge and conditional update."""

    def test_changed_updates(self):
        store = FakeStore(PatchData(name="Fred"))
        result = apply_merge_patch('{"name": "Barry"}', store.get, store.update)

        assert result is store.entity
        assert result.name == "Barry"
        assert store.updates == [store.entity]

    def test_unchanged_skips_update(self):
        store = FakeStore(PatchData(name="Fred"))
        result = apply_merge_patch({"name": "Fred"}, store.get, store.update)

        assert result is store.entity
        assert store.updates == []

    def test_force_changed_updates(self):
        store = FakeStore(PatchData(name="Fred"))
        apply_merge_patch({"name": "Fred"}, store.get, store.update, options=MergeOptions(force_changed=True))

        assert len(store.updates) == 1

    def test_update_result_returned(self):
        store = FakeStore(PatchData())
        updated = PatchData(name="stored")

        result = apply_merge_patch(b'{"name": "Barry"}', store.get, lambda entity: updated)

        assert result is updated

    def test_not_found(self):
        store = FakeStore(None)
        with pytest.raises(EntityNotFoundError):
            apply_merge_patch({"name": "Barry"}, store.get, store.update)

    def test_errors_raise_with_prefixed_paths(self):
        store = FakeStore(PatchData(sub=SubData()))
        with pytest.raises(MergeValidationError) as exc_info:
            apply_merge_patch({"zzz": 1, "sub": {"count": "xxx"}}, store.get, store.update)

        messages = exc_info.value.messages
        assert [m.path for m in messages] == ["value.sub.count"]
        assert all(m.type == MessageType.ERROR for m in messages)
        assert store.updates == []

    def test_error_messages_without_prefix(self):
        store = FakeStore(PatchData())
        with pytest.raises(MergeValidationError) as exc_info:
            apply_merge_patch({"name": ["x"]}, store.get, store.update, message_prefix=None)

        assert exc_info.value.messages[0].path == "name"

    def test_options_sink_still_called(self):
        received: list[DiagnosticMessage] = []
        store = FakeStore(PatchData())
        apply_merge_patch({"zzz": 1}, store.get, store.update, options=MergeOptions(on_diagnostic=received.append))

        assert [m.path for m in received] == ["zzz"]

    def test_invalid_json_text(self):
        store = FakeStore(PatchData())
        with pytest.raises(MergeValidationError) as exc_info:
            apply_merge_patch("{not json", store.get, store.update)

        assert exc_info.value.messages[0].path is None
        assert exc_info.value.messages[0].text.startswith("The JSON document is malformed")

    def test_document_not_object(self):
        store = FakeStore(PatchData())
        with pytest.raises(MergeValidationError) as exc_info:
            apply_merge_patch("[1, 2]", store.get, store.update)

        assert exc_info.value.messages[0].text == "The JSON document is malformed and could not be parsed."

    def test_null_document(self):
        """Test a JSON null body is a validation error and the entity is not updated."""
        store = FakeStore(PatchData(name="Fred"))
        with pytest.raises(MergeValidationError) as exc_info:
            apply_merge_patch("null", store.get, store.update)

        assert exc_info.value.messages[0].path is None
        assert exc_info.value.messages[0].text == "The JSON document is malformed and could not be parsed."
        assert store.entity.name == "Fred"
        assert store.updates == []


class TestParseDocument:
    def test_text(self):
        assert parse_document(json.dumps({"a": 1})) == {"a": 1}

    def test_parsed_value_passthrough(self):
        document = {"a": 1}
        assert parse_document(document) is document


class TestMergeResult:
    """Test the tri-state dominance rules."""

    @pytest.mark.parametrize(
        "left,right,expected",
        [
            (MergeResult.ERROR, MergeResult.CHANGED, MergeResult.ERROR),
            (MergeResult.UNCHANGED, MergeResult.ERROR, MergeResult.ERROR),
            (MergeResult.CHANGED, MergeResult.UNCHANGED, MergeResult.CHANGED),
            (MergeResult.UNCHANGED, MergeResult.UNCHANGED, MergeResult.UNCHANGED),
        ],
    )
    def test_combine(self, left, right, expected):
        assert left.combine(right) == expected
        assert right.combine(left) == expected


class TestMergeOptions:
    def test_log_escalates_warning(self):
        message = DiagnosticMessage(path="a", type=MessageType.WARNING, text="w")
        published = MergeOptions(treat_warnings_as_errors=True).log(message)

        assert published.type == MessageType.ERROR
        assert published.is_error
        assert message.type == MessageType.WARNING

    def test_log_keeps_warning(self):
        message = DiagnosticMessage(path="a", type=MessageType.WARNING, text="w")
        assert MergeOptions().log(message) is message
