"""Tests for definition parsing and payload schema checks."""

import pytest

from core.constants import LoopType
from core.exceptions import ValidationError
from workflow.definition import (
    KIND_ALWAYS,
    KIND_EMPTY,
    KIND_FINAL,
    KIND_INVOKE,
    KIND_LOOP,
    KIND_ON,
    apply_payload_schema,
    parse_definition,
)


@pytest.mark.unit
class TestParseDefinition:
    """Test parsing stored JSON definitions."""

    def test_state_kinds(self):
        definition = parse_definition({
            "initial": "fetch",
            "states": {
                "fetch": {"invoke": {"src": "players.get", "onDone": "branch"}},
                "branch": {"always": [{"target": "wait"}]},
                "wait": {"on": {"NEXT": "each"}},
                "each": {"loop": {"type": "forEach", "collection": "$.items"}},
                "idle": {},
                "done": {"type": "final"},
            },
        })
        kinds = {name: state.kind for name, state in definition.states.items()}
        assert kinds == {
            "fetch": KIND_INVOKE,
            "branch": KIND_ALWAYS,
            "wait": KIND_ON,
            "each": KIND_LOOP,
            "idle": KIND_EMPTY,
            "done": KIND_FINAL,
        }

    def test_string_targets_are_coerced(self):
        definition = parse_definition({
            "initial": "a",
            "states": {
                "a": {"invoke": {"src": "core.log", "onDone": "b", "onError": {"target": "c"}}},
                "b": {"always": "c", "on": {"GO": "c"}},
                "c": {"type": "final"},
            },
        })
        invoke = definition.states["a"].invoke
        assert invoke.on_done.target == "b"
        assert invoke.on_error.target == "c"
        assert [t.target for t in definition.states["b"].always] == ["c"]
        assert [t.target for t in definition.states["b"].on["GO"]] == ["c"]

    def test_loop_defaults(self):
        definition = parse_definition({
            "initial": "each",
            "states": {
                "each": {
                    "loop": {
                        "type": "forEach",
                        "collection": "$.items",
                        "parallelBatchSize": None,
                        "bodyInitial": "step",
                        "bodyStates": {"step": {"invoke": {"src": "core.log"}}},
                    },
                },
            },
        })
        loop = definition.states["each"].loop
        assert loop.type == LoopType.FOR_EACH
        assert loop.parallel_batch_size == 0
        assert loop.item_variable == "item"
        assert loop.index_variable == "index"
        assert loop.max_iterations is None
        assert loop.has_body

    def test_while_requires_condition(self):
        with pytest.raises(ValidationError, match="While loop requires a condition"):
            parse_definition({
                "initial": "w",
                "states": {"w": {"loop": {"type": "while"}}},
            })

    def test_for_each_requires_collection(self):
        with pytest.raises(ValidationError, match="ForEach loop requires a collection"):
            parse_definition({
                "initial": "f",
                "states": {"f": {"loop": {"type": "forEach"}}},
            })

    def test_for_each_accepts_literal_collection(self):
        definition = parse_definition({
            "initial": "f",
            "states": {
                "f": {"loop": {"type": "forEach", "collection": [1, 2, 3], "onDone": "done"}},
                "done": {"type": "final"},
            },
        })
        assert definition.states["f"].loop.collection == [1, 2, 3]

    def test_for_each_accepts_empty_literal_collection(self):
        definition = parse_definition({
            "initial": "f",
            "states": {"f": {"loop": {"type": "forEach", "collection": []}}},
        })
        assert definition.states["f"].loop.collection == []

    def test_body_requires_initial(self):
        with pytest.raises(ValidationError, match="bodyInitial"):
            parse_definition({
                "initial": "f",
                "states": {
                    "f": {
                        "loop": {
                            "type": "forEach",
                            "collection": "$.items",
                            "bodyStates": {"s": {"type": "final"}},
                        },
                    },
                },
            })

    def test_missing_initial(self):
        with pytest.raises(ValidationError, match="Invalid workflow definition"):
            parse_definition({"states": {}})

    def test_not_an_object(self):
        with pytest.raises(ValidationError, match="must be an object"):
            parse_definition(["initial"])

    def test_unknown_fields_are_ignored(self):
        definition = parse_definition({
            "initial": "done",
            "editor": {"zoom": 2},
            "states": {"done": {"type": "final", "position": {"x": 1}}},
        })
        assert definition.states["done"].kind == KIND_FINAL


@pytest.mark.unit
class TestPayloadSchema:
    """Test payload defaults and validation."""

    def _definition(self, schema):
        return parse_definition({
            "initial": "done",
            "payloadSchema": schema,
            "states": {"done": {"type": "final"}},
        })

    def test_no_schema_passes_payload_through(self):
        definition = self._definition(None)
        assert apply_payload_schema(definition, {"a": 1}) == {"a": 1}

    def test_defaults_fill_missing_keys(self):
        definition = self._definition([
            {"name": "radius", "type": "number", "defaultValue": 2},
            {"name": "mode", "type": "string", "required": True, "defaultValue": "spawn"},
        ])
        assert apply_payload_schema(definition, {}) == {"radius": 2, "mode": "spawn"}
        assert apply_payload_schema(definition, {"radius": 5})["radius"] == 5

    def test_missing_required_property(self):
        definition = self._definition([{"name": "playerId", "type": "number", "required": True}])
        with pytest.raises(ValidationError, match='Missing required payload property "playerId"'):
            apply_payload_schema(definition, {"mapId": 1})

    @pytest.mark.parametrize(
        "prop_type,value",
        [
            ("number", "7"),
            ("number", True),
            ("string", 7),
            ("boolean", "true"),
            ("object", [1]),
            ("array", {"a": 1}),
        ],
    )
    def test_wrong_type(self, prop_type, value):
        definition = self._definition([{"name": "field", "type": prop_type}])
        with pytest.raises(ValidationError, match=f"must be of type {prop_type}"):
            apply_payload_schema(definition, {"field": value})

    def test_does_not_mutate_input(self):
        definition = self._definition([{"name": "radius", "type": "number", "defaultValue": 2}])
        payload = {"playerId": 1}
        apply_payload_schema(definition, payload)
        assert payload == {"playerId": 1}
