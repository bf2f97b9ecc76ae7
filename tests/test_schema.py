"""Tests for aicode_mcp.schema module."""

from typing import Any

import pytest
from pydantic import BaseModel, StrictBool, StrictInt, StrictStr, ValidationError

from aicode_mcp.schema import SchemaKind, schema_to_model, schema_to_type, validate_arguments


class TestSchemaKind:
    @pytest.mark.parametrize("node", [None, {}, {"type": "date"}, {"type": ["string", "null"]}, "string"])
    def test_unknown(self, node):
        assert SchemaKind.of(node) is SchemaKind.UNKNOWN

    def test_known(self):
        assert SchemaKind.of({"type": "integer"}) is SchemaKind.INTEGER
        assert SchemaKind.of({"type": "object"}) is SchemaKind.OBJECT


class TestSchemaToType:
    def test_scalars(self):
        assert schema_to_type({"type": "string"}) is StrictStr
        assert schema_to_type({"type": "boolean"}) is StrictBool
        assert schema_to_type({"type": "integer"}) is StrictInt

    def test_unknown_is_any(self):
        assert schema_to_type({"type": "null"}) is Any
        assert schema_to_type(None) is Any

    def test_object_is_model(self):
        model = schema_to_type({"type": "object", "properties": {}}, "Inner")
        assert issubclass(model, BaseModel)
        assert model.__name__ == "Inner"


class TestSchemaToModel:
    def test_required_property(self):
        model = schema_to_model({
            "type": "object",
            "properties": {"a": {"type": "string"}},
            "required": ["a"],
        })
        assert model.model_validate({"a": "x"}).a == "x"
        with pytest.raises(ValidationError):
            model.model_validate({})

    def test_required_omitted_means_optional(self):
        model = schema_to_model({"type": "object", "properties": {"a": {"type": "string"}}})
        assert model.model_validate({}).a is None

    def test_wrong_scalar_type_rejected(self):
        model = schema_to_model({
            "type": "object",
            "properties": {"a": {"type": "string"}},
            "required": ["a"],
        })
        with pytest.raises(ValidationError):
            model.model_validate({"a": 5})

    @pytest.mark.parametrize("kind,value", [
        ("integer", "5"),
        ("integer", True),
        ("integer", 2.0),
        ("boolean", "yes"),
        ("boolean", 1),
        ("number", "3.5"),
        ("string", b"bytes"),
    ])
    def test_no_coercion(self, kind, value):
        model = schema_to_model({"type": "object", "properties": {"v": {"type": kind}}, "required": ["v"]})
        with pytest.raises(ValidationError):
            model.model_validate({"v": value})

    @pytest.mark.parametrize("kind", ["string", "integer", "number", "boolean", "array", "object"])
    def test_optional_is_not_nullable(self, kind):
        model = schema_to_model({"type": "object", "properties": {"v": {"type": kind}}})
        assert validate_arguments(model, {}) == {}
        with pytest.raises(ValidationError):
            model.model_validate({"v": None})

    def test_integer_minimum(self):
        model = schema_to_model({
            "type": "object",
            "properties": {"n": {"type": "integer", "minimum": 1}},
            "required": ["n"],
        })
        assert model.model_validate({"n": 3}).n == 3
        with pytest.raises(ValidationError):
            model.model_validate({"n": 0})
        with pytest.raises(ValidationError):
            model.model_validate({"n": 1.5})

    def test_number_accepts_ints_and_floats(self):
        model = schema_to_model({"type": "object", "properties": {"x": {"type": "number"}}, "required": ["x"]})
        assert model.model_validate({"x": 2}).x == 2.0
        assert model.model_validate({"x": 2.5}).x == 2.5

    def test_array_items(self):
        model = schema_to_model({
            "type": "object",
            "properties": {"tags": {"type": "array", "items": {"type": "string"}}},
            "required": ["tags"],
        })
        assert model.model_validate({"tags": ["a", "b"]}).tags == ["a", "b"]
        with pytest.raises(ValidationError):
            model.model_validate({"tags": [{"x": 1}]})

    def test_array_without_items_accepts_anything(self):
        model = schema_to_model({"type": "object", "properties": {"xs": {"type": "array"}}, "required": ["xs"]})
        assert model.model_validate({"xs": [1, "two", {"three": 3}]}).xs == [1, "two", {"three": 3}]

    def test_nested_object(self):
        model = schema_to_model({
            "type": "object",
            "properties": {
                "options": {
                    "type": "object",
                    "properties": {"depth": {"type": "integer"}, "label": {"type": "string"}},
                    "required": ["depth"],
                },
            },
            "required": ["options"],
        }, "SearchInput")
        assert model.model_validate({"options": {"depth": 2}}).options.depth == 2
        with pytest.raises(ValidationError):
            model.model_validate({"options": {"label": "x"}})

    def test_unknown_property_type_accepts_anything(self):
        model = schema_to_model({"type": "object", "properties": {"v": {"type": "null"}}, "required": ["v"]})
        assert model.model_validate({"v": 5}).v == 5
        assert model.model_validate({"v": {"a": 1}}).v == {"a": 1}

    @pytest.mark.parametrize("schema", [None, {}, {"properties": {"a": {"type": "string"}}}, {"type": "string"}])
    def test_non_object_schema_accepts_any_arguments(self, schema):
        model = schema_to_model(schema, "Loose")
        assert issubclass(model, BaseModel)
        model.model_validate({"anything": 1, "else": [2]})

    def test_unsafe_property_names_are_aliased(self):
        model = schema_to_model({
            "type": "object",
            "properties": {
                "file-path": {"type": "string"},
                "schema": {"type": "string"},
                "class": {"type": "string"},
                "_private": {"type": "string"},
            },
            "required": ["file-path"],
        })
        params = {"file-path": "/tmp/x", "schema": "s", "class": "c", "_private": "p"}
        assert validate_arguments(model, params) == params

    def test_descriptions_survive(self):
        model = schema_to_model({
            "type": "object",
            "properties": {"q": {"type": "string", "description": "Search query"}},
            "required": ["q"],
        })
        assert model.model_fields["q"].description == "Search query"


class TestValidateArguments:
    def test_unset_optionals_are_dropped(self):
        model = schema_to_model({
            "type": "object",
            "properties": {"text": {"type": "string"}, "repeat": {"type": "integer"}},
            "required": ["text"],
        })
        assert validate_arguments(model, {"text": "hi"}) == {"text": "hi"}

    def test_none_params(self):
        model = schema_to_model({"type": "object", "properties": {"a": {"type": "string"}}})
        assert validate_arguments(model, None) == {}

    def test_nested_by_alias(self):
        model = schema_to_model({
            "type": "object",
            "properties": {
                "opts": {"type": "object", "properties": {"max-depth": {"type": "integer"}}},
            },
        })
        assert validate_arguments(model, {"opts": {"max-depth": 3}}) == {"opts": {"max-depth": 3}}
