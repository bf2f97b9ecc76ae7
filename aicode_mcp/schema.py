"""
Schema translation: MCP tool input schemas → pydantic models.

Providers describe tool arguments with JSON-Schema-like dicts. The host
needs something it can validate against, so each schema node is mapped
onto a Python type by structural recursion over SchemaKind:

    string  → StrictStr      boolean → StrictBool
    number  → strict float   array   → list[<items>]
    integer → StrictInt (ge=minimum when given)
    object  → nested pydantic model
    unknown → Any

Scalars are strict: "5" is not an integer and 1 is not a boolean, though
an integer is a valid number. Properties left out of `required` may be
omitted but not sent as null. Unrecognized or missing types never raise;
they accept anything so a quirky schema can't make a tool unusable.
"""

from __future__ import annotations

import keyword
import logging
import re
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, create_model

logger = logging.getLogger(__name__)

_MODEL_CONFIG = ConfigDict(populate_by_name=True, protected_namespaces=())
_PERMISSIVE_CONFIG = ConfigDict(extra="allow", protected_namespaces=())

StrictFloat = Annotated[float, Field(strict=True)]


class SchemaKind(str, Enum):
    """The schema node types the translator understands."""
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    UNKNOWN = "unknown"

    @classmethod
    def of(cls, node: Any) -> "SchemaKind":
        """Kind of a schema node; UNKNOWN for anything unrecognized."""
        if not isinstance(node, dict):
            return cls.UNKNOWN
        declared = node.get("type")
        if not isinstance(declared, str):
            return cls.UNKNOWN
        try:
            return cls(declared)
        except ValueError:
            return cls.UNKNOWN


def schema_to_type(node: Any, name: str = "Model") -> Any:
    """
    Translate one schema node into a type annotation pydantic can validate.

    Args:
        node: JSON-Schema-like dict (or None)
        name: Model name used if the node is an object

    Returns:
        A Python type, an Annotated type, or a pydantic model class.
    """
    kind = SchemaKind.of(node)

    if kind is SchemaKind.STRING:
        return StrictStr
    if kind is SchemaKind.NUMBER:
        return StrictFloat
    if kind is SchemaKind.BOOLEAN:
        return StrictBool
    if kind is SchemaKind.INTEGER:
        minimum = node.get("minimum")
        if isinstance(minimum, (int, float)) and not isinstance(minimum, bool):
            return Annotated[StrictInt, Field(ge=minimum)]
        return StrictInt
    if kind is SchemaKind.ARRAY:
        items = node.get("items")
        if items:
            return list[schema_to_type(items, f"{name}Item")]
        return list[Any]
    if kind is SchemaKind.OBJECT:
        return _object_model(node, name)

    logger.debug(f"Schema node for {name} has no usable type, accepting anything: {node!r}")
    return Any


def schema_to_model(schema: Any, name: str = "ToolInput") -> type[BaseModel]:
    """
    Build the argument model for a whole tool input schema.

    Always returns a BaseModel subclass. A schema that is not an object
    yields an empty model that accepts any arguments.
    """
    if SchemaKind.of(schema) is SchemaKind.OBJECT:
        return _object_model(schema, name)

    logger.debug(f"Tool schema for {name} is missing or not an object, accepting any arguments")
    return create_model(_model_name(name), __config__=_PERMISSIVE_CONFIG)


def validate_arguments(model: type[BaseModel], params: dict[str, Any] | None) -> dict[str, Any]:
    """Validate params and return them keyed by the provider's property names."""
    instance = model.model_validate(params or {})
    return instance.model_dump(by_alias=True, exclude_unset=True)


def _object_model(node: dict[str, Any], name: str) -> type[BaseModel]:
    properties = node.get("properties")
    if not isinstance(properties, dict):
        properties = {}
    required = node.get("required")
    required = set(required) if isinstance(required, list) else set()

    fields: dict[str, Any] = {}
    for key, prop in properties.items():
        field_name = _field_name(key, fields)
        annotation = schema_to_type(prop, f"{name}_{field_name}")
        description = prop.get("description") if isinstance(prop, dict) else None
        alias = key if field_name != key else None

        if key in required:
            fields[field_name] = (annotation, Field(..., alias=alias, description=description))
        else:
            # Omittable, not nullable: the None default is never validated
            fields[field_name] = (annotation, Field(None, alias=alias, description=description))

    logger.debug(f"Converted object schema {name}: fields={list(fields)} required={sorted(required)}")
    return create_model(_model_name(name), __config__=_MODEL_CONFIG, **fields)


def _field_name(key: str, taken: dict[str, Any]) -> str:
    """A safe Python identifier for a property key (aliased back to the key)."""
    name = re.sub(r"\W", "_", key)
    if (
        not name
        or name[0].isdigit()
        or name.startswith("_")
        or keyword.iskeyword(name)
        or hasattr(BaseModel, name)
    ):
        name = f"field_{name}"
    while name in taken:
        name += "_"
    return name


def _model_name(name: str) -> str:
    cleaned = re.sub(r"\W", "_", name)
    if not cleaned or cleaned[0].isdigit():
        cleaned = f"Model_{cleaned}"
    return cleaned
