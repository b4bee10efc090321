"""Translation of MCP tool input schemas into pydantic validators.

MCP tools declare a JSON-schema ``inputSchema``:

    {
        "type": "object",
        "properties": {
            "symbol": {"type": "string", "description": "Ticker"},
            "limit": {"type": "integer"}
        },
        "required": ["symbol"]
    }

``translate_schema`` turns that into a pydantic model class. Primitive, array
and (nested) object types map to their Python equivalents; anything else
becomes ``Any``. Required properties are required fields; the rest are
``Optional`` with a ``None`` default. Unknown keys are allowed through.
"""

import keyword
import re
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, create_model

from mcpchain.utils.logger import get_logger

logger = get_logger(__name__)

MAX_TOOL_NAME_LENGTH = 64

_PRIMITIVE_TYPES: Dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
}

_MODEL_CONFIG = ConfigDict(extra="allow", populate_by_name=True)


def _field_name(prop_name: str) -> Tuple[str, Optional[str]]:
    """Return a safe attribute name and, when it differs, the alias to keep."""
    if (
        prop_name.isidentifier()
        and not keyword.iskeyword(prop_name)
        and not prop_name.startswith("_")
        and not prop_name.startswith("model_")
        and not hasattr(BaseModel, prop_name)
    ):
        return prop_name, None
    safe = re.sub(r"\W", "_", prop_name).strip("_") or "field"
    return f"f_{safe}", prop_name


def _python_type(prop_schema: Dict[str, Any], model_name: str) -> Any:
    if not isinstance(prop_schema, dict):
        return Any

    schema_type = prop_schema.get("type")
    if isinstance(schema_type, list):
        # ["string", "null"] style unions: use the first non-null entry
        non_null = [t for t in schema_type if t != "null"]
        schema_type = non_null[0] if non_null else None

    if schema_type in _PRIMITIVE_TYPES:
        return _PRIMITIVE_TYPES[schema_type]

    if schema_type == "array":
        items = prop_schema.get("items")
        if not isinstance(items, dict) or not items.get("type"):
            return List[str]
        return List[_python_type(items, f"{model_name}Item")]

    if schema_type == "object":
        if prop_schema.get("properties"):
            return translate_schema(prop_schema, model_name)
        return Dict[str, Any]

    return Any


def translate_schema(
    input_schema: Optional[Dict[str, Any]], model_name: str = "ToolInput"
) -> Type[BaseModel]:
    """
    Build a pydantic model class that validates arguments for a tool.

    Args:
        input_schema: JSON-schema object describing the tool input
        model_name: Name for the generated model class

    Returns:
        A pydantic model class. An empty or missing schema yields a model
        that accepts any keys.
    """
    properties = (input_schema or {}).get("properties") or {}
    required = set((input_schema or {}).get("required") or [])

    fields: Dict[str, Any] = {}
    for prop_name, prop_schema in properties.items():
        attr_name, alias = _field_name(prop_name)
        nested_name = f"{model_name}_{attr_name}"
        py_type = _python_type(prop_schema, nested_name)
        description = (
            prop_schema.get("description") if isinstance(prop_schema, dict) else None
        )

        if prop_name in required:
            fields[attr_name] = (
                py_type,
                Field(..., alias=alias, description=description),
            )
        else:
            fields[attr_name] = (
                Optional[py_type],
                Field(None, alias=alias, description=description),
            )

    return create_model(model_name, __config__=_MODEL_CONFIG, **fields)


def validate_arguments(model: Type[BaseModel], arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Validate arguments against a translated schema and return them as a dict.

    Raises:
        pydantic.ValidationError: If the arguments do not match the schema
    """
    instance = model.model_validate(arguments)
    dumped = instance.model_dump(by_alias=True, exclude_unset=True)
    # Keys outside the schema pass through unchanged
    return {**(instance.model_extra or {}), **dumped}


def generate_tool_name(service_name: str, tool_name: str) -> str:
    """Build a provider-safe tool identifier such as ``github_list_repos``."""
    service = re.sub(r"-mcp(-service|-server)?$", "", service_name)
    combined = re.sub(r"[^a-zA-Z0-9_-]", "_", f"{service}_{tool_name}")
    if len(combined) > MAX_TOOL_NAME_LENGTH:
        logger.debug(f"Truncating tool name {combined} to {MAX_TOOL_NAME_LENGTH} chars")
        combined = combined[:MAX_TOOL_NAME_LENGTH]
    return combined
