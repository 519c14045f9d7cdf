"""
Tool registry for tradebench.

This module provides a registry that maps tool names to handler functions plus the metadata the
model needs (description, JSON parameter schema, and whether the tool mutates the account).  Each
session builds its own :class:`ToolRegistry` (see :mod:`tradebench.tools.catalogue`).
"""

import inspect
import logging
import types
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Type,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from pydantic import BaseModel

from tradebench.core.schema import ToolDefinition

logger = logging.getLogger(__name__)

_JSON_TYPES: Mapping[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def _json_type(annotation: Any) -> tuple[Dict[str, Any], bool]:
    """Map a Python annotation to a JSON schema fragment; second item is *optional*."""
    origin = get_origin(annotation)
    if origin in (Union, types.UnionType):
        members = [a for a in get_args(annotation) if a is not type(None)]
        optional = len(members) < len(get_args(annotation))
        schema, _ = _json_type(members[0]) if len(members) == 1 else ({}, False)
        return schema, optional
    if origin in (list, List):
        item_args = get_args(annotation)
        schema: Dict[str, Any] = {"type": "array"}
        if item_args:
            schema["items"] = _json_type(item_args[0])[0]
        return schema, False
    if origin in (dict, Dict):
        return {"type": "object"}, False
    json_type = _JSON_TYPES.get(annotation)
    return ({"type": json_type} if json_type else {}), False


def schema_from_signature(fn: Callable) -> Dict[str, Any]:
    """Derive a JSON object schema from *fn*'s signature and type hints."""
    sig = inspect.signature(fn)
    type_hints = get_type_hints(fn)
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for param_name, param in sig.parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        schema, optional = _json_type(type_hints.get(param_name, Any))
        properties[param_name] = schema
        if param.default is inspect.Parameter.empty and not optional:
            required.append(param_name)
    result: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        result["required"] = required
    return result


def _compact_schema(node: Any) -> Any:
    # pydantic renders Optional[X] as anyOf [X, null]; advertise X with the outer keywords
    if isinstance(node, list):
        return [_compact_schema(item) for item in node]
    if not isinstance(node, dict):
        return node
    schema = {
        key: _compact_schema(value)
        for key, value in node.items()
        if not (key == "title" and isinstance(value, str))
    }
    variants = schema.get("anyOf")
    if isinstance(variants, list):
        non_null = [v for v in variants if v != {"type": "null"}]
        if len(non_null) == 1 and len(non_null) < len(variants):
            rest = {k: v for k, v in schema.items() if k != "anyOf"}
            if "default" in rest and rest["default"] is None:
                del rest["default"]
            schema = {**non_null[0], **rest}
    return schema


def schema_from_model(model: Type[BaseModel]) -> Dict[str, Any]:
    """JSON object schema advertised for a tool whose arguments are validated by *model*."""
    return _compact_schema(model.model_json_schema())


@dataclass(frozen=True)
class RegisteredTool:
    """A handler together with its advertised definition."""

    definition: ToolDefinition
    fn: Callable[..., Any]
    args_model: Type[BaseModel] | None = None

    @property
    def mutating(self) -> bool:
        return self.definition.mutating


class ToolRegistry:
    """Name -> :class:`RegisteredTool` lookup."""

    def __init__(self) -> None:
        self._tools: Dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        fn: Callable[..., Any],
        *,
        description: str | None = None,
        parameters: Mapping[str, Any] | None = None,
        args_model: Type[BaseModel] | None = None,
        mutating: bool = False,
    ) -> RegisteredTool:
        """
        Register *fn* under *name*.

        Parameters
        ----------
        name: str
            Unique tool name.  Registering a name twice raises ``ValueError``.
        fn: Callable
            Handler, called with keyword arguments only.
        description: str, optional
            Defaults to the handler's docstring.
        parameters: Mapping, optional
            JSON schema for the arguments.  Defaults to the schema of *args_model*, else to one
            derived from the signature.
        args_model: type[BaseModel], optional
            Arguments are validated against this model before the handler is called.
        mutating: bool
            Mutating tools only run inside a permitted trading window.
        """
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")
        logger.debug("Registering tool '%s' (mutating=%s)", name, mutating)
        definition = ToolDefinition(
            name=name,
            description=(description if description is not None else inspect.getdoc(fn) or ""),
            parameters=self._parameters(fn, parameters, args_model),
            mutating=mutating,
        )
        tool = RegisteredTool(definition=definition, fn=fn, args_model=args_model)
        self._tools[name] = tool
        return tool

    @staticmethod
    def _parameters(
        fn: Callable[..., Any],
        parameters: Mapping[str, Any] | None,
        args_model: Type[BaseModel] | None,
    ) -> Dict[str, Any]:
        if parameters is not None:
            return dict(parameters)
        if args_model is not None:
            return schema_from_model(args_model)
        return schema_from_signature(fn)

    def tool(
        self,
        name: str,
        *,
        description: str | None = None,
        parameters: Mapping[str, Any] | None = None,
        args_model: Type[BaseModel] | None = None,
        mutating: bool = False,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of :meth:`register`."""

        def wrapper(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.register(
                name,
                fn,
                description=description,
                parameters=parameters,
                args_model=args_model,
                mutating=mutating,
            )
            return fn

        return wrapper

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def definitions(self) -> List[ToolDefinition]:
        """Tool catalogue in registration order."""
        return [tool.definition for tool in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)


