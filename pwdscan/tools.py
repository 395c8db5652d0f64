"""
Capability registry for the scanner.

Holds the tools the model may call during analysis, with a JSON Schema
per tool. The registry is built once at startup and only read afterwards,
so concurrent conversations share it without locking.

Architecture:
    Tools are registered when the registry is built, not at import time.
    ``invoke`` validates arguments against the declared schema before
    dispatching; it performs no I/O.
"""

import inspect
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, Mapping, Tuple

from pwdscan.types import ErrorCategory, ScanError, ToolSpec


class ToolId(str, Enum):
    """Typed tool identifiers."""

    FLAG_FILE = "flagFile"


class FileFlag(IntEnum):
    SAFE = 0
    LEAK = 1


def flag_file(flag: int) -> str:
    """Classify a file from the model's flag value."""
    if flag == FileFlag.SAFE:
        return "safe"
    if flag == FileFlag.LEAK:
        return "leak"
    return "unrecognized flag"


FLAG_FILE_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "flag": {
            "type": "integer",
            "enum": [FileFlag.SAFE.value, FileFlag.LEAK.value],
            "description": "0: means the file is safe, 1: means the file has some sensitive data",
        },
    },
    "required": ["flag"],
}


def _matches_json_type(value: Any, expected: str) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "object":
        return isinstance(value, dict)
    if expected == "array":
        return isinstance(value, list)
    if expected == "null":
        return value is None
    return False


def validate_arguments(args: Mapping[str, Any], schema: Mapping[str, Any]) -> None:
    """
    Validate tool arguments against a subset of JSON Schema.

    Checks required fields, ``additionalProperties: false``, property
    types and ``enum`` membership.

    Raises:
        ScanError: category ARGUMENT on the first violation found.
    """
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        properties = {}
    required = schema.get("required", [])
    if not isinstance(required, list):
        required = []

    for name in required:
        if name not in args:
            raise ScanError(ErrorCategory.ARGUMENT, f"missing required argument: {name}")

    if schema.get("additionalProperties", True) is False:
        unknown = sorted(k for k in args if k not in properties)
        if unknown:
            raise ScanError(
                ErrorCategory.ARGUMENT, f"unknown argument(s): {', '.join(unknown)}"
            )

    for key, value in args.items():
        prop = properties.get(key)
        if not isinstance(prop, dict):
            continue
        expected = prop.get("type")
        if isinstance(expected, str) and not _matches_json_type(value, expected):
            raise ScanError(
                ErrorCategory.ARGUMENT, f"argument '{key}' has wrong type; expected {expected}"
            )
        if isinstance(expected, list) and not any(
            _matches_json_type(value, t) for t in expected if isinstance(t, str)
        ):
            raise ScanError(
                ErrorCategory.ARGUMENT,
                f"argument '{key}' has wrong type; expected one of {expected}",
            )
        allowed = prop.get("enum")
        if isinstance(allowed, list) and value not in allowed:
            raise ScanError(
                ErrorCategory.ARGUMENT, f"argument '{key}' must be one of {allowed}, got {value!r}"
            )


class CapabilityRegistry:
    """
    Registry of callable capabilities.

    Example:
        registry = CapabilityRegistry()
        registry.register(
            spec=ToolSpec(name="flagFile", description="...", parameters=FLAG_FILE_PARAMETERS),
            func=flag_file,
        )
        registry.invoke("flagFile", {"flag": 1})  # "leak"
    """

    def __init__(self) -> None:
        self._specs: Dict[str, ToolSpec] = {}
        self._funcs: Dict[str, Callable[..., str]] = {}

    def register(self, *, spec: ToolSpec, func: Callable[..., str]) -> None:
        if spec.name in self._specs:
            raise ValueError(f"capability {spec.name!r} already registered")
        self._specs[spec.name] = spec
        self._funcs[spec.name] = func

    def definitions(self) -> Tuple[ToolSpec, ...]:
        """All tool definitions, in registration order."""
        return tuple(self._specs.values())

    def invoke(self, name: str, arguments: Mapping[str, Any]) -> str:
        spec = self._specs.get(name)
        if spec is None:
            raise ScanError(ErrorCategory.UNKNOWN_CAPABILITY, f"unsupported tool: {name}")
        validate_arguments(arguments, spec.parameters)
        func = self._funcs[name]
        try:
            bound = inspect.signature(func).bind(**arguments)
        except TypeError as exc:
            # keys the schema tolerates but the function does not accept
            raise ScanError(ErrorCategory.ARGUMENT, f"{name}: {exc}") from exc
        return func(*bound.args, **bound.kwargs)


def build_default_registry() -> CapabilityRegistry:
    """Registry holding the built-in ``flagFile`` capability."""
    registry = CapabilityRegistry()
    registry.register(
        spec=ToolSpec(
            name=ToolId.FLAG_FILE.value,
            description="flag a file if it has any sensitive data like passwords, API keys, etc",
            parameters=FLAG_FILE_PARAMETERS,
        ),
        func=flag_file,
    )
    return registry


__all__ = [
    "CapabilityRegistry",
    "FileFlag",
    "FLAG_FILE_PARAMETERS",
    "ToolId",
    "build_default_registry",
    "flag_file",
    "validate_arguments",
]
