"""Normalize loaded types into the canonical vocabulary of tool descriptors."""

from __future__ import annotations

from typing import Optional

from ..loader.types import TypeInfo
from ..models import TypeDescriptor

_PRIMITIVE_NAMES = {
    "System.String": "string",
    "System.Int32": "int",
    "System.Int64": "long",
    "System.Double": "double",
    "System.Single": "float",
    "System.Boolean": "bool",
    "System.DateTime": "DateTime",
    "System.Guid": "Guid",
    "System.Object": "object",
    "System.Void": "void",
}

_COLLECTION_DEFINITIONS = frozenset(
    {
        "System.Collections.Generic.List`1",
        "System.Collections.Generic.IList`1",
        "System.Collections.Generic.ICollection`1",
        "System.Collections.Generic.IEnumerable`1",
    }
)

_NULLABLE_DEFINITION = "System.Nullable`1"
_TASK_DEFINITION = "System.Threading.Tasks.Task`1"
_TASK = "System.Threading.Tasks.Task"


def normalize(type_info: TypeInfo) -> TypeDescriptor:
    """Describe ``type_info`` as a :class:`TypeDescriptor`. Never raises for any loaded type."""
    is_nullable = False
    actual = type_info

    if _definition_name(actual) == _NULLABLE_DEFINITION and actual.generic_arguments:
        is_nullable = True
        actual = actual.generic_arguments[0]

    # Reference types may always be null.
    if not actual.is_value_type:
        is_nullable = True

    is_array = False
    element: Optional[TypeDescriptor] = None
    if actual.is_array and actual.element_type is not None:
        is_array = True
        element = normalize(actual.element_type)
    elif _definition_name(actual) in _COLLECTION_DEFINITIONS and actual.generic_arguments:
        is_array = True
        element = normalize(actual.generic_arguments[0])

    if _definition_name(actual) == _TASK_DEFINITION and actual.generic_arguments:
        return normalize(actual.generic_arguments[0])

    if actual.full_name == _TASK:
        return TypeDescriptor(type_name="void", is_nullable=False, is_array=False)

    return TypeDescriptor(
        type_name=type_name(actual),
        is_nullable=is_nullable,
        is_array=is_array,
        element_type=element,
    )


def type_name(type_info: TypeInfo) -> str:
    """Display name: C#-style keywords for primitives, ``Base<Args>`` for generics."""
    primitive = _PRIMITIVE_NAMES.get(type_info.full_name or "")
    if primitive is not None:
        return primitive

    if type_info.is_generic_type:
        base_name = type_info.generic_type_definition().name
        tick = base_name.find("`")
        if tick > 0:
            base_name = base_name[:tick]
        arguments = ", ".join(type_name(argument) for argument in type_info.generic_arguments)
        return f"{base_name}<{arguments}>"

    return type_info.name


def _definition_name(type_info: TypeInfo) -> Optional[str]:
    if not type_info.is_generic_type:
        return None
    return type_info.generic_type_definition().full_name


__all__ = ["normalize", "type_name"]
