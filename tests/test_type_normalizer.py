"""Tests for mcpextract.analyzers.types."""

from __future__ import annotations

import pytest

from mcpextract.analyzers.types import normalize, type_name
from mcpextract.loader import ArrayType, ConstructedType, GenericParameter, UnresolvedType
from mcpextract.models import TypeDescriptor


def _system(name: str, *, value: bool = False, namespace: str = "System") -> UnresolvedType:
    return UnresolvedType(namespace, name, is_value_type=value)


STRING = _system("String")
INT32 = _system("Int32", value=True)
TASK = _system("Task", namespace="System.Threading.Tasks")
TASK_OF = _system("Task`1", namespace="System.Threading.Tasks")
NULLABLE = _system("Nullable`1", value=True)
LIST_OF = _system("List`1", namespace="System.Collections.Generic")
DICTIONARY = _system("Dictionary`2", namespace="System.Collections.Generic")


@pytest.mark.parametrize(
    "name, value, expected",
    [
        ("String", False, "string"),
        ("Int32", True, "int"),
        ("Int64", True, "long"),
        ("Double", True, "double"),
        ("Single", True, "float"),
        ("Boolean", True, "bool"),
        ("DateTime", True, "DateTime"),
        ("Guid", True, "Guid"),
        ("Object", False, "object"),
        ("Void", True, "void"),
    ],
)
def test_primitives_use_canonical_short_names(name: str, value: bool, expected: str) -> None:
    descriptor = normalize(_system(name, value=value))

    assert descriptor.type_name == expected
    assert descriptor.is_nullable is not value
    assert not descriptor.is_array


def test_task_of_t_normalizes_to_t() -> None:
    wrapped = ConstructedType(TASK_OF, [STRING])

    assert normalize(wrapped) == normalize(STRING)
    assert normalize(ConstructedType(TASK_OF, [INT32])) == TypeDescriptor("int", False, False)


def test_plain_task_normalizes_to_void() -> None:
    assert normalize(TASK) == TypeDescriptor(type_name="void", is_nullable=False, is_array=False)


def test_nullable_value_type_unwraps() -> None:
    descriptor = normalize(ConstructedType(NULLABLE, [INT32]))

    assert descriptor == TypeDescriptor(type_name="int", is_nullable=True, is_array=False)


def test_arrays_and_lists_expose_element_type() -> None:
    array = normalize(ArrayType(INT32))
    listed = normalize(ConstructedType(LIST_OF, [STRING]))

    assert array.is_array
    assert array.is_nullable
    assert array.type_name == "Int32[]"
    assert array.element_type == TypeDescriptor("int", False, False)
    assert listed.is_array
    assert listed.type_name == "List<string>"
    assert listed.element_type == TypeDescriptor("string", True, False)


def test_task_of_list_unwraps_to_collection() -> None:
    descriptor = normalize(ConstructedType(TASK_OF, [ConstructedType(LIST_OF, [INT32])]))

    assert descriptor.type_name == "List<int>"
    assert descriptor.is_array
    assert descriptor.element_type == TypeDescriptor("int", False, False)


def test_generic_names_render_with_angle_brackets() -> None:
    dictionary = ConstructedType(DICTIONARY, [STRING, ConstructedType(LIST_OF, [INT32])])

    assert type_name(dictionary) == "Dictionary<string, List<int>>"
    assert not normalize(dictionary).is_array


def test_custom_types_keep_their_bare_name() -> None:
    reference_type = UnresolvedType("Contoso.Weather", "Forecast")
    struct_type = UnresolvedType("Contoso.Weather", "Coordinates", is_value_type=True)

    assert normalize(reference_type) == TypeDescriptor("Forecast", True, False)
    assert normalize(struct_type) == TypeDescriptor("Coordinates", False, False)


def test_generic_parameters_are_named_after_their_declaration() -> None:
    descriptor = normalize(GenericParameter("TItem", 0))

    assert descriptor.type_name == "TItem"
    assert descriptor.is_nullable


def test_to_dict_uses_camel_case_keys() -> None:
    descriptor = normalize(ArrayType(STRING))

    assert descriptor.to_dict() == {
        "typeName": "String[]",
        "isNullable": True,
        "isArray": True,
        "elementType": {"typeName": "string", "isNullable": True, "isArray": False, "elementType": None},
    }
