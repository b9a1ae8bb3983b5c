"""Tests for mcpextract.analyzers.attributes."""

from __future__ import annotations

import logging
from typing import List, Sequence

import pytest

from mcpextract.analyzers.attributes import (
    PARAMETER_MARKERS,
    TOOL_MARKERS,
    describe_attribute,
    find_marker,
    get_attribute_property,
    to_text,
)
from mcpextract.loader import CustomAttributeData, UnresolvedType
from mcpextract.metadata.signatures import AttributeArgument, AttributeNamedArgument


def _attribute(
    full_name: str,
    arguments: Sequence[object] = (),
    named: Sequence[tuple] = (),
    parameter_names: Sequence[str] = (),
) -> CustomAttributeData:
    namespace, _, name = full_name.rpartition(".")
    names: List[str] = list(parameter_names)
    return CustomAttributeData(
        UnresolvedType(namespace, name),
        [AttributeArgument("System.String", value) for value in arguments],
        [
            AttributeNamedArgument(key, False, AttributeArgument("System.String", value))
            for key, value in named
        ],
        lambda: names,
    )


def test_find_marker_matches_canonical_and_loose_names() -> None:
    canonical = _attribute("ModelContextProtocol.Server.McpServerToolAttribute")
    legacy = _attribute("Vendor.McpToolAttribute")
    unrelated = _attribute("System.ComponentModel.DescriptionAttribute", ["text"])

    assert find_marker([unrelated, canonical], TOOL_MARKERS) is canonical
    assert find_marker([legacy], TOOL_MARKERS) is legacy
    assert find_marker([unrelated], TOOL_MARKERS) is None


def test_find_marker_returns_first_matching_attribute_in_declaration_order() -> None:
    legacy = _attribute("Vendor.McpServerToolHelperAttribute")
    canonical = _attribute("ModelContextProtocol.Server.McpServerToolAttribute")

    assert find_marker([legacy, canonical], TOOL_MARKERS) is legacy


def test_find_marker_matches_parameter_markers() -> None:
    marker = _attribute("Vendor.McpParameterAttribute", ["desc"])

    assert find_marker([marker], PARAMETER_MARKERS) is marker


def test_named_argument_wins_case_insensitively() -> None:
    attribute = _attribute(
        "ModelContextProtocol.Server.McpServerToolAttribute",
        arguments=["positional"],
        named=[("name", "echo")],
    )

    assert get_attribute_property([attribute], "McpServerToolAttribute", "Name") == "echo"


def test_named_argument_with_null_value_stops_the_search() -> None:
    first = _attribute("Vendor.ToolDescriptionAttribute", named=[("Description", None)])
    second = _attribute("Vendor.ToolDescriptionAttribute", ["second"])

    assert get_attribute_property([first, second], "ToolDescriptionAttribute", "Description") is None


def test_constructor_parameter_name_selects_argument() -> None:
    attribute = _attribute(
        "Vendor.McpToolAttribute",
        arguments=["Adds numbers", "add"],
        parameter_names=["description", "name"],
    )

    assert get_attribute_property([attribute], "McpToolAttribute", "Name") == "add"
    assert get_attribute_property([attribute], "McpToolAttribute", "Description") == "Adds numbers"


@pytest.mark.parametrize(
    "arguments, property_name, expected",
    [
        (["only"], "Description", "only"),
        (["tool", "does things"], "Description", "does things"),
        (["tool", "does things"], "Name", "tool"),
        (["tool", "does things"], "Title", None),
    ],
)
def test_positional_conventions(arguments: List[str], property_name: str, expected: str | None) -> None:
    attribute = _attribute("Vendor.McpToolAttribute", arguments=arguments)

    assert get_attribute_property([attribute], "McpToolAttribute", property_name) == expected


def test_search_moves_on_when_an_attribute_supplies_nothing() -> None:
    empty = _attribute("System.ComponentModel.DescriptionAttribute")
    filled = _attribute("System.ComponentModel.DescriptionAttribute", ["from second"])

    assert get_attribute_property([empty, filled], "DescriptionAttribute", "Description") == "from second"


def test_attribute_name_matches_full_name_suffix() -> None:
    attribute = _attribute("System.ComponentModel.DescriptionAttribute", ["text"])

    assert get_attribute_property([attribute], "DescriptionAttribute", "Description") == "text"
    assert get_attribute_property([attribute], "OtherAttribute", "Description") is None


def test_debug_lookup_logs_missing_property(caplog: pytest.LogCaptureFixture) -> None:
    attribute = _attribute("Vendor.McpToolAttribute", arguments=["a", "b"])

    with caplog.at_level(logging.DEBUG, logger="mcpextract"):
        get_attribute_property([attribute], "McpToolAttribute", "Title", debug=True)

    assert "property Title not present. ConstructorArgCount=2" in caplog.text


def test_to_text_renders_values_like_dotnet() -> None:
    assert to_text(None) is None
    assert to_text(True) == "True"
    assert to_text(False) == "False"
    assert to_text(3) == "3"
    assert to_text([AttributeArgument("System.String", "a"), AttributeArgument("System.String", None)]) == "a, <null>"


def test_describe_attribute_lists_arguments() -> None:
    attribute = _attribute(
        "ModelContextProtocol.Server.McpServerToolAttribute",
        arguments=["x"],
        named=[("Name", "echo")],
    )

    lines = describe_attribute(attribute)

    assert lines[0] == "Type=ModelContextProtocol.Server.McpServerToolAttribute"
    assert "    [0] ArgType=System.String Value=x" in lines
    assert "    [0] MemberName=Name Type=System.String Value=echo" in lines
