"""Loose attribute matching across MCP SDK versions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from ..loader.members import CustomAttributeData
from ..logging import get_logger

logger = get_logger("analyzers.attributes")

TOOL_ATTRIBUTE = "McpServerToolAttribute"
PARAMETER_ATTRIBUTE = "McpToolParameterAttribute"


@dataclass(frozen=True)
class NameMatcher:
    """Match an attribute by exact simple name, or by substring of its simple or full name."""

    pattern: str
    exact: bool = False

    def matches(self, attribute: CustomAttributeData) -> bool:
        if self.exact:
            return attribute.name == self.pattern
        return self.pattern in attribute.name or self.pattern in (attribute.full_name or "")


TOOL_MARKERS = (
    NameMatcher(TOOL_ATTRIBUTE, exact=True),
    NameMatcher("McpTool"),
    NameMatcher("McpServerTool"),
)

PARAMETER_MARKERS = (
    NameMatcher(PARAMETER_ATTRIBUTE, exact=True),
    NameMatcher("McpParameter"),
    NameMatcher("McpToolParameter"),
)


def find_marker(
    attributes: Iterable[CustomAttributeData], matchers: Sequence[NameMatcher]
) -> Optional[CustomAttributeData]:
    """Return the first attribute accepted by any matcher, in declaration order."""
    for attribute in attributes:
        if any(matcher.matches(attribute) for matcher in matchers):
            return attribute
    return None


def get_attribute_property(
    attributes: Sequence[CustomAttributeData],
    attribute_name: str,
    property_name: str,
    *,
    debug: bool = False,
) -> Optional[str]:
    """Look up ``property_name`` on the first attribute called ``attribute_name`` that supplies it.

    Named arguments win, then a constructor argument whose declared parameter
    name matches, then positional conventions (``Name`` is the first argument,
    ``Description`` the second of two or the only one). An attribute that
    matches by name but supplies nothing passes the search on to the next one.
    """
    for attribute in attributes:
        if not _is_named(attribute, attribute_name):
            continue

        for named in attribute.named_arguments:
            if named.name.lower() == property_name.lower():
                value = to_text(named.argument.value)
                if debug:
                    logger.debug(
                        "Found %s on attribute %s via named argument '%s': %s",
                        property_name,
                        attribute_name,
                        named.name,
                        value if value is not None else "<null>",
                    )
                return value

        arguments = attribute.constructor_arguments
        if arguments:
            names = attribute.constructor_parameter_names
            for index in range(min(len(names), len(arguments))):
                if names[index].lower() == property_name.lower():
                    return to_text(arguments[index].value)

            wanted = property_name.lower()
            if wanted == "name":
                return to_text(arguments[0].value)
            if wanted == "description":
                if len(arguments) > 1:
                    return to_text(arguments[1].value)
                return to_text(arguments[0].value)

        if debug:
            sample = ", ".join(
                to_text(argument.value) or "<null>" for argument in arguments[:5]
            )
            logger.debug(
                "Attribute %s found but property %s not present. ConstructorArgCount=%d. Sample values: %s",
                attribute_name,
                property_name,
                len(arguments),
                sample,
            )
    return None


def describe_attribute(attribute: CustomAttributeData) -> List[str]:
    """Human-readable dump of an attribute's arguments for debug logs."""
    lines = [f"Type={attribute.full_name or attribute.name}"]
    lines.append(f"  ConstructorArguments ({len(attribute.constructor_arguments)}):")
    for index, argument in enumerate(attribute.constructor_arguments):
        lines.append(f"    [{index}] ArgType={argument.type_name} Value={_display(argument.value)}")
    lines.append(f"  NamedArguments ({len(attribute.named_arguments)}):")
    for index, named in enumerate(attribute.named_arguments):
        lines.append(
            f"    [{index}] MemberName={named.name} Type={named.argument.type_name} "
            f"Value={_display(named.argument.value)}"
        )
    return lines


def to_text(value: object) -> Optional[str]:
    """Render a decoded attribute value the way .NET's ``ToString`` would for simple values."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, list):
        return ", ".join(_display(getattr(item, "value", item)) for item in value)
    return str(value)


def _display(value: object) -> str:
    text = to_text(value)
    return "<null>" if text is None else text


def _is_named(attribute: CustomAttributeData, attribute_name: str) -> bool:
    if attribute.name == attribute_name:
        return True
    full_name = attribute.full_name
    return bool(full_name) and full_name.endswith("." + attribute_name)


__all__ = [
    "NameMatcher",
    "PARAMETER_ATTRIBUTE",
    "PARAMETER_MARKERS",
    "TOOL_ATTRIBUTE",
    "TOOL_MARKERS",
    "describe_attribute",
    "find_marker",
    "get_attribute_property",
    "to_text",
]
