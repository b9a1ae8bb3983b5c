"""Python stub declarations for discovered tools."""

from __future__ import annotations

import keyword
from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader

from ..models import AnalysisResult, ToolDescriptor, TypeDescriptor
from .base import Renderer

_TEMPLATE = "python_stubs.j2"
_TYPE_HINTS = {
    "string": "str",
    "int": "int",
    "long": "int",
    "double": "float",
    "float": "float",
    "bool": "bool",
    "datetime": "datetime",
    "guid": "str",
    "object": "Any",
    "void": "None",
}


class PythonStubRenderer(Renderer):
    """Renders one typed ``def`` per tool from a Jinja template."""

    name = "python"

    def __init__(self, templates_dir: Path | None = None) -> None:
        self.templates_dir = templates_dir or Path(__file__).with_name("templates")
        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def render(self, result: AnalysisResult, source_name: str) -> str:
        template = self._env.get_template(_TEMPLATE)
        return template.render(
            source_name=source_name,
            tools=[_tool_context(tool) for tool in result.tools],
        )


def sanitize_python_name(name: str) -> str:
    """Make ``name`` a valid identifier: invalid characters become ``_``, no leading digit.

    Python keywords such as ``class`` or ``from`` get a trailing ``_``.
    """
    sanitized = "".join(char if char.isalnum() or char == "_" else "_" for char in name)
    if sanitized and sanitized[0].isdigit():
        sanitized = "_" + sanitized
    if keyword.iskeyword(sanitized):
        sanitized += "_"
    return sanitized or "_unnamed"


def python_type_hint(descriptor: TypeDescriptor) -> str:
    hint = _TYPE_HINTS.get(descriptor.type_name.lower(), "Any")
    if descriptor.is_array and descriptor.element_type is not None:
        hint = f"List[{python_type_hint(descriptor.element_type)}]"
    if descriptor.is_nullable and hint != "None":
        hint = f"Optional[{hint}]"
    return hint


def _tool_context(tool: ToolDescriptor) -> Dict[str, Any]:
    parameters: List[str] = []
    arguments: List[Dict[str, str]] = []
    seen_optional = False
    for parameter in tool.parameters:
        name = sanitize_python_name(parameter.name)
        hint = python_type_hint(parameter.type)
        if not parameter.is_required:
            seen_optional = True
            parameters.append(f"{name}: {hint} = None")
        else:
            # Required parameters after an optional one become keyword-only.
            if seen_optional and "*" not in parameters:
                parameters.append("*")
            parameters.append(f"{name}: {hint}")
        arguments.append(
            {
                "name": name,
                "hint": hint,
                "description": parameter.description or "No description provided",
            }
        )
    return {
        "name": sanitize_python_name(tool.name),
        "class_name": tool.class_name,
        "comment_lines": tool.description.splitlines(),
        "doc_lines": tool.description.replace('"""', '\\"\\"\\"').splitlines(),
        "parameters": parameters,
        "arguments": arguments,
        "return_hint": python_type_hint(tool.return_type),
    }


__all__ = ["PythonStubRenderer", "python_type_hint", "sanitize_python_name"]
