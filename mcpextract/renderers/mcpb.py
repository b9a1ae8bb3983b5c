"""MCPB packaging manifest for the analyzed server binary."""

from __future__ import annotations

import json
from pathlib import PurePath
from typing import Any, Dict, List

from ..models import AnalysisResult
from .base import Renderer

MANIFEST_VERSION = "0.2"
DEFAULT_VERSION = "1.0.0"


class McpbRenderer(Renderer):
    """Writes an MCPB manifest that launches the assembly through ``dotnet``."""

    name = "mcpb"

    def render(self, result: AnalysisResult, source_name: str) -> str:
        return json.dumps(build_manifest(result, source_name), indent=2, ensure_ascii=False)


def build_manifest(result: AnalysisResult, source_name: str) -> Dict[str, Any]:
    """Manifest mapping with absent optional fields left out."""
    tools: List[Dict[str, Any]] = []
    for tool in result.tools:
        entry: Dict[str, Any] = {"name": tool.name}
        if tool.description:
            entry["description"] = tool.description
        tools.append(entry)

    manifest: Dict[str, Any] = {
        "manifest_version": MANIFEST_VERSION,
        "name": PurePath(source_name).stem,
        "version": result.module_version or DEFAULT_VERSION,
        "description": result.module_description
        if result.module_description is not None
        else f"MCP server extracted from {source_name}",
    }
    if result.module_vendor is not None:
        manifest["author"] = {"name": result.module_vendor}
    manifest["server"] = {
        "type": "binary",
        "entry_point": source_name,
        "mcp_config": {
            "command": "dotnet",
            "args": ["${__dirname}/" + source_name],
        },
    }
    if tools:
        manifest["tools"] = tools
    manifest["tools_generated"] = False
    manifest["prompts_generated"] = False
    return manifest


__all__ = ["McpbRenderer", "build_manifest"]
