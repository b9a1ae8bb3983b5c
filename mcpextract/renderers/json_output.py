"""Structured JSON document of discovered tools."""

from __future__ import annotations

import json

from ..models import AnalysisResult
from .base import Renderer


class JsonRenderer(Renderer):
    """Writes ``{"tools": [...]}`` with camelCase keys and explicit nulls."""

    name = "json"

    def render(self, result: AnalysisResult, source_name: str) -> str:
        return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)


__all__ = ["JsonRenderer"]
