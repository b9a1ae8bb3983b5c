"""Tool discovery, attribute matching and type normalization."""

from __future__ import annotations

from .attributes import NameMatcher, find_marker, get_attribute_property
from .tools import AnalysisError, AnalyzerSettings, ToolAnalyzer
from .types import normalize, type_name

__all__ = [
    "AnalysisError",
    "AnalyzerSettings",
    "NameMatcher",
    "ToolAnalyzer",
    "find_marker",
    "get_attribute_property",
    "normalize",
    "type_name",
]
