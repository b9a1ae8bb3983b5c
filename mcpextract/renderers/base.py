"""Base classes for output renderer plugins."""

from abc import ABC, abstractmethod

from ..models import AnalysisResult


class Renderer(ABC):
    """Contract for renderers that turn an analysis result into a document."""

    name: str = ""

    @abstractmethod
    def render(self, result: AnalysisResult, source_name: str) -> str:
        """Render ``result``; ``source_name`` is the analyzed file's name."""
