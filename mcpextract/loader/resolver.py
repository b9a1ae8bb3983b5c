"""Assembly resolvers used by the load context to find referenced binaries."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, List, Optional

from ..logging import get_logger
from ..metadata.reader import AssemblyVersion

logger = get_logger("loader.resolver")


class AssemblyResolver(ABC):
    """Maps an assembly name and version to a readable byte stream."""

    @abstractmethod
    def resolve(self, name: str, version: Optional[AssemblyVersion] = None) -> Optional[BinaryIO]:
        """Return an open binary stream for ``name`` or ``None`` when unknown."""


class PathAssemblyResolver(AssemblyResolver):
    """Resolve assemblies from an explicit list of file paths.

    Names are matched against file stems case-insensitively; when several paths
    share a stem, the first one listed wins.
    """

    def __init__(self, paths: Iterable[str | Path]) -> None:
        self._paths: Dict[str, Path] = {}
        for entry in paths:
            path = Path(entry)
            key = path.stem.lower()
            if key in self._paths:
                logger.debug("Ignoring duplicate assembly %s (using %s)", path, self._paths[key])
                continue
            self._paths[key] = path

    @property
    def paths(self) -> List[Path]:
        return list(self._paths.values())

    def resolve(self, name: str, version: Optional[AssemblyVersion] = None) -> Optional[BinaryIO]:
        path = self._paths.get(name.lower())
        if path is None:
            return None
        try:
            return path.open("rb")
        except OSError as exc:
            logger.warning("Could not open referenced assembly %s: %s", path, exc)
            return None


__all__ = ["AssemblyResolver", "PathAssemblyResolver"]
