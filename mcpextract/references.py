"""Locate reference assemblies and sibling dependencies for a target binary."""

from __future__ import annotations

import os
import re
import shutil
import sys
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from .logging import get_logger
from .metadata.reader import framework_major_version
from .models import ReferenceResolution

logger = get_logger("references")

DEFAULT_MAJOR_VERSION = 8
MINIMUM_MAJOR_VERSION = 6
REFERENCE_PACK = "Microsoft.NETCore.App.Ref"
SHARED_RUNTIME = Path("shared") / "Microsoft.NETCore.App"
RUNTIME_FALLBACK_ASSEMBLIES = (
    "System.Runtime",
    "System.Private.CoreLib",
    "mscorlib",
    "System.Text.Json",
    "System.Threading.Tasks",
    "System.Collections",
    "System.ComponentModel",
)

_LINUX_PACK_ROOTS = (
    "/usr/lib/dotnet/packs",
    "/usr/share/dotnet/packs",
    "/usr/local/share/dotnet/packs",
    "/opt/dotnet/packs",
)
_MACOS_PACK_ROOTS = (
    "/usr/local/share/dotnet/packs",
    "/usr/share/dotnet/packs",
    "/opt/dotnet/packs",
)
_WINDOWS_PACK_ROOTS = (
    r"C:\Program Files\dotnet\packs",
    r"C:\Program Files (x86)\dotnet\packs",
)
_VERSION_PART = re.compile(r"\d+")


class ReferenceLocator:
    """Find the reference binaries needed to interpret an assembly in isolation.

    Host lookups (environment, ``dotnet`` executable, platform) are injectable
    so the search can be exercised against a fake installation.
    """

    def __init__(
        self,
        *,
        dotnet_root: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        platform: Optional[str] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
        pack_roots: Optional[Sequence[Path]] = None,
    ) -> None:
        self._dotnet_root = dotnet_root
        self._environ = os.environ if environ is None else environ
        self._platform = platform or sys.platform
        self._which = which
        self._pack_roots = list(pack_roots) if pack_roots is not None else None

    def resolve(
        self,
        assembly_path: Path,
        framework: Optional[str],
        extra_paths: Sequence[Path] = (),
    ) -> ReferenceResolution:
        """Collect references for ``assembly_path`` targeting ``framework``. Never raises."""
        target_version = framework_major_version(framework, DEFAULT_MAJOR_VERSION)
        warnings: List[str] = []
        roots = self.pack_roots()

        selected_version: Optional[int] = None
        references: List[Path] = []
        for version in range(target_version, MINIMUM_MAJOR_VERSION - 1, -1):
            found = _find_reference_pack(roots, version)
            if found:
                references = found
                selected_version = version
                if version < target_version:
                    _warn(
                        warnings,
                        f"Using .NET {version}.0 reference assemblies for target .NET "
                        f"{target_version}.0 assembly. Some newer APIs may not be available for analysis.",
                    )
                break

        used_fallback = False
        if not references:
            references = self._runtime_fallback()
            if references:
                used_fallback = True
                _warn(
                    warnings,
                    "Using current runtime assemblies as fallback. "
                    "Analysis may include runtime-specific details.",
                )
            else:
                _warn(
                    warnings,
                    f"Could not find reference assemblies for .NET {target_version}.0. "
                    "Analysis may be incomplete.",
                )

        extras = [Path(path) for path in extra_paths if Path(path).is_file()]
        for missing in (Path(path) for path in extra_paths if not Path(path).is_file()):
            logger.warning("Configured reference %s does not exist; ignoring it", missing)

        return ReferenceResolution(
            framework=framework,
            target_version=target_version,
            selected_version=selected_version,
            reference_paths=tuple(str(path) for path in [*extras, *references]),
            sibling_paths=tuple(str(path) for path in find_sibling_dependencies(assembly_path)),
            used_runtime_fallback=used_fallback,
            warnings=tuple(warnings),
        )

    def pack_roots(self) -> List[Path]:
        """Candidate ``packs`` directories, the host installation first."""
        if self._pack_roots is not None:
            return list(self._pack_roots)

        roots: List[Path] = []
        if self._platform.startswith("win"):
            for variable in ("ProgramFiles", "ProgramFiles(x86)"):
                base = self._environ.get(variable)
                if base:
                    roots.append(Path(base) / "dotnet" / "packs")
            roots.extend(Path(item) for item in _WINDOWS_PACK_ROOTS)
        elif self._platform == "darwin":
            roots.extend(Path(item) for item in _MACOS_PACK_ROOTS)
        else:
            roots.extend(Path(item) for item in _LINUX_PACK_ROOTS)

        host_root = self.host_dotnet_root()
        if host_root is not None:
            host_packs = host_root / "packs"
            if host_packs not in roots:
                roots.insert(0, host_packs)
        return roots

    def host_dotnet_root(self) -> Optional[Path]:
        """Installation root of the host .NET runtime, if one can be found."""
        if self._dotnet_root is not None:
            return Path(self._dotnet_root).expanduser()

        executable = self._which("dotnet")
        if executable:
            directory = Path(executable).resolve().parent
            for candidate in (directory, *directory.parents):
                if candidate.name.lower() == "dotnet":
                    return candidate

        from_env = self._environ.get("DOTNET_ROOT")
        return Path(from_env) if from_env else None

    def _runtime_fallback(self) -> List[Path]:
        host_root = self.host_dotnet_root()
        if host_root is None:
            return []
        runtime_dir = _newest_version_dir(host_root / SHARED_RUNTIME)
        if runtime_dir is None:
            return []
        found: List[Path] = []
        for name in RUNTIME_FALLBACK_ASSEMBLIES:
            candidate = runtime_dir / f"{name}.dll"
            if candidate.is_file():
                found.append(candidate)
        return found


def find_sibling_dependencies(assembly_path: Path) -> List[Path]:
    """Every ``*.dll`` beside ``assembly_path`` except the target itself."""
    directory = assembly_path.parent
    if not directory.is_dir():
        return []
    target = assembly_path.name.lower()
    siblings = [
        entry
        for entry in directory.iterdir()
        if entry.is_file() and entry.suffix.lower() == ".dll" and entry.name.lower() != target
    ]
    return sorted(siblings, key=lambda entry: entry.name.lower())


def _find_reference_pack(roots: Sequence[Path], version: int) -> List[Path]:
    prefix = f"{version}.0"
    for root in roots:
        pack_dir = root / REFERENCE_PACK
        if not pack_dir.is_dir():
            continue
        try:
            candidates = [entry for entry in pack_dir.iterdir() if entry.is_dir() and entry.name.startswith(prefix)]
        except OSError as exc:
            logger.debug("Cannot list %s: %s", pack_dir, exc)
            continue
        if not candidates:
            continue
        chosen = max(candidates, key=lambda entry: entry.name)
        ref_dir = chosen / "ref" / f"net{prefix}"
        if not ref_dir.is_dir():
            continue
        assemblies = sorted(ref_dir.glob("*.dll"), key=lambda entry: entry.name)
        if assemblies:
            logger.debug("Using reference assemblies from %s", ref_dir)
            return assemblies
    return []


def _newest_version_dir(parent: Path) -> Optional[Path]:
    if not parent.is_dir():
        return None
    versions = [entry for entry in parent.iterdir() if entry.is_dir()]
    if not versions:
        return None
    return max(versions, key=_version_key)


def _version_key(entry: Path) -> Tuple[Tuple[int, ...], str]:
    return tuple(int(part) for part in _VERSION_PART.findall(entry.name)), entry.name


def _warn(warnings: List[str], message: str) -> None:
    warnings.append(message)
    logger.warning(message)


__all__ = [
    "DEFAULT_MAJOR_VERSION",
    "MINIMUM_MAJOR_VERSION",
    "ReferenceLocator",
    "find_sibling_dependencies",
]
