"""Configuration loading for mcp-extract (.mcpextract.yml)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .analyzers.tools import AnalyzerSettings

CONFIG_FILENAME = ".mcpextract.yml"
DEBUG_ENV = "MCP_EXTRACT_DEBUG"
# Variables the reference locator consults when probing for a .NET install.
_LOCATOR_ENV = ("DOTNET_ROOT", "ProgramFiles", "ProgramFiles(x86)")


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class ExtractConfig:
    """Represents the settings defined in .mcpextract.yml."""

    root: Path
    dotnet_root: Optional[Path] = None
    format: Optional[str] = None
    debug: bool = False
    reference_paths: List[Path] = field(default_factory=list)
    log_file: Optional[Path] = None


def load_config(config_path: Path, *, required: bool = False) -> ExtractConfig:
    """Load configuration from disk.

    ``config_path`` may name the file or the directory holding it. A missing
    file yields defaults unless ``required`` is set.
    """
    config_file = _resolve_config_path(config_path)
    root = config_file.parent

    if not config_file.exists():
        if required:
            raise ConfigError(f"Configuration file not found: {config_file}")
        return ExtractConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    dotnet_root_str = _as_str(data.get("dotnet_root"))
    log_file_str = _as_str(data.get("log_file"))
    output_format = _as_str(data.get("format"))

    return ExtractConfig(
        root=root,
        dotnet_root=_relative_to(root, dotnet_root_str) if dotnet_root_str else None,
        format=output_format.lower() if output_format else None,
        debug=_as_bool(data.get("debug")) or False,
        reference_paths=[_relative_to(root, item) for item in _as_str_list(data.get("reference_paths"))],
        log_file=_relative_to(root, log_file_str) if log_file_str else None,
    )


def debug_from_environment(environ: Mapping[str, str]) -> bool:
    """``MCP_EXTRACT_DEBUG`` set to ``1`` or ``true`` (any case) enables debug output."""
    value = environ.get(DEBUG_ENV, "").strip().lower()
    return value in {"1", "true"}


def build_settings(
    config: ExtractConfig,
    *,
    environ: Optional[Mapping[str, str]] = None,
    dotnet_root: Optional[Path] = None,
) -> AnalyzerSettings:
    """Merge file configuration, environment and CLI overrides into engine settings."""
    env = os.environ if environ is None else environ
    return AnalyzerSettings(
        debug=config.debug or debug_from_environment(env),
        dotnet_root=dotnet_root or config.dotnet_root,
        reference_paths=tuple(config.reference_paths),
        environment={name: env[name] for name in _LOCATOR_ENV if env.get(name)},
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _relative_to(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "ExtractConfig",
    "build_settings",
    "debug_from_environment",
    "load_config",
]
