"""Discover MCP tools in a compiled assembly without executing it."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ..loader.context import CORE_ASSEMBLY_NAMES, LoadedAssembly, MetadataLoadContext
from ..loader.members import CustomAttributeData, MethodInfo, ParameterInfo
from ..loader.resolver import PathAssemblyResolver
from ..logging import get_logger
from ..metadata.pe import MalformedBinaryError
from ..metadata.reader import MetadataReader
from ..models import AnalysisResult, ParameterDescriptor, ReferenceResolution, ToolDescriptor
from ..references import ReferenceLocator
from .attributes import (
    PARAMETER_MARKERS,
    TOOL_ATTRIBUTE,
    TOOL_MARKERS,
    describe_attribute,
    find_marker,
    get_attribute_property,
    to_text,
)
from .types import normalize

logger = get_logger("analyzers.tools")

DEFAULT_FRAMEWORK = ".NETCoreApp,Version=v8.0"
DEFAULT_MODULE_VERSION = "1.0.0"
CANCELLATION_TOKEN = "System.Threading.CancellationToken"

_DESCRIPTION_ATTRIBUTES = (
    "DescriptionAttribute",
    "McpServerToolDescriptionAttribute",
    "McpToolDescriptionAttribute",
    "ToolDescriptionAttribute",
)
_MODULE_ATTRIBUTES = {
    "AssemblyDescriptionAttribute": "description",
    "AssemblyCompanyAttribute": "vendor",
    "AssemblyProductAttribute": "product",
}


class AnalysisError(RuntimeError):
    """Raised when an assembly cannot be loaded or walked."""

    def __init__(self, path: Path | str, message: str) -> None:
        super().__init__(f"Failed to analyze assembly '{path}': {message}")
        self.path = Path(path)


@dataclass(frozen=True)
class AnalyzerSettings:
    """Engine settings, read once at startup and injected into :class:`ToolAnalyzer`."""

    debug: bool = False
    dotnet_root: Optional[Path] = None
    reference_paths: Tuple[Path, ...] = ()
    environment: Dict[str, str] = field(default_factory=dict)


class ToolAnalyzer:
    """Walks an assembly's types and methods and extracts MCP tool descriptors."""

    def __init__(
        self,
        settings: AnalyzerSettings | None = None,
        *,
        locator: ReferenceLocator | None = None,
    ) -> None:
        self.settings = settings or AnalyzerSettings()
        self._locator = locator or ReferenceLocator(
            dotnet_root=self.settings.dotnet_root, environ=self.settings.environment
        )
        self.last_resolution: Optional[ReferenceResolution] = None

    def analyze_assembly(self, assembly_path: Path | str) -> AnalysisResult:
        """Analyze the binary at ``assembly_path``.

        Raises :class:`FileNotFoundError` when the file is missing and
        :class:`AnalysisError` when it cannot be loaded or walked.
        """
        path = Path(assembly_path)
        if not path.is_file():
            raise FileNotFoundError(f"Assembly not found: {assembly_path}")

        try:
            framework = self.detect_target_framework(path)
        except MalformedBinaryError as exc:
            raise AnalysisError(path, str(exc)) from exc
        self._debug("Detected target framework: %s", framework)

        resolution = self._locator.resolve(path, framework, self.settings.reference_paths)
        self.last_resolution = resolution
        self._debug(
            "Reference assemblies (%d): %s",
            len(resolution.reference_paths),
            ", ".join(Path(item).name for item in resolution.reference_paths),
        )
        self._debug(
            "Sibling dependencies (%d): %s",
            len(resolution.sibling_paths),
            ", ".join(Path(item).name for item in resolution.sibling_paths),
        )

        resolver = PathAssemblyResolver([*resolution.all_paths, str(path)])
        core_name = _core_assembly_name(resolution.reference_paths)
        self._debug("Core assembly selected for load context: %s", core_name or "(none)")

        with MetadataLoadContext(resolver, core_name) as context:
            try:
                assembly = context.load_from_assembly_path(path)
                return self._analyze(assembly)
            except Exception as exc:
                raise AnalysisError(path, str(exc)) from exc

    @staticmethod
    def detect_target_framework(path: Path) -> str:
        """Framework moniker of ``path``; ``.NETCoreApp,Version=v8.0`` when nothing says otherwise."""
        with MetadataReader.from_path(path) as reader:
            return reader.read_target_framework() or DEFAULT_FRAMEWORK

    # ------------------------------------------------------------------
    # Walk

    def _analyze(self, assembly: LoadedAssembly) -> AnalysisResult:
        version = str(assembly.version) if assembly.version is not None else DEFAULT_MODULE_VERSION
        module = self._module_attributes(assembly)

        tools: List[ToolDescriptor] = []
        for type_def in assembly.types():
            for method in type_def.get_methods():
                tool = self.analyze_method(method)
                if tool is not None:
                    tools.append(tool)

        logger.debug("Found %d MCP tools in %s", len(tools), assembly.name)
        return AnalysisResult(
            tools=tuple(tools),
            module_name=assembly.name,
            module_version=version,
            module_description=module.get("description"),
            module_vendor=module.get("vendor"),
            module_product=module.get("product"),
        )

    def _module_attributes(self, assembly: LoadedAssembly) -> Dict[str, Optional[str]]:
        values: Dict[str, Optional[str]] = {}
        try:
            attributes = assembly.assembly_attributes()
        except MalformedBinaryError as exc:
            logger.warning("Could not read assembly attributes of %s: %s", assembly.name, exc)
            return values
        for attribute in attributes:
            key = _MODULE_ATTRIBUTES.get(attribute.name)
            if key is not None and attribute.constructor_arguments:
                values[key] = to_text(attribute.constructor_arguments[0].value)
        return values

    def analyze_method(self, method: MethodInfo) -> Optional[ToolDescriptor]:
        """Describe ``method`` as a tool, or return ``None`` when it carries no tool marker."""
        attributes = method.custom_attributes
        owner = method.declaring_type.full_name
        context = f"{owner}.{method.name}"

        marker = find_marker(attributes, TOOL_MARKERS)
        if marker is None:
            return None
        self._dump_attribute(marker, f"method {context}")

        tool_name = (
            self._lookup(attributes, marker.name, "Name")
            or self._lookup(attributes, TOOL_ATTRIBUTE, "Name")
            or method.name
        )
        description = self._tool_description(attributes, marker, context)

        parameters = tuple(
            self.analyze_parameter(parameter)
            for parameter in method.parameters
            if parameter.parameter_type.full_name != CANCELLATION_TOKEN
        )

        return ToolDescriptor(
            name=tool_name,
            description=description,
            parameters=parameters,
            return_type=normalize(method.return_type),
            method_name=method.name,
            class_name=owner or "Unknown",
        )

    def analyze_parameter(self, parameter: ParameterInfo) -> ParameterDescriptor:
        attributes = parameter.custom_attributes
        description = ""
        marker = find_marker(attributes, PARAMETER_MARKERS)
        if marker is not None:
            description = self._lookup(attributes, marker.name, "Description") or ""
        if not description:
            description = self._lookup(attributes, "DescriptionAttribute", "Description") or ""

        type_descriptor = normalize(parameter.parameter_type)
        return ParameterDescriptor(
            name=parameter.name or "unknown",
            description=description,
            type=type_descriptor,
            is_required=not parameter.has_default_value and not type_descriptor.is_nullable,
        )

    def _tool_description(
        self, attributes: Sequence[CustomAttributeData], marker: CustomAttributeData, context: str
    ) -> str:
        for attribute_name in _DESCRIPTION_ATTRIBUTES:
            found = self._lookup(attributes, attribute_name, "Description")
            if found is not None:
                return found or self._marker_description(attributes, marker, context)
        found = self._lookup(attributes, TOOL_ATTRIBUTE, "Description")
        if found:
            return found
        return self._marker_description(attributes, marker, context)

    def _marker_description(
        self, attributes: Sequence[CustomAttributeData], marker: CustomAttributeData, context: str
    ) -> str:
        self._debug("No description found for %s in separate description attributes", context)
        for attribute in attributes:
            self._dump_attribute(attribute, f"method {context} - final dump")
        return self._lookup(attributes, marker.name, "Description") or ""

    # ------------------------------------------------------------------
    # Diagnostics

    def _lookup(self, attributes: Sequence[CustomAttributeData], attribute_name: str, property_name: str) -> Optional[str]:
        return get_attribute_property(attributes, attribute_name, property_name, debug=self.settings.debug)

    def _debug(self, message: str, *args: object) -> None:
        if self.settings.debug:
            logger.debug(message, *args)

    def _dump_attribute(self, attribute: CustomAttributeData, context: str) -> None:
        if not self.settings.debug:
            return
        lines = describe_attribute(attribute)
        logger.debug("Attribute data for %s: %s", context, "\n".join(lines))


def _core_assembly_name(reference_paths: Sequence[str]) -> Optional[str]:
    for entry in reference_paths:
        stem = Path(entry).stem
        if stem in CORE_ASSEMBLY_NAMES:
            return stem
    return None


__all__ = [
    "AnalysisError",
    "AnalyzerSettings",
    "CANCELLATION_TOKEN",
    "DEFAULT_FRAMEWORK",
    "ToolAnalyzer",
]
