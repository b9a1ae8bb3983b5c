"""Core data models shared across mcpextract components."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class TypeDescriptor:
    """Canonical description of a parameter or return type."""

    type_name: str
    is_nullable: bool
    is_array: bool = False
    element_type: Optional["TypeDescriptor"] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "typeName": self.type_name,
            "isNullable": self.is_nullable,
            "isArray": self.is_array,
            "elementType": self.element_type.to_dict() if self.element_type is not None else None,
        }


@dataclass(frozen=True)
class ParameterDescriptor:
    """A tool parameter exposed to MCP clients."""

    name: str
    description: str
    type: TypeDescriptor
    is_required: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "type": self.type.to_dict(),
            "isRequired": self.is_required,
        }


@dataclass(frozen=True)
class ToolDescriptor:
    """A method annotated as an MCP tool."""

    name: str
    description: str
    parameters: Tuple[ParameterDescriptor, ...]
    return_type: TypeDescriptor
    method_name: str
    class_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": [parameter.to_dict() for parameter in self.parameters],
            "returnType": self.return_type.to_dict(),
            "methodName": self.method_name,
            "className": self.class_name,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Everything extracted from one assembly."""

    tools: Tuple[ToolDescriptor, ...] = ()
    module_name: str = ""
    module_version: str = ""
    module_description: Optional[str] = None
    module_vendor: Optional[str] = None
    module_product: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"tools": [tool.to_dict() for tool in self.tools]}


@dataclass(frozen=True)
class ReferenceResolution:
    """Reference binaries selected for interpreting a target assembly."""

    framework: Optional[str]
    target_version: int
    selected_version: Optional[int] = None
    reference_paths: Tuple[str, ...] = ()
    sibling_paths: Tuple[str, ...] = ()
    used_runtime_fallback: bool = False
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def all_paths(self) -> List[str]:
        """Reference binaries first, then sibling dependencies."""
        return [*self.reference_paths, *self.sibling_paths]


__all__ = [
    "AnalysisResult",
    "ParameterDescriptor",
    "ReferenceResolution",
    "ToolDescriptor",
    "TypeDescriptor",
]
