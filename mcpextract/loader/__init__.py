"""Inspection-only type loading across a closed set of assemblies."""

from __future__ import annotations

from .context import CORE_ASSEMBLY_NAMES, LoadedAssembly, MetadataLoadContext
from .members import CustomAttributeData, MethodInfo, ParameterInfo
from .resolver import AssemblyResolver, PathAssemblyResolver
from .types import (
    ArrayType,
    ByRefType,
    ConstructedType,
    DefinedType,
    GenericParameter,
    PointerType,
    TypeInfo,
    UnresolvedType,
)

__all__ = [
    "ArrayType",
    "AssemblyResolver",
    "ByRefType",
    "CORE_ASSEMBLY_NAMES",
    "ConstructedType",
    "CustomAttributeData",
    "DefinedType",
    "GenericParameter",
    "LoadedAssembly",
    "MetadataLoadContext",
    "MethodInfo",
    "ParameterInfo",
    "PathAssemblyResolver",
    "PointerType",
    "TypeInfo",
    "UnresolvedType",
]
