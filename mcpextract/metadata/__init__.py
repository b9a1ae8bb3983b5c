"""Binary metadata reader for PE/CLI assemblies."""

from __future__ import annotations

from .pe import MalformedBinaryError
from .reader import AssemblyReference, AssemblyVersion, MetadataReader, framework_major_version
from .signatures import ElementType, MethodSignature, SignatureDecoder
from .tables import CodedToken, TableId

__all__ = [
    "AssemblyReference",
    "AssemblyVersion",
    "CodedToken",
    "ElementType",
    "MalformedBinaryError",
    "MetadataReader",
    "MethodSignature",
    "SignatureDecoder",
    "TableId",
    "framework_major_version",
]
