"""Read-only access to the CLI metadata of a single binary module."""

from __future__ import annotations

import mmap
import re
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, List, Optional, Tuple

from ..logging import get_logger
from .heaps import BlobHeap, GuidHeap, StringHeap
from .pe import MalformedBinaryError, StreamHeader, parse_cli_image
from .signatures import ArgumentType, ElementType, decode_custom_attribute
from .tables import CodedToken, TableId, TableStream, decode_table_stream

_TARGET_FRAMEWORK_ATTRIBUTE = "TargetFrameworkAttribute"
_RUNTIME_REFERENCE = "System.Runtime"
_MIN_RUNTIME_MAJOR = 6
_VERSION_PATTERN = re.compile(r"Version=v(\d+)")

logger = get_logger("metadata")


@dataclass(frozen=True)
class AssemblyVersion:
    """Four-part assembly version."""

    major: int
    minor: int
    build: int
    revision: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.build}.{self.revision}"


@dataclass(frozen=True)
class AssemblyReference:
    """An entry of the AssemblyRef table."""

    name: str
    version: AssemblyVersion
    culture: str = ""


class MetadataReader:
    """Parses a PE/CLI image and exposes its heaps and tables.

    The reader owns the underlying buffer; use it as a context manager or call
    :meth:`close` so that memory maps and file handles are released.
    """

    def __init__(self, data: bytes | mmap.mmap, *, name: str = "<memory>", handle: BinaryIO | None = None) -> None:
        self.name = name
        self._data: bytes | mmap.mmap | None = data
        self._handle = handle
        view = memoryview(data)
        try:
            image = parse_cli_image(view)
            self.metadata_version = image.metadata_version
            streams = image.streams
            table_header = streams.get("#~") or streams.get("#-")
            if table_header is None:
                raise MalformedBinaryError("metadata has no table stream")
            self.tables: TableStream = decode_table_stream(
                view[table_header.offset : table_header.offset + table_header.size]
            )
            self.strings = StringHeap(_copy_stream(view, streams.get("#Strings")))
            self.blobs = BlobHeap(_copy_stream(view, streams.get("#Blob")))
            self.guids = GuidHeap(_copy_stream(view, streams.get("#GUID")))
        except Exception as exc:
            # Frames of the failed parse still hold views of the buffer.
            traceback.clear_frames(exc.__traceback__)
            view.release()
            self.close()
            raise
        view.release()

    @classmethod
    def from_path(cls, path: str | Path) -> "MetadataReader":
        """Memory-map ``path`` read-only and parse it."""
        file_path = Path(path)
        if not file_path.is_file():
            raise FileNotFoundError(f"Assembly not found: {file_path}")
        handle = file_path.open("rb")
        try:
            return cls.from_stream(handle, name=str(file_path))
        except Exception:
            handle.close()
            raise

    @classmethod
    def from_stream(cls, stream: BinaryIO, *, name: str = "<stream>") -> "MetadataReader":
        """Parse an open binary stream; the reader takes ownership of it."""
        try:
            data: bytes | mmap.mmap = mmap.mmap(stream.fileno(), 0, access=mmap.ACCESS_READ)
        except (AttributeError, OSError, ValueError):
            # Not backed by a real file (or empty): fall back to reading it.
            data = stream.read()
        return cls(data, name=name, handle=stream)

    # ------------------------------------------------------------------
    # Lifecycle

    def close(self) -> None:
        if isinstance(self._data, mmap.mmap) and not self._data.closed:
            self._data.close()
        self._data = None
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    @property
    def closed(self) -> bool:
        return self._data is None

    def __enter__(self) -> "MetadataReader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Row helpers

    def rows(self, table: int) -> List[tuple]:
        return self.tables.all(table)

    def row(self, table: int, index: int) -> tuple:
        return self.tables.get(table, index)

    def string(self, offset: int) -> str:
        return self.strings.get(offset)

    def blob(self, offset: int) -> bytes:
        return self.blobs.get(offset)

    def member_range(self, owner_table: int, owner_row: int, list_column: str, member_table: int) -> range:
        """Return the 1-based rows of ``member_table`` owned by a TypeDef or MethodDef row.

        Owner rows store the first member index; the run ends at the next
        owner's first member or at the end of the member table.
        """
        owners = self.tables.all(owner_table)
        start = getattr(owners[owner_row - 1], list_column)
        if owner_row < len(owners):
            end = getattr(owners[owner_row], list_column)
        else:
            end = self.tables.count(member_table) + 1
        start = max(start, 1)
        end = min(max(end, start), self.tables.count(member_table) + 1)
        return range(start, end)

    def indirect(self, pointer_table: int, column: str, index: int) -> int:
        """Map a row through a *Ptr table when the image uses one."""
        if self.tables.count(pointer_table):
            return getattr(self.tables.get(pointer_table, index), column)
        return index

    def type_ref_name(self, row: int) -> Tuple[str, str]:
        type_ref = self.row(TableId.TYPE_REF, row)
        return self.string(type_ref.namespace), self.string(type_ref.name)

    def type_def_name(self, row: int) -> Tuple[str, str]:
        type_def = self.row(TableId.TYPE_DEF, row)
        return self.string(type_def.namespace), self.string(type_def.name)

    def attribute_type_name(self, constructor: Optional[CodedToken]) -> Optional[Tuple[str, str]]:
        """Namespace and name of the type declaring an attribute constructor."""
        if constructor is None:
            return None
        if constructor.table == TableId.MEMBER_REF:
            parent = self.row(TableId.MEMBER_REF, constructor.row).parent
            if parent is None:
                return None
            if parent.table == TableId.TYPE_REF:
                return self.type_ref_name(parent.row)
            if parent.table == TableId.TYPE_DEF:
                return self.type_def_name(parent.row)
            return None
        if constructor.table == TableId.METHOD_DEF:
            owner = self.method_owner(constructor.row)
            return self.type_def_name(owner) if owner else None
        return None

    def method_owner(self, method_row: int) -> Optional[int]:
        """TypeDef row that declares the MethodDef ``method_row``."""
        for type_row in range(1, self.tables.count(TableId.TYPE_DEF) + 1):
            methods = self.member_range(TableId.TYPE_DEF, type_row, "method_list", TableId.METHOD_DEF)
            for index in methods:
                if self.indirect(TableId.METHOD_PTR, "method", index) == method_row:
                    return type_row
        return None

    # ------------------------------------------------------------------
    # Module facts

    def assembly_references(self) -> List[AssemblyReference]:
        """Names and versions of every referenced assembly."""
        references: List[AssemblyReference] = []
        for row in self.rows(TableId.ASSEMBLY_REF):
            references.append(
                AssemblyReference(
                    name=self.string(row.name),
                    version=AssemblyVersion(
                        row.major_version, row.minor_version, row.build_number, row.revision_number
                    ),
                    culture=self.string(row.culture),
                )
            )
        return references

    def assembly_identity(self) -> Optional[Tuple[str, AssemblyVersion]]:
        rows = self.rows(TableId.ASSEMBLY)
        if not rows:
            return None
        row = rows[0]
        version = AssemblyVersion(row.major_version, row.minor_version, row.build_number, row.revision_number)
        return self.string(row.name), version

    def module_name(self) -> str:
        rows = self.rows(TableId.MODULE)
        return self.string(rows[0].name) if rows else ""

    def read_target_framework(self) -> Optional[str]:
        """Return the TargetFrameworkAttribute value, or a moniker inferred from references."""
        for attribute in self.rows(TableId.CUSTOM_ATTRIBUTE):
            type_name = self.attribute_type_name(attribute.constructor)
            if type_name is None or type_name[1] != _TARGET_FRAMEWORK_ATTRIBUTE:
                continue
            try:
                value = decode_custom_attribute(
                    self.blob(attribute.value), [ArgumentType(ElementType.STRING)]
                )
            except MalformedBinaryError as exc:
                logger.debug("Unreadable TargetFrameworkAttribute in %s: %s", self.name, exc)
                continue
            if value.fixed_arguments and isinstance(value.fixed_arguments[0].value, str):
                return value.fixed_arguments[0].value

        for reference in self.assembly_references():
            if reference.name == _RUNTIME_REFERENCE and reference.version.major >= _MIN_RUNTIME_MAJOR:
                return f".NETCoreApp,Version=v{reference.version.major}.0"
        return None


def _copy_stream(view: memoryview, header: Optional[StreamHeader]) -> bytes:
    if header is None:
        return b""
    return bytes(view[header.offset : header.offset + header.size])


def framework_major_version(framework: Optional[str], default: int = 8) -> int:
    """Extract the major version from a moniker such as ``.NETCoreApp,Version=v8.0``."""
    if not framework:
        return default
    match = _VERSION_PATTERN.search(framework)
    if not match:
        return default
    return int(match.group(1))


__all__ = [
    "AssemblyReference",
    "AssemblyVersion",
    "MetadataReader",
    "framework_major_version",
]
