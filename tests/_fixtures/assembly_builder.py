"""Helper utilities for writing small .NET assemblies in tests.

The builder emits a PE image with a single ``.text`` section holding the CLI
header and a metadata root with ``#~``, ``#Strings``, ``#US``, ``#GUID`` and
``#Blob`` streams. Heaps and tables stay small, so every index is two bytes.
Fields and methods always belong to the most recently added type.
"""

from __future__ import annotations

import struct
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from mcpextract.metadata.signatures import ElementType
from mcpextract.metadata.tables import CODED_INDEXES, CodedToken, TableId

# Type attributes
PUBLIC_CLASS = 0x00000001
NESTED_PUBLIC = 0x00000002
ABSTRACT = 0x00000080
SEALED = 0x00000100
STATIC_CLASS = PUBLIC_CLASS | ABSTRACT | SEALED

# Method attributes
PRIVATE = 0x0001
PUBLIC = 0x0006
STATIC = 0x0010
HIDE_BY_SIG = 0x0080
SPECIAL_NAME = 0x0800
RT_SPECIAL_NAME = 0x1000
PUBLIC_METHOD = PUBLIC | HIDE_BY_SIG
PUBLIC_STATIC_METHOD = PUBLIC | STATIC | HIDE_BY_SIG
CONSTRUCTOR = PUBLIC | HIDE_BY_SIG | SPECIAL_NAME | RT_SPECIAL_NAME

# Param attributes
PARAM_OPTIONAL = 0x0010
PARAM_HAS_DEFAULT = 0x1000

# Field attributes
FIELD_PUBLIC = 0x0006
FIELD_STATIC = 0x0010
FIELD_LITERAL = 0x0040
FIELD_SPECIAL_NAME = 0x0200 | 0x0400

_ROW_FORMATS: Dict[int, str] = {
    TableId.MODULE: "<HHHHH",
    TableId.TYPE_REF: "<HHH",
    TableId.TYPE_DEF: "<IHHHHH",
    TableId.FIELD: "<HHH",
    TableId.METHOD_DEF: "<IHHHHH",
    TableId.PARAM: "<HHH",
    TableId.MEMBER_REF: "<HHH",
    TableId.CONSTANT: "<BBHH",
    TableId.CUSTOM_ATTRIBUTE: "<HHH",
    TableId.TYPE_SPEC: "<H",
    TableId.ASSEMBLY: "<IHHHHIHHH",
    TableId.ASSEMBLY_REF: "<HHHHIHHHH",
    TableId.EXPORTED_TYPE: "<IIHHH",
    TableId.NESTED_CLASS: "<HH",
    TableId.GENERIC_PARAM: "<HHHH",
}

# Tables whose rows must be ordered by their key columns.
_SORT_KEYS = {
    TableId.CONSTANT: lambda row: row[2],
    TableId.CUSTOM_ATTRIBUTE: lambda row: row[0],
    TableId.NESTED_CLASS: lambda row: row[0],
    TableId.GENERIC_PARAM: lambda row: (row[2], row[0]),
}

_METADATA_VERSION = b"v4.0.30319"
_TEXT_RVA = 0x2000
_FILE_ALIGNMENT = 0x200
_SECTION_ALIGNMENT = 0x2000
_CLI_HEADER_SIZE = 72


# ----------------------------------------------------------------------
# Blob encoders


def compressed_uint(value: int) -> bytes:
    if value < 0x80:
        return bytes([value])
    if value < 0x4000:
        return struct.pack(">H", 0x8000 | value)
    return struct.pack(">I", 0xC0000000 | value)


def coded_index(kind: str, token: Optional[CodedToken]) -> int:
    """Encode ``token`` as a coded index of ``kind``; ``None`` encodes the null reference."""
    if token is None:
        return 0
    tag_bits, tables = CODED_INDEXES[kind]
    return (token.row << tag_bits) | tables.index(token.table)


def primitive(code: int) -> bytes:
    return bytes([code])


VOID = primitive(ElementType.VOID)
BOOLEAN = primitive(ElementType.BOOLEAN)
INT32 = primitive(ElementType.I4)
INT64 = primitive(ElementType.I8)
DOUBLE = primitive(ElementType.R8)
STRING = primitive(ElementType.STRING)
OBJECT = primitive(ElementType.OBJECT)


def class_type(token: CodedToken) -> bytes:
    return bytes([ElementType.CLASS]) + compressed_uint(coded_index("TypeDefOrRef", token))


def value_type(token: CodedToken) -> bytes:
    return bytes([ElementType.VALUETYPE]) + compressed_uint(coded_index("TypeDefOrRef", token))


def generic_instance(token: CodedToken, *arguments: bytes, is_value_type: bool = False) -> bytes:
    head = value_type(token) if is_value_type else class_type(token)
    return bytes([ElementType.GENERICINST]) + head + compressed_uint(len(arguments)) + b"".join(arguments)


def sz_array(element: bytes) -> bytes:
    return bytes([ElementType.SZARRAY]) + element


def by_ref(element: bytes) -> bytes:
    return bytes([ElementType.BYREF]) + element


def type_variable(index: int) -> bytes:
    return bytes([ElementType.VAR]) + compressed_uint(index)


def method_variable(index: int) -> bytes:
    return bytes([ElementType.MVAR]) + compressed_uint(index)


def method_signature(
    return_type: bytes,
    parameters: Sequence[bytes] = (),
    *,
    instance: bool = False,
    generic_count: int = 0,
) -> bytes:
    convention = 0x20 if instance else 0x00
    if generic_count:
        convention |= 0x10
    blob = bytes([convention])
    if generic_count:
        blob += compressed_uint(generic_count)
    return blob + compressed_uint(len(parameters)) + return_type + b"".join(parameters)


def field_signature(field_type: bytes) -> bytes:
    return b"\x06" + field_type


def ser_string(value: Optional[str]) -> bytes:
    if value is None:
        return b"\xff"
    encoded = value.encode("utf-8")
    return compressed_uint(len(encoded)) + encoded


def attribute_blob(*fixed: bytes, named: Sequence[bytes] = ()) -> bytes:
    """Prolog, the already-encoded fixed arguments, then the named arguments."""
    return b"\x01\x00" + b"".join(fixed) + struct.pack("<H", len(named)) + b"".join(named)


def named_property(name: str, element_type: int, value: bytes) -> bytes:
    return bytes([ElementType.PROPERTY, element_type]) + ser_string(name) + value


def named_field(name: str, element_type: int, value: bytes) -> bytes:
    return bytes([ElementType.FIELD, element_type]) + ser_string(name) + value


def string_property(name: str, value: Optional[str]) -> bytes:
    return named_property(name, ElementType.STRING, ser_string(value))


# ----------------------------------------------------------------------
# Builder


@dataclass(frozen=True)
class Param:
    """Declaration of one method parameter.

    ``constant`` is the element type and encoded value stored in the Constant
    table; supplying it also sets the HasDefault flag.
    """

    name: str
    flags: int = 0
    constant: Optional[Tuple[int, bytes]] = None


class _Heap:
    def __init__(self) -> None:
        self.data = bytearray(b"\x00")
        self._offsets: Dict[bytes, int] = {}

    def add(self, entry: bytes) -> int:
        if not entry:
            return 0
        offset = self._offsets.get(entry)
        if offset is None:
            offset = len(self.data)
            self.data.extend(entry)
            self._offsets[entry] = offset
        return offset


class AssemblyBuilder:
    """Accumulate metadata rows and serialize them into a loadable assembly."""

    def __init__(
        self,
        name: str,
        version: Tuple[int, int, int, int] = (1, 0, 0, 0),
        *,
        pe32_plus: bool = False,
        with_assembly_row: bool = True,
    ) -> None:
        self.name = name
        self.pe32_plus = pe32_plus
        self._strings = _Heap()
        self._blobs = _Heap()
        self._guids = bytearray(uuid.UUID(int=len(name) + 1).bytes_le)
        self._rows: Dict[int, List[Tuple[int, ...]]] = {table: [] for table in _ROW_FORMATS}
        self._first_param: Dict[int, int] = {}

        self._append(TableId.MODULE, (0, self._string(f"{name}.dll"), 1, 0, 0))
        if with_assembly_row:
            self._append(
                TableId.ASSEMBLY,
                (0x8004, *version, 0, 0, self._string(name), 0),
            )
        self.add_type("", "<Module>", flags=0)

    # ------------------------------------------------------------------
    # Heaps and rows

    def _string(self, value: str) -> int:
        return self._strings.add(value.encode("utf-8") + b"\x00") if value else 0

    def _blob(self, value: bytes) -> int:
        if not value:
            return 0
        return self._blobs.add(compressed_uint(len(value)) + value)

    def _append(self, table: int, row: Tuple[int, ...]) -> CodedToken:
        rows = self._rows[table]
        rows.append(row)
        return CodedToken(table, len(rows))

    def count(self, table: int) -> int:
        return len(self._rows[table])

    # ------------------------------------------------------------------
    # Declarations

    @property
    def assembly_token(self) -> CodedToken:
        return CodedToken(TableId.ASSEMBLY, 1)

    def reference_assembly(
        self, name: str, version: Tuple[int, int, int, int] = (8, 0, 0, 0)
    ) -> CodedToken:
        return self._append(
            TableId.ASSEMBLY_REF,
            (*version, 0, 0, self._string(name), 0, 0),
        )

    def type_ref(self, scope: Optional[CodedToken], namespace: str, name: str) -> CodedToken:
        return self._append(
            TableId.TYPE_REF,
            (coded_index("ResolutionScope", scope), self._string(name), self._string(namespace)),
        )

    def add_type(
        self,
        namespace: str,
        name: str,
        *,
        extends: Optional[CodedToken] = None,
        flags: int = PUBLIC_CLASS,
        enclosing: Optional[CodedToken] = None,
        generic_parameters: Sequence[str] = (),
    ) -> CodedToken:
        token = self._append(
            TableId.TYPE_DEF,
            (
                flags,
                self._string(name),
                self._string(namespace),
                coded_index("TypeDefOrRef", extends),
                self.count(TableId.FIELD) + 1,
                self.count(TableId.METHOD_DEF) + 1,
            ),
        )
        if enclosing is not None:
            self._append(TableId.NESTED_CLASS, (token.row, enclosing.row))
        self._add_generic_parameters(token, generic_parameters)
        return token

    def add_field(self, name: str, signature: bytes, *, flags: int = FIELD_PUBLIC) -> CodedToken:
        return self._append(TableId.FIELD, (flags, self._string(name), self._blob(signature)))

    def add_method(
        self,
        name: str,
        signature: bytes,
        *,
        flags: int = PUBLIC_STATIC_METHOD,
        parameters: Sequence[Param] = (),
        generic_parameters: Sequence[str] = (),
    ) -> CodedToken:
        first_param = self.count(TableId.PARAM) + 1
        token = self._append(
            TableId.METHOD_DEF,
            (0, 0, flags, self._string(name), self._blob(signature), first_param),
        )
        self._first_param[token.row] = first_param
        for sequence, parameter in enumerate(parameters, start=1):
            param_flags = parameter.flags
            if parameter.constant is not None:
                param_flags |= PARAM_HAS_DEFAULT
            param = self._append(TableId.PARAM, (param_flags, sequence, self._string(parameter.name)))
            if parameter.constant is not None:
                element_type, value = parameter.constant
                self._append(
                    TableId.CONSTANT,
                    (element_type, 0, coded_index("HasConstant", param), self._blob(value)),
                )
        self._add_generic_parameters(token, generic_parameters)
        return token

    def parameter(self, method: CodedToken, position: int) -> CodedToken:
        """Token of the Param row for the zero-based ``position`` of ``method``."""
        return CodedToken(TableId.PARAM, self._first_param[method.row] + position)

    def add_member_ref(self, parent: CodedToken, name: str, signature: bytes) -> CodedToken:
        return self._append(
            TableId.MEMBER_REF,
            (coded_index("MemberRefParent", parent), self._string(name), self._blob(signature)),
        )

    def add_attribute(
        self, parent: CodedToken, constructor: CodedToken, value: bytes = b"\x01\x00\x00\x00"
    ) -> None:
        self._append(
            TableId.CUSTOM_ATTRIBUTE,
            (
                coded_index("HasCustomAttribute", parent),
                coded_index("CustomAttributeType", constructor),
                self._blob(value),
            ),
        )

    def add_type_spec(self, signature: bytes) -> CodedToken:
        return self._append(TableId.TYPE_SPEC, (self._blob(signature),))

    def add_exported_type(self, namespace: str, name: str, implementation: CodedToken) -> CodedToken:
        return self._append(
            TableId.EXPORTED_TYPE,
            (0, 0, self._string(name), self._string(namespace), coded_index("Implementation", implementation)),
        )

    def _add_generic_parameters(self, owner: CodedToken, names: Sequence[str]) -> None:
        for number, name in enumerate(names):
            self._append(
                TableId.GENERIC_PARAM,
                (number, 0, coded_index("TypeOrMethodDef", owner), self._string(name)),
            )

    # ------------------------------------------------------------------
    # Serialization

    def write(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.build())
        return path

    def build(self) -> bytes:
        metadata = self._metadata_root()
        metadata_rva = _TEXT_RVA + _CLI_HEADER_SIZE
        cli_header = struct.pack("<IHHIIII", _CLI_HEADER_SIZE, 2, 5, metadata_rva, len(metadata), 1, 0)
        cli_header += b"\x00" * (_CLI_HEADER_SIZE - len(cli_header))
        text = cli_header + metadata
        return self._pe_image(text)

    def _table_stream(self) -> bytes:
        present = [table for table in sorted(self._rows) if self._rows[table]]
        valid = 0
        for table in present:
            valid |= 1 << table
        sorted_mask = 0
        for table in _SORT_KEYS:
            sorted_mask |= 1 << table

        stream = bytearray(struct.pack("<IBBBBQQ", 0, 2, 0, 0, 1, valid, sorted_mask))
        for table in present:
            stream += struct.pack("<I", len(self._rows[table]))
        for table in present:
            rows = self._rows[table]
            key = _SORT_KEYS.get(table)
            if key is not None:
                rows = sorted(rows, key=key)
            for row in rows:
                stream += struct.pack(_ROW_FORMATS[table], *row)
        return _pad4(bytes(stream))

    def _metadata_root(self) -> bytes:
        streams = [
            ("#~", self._table_stream()),
            ("#Strings", _pad4(bytes(self._strings.data))),
            ("#US", _pad4(b"\x00")),
            ("#GUID", bytes(self._guids)),
            ("#Blob", _pad4(bytes(self._blobs.data))),
        ]
        version = _pad4(_METADATA_VERSION + b"\x00")
        header = struct.pack("<IHHII", 0x424A5342, 1, 1, 0, len(version)) + version
        header += struct.pack("<HH", 0, len(streams))

        names = [_pad4(name.encode("ascii") + b"\x00") for name, _ in streams]
        offset = len(header) + sum(8 + len(name) for name in names)
        directory = b""
        body = b""
        for (_, data), name in zip(streams, names):
            directory += struct.pack("<II", offset + len(body), len(data)) + name
            body += data
        return header + directory + body

    def _pe_image(self, text: bytes) -> bytes:
        optional_size = 0xF0 if self.pe32_plus else 0xE0
        raw_size = _align(len(text), _FILE_ALIGNMENT)
        image_size = _align(_TEXT_RVA + len(text), _SECTION_ALIGNMENT)
        image = bytearray(_FILE_ALIGNMENT + raw_size)

        image[0:2] = b"MZ"
        struct.pack_into("<I", image, 0x3C, 0x80)
        image[0x80:0x84] = b"PE\x00\x00"
        machine = 0x8664 if self.pe32_plus else 0x014C
        struct.pack_into("<HHIIIHH", image, 0x84, machine, 1, 0, 0, 0, optional_size, 0x2022)

        optional = 0x98
        if self.pe32_plus:
            struct.pack_into("<HBBIIIIIQ", image, optional, 0x20B, 8, 0, raw_size, 0, 0, 0, _TEXT_RVA, 0x180000000)
        else:
            struct.pack_into("<HBBIIIIIII", image, optional, 0x10B, 8, 0, raw_size, 0, 0, 0, _TEXT_RVA, _TEXT_RVA, 0x400000)
        struct.pack_into(
            "<IIHHHHHHIIIIHH",
            image,
            optional + 32,
            _SECTION_ALIGNMENT,
            _FILE_ALIGNMENT,
            4,
            0,
            0,
            0,
            4,
            0,
            0,
            image_size,
            _FILE_ALIGNMENT,
            0,
            3,
            0x8540,
        )
        if self.pe32_plus:
            struct.pack_into("<QQQQII", image, optional + 72, 0x100000, 0x1000, 0x100000, 0x1000, 0, 16)
            directories = optional + 112
        else:
            struct.pack_into("<IIIIII", image, optional + 72, 0x100000, 0x1000, 0x100000, 0x1000, 0, 16)
            directories = optional + 96
        struct.pack_into("<II", image, directories + 14 * 8, _TEXT_RVA, _CLI_HEADER_SIZE)

        struct.pack_into(
            "<8sIIIIIIHHI",
            image,
            optional + optional_size,
            b".text",
            len(text),
            _TEXT_RVA,
            raw_size,
            _FILE_ALIGNMENT,
            0,
            0,
            0,
            0,
            0x60000020,
        )
        image[_FILE_ALIGNMENT : _FILE_ALIGNMENT + len(text)] = text
        return bytes(image)


def _pad4(data: bytes) -> bytes:
    return data + b"\x00" * (-len(data) % 4)


def _align(value: int, alignment: int) -> int:
    return (value + alignment - 1) // alignment * alignment


# ----------------------------------------------------------------------
# Ready-made assemblies


def write_core_library(
    directory: Path,
    name: str = "System.Runtime",
    version: Tuple[int, int, int, int] = (8, 0, 0, 0),
) -> Path:
    """Write a reference assembly defining the framework types tool signatures use."""
    builder = AssemblyBuilder(name, version)
    obj = builder.add_type("System", "Object")
    value_type_token = builder.add_type("System", "ValueType", extends=obj, flags=PUBLIC_CLASS | ABSTRACT)
    builder.add_type("System", "Enum", extends=value_type_token, flags=PUBLIC_CLASS | ABSTRACT)
    builder.add_type("System", "String", extends=obj, flags=PUBLIC_CLASS | SEALED)
    builder.add_type("System", "Type", extends=obj, flags=PUBLIC_CLASS | ABSTRACT)
    for struct_name in (
        "Void",
        "Boolean",
        "Char",
        "SByte",
        "Byte",
        "Int16",
        "UInt16",
        "Int32",
        "UInt32",
        "Int64",
        "UInt64",
        "Single",
        "Double",
        "IntPtr",
        "UIntPtr",
        "TypedReference",
        "DateTime",
        "Guid",
    ):
        builder.add_type("System", struct_name, extends=value_type_token, flags=PUBLIC_CLASS | SEALED)
    builder.add_type(
        "System", "Nullable`1", extends=value_type_token, flags=PUBLIC_CLASS | SEALED, generic_parameters=("T",)
    )
    attribute = builder.add_type("System", "Attribute", extends=obj, flags=PUBLIC_CLASS | ABSTRACT)
    builder.add_type("System.Threading", "CancellationToken", extends=value_type_token, flags=PUBLIC_CLASS | SEALED)
    task = builder.add_type("System.Threading.Tasks", "Task", extends=obj)
    builder.add_type("System.Threading.Tasks", "Task`1", extends=task, generic_parameters=("TResult",))
    builder.add_type("System.Collections.Generic", "List`1", extends=obj, generic_parameters=("T",))
    builder.add_type("System.Collections.Generic", "IEnumerable`1", flags=PUBLIC_CLASS | ABSTRACT | 0x20, generic_parameters=("T",))

    builder.add_type("System.ComponentModel", "DescriptionAttribute", extends=attribute)
    builder.add_method(
        ".ctor",
        method_signature(VOID, [STRING], instance=True),
        flags=CONSTRUCTOR,
        parameters=[Param("description")],
    )
    builder.add_method(
        "get_Description",
        method_signature(STRING, instance=True),
        flags=PUBLIC_METHOD | SPECIAL_NAME,
    )

    builder.add_type("System.Runtime.Versioning", "TargetFrameworkAttribute", extends=attribute, flags=PUBLIC_CLASS | SEALED)
    builder.add_method(
        ".ctor",
        method_signature(VOID, [STRING], instance=True),
        flags=CONSTRUCTOR,
        parameters=[Param("frameworkName")],
    )
    return builder.write(directory / f"{name}.dll")


class McpServerBuilder:
    """An :class:`AssemblyBuilder` preloaded with what an MCP server assembly references."""

    def __init__(
        self,
        name: str = "Sample.McpServer",
        *,
        target_framework: Optional[str] = ".NETCoreApp,Version=v8.0",
        runtime_version: Tuple[int, int, int, int] = (8, 0, 0, 0),
        version: Tuple[int, int, int, int] = (1, 2, 3, 0),
    ) -> None:
        self.builder = AssemblyBuilder(name, version)
        builder = self.builder
        self.runtime = builder.reference_assembly("System.Runtime", runtime_version)
        self.sdk = builder.reference_assembly("ModelContextProtocol", (0, 3, 0, 0))

        self.object = builder.type_ref(self.runtime, "System", "Object")
        self.task = builder.type_ref(self.runtime, "System.Threading.Tasks", "Task")
        self.task_of = builder.type_ref(self.runtime, "System.Threading.Tasks", "Task`1")
        self.nullable = builder.type_ref(self.runtime, "System", "Nullable`1")
        self.list_of = builder.type_ref(self.runtime, "System.Collections.Generic", "List`1")
        self.cancellation_token = builder.type_ref(self.runtime, "System.Threading", "CancellationToken")
        self.date_time = builder.type_ref(self.runtime, "System", "DateTime")

        description = builder.type_ref(self.runtime, "System.ComponentModel", "DescriptionAttribute")
        self.description_ctor = builder.add_member_ref(
            description, ".ctor", method_signature(VOID, [STRING], instance=True)
        )
        tool = builder.type_ref(self.sdk, "ModelContextProtocol.Server", "McpServerToolAttribute")
        self.tool_ctor = builder.add_member_ref(tool, ".ctor", method_signature(VOID, instance=True))
        tool_type = builder.type_ref(self.sdk, "ModelContextProtocol.Server", "McpServerToolTypeAttribute")
        self.tool_type_ctor = builder.add_member_ref(tool_type, ".ctor", method_signature(VOID, instance=True))

        if target_framework is not None:
            framework = builder.type_ref(self.runtime, "System.Runtime.Versioning", "TargetFrameworkAttribute")
            framework_ctor = builder.add_member_ref(
                framework, ".ctor", method_signature(VOID, [STRING], instance=True)
            )
            builder.add_attribute(
                builder.assembly_token,
                framework_ctor,
                attribute_blob(ser_string(target_framework)),
            )

    def add_tool_type(self, namespace: str, name: str) -> CodedToken:
        token = self.builder.add_type(namespace, name, extends=self.object, flags=STATIC_CLASS)
        self.builder.add_attribute(token, self.tool_type_ctor)
        return token

    def add_tool(
        self,
        method_name: str,
        signature: bytes,
        *,
        tool_name: Optional[str] = None,
        description: Optional[str] = None,
        parameters: Sequence[Param] = (),
        parameter_descriptions: Optional[Dict[str, str]] = None,
        flags: int = PUBLIC_STATIC_METHOD,
    ) -> CodedToken:
        """Add a method marked with ``McpServerTool`` to the latest type."""
        builder = self.builder
        method = builder.add_method(method_name, signature, flags=flags, parameters=parameters)
        named = [string_property("Name", tool_name)] if tool_name is not None else []
        builder.add_attribute(method, self.tool_ctor, attribute_blob(named=named))
        if description is not None:
            self.describe(method, description)
        for position, parameter in enumerate(parameters):
            text = (parameter_descriptions or {}).get(parameter.name)
            if text is not None:
                self.describe(builder.parameter(method, position), text)
        return method

    def describe(self, target: CodedToken, text: str) -> None:
        self.builder.add_attribute(target, self.description_ctor, attribute_blob(ser_string(text)))

    def write(self, path: Path) -> Path:
        return self.builder.write(path)


__all__ = [
    "AssemblyBuilder",
    "McpServerBuilder",
    "Param",
    "write_core_library",
]
