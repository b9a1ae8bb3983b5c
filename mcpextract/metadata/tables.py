"""ECMA-335 metadata table schemas and the #~ stream decoder."""

from __future__ import annotations

import struct
from collections import namedtuple
from dataclasses import dataclass
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from .pe import MalformedBinaryError


class TableId:
    """Numeric identifiers of the metadata tables."""

    MODULE = 0x00
    TYPE_REF = 0x01
    TYPE_DEF = 0x02
    FIELD_PTR = 0x03
    FIELD = 0x04
    METHOD_PTR = 0x05
    METHOD_DEF = 0x06
    PARAM_PTR = 0x07
    PARAM = 0x08
    INTERFACE_IMPL = 0x09
    MEMBER_REF = 0x0A
    CONSTANT = 0x0B
    CUSTOM_ATTRIBUTE = 0x0C
    FIELD_MARSHAL = 0x0D
    DECL_SECURITY = 0x0E
    CLASS_LAYOUT = 0x0F
    FIELD_LAYOUT = 0x10
    STAND_ALONE_SIG = 0x11
    EVENT_MAP = 0x12
    EVENT_PTR = 0x13
    EVENT = 0x14
    PROPERTY_MAP = 0x15
    PROPERTY_PTR = 0x16
    PROPERTY = 0x17
    METHOD_SEMANTICS = 0x18
    METHOD_IMPL = 0x19
    MODULE_REF = 0x1A
    TYPE_SPEC = 0x1B
    IMPL_MAP = 0x1C
    FIELD_RVA = 0x1D
    ENC_LOG = 0x1E
    ENC_MAP = 0x1F
    ASSEMBLY = 0x20
    ASSEMBLY_PROCESSOR = 0x21
    ASSEMBLY_OS = 0x22
    ASSEMBLY_REF = 0x23
    ASSEMBLY_REF_PROCESSOR = 0x24
    ASSEMBLY_REF_OS = 0x25
    FILE = 0x26
    EXPORTED_TYPE = 0x27
    MANIFEST_RESOURCE = 0x28
    NESTED_CLASS = 0x29
    GENERIC_PARAM = 0x2A
    METHOD_SPEC = 0x2B
    GENERIC_PARAM_CONSTRAINT = 0x2C


# Coded index kinds: tag bit count and the tables addressed by each tag value.
# ``None`` marks tag values that are reserved by the format.
CODED_INDEXES: Dict[str, Tuple[int, Tuple[Optional[int], ...]]] = {
    "TypeDefOrRef": (2, (TableId.TYPE_DEF, TableId.TYPE_REF, TableId.TYPE_SPEC)),
    "HasConstant": (2, (TableId.FIELD, TableId.PARAM, TableId.PROPERTY)),
    "HasCustomAttribute": (
        5,
        (
            TableId.METHOD_DEF,
            TableId.FIELD,
            TableId.TYPE_REF,
            TableId.TYPE_DEF,
            TableId.PARAM,
            TableId.INTERFACE_IMPL,
            TableId.MEMBER_REF,
            TableId.MODULE,
            TableId.DECL_SECURITY,
            TableId.PROPERTY,
            TableId.EVENT,
            TableId.STAND_ALONE_SIG,
            TableId.MODULE_REF,
            TableId.TYPE_SPEC,
            TableId.ASSEMBLY,
            TableId.ASSEMBLY_REF,
            TableId.FILE,
            TableId.EXPORTED_TYPE,
            TableId.MANIFEST_RESOURCE,
            TableId.GENERIC_PARAM,
            TableId.GENERIC_PARAM_CONSTRAINT,
            TableId.METHOD_SPEC,
        ),
    ),
    "HasFieldMarshal": (1, (TableId.FIELD, TableId.PARAM)),
    "HasDeclSecurity": (2, (TableId.TYPE_DEF, TableId.METHOD_DEF, TableId.ASSEMBLY)),
    "MemberRefParent": (
        3,
        (
            TableId.TYPE_DEF,
            TableId.TYPE_REF,
            TableId.MODULE_REF,
            TableId.METHOD_DEF,
            TableId.TYPE_SPEC,
        ),
    ),
    "HasSemantics": (1, (TableId.EVENT, TableId.PROPERTY)),
    "MethodDefOrRef": (1, (TableId.METHOD_DEF, TableId.MEMBER_REF)),
    "MemberForwarded": (1, (TableId.FIELD, TableId.METHOD_DEF)),
    "Implementation": (2, (TableId.FILE, TableId.ASSEMBLY_REF, TableId.EXPORTED_TYPE)),
    "CustomAttributeType": (3, (None, None, TableId.METHOD_DEF, TableId.MEMBER_REF, None)),
    "ResolutionScope": (
        2,
        (TableId.MODULE, TableId.MODULE_REF, TableId.ASSEMBLY_REF, TableId.TYPE_REF),
    ),
    "TypeOrMethodDef": (1, (TableId.TYPE_DEF, TableId.METHOD_DEF)),
}

U1, U2, U4, STR, GUID, BLOB = "u1", "u2", "u4", "str", "guid", "blob"


def _t(table: int) -> Tuple[str, int]:
    return ("table", table)


def _c(kind: str) -> Tuple[str, str]:
    return ("coded", kind)


_SCHEMAS: Dict[int, Tuple[str, Sequence[Tuple[str, object]]]] = {
    TableId.MODULE: (
        "Module",
        (("generation", U2), ("name", STR), ("mvid", GUID), ("enc_id", GUID), ("enc_base_id", GUID)),
    ),
    TableId.TYPE_REF: (
        "TypeRef",
        (("resolution_scope", _c("ResolutionScope")), ("name", STR), ("namespace", STR)),
    ),
    TableId.TYPE_DEF: (
        "TypeDef",
        (
            ("flags", U4),
            ("name", STR),
            ("namespace", STR),
            ("extends", _c("TypeDefOrRef")),
            ("field_list", _t(TableId.FIELD)),
            ("method_list", _t(TableId.METHOD_DEF)),
        ),
    ),
    TableId.FIELD_PTR: ("FieldPtr", (("field", _t(TableId.FIELD)),)),
    TableId.FIELD: ("Field", (("flags", U2), ("name", STR), ("signature", BLOB))),
    TableId.METHOD_PTR: ("MethodPtr", (("method", _t(TableId.METHOD_DEF)),)),
    TableId.METHOD_DEF: (
        "MethodDef",
        (
            ("rva", U4),
            ("impl_flags", U2),
            ("flags", U2),
            ("name", STR),
            ("signature", BLOB),
            ("param_list", _t(TableId.PARAM)),
        ),
    ),
    TableId.PARAM_PTR: ("ParamPtr", (("param", _t(TableId.PARAM)),)),
    TableId.PARAM: ("Param", (("flags", U2), ("sequence", U2), ("name", STR))),
    TableId.INTERFACE_IMPL: (
        "InterfaceImpl",
        (("klass", _t(TableId.TYPE_DEF)), ("interface", _c("TypeDefOrRef"))),
    ),
    TableId.MEMBER_REF: (
        "MemberRef",
        (("parent", _c("MemberRefParent")), ("name", STR), ("signature", BLOB)),
    ),
    TableId.CONSTANT: (
        "Constant",
        (("type", U1), ("padding", U1), ("parent", _c("HasConstant")), ("value", BLOB)),
    ),
    TableId.CUSTOM_ATTRIBUTE: (
        "CustomAttribute",
        (
            ("parent", _c("HasCustomAttribute")),
            ("constructor", _c("CustomAttributeType")),
            ("value", BLOB),
        ),
    ),
    TableId.FIELD_MARSHAL: (
        "FieldMarshal",
        (("parent", _c("HasFieldMarshal")), ("native_type", BLOB)),
    ),
    TableId.DECL_SECURITY: (
        "DeclSecurity",
        (("action", U2), ("parent", _c("HasDeclSecurity")), ("permission_set", BLOB)),
    ),
    TableId.CLASS_LAYOUT: (
        "ClassLayout",
        (("packing_size", U2), ("class_size", U4), ("parent", _t(TableId.TYPE_DEF))),
    ),
    TableId.FIELD_LAYOUT: ("FieldLayout", (("offset", U4), ("field", _t(TableId.FIELD)))),
    TableId.STAND_ALONE_SIG: ("StandAloneSig", (("signature", BLOB),)),
    TableId.EVENT_MAP: (
        "EventMap",
        (("parent", _t(TableId.TYPE_DEF)), ("event_list", _t(TableId.EVENT))),
    ),
    TableId.EVENT_PTR: ("EventPtr", (("event", _t(TableId.EVENT)),)),
    TableId.EVENT: (
        "Event",
        (("flags", U2), ("name", STR), ("event_type", _c("TypeDefOrRef"))),
    ),
    TableId.PROPERTY_MAP: (
        "PropertyMap",
        (("parent", _t(TableId.TYPE_DEF)), ("property_list", _t(TableId.PROPERTY))),
    ),
    TableId.PROPERTY_PTR: ("PropertyPtr", (("property", _t(TableId.PROPERTY)),)),
    TableId.PROPERTY: ("Property", (("flags", U2), ("name", STR), ("signature", BLOB))),
    TableId.METHOD_SEMANTICS: (
        "MethodSemantics",
        (
            ("semantics", U2),
            ("method", _t(TableId.METHOD_DEF)),
            ("association", _c("HasSemantics")),
        ),
    ),
    TableId.METHOD_IMPL: (
        "MethodImpl",
        (
            ("klass", _t(TableId.TYPE_DEF)),
            ("method_body", _c("MethodDefOrRef")),
            ("method_declaration", _c("MethodDefOrRef")),
        ),
    ),
    TableId.MODULE_REF: ("ModuleRef", (("name", STR),)),
    TableId.TYPE_SPEC: ("TypeSpec", (("signature", BLOB),)),
    TableId.IMPL_MAP: (
        "ImplMap",
        (
            ("mapping_flags", U2),
            ("member_forwarded", _c("MemberForwarded")),
            ("import_name", STR),
            ("import_scope", _t(TableId.MODULE_REF)),
        ),
    ),
    TableId.FIELD_RVA: ("FieldRva", (("rva", U4), ("field", _t(TableId.FIELD)))),
    TableId.ENC_LOG: ("EncLog", (("token", U4), ("func_code", U4))),
    TableId.ENC_MAP: ("EncMap", (("token", U4),)),
    TableId.ASSEMBLY: (
        "Assembly",
        (
            ("hash_alg_id", U4),
            ("major_version", U2),
            ("minor_version", U2),
            ("build_number", U2),
            ("revision_number", U2),
            ("flags", U4),
            ("public_key", BLOB),
            ("name", STR),
            ("culture", STR),
        ),
    ),
    TableId.ASSEMBLY_PROCESSOR: ("AssemblyProcessor", (("processor", U4),)),
    TableId.ASSEMBLY_OS: (
        "AssemblyOs",
        (("platform_id", U4), ("major_version", U4), ("minor_version", U4)),
    ),
    TableId.ASSEMBLY_REF: (
        "AssemblyRef",
        (
            ("major_version", U2),
            ("minor_version", U2),
            ("build_number", U2),
            ("revision_number", U2),
            ("flags", U4),
            ("public_key_or_token", BLOB),
            ("name", STR),
            ("culture", STR),
            ("hash_value", BLOB),
        ),
    ),
    TableId.ASSEMBLY_REF_PROCESSOR: (
        "AssemblyRefProcessor",
        (("processor", U4), ("assembly_ref", _t(TableId.ASSEMBLY_REF))),
    ),
    TableId.ASSEMBLY_REF_OS: (
        "AssemblyRefOs",
        (
            ("platform_id", U4),
            ("major_version", U4),
            ("minor_version", U4),
            ("assembly_ref", _t(TableId.ASSEMBLY_REF)),
        ),
    ),
    TableId.FILE: ("File", (("flags", U4), ("name", STR), ("hash_value", BLOB))),
    TableId.EXPORTED_TYPE: (
        "ExportedType",
        (
            ("flags", U4),
            ("type_def_id", U4),
            ("name", STR),
            ("namespace", STR),
            ("implementation", _c("Implementation")),
        ),
    ),
    TableId.MANIFEST_RESOURCE: (
        "ManifestResource",
        (("offset", U4), ("flags", U4), ("name", STR), ("implementation", _c("Implementation"))),
    ),
    TableId.NESTED_CLASS: (
        "NestedClass",
        (("nested_class", _t(TableId.TYPE_DEF)), ("enclosing_class", _t(TableId.TYPE_DEF))),
    ),
    TableId.GENERIC_PARAM: (
        "GenericParam",
        (("number", U2), ("flags", U2), ("owner", _c("TypeOrMethodDef")), ("name", STR)),
    ),
    TableId.METHOD_SPEC: (
        "MethodSpec",
        (("method", _c("MethodDefOrRef")), ("instantiation", BLOB)),
    ),
    TableId.GENERIC_PARAM_CONSTRAINT: (
        "GenericParamConstraint",
        (("owner", _t(TableId.GENERIC_PARAM)), ("constraint", _c("TypeDefOrRef"))),
    ),
}

_ROW_TYPES = {
    table: namedtuple(f"{name}Row", [column for column, _ in columns])  # type: ignore[misc]
    for table, (name, columns) in _SCHEMAS.items()
}

_HEAP_STRINGS_WIDE = 0x01
_HEAP_GUID_WIDE = 0x02
_HEAP_BLOB_WIDE = 0x04
_HEAP_EXTRA_DATA = 0x40


class CodedToken(NamedTuple):
    """Decoded coded index: the addressed table and 1-based row number."""

    table: int
    row: int


@dataclass
class TableStream:
    """All decoded rows of the #~ (or uncompressed #-) stream."""

    major_version: int
    minor_version: int
    row_counts: Dict[int, int]
    rows: Dict[int, List[tuple]]

    def count(self, table: int) -> int:
        return self.row_counts.get(table, 0)

    def get(self, table: int, row: int) -> tuple:
        """Return the 1-based ``row`` of ``table``."""
        table_rows = self.rows.get(table, [])
        if row < 1 or row > len(table_rows):
            raise MalformedBinaryError(f"row {row} out of range for table 0x{table:02x}")
        return table_rows[row - 1]

    def all(self, table: int) -> List[tuple]:
        return self.rows.get(table, [])


def table_name(table: int) -> str:
    schema = _SCHEMAS.get(table)
    return schema[0] if schema else f"0x{table:02x}"


def decode_table_stream(data: memoryview) -> TableStream:
    """Decode every table present in a #~ stream."""
    try:
        major, minor, heap_sizes = struct.unpack_from("<BBB", data, 4)
        valid, _sorted = struct.unpack_from("<QQ", data, 8)
    except struct.error as exc:
        raise MalformedBinaryError("truncated table stream header") from exc

    cursor = 24
    row_counts: Dict[int, int] = {}
    for table in range(64):
        if valid & (1 << table):
            try:
                (row_counts[table],) = struct.unpack_from("<I", data, cursor)
            except struct.error as exc:
                raise MalformedBinaryError("truncated table row counts") from exc
            cursor += 4
    if heap_sizes & _HEAP_EXTRA_DATA:
        cursor += 4

    unknown = [table for table in row_counts if table not in _SCHEMAS]
    if unknown:
        raise MalformedBinaryError(
            "unsupported metadata tables: " + ", ".join(f"0x{table:02x}" for table in unknown)
        )

    widths = _ColumnWidths(heap_sizes, row_counts)
    rows: Dict[int, List[tuple]] = {}
    for table in sorted(row_counts):
        name, columns = _SCHEMAS[table]
        formats = [widths.width(kind) for _, kind in columns]
        row_format = "<" + "".join(_STRUCT_CODES[width] for width in formats)
        row_size = struct.calcsize(row_format)
        count = row_counts[table]
        if cursor + row_size * count > len(data):
            raise MalformedBinaryError(f"table {name} exceeds stream bounds")
        row_type = _ROW_TYPES[table]
        decoded: List[tuple] = []
        for raw in struct.iter_unpack(row_format, data[cursor : cursor + row_size * count]):
            values = [
                _decode_column(kind, value) for (_, kind), value in zip(columns, raw)
            ]
            decoded.append(row_type(*values))
        rows[table] = decoded
        cursor += row_size * count

    return TableStream(major_version=major, minor_version=minor, row_counts=row_counts, rows=rows)


_STRUCT_CODES = {1: "B", 2: "H", 4: "I"}


class _ColumnWidths:
    def __init__(self, heap_sizes: int, row_counts: Dict[int, int]) -> None:
        self._heap_sizes = heap_sizes
        self._row_counts = row_counts

    def width(self, kind: object) -> int:
        if kind == U1:
            return 1
        if kind == U2:
            return 2
        if kind == U4:
            return 4
        if kind == STR:
            return 4 if self._heap_sizes & _HEAP_STRINGS_WIDE else 2
        if kind == GUID:
            return 4 if self._heap_sizes & _HEAP_GUID_WIDE else 2
        if kind == BLOB:
            return 4 if self._heap_sizes & _HEAP_BLOB_WIDE else 2
        category, target = kind  # type: ignore[misc]
        if category == "table":
            return 4 if self._row_counts.get(target, 0) > 0xFFFF else 2
        tag_bits, tables = CODED_INDEXES[target]
        largest = max(self._row_counts.get(table, 0) for table in tables if table is not None)
        return 4 if largest >= (1 << (16 - tag_bits)) else 2


def _decode_column(kind: object, value: int) -> object:
    if isinstance(kind, tuple) and kind[0] == "coded":
        return decode_coded_index(kind[1], value)
    return value


def decode_coded_index(kind: str, value: int) -> Optional[CodedToken]:
    """Split a coded index into table and row; ``None`` for a null reference."""
    tag_bits, tables = CODED_INDEXES[kind]
    tag = value & ((1 << tag_bits) - 1)
    row = value >> tag_bits
    if row == 0:
        return None
    if tag >= len(tables) or tables[tag] is None:
        raise MalformedBinaryError(f"invalid {kind} coded index tag {tag}")
    return CodedToken(table=tables[tag], row=row)  # type: ignore[arg-type]


__all__ = [
    "CODED_INDEXES",
    "CodedToken",
    "TableId",
    "TableStream",
    "decode_coded_index",
    "decode_table_stream",
    "table_name",
]
