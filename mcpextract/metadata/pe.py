"""Portable Executable parsing down to the CLI metadata root."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Dict, List, Tuple

_DOS_MAGIC = b"MZ"
_PE_SIGNATURE = b"PE\x00\x00"
_PE32_MAGIC = 0x10B
_PE32_PLUS_MAGIC = 0x20B
_CLI_HEADER_DIRECTORY = 14
_METADATA_SIGNATURE = 0x424A5342  # "BSJB"


class MalformedBinaryError(ValueError):
    """Raised when a file is not a well-formed PE image with CLI metadata."""


@dataclass(frozen=True)
class Section:
    """Section table entry used for RVA translation."""

    name: str
    virtual_address: int
    virtual_size: int
    raw_size: int
    raw_pointer: int

    def contains(self, rva: int) -> bool:
        extent = max(self.virtual_size, self.raw_size)
        return self.virtual_address <= rva < self.virtual_address + extent


@dataclass(frozen=True)
class StreamHeader:
    """Location of a metadata stream relative to the start of the file."""

    name: str
    offset: int
    size: int


@dataclass(frozen=True)
class CliImage:
    """Offsets of the CLI metadata inside a PE file."""

    runtime_version: Tuple[int, int]
    metadata_offset: int
    metadata_size: int
    metadata_version: str
    streams: Dict[str, StreamHeader]


def parse_cli_image(data: bytes | memoryview) -> CliImage:
    """Locate the CLI header, metadata root and stream headers of a PE image."""
    view = memoryview(data)
    if len(view) < 0x40 or bytes(view[0:2]) != _DOS_MAGIC:
        raise MalformedBinaryError("missing DOS header")

    pe_offset = _u32(view, 0x3C)
    if bytes(view[pe_offset : pe_offset + 4]) != _PE_SIGNATURE:
        raise MalformedBinaryError("missing PE signature")

    coff = pe_offset + 4
    section_count = _u16(view, coff + 2)
    optional_size = _u16(view, coff + 16)
    optional = coff + 20
    magic = _u16(view, optional)
    if magic == _PE32_MAGIC:
        directory_count_offset = optional + 92
        directories = optional + 96
    elif magic == _PE32_PLUS_MAGIC:
        directory_count_offset = optional + 108
        directories = optional + 112
    else:
        raise MalformedBinaryError(f"unknown optional header magic 0x{magic:x}")

    directory_count = _u32(view, directory_count_offset)
    if directory_count <= _CLI_HEADER_DIRECTORY:
        raise MalformedBinaryError("image has no CLI header directory")
    cli_rva = _u32(view, directories + _CLI_HEADER_DIRECTORY * 8)
    cli_size = _u32(view, directories + _CLI_HEADER_DIRECTORY * 8 + 4)
    if cli_rva == 0 or cli_size == 0:
        raise MalformedBinaryError("image is not a .NET assembly (empty CLI header)")

    sections = _read_sections(view, optional + optional_size, section_count)
    cli_offset = _rva_to_offset(sections, cli_rva)
    major = _u16(view, cli_offset + 4)
    minor = _u16(view, cli_offset + 6)
    metadata_rva = _u32(view, cli_offset + 8)
    metadata_size = _u32(view, cli_offset + 12)
    metadata_offset = _rva_to_offset(sections, metadata_rva)

    if _u32(view, metadata_offset) != _METADATA_SIGNATURE:
        raise MalformedBinaryError("bad metadata signature")
    version_length = _u32(view, metadata_offset + 12)
    version_bytes = bytes(view[metadata_offset + 16 : metadata_offset + 16 + version_length])
    version = version_bytes.split(b"\x00", 1)[0].decode("ascii", errors="replace")
    cursor = metadata_offset + 16 + version_length
    stream_count = _u16(view, cursor + 2)
    cursor += 4

    streams: Dict[str, StreamHeader] = {}
    for _ in range(stream_count):
        offset = _u32(view, cursor)
        size = _u32(view, cursor + 4)
        cursor += 8
        end = cursor
        while end < len(view) and view[end] != 0:
            end += 1
        if end >= len(view):
            raise MalformedBinaryError("unterminated stream name")
        name = bytes(view[cursor:end]).decode("ascii", errors="replace")
        cursor += (end - cursor + 4) & ~3
        absolute = metadata_offset + offset
        if absolute + size > len(view):
            raise MalformedBinaryError(f"stream {name} exceeds file bounds")
        # The first occurrence wins when a stream name is duplicated.
        streams.setdefault(name, StreamHeader(name=name, offset=absolute, size=size))

    return CliImage(
        runtime_version=(major, minor),
        metadata_offset=metadata_offset,
        metadata_size=metadata_size,
        metadata_version=version,
        streams=streams,
    )


def _read_sections(view: memoryview, start: int, count: int) -> List[Section]:
    sections: List[Section] = []
    for index in range(count):
        base = start + index * 40
        if base + 40 > len(view):
            raise MalformedBinaryError("truncated section table")
        raw_name = bytes(view[base : base + 8]).rstrip(b"\x00")
        virtual_size, virtual_address, raw_size, raw_pointer = struct.unpack_from(
            "<IIII", view, base + 8
        )
        sections.append(
            Section(
                name=raw_name.decode("ascii", errors="replace"),
                virtual_address=virtual_address,
                virtual_size=virtual_size,
                raw_size=raw_size,
                raw_pointer=raw_pointer,
            )
        )
    return sections


def _rva_to_offset(sections: List[Section], rva: int) -> int:
    for section in sections:
        if section.contains(rva):
            return rva - section.virtual_address + section.raw_pointer
    raise MalformedBinaryError(f"RVA 0x{rva:x} is not mapped by any section")


def _u16(view: memoryview, offset: int) -> int:
    try:
        return struct.unpack_from("<H", view, offset)[0]
    except struct.error as exc:
        raise MalformedBinaryError(f"truncated image at offset 0x{offset:x}") from exc


def _u32(view: memoryview, offset: int) -> int:
    try:
        return struct.unpack_from("<I", view, offset)[0]
    except struct.error as exc:
        raise MalformedBinaryError(f"truncated image at offset 0x{offset:x}") from exc


__all__ = ["CliImage", "MalformedBinaryError", "Section", "StreamHeader", "parse_cli_image"]
