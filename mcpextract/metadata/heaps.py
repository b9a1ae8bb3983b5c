"""Readers for the #Strings, #Blob and #GUID metadata heaps."""

from __future__ import annotations

import struct
import uuid
from typing import Dict, Optional

from .pe import MalformedBinaryError


class BlobCursor:
    """Sequential reader over a signature or attribute blob."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.position = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.position

    def at_end(self) -> bool:
        return self.position >= len(self.data)

    def peek(self) -> int:
        if self.at_end():
            raise MalformedBinaryError("unexpected end of blob")
        return self.data[self.position]

    def read_byte(self) -> int:
        value = self.peek()
        self.position += 1
        return value

    def read_bytes(self, count: int) -> bytes:
        if count < 0 or self.position + count > len(self.data):
            raise MalformedBinaryError("unexpected end of blob")
        chunk = self.data[self.position : self.position + count]
        self.position += count
        return chunk

    def read_struct(self, fmt: str) -> object:
        size = struct.calcsize(fmt)
        (value,) = struct.unpack(fmt, self.read_bytes(size))
        return value

    def read_compressed_uint(self) -> int:
        first = self.read_byte()
        if first & 0x80 == 0:
            return first
        if first & 0xC0 == 0x80:
            return ((first & 0x3F) << 8) | self.read_byte()
        if first & 0xE0 == 0xC0:
            rest = self.read_bytes(3)
            return ((first & 0x1F) << 24) | (rest[0] << 16) | (rest[1] << 8) | rest[2]
        raise MalformedBinaryError(f"invalid compressed integer lead byte 0x{first:02x}")

    def read_compressed_int(self) -> int:
        first = self.peek()
        raw = self.read_compressed_uint()
        if first & 0x80 == 0:
            bits = 7
        elif first & 0xC0 == 0x80:
            bits = 14
        else:
            bits = 29
        # Signed values are rotated left by one with the sign in bit 0.
        value = raw >> 1
        if raw & 1:
            value -= 1 << (bits - 1)
        return value

    def read_ser_string(self) -> Optional[str]:
        """Read a SerString: 0xFF for null, else a compressed length and UTF-8 bytes."""
        if self.peek() == 0xFF:
            self.position += 1
            return None
        length = self.read_compressed_uint()
        return self.read_bytes(length).decode("utf-8", errors="replace")


def read_compressed_uint(data: bytes | memoryview, offset: int) -> tuple[int, int]:
    """Return ``(value, bytes_consumed)`` for a compressed unsigned integer."""
    try:
        first = data[offset]
        if first & 0x80 == 0:
            return first, 1
        if first & 0xC0 == 0x80:
            return ((first & 0x3F) << 8) | data[offset + 1], 2
        if first & 0xE0 == 0xC0:
            value = (
                ((first & 0x1F) << 24)
                | (data[offset + 1] << 16)
                | (data[offset + 2] << 8)
                | data[offset + 3]
            )
            return value, 4
    except IndexError as exc:
        raise MalformedBinaryError("truncated compressed integer") from exc
    raise MalformedBinaryError(f"invalid compressed integer lead byte 0x{first:02x}")


class StringHeap:
    """UTF-8, null-terminated identifiers addressed by byte offset."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._cache: Dict[int, str] = {}

    def get(self, offset: int) -> str:
        if offset == 0:
            return ""
        cached = self._cache.get(offset)
        if cached is not None:
            return cached
        if offset >= len(self._data):
            raise MalformedBinaryError(f"string heap offset {offset} out of range")
        end = self._data.find(b"\x00", offset)
        if end < 0:
            end = len(self._data)
        value = self._data[offset:end].decode("utf-8", errors="replace")
        self._cache[offset] = value
        return value


class BlobHeap:
    """Length-prefixed byte blobs addressed by byte offset."""

    def __init__(self, data: bytes) -> None:
        self._data = data

    def get(self, offset: int) -> bytes:
        if offset == 0:
            return b""
        if offset >= len(self._data):
            raise MalformedBinaryError(f"blob heap offset {offset} out of range")
        length, consumed = read_compressed_uint(self._data, offset)
        start = offset + consumed
        if start + length > len(self._data):
            raise MalformedBinaryError(f"blob at offset {offset} exceeds heap")
        return bytes(self._data[start : start + length])

    def cursor(self, offset: int) -> BlobCursor:
        return BlobCursor(self.get(offset))


class GuidHeap:
    """16-byte GUIDs addressed by 1-based index."""

    def __init__(self, data: bytes) -> None:
        self._data = data

    def get(self, index: int) -> Optional[uuid.UUID]:
        if index == 0:
            return None
        start = (index - 1) * 16
        if start + 16 > len(self._data):
            raise MalformedBinaryError(f"GUID heap index {index} out of range")
        return uuid.UUID(bytes_le=bytes(self._data[start : start + 16]))


__all__ = ["BlobCursor", "BlobHeap", "GuidHeap", "StringHeap", "read_compressed_uint"]
