"""Signature and custom attribute blob decoding (ECMA-335 II.23.2, II.23.3)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Generic, List, Optional, Protocol, Sequence, TypeVar

from .heaps import BlobCursor
from .pe import MalformedBinaryError
from .tables import CodedToken, TableId


class ElementType:
    """Element type codes used in signature blobs."""

    END = 0x00
    VOID = 0x01
    BOOLEAN = 0x02
    CHAR = 0x03
    I1 = 0x04
    U1 = 0x05
    I2 = 0x06
    U2 = 0x07
    I4 = 0x08
    U4 = 0x09
    I8 = 0x0A
    U8 = 0x0B
    R4 = 0x0C
    R8 = 0x0D
    STRING = 0x0E
    PTR = 0x0F
    BYREF = 0x10
    VALUETYPE = 0x11
    CLASS = 0x12
    VAR = 0x13
    ARRAY = 0x14
    GENERICINST = 0x15
    TYPEDBYREF = 0x16
    I = 0x18
    U = 0x19
    FNPTR = 0x1B
    OBJECT = 0x1C
    SZARRAY = 0x1D
    MVAR = 0x1E
    CMOD_REQD = 0x1F
    CMOD_OPT = 0x20
    INTERNAL = 0x21
    SENTINEL = 0x41
    PINNED = 0x45
    # Custom attribute encodings.
    SYSTEM_TYPE = 0x50
    BOXED = 0x51
    FIELD = 0x53
    PROPERTY = 0x54
    ENUM = 0x55


PRIMITIVE_NAMES = {
    ElementType.VOID: "Void",
    ElementType.BOOLEAN: "Boolean",
    ElementType.CHAR: "Char",
    ElementType.I1: "SByte",
    ElementType.U1: "Byte",
    ElementType.I2: "Int16",
    ElementType.U2: "UInt16",
    ElementType.I4: "Int32",
    ElementType.U4: "UInt32",
    ElementType.I8: "Int64",
    ElementType.U8: "UInt64",
    ElementType.R4: "Single",
    ElementType.R8: "Double",
    ElementType.STRING: "String",
    ElementType.TYPEDBYREF: "TypedReference",
    ElementType.I: "IntPtr",
    ElementType.U: "UIntPtr",
    ElementType.OBJECT: "Object",
}

VALUE_TYPE_PRIMITIVES = frozenset(
    code
    for code in PRIMITIVE_NAMES
    if code not in (ElementType.STRING, ElementType.OBJECT)
)

_CALLING_CONVENTION_GENERIC = 0x10
_CALLING_CONVENTION_HAS_THIS = 0x20
_CALLING_CONVENTION_EXPLICIT_THIS = 0x40
_CALLING_CONVENTION_MASK = 0x0F
_FIELD_SIGNATURE = 0x06

_TYPE_DEF_OR_REF_TABLES = (TableId.TYPE_DEF, TableId.TYPE_REF, TableId.TYPE_SPEC)

T = TypeVar("T")


class SignatureTypeProvider(Protocol[T]):
    """Builds caller-specific type objects while a signature is decoded."""

    def primitive(self, element_type: int) -> T: ...

    def from_token(self, token: CodedToken, is_value_type: Optional[bool]) -> T: ...

    def sz_array(self, element: T) -> T: ...

    def array(self, element: T, rank: int) -> T: ...

    def generic_instance(self, definition: T, arguments: List[T]) -> T: ...

    def generic_type_parameter(self, index: int) -> T: ...

    def generic_method_parameter(self, index: int) -> T: ...

    def pointer(self, element: T) -> T: ...

    def by_ref(self, element: T) -> T: ...

    def function_pointer(self, signature: "MethodSignature[T]") -> T: ...


@dataclass(frozen=True)
class MethodSignature(Generic[T]):
    """Decoded MethodDefSig / MethodRefSig."""

    header: int
    generic_parameter_count: int
    return_type: T
    parameter_types: List[T]
    required_parameter_count: int

    @property
    def has_this(self) -> bool:
        return bool(self.header & _CALLING_CONVENTION_HAS_THIS)

    @property
    def is_generic(self) -> bool:
        return bool(self.header & _CALLING_CONVENTION_GENERIC)


class SignatureDecoder(Generic[T]):
    """Decodes type, method and field signatures through a provider."""

    def __init__(self, provider: SignatureTypeProvider[T]) -> None:
        self._provider = provider

    def decode_method(self, blob: bytes) -> MethodSignature[T]:
        return self._method(BlobCursor(blob))

    def decode_field(self, blob: bytes) -> T:
        cursor = BlobCursor(blob)
        header = cursor.read_byte()
        if header & _CALLING_CONVENTION_MASK != _FIELD_SIGNATURE:
            raise MalformedBinaryError(f"not a field signature (header 0x{header:02x})")
        return self._type(cursor)

    def decode_type(self, blob: bytes) -> T:
        return self._type(BlobCursor(blob))

    # ------------------------------------------------------------------
    # Internal helpers

    def _method(self, cursor: BlobCursor) -> MethodSignature[T]:
        header = cursor.read_byte()
        generic_count = 0
        if header & _CALLING_CONVENTION_GENERIC:
            generic_count = cursor.read_compressed_uint()
        count = cursor.read_compressed_uint()
        return_type = self._type(cursor, allow_byref=True, allow_void=True)
        parameters: List[T] = []
        required = count
        for index in range(count):
            if not cursor.at_end() and cursor.peek() == ElementType.SENTINEL:
                cursor.read_byte()
                required = index
            parameters.append(self._type(cursor, allow_byref=True))
        return MethodSignature(header, generic_count, return_type, parameters, required)

    def _type(
        self, cursor: BlobCursor, *, allow_byref: bool = False, allow_void: bool = False
    ) -> T:
        self._skip_custom_modifiers(cursor)
        code = cursor.read_byte()
        provider = self._provider

        if code == ElementType.BYREF:
            if not allow_byref:
                raise MalformedBinaryError("unexpected BYREF in signature")
            return provider.by_ref(self._type(cursor))
        if code == ElementType.VOID and not allow_void:
            raise MalformedBinaryError("unexpected VOID in signature")
        if code in PRIMITIVE_NAMES:
            return provider.primitive(code)
        if code in (ElementType.CLASS, ElementType.VALUETYPE):
            token = self._type_def_or_ref(cursor)
            return provider.from_token(token, code == ElementType.VALUETYPE)
        if code == ElementType.SZARRAY:
            return provider.sz_array(self._type(cursor))
        if code == ElementType.ARRAY:
            element = self._type(cursor)
            rank = cursor.read_compressed_uint()
            for _ in range(cursor.read_compressed_uint()):
                cursor.read_compressed_uint()
            for _ in range(cursor.read_compressed_uint()):
                cursor.read_compressed_int()
            return provider.array(element, rank)
        if code == ElementType.GENERICINST:
            kind = cursor.read_byte()
            if kind not in (ElementType.CLASS, ElementType.VALUETYPE):
                raise MalformedBinaryError(f"invalid GENERICINST kind 0x{kind:02x}")
            token = self._type_def_or_ref(cursor)
            definition = provider.from_token(token, kind == ElementType.VALUETYPE)
            count = cursor.read_compressed_uint()
            arguments = [self._type(cursor) for _ in range(count)]
            return provider.generic_instance(definition, arguments)
        if code == ElementType.VAR:
            return provider.generic_type_parameter(cursor.read_compressed_uint())
        if code == ElementType.MVAR:
            return provider.generic_method_parameter(cursor.read_compressed_uint())
        if code == ElementType.PTR:
            return provider.pointer(self._type(cursor, allow_void=True))
        if code == ElementType.FNPTR:
            return provider.function_pointer(self._method(cursor))
        if code == ElementType.PINNED:
            return self._type(cursor, allow_byref=True)
        raise MalformedBinaryError(f"unsupported element type 0x{code:02x} in signature")

    @staticmethod
    def _skip_custom_modifiers(cursor: BlobCursor) -> None:
        while not cursor.at_end() and cursor.peek() in (
            ElementType.CMOD_REQD,
            ElementType.CMOD_OPT,
        ):
            cursor.read_byte()
            cursor.read_compressed_uint()

    @staticmethod
    def _type_def_or_ref(cursor: BlobCursor) -> CodedToken:
        encoded = cursor.read_compressed_uint()
        tag = encoded & 0x3
        row = encoded >> 2
        if tag >= len(_TYPE_DEF_OR_REF_TABLES) or row == 0:
            raise MalformedBinaryError(f"invalid TypeDefOrRefOrSpec token 0x{encoded:x}")
        return CodedToken(table=_TYPE_DEF_OR_REF_TABLES[tag], row=row)


# ----------------------------------------------------------------------
# Custom attribute values


@dataclass(frozen=True)
class ArgumentType:
    """Serialization type of a custom attribute argument."""

    code: int
    element: Optional["ArgumentType"] = None
    enum_name: Optional[str] = None
    underlying: int = ElementType.I4

    @property
    def type_name(self) -> str:
        if self.code == ElementType.SZARRAY and self.element is not None:
            return f"{self.element.type_name}[]"
        if self.code == ElementType.ENUM:
            return self.enum_name or "System.Enum"
        if self.code == ElementType.SYSTEM_TYPE:
            return "System.Type"
        if self.code == ElementType.BOXED:
            return "System.Object"
        return f"System.{PRIMITIVE_NAMES.get(self.code, 'Object')}"


@dataclass(frozen=True)
class AttributeArgument:
    """A decoded argument value with the name of its serialization type."""

    type_name: str
    value: object


@dataclass(frozen=True)
class AttributeNamedArgument:
    """A decoded field or property assignment of a custom attribute."""

    name: str
    is_field: bool
    argument: AttributeArgument


@dataclass
class AttributeValue:
    """Fixed and named arguments decoded from a CustomAttribute blob."""

    fixed_arguments: List[AttributeArgument] = field(default_factory=list)
    named_arguments: List[AttributeNamedArgument] = field(default_factory=list)


_PRIMITIVE_FORMATS = {
    ElementType.BOOLEAN: "<?",
    ElementType.CHAR: "<H",
    ElementType.I1: "<b",
    ElementType.U1: "<B",
    ElementType.I2: "<h",
    ElementType.U2: "<H",
    ElementType.I4: "<i",
    ElementType.U4: "<I",
    ElementType.I8: "<q",
    ElementType.U8: "<Q",
    ElementType.R4: "<f",
    ElementType.R8: "<d",
}

EnumResolver = Callable[[str], int]


def decode_custom_attribute(
    blob: bytes,
    parameter_types: Sequence[ArgumentType],
    enum_underlying: EnumResolver | None = None,
) -> AttributeValue:
    """Decode a CustomAttribute value blob given the constructor parameter types.

    ``enum_underlying`` maps a serialized enum type name to the element type of
    its underlying integer; unknown enums are read as 32-bit integers.
    """
    resolve = enum_underlying or (lambda _name: ElementType.I4)
    value = AttributeValue()
    if not blob:
        return value

    cursor = BlobCursor(blob)
    prolog = cursor.read_struct("<H")
    if prolog != 0x0001:
        raise MalformedBinaryError(f"bad custom attribute prolog 0x{prolog:04x}")

    for parameter_type in parameter_types:
        value.fixed_arguments.append(_read_argument(cursor, parameter_type, resolve))

    if cursor.at_end():
        return value
    named_count = cursor.read_struct("<H")
    for _ in range(int(named_count)):  # type: ignore[call-overload]
        kind = cursor.read_byte()
        if kind not in (ElementType.FIELD, ElementType.PROPERTY):
            raise MalformedBinaryError(f"invalid named argument kind 0x{kind:02x}")
        argument_type = _read_field_or_prop_type(cursor, resolve)
        name = cursor.read_ser_string() or ""
        argument = _read_argument(cursor, argument_type, resolve)
        value.named_arguments.append(
            AttributeNamedArgument(name=name, is_field=kind == ElementType.FIELD, argument=argument)
        )
    return value


def _read_field_or_prop_type(cursor: BlobCursor, resolve: EnumResolver) -> ArgumentType:
    code = cursor.read_byte()
    if code == ElementType.SZARRAY:
        return ArgumentType(code, element=_read_field_or_prop_type(cursor, resolve))
    if code == ElementType.ENUM:
        name = cursor.read_ser_string() or ""
        return ArgumentType(code, enum_name=name, underlying=resolve(name))
    if code in _PRIMITIVE_FORMATS or code in (
        ElementType.STRING,
        ElementType.SYSTEM_TYPE,
        ElementType.BOXED,
    ):
        return ArgumentType(code)
    raise MalformedBinaryError(f"invalid FieldOrPropType 0x{code:02x}")


def _read_argument(
    cursor: BlobCursor, argument_type: ArgumentType, resolve: EnumResolver
) -> AttributeArgument:
    code = argument_type.code
    if code == ElementType.BOXED:
        inner_type = _read_field_or_prop_type(cursor, resolve)
        inner = _read_argument(cursor, inner_type, resolve)
        return AttributeArgument(type_name=inner.type_name, value=inner.value)
    if code == ElementType.SZARRAY:
        length = cursor.read_struct("<I")
        if length == 0xFFFFFFFF:
            return AttributeArgument(type_name=argument_type.type_name, value=None)
        element_type = argument_type.element
        if element_type is None:
            raise MalformedBinaryError("array argument without element type")
        items = [
            _read_argument(cursor, element_type, resolve)
            for _ in range(int(length))  # type: ignore[call-overload]
        ]
        return AttributeArgument(type_name=argument_type.type_name, value=items)
    return AttributeArgument(
        type_name=argument_type.type_name, value=_read_scalar(cursor, argument_type)
    )


def _read_scalar(cursor: BlobCursor, argument_type: ArgumentType) -> object:
    code = argument_type.code
    if code in (ElementType.STRING, ElementType.SYSTEM_TYPE):
        return cursor.read_ser_string()
    if code == ElementType.ENUM:
        code = argument_type.underlying
    fmt = _PRIMITIVE_FORMATS.get(code)
    if fmt is None:
        raise MalformedBinaryError(f"unsupported attribute argument type 0x{code:02x}")
    value = cursor.read_struct(fmt)
    if code == ElementType.CHAR:
        return chr(int(value))  # type: ignore[call-overload]
    return value


__all__ = [
    "ArgumentType",
    "AttributeArgument",
    "AttributeNamedArgument",
    "AttributeValue",
    "ElementType",
    "MethodSignature",
    "PRIMITIVE_NAMES",
    "SignatureDecoder",
    "SignatureTypeProvider",
    "VALUE_TYPE_PRIMITIVES",
    "decode_custom_attribute",
]
