"""Type objects of the isolated metadata universe."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .context import LoadedAssembly
    from .members import CustomAttributeData, MethodInfo


class TypeInfo:
    """Structural view of a type, loosely modelled on ``System.Type``.

    Instances never represent live objects; they only describe what the
    metadata says about a type.
    """

    name: str = ""
    namespace: str = ""
    is_value_type: bool = False
    is_array: bool = False
    is_by_ref: bool = False
    is_pointer: bool = False
    is_generic_parameter: bool = False
    is_enum: bool = False
    is_resolved: bool = True

    @property
    def full_name(self) -> Optional[str]:
        return None

    @property
    def is_generic_type(self) -> bool:
        return False

    @property
    def is_generic_type_definition(self) -> bool:
        return False

    @property
    def element_type(self) -> Optional["TypeInfo"]:
        return None

    @property
    def generic_arguments(self) -> Tuple["TypeInfo", ...]:
        return ()

    def generic_type_definition(self) -> "TypeInfo":
        raise TypeError(f"{self.name} is not a generic type")

    @property
    def base_type(self) -> Optional["TypeInfo"]:
        return None

    def substitute(self, type_arguments: Sequence["TypeInfo"]) -> "TypeInfo":
        """Replace generic type parameters with ``type_arguments``."""
        return self

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.full_name or self.name}>"


class NamedType(TypeInfo):
    """A nominal type identified by namespace, name and optional enclosing type."""

    def __init__(self, namespace: str, name: str, declaring_type: Optional[TypeInfo] = None) -> None:
        self.namespace = namespace
        self.name = name
        self.declaring_type = declaring_type

    @property
    def full_name(self) -> Optional[str]:
        if self.declaring_type is not None:
            outer = self.declaring_type.full_name or self.declaring_type.name
            return f"{outer}+{self.name}"
        if self.namespace:
            return f"{self.namespace}.{self.name}"
        return self.name

    @property
    def generic_arity(self) -> int:
        _, _, arity = self.name.rpartition("`")
        return int(arity) if arity.isdigit() else 0

    @property
    def is_generic_type(self) -> bool:
        return self.generic_arity > 0

    @property
    def is_generic_type_definition(self) -> bool:
        return self.generic_arity > 0

    def generic_type_definition(self) -> TypeInfo:
        if not self.is_generic_type_definition:
            return super().generic_type_definition()
        return self


class DefinedType(NamedType):
    """A TypeDef row of an assembly loaded into the context."""

    def __init__(
        self,
        assembly: "LoadedAssembly",
        row: int,
        namespace: str,
        name: str,
        flags: int,
        declaring_type: Optional[TypeInfo] = None,
    ) -> None:
        super().__init__(namespace, name, declaring_type)
        self.assembly = assembly
        self.row = row
        self.flags = flags
        self._generic_parameters: Optional[Tuple[GenericParameter, ...]] = None

    @property
    def is_public(self) -> bool:
        visibility = self.flags & 0x7
        return visibility in (1, 2)

    @property
    def is_value_type(self) -> bool:  # type: ignore[override]
        return self.assembly.is_value_type(self)

    @property
    def is_enum(self) -> bool:  # type: ignore[override]
        return self.assembly.is_enum(self)

    @property
    def generic_parameters(self) -> Tuple["GenericParameter", ...]:
        if self._generic_parameters is None:
            self._generic_parameters = self.assembly.type_generic_parameters(self)
        return self._generic_parameters

    @property
    def is_generic_type(self) -> bool:
        return bool(self.generic_parameters) or super().is_generic_type

    @property
    def is_generic_type_definition(self) -> bool:
        return self.is_generic_type

    @property
    def generic_arguments(self) -> Tuple[TypeInfo, ...]:
        return self.generic_parameters

    @property
    def base_type(self) -> Optional[TypeInfo]:
        return self.assembly.base_type_of(self)

    @property
    def custom_attributes(self) -> List["CustomAttributeData"]:
        return self.assembly.type_attributes(self)

    def declared_methods(self) -> List["MethodInfo"]:
        return self.assembly.declared_methods(self)

    def get_methods(self) -> List["MethodInfo"]:
        """Public instance and static methods, including inherited instance methods."""
        return self.assembly.context.public_methods(self)

    def enum_underlying_code(self) -> Optional[int]:
        return self.assembly.enum_underlying_code(self)


class UnresolvedType(NamedType):
    """A type reference whose defining assembly is not available."""

    is_resolved = False

    def __init__(
        self,
        namespace: str,
        name: str,
        *,
        is_value_type: bool = False,
        declaring_type: Optional[TypeInfo] = None,
    ) -> None:
        super().__init__(namespace, name, declaring_type)
        self.is_value_type = is_value_type


class GenericParameter(TypeInfo):
    """A generic type or method parameter (``T``)."""

    _VALUE_TYPE_CONSTRAINT = 0x0008

    def __init__(self, name: str, position: int, *, is_method_parameter: bool = False, flags: int = 0) -> None:
        self.name = name
        self.position = position
        self.is_method_parameter = is_method_parameter
        self.flags = flags
        self.is_generic_parameter = True
        self.is_value_type = bool(flags & self._VALUE_TYPE_CONSTRAINT)

    def substitute(self, type_arguments: Sequence[TypeInfo]) -> TypeInfo:
        if not self.is_method_parameter and self.position < len(type_arguments):
            return type_arguments[self.position]
        return self


class ArrayType(TypeInfo):
    """Single-dimensional (``T[]``) or multi-dimensional (``T[,]``) array."""

    is_array = True

    def __init__(self, element: TypeInfo, rank: int = 1, *, is_sz_array: bool = True) -> None:
        self._element = element
        self.rank = rank
        self.is_sz_array = is_sz_array
        self.namespace = element.namespace
        self.name = element.name + self._suffix

    @property
    def _suffix(self) -> str:
        if self.is_sz_array:
            return "[]"
        if self.rank == 1:
            return "[*]"
        return "[" + "," * (self.rank - 1) + "]"

    @property
    def full_name(self) -> Optional[str]:
        inner = self._element.full_name
        return inner + self._suffix if inner else None

    @property
    def element_type(self) -> TypeInfo:
        return self._element

    def substitute(self, type_arguments: Sequence[TypeInfo]) -> TypeInfo:
        element = self._element.substitute(type_arguments)
        if element is self._element:
            return self
        return ArrayType(element, self.rank, is_sz_array=self.is_sz_array)


class ConstructedType(TypeInfo):
    """A closed or partially closed generic instantiation (``List<string>``)."""

    def __init__(self, definition: TypeInfo, arguments: Sequence[TypeInfo]) -> None:
        self._definition = definition
        self._arguments = tuple(arguments)
        self.namespace = definition.namespace
        self.name = definition.name

    @property
    def is_value_type(self) -> bool:  # type: ignore[override]
        return self._definition.is_value_type

    @property
    def is_enum(self) -> bool:  # type: ignore[override]
        return False

    @property
    def is_resolved(self) -> bool:  # type: ignore[override]
        return self._definition.is_resolved

    @property
    def full_name(self) -> Optional[str]:
        base = self._definition.full_name
        names = [argument.full_name for argument in self._arguments]
        if base is None or any(name is None for name in names):
            return None
        return base + "[" + ",".join(f"[{name}]" for name in names) + "]"

    @property
    def is_generic_type(self) -> bool:
        return True

    @property
    def generic_arguments(self) -> Tuple[TypeInfo, ...]:
        return self._arguments

    def generic_type_definition(self) -> TypeInfo:
        return self._definition

    @property
    def base_type(self) -> Optional[TypeInfo]:
        base = self._definition.base_type
        return base.substitute(self._arguments) if base is not None else None

    def substitute(self, type_arguments: Sequence[TypeInfo]) -> TypeInfo:
        arguments = [argument.substitute(type_arguments) for argument in self._arguments]
        if all(new is old for new, old in zip(arguments, self._arguments)):
            return self
        return ConstructedType(self._definition, arguments)


class _ModifiedType(TypeInfo):
    _suffix = ""

    def __init__(self, element: TypeInfo) -> None:
        self._element = element
        self.namespace = element.namespace
        self.name = element.name + self._suffix

    @property
    def full_name(self) -> Optional[str]:
        inner = self._element.full_name
        return inner + self._suffix if inner else None

    @property
    def element_type(self) -> TypeInfo:
        return self._element

    def substitute(self, type_arguments: Sequence[TypeInfo]) -> TypeInfo:
        element = self._element.substitute(type_arguments)
        if element is self._element:
            return self
        return type(self)(element)


class ByRefType(_ModifiedType):
    """``ref``/``out`` parameter type (``T&``)."""

    is_by_ref = True
    _suffix = "&"


class PointerType(_ModifiedType):
    """Unmanaged pointer (``T*``)."""

    is_pointer = True
    _suffix = "*"


def type_identity(type_info: TypeInfo) -> str:
    """Stable string used to compare signatures across declaring types."""
    if type_info.is_generic_parameter:
        prefix = "!!" if getattr(type_info, "is_method_parameter", False) else "!"
        return f"{prefix}{getattr(type_info, 'position', type_info.name)}"
    if isinstance(type_info, ConstructedType):
        arguments = ",".join(type_identity(argument) for argument in type_info.generic_arguments)
        return f"{type_identity(type_info.generic_type_definition())}<{arguments}>"
    if type_info.element_type is not None:
        suffix = type_info.name[len(type_info.element_type.name):]
        return type_identity(type_info.element_type) + suffix
    return type_info.full_name or type_info.name


__all__ = [
    "ArrayType",
    "ByRefType",
    "ConstructedType",
    "DefinedType",
    "GenericParameter",
    "NamedType",
    "PointerType",
    "TypeInfo",
    "UnresolvedType",
    "type_identity",
]
