"""Methods, parameters and custom attributes of loaded types."""

from __future__ import annotations

from functools import cached_property
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

from ..metadata.signatures import AttributeArgument, AttributeNamedArgument, MethodSignature
from ..metadata.tables import CodedToken, TableId
from .types import GenericParameter, TypeInfo, type_identity

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .context import LoadedAssembly

_MEMBER_ACCESS_MASK = 0x0007
_PUBLIC = 0x0006
_STATIC = 0x0010
_PARAM_HAS_DEFAULT = 0x1000

# Compilers record defaults the Constant table cannot hold through these attributes.
_DEFAULT_VALUE_ATTRIBUTES = frozenset(
    {
        "DefaultParameterValueAttribute",
        "DecimalConstantAttribute",
        "DateTimeConstantAttribute",
    }
)


class CustomAttributeData:
    """A custom attribute instance with its decoded arguments."""

    def __init__(
        self,
        attribute_type: TypeInfo,
        constructor_arguments: List[AttributeArgument],
        named_arguments: List[AttributeNamedArgument],
        parameter_names: Callable[[], List[str]] = lambda: [],
    ) -> None:
        self.attribute_type = attribute_type
        self.constructor_arguments = constructor_arguments
        self.named_arguments = named_arguments
        self._parameter_names = parameter_names

    @property
    def name(self) -> str:
        return self.attribute_type.name

    @property
    def full_name(self) -> Optional[str]:
        return self.attribute_type.full_name

    @cached_property
    def constructor_parameter_names(self) -> List[str]:
        """Declared names of the constructor parameters, when the constructor is loadable."""
        return self._parameter_names()

    def __repr__(self) -> str:
        return f"<CustomAttributeData {self.full_name or self.name}>"


class ParameterInfo:
    """A method parameter as declared by the signature and the Param table."""

    def __init__(
        self,
        assembly: "LoadedAssembly",
        row: Optional[int],
        name: Optional[str],
        position: int,
        parameter_type: TypeInfo,
        flags: int = 0,
    ) -> None:
        self.assembly = assembly
        self.row = row
        self.name = name
        self.position = position
        self.parameter_type = parameter_type
        self.flags = flags

    @cached_property
    def custom_attributes(self) -> List[CustomAttributeData]:
        if self.row is None:
            return []
        return self.assembly.attributes(CodedToken(TableId.PARAM, self.row))

    @property
    def has_default_value(self) -> bool:
        if self.flags & _PARAM_HAS_DEFAULT:
            return True
        return any(attribute.name in _DEFAULT_VALUE_ATTRIBUTES for attribute in self.custom_attributes)

    def __repr__(self) -> str:
        return f"<ParameterInfo {self.name} {self.parameter_type!r}>"


class MethodInfo:
    """A MethodDef row seen through a (possibly constructed) declaring type."""

    def __init__(
        self,
        assembly: "LoadedAssembly",
        row: int,
        name: str,
        flags: int,
        declaring_type: TypeInfo,
    ) -> None:
        self.assembly = assembly
        self.row = row
        self.name = name
        self.flags = flags
        self.declaring_type = declaring_type

    @property
    def is_public(self) -> bool:
        return self.flags & _MEMBER_ACCESS_MASK == _PUBLIC

    @property
    def is_static(self) -> bool:
        return bool(self.flags & _STATIC)

    @property
    def is_constructor(self) -> bool:
        return self.name in (".ctor", ".cctor")

    @cached_property
    def generic_parameters(self) -> Tuple[GenericParameter, ...]:
        return self.assembly.method_generic_parameters(self.row)

    @cached_property
    def signature(self) -> MethodSignature[TypeInfo]:
        return self.assembly.method_signature(
            self.row, self.declaring_type.generic_arguments, self.generic_parameters
        )

    @property
    def return_type(self) -> TypeInfo:
        return self.signature.return_type

    @cached_property
    def parameters(self) -> List[ParameterInfo]:
        return self.assembly.method_parameters(self)

    @cached_property
    def custom_attributes(self) -> List[CustomAttributeData]:
        return self.assembly.attributes(CodedToken(TableId.METHOD_DEF, self.row))

    @property
    def signature_key(self) -> Tuple[str, int, Tuple[str, ...]]:
        """Name and parameter identities used for hide-by-signature checks."""
        return (
            self.name,
            len(self.generic_parameters),
            tuple(type_identity(parameter) for parameter in self.signature.parameter_types),
        )

    def __repr__(self) -> str:
        owner = self.declaring_type.full_name or self.declaring_type.name
        return f"<MethodInfo {owner}.{self.name}>"


__all__ = ["CustomAttributeData", "MethodInfo", "ParameterInfo"]
