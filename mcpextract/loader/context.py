"""Isolated universe of assemblies loaded for inspection only."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from ..logging import get_logger
from ..metadata.pe import MalformedBinaryError
from ..metadata.reader import AssemblyReference, AssemblyVersion, MetadataReader
from ..metadata.signatures import (
    PRIMITIVE_NAMES,
    VALUE_TYPE_PRIMITIVES,
    ArgumentType,
    AttributeValue,
    ElementType,
    MethodSignature,
    SignatureDecoder,
    decode_custom_attribute,
)
from ..metadata.tables import CodedToken, TableId
from .members import CustomAttributeData, MethodInfo, ParameterInfo
from .resolver import AssemblyResolver
from .types import (
    ArrayType,
    ByRefType,
    ConstructedType,
    DefinedType,
    GenericParameter,
    PointerType,
    TypeInfo,
    UnresolvedType,
    type_identity,
)

logger = get_logger("loader")

CORE_ASSEMBLY_NAMES = ("System.Runtime", "System.Private.CoreLib", "mscorlib")
_CORE_PROBE_ORDER = ("mscorlib", "System.Runtime", "netstandard")
_MAX_FORWARD_DEPTH = 8
_MAX_BASE_DEPTH = 64
_FIELD_STATIC = 0x0010
_MODULE_TYPE = "<Module>"

_ATTRIBUTE_PRIMITIVES = {
    f"System.{PRIMITIVE_NAMES[code]}": code
    for code in (
        ElementType.BOOLEAN,
        ElementType.CHAR,
        ElementType.I1,
        ElementType.U1,
        ElementType.I2,
        ElementType.U2,
        ElementType.I4,
        ElementType.U4,
        ElementType.I8,
        ElementType.U8,
        ElementType.R4,
        ElementType.R8,
        ElementType.STRING,
    )
}


class GenericContext(NamedTuple):
    """Bindings for ``!n`` and ``!!n`` while decoding a signature."""

    type_arguments: Tuple[TypeInfo, ...] = ()
    method_arguments: Tuple[TypeInfo, ...] = ()


class _TypeProvider:
    """Builds :class:`TypeInfo` objects for the signature decoder."""

    def __init__(self, assembly: "LoadedAssembly", generic: GenericContext) -> None:
        self._assembly = assembly
        self._generic = generic

    def primitive(self, element_type: int) -> TypeInfo:
        return self._assembly.context.primitive_type(element_type)

    def from_token(self, token: CodedToken, is_value_type: Optional[bool]) -> TypeInfo:
        return self._assembly.resolve_type_token(token, is_value_type, self._generic)

    def sz_array(self, element: TypeInfo) -> TypeInfo:
        return ArrayType(element)

    def array(self, element: TypeInfo, rank: int) -> TypeInfo:
        return ArrayType(element, rank, is_sz_array=False)

    def generic_instance(self, definition: TypeInfo, arguments: List[TypeInfo]) -> TypeInfo:
        return ConstructedType(definition, arguments)

    def generic_type_parameter(self, index: int) -> TypeInfo:
        bound = self._generic.type_arguments
        if index < len(bound):
            return bound[index]
        return GenericParameter(f"T{index}", index)

    def generic_method_parameter(self, index: int) -> TypeInfo:
        bound = self._generic.method_arguments
        if index < len(bound):
            return bound[index]
        return GenericParameter(f"M{index}", index, is_method_parameter=True)

    def pointer(self, element: TypeInfo) -> TypeInfo:
        return PointerType(element)

    def by_ref(self, element: TypeInfo) -> TypeInfo:
        return ByRefType(element)

    def function_pointer(self, signature: MethodSignature[TypeInfo]) -> TypeInfo:
        return self._assembly.context.primitive_type(ElementType.I)


class LoadedAssembly:
    """One assembly of the context with lazily built lookup indexes."""

    def __init__(self, context: "MetadataLoadContext", reader: MetadataReader, location: str) -> None:
        self.context = context
        self.reader = reader
        self.location = location
        identity = reader.assembly_identity()
        self.name = identity[0] if identity else Path(location).stem
        self.version: Optional[AssemblyVersion] = identity[1] if identity else None
        self.references: List[AssemblyReference] = reader.assembly_references()

        self._type_defs: Dict[int, DefinedType] = {}
        self._type_refs: Dict[Tuple[int, Optional[bool]], TypeInfo] = {}
        self._top_level: Optional[Dict[Tuple[str, str], int]] = None
        self._enclosing: Optional[Dict[int, int]] = None
        self._nested: Optional[Dict[Tuple[int, str], int]] = None
        self._method_owners: Optional[Dict[int, int]] = None
        self._attribute_index: Optional[Dict[CodedToken, List[tuple]]] = None
        self._generic_index: Optional[Dict[CodedToken, List[tuple]]] = None
        self._declared: Dict[int, List[MethodInfo]] = {}

    def __repr__(self) -> str:
        return f"<LoadedAssembly {self.name} {self.version}>"

    # ------------------------------------------------------------------
    # Types

    def types(self) -> List[DefinedType]:
        """Every type defined by the module, nested and non-public ones included."""
        result: List[DefinedType] = []
        for row in range(1, self.reader.tables.count(TableId.TYPE_DEF) + 1):
            type_def = self.type_def(row)
            if type_def.name == _MODULE_TYPE and not type_def.namespace:
                continue
            result.append(type_def)
        return result

    def type_def(self, row: int) -> DefinedType:
        cached = self._type_defs.get(row)
        if cached is not None:
            return cached
        raw = self.reader.row(TableId.TYPE_DEF, row)
        enclosing_row = self._enclosing_map().get(row)
        declaring = self.type_def(enclosing_row) if enclosing_row and enclosing_row != row else None
        type_def = DefinedType(
            self,
            row,
            self.reader.string(raw.namespace),
            self.reader.string(raw.name),
            raw.flags,
            declaring,
        )
        self._type_defs[row] = type_def
        return type_def

    def find_type(self, namespace: str, name: str) -> Optional[DefinedType]:
        """Top-level type defined in this assembly."""
        if self._top_level is None:
            enclosing = self._enclosing_map()
            self._top_level = {}
            for row, raw in enumerate(self.reader.rows(TableId.TYPE_DEF), start=1):
                if row in enclosing:
                    continue
                key = (self.reader.string(raw.namespace), self.reader.string(raw.name))
                self._top_level.setdefault(key, row)
        row = self._top_level.get((namespace, name))
        return self.type_def(row) if row else None

    def find_nested(self, enclosing: DefinedType, name: str) -> Optional[DefinedType]:
        if enclosing.assembly is not self:
            return enclosing.assembly.find_nested(enclosing, name)
        if self._nested is None:
            self._nested = {}
            for nested_row, enclosing_row in self._enclosing_map().items():
                raw = self.reader.row(TableId.TYPE_DEF, nested_row)
                self._nested.setdefault((enclosing_row, self.reader.string(raw.name)), nested_row)
        row = self._nested.get((enclosing.row, name))
        return self.type_def(row) if row else None

    def find_type_or_forwarded(self, namespace: str, name: str, depth: int = 0) -> Optional[DefinedType]:
        """Look up a top-level type, following ExportedType forwarders."""
        found = self.find_type(namespace, name)
        if found is not None or depth >= _MAX_FORWARD_DEPTH:
            return found
        for exported in self.reader.rows(TableId.EXPORTED_TYPE):
            if (
                self.reader.string(exported.name) != name
                or self.reader.string(exported.namespace) != namespace
            ):
                continue
            implementation = exported.implementation
            if implementation is None or implementation.table != TableId.ASSEMBLY_REF:
                continue
            target = self.context.load_reference(self.reference(implementation.row))
            if target is not None and target is not self:
                return target.find_type_or_forwarded(namespace, name, depth + 1)
        return None

    def reference(self, row: int) -> AssemblyReference:
        if row < 1 or row > len(self.references):
            raise MalformedBinaryError(f"AssemblyRef row {row} out of range in {self.name}")
        return self.references[row - 1]

    def resolve_type_token(
        self,
        token: CodedToken,
        is_value_type: Optional[bool] = None,
        generic: GenericContext = GenericContext(),
    ) -> TypeInfo:
        if token.table == TableId.TYPE_DEF:
            return self.type_def(token.row)
        if token.table == TableId.TYPE_REF:
            return self.resolve_type_ref(token.row, is_value_type)
        if token.table == TableId.TYPE_SPEC:
            spec = self.reader.row(TableId.TYPE_SPEC, token.row)
            decoder = SignatureDecoder(_TypeProvider(self, generic))
            return decoder.decode_type(self.reader.blob(spec.signature))
        raise MalformedBinaryError(f"token for table 0x{token.table:02x} does not name a type")

    def resolve_type_ref(self, row: int, is_value_type: Optional[bool] = None) -> TypeInfo:
        key = (row, is_value_type)
        cached = self._type_refs.get(key)
        if cached is not None:
            return cached

        raw = self.reader.row(TableId.TYPE_REF, row)
        namespace = self.reader.string(raw.namespace)
        name = self.reader.string(raw.name)
        scope = raw.resolution_scope
        declaring: Optional[TypeInfo] = None
        found: Optional[DefinedType] = None

        if scope is None:
            found = self.find_type_or_forwarded(namespace, name)
        elif scope.table in (TableId.MODULE, TableId.MODULE_REF):
            found = self.find_type(namespace, name)
        elif scope.table == TableId.ASSEMBLY_REF:
            target = self.context.load_reference(self.reference(scope.row))
            if target is not None:
                found = target.find_type_or_forwarded(namespace, name)
        elif scope.table == TableId.TYPE_REF:
            declaring = self.resolve_type_ref(scope.row)
            if isinstance(declaring, DefinedType):
                found = declaring.assembly.find_nested(declaring, name)

        result: TypeInfo
        if found is not None:
            result = found
        else:
            result = UnresolvedType(
                namespace, name, is_value_type=bool(is_value_type), declaring_type=declaring
            )
            logger.debug("Unresolved type %s referenced from %s", result.full_name, self.name)
        self._type_refs[key] = result
        return result

    def type_generic_parameters(self, type_def: DefinedType) -> Tuple[GenericParameter, ...]:
        return tuple(
            GenericParameter(self.reader.string(raw.name), raw.number, flags=raw.flags)
            for raw in self._generic_rows(CodedToken(TableId.TYPE_DEF, type_def.row))
        )

    def method_generic_parameters(self, method_row: int) -> Tuple[GenericParameter, ...]:
        return tuple(
            GenericParameter(
                self.reader.string(raw.name), raw.number, is_method_parameter=True, flags=raw.flags
            )
            for raw in self._generic_rows(CodedToken(TableId.METHOD_DEF, method_row))
        )

    def base_type_of(self, type_def: DefinedType) -> Optional[TypeInfo]:
        extends = self.reader.row(TableId.TYPE_DEF, type_def.row).extends
        if extends is None:
            return None
        return self.resolve_type_token(extends, False, GenericContext(type_def.generic_parameters))

    def is_value_type(self, type_def: DefinedType) -> bool:
        if type_def.full_name == "System.Enum":
            return False
        return self._extends_name(type_def) in ("System.ValueType", "System.Enum")

    def is_enum(self, type_def: DefinedType) -> bool:
        return self._extends_name(type_def) == "System.Enum"

    def enum_underlying_code(self, type_def: DefinedType) -> Optional[int]:
        """Element type of the instance ``value__`` field of an enum."""
        fields = self.reader.member_range(TableId.TYPE_DEF, type_def.row, "field_list", TableId.FIELD)
        decoder = SignatureDecoder(_TypeProvider(self, GenericContext()))
        for index in fields:
            raw = self.reader.row(TableId.FIELD, self.reader.indirect(TableId.FIELD_PTR, "field", index))
            if raw.flags & _FIELD_STATIC:
                continue
            try:
                field_type = decoder.decode_field(self.reader.blob(raw.signature))
            except MalformedBinaryError as exc:
                logger.debug("Skipping field %d of %s: %s", index, type_def.full_name, exc)
                continue
            return _ATTRIBUTE_PRIMITIVES.get(field_type.full_name)
        return None

    def _extends_name(self, type_def: DefinedType) -> Optional[str]:
        extends = self.reader.row(TableId.TYPE_DEF, type_def.row).extends
        if extends is None:
            return None
        if extends.table == TableId.TYPE_REF:
            namespace, name = self.reader.type_ref_name(extends.row)
        elif extends.table == TableId.TYPE_DEF:
            namespace, name = self.reader.type_def_name(extends.row)
        else:
            return None
        return f"{namespace}.{name}" if namespace else name

    # ------------------------------------------------------------------
    # Methods

    def declared_methods(self, type_def: DefinedType, declaring: Optional[TypeInfo] = None) -> List[MethodInfo]:
        """Methods declared by ``type_def``, seen through ``declaring`` when it is an instantiation."""
        if declaring is None or declaring is type_def:
            cached = self._declared.get(type_def.row)
            if cached is None:
                cached = self._build_methods(type_def, type_def)
                self._declared[type_def.row] = cached
            return cached
        return self._build_methods(type_def, declaring)

    def _build_methods(self, type_def: DefinedType, declaring: TypeInfo) -> List[MethodInfo]:
        methods: List[MethodInfo] = []
        rows = self.reader.member_range(TableId.TYPE_DEF, type_def.row, "method_list", TableId.METHOD_DEF)
        for index in rows:
            method_row = self.reader.indirect(TableId.METHOD_PTR, "method", index)
            raw = self.reader.row(TableId.METHOD_DEF, method_row)
            methods.append(MethodInfo(self, method_row, self.reader.string(raw.name), raw.flags, declaring))
        return methods

    def method_signature(
        self,
        method_row: int,
        type_arguments: Sequence[TypeInfo],
        method_arguments: Sequence[TypeInfo] = (),
    ) -> MethodSignature[TypeInfo]:
        raw = self.reader.row(TableId.METHOD_DEF, method_row)
        provider = _TypeProvider(self, GenericContext(tuple(type_arguments), tuple(method_arguments)))
        return SignatureDecoder(provider).decode_method(self.reader.blob(raw.signature))

    def method_parameters(self, method: MethodInfo) -> List[ParameterInfo]:
        by_sequence: Dict[int, Tuple[int, tuple]] = {}
        rows = self.reader.member_range(TableId.METHOD_DEF, method.row, "param_list", TableId.PARAM)
        for index in rows:
            param_row = self.reader.indirect(TableId.PARAM_PTR, "param", index)
            raw = self.reader.row(TableId.PARAM, param_row)
            by_sequence.setdefault(raw.sequence, (param_row, raw))

        parameters: List[ParameterInfo] = []
        for position, parameter_type in enumerate(method.signature.parameter_types):
            entry = by_sequence.get(position + 1)
            if entry is None:
                parameters.append(ParameterInfo(self, None, None, position, parameter_type))
                continue
            param_row, raw = entry
            name = self.reader.string(raw.name) or None
            parameters.append(ParameterInfo(self, param_row, name, position, parameter_type, raw.flags))
        return parameters

    def method_owner(self, method_row: int) -> Optional[int]:
        if self._method_owners is None:
            self._method_owners = {}
            for type_row in range(1, self.reader.tables.count(TableId.TYPE_DEF) + 1):
                rows = self.reader.member_range(TableId.TYPE_DEF, type_row, "method_list", TableId.METHOD_DEF)
                for index in rows:
                    self._method_owners[self.reader.indirect(TableId.METHOD_PTR, "method", index)] = type_row
        return self._method_owners.get(method_row)

    # ------------------------------------------------------------------
    # Custom attributes

    def attributes(self, parent: CodedToken) -> List[CustomAttributeData]:
        if self._attribute_index is None:
            self._attribute_index = {}
            for raw in self.reader.rows(TableId.CUSTOM_ATTRIBUTE):
                if raw.parent is not None:
                    self._attribute_index.setdefault(raw.parent, []).append(raw)
        result: List[CustomAttributeData] = []
        for raw in self._attribute_index.get(parent, []):
            attribute = self._attribute(raw)
            if attribute is not None:
                result.append(attribute)
        return result

    def assembly_attributes(self) -> List[CustomAttributeData]:
        return self.attributes(CodedToken(TableId.ASSEMBLY, 1))

    def type_attributes(self, type_def: DefinedType) -> List[CustomAttributeData]:
        return self.attributes(CodedToken(TableId.TYPE_DEF, type_def.row))

    def _attribute(self, raw: tuple) -> Optional[CustomAttributeData]:
        constructor: Optional[CodedToken] = raw.constructor
        if constructor is None:
            return None

        if constructor.table == TableId.MEMBER_REF:
            member = self.reader.row(TableId.MEMBER_REF, constructor.row)
            parent = member.parent
            if parent is None or parent.table not in (TableId.TYPE_REF, TableId.TYPE_DEF, TableId.TYPE_SPEC):
                logger.debug("Skipping attribute with unsupported constructor parent %s", parent)
                return None
            attribute_type = self.resolve_type_token(parent, False)
            provider = _TypeProvider(self, GenericContext(attribute_type.generic_arguments))
            signature = SignatureDecoder(provider).decode_method(self.reader.blob(member.signature))
        elif constructor.table == TableId.METHOD_DEF:
            owner = self.method_owner(constructor.row)
            if owner is None:
                raise MalformedBinaryError(f"attribute constructor {constructor.row} has no declaring type")
            attribute_type = self.type_def(owner)
            signature = self.method_signature(constructor.row, attribute_type.generic_arguments)
        else:
            return None

        try:
            parameter_types = [self.context.argument_type(item) for item in signature.parameter_types]
            value = decode_custom_attribute(
                self.reader.blob(raw.value), parameter_types, self.context.enum_underlying_for_name
            )
        except MalformedBinaryError as exc:
            logger.warning(
                "Could not decode arguments of %s in %s: %s",
                attribute_type.full_name or attribute_type.name,
                self.name,
                exc,
            )
            value = AttributeValue()

        def parameter_names() -> List[str]:
            return self.context.constructor_parameter_names(self, constructor, attribute_type, signature)

        return CustomAttributeData(attribute_type, value.fixed_arguments, value.named_arguments, parameter_names)

    def _generic_rows(self, owner: CodedToken) -> List[tuple]:
        if self._generic_index is None:
            self._generic_index = {}
            for raw in self.reader.rows(TableId.GENERIC_PARAM):
                if raw.owner is not None:
                    self._generic_index.setdefault(raw.owner, []).append(raw)
            for rows in self._generic_index.values():
                rows.sort(key=lambda item: item.number)
        return self._generic_index.get(owner, [])

    def _enclosing_map(self) -> Dict[int, int]:
        if self._enclosing is None:
            self._enclosing = {
                raw.nested_class: raw.enclosing_class for raw in self.reader.rows(TableId.NESTED_CLASS)
            }
        return self._enclosing


class MetadataLoadContext:
    """A closed set of assemblies resolved through an :class:`AssemblyResolver`.

    Nothing loaded here is executable. The context owns every reader it opens
    and releases them in :meth:`close`; use it as a context manager.
    """

    def __init__(self, resolver: AssemblyResolver, core_assembly_name: Optional[str] = None) -> None:
        self._resolver = resolver
        self._core_assembly_name = core_assembly_name
        self._assemblies: List[LoadedAssembly] = []
        self._by_name: Dict[str, Optional[LoadedAssembly]] = {}
        self._core: Optional[LoadedAssembly] = None
        self._core_probed = False
        self._primitives: Dict[int, TypeInfo] = {}
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle

    def __enter__(self) -> "MetadataLoadContext":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        for assembly in self._assemblies:
            assembly.reader.close()
        self._assemblies.clear()
        self._by_name.clear()
        self._primitives.clear()
        self._core = None
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def assemblies(self) -> List[LoadedAssembly]:
        return list(self._assemblies)

    # ------------------------------------------------------------------
    # Loading

    def load_from_assembly_path(self, path: str | Path) -> LoadedAssembly:
        """Load the binary at ``path`` into the context."""
        self._ensure_open()
        reader = MetadataReader.from_path(path)
        assembly = LoadedAssembly(self, reader, str(path))
        self._assemblies.append(assembly)
        key = assembly.name.lower()
        if self._by_name.get(key) is None:
            self._by_name[key] = assembly
        else:
            logger.debug("Assembly %s already loaded; %s is not bound by name", assembly.name, path)
        return assembly

    def load_by_name(self, name: str, version: Optional[AssemblyVersion] = None) -> Optional[LoadedAssembly]:
        """Return the assembly named ``name``, asking the resolver on first use."""
        self._ensure_open()
        key = name.lower()
        if key in self._by_name:
            return self._by_name[key]
        self._by_name[key] = None

        stream = self._resolver.resolve(name, version)
        if stream is None:
            logger.debug("Assembly %s could not be resolved", name)
            return None
        location = str(getattr(stream, "name", name))
        try:
            reader = MetadataReader.from_stream(stream, name=location)
        except MalformedBinaryError as exc:
            logger.warning("Skipping unreadable assembly %s: %s", location, exc)
            return None
        assembly = LoadedAssembly(self, reader, location)
        self._assemblies.append(assembly)
        self._by_name[key] = assembly
        return assembly

    def load_reference(self, reference: AssemblyReference) -> Optional[LoadedAssembly]:
        return self.load_by_name(reference.name, reference.version)

    @property
    def core_assembly(self) -> Optional[LoadedAssembly]:
        if not self._core_probed:
            self._core_probed = True
            candidates = (self._core_assembly_name,) if self._core_assembly_name else _CORE_PROBE_ORDER
            for candidate in candidates:
                self._core = self.load_by_name(candidate)
                if self._core is not None:
                    break
            else:
                logger.debug("No core assembly available; primitive types are synthesized")
        return self._core

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("MetadataLoadContext is closed")

    # ------------------------------------------------------------------
    # Type services

    def primitive_type(self, element_type: int) -> TypeInfo:
        cached = self._primitives.get(element_type)
        if cached is not None:
            return cached
        name = PRIMITIVE_NAMES[element_type]
        core = self.core_assembly
        found = core.find_type_or_forwarded("System", name) if core is not None else None
        result: TypeInfo = found or UnresolvedType(
            "System", name, is_value_type=element_type in VALUE_TYPE_PRIMITIVES
        )
        self._primitives[element_type] = result
        return result

    def find_type_by_name(self, qualified_name: str) -> Optional[DefinedType]:
        """Find a type from a serialized name such as ``Ns.Outer+Inner, Assembly, Version=...``."""
        type_part, _, assembly_part = qualified_name.partition(",")
        path = type_part.strip().split("+")
        namespace, _, name = path[0].rpartition(".")

        candidates: List[LoadedAssembly] = []
        assembly_name = assembly_part.strip()
        if assembly_name:
            named = self.load_by_name(assembly_name)
            if named is not None:
                candidates.append(named)
        candidates.extend(item for item in self._assemblies if item not in candidates)

        for assembly in candidates:
            found = assembly.find_type_or_forwarded(namespace, name)
            for nested_name in path[1:]:
                if found is None:
                    break
                found = found.assembly.find_nested(found, nested_name)
            if found is not None:
                return found
        return None

    def enum_underlying_for_name(self, qualified_name: str) -> int:
        found = self.find_type_by_name(qualified_name)
        if found is not None and found.is_enum:
            return found.enum_underlying_code() or ElementType.I4
        return ElementType.I4

    def argument_type(self, type_info: TypeInfo) -> ArgumentType:
        """Serialization type of an attribute constructor parameter."""
        if type_info.is_array and type_info.element_type is not None:
            return ArgumentType(ElementType.SZARRAY, element=self.argument_type(type_info.element_type))
        full_name = type_info.full_name
        code = _ATTRIBUTE_PRIMITIVES.get(full_name or "")
        if code is not None:
            return ArgumentType(code)
        if full_name == "System.Type":
            return ArgumentType(ElementType.SYSTEM_TYPE)
        if full_name == "System.Object":
            return ArgumentType(ElementType.BOXED)
        if isinstance(type_info, DefinedType) and type_info.is_enum:
            underlying = type_info.enum_underlying_code() or ElementType.I4
            return ArgumentType(ElementType.ENUM, enum_name=full_name, underlying=underlying)
        if type_info.is_value_type and not type_info.is_resolved:
            # Unresolvable value types in attribute signatures can only be enums.
            return ArgumentType(ElementType.ENUM, enum_name=full_name)
        raise MalformedBinaryError(f"unsupported attribute parameter type {full_name or type_info.name}")

    def constructor_parameter_names(
        self,
        assembly: LoadedAssembly,
        constructor: CodedToken,
        attribute_type: TypeInfo,
        signature: MethodSignature[TypeInfo],
    ) -> List[str]:
        """Declared parameter names of an attribute constructor, best effort."""
        try:
            if constructor.table == TableId.METHOD_DEF:
                method = MethodInfo(assembly, constructor.row, ".ctor", 0, attribute_type)
                return [parameter.name or "" for parameter in method.parameters]

            definition = attribute_type
            if isinstance(attribute_type, ConstructedType):
                definition = attribute_type.generic_type_definition()
            if not isinstance(definition, DefinedType):
                return []
            wanted = [type_identity(item) for item in signature.parameter_types]
            same_arity: List[MethodInfo] = []
            for method in definition.assembly.declared_methods(definition, attribute_type):
                if method.name != ".ctor" or len(method.signature.parameter_types) != len(wanted):
                    continue
                same_arity.append(method)
                if [type_identity(item) for item in method.signature.parameter_types] == wanted:
                    return [parameter.name or "" for parameter in method.parameters]
            if len(same_arity) == 1:
                return [parameter.name or "" for parameter in same_arity[0].parameters]
        except MalformedBinaryError as exc:
            logger.debug("Could not read constructor of %s: %s", attribute_type.full_name, exc)
        return []

    def public_methods(self, type_def: DefinedType) -> List[MethodInfo]:
        """Public methods of ``type_def`` plus inherited public instance methods."""
        methods: List[MethodInfo] = []
        hidden = set()
        for method in type_def.declared_methods():
            if not method.is_public or method.is_constructor:
                continue
            methods.append(method)
            if not method.is_static:
                hidden.add(method.signature_key)

        current: TypeInfo = type_def
        for _ in range(_MAX_BASE_DEPTH):
            try:
                base = current.base_type
                if base is None:
                    break
                definition = base.generic_type_definition() if isinstance(base, ConstructedType) else base
                if not isinstance(definition, DefinedType):
                    break
                inherited = definition.assembly.declared_methods(definition, base)
                for method in inherited:
                    if not method.is_public or method.is_static or method.is_constructor:
                        continue
                    key = method.signature_key
                    if key in hidden:
                        continue
                    hidden.add(key)
                    methods.append(method)
            except MalformedBinaryError as exc:
                logger.debug("Stopped walking base types of %s: %s", type_def.full_name, exc)
                break
            current = base
        return methods


__all__ = [
    "CORE_ASSEMBLY_NAMES",
    "GenericContext",
    "LoadedAssembly",
    "MetadataLoadContext",
]
