"""
Container transfer module

Moves ownership of dynamic containers (std::string, std::vector<E>) across
the boundary without copying. A single fixed-size ContainerWrapper aggregate
per unit holds exactly one container of one variant at a time; the variant
set is closed and enumerated while the unit's signatures are synthesized.

    Library signature                       Boundary signature
    -----------------                       ------------------
    std::vector<float> samples()         -> void geom_samples(geom_container* out)
    void load(const std::string& path)   -> void geom_load(const char* path, size_t path_len)
    void fill(std::vector<int>& out)     -> refused (mutable container reference)

Per variant the wrapper exposes size/get/data/release/copy/move functions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from .classify import Kind, TypeRecord
from .codegen import (
    is_prim_type, is_bool_type, is_float_type, is_signed_int, prim_c_type, prim_layout,
    is_string_type, is_vector_type, vector_element, type_tag, strip_std_prefix,
)
from .errors import UnsupportedSignature, UnsupportedType
from .ir import IR, ParamInfo, QualifiedName, TypeRef
from .model import BodyKind, BoundaryDecl, ParamMode, ReturnMode, WrapperFunction, WrapperParam

if TYPE_CHECKING:
    from .naming import NamingResolver


class ElementKind(Enum):
    """Closed set of element kinds a ContainerWrapper can hold"""
    SIGNED = 'signed'
    UNSIGNED = 'unsigned'
    FLOAT = 'float'
    BOOL = 'bool'
    CHAR = 'char'        # text buffer characters (std::string)
    TEXT = 'text'        # std::string elements
    VALUE = 'value'      # fixed-size value-type records


@dataclass(frozen=True)
class ContainerVariant:
    """One container type the wrapper can hold"""
    tag: str
    container_cpp: str
    element_kind: ElementKind
    element_cpp: str
    element_c: str
    element_size: int
    record: Optional[TypeRecord] = None

    @property
    def is_text_buffer(self) -> bool:
        return self.element_kind == ElementKind.CHAR and is_string_type(self.container_cpp)

    @property
    def contiguous(self) -> bool:
        """Elements can be exposed as a C array (std::vector<bool> is bit packed)"""
        return self.element_kind not in (ElementKind.TEXT, ElementKind.BOOL)


class UnsupportedElement(UnsupportedSignature):
    """Container element type outside the closed element set"""

    def __init__(self, message: str, declaration: Optional[str] = None,
                 record: Optional[TypeRecord] = None):
        super().__init__(message, declaration)
        self.record = record


CONTAINER_OPS = ('size', 'get', 'data', 'release', 'copy', 'move')


class ContainerTransferEngine:
    """Collects container variants and produces their boundary surface"""

    def __init__(self, ir: IR, table: dict[QualifiedName, TypeRecord], resolver: 'NamingResolver',
                 storage_size: int = 32, storage_align: int = 8):
        self.ir = ir
        self.table = table
        self.resolver = resolver
        self.storage_size = storage_size
        self.storage_align = storage_align
        self.variants: dict[str, ContainerVariant] = {}
        self._known: dict[str, ContainerVariant] = {}
        sep = resolver.separator
        self.wrapper_name = ir.prefix + sep + 'container'
        self.text_name = ir.prefix + sep + 'text'
        resolver.claim(self.wrapper_name, (self, 'container'))
        resolver.claim(self.text_name, (self, 'text'))
        self.tag_name = self.wrapper_name + sep + 'kind'

    @staticmethod
    def is_container(type_ref: TypeRef) -> bool:
        return is_string_type(type_ref.base) or is_vector_type(type_ref.base)

    def variant(self, container: str, scope: QualifiedName) -> ContainerVariant:
        """Variant for a container type

        The variant joins the closed set only once a wrapper function using
        it is registered, so containers seen in skipped signatures leave no
        trace in the output.
        """
        if is_string_type(container):
            variant = ContainerVariant('string', 'std::string', ElementKind.CHAR, 'char', 'char', 1)
        else:
            variant = self._vector_variant(container, scope)
        return self._known.setdefault(variant.tag, variant)

    def register(self, fn: WrapperFunction):
        """Add the variants an emitted wrapper function uses to the closed set"""
        used = [p.container for p in fn.params] + [fn.container]
        for variant in used:
            if variant is not None:
                self.variants.setdefault(variant.tag, variant)

    def _vector_variant(self, container: str, scope: QualifiedName) -> ContainerVariant:
        element = vector_element(container)
        ref = TypeRef.parse(element)
        if not ref.is_by_value:
            raise UnsupportedElement(f"container element '{element}' is not a value", scope.cpp)
        base = strip_std_prefix(ref.base)
        cpp = f'std::vector<{base}>'

        if is_prim_type(base):
            if is_bool_type(base):
                kind = ElementKind.BOOL
            elif is_float_type(base):
                kind = ElementKind.FLOAT
            elif base == 'char':
                kind = ElementKind.CHAR
            elif is_signed_int(base):
                kind = ElementKind.SIGNED
            else:
                kind = ElementKind.UNSIGNED
            return ContainerVariant('vector_' + type_tag(base), cpp, kind, base,
                                    prim_c_type(base), prim_layout(base)[0])

        if is_string_type(base):
            return ContainerVariant('vector_string', cpp, ElementKind.TEXT, 'std::string',
                                    self.text_name, 16)

        enum = self.ir.lookup_enum(base, scope)
        if enum is not None:
            underlying = enum.underlying_type
            kind = ElementKind.SIGNED if is_signed_int(underlying) else ElementKind.UNSIGNED
            flat = self.resolver.base_name(enum.qualified_name)
            return ContainerVariant('vector_' + flat, f'std::vector<{enum.qualified_name.cpp}>', kind,
                                    enum.qualified_name.cpp, prim_c_type(underlying),
                                    prim_layout(underlying)[0])

        info = self.ir.lookup_record(base, scope)
        if info is None:
            if is_vector_type(base) or '<' in base:
                raise UnsupportedElement(f"nested container element '{base}' is not supported", scope.cpp)
            raise UnsupportedType(f"container of unknown type '{base}'", scope.cpp)
        record = self.table.get(info.qualified_name)
        if record is None:
            raise UnsupportedType(f"container of type '{info.name}' which was skipped", scope.cpp)
        if record.kind != Kind.VALUE_TYPE:
            raise UnsupportedElement(
                f"container element '{info.name}' is {record.kind.value}, not a fixed-size value",
                scope.cpp, record)
        flat = self.resolver.base_name(info.qualified_name)
        return ContainerVariant('vector_' + flat, f'std::vector<{info.name}>', ElementKind.VALUE,
                                info.name, flat, record.size, record)

    def span_element(self, variant: ContainerVariant) -> str:
        """C element type of the (pointer, length) form of a container"""
        if variant.element_kind == ElementKind.TEXT:
            return self.text_name
        return variant.element_c

    def param(self, param: ParamInfo, scope: QualifiedName) -> WrapperParam:
        """Boundary form of a container parameter

        Read-only references and by-value containers are rebuilt from a
        caller-owned (pointer, length) pair; that path copies. Mutable
        references cannot be honoured and are refused.
        """
        ptype = param.type
        if ptype.pointer_depth:
            raise UnsupportedSignature(f"parameter '{param.name}' is a pointer to a dynamic container", scope.cpp)
        if ptype.is_reference and not ptype.is_const:
            raise UnsupportedSignature(
                f"parameter '{param.name}' is a mutable reference to a dynamic container; "
                f"declare an output-returning form instead", scope.cpp)
        variant = self.variant(ptype.base, scope)
        return WrapperParam(
            name=param.name,
            c_type=f'const {self.span_element(variant)}*',
            mode=ParamMode.SPAN,
            cpp_type=variant.container_cpp,
            container=variant,
            source=param,
        )

    def result(self, return_type: TypeRef, scope: QualifiedName) -> WrapperParam:
        """Output parameter receiving a returned container"""
        if return_type.pointer_depth:
            raise UnsupportedSignature('returns a pointer to a dynamic container', scope.cpp)
        variant = self.variant(return_type.base, scope)
        return self.out_param(variant)

    def out_param(self, variant: ContainerVariant) -> WrapperParam:
        return WrapperParam(
            name='out',
            c_type=f'{self.wrapper_name}*',
            mode=ParamMode.OUT_CONTAINER,
            cpp_type=variant.container_cpp,
            container=variant,
        )

    def tag_value(self, variant: Optional[ContainerVariant]) -> str:
        sep = self.resolver.separator
        return self.tag_name + sep + (variant.tag if variant else 'empty')

    def declarations(self) -> list[BoundaryDecl]:
        """Text view and wrapper aggregate; empty when no container was seen"""
        if not self.variants:
            return []
        text = BoundaryDecl(
            name=self.text_name,
            cpp_name='',
            kind='text',
            comment='Borrowed view of text owned by a container',
        )
        items = [(self.tag_value(None), 0)]
        items += [(self.tag_value(v), i + 1) for i, v in enumerate(self.variants.values())]
        wrapper = BoundaryDecl(
            name=self.wrapper_name,
            cpp_name='',
            kind='container',
            size=self.storage_size,
            align=self.storage_align,
            items=items,
            comment=('Holds one dynamic container; end its lifetime with exactly one release\n'
                     'size, get and data on a released wrapper are usage errors\n'
                     'they are not detected: such calls report 0, false or NULL'),
        )
        return [text, wrapper]

    def functions(self) -> list[WrapperFunction]:
        """Wrapper-wide tag/release plus the per-variant accessors"""
        if not self.variants:
            return []
        funcs = [
            self._function('tag', None, [self._self(const=True)], self.tag_name,
                           BodyKind.ACCESSOR, ReturnMode.ENUM),
            self._function('release', None, [self._self()], 'void', BodyKind.DESTRUCT),
        ]
        for variant in self.variants.values():
            funcs.extend(self._variant_functions(variant))
        return funcs

    def _variant_functions(self, variant: ContainerVariant) -> list[WrapperFunction]:
        elem = self.span_element(variant)
        funcs = [
            self._function('size', variant, [self._self(const=True)], 'size_t',
                           BodyKind.ACCESSOR, ReturnMode.VALUE,
                           'Element count; 0 when the wrapper holds another variant'),
            self._function('get', variant, [
                self._self(const=True),
                WrapperParam('index', 'size_t', ParamMode.VALUE, 'size_t'),
                WrapperParam('out_value', f'{elem}*', ParamMode.POINTER, variant.element_cpp),
            ], 'bool', BodyKind.ACCESSOR, ReturnMode.VALUE,
                'false when index is out of range or the wrapper holds another variant'),
        ]
        if variant.contiguous:
            funcs.append(self._function('data', variant, [self._self(const=True)], f'const {elem}*',
                                        BodyKind.ACCESSOR, ReturnMode.BORROWED,
                                        'Borrowed elements, valid until release; NULL for another variant'))
        funcs.extend([
            self._function('release', variant, [self._self()], 'void', BodyKind.DESTRUCT),
            self._function('copy', variant, [
                WrapperParam('dst', f'{self.wrapper_name}*', ParamMode.STORAGE),
                WrapperParam('src', f'const {self.wrapper_name}*', ParamMode.SELF),
            ], 'void', BodyKind.COPY),
            self._function('move', variant, [
                WrapperParam('dst', f'{self.wrapper_name}*', ParamMode.STORAGE),
                WrapperParam('src', f'{self.wrapper_name}*', ParamMode.SELF),
            ], 'void', BodyKind.CONSTRUCT),
        ])
        return funcs

    def _self(self, const: bool = False) -> WrapperParam:
        c_type = f'const {self.wrapper_name}*' if const else f'{self.wrapper_name}*'
        return WrapperParam('self', c_type, ParamMode.SELF)

    def _function(self, op: str, variant: Optional[ContainerVariant], params: list[WrapperParam],
                  return_type: str, body_kind: BodyKind,
                  return_mode: ReturnMode = ReturnMode.VOID, comment: str = '') -> WrapperFunction:
        sep = self.resolver.separator
        parts = [self.wrapper_name] + ([variant.tag] if variant is not None else []) + [op]
        name = sep.join(parts)
        self.resolver.claim(name, (variant if variant is not None else self, op))
        return WrapperFunction(
            name=name,
            params=params,
            return_type=return_type,
            body_kind=body_kind,
            return_mode=return_mode,
            target=op,
            container=variant,
            provenance=variant,
            comment=comment,
        )
