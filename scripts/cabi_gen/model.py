"""
Boundary model

The generator's output: boundary declarations and wrapper functions that a
renderer turns into source text. Wrapper functions reference, but do not own,
the TypeRecords they operate on.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .classify import Kind, TypeRecord
    from .containers import ContainerVariant
    from .ir import EnumInfo, FieldInfo, FuncInfo, MethodInfo, ParamInfo


class BodyKind(Enum):
    CONSTRUCT = 'construct'
    DESTRUCT = 'destruct'
    COPY = 'copy'
    ASSIGN = 'assign'
    OPERATOR = 'operator'
    ACCESSOR = 'accessor'
    PASSTHROUGH = 'passthrough'


class ParamMode(Enum):
    """How a boundary parameter maps back onto the C++ argument"""
    VALUE = 'value'                    # primitive or pointer passed as is
    ENUM = 'enum'                      # enum passed as its flat C enum
    BIT_CAST = 'bit_cast'              # value type mirrored by value
    DEREF = 'deref'                    # pointer standing for a C++ reference or value
    POINTER = 'pointer'                # pointer standing for a C++ pointer
    SELF = 'self'                      # instance pointer
    STORAGE = 'storage'                # caller storage to construct in
    SPAN = 'span'                      # (pointer, length) pair copied into a temporary container
    OUT_VALUE = 'out_value'            # caller storage receiving a returned opaque-bytes value
    OUT_CONTAINER = 'out_container'    # caller ContainerWrapper receiving a returned container
    STAGING_OUT = 'staging_out'        # receives the staging handle of a two-phase transfer
    STAGING_IN = 'staging_in'          # staging handle consumed by the second phase
    ITEMS_OUT = 'items_out'            # caller array filled by the second phase


class ReturnMode(Enum):
    """How the C++ result is handed back"""
    VOID = 'void'                      # nothing returned (or result discarded)
    VALUE = 'value'                    # primitive returned as is
    ENUM = 'enum'
    BIT_CAST = 'bit_cast'              # value type returned by value
    NEW_HANDLE = 'new_handle'          # heap-allocated copy owned by the caller
    BORROWED = 'borrowed'              # pointer into storage owned elsewhere
    SELF = 'self'                      # the storage pointer passed in
    OUT_VALUE = 'out_value'            # constructed into an OUT_VALUE parameter
    OUT_CONTAINER = 'out_container'    # constructed into an OUT_CONTAINER parameter
    COUNT = 'count'                    # element count of a staged result


@dataclass
class WrapperParam:
    """One logical boundary parameter

    SPAN parameters expand to a pointer and a `<name>_len` length in C.
    `cpp_type` is the C++ type the argument is rebuilt as on the library side.
    """
    name: str
    c_type: str
    mode: ParamMode
    cpp_type: str = ''
    record: Optional['TypeRecord'] = None
    container: Optional['ContainerVariant'] = None
    source: Optional['ParamInfo'] = None

    def c_decls(self) -> list[str]:
        """C parameter declarations"""
        if self.mode == ParamMode.SPAN:
            return [f'{self.c_type} {self.name}', f'size_t {self.name}_len']
        return [f'{self.c_type} {self.name}']


@dataclass
class WrapperFunction:
    """A generated boundary function

    target:   what the body calls on the library side (member name, operator
              symbol, conversion type, qualified function name, container op)
    provenance: the declaration this function was produced from
    """
    name: str
    params: list[WrapperParam]
    return_type: str
    body_kind: BodyKind
    return_mode: ReturnMode = ReturnMode.VOID
    return_cpp: str = ''
    target: str = ''
    record: Optional['TypeRecord'] = None
    container: Optional['ContainerVariant'] = None
    provenance: Union['MethodInfo', 'FuncInfo', 'FieldInfo', 'ContainerVariant', None] = None
    is_static: bool = False
    return_record: Optional['TypeRecord'] = None
    field_access: str = ''          # 'get' / 'set' for public field accessors
    returns_reference: bool = False
    comment: str = ''

    @property
    def c_signature(self) -> str:
        decls = [d for p in self.params for d in p.c_decls()]
        return f'{self.return_type} {self.name}({", ".join(decls) or "void"})'

    def param(self, name: str) -> WrapperParam:
        for p in self.params:
            if p.name == name:
                return p
        raise KeyError(name)


@dataclass
class MirroredField:
    name: str
    c_type: str
    array_suffix: str = ''


@dataclass
class BoundaryDecl:
    """Per-type boundary declaration

    OPAQUE_POINTER: forward-declared handle, no layout
    VALUE_TYPE:     `fields` mirror the C++ layout one to one
    OPAQUE_BYTES:   `size`/`align` only
    Enums and the container wrapper use `items` for their constants.
    """
    name: str
    cpp_name: str
    kind: Union['Kind', str]
    fields: list[MirroredField] = field(default_factory=list)
    size: Optional[int] = None
    align: Optional[int] = None
    items: list[tuple[str, int]] = field(default_factory=list)
    record: Optional['TypeRecord'] = None
    enum: Optional['EnumInfo'] = None
    comment: str = ''
