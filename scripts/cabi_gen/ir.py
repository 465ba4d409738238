"""
IR (Intermediate Representation) module

Reads and represents the declaration tree handed over by the compiler front
end: records with their fields and members, enums and free functions.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional
import json
import re

import jsonschema

from .codegen import normalize_type
from .errors import IdentifierCollision, InvalidDeclarationTree

SCHEMA_PATH = Path(__file__).resolve().parent / 'schema' / 'decls.schema.json'


@dataclass(frozen=True)
class QualifiedName:
    """Ordered namespace and scope segments of a declaration"""
    namespace: tuple[str, ...] = ()
    names: tuple[str, ...] = ()

    @property
    def segments(self) -> tuple[str, ...]:
        return self.namespace + self.names

    @property
    def cpp(self) -> str:
        return '::'.join(self.segments)

    @property
    def leaf(self) -> str:
        return self.names[-1] if self.names else ''

    def child(self, name: str) -> 'QualifiedName':
        return QualifiedName(self.namespace, self.names + (name,))

    def __str__(self) -> str:
        return self.cpp


@dataclass(frozen=True)
class TypeRef:
    """A parsed type reference: base type plus cv/pointer/reference qualifiers"""
    base: str
    is_const: bool = False
    is_reference: bool = False
    is_rvalue_reference: bool = False
    pointer_depth: int = 0

    @classmethod
    def parse(cls, spelling: str) -> 'TypeRef':
        text = normalize_type(spelling)
        text = re.sub(r'\bvolatile\b\s*', '', text).strip()
        is_reference = is_rvalue = False
        if text.endswith('&&'):
            is_rvalue = True
            text = text[:-2].rstrip()
        elif text.endswith('&'):
            is_reference = True
            text = text[:-1].rstrip()

        is_const = False
        depth = 0
        while True:
            if text.endswith('*'):
                depth += 1
                text = text[:-1].rstrip()
            elif re.search(r'\sconst$', text):
                text = text[:-6].rstrip()
                is_const = is_const or depth == 0
            else:
                break
        if text.startswith('const '):
            is_const = True
            text = text[6:].strip()
        return cls(
            base=normalize_type(text),
            is_const=is_const,
            is_reference=is_reference,
            is_rvalue_reference=is_rvalue,
            pointer_depth=depth,
        )

    @property
    def is_void(self) -> bool:
        return self.base == 'void' and self.pointer_depth == 0

    @property
    def is_by_value(self) -> bool:
        return not (self.is_reference or self.is_rvalue_reference or self.pointer_depth)

    @property
    def spelling(self) -> str:
        text = f'const {self.base}' if self.is_const else self.base
        if self.pointer_depth:
            text += ' ' + '*' * self.pointer_depth
        if self.is_reference:
            text += ' &'
        elif self.is_rvalue_reference:
            text += ' &&'
        return text

    def __str__(self) -> str:
        return self.spelling


VOID = TypeRef('void')


@dataclass(eq=False)
class FieldInfo:
    """Record field information"""
    name: str
    type: TypeRef
    access: str = 'public'

    @property
    def is_public(self) -> bool:
        return self.access == 'public'


@dataclass
class ParamInfo:
    """Function parameter information"""
    name: str
    type: TypeRef

    @property
    def is_const(self) -> bool:
        return self.type.is_const

    @property
    def is_reference(self) -> bool:
        return self.type.is_reference or self.type.is_rvalue_reference


class DeclKind(Enum):
    """Declaration categories found in the tree"""
    TYPE = 'type'
    METHOD = 'method'
    CONSTRUCTOR = 'constructor'
    DESTRUCTOR = 'destructor'
    OPERATOR = 'operator'
    CONVERSION = 'conversion'
    FUNCTION = 'function'
    ENUM_VALUE = 'enum_value'


@dataclass(eq=False)
class MethodInfo:
    """Member declaration: method, constructor, destructor, operator or conversion"""
    kind: DeclKind
    name: str
    owner: QualifiedName
    params: list[ParamInfo] = field(default_factory=list)
    return_type: TypeRef = VOID
    operator: str = ''
    access: str = 'public'
    is_const: bool = False
    is_static: bool = False
    is_deleted: bool = False
    is_template: bool = False
    comment: str = ''

    @property
    def qualified_name(self) -> QualifiedName:
        return self.owner.child(self.name)

    @property
    def signature(self) -> str:
        """Human readable signature used in diagnostics"""
        params = ', '.join(p.type.spelling for p in self.params)
        if self.kind == DeclKind.CONSTRUCTOR:
            text = f'{self.owner.cpp}::{self.owner.leaf}({params})'
        elif self.kind == DeclKind.DESTRUCTOR:
            text = f'{self.owner.cpp}::~{self.owner.leaf}()'
        elif self.kind == DeclKind.OPERATOR:
            text = f'{self.owner.cpp}::operator{self.operator}({params})'
        elif self.kind == DeclKind.CONVERSION:
            text = f'{self.owner.cpp}::operator {self.return_type.spelling}()'
        else:
            text = f'{self.owner.cpp}::{self.name}({params})'
        return text + (' const' if self.is_const else '')

    def refers_to_owner(self, type_ref: TypeRef) -> bool:
        """Check if a type reference names the owning record"""
        base = type_ref.base.lstrip(':')
        return type_ref.pointer_depth == 0 and (base == self.owner.cpp or base == self.owner.leaf)

    @property
    def special(self) -> Optional[str]:
        """'copy' or 'move' for copy/move constructors and assignments"""
        if self.kind == DeclKind.CONSTRUCTOR or (self.kind == DeclKind.OPERATOR and self.operator == '='):
            if len(self.params) == 1 and self.refers_to_owner(self.params[0].type):
                ptype = self.params[0].type
                if ptype.is_rvalue_reference:
                    return 'move'
                if ptype.is_reference:
                    return 'copy'
        return None


@dataclass(eq=False)
class RecordInfo:
    """Record (class/struct) type information"""
    qualified_name: QualifiedName
    fields: list[FieldInfo]
    methods: list[MethodInfo] = field(default_factory=list)
    size: Optional[int] = None
    align: Optional[int] = None
    is_polymorphic: bool = False
    is_template: bool = False
    comment: str = ''

    @property
    def name(self) -> str:
        return self.qualified_name.cpp

    def members(self, kind: DeclKind) -> list[MethodInfo]:
        return [m for m in self.methods if m.kind == kind]


@dataclass(eq=False)
class FuncInfo:
    """Free function declaration information"""
    qualified_name: QualifiedName
    params: list[ParamInfo]
    return_type: TypeRef = VOID
    is_template: bool = False
    comment: str = ''

    @property
    def signature(self) -> str:
        params = ', '.join(p.type.spelling for p in self.params)
        return f'{self.return_type.spelling} {self.qualified_name.cpp}({params})'


@dataclass
class EnumItem:
    """Enum item (constant)"""
    name: str
    value: Optional[int] = None


@dataclass(eq=False)
class EnumInfo:
    """Enum type information"""
    qualified_name: QualifiedName
    items: list[EnumItem]
    underlying_type: str = 'int'
    comment: str = ''


@dataclass
class IR:
    """Intermediate representation of a library's declaration tree"""
    module: str
    prefix: str
    records: dict[QualifiedName, RecordInfo]
    funcs: list[FuncInfo]
    enums: dict[QualifiedName, EnumInfo]
    comment: str = ''

    @classmethod
    def load(cls, json_path) -> 'IR':
        """Load and validate IR from a JSON file"""
        try:
            with open(json_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except OSError as exc:
            raise InvalidDeclarationTree(f"unable to read '{json_path}': {exc}") from exc
        except json.JSONDecodeError as exc:
            raise InvalidDeclarationTree(f"invalid JSON in '{json_path}': {exc}") from exc
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> 'IR':
        """Validate a dictionary against the declaration schema and parse it"""
        validate(data)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> 'IR':
        records = {}
        funcs = []
        enums = {}
        seen: dict[QualifiedName, int] = {}

        for index, decl in enumerate(data.get('decls', [])):
            kind = decl['kind']
            qname = QualifiedName(
                namespace=tuple(decl.get('namespace', [])),
                names=tuple(decl.get('scope', [])) + (decl['name'],),
            )
            if kind != 'function':
                if qname in seen:
                    raise IdentifierCollision(
                        f"'{qname.cpp}' is declared twice (decls/{seen[qname]} and decls/{index})",
                        qname.cpp,
                    )
                seen[qname] = index
            if kind == 'record':
                records[qname] = cls._parse_record(qname, decl)
            elif kind == 'function':
                funcs.append(cls._parse_func(qname, decl))
            elif kind == 'enum':
                enums[qname] = cls._parse_enum(qname, decl)

        return cls(
            module=data['module'],
            prefix=data.get('prefix', data['module']),
            records=records,
            funcs=funcs,
            enums=enums,
            comment=data.get('comment', ''),
        )

    @staticmethod
    def _parse_params(decl: dict) -> list[ParamInfo]:
        params = []
        for i, p in enumerate(decl.get('params', [])):
            params.append(ParamInfo(
                name=p.get('name') or f'arg{i}',
                type=TypeRef.parse(p['type']),
            ))
        return params

    @classmethod
    def _parse_record(cls, qname: QualifiedName, decl: dict) -> RecordInfo:
        fields = [
            FieldInfo(name=f['name'], type=TypeRef.parse(f['type']), access=f.get('access', 'public'))
            for f in decl.get('fields', [])
        ]
        methods = []
        for m in decl.get('methods', []):
            kind = DeclKind(m['kind'])
            if kind in (DeclKind.CONSTRUCTOR, DeclKind.DESTRUCTOR):
                name = qname.leaf if kind == DeclKind.CONSTRUCTOR else '~' + qname.leaf
            elif kind == DeclKind.OPERATOR:
                name = 'operator' + m.get('operator', '')
            elif kind == DeclKind.CONVERSION:
                name = 'operator ' + m.get('return_type', '')
            else:
                name = m.get('name', '')
            methods.append(MethodInfo(
                kind=kind,
                name=name,
                owner=qname,
                params=cls._parse_params(m),
                return_type=TypeRef.parse(m.get('return_type', 'void')),
                operator=m.get('operator', ''),
                access=m.get('access', 'public'),
                is_const=m.get('const', False),
                is_static=m.get('static', False),
                is_deleted=m.get('deleted', False),
                is_template=m.get('is_template', False),
                comment=m.get('comment', ''),
            ))
        return RecordInfo(
            qualified_name=qname,
            fields=fields,
            methods=methods,
            size=decl.get('size'),
            align=decl.get('align'),
            is_polymorphic=decl.get('polymorphic', False),
            is_template=decl.get('is_template', False),
            comment=decl.get('comment', ''),
        )

    @classmethod
    def _parse_func(cls, qname: QualifiedName, decl: dict) -> FuncInfo:
        return FuncInfo(
            qualified_name=qname,
            params=cls._parse_params(decl),
            return_type=TypeRef.parse(decl.get('return_type', 'void')),
            is_template=decl.get('is_template', False),
            comment=decl.get('comment', ''),
        )

    @staticmethod
    def _parse_enum(qname: QualifiedName, decl: dict) -> EnumInfo:
        items = []
        for item in decl.get('items', []):
            value = int(item['value']) if 'value' in item else None
            items.append(EnumItem(name=item['name'], value=value))
        return EnumInfo(
            qualified_name=qname,
            items=items,
            underlying_type=decl.get('underlying_type', 'int'),
            comment=decl.get('comment', ''),
        )

    def _lookup(self, table: dict, name: str, scope: QualifiedName):
        """Resolve a possibly unqualified name from inside `scope`"""
        wanted = tuple(name.lstrip(':').split('::'))
        by_segments = {qname.segments: qname for qname in table}
        segments = scope.segments
        for depth in range(len(segments), -1, -1):
            candidate = segments[:depth] + wanted
            if candidate in by_segments:
                return table[by_segments[candidate]]
        return None

    def lookup_record(self, name: str, scope: QualifiedName = QualifiedName()) -> Optional[RecordInfo]:
        return self._lookup(self.records, name, scope)

    def lookup_enum(self, name: str, scope: QualifiedName = QualifiedName()) -> Optional[EnumInfo]:
        return self._lookup(self.enums, name, scope)


def validate(data: dict):
    """Validate a declaration tree against the bundled JSON schema"""
    schema = json.loads(SCHEMA_PATH.read_text(encoding='utf-8'))
    try:
        jsonschema.validate(data, schema)
    except jsonschema.ValidationError as exc:
        location = '/'.join(str(p) for p in exc.absolute_path) or '<root>'
        raise InvalidDeclarationTree(f'declaration tree failed validation at {location}: {exc.message}') from exc
