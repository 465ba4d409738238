"""
Type classification module

Assigns every record crossing the boundary one of three representation kinds
and computes the byte layout of the kinds that are laid out in the boundary
surface.

A record's kind is a pure function of its fields:

1. a field that owns heap memory (a dynamic container, a smart pointer) or
   whose type is itself an opaque pointer forces ``OPAQUE_POINTER``;
2. otherwise a hidden field (private, protected, or a vtable) gives
   ``OPAQUE_BYTES``;
3. otherwise the record is a ``VALUE_TYPE`` mirrored field for field.

Records are classified in field-dependency order so a record only looks at
the already resolved kinds of the records it contains by value.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .codegen import (
    POINTER_LAYOUT,
    is_prim_type, prim_layout, is_string_type, is_vector_type,
    is_template_type, split_template, struct_layout,
    is_array_type, extract_array_type, extract_array_sizes,
)
from .errors import CyclicFieldDependency, Reporter, UnsupportedType
from .ir import IR, FieldInfo, QualifiedName, RecordInfo

logger = logging.getLogger(__name__)

# Library templates whose instances own heap memory
DEFAULT_OWNING_TEMPLATES = frozenset({
    'std::unique_ptr',
    'std::shared_ptr',
    'std::list',
    'std::deque',
    'std::map',
    'std::unordered_map',
    'std::set',
    'std::unordered_set',
})


class Kind(Enum):
    """Boundary representation of a record"""
    OPAQUE_POINTER = 'opaque_pointer'
    VALUE_TYPE = 'value_type'
    OPAQUE_BYTES = 'opaque_bytes'


@dataclass(frozen=True)
class TypeRecord:
    """A classified record. Immutable once built."""
    info: RecordInfo
    kind: Kind
    size: Optional[int] = None
    align: Optional[int] = None

    @property
    def qualified_name(self) -> QualifiedName:
        return self.info.qualified_name

    @property
    def cpp_name(self) -> str:
        return self.info.qualified_name.cpp


@dataclass(frozen=True)
class FieldFacts:
    """What the classifier needs to know about one field type"""
    heap_owning: bool = False
    record: Optional[TypeRecord] = None
    layout: Optional[tuple[int, int]] = None


class TypeClassifier:
    """Builds the kind-tagged type table for a declaration tree"""

    def __init__(self, ir: IR, reporter: Optional[Reporter] = None,
                 owning_templates: frozenset[str] = DEFAULT_OWNING_TEMPLATES):
        self.ir = ir
        self.reporter = reporter or Reporter(ir.module)
        self.owning_templates = owning_templates
        self.table: dict[QualifiedName, TypeRecord] = {}
        self.skipped: dict[QualifiedName, str] = {}

    def classify_all(self) -> dict[QualifiedName, TypeRecord]:
        """Classify every record, in dependency order

        Records that cannot be classified are reported and left out of the
        table; records containing them are skipped in turn.
        """
        for info in self.dependency_order():
            try:
                self.table[info.qualified_name] = self.build_record(info)
            except UnsupportedType as exc:
                self.skipped[info.qualified_name] = exc.message
                self.reporter.skip(info.name, exc)
                logger.debug('skipped record %s: %s', info.name, exc.message)
        return self.table

    def build_record(self, info: RecordInfo) -> TypeRecord:
        """Classify one record and attach its layout"""
        if info.qualified_name in self.table:
            return self.table[info.qualified_name]
        if info.is_template:
            raise UnsupportedType('template records are not bound', info.name)
        facts = [self.inspect_field(f, info.qualified_name) for f in info.fields]
        kind = self.classify(info, facts)
        if kind == Kind.OPAQUE_POINTER:
            record = TypeRecord(info, kind)
        else:
            size, align = struct_layout([f.layout for f in facts])
            record = TypeRecord(info, kind, info.size or size, info.align or align)
        logger.debug('%s -> %s', info.name, record.kind.value)
        return record

    def classify(self, info: RecordInfo, facts: Optional[list[FieldFacts]] = None) -> Kind:
        """Decide the representation kind from the field set; first match wins"""
        if facts is None:
            facts = [self.inspect_field(f, info.qualified_name) for f in info.fields]
        for fact in facts:
            if fact.heap_owning:
                return Kind.OPAQUE_POINTER
            if fact.record is not None and fact.record.kind == Kind.OPAQUE_POINTER:
                return Kind.OPAQUE_POINTER
        if info.is_polymorphic or any(not f.is_public for f in info.fields):
            return Kind.OPAQUE_BYTES
        return Kind.VALUE_TYPE

    def inspect_field(self, field: FieldInfo, scope: QualifiedName) -> FieldFacts:
        ftype = field.type
        if ftype.is_reference or ftype.is_rvalue_reference:
            raise UnsupportedType(f"reference member '{field.name}' has no boundary layout", scope.cpp)
        if ftype.pointer_depth:
            return FieldFacts(layout=POINTER_LAYOUT)
        return self.inspect_type(ftype.base, scope, field.name)

    def inspect_type(self, base: str, scope: QualifiedName, what: str) -> FieldFacts:
        if is_array_type(base):
            inner = self.inspect_type(extract_array_type(base), scope, what)
            if inner.layout is None:
                return inner
            count = 1
            for n in extract_array_sizes(base):
                count *= n
            size, align = inner.layout
            return FieldFacts(inner.heap_owning, inner.record, (size * count, align))

        if is_prim_type(base):
            return FieldFacts(layout=prim_layout(base))

        if is_string_type(base):
            return FieldFacts(heap_owning=True)

        if is_vector_type(base):
            # elements live on the heap; their boundary form is checked per signature
            return FieldFacts(heap_owning=True)

        if is_template_type(base):
            name, _ = split_template(base)
            if name in self.owning_templates:
                return FieldFacts(heap_owning=True)
            raise UnsupportedType(f"'{what}' has unsupported template instantiation '{base}'", scope.cpp)

        enum = self.ir.lookup_enum(base, scope)
        if enum is not None:
            return FieldFacts(layout=prim_layout(enum.underlying_type))

        info = self.ir.lookup_record(base, scope)
        if info is None:
            raise UnsupportedType(f"'{what}' has unknown type '{base}'", scope.cpp)
        if info.qualified_name in self.skipped:
            raise UnsupportedType(f"'{what}' has type '{info.name}' which was skipped", scope.cpp)
        record = self.table.get(info.qualified_name)
        if record is None:
            # Only reachable when classify() is called outside dependency order
            record = self.build_record(info)
        if record.kind == Kind.OPAQUE_POINTER:
            return FieldFacts(record=record)
        return FieldFacts(record=record, layout=(record.size, record.align))

    def field_dependencies(self, info: RecordInfo) -> list[RecordInfo]:
        """Records contained by value in `info`'s fields"""
        deps = []
        for f in info.fields:
            if f.type.pointer_depth or f.type.is_reference or f.type.is_rvalue_reference:
                continue
            base = f.type.base
            while is_array_type(base):
                base = extract_array_type(base)
            if is_template_type(base):
                continue
            dep = self.ir.lookup_record(base, info.qualified_name)
            if dep is not None:
                deps.append(dep)
        return deps

    def dependency_order(self) -> list[RecordInfo]:
        """Topological order over the by-value field graph

        Raises CyclicFieldDependency when records contain each other.
        """
        order: list[RecordInfo] = []
        state: dict[QualifiedName, str] = {}
        path: list[RecordInfo] = []

        def visit(info: RecordInfo):
            mark = state.get(info.qualified_name)
            if mark == 'done':
                return
            if mark == 'active':
                start = path.index(info)
                cycle = ' -> '.join(r.name for r in path[start:] + [info])
                raise CyclicFieldDependency(f'records contain each other by value: {cycle}', info.name)
            state[info.qualified_name] = 'active'
            path.append(info)
            for dep in self.field_dependencies(info):
                visit(dep)
            path.pop()
            state[info.qualified_name] = 'done'
            order.append(info)

        for info in self.ir.records.values():
            visit(info)
        return order
