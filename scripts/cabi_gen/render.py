"""
Rendering module

Turns a BindingUnit into a C header (boundary declarations and prototypes)
and a C++ source file holding the extern "C" wrapper bodies.
"""

from typing import TYPE_CHECKING, Callable

from .classify import Kind
from .codegen import CodeGen
from .containers import CONTAINER_OPS, ContainerVariant, ElementKind
from .ir import DeclKind
from .model import BodyKind, BoundaryDecl, ParamMode, ReturnMode, WrapperFunction, WrapperParam

if TYPE_CHECKING:
    from .generator import BindingUnit

# Parameters that never become arguments of the library call
NON_ARGS = {ParamMode.SELF, ParamMode.STORAGE, ParamMode.OUT_VALUE, ParamMode.OUT_CONTAINER,
            ParamMode.STAGING_OUT, ParamMode.STAGING_IN, ParamMode.ITEMS_OUT}

# Declarations that are not typedef struct records
_NON_RECORD = {'enum', 'container', 'text'}
# Records whose body is visible in the header
_RECORD_BODIES = {Kind.VALUE_TYPE, Kind.OPAQUE_BYTES}


def _comment(gen: CodeGen, text: str):
    for line in text.strip().splitlines():
        gen.line(f'/* {line.strip()} */')


class HeaderRenderer:
    """Renders the C header of a unit"""

    def __init__(self, unit: 'BindingUnit'):
        self.unit = unit
        self.guard = f'{unit.prefix.upper()}_CABI_H'
        self.align_macro = f'{unit.prefix.upper()}_CABI_ALIGN'

    def render(self) -> str:
        gen = CodeGen()
        gen.line(f'/* Generated by gen_cabi.py from {self.unit.module}. Do not edit. */')
        gen.line(f'#ifndef {self.guard}')
        gen.line(f'#define {self.guard}')
        gen.line()
        gen.lines('#include <stdbool.h>', '#include <stddef.h>', '#include <stdint.h>')
        gen.line()
        gen.line('#ifdef __cplusplus')
        gen.line(f'#define {self.align_macro}(n) alignas(n)')
        gen.line('extern "C" {')
        gen.line('#else')
        gen.line(f'#define {self.align_macro}(n) _Alignas(n)')
        gen.line('#endif')
        gen.line()

        # every record name is declared before any struct body can point at it
        records = [d for d in self.unit.declarations if d.kind not in _NON_RECORD]
        for decl in records:
            if decl.kind not in _RECORD_BODIES and decl.comment:
                _comment(gen, decl.comment)
            gen.line(f'typedef struct {decl.name} {decl.name};')
        if records:
            gen.line()

        for decl in self.unit.declarations:
            if decl.kind in _NON_RECORD or decl.kind in _RECORD_BODIES:
                self._declaration(decl, gen)
                gen.line()

        for fn in self.unit.functions + self.unit.container_functions:
            if fn.comment:
                _comment(gen, fn.comment)
            gen.line(f'{fn.c_signature};')
        gen.line()

        gen.line('#ifdef __cplusplus')
        gen.line('}')
        gen.line('#endif')
        gen.line()
        gen.line(f'#endif /* {self.guard} */')
        return gen.output()

    def _declaration(self, decl: BoundaryDecl, gen: CodeGen):
        if decl.comment:
            _comment(gen, decl.comment)
        if decl.kind == 'enum' or decl.kind == 'container':
            enum_name = decl.name if decl.kind == 'enum' else self.unit.engine.tag_name
            with gen.block(f'typedef enum {enum_name} {{', f'}} {enum_name};'):
                for name, value in decl.items:
                    gen.line(f'{name} = {value},')
            if decl.kind == 'enum':
                return
            gen.line()
            with gen.block(f'typedef struct {decl.name} {{', f'}} {decl.name};'):
                gen.line(f'{enum_name} tag;')
                gen.line(f'{self.align_macro}({decl.align}) unsigned char storage[{decl.size}];')
        elif decl.kind == 'text':
            with gen.block(f'typedef struct {decl.name} {{', f'}} {decl.name};'):
                gen.line('const char* data;')
                gen.line('size_t size;')
        elif decl.kind == Kind.VALUE_TYPE:
            with gen.block(f'struct {decl.name} {{', '};'):
                for f in decl.fields:
                    gen.line(f'{f.c_type} {f.name}{f.array_suffix};')
                if not decl.fields:
                    gen.line('unsigned char _reserved;')
        elif decl.kind == Kind.OPAQUE_BYTES:
            with gen.block(f'struct {decl.name} {{', '};'):
                gen.line(f'{self.align_macro}({decl.align}) unsigned char bytes[{decl.size}];')


class SourceRenderer:
    """Renders the C++ wrapper bodies of a unit"""

    def __init__(self, unit: 'BindingUnit', header_name: str):
        self.unit = unit
        self.engine = unit.engine
        self.header_name = header_name
        self._bodies: dict[BodyKind, Callable[[WrapperFunction], list[str]]] = {
            BodyKind.CONSTRUCT: self._construct,
            BodyKind.DESTRUCT: self._destruct,
            BodyKind.COPY: self._construct,
            BodyKind.ASSIGN: self._assign,
            BodyKind.OPERATOR: self._operator,
            BodyKind.ACCESSOR: self._accessor,
            BodyKind.PASSTHROUGH: self._passthrough,
        }
        self._results: dict[ReturnMode, Callable[[WrapperFunction, str], list[str]]] = {
            ReturnMode.VOID: lambda fn, expr: [f'{expr};'],
            ReturnMode.VALUE: lambda fn, expr: [f'return {expr};'],
            ReturnMode.ENUM: lambda fn, expr: [f'return static_cast<{fn.return_type}>({expr});'],
            ReturnMode.BIT_CAST: lambda fn, expr: [f'return cabi_bits<{fn.return_type}>({expr});'],
            ReturnMode.NEW_HANDLE: lambda fn, expr: [
                f'return reinterpret_cast<{fn.return_type}>(new {fn.return_cpp}({expr}));'],
            ReturnMode.BORROWED: self._borrowed,
            ReturnMode.SELF: lambda fn, expr: [f'{expr};', 'return self;'],
            ReturnMode.OUT_VALUE: lambda fn, expr: [f'new (out) {fn.return_cpp}({expr});'],
            ReturnMode.OUT_CONTAINER: self._out_container,
            ReturnMode.COUNT: self._staged,
        }
        self._container_ops: dict[str, Callable[[WrapperFunction], list[str]]] = {
            'tag': self._container_tag,
            'release': self._container_release,
            'size': self._container_size,
            'get': self._container_get,
            'data': self._container_data,
            'copy': self._container_copy,
            'move': self._container_move,
        }
        self._element_writers: dict[ElementKind, Callable[[ContainerVariant], str]] = {
            ElementKind.SIGNED: self._write_numeric,
            ElementKind.UNSIGNED: self._write_numeric,
            ElementKind.FLOAT: self._write_numeric,
            ElementKind.BOOL: self._write_numeric,
            ElementKind.CHAR: self._write_numeric,
            ElementKind.TEXT: lambda v: f'*out_value = {self.engine.text_name}{{c[index].data(), c[index].size()}};',
            ElementKind.VALUE: lambda v: f'*out_value = cabi_bits<{v.element_c}>(c[index]);',
        }
        self._check_dispatch()

    def _check_dispatch(self):
        missing = [k.value for k in BodyKind if k not in self._bodies]
        missing += [m.value for m in ReturnMode if m not in self._results]
        missing += [op for op in CONTAINER_OPS + ('tag',) if op not in self._container_ops]
        missing += [k.value for k in ElementKind if k not in self._element_writers]
        if missing:
            raise RuntimeError(f'renderer dispatch misses {missing}')

    def render(self) -> str:
        gen = CodeGen()
        gen.line(f'// Generated by gen_cabi.py from {self.unit.module}. Do not edit.')
        gen.line(f'#include "{self.header_name}"')
        gen.line()
        for include in self.unit.includes:
            gen.line(f'#include {include}' if include.startswith('<') else f'#include "{include}"')
        gen.lines('#include <cstring>', '#include <new>', '#include <string>',
                  '#include <utility>', '#include <vector>')
        gen.line()

        self._helpers(gen)
        self._layout_asserts(gen)

        gen.line('extern "C" {')
        gen.line()
        for fn in self.unit.functions:
            self._function(fn, self._bodies[fn.body_kind](fn), gen)
        for fn in self.unit.container_functions:
            self._function(fn, self._container_ops[fn.target](fn), gen)
        gen.line('}  // extern "C"')
        return gen.output()

    def _function(self, fn: WrapperFunction, body: list[str], gen: CodeGen):
        with gen.block(f'{fn.c_signature} {{'):
            for line in body:
                gen.line(line)
        gen.line()

    # ------------------------------------------------------------------
    # Preamble
    # ------------------------------------------------------------------

    def _helpers(self, gen: CodeGen):
        gen.line('namespace {')
        gen.line()
        gen.lines(
            'template <typename To, typename From>',
            'inline const To& cabi_as(const From& from) {',
            '    static_assert(sizeof(To) == sizeof(From), "layout mismatch");',
            '    return *reinterpret_cast<const To*>(&from);',
            '}',
            '',
            'template <typename To, typename From>',
            'inline To cabi_bits(const From& from) {',
            '    static_assert(sizeof(To) == sizeof(From), "layout mismatch");',
            '    To to;',
            '    std::memcpy(&to, &from, sizeof(To));',
            '    return to;',
            '}',
            '',
            'template <typename T>',
            'inline void cabi_destroy(T* p) {',
            '    p->~T();',
            '}',
            '',
        )
        if self.engine.variants:
            wrapper = self.engine.wrapper_name
            gen.lines(
                'template <typename C>',
                f'inline C* cabi_held({wrapper}* w) {{',
                '    return std::launder(reinterpret_cast<C*>(w->storage));',
                '}',
                '',
                'template <typename C>',
                f'inline const C* cabi_held(const {wrapper}* w) {{',
                '    return std::launder(reinterpret_cast<const C*>(w->storage));',
                '}',
                '',
            )
            for variant in self.engine.variants.values():
                self._span_helper(variant, gen)
        gen.line('}  // namespace')
        gen.line()

    def _span_helper(self, variant: ContainerVariant, gen: CodeGen):
        elem = self.engine.span_element(variant)
        cpp = variant.container_cpp
        with gen.block(f'inline {cpp} cabi_from_span_{variant.tag}(const {elem}* ptr, size_t len) {{'):
            if variant.element_kind == ElementKind.VALUE:
                gen.line(f'const {variant.element_cpp}* first = reinterpret_cast<const {variant.element_cpp}*>(ptr);')
                gen.line(f'return {cpp}(first, first + len);')
            else:
                gen.line(f'{cpp} result;')
                gen.line('result.reserve(len);')
                with gen.block('for (size_t i = 0; i < len; ++i) {'):
                    if variant.element_kind == ElementKind.TEXT:
                        gen.line('result.push_back(std::string(ptr[i].data, ptr[i].size));')
                    else:
                        gen.line(f'result.push_back(static_cast<{variant.element_cpp}>(ptr[i]));')
                gen.line('return result;')
        gen.line()

    def _layout_asserts(self, gen: CodeGen):
        wrote = False
        for decl in self.unit.declarations:
            if decl.kind in (Kind.VALUE_TYPE, Kind.OPAQUE_BYTES):
                gen.line(f'static_assert(sizeof({decl.cpp_name}) == sizeof({decl.name}), '
                         f'"{decl.name} size mismatch");')
                gen.line(f'static_assert(alignof({decl.cpp_name}) == alignof({decl.name}), '
                         f'"{decl.name} alignment mismatch");')
                wrote = True
        wrapper = self.engine.wrapper_name
        for variant in self.engine.variants.values():
            gen.line(f'static_assert(sizeof({variant.container_cpp}) <= sizeof({wrapper}::storage), '
                     f'"{variant.tag} does not fit {wrapper}");')
            gen.line(f'static_assert(alignof({variant.container_cpp}) <= {self.engine.storage_align}, '
                     f'"{variant.tag} is over-aligned for {wrapper}");')
            wrote = True
        if wrote:
            gen.line()

    # ------------------------------------------------------------------
    # Arguments
    # ------------------------------------------------------------------

    @staticmethod
    def _cast_ptr(p: WrapperParam) -> str:
        const = 'const ' if p.c_type.startswith('const ') else ''
        return f'reinterpret_cast<{const}{p.cpp_type}*>({p.name})'

    def _arg(self, p: WrapperParam) -> str:
        if p.mode == ParamMode.ENUM:
            return f'static_cast<{p.cpp_type}>({p.name})'
        if p.mode == ParamMode.BIT_CAST:
            return f'cabi_as<{p.cpp_type}>({p.name})'
        if p.mode == ParamMode.DEREF:
            return f'*{self._cast_ptr(p)}' if p.record is not None else f'*{p.name}'
        if p.mode == ParamMode.POINTER:
            return self._cast_ptr(p)
        if p.mode == ParamMode.SPAN:
            return f'cabi_from_span_{p.container.tag}({p.name}, {p.name}_len)'
        return p.name

    def _args(self, fn: WrapperFunction) -> list[str]:
        return [self._arg(p) for p in fn.params if p.mode not in NON_ARGS]

    def _self(self, fn: WrapperFunction) -> str:
        for p in fn.params:
            if p.mode in (ParamMode.SELF, ParamMode.STORAGE):
                return self._cast_ptr(p)
        raise ValueError(f'{fn.name} has no instance parameter')

    # ------------------------------------------------------------------
    # Bodies
    # ------------------------------------------------------------------

    def _construct(self, fn: WrapperFunction) -> list[str]:
        cpp = fn.record.cpp_name
        args = ', '.join(self._args(fn))
        if fn.return_mode == ReturnMode.NEW_HANDLE:
            return [f'return reinterpret_cast<{fn.return_type}>(new {cpp}({args}));']
        return [f'new (self) {cpp}({args});', 'return self;']

    def _destruct(self, fn: WrapperFunction) -> list[str]:
        if fn.params and fn.params[0].mode == ParamMode.STAGING_IN:
            return self._take(fn)
        if fn.record.kind == Kind.OPAQUE_POINTER:
            return [f'delete {self._self(fn)};']
        return [f'cabi_destroy({self._self(fn)});']

    def _assign(self, fn: WrapperFunction) -> list[str]:
        return [f'*{self._self(fn)} = {self._args(fn)[0]};']

    def _operator(self, fn: WrapperFunction) -> list[str]:
        target = f'(*{self._self(fn)})'
        args = self._args(fn)
        if getattr(fn.provenance, 'kind', None) == DeclKind.CONVERSION:
            expr = f'static_cast<{fn.return_cpp}>({target})'
        elif fn.target == '[]':
            expr = f'{target}[{args[0]}]'
        elif not args:
            expr = f'{fn.target}{target}'
        else:
            expr = f'{target} {fn.target} {args[0]}'
        return self._results[fn.return_mode](fn, expr)

    def _accessor(self, fn: WrapperFunction) -> list[str]:
        if fn.field_access == 'set':
            return [f'{self._self(fn)}->{fn.target} = {self._args(fn)[0]};']
        if fn.field_access == 'get':
            expr = f'{self._self(fn)}->{fn.target}'
        elif fn.is_static:
            expr = f'{fn.record.cpp_name}::{fn.target}({", ".join(self._args(fn))})'
        else:
            expr = f'{self._self(fn)}->{fn.target}({", ".join(self._args(fn))})'
        return self._results[fn.return_mode](fn, expr)

    def _passthrough(self, fn: WrapperFunction) -> list[str]:
        expr = f'{fn.target}({", ".join(self._args(fn))})'
        return self._results[fn.return_mode](fn, expr)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _borrowed(self, fn: WrapperFunction, expr: str) -> list[str]:
        address = f'&({expr})' if fn.returns_reference else expr
        if fn.return_record is None:
            return [f'return {address};']
        return [f'return reinterpret_cast<{fn.return_type}>({address});']

    def _out_container(self, fn: WrapperFunction, expr: str) -> list[str]:
        variant = fn.container
        return [
            f'new (out->storage) {variant.container_cpp}({expr});',
            f'out->tag = {self.engine.tag_value(variant)};',
        ]

    def _staged(self, fn: WrapperFunction, expr: str) -> list[str]:
        handle = fn.param('out_handle')
        return [
            f'{fn.return_cpp}* staged = new {fn.return_cpp}({expr});',
            f'*out_handle = reinterpret_cast<{handle.c_type[:-1]}>(staged);',
            'return staged->size();',
        ]

    def _take(self, fn: WrapperFunction) -> list[str]:
        handle = fn.params[0]
        element = fn.return_record
        lines = [f'{handle.cpp_type}* staged = reinterpret_cast<{handle.cpp_type}*>(handle);']
        if element.kind == Kind.OPAQUE_POINTER:
            store = (f'    items[i] = reinterpret_cast<{fn.param("items").c_type[:-1]}>('
                     f'new {element.cpp_name}(std::move((*staged)[i])));')
        else:
            store = f'    new (&items[i]) {element.cpp_name}(std::move((*staged)[i]));'
        lines += ['for (size_t i = 0; i < staged->size(); ++i) {', store, '}', 'delete staged;']
        return lines

    # ------------------------------------------------------------------
    # Container wrapper
    # ------------------------------------------------------------------

    def _guard(self, fn: WrapperFunction, param: str, fail: str) -> list[str]:
        tag = self.engine.tag_value(fn.container)
        return [f'if ({param}->tag != {tag}) {{', f'    return{fail};', '}']

    def _container_tag(self, fn: WrapperFunction) -> list[str]:
        return ['return self->tag;']

    def _container_release(self, fn: WrapperFunction) -> list[str]:
        empty = self.engine.tag_value(None)
        if fn.container is not None:
            cpp = fn.container.container_cpp
            return self._guard(fn, 'self', '') + [
                f'cabi_destroy(cabi_held<{cpp}>(self));',
                f'self->tag = {empty};',
            ]
        lines = ['switch (self->tag) {', f'case {empty}:', '    break;']
        for variant in self.engine.variants.values():
            lines += [
                f'case {self.engine.tag_value(variant)}:',
                f'    cabi_destroy(cabi_held<{variant.container_cpp}>(self));',
                '    break;',
            ]
        lines += ['}', f'self->tag = {empty};']
        return lines

    def _container_size(self, fn: WrapperFunction) -> list[str]:
        cpp = fn.container.container_cpp
        return self._guard(fn, 'self', ' 0') + [f'return cabi_held<{cpp}>(self)->size();']

    def _container_get(self, fn: WrapperFunction) -> list[str]:
        variant = fn.container
        return self._guard(fn, 'self', ' false') + [
            f'const {variant.container_cpp}& c = *cabi_held<{variant.container_cpp}>(self);',
            'if (index >= c.size()) {',
            '    return false;',
            '}',
            self._element_writers[variant.element_kind](variant),
            'return true;',
        ]

    def _write_numeric(self, variant: ContainerVariant) -> str:
        return f'*out_value = static_cast<{variant.element_c}>(c[index]);'

    def _container_data(self, fn: WrapperFunction) -> list[str]:
        variant = fn.container
        return self._guard(fn, 'self', ' nullptr') + [
            f'return reinterpret_cast<{fn.return_type}>(cabi_held<{variant.container_cpp}>(self)->data());',
        ]

    def _container_copy(self, fn: WrapperFunction) -> list[str]:
        cpp = fn.container.container_cpp
        return self._guard(fn, 'src', '') + [
            f'new (dst->storage) {cpp}(*cabi_held<{cpp}>(src));',
            f'dst->tag = {self.engine.tag_value(fn.container)};',
        ]

    def _container_move(self, fn: WrapperFunction) -> list[str]:
        cpp = fn.container.container_cpp
        return self._guard(fn, 'src', '') + [
            'if (dst == src) {',
            '    return;',
            '}',
            f'{cpp}* held = cabi_held<{cpp}>(src);',
            f'new (dst->storage) {cpp}(std::move(*held));',
            f'dst->tag = {self.engine.tag_value(fn.container)};',
            'cabi_destroy(held);',
            f'src->tag = {self.engine.tag_value(None)};',
        ]
