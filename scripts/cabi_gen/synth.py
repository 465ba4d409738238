"""
Wrapper synthesis module

Turns classified records, enums and free functions into boundary
declarations and wrapper functions. Allocation follows the record's kind:

    OPAQUE_POINTER   T* T_new(...)            void T_delete(T* self)
    VALUE_TYPE /     T* T_ctor(T* self, ...)  void T_dtor(T* self)
    OPAQUE_BYTES     (caller storage)          (no free)

Declarations that cannot be expressed at the boundary are skipped and
reported; the rest of the unit is still generated.
"""

import logging
from dataclasses import replace
from typing import Optional

from .classify import Kind, TypeRecord
from .codegen import (
    is_prim_type, prim_c_type, is_array_type, extract_array_type, extract_array_sizes,
)
from .containers import ContainerTransferEngine, UnsupportedElement
from .errors import BindingError, Reporter, UnsupportedSignature, UnsupportedType
from .ir import (
    IR, DeclKind, EnumInfo, FieldInfo, FuncInfo, MethodInfo, ParamInfo, QualifiedName, TypeRef,
)
from .model import (
    BodyKind, BoundaryDecl, MirroredField, ParamMode, ReturnMode, WrapperFunction, WrapperParam,
)
from .naming import Category, NamingResolver, OverloadContext, OverloadPolicy
from .staging import StagingFallback

logger = logging.getLogger(__name__)

RESERVED_PARAMS = {'self', 'out', 'other', 'out_handle'}

C_KEYWORDS = {
    'auto', 'break', 'case', 'char', 'const', 'continue', 'default', 'do', 'double',
    'else', 'enum', 'extern', 'float', 'for', 'goto', 'if', 'int', 'long', 'register',
    'return', 'short', 'signed', 'sizeof', 'static', 'struct', 'switch', 'typedef',
    'union', 'unsigned', 'void', 'volatile', 'while', 'bool', 'inline', 'restrict',
}


class WrapperSynthesizer:
    """Generates boundary declarations and wrapper functions"""

    def __init__(self, ir: IR, table: dict[QualifiedName, TypeRecord], resolver: NamingResolver,
                 engine: ContainerTransferEngine, reporter: Reporter,
                 staging: Optional[StagingFallback] = None,
                 constructor_policies: Optional[dict[str, OverloadPolicy]] = None,
                 default_policy: Optional[OverloadPolicy] = None,
                 renames: Optional[dict[str, str]] = None,
                 ignores: Optional[set[str]] = None,
                 field_accessors: bool = True):
        self.ir = ir
        self.table = table
        self.resolver = resolver
        self.engine = engine
        self.reporter = reporter
        self.staging = staging
        self.constructor_policies = constructor_policies or {}
        self.default_policy = default_policy
        self.renames = renames or {}
        self.ignores = ignores or set()
        self.field_accessors = field_accessors
        self.declarations: list[BoundaryDecl] = []

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def declare(self, record: TypeRecord) -> BoundaryDecl:
        """Boundary declaration of a record according to its kind"""
        name = self.resolver.resolve(record.qualified_name, Category.TYPE, provenance=record.info)
        decl = BoundaryDecl(name=name, cpp_name=record.cpp_name, kind=record.kind,
                            record=record, comment=record.info.comment)
        if record.kind == Kind.VALUE_TYPE:
            decl.fields = [self._mirror_field(f, record.qualified_name) for f in record.info.fields]
            decl.size, decl.align = record.size, record.align
        elif record.kind == Kind.OPAQUE_BYTES:
            decl.size, decl.align = record.size, record.align
        self.declarations.append(decl)
        return decl

    def declare_enum(self, enum: EnumInfo) -> BoundaryDecl:
        name = self.resolver.resolve(enum.qualified_name, Category.TYPE, provenance=enum)
        items = []
        next_value = 0
        for item in enum.items:
            value = item.value if item.value is not None else next_value
            next_value = value + 1
            item_name = self.resolver.resolve(enum.qualified_name.child(item.name), Category.ENUM_VALUE,
                                              provenance=item)
            items.append((item_name, value))
        decl = BoundaryDecl(name=name, cpp_name=enum.qualified_name.cpp, kind='enum',
                            items=items, enum=enum, comment=enum.comment)
        self.declarations.append(decl)
        return decl

    def _mirror_field(self, field: FieldInfo, scope: QualifiedName) -> MirroredField:
        base = field.type.base
        suffix = ''
        if is_array_type(base):
            suffix = ''.join(f'[{n}]' for n in extract_array_sizes(base))
            base = extract_array_type(base)
        if field.type.pointer_depth:
            pointee = self._pointee_c(TypeRef(base, is_const=field.type.is_const), scope)
            return MirroredField(field.name, pointee + '*' * field.type.pointer_depth, suffix)
        if is_prim_type(base):
            return MirroredField(field.name, prim_c_type(base), suffix)
        enum = self.ir.lookup_enum(base, scope)
        if enum is not None:
            return MirroredField(field.name, prim_c_type(enum.underlying_type), suffix)
        record = self._record(base, scope)
        return MirroredField(field.name, self._flat(record), suffix)

    def _pointee_c(self, ref: TypeRef, scope: QualifiedName) -> str:
        const = 'const ' if ref.is_const else ''
        if is_prim_type(ref.base):
            return const + prim_c_type(ref.base)
        info = self.ir.lookup_record(ref.base, scope)
        if info is not None and info.qualified_name in self.table:
            return const + self._flat(self.table[info.qualified_name])
        return const + 'void'

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def synthesize(self, record: TypeRecord) -> list[WrapperFunction]:
        """Boundary declaration plus every wrapper function of a record

        Members are emitted by category: constructors, destructor, copy and
        assignment, operators, conversions, methods, field accessors.
        """
        self.declare(record)
        info = record.info
        funcs: list[WrapperFunction] = []
        funcs += self._constructors(record)
        funcs += self._destructor(record)
        buckets: tuple[list, ...] = ([], [], [], [])
        for member in info.methods:
            if member.signature in self.ignores or not self._visible(member):
                continue
            if member.kind == DeclKind.CONSTRUCTOR and member.special == 'copy':
                buckets[0].append((member, self._copy))
            elif member.kind == DeclKind.OPERATOR and member.operator == '=':
                if member.special == 'copy':
                    buckets[0].append((member, self._assign))
                else:
                    self.reporter.skip(member.signature,
                                       UnsupportedSignature('only copy assignment is bound'))
            elif member.kind == DeclKind.OPERATOR:
                buckets[1].append((member, self._operator))
            elif member.kind == DeclKind.CONVERSION:
                buckets[2].append((member, self._conversion))
            elif member.kind == DeclKind.METHOD:
                buckets[3].append((member, self._method))
        for bucket in buckets:
            for member, build in bucket:
                funcs += self._guard(member, build, record, member)
        if self.field_accessors and record.kind != Kind.VALUE_TYPE:
            for field in info.fields:
                if field.is_public:
                    funcs += self._field_accessors(record, field)
        return funcs

    def _visible(self, member: MethodInfo) -> bool:
        if member.access != 'public' or member.is_deleted:
            return False
        if member.special == 'move':
            logger.debug('dropping move member %s', member.signature)
            return False
        return True

    def _guard(self, member, build, *args) -> list[WrapperFunction]:
        """Run a builder; report and skip the member on a recoverable error

        Container variants are registered only for functions that survive.
        """
        label = member.signature if hasattr(member, 'signature') else str(member)
        try:
            funcs = build(*args)
        except BindingError as exc:
            if exc.fatal:
                raise
            self.reporter.skip(label, exc)
            logger.debug('skipped %s: %s', label, exc.message)
            return []
        for fn in funcs:
            self.engine.register(fn)
        return funcs

    def _constructors(self, record: TypeRecord) -> list[WrapperFunction]:
        ctors = [c for c in record.info.members(DeclKind.CONSTRUCTOR)
                 if c.special is None and self._visible(c) and c.signature not in self.ignores]
        # The default constructor always takes the plain name
        ctors.sort(key=lambda c: 0 if not c.params else 1)
        funcs = []
        for index, ctor in enumerate(ctors):
            funcs += self._guard(ctor, self._constructor, record, ctor, index)
        return funcs

    def _constructor(self, record: TypeRecord, ctor: MethodInfo, index: int) -> list[WrapperFunction]:
        if ctor.is_template:
            raise UnsupportedSignature('template constructor')
        policy = self.constructor_policies.get(ctor.signature)
        if policy is None and index > 0:
            policy = self.default_policy
        context = OverloadContext(kind=record.kind, index=index, policy=policy, params=tuple(ctor.params))
        name = self.resolver.resolve(record.qualified_name, Category.CONSTRUCTOR, context)
        params = [self._param(p, record.qualified_name) for p in ctor.params]
        flat = self._flat(record)
        if record.kind == Kind.OPAQUE_POINTER:
            fn = WrapperFunction(name, params, f'{flat}*', BodyKind.CONSTRUCT, ReturnMode.NEW_HANDLE,
                                 record.cpp_name, record=record, provenance=ctor, is_static=True)
        else:
            storage = WrapperParam('self', f'{flat}*', ParamMode.STORAGE, record.cpp_name, record)
            fn = WrapperFunction(name, [storage] + params, f'{flat}*', BodyKind.CONSTRUCT, ReturnMode.SELF,
                                 record.cpp_name, record=record, provenance=ctor)
        return self._emit(fn, ctor.comment)

    def _destructor(self, record: TypeRecord) -> list[WrapperFunction]:
        declared = record.info.members(DeclKind.DESTRUCTOR)
        dtor = declared[0] if declared else None
        if dtor is not None and (dtor.access != 'public' or dtor.is_deleted):
            self.reporter.warn(dtor.signature, 'inaccessible-destructor',
                               'destructor is not public; instances cannot be released')
            return []
        context = OverloadContext(kind=record.kind)
        name = self.resolver.resolve(record.qualified_name, Category.DESTRUCTOR, context)
        fn = WrapperFunction(name, [self._self(record)], 'void', BodyKind.DESTRUCT,
                             record=record, provenance=dtor or record.info)
        return self._emit(fn)

    def _copy(self, record: TypeRecord, ctor: MethodInfo) -> list[WrapperFunction]:
        name = self.resolver.resolve(record.qualified_name, Category.COPY)
        flat = self._flat(record)
        other = WrapperParam('other', f'const {flat}*', ParamMode.DEREF, record.cpp_name, record)
        if record.kind == Kind.OPAQUE_POINTER:
            fn = WrapperFunction(name, [other], f'{flat}*', BodyKind.COPY, ReturnMode.NEW_HANDLE,
                                 record.cpp_name, record=record, provenance=ctor, is_static=True)
        else:
            storage = WrapperParam('self', f'{flat}*', ParamMode.STORAGE, record.cpp_name, record)
            fn = WrapperFunction(name, [storage, other], f'{flat}*', BodyKind.COPY, ReturnMode.SELF,
                                 record.cpp_name, record=record, provenance=ctor)
        return self._emit(fn)

    def _assign(self, record: TypeRecord, op: MethodInfo) -> list[WrapperFunction]:
        name = self.resolver.resolve(record.qualified_name, Category.ASSIGN)
        flat = self._flat(record)
        other = WrapperParam('other', f'const {flat}*', ParamMode.DEREF, record.cpp_name, record)
        fn = WrapperFunction(name, [self._self(record), other], 'void', BodyKind.ASSIGN,
                             target='=', record=record, provenance=op)
        return self._emit(fn)

    def _operator(self, record: TypeRecord, op: MethodInfo) -> list[WrapperFunction]:
        arity = len(op.params) + (0 if op.is_static else 1)
        context = OverloadContext(arity=arity)
        name = self.resolver.resolve(record.qualified_name.child(op.operator), Category.OPERATOR, context)
        return_type = op.return_type
        if op.refers_to_owner(return_type) and return_type.is_reference and not return_type.is_const:
            # compound assignment returning *this
            return_type = TypeRef('void')
        return self._callable(name, record, op, op.params, return_type, BodyKind.OPERATOR, op.operator)

    def _conversion(self, record: TypeRecord, conv: MethodInfo) -> list[WrapperFunction]:
        name = self.resolver.resolve(record.qualified_name.child(conv.return_type.spelling),
                                     Category.CONVERSION)
        return self._callable(name, record, conv, [], conv.return_type, BodyKind.OPERATOR,
                              conv.return_type.spelling)

    def _method(self, record: TypeRecord, method: MethodInfo) -> list[WrapperFunction]:
        if method.is_template:
            raise UnsupportedSignature('template member')
        member = self.renames.get(method.signature, method.name)
        name = self.resolver.resolve(record.qualified_name.child(member), Category.METHOD)
        return self._callable(name, record, method, method.params, method.return_type,
                              BodyKind.ACCESSOR, method.name)

    def _field_accessors(self, record: TypeRecord, field: FieldInfo) -> list[WrapperFunction]:
        if is_array_type(field.type.base):
            self.reporter.warn(f'{record.cpp_name}::{field.name}', 'array-field',
                               'array fields get no accessors')
            return []
        label = f'{record.cpp_name}::{field.name}'
        return self._guard(label, self._build_accessors, record, field)

    def _build_accessors(self, record: TypeRecord, field: FieldInfo) -> list[WrapperFunction]:
        scope = record.qualified_name
        ftype = field.type
        if self._is_opaque_field(ftype, scope):
            # opaque records are handed out by reference, never copied out of the instance
            getter_type = TypeRef(ftype.base, is_const=True, is_reference=True)
        else:
            getter_type = TypeRef(ftype.base, is_const=ftype.is_const, pointer_depth=ftype.pointer_depth)
        getter_name = self.resolver.resolve(scope.child(field.name), Category.GETTER)
        funcs = self._callable(getter_name, record, field, [], getter_type, BodyKind.ACCESSOR,
                               field.name, const_self=True, field_access='get')
        if ftype.is_const and not ftype.pointer_depth:
            return funcs
        setter_name = self.resolver.resolve(scope.child(field.name), Category.SETTER)
        value = ParamInfo('value', TypeRef(ftype.base, is_const=ftype.is_const,
                                           pointer_depth=ftype.pointer_depth))
        funcs += self._callable(setter_name, record, (field, 'set'), [value], TypeRef('void'),
                                BodyKind.ACCESSOR, field.name, const_self=False, field_access='set')
        return funcs

    # ------------------------------------------------------------------
    # Free functions
    # ------------------------------------------------------------------

    def synthesize_function(self, func: FuncInfo) -> list[WrapperFunction]:
        if func.signature in self.ignores or func.qualified_name.cpp in self.ignores:
            return []
        return self._guard(func, self._function, func)

    def _function(self, func: FuncInfo) -> list[WrapperFunction]:
        if func.is_template:
            raise UnsupportedSignature('template function')
        if func.qualified_name.leaf.startswith('operator'):
            raise UnsupportedSignature('free operators are not bound')
        qname = func.qualified_name
        if func.signature in self.renames:
            qname = QualifiedName(qname.namespace, qname.names[:-1] + (self.renames[func.signature],))
        name = self.resolver.resolve(qname, Category.FUNCTION)
        scope = QualifiedName(func.qualified_name.namespace, func.qualified_name.names[:-1])
        return self._callable(name, None, func, func.params, func.return_type, BodyKind.PASSTHROUGH,
                              func.qualified_name.cpp, scope=scope)

    # ------------------------------------------------------------------
    # Signature translation
    # ------------------------------------------------------------------

    def _callable(self, name: str, record: Optional[TypeRecord], provenance, params: list[ParamInfo],
                  return_type: TypeRef, body_kind: BodyKind, target: str,
                  const_self: Optional[bool] = None, field_access: str = '',
                  scope: Optional[QualifiedName] = None) -> list[WrapperFunction]:
        scope = scope or record.qualified_name
        is_static = record is None or getattr(provenance, 'is_static', False)
        wparams = []
        if not is_static:
            if const_self is None:
                const_self = getattr(provenance, 'is_const', False)
            wparams.append(self._self(record, const=const_self))
        wparams += [self._param(p, scope) for p in params]
        comment = getattr(provenance, 'comment', '')

        try:
            ret_c, mode, extra, ret_record = self._result(return_type, scope)
        except UnsupportedElement as exc:
            if self.staging is None or exc.record is None:
                raise
            fn = WrapperFunction(name, wparams, 'void', body_kind, target=target, record=record,
                                 provenance=provenance, is_static=is_static, field_access=field_access,
                                 comment=comment)
            return self.staging.wrap(fn, f'std::vector<{exc.record.cpp_name}>', exc.record)

        fn = WrapperFunction(name, wparams + extra, ret_c, body_kind, mode,
                             self._return_cpp(return_type, ret_record),
                             target=target, record=record, provenance=provenance,
                             is_static=is_static, return_record=ret_record,
                             container=extra[0].container if extra and extra[0].container else None,
                             field_access=field_access,
                             returns_reference=return_type.is_reference)
        return self._emit(fn, comment)

    def _emit(self, fn: WrapperFunction, comment: str = '') -> list[WrapperFunction]:
        self._check_param_names(fn)
        self.resolver.claim(fn.name, fn.provenance)
        if comment and not fn.comment:
            fn.comment = comment
        return [fn]

    def _check_param_names(self, fn: WrapperFunction):
        seen = set()
        for p in fn.params:
            if p.name in seen:
                raise UnsupportedSignature(f"parameter name '{p.name}' is used twice in {fn.name}")
            seen.add(p.name)

    def _self(self, record: TypeRecord, const: bool = False) -> WrapperParam:
        flat = self._flat(record)
        c_type = f'const {flat}*' if const else f'{flat}*'
        return WrapperParam('self', c_type, ParamMode.SELF, record.cpp_name, record)

    def _param(self, param: ParamInfo, scope: QualifiedName) -> WrapperParam:
        """Boundary form of one parameter"""
        name = param.name
        if name in RESERVED_PARAMS or name in C_KEYWORDS:
            name += '_'
        if name != param.name:
            param = ParamInfo(name, param.type)
        t = param.type

        if self.engine.is_container(t):
            return self.engine.param(param, scope)
        if t.is_rvalue_reference:
            raise UnsupportedSignature(f"parameter '{name}' is an rvalue reference")
        if t.pointer_depth > 1:
            raise UnsupportedSignature(f"parameter '{name}' is a multi-level pointer")

        base = t.base
        const = 'const ' if t.is_const else ''
        if base == 'void' and t.pointer_depth == 1:
            return WrapperParam(name, f'{const}void*', ParamMode.VALUE, t.spelling, source=param)

        if is_prim_type(base):
            c = prim_c_type(base)
            if t.pointer_depth:
                return WrapperParam(name, f'{const}{c}*', ParamMode.VALUE, t.spelling, source=param)
            if t.is_reference and not t.is_const:
                return WrapperParam(name, f'{c}*', ParamMode.DEREF, base, source=param)
            return WrapperParam(name, c, ParamMode.VALUE, base, source=param)

        enum = self.ir.lookup_enum(base, scope)
        if enum is not None:
            if t.pointer_depth or (t.is_reference and not t.is_const):
                raise UnsupportedSignature(f"parameter '{name}' passes an enum by pointer")
            flat = self.resolver.resolve(enum.qualified_name, Category.TYPE)
            return WrapperParam(name, flat, ParamMode.ENUM, enum.qualified_name.cpp, source=param)

        record = self._record(base, scope)
        flat = self._flat(record)
        if t.pointer_depth:
            return WrapperParam(name, f'{const}{flat}*', ParamMode.POINTER, record.cpp_name, record, source=param)
        if t.is_reference:
            return WrapperParam(name, f'{const}{flat}*', ParamMode.DEREF, record.cpp_name, record, source=param)
        if record.kind == Kind.VALUE_TYPE:
            return WrapperParam(name, flat, ParamMode.BIT_CAST, record.cpp_name, record, source=param)
        return WrapperParam(name, f'const {flat}*', ParamMode.DEREF, record.cpp_name, record, source=param)

    def _result(self, t: TypeRef, scope: QualifiedName):
        """(C return type, mode, extra out parameters, returned record)"""
        if t.is_void:
            return 'void', ReturnMode.VOID, [], None
        if self.engine.is_container(t):
            return 'void', ReturnMode.OUT_CONTAINER, [self.engine.result(t, scope)], None
        if t.is_rvalue_reference:
            raise UnsupportedSignature('returns an rvalue reference')
        if t.pointer_depth > 1:
            raise UnsupportedSignature('returns a multi-level pointer')

        base = t.base
        const = 'const ' if t.is_const else ''
        if base == 'void':
            return f'{const}void*', ReturnMode.VALUE, [], None

        if is_prim_type(base):
            c = prim_c_type(base)
            if t.pointer_depth or (t.is_reference and not t.is_const):
                return f'{const}{c}*', ReturnMode.VALUE if t.pointer_depth else ReturnMode.BORROWED, [], None
            return c, ReturnMode.VALUE, [], None

        enum = self.ir.lookup_enum(base, scope)
        if enum is not None:
            if t.pointer_depth or (t.is_reference and not t.is_const):
                raise UnsupportedSignature('returns an enum by pointer')
            return self.resolver.resolve(enum.qualified_name, Category.TYPE), ReturnMode.ENUM, [], None

        record = self._record(base, scope)
        flat = self._flat(record)
        if t.pointer_depth or t.is_reference:
            return f'{const}{flat}*', ReturnMode.BORROWED, [], record
        if record.kind == Kind.VALUE_TYPE:
            return flat, ReturnMode.BIT_CAST, [], record
        if record.kind == Kind.OPAQUE_BYTES:
            out = WrapperParam('out', f'{flat}*', ParamMode.OUT_VALUE, record.cpp_name, record)
            return 'void', ReturnMode.OUT_VALUE, [out], record
        return f'{flat}*', ReturnMode.NEW_HANDLE, [], record

    def _return_cpp(self, t: TypeRef, record: Optional[TypeRecord]) -> str:
        if record is not None:
            return record.cpp_name
        if t.is_void:
            return ''
        return replace(t, is_reference=False, is_rvalue_reference=False).spelling

    def _is_opaque_field(self, ftype: TypeRef, scope: QualifiedName) -> bool:
        if ftype.pointer_depth or self.engine.is_container(ftype):
            return False
        info = self.ir.lookup_record(ftype.base, scope)
        if info is None:
            return False
        record = self.table.get(info.qualified_name)
        return record is not None and record.kind != Kind.VALUE_TYPE

    def _record(self, base: str, scope: QualifiedName) -> TypeRecord:
        info = self.ir.lookup_record(base, scope)
        if info is None:
            raise UnsupportedType(f"type '{base}' has no boundary representation")
        record = self.table.get(info.qualified_name)
        if record is None:
            raise UnsupportedType(f"type '{info.name}' was not classified")
        return record

    def _flat(self, record: TypeRecord) -> str:
        return self.resolver.resolve(record.qualified_name, Category.TYPE)
