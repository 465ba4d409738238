"""
Naming module

Flattens qualified C++ names into collision-checked C identifiers.

    C++ declaration                  C identifier
    ---------------                  ------------
    geom::Shape                   -> geom_Shape
    geom::Shape::Shape()          -> geom_Shape_new      (opaque pointer)
    geom::Vec2::Vec2()            -> geom_Vec2_ctor      (value / opaque bytes)
    geom::Vec2::Vec2(float)       -> geom_Vec2_from_float
    geom::Vec2::Vec2(float, float)-> geom_Vec2_with_x_y
    geom::Vec2::operator+         -> geom_Vec2_add
    geom::Vec2::operator float    -> geom_Vec2_to_float
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .classify import Kind
from .codegen import c_identifier, type_tag
from .errors import IdentifierCollision, UnsupportedSignature
from .ir import ParamInfo, QualifiedName


class Category(Enum):
    """What a flat identifier names"""
    TYPE = 'type'
    METHOD = 'method'
    CONSTRUCTOR = 'constructor'
    DESTRUCTOR = 'destructor'
    COPY = 'copy'
    ASSIGN = 'assign'
    OPERATOR = 'operator'
    CONVERSION = 'conversion'
    GETTER = 'getter'
    SETTER = 'setter'
    FUNCTION = 'function'
    ENUM_VALUE = 'enum_value'


class OverloadPolicy(Enum):
    """How an overloaded constructor is told apart"""
    CONVERSION = 'from'       # one parameter whose type determines behavior
    CONFIGURATION = 'with'    # named configuration parameters


class NamespaceMode(Enum):
    FULL = 'full'        # embed every namespace segment
    STRIP = 'strip'      # drop namespace segments, keep class scopes
    PREFIX = 'prefix'    # replace namespaces with a fixed prefix (+ version)


@dataclass(frozen=True)
class NamespacePolicy:
    mode: NamespaceMode = NamespaceMode.FULL
    prefix: str = ''
    version: str = ''


# (operator symbol, arity including self) -> suffix
OPERATOR_SUFFIXES = {
    ('+', 2): 'add',
    ('+=', 2): 'add_assign',
    ('-', 2): 'sub',
    ('-=', 2): 'sub_assign',
    ('*', 2): 'mul',
    ('*=', 2): 'mul_assign',
    ('/', 2): 'div',
    ('/=', 2): 'div_assign',
    ('-', 1): 'neg',
    ('==', 2): 'eq',
    ('!=', 2): 'ne',
    ('<', 2): 'lt',
    ('<=', 2): 'le',
    ('>', 2): 'gt',
    ('>=', 2): 'ge',
    ('[]', 2): 'index',
}


@dataclass(frozen=True)
class OverloadContext:
    """Extra facts a category needs to pick a name

    kind:    representation kind of the owning record (constructors, destructors)
    index:   position in the constructor overload set, 0 for the plain name
    policy:  caller supplied disambiguation for constructor overloads
    params:  constructor parameters, used by the disambiguation suffix
    arity:   operand count of an operator, self included
    """
    kind: Optional[Kind] = None
    index: int = 0
    policy: Optional[OverloadPolicy] = None
    params: tuple[ParamInfo, ...] = ()
    arity: int = 2


@dataclass
class NamingResolver:
    """Produces flat identifiers and refuses to hand one out twice"""
    separator: str = '_'
    namespace_policy: NamespacePolicy = field(default_factory=NamespacePolicy)
    _claimed: dict[str, object] = field(default_factory=dict)

    def base_name(self, qualified_name: QualifiedName) -> str:
        """Join namespace/scope segments into the identifier prefix"""
        policy = self.namespace_policy
        if policy.mode == NamespaceMode.FULL:
            segments = qualified_name.segments
        elif policy.mode == NamespaceMode.STRIP:
            segments = qualified_name.names
        else:
            head = tuple(s for s in (policy.prefix, policy.version) if s)
            segments = head + qualified_name.names
        return self.separator.join(c_identifier(s) for s in segments)

    def resolve(self, qualified_name: QualifiedName, category: Category,
                context: Optional[OverloadContext] = None, provenance: object = None) -> str:
        """Flat identifier for a declaration

        For member categories `qualified_name` is the owning record's name,
        except METHOD/GETTER/SETTER/OPERATOR/CONVERSION where its last segment
        is the member name, the operator symbol or the conversion target type.
        When `provenance` is given the identifier is claimed for it and a
        second claim by another declaration raises IdentifierCollision.
        """
        context = context or OverloadContext()
        name = self._flatten(qualified_name, category, context)
        if provenance is not None:
            self.claim(name, provenance)
        return name

    def claim(self, name: str, provenance: object):
        owner = self._claimed.get(name)
        if owner is not None and owner != provenance:
            raise IdentifierCollision(
                f"'{name}' is produced by both {_describe(owner)} and {_describe(provenance)}",
                _describe(provenance),
            )
        self._claimed[name] = provenance

    def is_claimed(self, name: str) -> bool:
        return name in self._claimed

    def _flatten(self, qualified_name: QualifiedName, category: Category,
                 context: OverloadContext) -> str:
        sep = self.separator

        if category in (Category.TYPE, Category.FUNCTION, Category.ENUM_VALUE):
            return self.base_name(qualified_name)

        if category == Category.CONSTRUCTOR:
            base = self.base_name(qualified_name)
            return base + sep + self._constructor_suffix(context)

        if category == Category.DESTRUCTOR:
            base = self.base_name(qualified_name)
            return base + sep + ('delete' if context.kind == Kind.OPAQUE_POINTER else 'dtor')

        if category == Category.COPY:
            return self.base_name(qualified_name) + sep + 'copy'

        if category == Category.ASSIGN:
            return self.base_name(qualified_name) + sep + 'assign'

        owner = QualifiedName(qualified_name.namespace, qualified_name.names[:-1])
        member = qualified_name.leaf
        base = self.base_name(owner)

        if category == Category.OPERATOR:
            suffix = OPERATOR_SUFFIXES.get((member, context.arity))
            if suffix is None:
                raise UnsupportedSignature(f"operator{member} has no boundary name", owner.cpp)
            return base + sep + suffix

        if category == Category.CONVERSION:
            return base + sep + 'to' + sep + type_tag(member)

        if category == Category.GETTER:
            return base + sep + 'get' + sep + c_identifier(member)

        if category == Category.SETTER:
            return base + sep + 'set' + sep + c_identifier(member)

        return base + sep + c_identifier(member)

    def _constructor_suffix(self, context: OverloadContext) -> str:
        plain = 'new' if context.kind == Kind.OPAQUE_POINTER else 'ctor'
        params = context.params
        if not params:
            return plain
        if context.policy is None:
            if context.index == 0:
                return plain
            raise UnsupportedSignature('overloaded constructor needs a disambiguation policy')
        sep = self.separator
        if context.policy == OverloadPolicy.CONVERSION:
            if len(params) != 1:
                raise UnsupportedSignature(
                    f'conversion naming needs exactly one parameter, got {len(params)}')
            return 'from' + sep + type_tag(params[0].type.spelling)
        return 'with' + sep + sep.join(c_identifier(p.name) for p in params)


def _describe(provenance: object) -> str:
    signature = getattr(provenance, 'signature', None)
    if signature:
        return signature
    qualified_name = getattr(provenance, 'qualified_name', None)
    if qualified_name is not None:
        return str(qualified_name)
    return str(provenance)
