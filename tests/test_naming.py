"""
Tests for flat identifier resolution
"""

import pytest

from cabi_gen import (
    Category, IdentifierCollision, Kind, NamespaceMode, NamespacePolicy, NamingResolver,
    OverloadPolicy, UnsupportedSignature,
)
from cabi_gen.ir import ParamInfo, QualifiedName, TypeRef
from cabi_gen.naming import OverloadContext

T = QualifiedName(('geom',), ('T',))


def params(*specs):
    return tuple(ParamInfo(name, TypeRef.parse(spelling)) for name, spelling in specs)


def ctor(resolver, kind, index=0, policy=None, *specs):
    context = OverloadContext(kind=kind, index=index, policy=policy, params=params(*specs))
    return resolver.resolve(T, Category.CONSTRUCTOR, context)


def test_base_name_embeds_every_segment():
    resolver = NamingResolver()
    assert resolver.resolve(QualifiedName(('geom', 'detail'), ('Outer', 'Inner')), Category.TYPE) == \
        'geom_detail_Outer_Inner'


def test_constructor_and_destructor_by_kind():
    resolver = NamingResolver()
    assert ctor(resolver, Kind.OPAQUE_POINTER) == 'geom_T_new'
    assert ctor(resolver, Kind.VALUE_TYPE) == 'geom_T_ctor'
    assert ctor(resolver, Kind.OPAQUE_BYTES, 0, None, ('a', 'int')) == 'geom_T_ctor'
    dtor = OverloadContext(kind=Kind.OPAQUE_POINTER)
    assert resolver.resolve(T, Category.DESTRUCTOR, dtor) == 'geom_T_delete'
    assert resolver.resolve(T, Category.DESTRUCTOR, OverloadContext(kind=Kind.VALUE_TYPE)) == 'geom_T_dtor'


def test_overload_policies():
    """Conversion and configuration constructors get distinct suffixes"""
    resolver = NamingResolver()
    assert ctor(resolver, Kind.VALUE_TYPE, 0, OverloadPolicy.CONVERSION, ('v', 'float')) == 'geom_T_from_float'
    assert ctor(resolver, Kind.VALUE_TYPE, 1, OverloadPolicy.CONFIGURATION,
                ('width', 'int'), ('height', 'int')) == 'geom_T_with_width_height'
    assert ctor(resolver, Kind.OPAQUE_POINTER, 2, OverloadPolicy.CONVERSION,
                ('name', 'const std::string &')) == 'geom_T_from_string'
    assert ctor(resolver, Kind.OPAQUE_POINTER, 3, OverloadPolicy.CONVERSION,
                ('v', 'const geom::Vec2 &')) == 'geom_T_from_Vec2'


def test_conversion_needs_one_parameter():
    with pytest.raises(UnsupportedSignature):
        ctor(NamingResolver(), Kind.VALUE_TYPE, 1, OverloadPolicy.CONVERSION, ('a', 'int'), ('b', 'int'))


def test_later_overload_needs_policy():
    with pytest.raises(UnsupportedSignature):
        ctor(NamingResolver(), Kind.VALUE_TYPE, 1, None, ('a', 'int'))


def test_copy_and_assign():
    resolver = NamingResolver()
    assert resolver.resolve(T, Category.COPY) == 'geom_T_copy'
    assert resolver.resolve(T, Category.ASSIGN) == 'geom_T_assign'


@pytest.mark.parametrize('symbol,arity,suffix', [
    ('+', 2, 'add'),
    ('+=', 2, 'add_assign'),
    ('*', 2, 'mul'),
    ('*=', 2, 'mul_assign'),
    ('-', 1, 'neg'),
    ('-', 2, 'sub'),
    ('==', 2, 'eq'),
    ('[]', 2, 'index'),
])
def test_operator_suffixes(symbol, arity, suffix):
    resolver = NamingResolver()
    name = resolver.resolve(T.child(symbol), Category.OPERATOR, OverloadContext(arity=arity))
    assert name == f'geom_T_{suffix}'


def test_unknown_operator():
    with pytest.raises(UnsupportedSignature):
        NamingResolver().resolve(T.child('<<'), Category.OPERATOR, OverloadContext(arity=2))


def test_member_categories():
    resolver = NamingResolver()
    assert resolver.resolve(T.child('length'), Category.METHOD) == 'geom_T_length'
    assert resolver.resolve(T.child('float'), Category.CONVERSION) == 'geom_T_to_float'
    assert resolver.resolve(T.child('unsigned int'), Category.CONVERSION) == 'geom_T_to_unsigned_int'
    assert resolver.resolve(T.child('origin'), Category.GETTER) == 'geom_T_get_origin'
    assert resolver.resolve(T.child('origin'), Category.SETTER) == 'geom_T_set_origin'


def test_collision_is_an_error():
    """Two declarations resolving to the same name are never silently merged"""
    resolver = NamingResolver()
    first, second = object(), object()
    resolver.resolve(T.child('size'), Category.METHOD, provenance=first)
    with pytest.raises(IdentifierCollision) as exc:
        resolver.resolve(T.child('size'), Category.METHOD, provenance=second)
    assert exc.value.fatal
    assert 'geom_T_size' in exc.value.message


def test_same_declaration_may_resolve_twice():
    resolver = NamingResolver()
    owner = object()
    resolver.claim('geom_T_size', owner)
    resolver.claim('geom_T_size', owner)
    assert resolver.is_claimed('geom_T_size')


def test_custom_separator():
    resolver = NamingResolver(separator='__')
    assert resolver.resolve(T, Category.COPY) == 'geom__T__copy'


def test_namespace_policies():
    qname = QualifiedName(('geom', 'detail'), ('Shape',))
    strip = NamingResolver(namespace_policy=NamespacePolicy(NamespaceMode.STRIP))
    assert strip.resolve(qname, Category.TYPE) == 'Shape'
    prefixed = NamingResolver(namespace_policy=NamespacePolicy(NamespaceMode.PREFIX, 'gm', 'v2'))
    assert prefixed.resolve(qname, Category.TYPE) == 'gm_v2_Shape'
    assert prefixed.resolve(qname, Category.COPY) == 'gm_v2_Shape_copy'
