"""
Tests for wrapper synthesis
"""

import pytest

from cabi_gen import (
    BodyKind, Generator, IdentifierCollision, Kind, ParamMode, ReturnMode,
)
from cabi_gen.ir import DeclKind

from conftest import record, tree


def signature(unit, name):
    return unit.function(name).c_signature


def names(unit):
    return [fn.name for fn in unit.functions]


def test_opaque_bytes_scenario():
    """A record with a private int constructs into caller storage"""
    ir = tree(record('T', fields=[{'name': 'a', 'type': 'int', 'access': 'private'}],
                     methods=[{'kind': 'constructor', 'params': [{'name': 'a', 'type': 'int'}]}]))
    unit = Generator('.').build(ir)
    ctor = unit.function('geom_T_ctor')
    assert ctor.c_signature == 'geom_T* geom_T_ctor(geom_T* self, int a)'
    assert ctor.return_mode == ReturnMode.SELF
    dtor = unit.function('geom_T_dtor')
    assert dtor.c_signature == 'void geom_T_dtor(geom_T* self)'
    assert dtor.body_kind == BodyKind.DESTRUCT
    assert 'geom_T_delete' not in names(unit)
    decl = unit.declaration('geom_T')
    assert (decl.kind, decl.size, decl.align) == (Kind.OPAQUE_BYTES, 4, 4)
    assert not unit.reporter.items


def test_opaque_pointer_scenario():
    """A record with a text field is heap allocated and freed by _delete"""
    ir = tree(record('T', fields=[{'name': 'name', 'type': 'std::string', 'access': 'private'}],
                     methods=[{'kind': 'constructor', 'params': [{'name': 'n', 'type': 'int'}]}]))
    unit = Generator('.').build(ir)
    assert signature(unit, 'geom_T_new') == 'geom_T* geom_T_new(int n)'
    assert unit.function('geom_T_new').return_mode == ReturnMode.NEW_HANDLE
    assert signature(unit, 'geom_T_delete') == 'void geom_T_delete(geom_T* self)'
    assert unit.declaration('geom_T').kind == Kind.OPAQUE_POINTER


def test_vec2_surface(unit):
    """Value type with configured constructor overloads, operators and a conversion"""
    assert signature(unit, 'geom_Vec2_ctor') == 'geom_Vec2* geom_Vec2_ctor(geom_Vec2* self)'
    assert signature(unit, 'geom_Vec2_from_float') == 'geom_Vec2* geom_Vec2_from_float(geom_Vec2* self, float s)'
    assert signature(unit, 'geom_Vec2_with_x_y') == \
        'geom_Vec2* geom_Vec2_with_x_y(geom_Vec2* self, float x, float y)'
    assert signature(unit, 'geom_Vec2_copy') == \
        'geom_Vec2* geom_Vec2_copy(geom_Vec2* self, const geom_Vec2* other)'
    assert signature(unit, 'geom_Vec2_assign') == 'void geom_Vec2_assign(geom_Vec2* self, const geom_Vec2* other)'
    assert signature(unit, 'geom_Vec2_add') == 'geom_Vec2 geom_Vec2_add(const geom_Vec2* self, const geom_Vec2* rhs)'
    assert signature(unit, 'geom_Vec2_add_assign') == \
        'void geom_Vec2_add_assign(geom_Vec2* self, const geom_Vec2* rhs)'
    assert signature(unit, 'geom_Vec2_mul') == 'geom_Vec2 geom_Vec2_mul(const geom_Vec2* self, float s)'
    assert signature(unit, 'geom_Vec2_neg') == 'geom_Vec2 geom_Vec2_neg(const geom_Vec2* self)'
    assert signature(unit, 'geom_Vec2_eq') == 'bool geom_Vec2_eq(const geom_Vec2* self, const geom_Vec2* rhs)'
    assert signature(unit, 'geom_Vec2_to_float') == 'float geom_Vec2_to_float(const geom_Vec2* self)'
    assert signature(unit, 'geom_Vec2_length') == 'float geom_Vec2_length(const geom_Vec2* self)'
    assert signature(unit, 'geom_Vec2_normalize') == 'void geom_Vec2_normalize(geom_Vec2* self)'
    assert signature(unit, 'geom_Vec2_zero') == 'geom_Vec2 geom_Vec2_zero(void)'
    assert unit.function('geom_Vec2_add').return_mode == ReturnMode.BIT_CAST
    assert unit.function('geom_Vec2_length').comment == 'Euclidean length'


def test_value_type_mirror(unit):
    decl = unit.declaration('geom_Vec2')
    assert decl.kind == Kind.VALUE_TYPE
    assert [(f.name, f.c_type) for f in decl.fields] == [('x', 'float'), ('y', 'float')]


def test_move_members_dropped(unit):
    vec2 = [fn for fn in unit.functions if fn.record and fn.record.cpp_name == 'geom::Vec2']
    assert not any(getattr(fn.provenance, 'special', None) == 'move' for fn in vec2)
    assert not any('move' in fn.name for fn in vec2)


def test_opaque_pointer_members(unit):
    assert signature(unit, 'geom_Label_new') == 'geom_Label* geom_Label_new(const char* text, size_t text_len)'
    assert signature(unit, 'geom_Label_copy') == 'geom_Label* geom_Label_copy(const geom_Label* other)'
    assert signature(unit, 'geom_Label_text') == 'void geom_Label_text(const geom_Label* self, geom_container* out)'
    assert signature(unit, 'geom_Shape_with_origin') == 'geom_Shape* geom_Shape_with_origin(geom_Vec2 origin)'
    assert signature(unit, 'geom_Shape_bounds') == 'void geom_Shape_bounds(const geom_Shape* self, geom_Counter* out)'
    assert signature(unit, 'geom_Shape_label') == 'geom_Label* geom_Shape_label(const geom_Shape* self)'
    assert unit.function('geom_Shape_bounds').return_mode == ReturnMode.OUT_VALUE
    assert unit.function('geom_Shape_label').return_mode == ReturnMode.NEW_HANDLE


def test_field_accessors(unit):
    """Public fields of non-mirrored records get getters and setters"""
    assert signature(unit, 'geom_Shape_get_origin') == 'geom_Vec2 geom_Shape_get_origin(const geom_Shape* self)'
    assert signature(unit, 'geom_Shape_set_origin') == 'void geom_Shape_set_origin(geom_Shape* self, geom_Vec2 value)'
    assert signature(unit, 'geom_Shape_get_points') == \
        'void geom_Shape_get_points(const geom_Shape* self, geom_container* out)'
    assert signature(unit, 'geom_Shape_set_points') == \
        'void geom_Shape_set_points(geom_Shape* self, const geom_Vec2* value, size_t value_len)'
    assert signature(unit, 'geom_Shape_get_color') == 'geom_Color geom_Shape_get_color(const geom_Shape* self)'
    assert signature(unit, 'geom_Shape_set_style') == \
        'void geom_Shape_set_style(geom_Shape* self, geom_Shape_Style value)'
    assert signature(unit, 'geom_Widget_get_id') == 'int geom_Widget_get_id(const geom_Widget* self)'
    assert not any(fn.name.startswith('geom_Vec2_get') for fn in unit.functions)
    assert not any(fn.name.startswith('geom_Counter_get') for fn in unit.functions)


def test_free_functions(unit):
    assert signature(unit, 'geom_samples') == 'void geom_samples(geom_container* out)'
    assert signature(unit, 'geom_sum') == 'double geom_sum(const double* values, size_t values_len)'
    assert signature(unit, 'geom_greet') == 'void geom_greet(const char* name, size_t name_len, geom_container* out)'
    assert signature(unit, 'geom_blend') == 'geom_Color geom_blend(geom_Color a, geom_Color b)'
    assert unit.function('geom_sum').body_kind == BodyKind.PASSTHROUGH
    assert unit.function('geom_sum').param('values').mode == ParamMode.SPAN


def test_enums(unit):
    color = unit.declaration('geom_Color')
    assert color.items == [('geom_Color_Red', 0), ('geom_Color_Green', 5), ('geom_Color_Blue', 6)]
    style = unit.declaration('geom_Shape_Style')
    assert style.items == [('geom_Shape_Style_Solid', 0), ('geom_Shape_Style_Dashed', 1)]


def test_skipped_declarations(unit):
    """Unsupported declarations are listed, the rest of the unit is generated"""
    assert sorted(unit.reporter.skipped) == sorted([
        'geom::Box',
        'geom::Vec2::operator<<(int) const',
        'geom::Shape::map(F)',
        'void geom::fill(std::vector<int> &)',
        'T geom::max_of(T, T)',
    ])
    codes = {d.declaration: d.code for d in unit.reporter.items}
    assert codes['geom::Box'] == 'unsupported-type'
    assert codes['void geom::fill(std::vector<int> &)'] == 'unsupported-signature'
    assert 'geom_fill' not in names(unit)


def test_provenance(unit):
    """Every wrapper points back at the declaration it came from"""
    for fn in unit.functions:
        assert fn.provenance is not None, fn.name
    ctor = unit.function('geom_Vec2_from_float').provenance
    assert ctor.kind == DeclKind.CONSTRUCTOR
    assert ctor.signature == 'geom::Vec2::Vec2(float)'
    assert unit.function('geom_sum').provenance.qualified_name.cpp == 'geom::sum'


def test_unconfigured_overload_is_skipped(geom_ir):
    """Without a policy only the first constructor overload gets a name"""
    unit = Generator('.').build(geom_ir)
    assert 'geom_Vec2_ctor' in names(unit)
    assert 'geom::Vec2::Vec2(float)' in unit.reporter.skipped
    assert 'geom::Vec2::Vec2(float, float)' in unit.reporter.skipped


def test_names_are_unique(unit):
    all_names = [fn.name for fn in unit.functions + unit.container_functions]
    assert len(all_names) == len(set(all_names))


def test_method_collision_is_fatal():
    """Overloaded methods flatten to the same identifier"""
    ir = tree(record('T', fields=[{'name': 'v', 'type': 'int'}], methods=[
        {'kind': 'method', 'name': 'scale', 'return_type': 'void', 'params': [{'name': 's', 'type': 'float'}]},
        {'kind': 'method', 'name': 'scale', 'return_type': 'void', 'params': [{'name': 's', 'type': 'int'}]},
    ]))
    with pytest.raises(IdentifierCollision):
        Generator('.').build(ir)


def test_rename_resolves_collision():
    ir = tree(record('T', fields=[{'name': 'v', 'type': 'int'}], methods=[
        {'kind': 'method', 'name': 'scale', 'return_type': 'void', 'params': [{'name': 's', 'type': 'float'}]},
        {'kind': 'method', 'name': 'scale', 'return_type': 'void', 'params': [{'name': 's', 'type': 'int'}]},
    ]))
    gen = Generator('.')
    gen.module('geom').rename('geom::T::scale(int)', 'scale_int')
    unit = gen.build(ir)
    assert signature(unit, 'geom_T_scale') == 'void geom_T_scale(geom_T* self, float s)'
    assert signature(unit, 'geom_T_scale_int') == 'void geom_T_scale_int(geom_T* self, int s)'


def test_ignored_declarations():
    ir = tree(
        record('T', fields=[{'name': 'v', 'type': 'int'}], methods=[
            {'kind': 'method', 'name': 'secret', 'return_type': 'void'},
            {'kind': 'method', 'name': 'open', 'return_type': 'void'},
        ]),
        {'kind': 'function', 'name': 'internal', 'namespace': ['geom'], 'return_type': 'void'},
    )
    gen = Generator('.')
    gen.ignore('geom::T::secret()', 'geom::internal')
    unit = gen.build(ir)
    assert 'geom_T_open' in names(unit)
    assert 'geom_T_secret' not in names(unit)
    assert 'geom_internal' not in names(unit)


def test_reserved_parameter_names():
    ir = tree(record('T', fields=[{'name': 'v', 'type': 'int'}], methods=[
        {'kind': 'method', 'name': 'merge', 'return_type': 'void',
         'params': [{'name': 'self', 'type': 'int'}, {'name': 'int', 'type': 'int'}]},
    ]))
    unit = Generator('.').build(ir)
    assert signature(unit, 'geom_T_merge') == 'void geom_T_merge(geom_T* self, int self_, int int_)'


def test_private_and_deleted_members_skipped():
    ir = tree(record('T', fields=[{'name': 'v', 'type': 'int'}], methods=[
        {'kind': 'method', 'name': 'hidden', 'return_type': 'void', 'access': 'private'},
        {'kind': 'constructor', 'params': [{'name': 'other', 'type': 'const geom::T &'}], 'deleted': True},
    ]))
    unit = Generator('.').build(ir)
    assert names(unit) == ['geom_T_dtor']
    assert not unit.reporter.items


def test_private_destructor_warns():
    ir = tree(record('T', fields=[{'name': 'v', 'type': 'std::string', 'access': 'private'}], methods=[
        {'kind': 'constructor'},
        {'kind': 'destructor', 'access': 'private'},
    ]))
    unit = Generator('.').build(ir)
    assert names(unit) == ['geom_T_new']
    assert not unit.reporter.has_errors
    assert unit.reporter.items[0].code == 'inaccessible-destructor'


def test_namespace_policy_applies_to_every_name():
    from cabi_gen import NamespaceMode, NamespacePolicy
    ir = tree(record('T', fields=[{'name': 'v', 'type': 'int'}], methods=[{'kind': 'constructor'}]))
    gen = Generator('.')
    gen.module('geom').namespace_policy = NamespacePolicy(NamespaceMode.PREFIX, 'gm', 'v1')
    unit = gen.build(ir)
    assert names(unit) == ['gm_v1_T_ctor', 'gm_v1_T_dtor']
    assert unit.declarations[0].name == 'gm_v1_T'


def test_staged_result(unit):
    """A vector of opaque records comes back in two calls through a handle"""
    assert signature(unit, 'geom_make_shapes_begin') == \
        'size_t geom_make_shapes_begin(int count, geom_make_shapes_staging** out_handle)'
    assert signature(unit, 'geom_make_shapes_take') == \
        'void geom_make_shapes_take(geom_make_shapes_staging* handle, geom_Shape** items)'
    assert unit.function('geom_make_shapes_begin').return_mode == ReturnMode.COUNT
    assert unit.declaration('geom_make_shapes_staging').kind == 'staging'
    assert 'geom_make_shapes' not in names(unit)


def test_staging_disabled_skips(generator, geom_ir):
    generator.module('geom').staging = False
    unit = generator.build(geom_ir)
    assert 'std::vector<geom::Shape> geom::make_shapes(int)' in unit.reporter.skipped


def test_members_are_emitted_by_category():
    """Copy and assignment come first, then operators, conversions and methods"""
    ir = tree(record('T', fields=[{'name': 'v', 'type': 'int'}], methods=[
        {'kind': 'method', 'name': 'length', 'return_type': 'float', 'const': True},
        {'kind': 'conversion', 'return_type': 'float', 'const': True},
        {'kind': 'operator', 'operator': '+', 'return_type': 'geom::T', 'const': True,
         'params': [{'name': 'rhs', 'type': 'const geom::T &'}]},
        {'kind': 'constructor', 'params': [{'name': 'other', 'type': 'const geom::T &'}]},
    ]))
    unit = Generator('.').build(ir)
    assert names(unit) == ['geom_T_dtor', 'geom_T_copy', 'geom_T_add', 'geom_T_to_float', 'geom_T_length']


def test_skipped_function_leaves_no_container_variant():
    """A container seen only in a refused signature is not added to the wrapper"""
    ir = tree({'kind': 'function', 'name': 'f', 'namespace': ['geom'], 'return_type': 'void', 'params': [
        {'name': 'a', 'type': 'const std::vector<int> &'},
        {'name': 'b', 'type': 'std::vector<int> &'},
    ]})
    unit = Generator('.').build(ir)
    [skipped] = unit.reporter.skipped
    assert 'geom::f(' in skipped
    assert unit.engine.variants == {}
    assert unit.container_functions == []
    assert unit.declarations == []
