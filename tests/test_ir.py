"""
Tests for declaration tree loading and type references
"""

import json

import pytest

from cabi_gen import IR, IdentifierCollision, InvalidDeclarationTree, QualifiedName, TypeRef
from cabi_gen.ir import DeclKind


def test_load_geom(geom_ir):
    """Test that the sample tree loads with every declaration kind"""
    assert geom_ir.module == 'geom'
    assert geom_ir.prefix == 'geom'
    assert QualifiedName(('geom',), ('Vec2',)) in geom_ir.records
    assert QualifiedName(('geom',), ('Shape', 'Style')) in geom_ir.enums
    assert [f.qualified_name.leaf for f in geom_ir.funcs][:3] == ['samples', 'sum', 'greet']


def test_method_kinds(geom_ir):
    vec2 = geom_ir.lookup_record('geom::Vec2')
    ctors = vec2.members(DeclKind.CONSTRUCTOR)
    assert [c.signature for c in ctors] == [
        'geom::Vec2::Vec2()',
        'geom::Vec2::Vec2(float)',
        'geom::Vec2::Vec2(float, float)',
        'geom::Vec2::Vec2(const geom::Vec2 &)',
        'geom::Vec2::Vec2(geom::Vec2 &&)',
    ]
    assert [c.special for c in ctors] == [None, None, None, 'copy', 'move']
    conversion = vec2.members(DeclKind.CONVERSION)[0]
    assert conversion.name == 'operator float'
    assert conversion.is_const


def test_qualified_name():
    qname = QualifiedName(('geom', 'v1'), ('Shape',))
    assert qname.cpp == 'geom::v1::Shape'
    assert qname.leaf == 'Shape'
    assert qname.child('Style').segments == ('geom', 'v1', 'Shape', 'Style')


@pytest.mark.parametrize('spelling,base,const,ref,depth', [
    ('int', 'int', False, False, 0),
    ('const geom::Vec2 &', 'geom::Vec2', True, True, 0),
    ('geom::Vec2 const&', 'geom::Vec2', True, True, 0),
    ('const char *', 'char', True, False, 1),
    ('float **', 'float', False, False, 2),
    ('struct geom::Vec2', 'geom::Vec2', False, False, 0),
    ('std::int32_t', 'int32_t', False, False, 0),
    ('const std::vector< double > &', 'std::vector<double>', True, True, 0),
])
def test_type_ref_parse(spelling, base, const, ref, depth):
    t = TypeRef.parse(spelling)
    assert t.base == base
    assert t.is_const == const
    assert t.is_reference == ref
    assert t.pointer_depth == depth


def test_rvalue_reference():
    t = TypeRef.parse('geom::Vec2 &&')
    assert t.is_rvalue_reference
    assert not t.is_reference
    assert not t.is_by_value


def test_scoped_lookup(geom_ir):
    """Test that unqualified names resolve from the innermost scope outwards"""
    shape = QualifiedName(('geom',), ('Shape',))
    assert geom_ir.lookup_enum('Style', shape).qualified_name.cpp == 'geom::Shape::Style'
    assert geom_ir.lookup_record('Vec2', shape).name == 'geom::Vec2'
    assert geom_ir.lookup_record('::geom::Vec2').name == 'geom::Vec2'
    assert geom_ir.lookup_enum('Style') is None


def test_missing_module_rejected():
    with pytest.raises(InvalidDeclarationTree) as exc:
        IR.from_dict({'decls': []})
    assert 'module' in exc.value.message


def test_bad_kind_rejected():
    """Test that validation names the offending location"""
    data = {'module': 'geom', 'decls': [{'kind': 'typedef', 'name': 'X'}]}
    with pytest.raises(InvalidDeclarationTree) as exc:
        IR.from_dict(data)
    assert 'decls/0/kind' in exc.value.message
    assert exc.value.fatal


@pytest.mark.parametrize('decl', [
    {'kind': 'record', 'name': 'T', 'namespace': ['geom']},
    {'kind': 'enum', 'name': 'T', 'namespace': ['geom'], 'items': [{'name': 'A'}]},
])
def test_duplicate_declaration_rejected(decl):
    """Two declarations of one qualified name cannot share a boundary name"""
    data = {'module': 'geom', 'decls': [decl, dict(decl)]}
    with pytest.raises(IdentifierCollision) as exc:
        IR.from_dict(data)
    assert 'declared twice (decls/0 and decls/1)' in exc.value.message
    assert exc.value.fatal


def test_record_and_enum_of_one_name_rejected():
    data = {'module': 'geom', 'decls': [
        {'kind': 'record', 'name': 'T', 'namespace': ['geom']},
        {'kind': 'enum', 'name': 'T', 'namespace': ['geom'], 'items': [{'name': 'A'}]},
    ]}
    with pytest.raises(IdentifierCollision):
        IR.from_dict(data)


def test_unreadable_file(tmp_path):
    with pytest.raises(InvalidDeclarationTree):
        IR.load(tmp_path / 'missing.json')


def test_invalid_json(tmp_path):
    path = tmp_path / 'broken.json'
    path.write_text('{"module": ', encoding='utf-8')
    with pytest.raises(InvalidDeclarationTree) as exc:
        IR.load(path)
    assert 'invalid JSON' in exc.value.message


def test_unnamed_params_get_positional_names(tmp_path):
    path = tmp_path / 'anon.json'
    path.write_text(json.dumps({
        'module': 'm',
        'decls': [{'kind': 'function', 'name': 'f', 'params': [{'type': 'int'}, {'type': 'int'}]}],
    }), encoding='utf-8')
    ir = IR.load(path)
    assert ir.prefix == 'm'
    assert [p.name for p in ir.funcs[0].params] == ['arg0', 'arg1']
