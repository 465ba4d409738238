"""
Shared fixtures: the geom sample declaration tree and a configured generator
"""

import copy
import json
from pathlib import Path

import pytest

from bindings import geom
from cabi_gen import IR, Generator

DATA_DIR = Path(__file__).parent / 'data'
GEOM_JSON = DATA_DIR / 'geom.json'


@pytest.fixture
def geom_data():
    """Raw geom declaration tree (a fresh copy per test)"""
    return copy.deepcopy(json.loads(GEOM_JSON.read_text(encoding='utf-8')))


@pytest.fixture
def geom_ir():
    return IR.load(GEOM_JSON)


@pytest.fixture
def generator(tmp_path):
    gen = Generator(output_root=str(tmp_path))
    geom.configure(gen)
    return gen


@pytest.fixture
def unit(generator, geom_ir):
    return generator.build(geom_ir)


def record(name, fields=(), methods=(), namespace=('geom',), **extra):
    """Build a record declaration for inline trees"""
    decl = {
        'kind': 'record',
        'name': name,
        'namespace': list(namespace),
        'fields': [dict(f) for f in fields],
        'methods': [dict(m) for m in methods],
    }
    decl.update(extra)
    return decl


def tree(*decls, module='geom'):
    return IR.from_dict({'module': module, 'prefix': module, 'decls': list(decls)})
