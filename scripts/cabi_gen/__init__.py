"""
C ABI binding generator

Generates a flat C boundary (header plus extern "C" C++ wrappers) for a C++
library from its declaration tree.
"""

from .classify import Kind, TypeClassifier, TypeRecord
from .containers import ContainerTransferEngine, ContainerVariant, ElementKind
from .errors import (
    BindingError, UnsupportedType, UnsupportedSignature, IdentifierCollision,
    CyclicFieldDependency, InvalidDeclarationTree, Diagnostic, Reporter,
)
from .generator import Generator, ModuleConfig, BindingUnit
from .ir import IR, QualifiedName, TypeRef
from .model import BodyKind, BoundaryDecl, ParamMode, ReturnMode, WrapperFunction, WrapperParam
from .naming import Category, NamespaceMode, NamespacePolicy, NamingResolver, OverloadPolicy
from .runtime import ContainerWrapper, ContainerUsageError, StagingHandle
from .synth import WrapperSynthesizer

__all__ = [
    'Generator', 'ModuleConfig', 'BindingUnit',
    'IR', 'QualifiedName', 'TypeRef',
    'Kind', 'TypeClassifier', 'TypeRecord',
    'Category', 'NamespaceMode', 'NamespacePolicy', 'NamingResolver', 'OverloadPolicy',
    'WrapperSynthesizer', 'BodyKind', 'BoundaryDecl', 'ParamMode', 'ReturnMode',
    'WrapperFunction', 'WrapperParam',
    'ContainerTransferEngine', 'ContainerVariant', 'ElementKind',
    'ContainerWrapper', 'ContainerUsageError', 'StagingHandle',
    'BindingError', 'UnsupportedType', 'UnsupportedSignature', 'IdentifierCollision',
    'CyclicFieldDependency', 'InvalidDeclarationTree', 'Diagnostic', 'Reporter',
]
