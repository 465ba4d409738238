"""
Main generator module

Orchestrates classification, naming, synthesis and container transfer to
produce the C boundary of one declaration tree, then renders and writes it.
"""

import difflib
import logging
import os
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from .classify import DEFAULT_OWNING_TEMPLATES, TypeClassifier, TypeRecord
from .containers import ContainerTransferEngine
from .errors import BindingError, Reporter
from .ir import IR, QualifiedName
from .model import BoundaryDecl, WrapperFunction
from .naming import NamespacePolicy, NamingResolver, OverloadPolicy
from .render import HeaderRenderer, SourceRenderer
from .staging import StagingFallback
from .synth import WrapperSynthesizer

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SKIPPED = 1      # declarations skipped, or outputs stale in check mode
EXIT_FATAL = 2


class ModuleConfig:
    """Configuration for a module"""

    def __init__(self, module: str):
        self.module = module
        self.prefix: Optional[str] = None
        self.separator = '_'
        self.namespace_policy = NamespacePolicy()
        self.constructor_policies: dict[str, OverloadPolicy] = {}
        self.default_overload_policy: Optional[OverloadPolicy] = None
        self.renames: dict[str, str] = {}
        self.ignores: set[str] = set()
        self.includes: list[str] = []
        self.storage_size = 32
        self.storage_align = 8
        self.staging = True
        self.field_accessors = True
        self.owning_templates = DEFAULT_OWNING_TEMPLATES

    def policy(self, signature: str, policy: OverloadPolicy):
        """Set the disambiguation policy of one constructor, by signature"""
        self.constructor_policies[signature] = policy

    def rename(self, signature: str, name: str):
        """Bind a method or function under another member name"""
        self.renames[signature] = name


@dataclass
class BindingUnit:
    """Everything generated for one declaration tree"""
    module: str
    prefix: str
    declarations: list[BoundaryDecl]
    functions: list[WrapperFunction]
    container_functions: list[WrapperFunction]
    table: dict[QualifiedName, TypeRecord]
    engine: ContainerTransferEngine
    reporter: Reporter
    includes: list[str] = field(default_factory=list)

    @property
    def header_name(self) -> str:
        return f'{self.module}_cabi.h'

    @property
    def source_name(self) -> str:
        return f'{self.module}_cabi.cpp'

    def function(self, name: str) -> WrapperFunction:
        for fn in self.functions + self.container_functions:
            if fn.name == name:
                return fn
        raise KeyError(name)

    def declaration(self, name: str) -> BoundaryDecl:
        for decl in self.declarations:
            if decl.name == name:
                return decl
        raise KeyError(name)


class Generator:
    """Main binding generator"""

    def __init__(self, output_root: str):
        self.output_root = output_root
        self._modules: dict[str, ModuleConfig] = {}
        self._global_ignores: set[str] = set()

    def ignore(self, *names: str):
        """Add declarations (qualified names or signatures) to ignore globally"""
        self._global_ignores.update(names)

    def module(self, name: str) -> ModuleConfig:
        """Get or create module configuration"""
        if name not in self._modules:
            self._modules[name] = ModuleConfig(name)
        return self._modules[name]

    def conversion(self, module: str, signature: str):
        """Name a constructor `from_<type>`"""
        self.module(module).policy(signature, OverloadPolicy.CONVERSION)

    def configuration(self, module: str, signature: str):
        """Name a constructor `with_<params>`"""
        self.module(module).policy(signature, OverloadPolicy.CONFIGURATION)

    def build(self, ir: IR) -> BindingUnit:
        """Run the whole pipeline over a loaded declaration tree

        Recoverable errors are collected in the unit's reporter; fatal ones
        (identifier collisions, cyclic value records) propagate.
        """
        config = self.module(ir.module)
        if config.prefix:
            ir = replace(ir, prefix=config.prefix)
        ignores = self._global_ignores | config.ignores

        reporter = Reporter(ir.module)
        resolver = NamingResolver(config.separator, config.namespace_policy)
        table = TypeClassifier(ir, reporter, config.owning_templates).classify_all()
        engine = ContainerTransferEngine(ir, table, resolver, config.storage_size, config.storage_align)
        staging = StagingFallback(resolver) if config.staging else None
        synth = WrapperSynthesizer(
            ir, table, resolver, engine, reporter,
            staging=staging,
            constructor_policies=config.constructor_policies,
            default_policy=config.default_overload_policy,
            renames=config.renames,
            ignores=ignores,
            field_accessors=config.field_accessors,
        )

        for qname, enum in ir.enums.items():
            if qname.cpp not in ignores:
                synth.declare_enum(enum)

        functions: list[WrapperFunction] = []
        for qname, record in table.items():
            if qname.cpp in ignores:
                logger.debug('ignoring %s', qname.cpp)
                # still declared so other signatures can name it
                synth.declare(record)
                continue
            functions += synth.synthesize(record)
        for func in ir.funcs:
            functions += synth.synthesize_function(func)

        declarations = synth.declarations + engine.declarations()
        if staging is not None:
            declarations += staging.declarations
        return BindingUnit(
            module=ir.module,
            prefix=ir.prefix,
            declarations=declarations,
            functions=functions,
            container_functions=engine.functions(),
            table=table,
            engine=engine,
            reporter=reporter,
            includes=list(config.includes),
        )

    def render(self, unit: BindingUnit) -> dict[str, str]:
        """File name -> content"""
        return {
            unit.header_name: HeaderRenderer(unit).render(),
            unit.source_name: SourceRenderer(unit, unit.header_name).render(),
        }

    def run(self, ir_path: str, check: bool = False) -> int:
        """Generate, write (or diff) outputs and report; returns an exit code"""
        print(f'=== Generating C boundary: {ir_path}')
        try:
            ir = IR.load(ir_path)
            unit = self.build(ir)
        except BindingError as exc:
            print(f'  >> error [{exc.code}]: {exc}', file=sys.stderr)
            return EXIT_FATAL

        stale = 0
        for name, content in self.render(unit).items():
            path = Path(self.output_root) / name
            print(f'  {ir_path} => {path}')
            stale |= write_if_changed(path, content, check)

        if unit.reporter.items:
            print(unit.reporter.format(use_color=_use_color()), file=sys.stderr)
        if unit.reporter.has_errors or stale:
            return EXIT_SKIPPED
        return EXIT_OK


def write_if_changed(path: Path, content: str, check: bool) -> int:
    """Write `content` unless identical; in check mode print a diff instead"""
    existing = path.read_text(encoding='utf-8') if path.exists() else ''
    if existing == content:
        logger.debug('%s is up to date', path)
        return 0
    if check:
        diff = difflib.unified_diff(
            existing.splitlines(),
            content.splitlines(),
            fromfile=f'a/{path}',
            tofile=f'b/{path}',
            lineterm='',
        )
        print('\n'.join(diff))
        return 1
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding='utf-8', newline='\n')
    return 0


def _use_color() -> bool:
    return sys.stderr.isatty() and 'NO_COLOR' not in os.environ
