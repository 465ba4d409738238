"""
Error taxonomy and diagnostic reporting

Recoverable errors (an unsupported type or signature) skip the offending
declaration and are collected by a Reporter so that a generation pass lists
every skipped declaration at once. Fatal errors invalidate the type table or
the naming surface and abort the unit.
"""

from dataclasses import dataclass
from typing import Optional


class BindingError(Exception):
    """Base class for binding generation errors"""
    code = 'binding-error'
    fatal = False

    def __init__(self, message: str, declaration: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.declaration = declaration

    def __str__(self) -> str:
        if self.declaration:
            return f'{self.declaration}: {self.message}'
        return self.message


class UnsupportedType(BindingError):
    """A field or parameter type has no boundary representation"""
    code = 'unsupported-type'


class UnsupportedSignature(BindingError):
    """A signature shape the boundary refuses to wrap"""
    code = 'unsupported-signature'


class IdentifierCollision(BindingError):
    """Two declarations resolved to the same flat identifier"""
    code = 'identifier-collision'
    fatal = True


class CyclicFieldDependency(BindingError):
    """Value aggregates contain each other through fields"""
    code = 'cyclic-field-dependency'
    fatal = True


class InvalidDeclarationTree(BindingError):
    """The declaration tree could not be read or failed validation"""
    code = 'invalid-declaration-tree'
    fatal = True


class C:
    """ANSI color/style escape codes."""
    RESET = "\x1b[0m"
    BOLD = "\x1b[1m"
    DIM = "\x1b[2m"
    RED = "\x1b[31m"
    YELLOW = "\x1b[33m"
    CYAN = "\x1b[36m"


@dataclass(frozen=True)
class Diagnostic:
    kind: str          # "error" or "warning"
    code: str
    declaration: str
    message: str


class Reporter:
    """Accumulates per-declaration diagnostics for one generation pass"""

    def __init__(self, unit: str = '<input>'):
        self.unit = unit
        self.items: list[Diagnostic] = []

    def skip(self, declaration: str, error: BindingError):
        """Record a declaration that was skipped because of `error`"""
        self.items.append(Diagnostic('error', error.code, declaration, error.message))

    def warn(self, declaration: str, code: str, message: str):
        self.items.append(Diagnostic('warning', code, declaration, message))

    @property
    def has_errors(self) -> bool:
        return any(d.kind == 'error' for d in self.items)

    @property
    def skipped(self) -> list[str]:
        """Declarations skipped so far, in report order"""
        return [d.declaration for d in self.items if d.kind == 'error']

    def format(self, use_color: bool = False) -> str:
        out: list[str] = []
        for d in self.items:
            message = d.message if d.message.endswith('.') else f'{d.message}.'
            subject = f'skipped {d.declaration}' if d.kind == 'error' else d.declaration
            if use_color:
                color = C.RED if d.kind == 'error' else C.YELLOW
                head = (f'{C.CYAN}{self.unit}{C.RESET}: {C.BOLD}{color}{d.kind}{C.RESET} '
                        f'[{C.DIM}{d.code}{C.RESET}]')
            else:
                head = f'{self.unit}: {d.kind} [{d.code}]'
            out.append(f'{head}: {subject}: {message}')
        errors = sum(1 for d in self.items if d.kind == 'error')
        warnings = len(self.items) - errors
        if self.items:
            out.append(f'{errors} declaration(s) skipped, {warnings} warning(s)')
        return '\n'.join(out)
