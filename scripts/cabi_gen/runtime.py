"""
Runtime reference model

A Python rendition of the semantics the generated C++ gives a
ContainerWrapper and a staging handle. It holds real Python containers in
place of C++ ones so that ownership transfer, per-kind element access and
lifetime rules can be checked without a C++ toolchain.

    wrapper = ContainerWrapper()
    transfer_result(lambda: [1.0, 2.0], variant, wrapper)
    wrapper.size()        # 2
    wrapper.get(1)        # (True, 2.0)
    wrapper.release()
"""

from enum import Enum
from typing import Any, Callable, Optional

from .containers import ContainerVariant, ElementKind


class ContainerUsageError(Exception):
    """A ContainerWrapper or staging handle was used outside its lifetime rules"""


class WrapperState(Enum):
    EMPTY = 'empty'          # never constructed, or moved from
    HELD = 'held'
    RELEASED = 'released'


def _check_int(variant: ContainerVariant, value, signed: bool):
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f'{variant.tag}: expected an integer, got {type(value).__name__}')
    bits = variant.element_size * 8
    low, high = (-(1 << (bits - 1)), (1 << (bits - 1)) - 1) if signed else (0, (1 << bits) - 1)
    if not low <= value <= high:
        raise ValueError(f'{variant.tag}: {value} does not fit {variant.element_cpp}')


def _check_signed(variant, value):
    _check_int(variant, value, True)


def _check_unsigned(variant, value):
    _check_int(variant, value, False)


def _check_float(variant, value):
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise TypeError(f'{variant.tag}: expected a number, got {type(value).__name__}')


def _check_bool(variant, value):
    if not isinstance(value, bool):
        raise TypeError(f'{variant.tag}: expected a bool, got {type(value).__name__}')


def _check_char(variant, value):
    if not isinstance(value, str) or len(value) != 1:
        raise TypeError(f'{variant.tag}: expected a single character, got {value!r}')


def _check_text(variant, value):
    if not isinstance(value, str):
        raise TypeError(f'{variant.tag}: expected text, got {type(value).__name__}')


def _check_value(variant, value):
    if value is None:
        raise TypeError(f'{variant.tag}: value elements cannot be None')


# One entry per element kind; the generated accessors switch over the same set
ELEMENT_CHECKS: dict[ElementKind, Callable[[ContainerVariant, Any], None]] = {
    ElementKind.SIGNED: _check_signed,
    ElementKind.UNSIGNED: _check_unsigned,
    ElementKind.FLOAT: _check_float,
    ElementKind.BOOL: _check_bool,
    ElementKind.CHAR: _check_char,
    ElementKind.TEXT: _check_text,
    ElementKind.VALUE: _check_value,
}

ELEMENT_READERS: dict[ElementKind, Callable[[Any], Any]] = {
    ElementKind.SIGNED: int,
    ElementKind.UNSIGNED: int,
    ElementKind.FLOAT: float,
    ElementKind.BOOL: bool,
    ElementKind.CHAR: str,
    ElementKind.TEXT: str,
    ElementKind.VALUE: lambda value: value,
}


def _check_dispatch():
    for table in (ELEMENT_CHECKS, ELEMENT_READERS):
        missing = set(ElementKind) - set(table)
        if missing:
            raise RuntimeError(f'element dispatch misses {sorted(k.value for k in missing)}')


_check_dispatch()


def _copy_container(variant: ContainerVariant, container):
    if variant.is_text_buffer:
        return str(container)
    return list(container)


class ContainerWrapper:
    """Tagged holder of exactly one container

    `emplace` takes ownership of the container object itself (no element
    copy); `copy_into` is the only operation that duplicates elements.
    """

    def __init__(self):
        self.variant: Optional[ContainerVariant] = None
        self.state = WrapperState.EMPTY
        self._storage = None

    @property
    def tag(self) -> str:
        return self.variant.tag if self.variant is not None else 'empty'

    @property
    def storage(self):
        self._require_live('storage')
        return self._storage

    def emplace(self, variant: ContainerVariant, container) -> 'ContainerWrapper':
        """Construct in place from a freshly produced container"""
        if self.state == WrapperState.HELD:
            raise ContainerUsageError(f'wrapper already holds a {self.tag}; release it first')
        if variant.is_text_buffer:
            if not isinstance(container, str):
                raise TypeError(f'{variant.tag}: expected text, got {type(container).__name__}')
        else:
            check = ELEMENT_CHECKS[variant.element_kind]
            for value in container:
                check(variant, value)
        self.variant = variant
        self._storage = container
        self.state = WrapperState.HELD
        return self

    def size(self, variant: Optional[ContainerVariant] = None) -> int:
        self._require_live('size')
        if not self._holds(variant):
            return 0
        return len(self._storage)

    def get(self, index: int, variant: Optional[ContainerVariant] = None) -> tuple[bool, Any]:
        """(success, element); out of range or a different variant fails"""
        self._require_live('get')
        if not self._holds(variant) or not 0 <= index < len(self._storage):
            return False, None
        read = ELEMENT_READERS[self.variant.element_kind]
        return True, read(self._storage[index])

    def release(self):
        """End the held container's lifetime; at most once"""
        if self.state == WrapperState.RELEASED:
            raise ContainerUsageError('wrapper released twice')
        self._storage = None
        self.variant = None
        self.state = WrapperState.RELEASED

    def copy_into(self, dst: 'ContainerWrapper'):
        self._require_live('copy')
        if self.state != WrapperState.HELD:
            raise ContainerUsageError('copy from a wrapper that holds nothing')
        dst.emplace(self.variant, _copy_container(self.variant, self._storage))

    def move_into(self, dst: 'ContainerWrapper'):
        """Transfer the held container; the source is left empty"""
        self._require_live('move')
        if self.state != WrapperState.HELD:
            raise ContainerUsageError('move from a wrapper that holds nothing')
        if dst is self:
            return
        dst.emplace(self.variant, self._storage)
        self._storage = None
        self.variant = None
        self.state = WrapperState.EMPTY

    def _holds(self, variant: Optional[ContainerVariant]) -> bool:
        if self.state != WrapperState.HELD:
            return False
        return variant is None or variant.tag == self.variant.tag

    def _require_live(self, op: str):
        if self.state == WrapperState.RELEASED:
            raise ContainerUsageError(f'{op} on a released wrapper')

    def __repr__(self):
        return f'<ContainerWrapper {self.tag} {self.state.value}>'


def transfer_result(produce: Callable[[], Any], variant: ContainerVariant,
                    out: ContainerWrapper) -> ContainerWrapper:
    """Run a container-returning call and construct its result into `out`"""
    return out.emplace(variant, produce())


class StagingHandle:
    """Result of the first phase of a two-phase transfer, consumed once"""

    def __init__(self, values):
        self._values = list(values)
        self._taken = False

    @property
    def count(self) -> int:
        if self._taken:
            raise ContainerUsageError('staging handle already taken')
        return len(self._values)

    def take(self) -> list:
        if self._taken:
            raise ContainerUsageError('staging handle already taken')
        self._taken = True
        values, self._values = self._values, []
        return values


def stage(produce: Callable[[], Any]) -> tuple[int, StagingHandle]:
    """First phase: run the call, keep its result behind a handle"""
    handle = StagingHandle(produce())
    return handle.count, handle
