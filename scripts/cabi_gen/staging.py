"""
Two-phase staging fallback

Containers whose elements fall outside the ContainerWrapper's closed element
set (vectors of opaque records) are returned in two calls. The first call
runs the library function, keeps the result behind an explicit staging
handle and reports the element count; the second call moves the elements
into a caller array and frees the handle. The handle is the only state
shared between the two calls, so nothing is kept per thread.

    std::vector<geom::Shape> shapes()
        -> size_t geom_shapes_begin(geom_shapes_staging** out_handle)
        -> void   geom_shapes_take(geom_shapes_staging* handle, geom_Shape** items)
"""

from dataclasses import replace
from typing import TYPE_CHECKING

from .classify import Kind, TypeRecord
from .model import BodyKind, BoundaryDecl, ParamMode, ReturnMode, WrapperFunction, WrapperParam
from .naming import Category

if TYPE_CHECKING:
    from .naming import NamingResolver


class StagingFallback:
    """Builds begin/take pairs and their staging handle declarations"""

    def __init__(self, resolver: 'NamingResolver'):
        self.resolver = resolver
        self.declarations: list[BoundaryDecl] = []

    def wrap(self, function: WrapperFunction, container_cpp: str,
             element: TypeRecord) -> list[WrapperFunction]:
        """Split `function` (already named, without a result) into begin/take"""
        sep = self.resolver.separator
        handle_type = function.name + sep + 'staging'
        self.resolver.claim(handle_type, (function.provenance, 'staging'))
        self.declarations.append(BoundaryDecl(
            name=handle_type,
            cpp_name=container_cpp,
            kind='staging',
            record=element,
            comment=f'Result of {function.name}_begin, consumed by {function.name}_take',
        ))

        element_c = self.resolver.resolve(element.qualified_name, Category.TYPE)
        begin_name = function.name + sep + 'begin'
        take_name = function.name + sep + 'take'
        self.resolver.claim(begin_name, (function.provenance, 'begin'))
        self.resolver.claim(take_name, (function.provenance, 'take'))

        begin = replace(
            function,
            name=begin_name,
            params=function.params + [
                WrapperParam('out_handle', f'{handle_type}**', ParamMode.STAGING_OUT, container_cpp),
            ],
            return_type='size_t',
            return_mode=ReturnMode.COUNT,
            return_cpp=container_cpp,
        )
        if element.kind == Kind.OPAQUE_POINTER:
            items = WrapperParam('items', f'{element_c}**', ParamMode.ITEMS_OUT, element.cpp_name, element)
        else:
            items = WrapperParam('items', f'{element_c}*', ParamMode.ITEMS_OUT, element.cpp_name, element)
        take = WrapperFunction(
            name=take_name,
            params=[
                WrapperParam('handle', f'{handle_type}*', ParamMode.STAGING_IN, container_cpp),
                items,
            ],
            return_type='void',
            body_kind=BodyKind.DESTRUCT,
            target='take',
            record=function.record,
            return_record=element,
            provenance=function.provenance,
            comment=f'items must hold the count returned by {begin_name}',
        )
        return [begin, take]
