"""
Geom binding configuration

Configures the binding generator for the geom sample library:
- Vec2 constructor overloads named as conversion / configuration
- geom.h included by the wrapper source
"""

from cabi_gen import Generator, OverloadPolicy


def configure(gen: Generator):
    """Apply geom-specific configuration to generator"""
    geom = gen.module('geom')
    geom.includes.append('geom.h')

    # Vec2(float) splats one scalar, Vec2(float, float) names each component
    gen.conversion('geom', 'geom::Vec2::Vec2(float)')
    gen.configuration('geom', 'geom::Vec2::Vec2(float, float)')

    # Remaining overloads fall back to named parameters
    geom.default_overload_policy = OverloadPolicy.CONFIGURATION
