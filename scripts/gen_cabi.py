#!/usr/bin/env python3
"""
gen_cabi.py - C ABI binding generator entry point

Generates a C header and C++ wrapper source from a declaration tree.

Usage:
    python scripts/gen_cabi.py IR.json [--output DIR] [--config MODULE] [--check] [--verbose]
"""

import argparse
import importlib
import logging
import os
import sys

# Get paths
script_dir = os.path.dirname(os.path.abspath(__file__))
root_dir = os.path.abspath(os.path.join(script_dir, '..'))

# Add scripts directory to path
sys.path.insert(0, script_dir)

from cabi_gen import Generator


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Generate C ABI bindings')
    parser.add_argument('ir', help='Path to the JSON declaration tree')
    parser.add_argument('--output', default=os.path.join(root_dir, 'gen/cabi'),
                        help='Output directory for the header and source')
    parser.add_argument('--config', default=None,
                        help='Binding configuration module under bindings/ (default: IR module name)')
    parser.add_argument('--check', action='store_true',
                        help='Only report stale outputs as a diff; write nothing')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging')
    return parser.parse_args(argv)


def load_config(name: str):
    """Import bindings.<name>, or None when there is no such module"""
    try:
        return importlib.import_module(f'bindings.{name}')
    except ModuleNotFoundError as exc:
        if exc.name != f'bindings.{name}':
            raise
        return None


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    gen = Generator(output_root=args.output)

    # Apply library-specific configuration
    config_name = args.config or os.path.splitext(os.path.basename(args.ir))[0]
    config = load_config(config_name)
    if config is not None:
        config.configure(gen)
    elif args.config:
        print(f'  >> error: no configuration module bindings.{args.config}', file=sys.stderr)
        return 2

    return gen.run(args.ir, check=args.check)


if __name__ == '__main__':
    sys.exit(main())
