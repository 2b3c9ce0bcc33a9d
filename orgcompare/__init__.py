"""Public package surface for orgcompare.

Exports ``main`` for programmatic CLI invocation.
Services live in submodules; ``orgcompare.app.build_app`` wires them.
"""

from __future__ import annotations


def main(*args, **kwargs):
    """Lazily import CLI entrypoint to keep package imports lightweight."""
    from .cli import main as _main

    return _main(*args, **kwargs)

__all__ = ["main"]
