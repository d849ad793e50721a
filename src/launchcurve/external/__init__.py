# src/launchcurve/external/__init__.py
"""
External collaborators of the curve engine.

  - interfaces: protocols for native value, real tokens, liquidity and oracles
  - memory: in-process implementations with snapshot/restore, used by the
    service runtime and by tests

The engine depends on interfaces only.
"""

from __future__ import annotations

__all__ = [
    "interfaces",
    "memory",
]
