#!/usr/bin/env python3
# edgenode/__init__.py
from __future__ import annotations
"""
LayerEdge light node installer.

Keep this module import-light: the CLI pulls in commands and stages on
demand, so `import edgenode.probe` does not drag in prompt_toolkit.
"""

__version__ = "0.1.0"
