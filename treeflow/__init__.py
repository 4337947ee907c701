"""Treeflow - hierarchical execution tracking for nested async workflows.

Workflows form a live tree; everything they emit is observable from the root.
"""

__version__ = "0.1.0"
