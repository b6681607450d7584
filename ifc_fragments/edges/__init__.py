"""
Edge lines for fragments.

Modules:
    edges_geometry: threshold-angle edge extraction
    instanced_edges: per-fragment edge sets drawn once per instance
"""

from .instanced_edges import EdgeSet, InstancedEdges

__all__ = ["EdgeSet", "InstancedEdges"]
