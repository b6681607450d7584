"""Geometry primitives: mesh buffers, oriented and axis-aligned boxes, spatial index."""

from ifc_fragments.geometry.bounds import (
    BoundingBox,
    bounds_of_oriented_box,
    calculate_bounding_box,
    union_all,
    voxel_grid_shape,
)
from ifc_fragments.geometry.buffers import MeshBuffer, merge_buffers
from ifc_fragments.geometry.obb import estimate_oriented_box

__all__ = [
    "BoundingBox",
    "MeshBuffer",
    "bounds_of_oriented_box",
    "calculate_bounding_box",
    "estimate_oriented_box",
    "merge_buffers",
    "union_all",
    "voxel_grid_shape",
]
