"""
Axis-aligned bounds of items and models.

Provides:
- BoundingBox (AABB) with union, containment and intersection
- AABB of vertex sets and of oriented bounding transforms
- Voxel grid dimensions over a model's bounds
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from ifc_fragments.geometry.obb import box_corners

logger = logging.getLogger(__name__)


@dataclass
class BoundingBox:
    """Axis-Aligned Bounding Box (AABB).

    Attributes:
        min_point: Minimum corner (x_min, y_min, z_min)
        max_point: Maximum corner (x_max, y_max, z_max)
    """
    min_point: NDArray[np.float64]
    max_point: NDArray[np.float64]

    def __post_init__(self) -> None:
        self.min_point = np.asarray(self.min_point, dtype=np.float64)
        self.max_point = np.asarray(self.max_point, dtype=np.float64)

    @property
    def dimensions(self) -> NDArray[np.float64]:
        """Get box dimensions (x, y, z extents)."""
        return self.max_point - self.min_point

    @property
    def center(self) -> NDArray[np.float64]:
        """Get box center point."""
        return (self.min_point + self.max_point) / 2

    @property
    def volume(self) -> float:
        """Get box volume."""
        return float(np.prod(self.dimensions))

    @property
    def is_empty(self) -> bool:
        """True for the inverted box returned by BoundingBox.empty()."""
        return bool(np.any(self.max_point < self.min_point))

    @classmethod
    def empty(cls) -> 'BoundingBox':
        """Inverted box that any union replaces."""
        return cls(np.full(3, np.inf), np.full(3, -np.inf))

    def union(self, other: 'BoundingBox') -> 'BoundingBox':
        """Smallest box containing both boxes."""
        return BoundingBox(
            min_point=np.minimum(self.min_point, other.min_point),
            max_point=np.maximum(self.max_point, other.max_point),
        )

    def contains_point(self, point: NDArray[np.float64]) -> bool:
        """Check if point is inside the bounding box."""
        return bool(
            np.all(point >= self.min_point) and
            np.all(point <= self.max_point)
        )

    def intersects(self, other: 'BoundingBox') -> bool:
        """Check if two bounding boxes intersect."""
        return bool(
            np.all(self.min_point <= other.max_point) and
            np.all(self.max_point >= other.min_point)
        )

    def as_rtree_bounds(self) -> Tuple[float, ...]:
        """Interleaved (minx, miny, minz, maxx, maxy, maxz)."""
        return tuple(float(v) for v in (*self.min_point, *self.max_point))

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'min': self.min_point.tolist(),
            'max': self.max_point.tolist(),
            'dimensions': self.dimensions.tolist(),
            'center': self.center.tolist(),
        }


def calculate_bounding_box(vertices: NDArray[np.float64]) -> BoundingBox:
    """Calculate axis-aligned bounding box for vertices.

    Args:
        vertices: Nx3 array of vertex coordinates

    Returns:
        BoundingBox instance (zero box at the origin for no vertices)
    """
    vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
    if len(vertices) == 0:
        return BoundingBox(min_point=np.zeros(3), max_point=np.zeros(3))

    return BoundingBox(
        min_point=np.min(vertices, axis=0),
        max_point=np.max(vertices, axis=0)
    )


def bounds_of_oriented_box(matrix: NDArray[np.float64]) -> BoundingBox:
    """AABB enclosing the eight corners of an oriented bounding transform."""
    return calculate_bounding_box(box_corners(matrix))


def union_all(boxes: Iterable[BoundingBox]) -> Optional[BoundingBox]:
    """Union of several boxes, or None when there are none."""
    result: Optional[BoundingBox] = None
    for box in boxes:
        result = box if result is None else result.union(box)
    return result


def voxel_grid_shape(bounds: BoundingBox, voxel_size: float) -> Tuple[int, int, int]:
    """Number of voxels along x, y, z needed to cover `bounds`.

    Every axis gets at least one voxel, so flat or point-like models still
    map to a valid grid.

    Raises:
        ValueError: if voxel_size is not positive.
    """
    if voxel_size <= 0:
        raise ValueError(f"voxel_size must be positive, got {voxel_size}")
    counts = [max(1, math.ceil(float(d) / voxel_size)) for d in bounds.dimensions]
    return counts[0], counts[1], counts[2]
