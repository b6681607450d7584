"""
Approximate minimum-volume oriented bounding boxes.

The search is a bounded heuristic: 15 fixed primary-axis directions
(axis-aligned, face-diagonal and edge-diagonal directions of a cube) are
tried, each completed to a frame with the world up vector, and the frame
with the smallest box volume wins. The result is NOT guaranteed to be the
minimum-volume box; shapes rotated about an axis that is not in the table
get a looser fit.

The returned 4x4 transform maps the unit cube centred at the origin
(corners at +-0.5) onto the box: columns 0-2 are the box axes scaled to
the full extents, column 3 is the box centre.
"""

import logging
from typing import Sequence, Union

import numpy as np
from numpy.typing import NDArray

from ifc_fragments.config import WORLD_UP
from ifc_fragments.geometry.buffers import MeshBuffer, collect_positions

logger = logging.getLogger(__name__)


def _normalized(vectors: NDArray[np.float64]) -> NDArray[np.float64]:
    lengths = np.linalg.norm(vectors, axis=-1, keepdims=True)
    return vectors / (lengths + 1e-12)


# Primary-axis candidates, tried in this order. Ties keep the earliest entry.
CANDIDATE_AXES: NDArray[np.float64] = _normalized(np.array([
    [1.0, 0.0, 0.0],
    [1.0, 0.0, 1.0],
    [1.0, 1.0, 0.0],
    [1.0, 1.0, 1.0],
    [0.0, 1.0, 1.0],
    [1.0, 0.0, 0.5],
    [1.0, 0.5, 0.0],
    [1.0, 1.0, 0.5],
    [0.0, 1.0, 0.5],
    [0.5, 0.0, 1.0],
    [0.5, 1.0, 0.0],
    [0.5, 1.0, 1.0],
    [0.0, 0.5, 1.0],
    [0.5, 0.5, 1.0],
    [1.0, 0.5, 0.5],
]))
CANDIDATE_AXES.setflags(write=False)


def candidate_frame(
    axis: NDArray[np.float64],
    up: NDArray[np.float64] = WORLD_UP,
) -> NDArray[np.float64]:
    """Complete a primary axis to a frame: rows (a, a x up, (a x up) x a).

    None of the candidate axes is parallel to the world up vector, so the
    cross products never vanish for the built-in table.
    """
    a = _normalized(np.asarray(axis, dtype=np.float64))
    b = _normalized(np.cross(a, up))
    c = _normalized(np.cross(b, a))
    return np.vstack([a, b, c])


def degenerate_box() -> NDArray[np.float64]:
    """Zero-extent transform at the origin, used as a stable placeholder."""
    matrix = np.zeros((4, 4))
    matrix[3, 3] = 1.0
    return matrix


def estimate_oriented_box(
    geometry: Union[MeshBuffer, Sequence[MeshBuffer], NDArray[np.float64]],
) -> NDArray[np.float64]:
    """Estimate a tight oriented bounding transform for one or more buffers.

    All buffers must share one frame. Every vertex counts once, so the
    centre used for projection is the unweighted vertex centroid.

    Args:
        geometry: a MeshBuffer, a sequence of MeshBuffers, or raw (N, 3)
            vertex positions.

    Returns:
        (4, 4) float64 transform; columns 0-2 are the box axes scaled to
        their extents, column 3 the box centre. Empty input yields
        degenerate_box().
    """
    if isinstance(geometry, MeshBuffer):
        points = collect_positions([geometry])
    elif isinstance(geometry, np.ndarray):
        points = np.asarray(geometry, dtype=np.float64).reshape(-1, 3)
    else:
        points = collect_positions(list(geometry))

    if len(points) == 0:
        logger.debug("Empty geometry: returning degenerate bounding box")
        return degenerate_box()

    centroid = points.mean(axis=0)
    relative = points - centroid

    best_volume = np.inf
    best_frame = None
    best_min = best_max = None

    for axis in CANDIDATE_AXES:
        frame = candidate_frame(axis)
        projected = relative @ frame.T
        lo = projected.min(axis=0)
        hi = projected.max(axis=0)
        volume = float(np.prod(hi - lo))
        if volume < best_volume or best_frame is None:
            best_volume = volume
            best_frame = frame
            best_min, best_max = lo, hi

    extents = best_max - best_min
    midpoints = (best_max + best_min) / 2.0
    center = centroid + midpoints @ best_frame

    matrix = np.eye(4)
    matrix[:3, :3] = (best_frame * extents[:, None]).T
    matrix[:3, 3] = center
    return matrix


def box_extents(matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """Lengths of the three scaled axes of a bounding transform."""
    return np.linalg.norm(np.asarray(matrix)[:3, :3], axis=0)


def box_corners(matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """(8, 3) world-space corners of a bounding transform."""
    signs = np.array([[x, y, z] for x in (-0.5, 0.5)
                      for y in (-0.5, 0.5) for z in (-0.5, 0.5)])
    matrix = np.asarray(matrix, dtype=np.float64)
    return signs @ matrix[:3, :3].T + matrix[:3, 3]
