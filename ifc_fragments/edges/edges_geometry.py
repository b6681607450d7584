"""
Threshold-angle edge extraction.

An edge of a triangle mesh is kept when:
- it borders a single face (boundary);
- it is shared by more than two faces (non-manifold);
- the angle between the normals of its two faces reaches the threshold.

Vertices are welded by rounding their coordinates to EDGE_HASH_PRECISION
decimals first, so split vertices (per-face normals, UV seams) don't turn
every triangle border into a boundary edge. Triangles that collapse under
welding are ignored.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Tuple

import numpy as np
from numpy.linalg import norm
from numpy.typing import NDArray

from ifc_fragments.config import DEFAULT_EDGE_THRESHOLD_DEG, EDGE_HASH_PRECISION
from ifc_fragments.geometry.buffers import MeshBuffer

logger = logging.getLogger(__name__)

# Welded vertex pair, smaller index first
Edge = Tuple[int, int]


def _face_normals(positions: NDArray[np.float64], faces: NDArray[np.int64]) -> NDArray[np.float64]:
    """Unit face normals; degenerate faces get a zero normal."""
    v01 = positions[faces[:, 1]] - positions[faces[:, 0]]
    v02 = positions[faces[:, 2]] - positions[faces[:, 0]]
    raw = np.cross(v01, v02)
    lengths = norm(raw, axis=1)

    normals = np.zeros_like(raw)
    valid = lengths > 1e-12
    normals[valid] = raw[valid] / lengths[valid, None]
    return normals


def weld_vertices(
    positions: NDArray[np.floating],
    precision: int = EDGE_HASH_PRECISION,
) -> NDArray[np.int64]:
    """Map every vertex to the index of its welded representative."""
    if len(positions) == 0:
        return np.zeros(0, dtype=np.int64)
    keys = np.round(np.asarray(positions, dtype=np.float64), precision)
    _, inverse = np.unique(keys, axis=0, return_inverse=True)
    return inverse.reshape(-1)


def threshold_edges(
    buffer: MeshBuffer,
    threshold_deg: float = DEFAULT_EDGE_THRESHOLD_DEG,
    precision: int = EDGE_HASH_PRECISION,
) -> NDArray[np.float32]:
    """Extract feature edges of a mesh as line segments.

    Args:
        buffer: triangle mesh (indexed or not).
        threshold_deg: minimum dihedral angle, in degrees, for an edge
            between two faces to be kept.
        precision: decimals used for vertex welding.

    Returns:
        (2K, 3) float32 segment endpoints, one pair per kept edge, taken
        from the first triangle that references the edge.
    """
    if buffer.vertex_count == 0:
        return np.zeros((0, 3), dtype=np.float32)

    positions = np.asarray(buffer.positions, dtype=np.float64)
    faces = np.asarray(buffer.faces, dtype=np.int64)
    welded = weld_vertices(positions, precision)[faces]

    keep = (
        (welded[:, 0] != welded[:, 1])
        & (welded[:, 1] != welded[:, 2])
        & (welded[:, 0] != welded[:, 2])
    )
    faces = faces[keep]
    welded = welded[keep]
    normals = _face_normals(positions, faces)

    edge_faces: Dict[Edge, List[int]] = defaultdict(list)
    endpoints: Dict[Edge, Tuple[int, int]] = {}
    for face_idx in range(len(faces)):
        for i in range(3):
            j = (i + 1) % 3
            w1, w2 = int(welded[face_idx, i]), int(welded[face_idx, j])
            edge: Edge = (min(w1, w2), max(w1, w2))
            edge_faces[edge].append(face_idx)
            if edge not in endpoints:
                endpoints[edge] = (int(faces[face_idx, i]), int(faces[face_idx, j]))

    threshold_dot = float(np.cos(np.radians(threshold_deg)))
    segments: List[int] = []
    for edge, face_list in edge_faces.items():
        if len(face_list) == 2:
            dot = float(np.dot(normals[face_list[0]], normals[face_list[1]]))
            if dot > threshold_dot:
                continue
        segments.extend(endpoints[edge])

    logger.debug(
        "Edges: %d of %d kept (threshold %.1f deg)",
        len(segments) // 2, len(edge_faces), threshold_deg,
    )
    if not segments:
        return np.zeros((0, 3), dtype=np.float32)
    return positions[np.asarray(segments)].astype(np.float32)
