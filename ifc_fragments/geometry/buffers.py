"""
Triangle-mesh buffers and buffer merging.

A MeshBuffer is the unit of geometry exchanged between the parser, the
converter and the renderer: vertex positions, optional normals, an optional
triangle index, draw groups (one per material) and extra per-vertex
attributes such as the packed item-ID buffer of merged fragments.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

# (first index, index count, material index)
DrawGroup = Tuple[int, int, int]


@dataclass
class MeshBuffer:
    """Indexed or non-indexed triangle mesh.

    Attributes:
        positions: (N, 3) float32 vertex positions.
        normals: (N, 3) float32 vertex normals, or None.
        index: flat int32 triangle index (length multiple of 3), or None
            for a non-indexed mesh where every 3 vertices form a triangle.
        item_id: id of the source item that owns this buffer, if tagged.
        attributes: extra per-vertex arrays keyed by attribute name.
        groups: draw ranges over the index, one per material.
    """
    positions: NDArray[np.float32]
    normals: Optional[NDArray[np.float32]] = None
    index: Optional[NDArray[np.int32]] = None
    item_id: Optional[int] = None
    attributes: Dict[str, np.ndarray] = field(default_factory=dict)
    groups: List[DrawGroup] = field(default_factory=list)
    disposed: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        self.positions = np.asarray(self.positions, dtype=np.float32).reshape(-1, 3)
        if self.normals is not None:
            self.normals = np.asarray(self.normals, dtype=np.float32).reshape(-1, 3)
            if len(self.normals) != len(self.positions):
                raise ValueError(
                    f"normals ({len(self.normals)}) and positions "
                    f"({len(self.positions)}) differ in length"
                )
        if self.index is not None:
            self.index = np.asarray(self.index, dtype=np.int32).ravel()
            if len(self.index) % 3:
                raise ValueError("index length must be a multiple of 3")

    @property
    def vertex_count(self) -> int:
        """Number of vertices (length of the position attribute)."""
        return len(self.positions)

    @property
    def index_count(self) -> int:
        """Number of triangle corners drawn."""
        if self.index is not None:
            return len(self.index)
        return self.vertex_count

    @property
    def faces(self) -> NDArray[np.int32]:
        """(M, 3) triangle vertex indices, synthesized for non-indexed meshes."""
        if self.index is not None:
            return self.index.reshape(-1, 3)
        n = self.vertex_count - self.vertex_count % 3
        return np.arange(n, dtype=np.int32).reshape(-1, 3)

    def triangles(self) -> NDArray[np.float32]:
        """(M, 3, 3) triangle corner positions."""
        return self.positions[self.faces]

    def copy(self) -> 'MeshBuffer':
        """Deep copy; the copy is never marked disposed."""
        return MeshBuffer(
            positions=self.positions.copy(),
            normals=None if self.normals is None else self.normals.copy(),
            index=None if self.index is None else self.index.copy(),
            item_id=self.item_id,
            attributes={k: v.copy() for k, v in self.attributes.items()},
            groups=list(self.groups),
        )

    def apply_matrix(self, matrix: NDArray[np.float64]) -> 'MeshBuffer':
        """Transform positions (and normals) in place by a 4x4 matrix.

        Normals use the inverse-transpose of the linear part and are
        renormalized. Returns self for chaining.
        """
        matrix = np.asarray(matrix, dtype=np.float64)
        linear = matrix[:3, :3]
        positions = self.positions.astype(np.float64) @ linear.T + matrix[:3, 3]
        self.positions = positions.astype(np.float32)

        if self.normals is not None:
            # pinv keeps collapsed (zero-scale) transforms from raising
            normal_matrix = np.linalg.pinv(linear).T
            normals = self.normals.astype(np.float64) @ normal_matrix.T
            lengths = np.linalg.norm(normals, axis=1, keepdims=True)
            lengths = np.where(lengths > 1e-12, lengths, 1.0)
            self.normals = (normals / lengths).astype(np.float32)
        return self

    def transformed(
        self,
        matrix: NDArray[np.float64],
        item_id: Optional[int] = None,
    ) -> 'MeshBuffer':
        """Return a transformed copy, optionally tagged with an owning item id."""
        result = self.copy()
        if item_id is not None:
            result.item_id = item_id
        return result.apply_matrix(matrix)

    def dispose(self) -> None:
        """Release the vertex data. A disposed buffer holds no vertices."""
        self.positions = np.zeros((0, 3), dtype=np.float32)
        self.normals = None
        self.index = None
        self.attributes = {}
        self.groups = []
        self.disposed = True


def _as_indexed(buffer: MeshBuffer) -> NDArray[np.int32]:
    if buffer.index is not None:
        return buffer.index
    return buffer.faces.ravel()


def merge_buffers(geometry_groups: Sequence[Sequence[MeshBuffer]]) -> MeshBuffer:
    """Concatenate groups of buffers into a single indexed buffer.

    Each inner sequence becomes one draw group whose material index is
    its position in `geometry_groups`. Vertices keep the order in which
    buffers are supplied, so the vertex range of every input buffer is
    contiguous in the result.

    Normals are kept only when every input buffer has them; per-vertex
    attributes only when every input buffer carries the same name.

    Args:
        geometry_groups: buffers grouped by material.

    Returns:
        Merged MeshBuffer (untagged, no item_id).
    """
    buffers = [b for group in geometry_groups for b in group]
    if not buffers:
        return MeshBuffer(positions=np.zeros((0, 3), dtype=np.float32),
                          index=np.zeros(0, dtype=np.int32))

    keep_normals = all(b.normals is not None for b in buffers)
    shared_attributes = set(buffers[0].attributes)
    for b in buffers[1:]:
        shared_attributes &= set(b.attributes)

    positions: List[np.ndarray] = []
    normals: List[np.ndarray] = []
    indices: List[np.ndarray] = []
    attributes: Dict[str, List[np.ndarray]] = {name: [] for name in shared_attributes}
    groups: List[DrawGroup] = []

    vertex_offset = 0
    index_offset = 0
    for material_index, group in enumerate(geometry_groups):
        group_start = index_offset
        for buffer in group:
            positions.append(buffer.positions)
            if keep_normals:
                normals.append(buffer.normals)
            for name in shared_attributes:
                attributes[name].append(buffer.attributes[name])
            local_index = _as_indexed(buffer)
            indices.append(local_index + vertex_offset)
            vertex_offset += buffer.vertex_count
            index_offset += len(local_index)
        if index_offset > group_start:
            groups.append((group_start, index_offset - group_start, material_index))

    merged = MeshBuffer(
        positions=np.concatenate(positions),
        normals=np.concatenate(normals) if keep_normals else None,
        index=np.concatenate(indices).astype(np.int32),
        attributes={name: np.concatenate(parts) for name, parts in attributes.items()},
        groups=groups,
    )
    logger.debug(
        "Merged %d buffers into %d vertices, %d groups",
        len(buffers), merged.vertex_count, len(groups),
    )
    return merged


def collect_positions(buffers: Sequence[MeshBuffer]) -> NDArray[np.float64]:
    """Stack the positions of several buffers into one (N, 3) float64 array."""
    parts = [b.positions for b in buffers if b.vertex_count]
    if not parts:
        return np.zeros((0, 3), dtype=np.float64)
    return np.concatenate(parts).astype(np.float64)
