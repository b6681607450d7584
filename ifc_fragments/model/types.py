"""
Input data model supplied by the IFC parser.

The parser hands over one GeometryGroup per logical element (all
occurrences of one shape), the material table, category and floor
relationships, and the model-wide coordination matrix and length unit.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from ifc_fragments.geometry.buffers import MeshBuffer


@dataclass(frozen=True)
class Instance:
    """One occurrence of a logical element.

    Attributes:
        id: express id of the occurrence.
        matrix: (4, 4) float64 placement in model units. The converter
            reads it and normalizes a copy.
        voids: True if openings are boolean-subtracted from the element.
    """
    id: int
    matrix: NDArray[np.float64]
    voids: bool = False

    def __post_init__(self) -> None:
        matrix = np.array(self.matrix, dtype=np.float64)
        if matrix.size == 16 and matrix.ndim == 1:
            # Flat arrays arrive in column-major (scene-graph) order
            matrix = matrix.reshape(4, 4, order="F")
        if matrix.shape != (4, 4):
            raise ValueError(f"Instance {self.id}: transform must be 4x4, got {matrix.shape}")
        object.__setattr__(self, "matrix", matrix)


@dataclass
class Material:
    """Render material of a geometry group.

    Attributes:
        id: material id as used in GeometryGroup.geometries_by_material.
        color: RGB in 0..1.
        opacity: 0..1; below 1 the material is transparent.
    """
    id: str
    color: Tuple[float, float, float] = (0.8, 0.8, 0.8)
    opacity: float = 1.0
    name: str = ""

    @property
    def transparent(self) -> bool:
        return self.opacity < 1.0


@dataclass
class GeometryGroup:
    """All per-material geometry of one logical element and its instances."""
    instances: List[Instance]
    geometries_by_material: Dict[str, List[MeshBuffer]] = field(default_factory=dict)

    @property
    def key(self) -> Optional[int]:
        """Id of the first instance, which names the element."""
        return self.instances[0].id if self.instances else None

    @property
    def is_unique(self) -> bool:
        return len(self.instances) == 1

    def non_empty_materials(self) -> List[str]:
        """Material ids that actually carry geometry, in insertion order."""
        return [mat_id for mat_id, buffers in self.geometries_by_material.items() if buffers]


@dataclass
class ParsedModel:
    """Everything the parser extracted from one model file.

    Attributes:
        items: geometry groups in stream order.
        materials: material table keyed by material id.
        item_categories: item id -> IFC entity type code.
        items_by_floor: item id -> floor (building storey) id.
        floor_properties: floor id -> properties (name, elevation, ...).
        coordination_matrix: (4, 4) model coordination transform.
        length_unit: declared unit name, e.g. "METRE" or "FOOT".
        length_prefix: SI prefix of the unit, e.g. "MILLI".
        name: model name used in logs and summaries.
    """
    items: List[GeometryGroup] = field(default_factory=list)
    materials: Dict[str, Material] = field(default_factory=dict)
    item_categories: Dict[int, int] = field(default_factory=dict)
    items_by_floor: Dict[int, int] = field(default_factory=dict)
    floor_properties: Dict[int, dict] = field(default_factory=dict)
    coordination_matrix: NDArray[np.float64] = field(default_factory=lambda: np.eye(4))
    length_unit: Optional[str] = "METRE"
    length_prefix: Optional[str] = None
    name: str = "model"
