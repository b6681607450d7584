"""
FragmentGroup: the assembled output model.

Holds every fragment of a model together with the derived tables: opaque
and transparent/voided bounding transforms per item, floor and category
relationships, the type-name table and the coordination matrix.

A FragmentGroup is immutable once assembled. Consumers may read it from
several threads; the only mutation left is dispose(), which releases the
fragment buffers.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from ifc_fragments.geometry.bounds import (
    BoundingBox,
    bounds_of_oriented_box,
    union_all,
    voxel_grid_shape,
)
from ifc_fragments.geometry.spatial_index import ItemSpatialIndex
from ifc_fragments.model.fragment import Fragment
from ifc_fragments.model.issues import ConversionIssue
from ifc_fragments.transforms.decompose import from_elements

logger = logging.getLogger(__name__)

BoundingEntry = Tuple[float, ...]


class FrozenModelError(RuntimeError):
    """Attempt to modify an assembled FragmentGroup."""


class FragmentGroup:
    """Immutable collection of fragments and model metadata.

    Build through FragmentGroup.assemble().
    """

    def __init__(self) -> None:
        self.fragments: Tuple[Fragment, ...] = ()
        self.bounding_boxes: Mapping[int, BoundingEntry] = MappingProxyType({})
        self.transparent_bounding_boxes: Mapping[int, BoundingEntry] = MappingProxyType({})
        self.level_relationships: Mapping[int, int] = MappingProxyType({})
        self.floors_properties: Mapping[int, dict] = MappingProxyType({})
        self.all_types: Mapping[int, str] = MappingProxyType({})
        self.item_types: Mapping[int, int] = MappingProxyType({})
        self.coordination_matrix: NDArray[np.float64] = np.eye(4)
        self.issues: Tuple[ConversionIssue, ...] = ()
        self.voxel_size: float = 1.0
        self._item_bounds: Dict[int, BoundingBox] = {}
        self._spatial_index: Optional[ItemSpatialIndex] = None
        self._frozen = False

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False) and not name.startswith("_"):
            raise FrozenModelError(f"FragmentGroup is assembled; cannot set {name!r}")
        super().__setattr__(name, value)

    @classmethod
    def assemble(
        cls,
        fragments: Sequence[Fragment],
        bounding_boxes: Dict[int, BoundingEntry],
        transparent_bounding_boxes: Dict[int, BoundingEntry],
        level_relationships: Dict[int, int],
        floors_properties: Dict[int, dict],
        all_types: Dict[int, str],
        item_types: Dict[int, int],
        coordination_matrix: NDArray[np.float64],
        issues: Iterable[ConversionIssue] = (),
        voxel_size: float = 1.0,
    ) -> 'FragmentGroup':
        """Take ownership of converter results and freeze them into a model.

        Mappings are copied, so later changes to the converter's own
        tables do not leak into the model.
        """
        group = cls()
        group.fragments = tuple(fragments)
        group.bounding_boxes = MappingProxyType(dict(bounding_boxes))
        group.transparent_bounding_boxes = MappingProxyType(dict(transparent_bounding_boxes))
        group.level_relationships = MappingProxyType(dict(level_relationships))
        group.floors_properties = MappingProxyType(dict(floors_properties))
        group.all_types = MappingProxyType(dict(all_types))
        group.item_types = MappingProxyType(dict(item_types))
        matrix = np.array(coordination_matrix, dtype=np.float64)
        matrix.setflags(write=False)
        group.coordination_matrix = matrix
        group.issues = tuple(issues)
        group.voxel_size = float(voxel_size)

        for entries in (group.bounding_boxes, group.transparent_bounding_boxes):
            for item_id, elements in entries.items():
                group._item_bounds[item_id] = bounds_of_oriented_box(from_elements(elements))

        group._frozen = True
        logger.info(
            "Assembled model: %d fragments, %d opaque and %d transparent items",
            len(group.fragments),
            len(group.bounding_boxes),
            len(group.transparent_bounding_boxes),
            extra={"issues": len(group.issues)},
        )
        return group

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_fragment(self, fragment_id: str) -> Fragment:
        for fragment in self.fragments:
            if fragment.id == fragment_id:
                return fragment
        raise KeyError(fragment_id)

    @property
    def merged_fragments(self) -> List[Fragment]:
        return [f for f in self.fragments if f.is_merged]

    @property
    def instanced_fragments(self) -> List[Fragment]:
        return [f for f in self.fragments if not f.is_merged]

    def is_transparent(self, item_id: int) -> bool:
        """True if the item was filed as transparent or voided."""
        return item_id in self.transparent_bounding_boxes

    def bounding_box(self, item_id: int) -> NDArray[np.float64]:
        """Oriented bounding transform of an item as a (4, 4) matrix.

        Raises:
            KeyError: if the item has no bounding entry.
        """
        if item_id in self.bounding_boxes:
            return from_elements(self.bounding_boxes[item_id])
        return from_elements(self.transparent_bounding_boxes[item_id])

    def item_bounds(self, item_id: int) -> BoundingBox:
        """Axis-aligned bounds of an item's oriented box."""
        return self._item_bounds[item_id]

    @property
    def bounds(self) -> BoundingBox:
        """Axis-aligned bounds of every item with a bounding entry."""
        total = union_all(self._item_bounds.values())
        if total is None:
            return BoundingBox(np.zeros(3), np.zeros(3))
        return total

    def voxel_grid_shape(self, voxel_size: Optional[float] = None) -> Tuple[int, int, int]:
        """Voxel counts along x, y, z covering the model bounds."""
        return voxel_grid_shape(self.bounds, voxel_size or self.voxel_size)

    def spatial_index(self) -> ItemSpatialIndex:
        """R-tree over item bounds, built on first use."""
        if self._spatial_index is None:
            self._spatial_index = ItemSpatialIndex(self._item_bounds)
        return self._spatial_index

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def dispose(self) -> None:
        """Release every fragment buffer owned by the model."""
        for fragment in self.fragments:
            fragment.dispose()
        if self._spatial_index is not None:
            self._spatial_index.close()
            self._spatial_index = None
        self._item_bounds = {}
        object.__setattr__(self, "fragments", ())
        object.__setattr__(self, "bounding_boxes", MappingProxyType({}))
        object.__setattr__(self, "transparent_bounding_boxes", MappingProxyType({}))
        logger.debug("Disposed fragment group")

    def to_dict(self) -> Dict[str, Any]:
        """Summary for JSON serialization (no vertex data)."""
        return {
            'fragments': [
                {
                    'id': f.id,
                    'kind': 'merged' if f.is_merged else 'instanced',
                    'count': f.count,
                    'vertices': f.geometry.vertex_count,
                    'materials': [m.id for m in f.materials],
                    'items': f.item_ids(),
                    'category': f.category,
                    'floor': f.floor,
                }
                for f in self.fragments
            ],
            'bounding_boxes': {str(k): list(v) for k, v in self.bounding_boxes.items()},
            'transparent_bounding_boxes': {
                str(k): list(v) for k, v in self.transparent_bounding_boxes.items()
            },
            'level_relationships': {str(k): v for k, v in self.level_relationships.items()},
            'floors_properties': {str(k): v for k, v in self.floors_properties.items()},
            'item_types': {str(k): v for k, v in self.item_types.items()},
            'coordination_matrix': self.coordination_matrix.flatten(order="F").tolist(),
            'bounds': self.bounds.to_dict(),
            'issues': [issue.to_dict() for issue in self.issues],
        }
