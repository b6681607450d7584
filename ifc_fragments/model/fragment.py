"""
Fragments: render-ready geometry units.

A Fragment holds one mesh buffer, its material list and a fixed number of
instances. Two shapes occur:

- instanced: local-frame geometry drawn once per instance transform;
  every instance carries the id(s) of the item it represents;
- merged: world-space geometry of many items, one identity instance that
  lists every contained item id, and a per-vertex "blockID" attribute.
  Block b belongs to item instances[0].ids[b].
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from ifc_fragments.geometry.buffers import MeshBuffer
from ifc_fragments.model.types import Material

logger = logging.getLogger(__name__)

BLOCK_ID_ATTRIBUTE = "blockID"


@dataclass
class FragmentInstance:
    """Ids and world transform of one drawn copy of a fragment's geometry."""
    ids: List[int]
    transform: NDArray[np.float64] = field(default_factory=lambda: np.eye(4))


class Fragment:
    """Geometry + materials + instances.

    Attributes:
        id: unique fragment id.
        geometry: the shared mesh buffer.
        materials: one material per draw group of `geometry`.
        category: IFC type code of merged fragments (None when instanced).
        floor: floor id of merged fragments (None when instanced).
    """

    def __init__(
        self,
        geometry: MeshBuffer,
        materials: Sequence[Material],
        count: int,
        fragment_id: Optional[str] = None,
    ) -> None:
        if count < 1:
            raise ValueError(f"A fragment needs at least one instance, got {count}")
        self.id = fragment_id or uuid.uuid4().hex
        self.geometry = geometry
        self.materials = list(materials)
        self.category: Optional[int] = None
        self.floor: Optional[int] = None
        self._instances: List[Optional[FragmentInstance]] = [None] * count

    def __repr__(self) -> str:
        kind = "merged" if self.is_merged else "instanced"
        return (f"Fragment(id={self.id!r}, {kind}, count={self.count}, "
                f"vertices={self.geometry.vertex_count})")

    @property
    def count(self) -> int:
        """Number of instances."""
        return len(self._instances)

    @property
    def is_merged(self) -> bool:
        return BLOCK_ID_ATTRIBUTE in self.geometry.attributes

    @property
    def disposed(self) -> bool:
        return self.geometry.disposed

    @property
    def block_ids(self) -> Optional[NDArray[np.uint32]]:
        """Per-vertex block ids of merged fragments, None for instanced ones."""
        return self.geometry.attributes.get(BLOCK_ID_ATTRIBUTE)

    @property
    def instances(self) -> List[FragmentInstance]:
        """Instances that have been written (unset slots are skipped)."""
        return [inst for inst in self._instances if inst is not None]

    def set_instance(self, index: int, ids: Sequence[int], transform: NDArray[np.float64]) -> None:
        """Write the ids and transform of instance `index`.

        The transform is copied.
        """
        transform = np.array(transform, dtype=np.float64)
        if transform.shape != (4, 4):
            raise ValueError(f"Instance transform must be 4x4, got {transform.shape}")
        self._instances[index] = FragmentInstance(ids=[int(i) for i in ids], transform=transform)

    def _instance(self, index: int) -> FragmentInstance:
        instance = self._instances[index]
        if instance is None:
            raise IndexError(f"Instance {index} of fragment {self.id} was never set")
        return instance

    def get_instance(self, index: int) -> NDArray[np.float64]:
        """Copy of the transform of instance `index`."""
        return self._instance(index).transform.copy()

    def get_item_id(self, index: int, position: int = 0) -> int:
        """Item id at `position` in the id list of instance `index`."""
        return self._instance(index).ids[position]

    def item_ids(self) -> List[int]:
        """Every item id held by the fragment, in instance order."""
        return [item_id for inst in self.instances for item_id in inst.ids]

    def item_id_for_vertex(self, vertex: int) -> int:
        """Source item of a vertex of a merged fragment.

        Raises:
            ValueError: for instanced fragments.
        """
        block_ids = self.block_ids
        if block_ids is None:
            raise ValueError(f"Fragment {self.id} is instanced and has no block ids")
        return self._instance(0).ids[int(block_ids[vertex])]

    def dispose(self) -> None:
        """Release the geometry and forget the instances."""
        self.geometry.dispose()
        self.materials = []
        self._instances = [None]
        logger.debug("Disposed fragment %s", self.id)
