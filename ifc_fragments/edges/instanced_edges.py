"""
Instanced edge lines for fragments.

One EdgeSet per fragment: the fragment's feature edges are extracted once
from its local geometry and drawn once per instance. Instead of baking the
instance matrices, each instance is decomposed into translation, rotation
quaternion and scale, stored as three per-instance attributes (instT,
instR, instS) that the line shader applies to every vertex.

generate() may be called from several threads. Calls for the same
fragment id are serialized; different fragments proceed in parallel.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

import numpy as np
from numpy.typing import NDArray

from ifc_fragments.config import DEFAULT_EDGE_COLOR, DEFAULT_EDGE_THRESHOLD_DEG
from ifc_fragments.edges.edges_geometry import threshold_edges
from ifc_fragments.model.fragment import Fragment
from ifc_fragments.transforms.decompose import apply_trs, decompose_matrix

logger = logging.getLogger(__name__)

INSTANCE_TRANSLATION = "instT"
INSTANCE_ROTATION = "instR"
INSTANCE_SCALE = "instS"

# Prepended to the line material's vertex shader
INSTANCED_EDGE_VERTEX_CHUNK = """
attribute vec3 instT;
attribute vec4 instR;
attribute vec3 instS;

vec3 trs( inout vec3 position, vec3 T, vec4 R, vec3 S ) {
    position *= S;
    position += 2.0 * cross( R.xyz, cross( R.xyz, position ) + R.w * position );
    position += T;
    return position;
}
"""

_BEGIN_VERTEX = "#include <begin_vertex>"


def inject_instanced_transform(vertex_shader: str) -> str:
    """Patch a line vertex shader so it applies instT/instR/instS."""
    return INSTANCED_EDGE_VERTEX_CHUNK + vertex_shader.replace(
        _BEGIN_VERTEX,
        _BEGIN_VERTEX + "\n    transformed = trs(transformed, instT, instR, instS);\n",
    )


@dataclass
class EdgeSet:
    """Line geometry of one fragment plus its per-instance attributes.

    Attributes:
        fragment_id: owning fragment.
        positions: (2K, 3) segment endpoints in the fragment's local frame.
        inst_t: (N, 3) instance translations.
        inst_r: (N, 4) instance rotations, quaternion x, y, z, w.
        inst_s: (N, 3) instance scales.
        visible: render flag; new edge sets start hidden.
    """
    fragment_id: str
    positions: NDArray[np.float32]
    inst_t: NDArray[np.float32]
    inst_r: NDArray[np.float32]
    inst_s: NDArray[np.float32]
    color: int = DEFAULT_EDGE_COLOR
    visible: bool = False
    disposed: bool = field(default=False, repr=False)

    @property
    def segment_count(self) -> int:
        return len(self.positions) // 2

    @property
    def instance_count(self) -> int:
        return len(self.inst_t)

    @property
    def attributes(self) -> Dict[str, NDArray[np.float32]]:
        """Per-instance attributes by shader name."""
        return {
            INSTANCE_TRANSLATION: self.inst_t,
            INSTANCE_ROTATION: self.inst_r,
            INSTANCE_SCALE: self.inst_s,
        }

    def world_segments(self, instance: int) -> NDArray[np.float64]:
        """Segment endpoints of one instance, transformed as the shader does."""
        return apply_trs(self.positions, self.inst_t[instance],
                         self.inst_r[instance], self.inst_s[instance])

    def dispose(self) -> None:
        self.positions = np.zeros((0, 3), dtype=np.float32)
        self.inst_t = np.zeros((0, 3), dtype=np.float32)
        self.inst_r = np.zeros((0, 4), dtype=np.float32)
        self.inst_s = np.zeros((0, 3), dtype=np.float32)
        self.visible = False
        self.disposed = True


class InstancedEdges:
    """Registry of edge sets keyed by fragment id.

    Attributes:
        threshold: dihedral angle (degrees) for edge extraction.
        color: line color (0xRRGGBB).
        edges_list: fragment id -> current EdgeSet.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_EDGE_THRESHOLD_DEG,
        color: int = DEFAULT_EDGE_COLOR,
    ) -> None:
        self.threshold = threshold
        self.color = color
        self.edges_list: Dict[str, EdgeSet] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def __len__(self) -> int:
        return len(self.edges_list)

    def __iter__(self) -> Iterator[EdgeSet]:
        return iter(list(self.edges_list.values()))

    def _lock_for(self, fragment_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(fragment_id)
            if lock is None:
                lock = self._locks[fragment_id] = threading.Lock()
            return lock

    @contextmanager
    def _holding(self, fragment_id: str) -> Iterator[threading.Lock]:
        """Hold the current lock of a fragment id.

        A lock dropped by remove() while a caller waited on it is no longer
        current; the caller retries with the id's new lock.
        """
        while True:
            lock = self._lock_for(fragment_id)
            lock.acquire()
            with self._locks_guard:
                current = self._locks.get(fragment_id) is lock
            if current:
                break
            lock.release()
        try:
            yield lock
        finally:
            lock.release()

    def _drop_lock(self, fragment_id: str, lock: threading.Lock) -> None:
        with self._locks_guard:
            if self._locks.get(fragment_id) is lock:
                del self._locks[fragment_id]

    def generate(self, fragment: Fragment) -> EdgeSet:
        """(Re)build the edge set of a fragment.

        Any previous edge set of the fragment is disposed and replaced.

        Raises:
            ValueError: if the fragment has been disposed.
        """
        if fragment.disposed:
            raise ValueError(f"Fragment {fragment.id} is disposed; cannot build edges")

        with self._holding(fragment.id):
            previous = self.edges_list.pop(fragment.id, None)
            if previous is not None:
                previous.dispose()

            positions = threshold_edges(fragment.geometry, self.threshold)

            count = fragment.count
            inst_t = np.zeros((count, 3), dtype=np.float32)
            inst_r = np.zeros((count, 4), dtype=np.float32)
            inst_s = np.zeros((count, 3), dtype=np.float32)
            for i in range(count):
                translation, quaternion, scale = decompose_matrix(fragment.get_instance(i))
                inst_t[i] = translation
                inst_r[i] = quaternion
                inst_s[i] = scale

            edge_set = EdgeSet(
                fragment_id=fragment.id,
                positions=positions,
                inst_t=inst_t,
                inst_r=inst_r,
                inst_s=inst_s,
                color=self.color,
            )
            self.edges_list[fragment.id] = edge_set

        logger.debug("Edges for fragment %s", fragment.id, extra={
            "segments": edge_set.segment_count, "instances": count,
        })
        return edge_set

    def get(self, fragment_id: str) -> Optional[EdgeSet]:
        return self.edges_list.get(fragment_id)

    def set_visibility(self, fragment_id: str, visible: bool) -> None:
        """Show or hide the edges of one fragment.

        Raises:
            KeyError: if no edges were generated for the fragment.
        """
        self.edges_list[fragment_id].visible = visible

    def remove(self, fragment_id: str) -> None:
        """Dispose and forget the edges of one fragment (no-op if absent).

        Waits for a generate() of the same fragment that is in progress.
        """
        with self._holding(fragment_id) as lock:
            edge_set = self.edges_list.pop(fragment_id, None)
            if edge_set is not None:
                edge_set.dispose()
            self._drop_lock(fragment_id, lock)

    def dispose(self) -> None:
        """Dispose every edge set, each under its fragment's lock."""
        with self._locks_guard:
            fragment_ids = set(self._locks)
        fragment_ids.update(list(self.edges_list))
        for fragment_id in fragment_ids:
            self.remove(fragment_id)
