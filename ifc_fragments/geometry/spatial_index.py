"""
Пространственный индекс элементов модели в 3D (rtree-обёртка).

Изолирует зависимость от библиотеки `rtree` и обеспечивает
потокобезопасный доступ к индексу: слой рендеринга может читать
готовую модель из нескольких потоков.
"""

import threading
from typing import Dict, Iterable, List, Tuple

from rtree import index

from ifc_fragments.geometry.bounds import BoundingBox


class ItemSpatialIndex:
    """R-tree по AABB элементов (item id → BoundingBox).

    Attributes:
        size: число проиндексированных элементов.
    """

    def __init__(self, item_bounds: Dict[int, BoundingBox]) -> None:
        props = index.Property()
        props.dimension = 3
        self._index = index.Index(properties=props)
        self._lock = threading.Lock()
        self.size = 0

        for item_id, box in item_bounds.items():
            self._index.insert(int(item_id), box.as_rtree_bounds())
            self.size += 1

    def query(self, box: BoundingBox) -> List[int]:
        """Элементы, чьи AABB пересекаются с `box`.

        Args:
            box: область запроса.

        Returns:
            Отсортированный список item id.
        """
        with self._lock:
            return sorted(self._index.intersection(box.as_rtree_bounds()))

    def query_point(self, point: Iterable[float]) -> List[int]:
        """Элементы, чьи AABB содержат точку."""
        x, y, z = (float(c) for c in point)
        bounds: Tuple[float, ...] = (x, y, z, x, y, z)
        with self._lock:
            return sorted(self._index.intersection(bounds))

    def nearest(self, point: Iterable[float], count: int = 1) -> List[int]:
        """`count` ближайших к точке элементов (по расстоянию до AABB)."""
        x, y, z = (float(c) for c in point)
        with self._lock:
            return list(self._index.nearest((x, y, z, x, y, z), count))

    def close(self) -> None:
        """Освободить ресурсы индекса."""
        with self._lock:
            self._index.close()
