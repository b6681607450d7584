"""
Unit tests for ifc_fragments.geometry.bounds and spatial_index modules.

Tests:
- BoundingBox operations
- AABB of vertices and of oriented boxes
- Voxel grid dimensions
- R-tree item queries
"""

import numpy as np
import pytest

from ifc_fragments.geometry.bounds import (
    BoundingBox,
    bounds_of_oriented_box,
    calculate_bounding_box,
    union_all,
    voxel_grid_shape,
)
from ifc_fragments.geometry.obb import estimate_oriented_box
from ifc_fragments.geometry.spatial_index import ItemSpatialIndex


def _box(lo, hi):
    return BoundingBox(np.array(lo, dtype=float), np.array(hi, dtype=float))


class TestBoundingBox:
    """Tests for BoundingBox dataclass."""

    def test_dimensions_and_center(self):
        box = _box([0, 0, 0], [2, 4, 6])
        assert np.allclose(box.dimensions, [2, 4, 6])
        assert np.allclose(box.center, [1, 2, 3])
        assert box.volume == pytest.approx(48.0)

    def test_union(self):
        union = _box([0, 0, 0], [1, 1, 1]).union(_box([-1, 2, 0], [0, 3, 5]))
        assert np.allclose(union.min_point, [-1, 0, 0])
        assert np.allclose(union.max_point, [1, 3, 5])

    def test_empty_is_replaced_by_union(self):
        empty = BoundingBox.empty()
        assert empty.is_empty
        union = empty.union(_box([1, 1, 1], [2, 2, 2]))
        assert np.allclose(union.min_point, 1.0)
        assert not union.is_empty

    def test_contains_and_intersects(self):
        box = _box([0, 0, 0], [1, 1, 1])
        assert box.contains_point(np.array([0.5, 0.5, 0.5]))
        assert not box.contains_point(np.array([1.5, 0.5, 0.5]))
        assert box.intersects(_box([1, 1, 1], [2, 2, 2]))
        assert not box.intersects(_box([1.1, 0, 0], [2, 1, 1]))

    def test_rtree_bounds_interleaved(self):
        assert _box([1, 2, 3], [4, 5, 6]).as_rtree_bounds() == (1.0, 2.0, 3.0, 4.0, 5.0, 6.0)

    def test_to_dict(self):
        data = _box([0, 0, 0], [2, 2, 2]).to_dict()
        assert data['min'] == [0.0, 0.0, 0.0]
        assert data['center'] == [1.0, 1.0, 1.0]


class TestCalculateBoundingBox:
    def test_vertices(self, cube_buffer):
        box = calculate_bounding_box(cube_buffer.positions)
        assert np.allclose(box.min_point, 0.0)
        assert np.allclose(box.max_point, 1.0)

    def test_no_vertices_gives_zero_box(self):
        box = calculate_bounding_box(np.zeros((0, 3)))
        assert np.allclose(box.dimensions, 0.0)


class TestBoundsOfOrientedBox:
    def test_unit_cube(self, cube_buffer):
        box = bounds_of_oriented_box(estimate_oriented_box(cube_buffer))
        assert np.allclose(box.min_point, 0.0, atol=1e-6)
        assert np.allclose(box.max_point, 1.0, atol=1e-6)

    def test_translated_box(self, cube_buffer, make_translation):
        matrix = make_translation(5.0, 0.0, 0.0) @ estimate_oriented_box(cube_buffer)
        box = bounds_of_oriented_box(matrix)
        assert np.allclose(box.min_point, [5.0, 0.0, 0.0], atol=1e-6)


class TestUnionAll:
    def test_none_for_no_boxes(self):
        assert union_all([]) is None

    def test_union_of_many(self):
        result = union_all([_box([0, 0, 0], [1, 1, 1]), _box([5, 5, 5], [6, 6, 6])])
        assert np.allclose(result.max_point, 6.0)


class TestVoxelGridShape:
    def test_counts_round_up(self):
        assert voxel_grid_shape(_box([0, 0, 0], [10, 2.5, 1]), 1.0) == (10, 3, 1)

    def test_flat_bounds_get_one_voxel(self):
        assert voxel_grid_shape(_box([0, 0, 0], [4, 4, 0]), 2.0) == (2, 2, 1)

    def test_invalid_size_raises(self):
        with pytest.raises(ValueError):
            voxel_grid_shape(_box([0, 0, 0], [1, 1, 1]), 0.0)


class TestItemSpatialIndex:
    """Tests for ItemSpatialIndex class."""

    @pytest.fixture
    def spatial_index(self):
        idx = ItemSpatialIndex({
            1: _box([0, 0, 0], [1, 1, 1]),
            2: _box([5, 0, 0], [6, 1, 1]),
            3: _box([0, 5, 0], [1, 6, 3]),
        })
        yield idx
        idx.close()

    def test_size(self, spatial_index):
        assert spatial_index.size == 3

    def test_query_box(self, spatial_index):
        assert spatial_index.query(_box([-1, -1, -1], [5.5, 0.5, 0.5])) == [1, 2]

    def test_query_point(self, spatial_index):
        assert spatial_index.query_point((0.5, 5.5, 2.0)) == [3]
        assert spatial_index.query_point((3.0, 3.0, 3.0)) == []

    def test_nearest(self, spatial_index):
        assert spatial_index.nearest((7.0, 0.5, 0.5)) == [2]
