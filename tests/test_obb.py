"""
Unit tests for ifc_fragments.geometry.obb module.

Tests:
- Candidate axes and frames
- Boxes of axis-aligned and rotated shapes
- Degenerate and multi-buffer input
"""

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from ifc_fragments.geometry.obb import (
    CANDIDATE_AXES,
    box_corners,
    box_extents,
    candidate_frame,
    degenerate_box,
    estimate_oriented_box,
)


class TestCandidateAxes:
    """Tests for the candidate axis table."""

    def test_fifteen_unit_axes(self):
        assert CANDIDATE_AXES.shape == (15, 3)
        assert np.allclose(np.linalg.norm(CANDIDATE_AXES, axis=1), 1.0)

    def test_table_is_read_only(self):
        with pytest.raises(ValueError):
            CANDIDATE_AXES[0, 0] = 0.0

    def test_first_axis_is_x(self):
        assert np.allclose(CANDIDATE_AXES[0], [1.0, 0.0, 0.0])

    def test_frame_is_orthonormal(self):
        """Every candidate completes to an orthonormal frame."""
        for axis in CANDIDATE_AXES:
            frame = candidate_frame(axis)
            assert np.allclose(frame @ frame.T, np.eye(3), atol=1e-9)

    def test_x_axis_frame(self):
        """a = x, b = x cross up = -y, c = b cross a = z."""
        frame = candidate_frame(np.array([1.0, 0.0, 0.0]))
        assert np.allclose(frame, [[1, 0, 0], [0, -1, 0], [0, 0, 1]])


class TestEstimateOrientedBox:
    """Tests for estimate_oriented_box function."""

    def test_unit_cube(self, cube_buffer):
        """Axis-aligned cube: first candidate wins, centre at 0.5."""
        matrix = estimate_oriented_box(cube_buffer)

        assert np.allclose(matrix[:3, 3], [0.5, 0.5, 0.5])
        assert np.allclose(box_extents(matrix), [1.0, 1.0, 1.0])
        assert np.allclose(matrix[:3, 0], [1.0, 0.0, 0.0])
        assert np.allclose(matrix[3], [0.0, 0.0, 0.0, 1.0])

    def test_box_volume_matches_shape(self, make_box):
        """A box shape gets a box of its own volume."""
        buffer = make_box((4.0, 0.2, 3.0), origin=(1.0, 2.0, 3.0))
        matrix = estimate_oriented_box(buffer)

        assert np.prod(box_extents(matrix)) == pytest.approx(2.4, rel=1e-5)
        assert np.allclose(matrix[:3, 3], [3.0, 2.1, 4.5], atol=1e-5)

    def test_contains_all_vertices(self, make_box):
        """Every vertex lies inside the box (unit-cube coords within +-0.5)."""
        buffer = make_box((2.0, 1.0, 0.5))
        rotation = Rotation.from_euler("z", 30, degrees=True).as_matrix()
        buffer.positions = (buffer.positions @ rotation.T).astype(np.float32)

        matrix = estimate_oriented_box(buffer)
        local = (np.linalg.inv(matrix) @ np.c_[buffer.positions, np.ones(8)].T).T[:, :3]
        assert np.all(np.abs(local) <= 0.5 + 1e-5)

    def test_diagonal_rotation_found(self, make_box):
        """A box rotated 45 degrees about z fits the diagonal candidate exactly."""
        buffer = make_box((2.0, 1.0, 1.0), origin=(-1.0, -0.5, -0.5))
        rotation = Rotation.from_euler("z", 45, degrees=True).as_matrix()
        buffer.positions = (buffer.positions @ rotation.T).astype(np.float32)

        matrix = estimate_oriented_box(buffer)
        assert np.prod(box_extents(matrix)) == pytest.approx(2.0, rel=1e-4)

    def test_multiple_buffers(self, make_box):
        """Buffers are pooled into one box."""
        first = make_box((1.0, 1.0, 1.0))
        second = make_box((1.0, 1.0, 1.0), origin=(3.0, 0.0, 0.0))
        matrix = estimate_oriented_box([first, second])

        assert np.allclose(sorted(box_extents(matrix)), [1.0, 1.0, 4.0], atol=1e-6)
        assert np.allclose(matrix[:3, 3], [2.0, 0.5, 0.5], atol=1e-6)

    def test_raw_points(self):
        """Raw (N, 3) positions are accepted."""
        points = np.array([[x, y, z] for x in (0, 2) for y in (0, 3) for z in (0, 4)], dtype=np.float64)
        matrix = estimate_oriented_box(points)
        corners = box_corners(matrix)
        assert np.allclose(corners.min(axis=0), [0, 0, 0], atol=1e-9)
        assert np.allclose(corners.max(axis=0), [2, 3, 4], atol=1e-9)

    def test_empty_input_is_degenerate(self):
        matrix = estimate_oriented_box([])
        assert np.array_equal(matrix, degenerate_box())
        assert np.allclose(box_extents(matrix), 0.0)

    def test_single_point(self):
        """A single vertex gives a zero-extent box at that vertex."""
        matrix = estimate_oriented_box(np.array([[1.0, 2.0, 3.0]]))
        assert np.allclose(box_extents(matrix), 0.0)
        assert np.allclose(matrix[:3, 3], [1.0, 2.0, 3.0])

    def test_centred_unit_cube_is_tightest(self, make_box):
        """Cube centred at the origin: 1x1x1 box at the origin, no candidate smaller."""
        buffer = make_box((1.0, 1.0, 1.0), origin=(-0.5, -0.5, -0.5))
        matrix = estimate_oriented_box(buffer)

        assert np.allclose(matrix[:3, 3], 0.0, atol=1e-9)
        assert np.allclose(box_extents(matrix), [1.0, 1.0, 1.0])

        volume = np.prod(box_extents(matrix))
        points = buffer.positions.astype(np.float64)
        for axis in CANDIDATE_AXES:
            projected = points @ candidate_frame(axis).T
            candidate_volume = np.prod(projected.max(axis=0) - projected.min(axis=0))
            assert volume <= candidate_volume + 1e-9

    def test_translation_moves_centre_only(self, make_box):
        """Shifting the input shifts the centre; axes and extents are unchanged."""
        rotation = Rotation.from_euler("z", 30, degrees=True).as_matrix()
        points = make_box((2.0, 1.0, 0.5)).positions.astype(np.float64) @ rotation.T
        offset = np.array([5.0, -3.0, 2.0])

        base = estimate_oriented_box(points)
        moved = estimate_oriented_box(points + offset)

        assert np.allclose(moved[:3, :3], base[:3, :3], atol=1e-9)
        assert np.allclose(moved[:3, 3], base[:3, 3] + offset, atol=1e-9)

    def test_vertex_order_irrelevant(self, make_box):
        rotation = Rotation.from_euler("z", 30, degrees=True).as_matrix()
        points = make_box((2.0, 1.0, 0.5)).positions.astype(np.float64) @ rotation.T
        shuffled = points[np.random.default_rng(7).permutation(len(points))]

        assert np.allclose(estimate_oriented_box(points[::-1]), estimate_oriented_box(points), atol=1e-9)
        assert np.allclose(estimate_oriented_box(shuffled), estimate_oriented_box(points), atol=1e-9)

    def test_deterministic(self, make_box):
        buffer = make_box((1.0, 2.0, 3.0))
        assert np.array_equal(estimate_oriented_box(buffer), estimate_oriented_box(buffer))


class TestBoxCorners:
    """Tests for box_corners function."""

    def test_unit_cube_corners(self, cube_buffer):
        corners = box_corners(estimate_oriented_box(cube_buffer))
        assert corners.shape == (8, 3)
        assert np.allclose(corners.min(axis=0), [0, 0, 0])
        assert np.allclose(corners.max(axis=0), [1, 1, 1])
