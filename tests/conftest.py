"""
Pytest configuration and fixtures for ifc_fragments.

Provides:
- Mesh buffer fixtures (unit cube, boxes)
- Geometry group and parsed model factories
- STL file and manifest fixtures
"""

import json
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import pytest
from stl import mesh as stl_mesh

from ifc_fragments.geometry.buffers import MeshBuffer
from ifc_fragments.model.categories import IFCDOOR, IFCSLAB, IFCWALL, IFCWINDOW
from ifc_fragments.model.types import GeometryGroup, Instance, Material, ParsedModel

# Cube corners and outward-facing triangles, reused by the STL writer
CUBE_VERTICES = np.array([
    [0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],  # bottom
    [0, 0, 1], [1, 0, 1], [1, 1, 1], [0, 1, 1],  # top
], dtype=np.float64)

CUBE_FACES = np.array([
    [0, 2, 1], [0, 3, 2],  # bottom
    [4, 5, 6], [4, 6, 7],  # top
    [0, 1, 5], [0, 5, 4],  # front
    [2, 3, 7], [2, 7, 6],  # back
    [0, 4, 7], [0, 7, 3],  # left
    [1, 2, 6], [1, 6, 5],  # right
])


# ============================================================================
# Geometry Fixtures
# ============================================================================

def box_buffer(size: Sequence[float] = (1.0, 1.0, 1.0),
               origin: Sequence[float] = (0.0, 0.0, 0.0)) -> MeshBuffer:
    """Indexed axis-aligned box with its min corner at `origin`."""
    positions = CUBE_VERTICES * np.asarray(size) + np.asarray(origin)
    return MeshBuffer(positions=positions, index=CUBE_FACES.ravel())


def translation(x: float, y: float, z: float) -> np.ndarray:
    matrix = np.eye(4)
    matrix[:3, 3] = (x, y, z)
    return matrix


@pytest.fixture
def cube_buffer() -> MeshBuffer:
    """Unit cube [0, 1]^3: 8 vertices, 12 triangles."""
    return box_buffer()


@pytest.fixture
def make_box() -> Callable[..., MeshBuffer]:
    return box_buffer


@pytest.fixture
def make_translation() -> Callable[..., np.ndarray]:
    return translation


@pytest.fixture
def make_group() -> Callable[..., GeometryGroup]:
    """Factory: GeometryGroup from ids, optional matrices and per-material buffers."""

    def _make(
        ids: Sequence[int],
        geometries: Optional[Dict[str, List[MeshBuffer]]] = None,
        matrices: Optional[Sequence[np.ndarray]] = None,
        voids: bool = False,
    ) -> GeometryGroup:
        matrices = matrices or [np.eye(4) for _ in ids]
        instances = [
            Instance(id=item_id, matrix=np.array(matrix, dtype=np.float64), voids=voids)
            for item_id, matrix in zip(ids, matrices)
        ]
        if geometries is None:
            geometries = {"concrete": [box_buffer()]}
        return GeometryGroup(instances=instances, geometries_by_material=geometries)

    return _make


@pytest.fixture
def materials() -> Dict[str, Material]:
    return {
        "concrete": Material(id="concrete", color=(0.7, 0.7, 0.7)),
        "wood": Material(id="wood", color=(0.6, 0.4, 0.2)),
        "glass": Material(id="glass", color=(0.5, 0.8, 1.0), opacity=0.3),
    }


@pytest.fixture
def sample_model(make_group, materials) -> ParsedModel:
    """Small building: two merged walls and a slab, a door, a repeated
    chair, a voided wall and a glass window.

    Items:
        1, 2: walls on floor 100 (merged, same bucket)
        3:    slab on floor 200 (merged, own bucket)
        10:   door (always instanced)
        20, 21: chair placed twice (instanced)
        30:   wall with an opening (instanced because of voids)
        40:   window with glass (always instanced, transparent)
    """
    items = [
        make_group([1], {"concrete": [box_buffer((4.0, 0.2, 3.0))]}),
        make_group([2], {"concrete": [box_buffer((0.2, 4.0, 3.0), origin=(5.0, 0.0, 0.0))]}),
        make_group([3], {"concrete": [box_buffer((10.0, 10.0, 0.3))]}),
        make_group([10], {"wood": [box_buffer((0.9, 0.05, 2.1))]},
                   matrices=[translation(1.0, 0.0, 0.0)]),
        make_group([20, 21], {"wood": [box_buffer((0.5, 0.5, 1.0))]},
                   matrices=[translation(2.0, 2.0, 0.0), translation(3.0, 2.0, 0.0)]),
        make_group([30], {"concrete": [box_buffer((4.0, 0.2, 3.0))]},
                   matrices=[translation(0.0, 6.0, 0.0)], voids=True),
        make_group([40], {"glass": [box_buffer((1.2, 0.02, 1.5))]},
                   matrices=[translation(0.0, 8.0, 1.0)]),
    ]
    return ParsedModel(
        items=items,
        materials=dict(materials),
        item_categories={
            1: IFCWALL, 2: IFCWALL, 3: IFCSLAB, 10: IFCDOOR,
            20: 263784265, 21: 263784265, 30: IFCWALL, 40: IFCWINDOW,
        },
        items_by_floor={1: 100, 2: 100, 3: 200, 10: 100, 20: 100, 21: 100, 30: 100, 40: 100},
        floor_properties={100: {"name": "Level 1", "elevation": 0.0},
                          200: {"name": "Level 2", "elevation": 3.0}},
        name="sample",
    )


# ============================================================================
# File Fixtures
# ============================================================================

def write_box_stl(path: Path, size: Sequence[float] = (1.0, 1.0, 1.0), binary: bool = True) -> Path:
    """Write an axis-aligned box STL file."""
    vertices = CUBE_VERTICES * np.asarray(size)
    triangles = vertices[CUBE_FACES]
    m = stl_mesh.Mesh(np.zeros(len(triangles), dtype=stl_mesh.Mesh.dtype))
    for i, tri in enumerate(triangles):
        m.vectors[i] = tri

    if binary:
        m.save(str(path))
    else:
        with open(str(path), 'w') as f:
            f.write("solid box\n")
            for tri in triangles:
                normal = np.cross(tri[1] - tri[0], tri[2] - tri[0])
                normal = normal / np.linalg.norm(normal)
                f.write(f"  facet normal {normal[0]} {normal[1]} {normal[2]}\n")
                f.write("    outer loop\n")
                for v in tri:
                    f.write(f"      vertex {v[0]} {v[1]} {v[2]}\n")
                f.write("    endloop\n")
                f.write("  endfacet\n")
            f.write("endsolid box\n")
    return path


@pytest.fixture
def cube_stl_path(tmp_path: Path) -> Path:
    return write_box_stl(tmp_path / "cube.stl")


@pytest.fixture
def ascii_cube_stl_path(tmp_path: Path) -> Path:
    return write_box_stl(tmp_path / "ascii_cube.stl", binary=False)


@pytest.fixture
def empty_stl_path(tmp_path: Path) -> Path:
    """STL with 0 triangles for error testing."""
    path = tmp_path / "empty.stl"
    m = stl_mesh.Mesh(np.zeros(0, dtype=stl_mesh.Mesh.dtype))
    m.save(str(path))
    return path


def _flat(matrix: np.ndarray) -> List[float]:
    return np.asarray(matrix).flatten(order="F").tolist()


@pytest.fixture
def manifest_path(tmp_path: Path) -> Path:
    """Manifest in millimetres: two merged walls, a repeated chair, a door.

    Geometry files: wall.stl (4000 x 200 x 3000 mm), chair.stl (500 mm cube).
    """
    write_box_stl(tmp_path / "wall.stl", size=(4000.0, 200.0, 3000.0))
    write_box_stl(tmp_path / "chair.stl", size=(500.0, 500.0, 500.0))

    data = {
        "name": "office",
        "length_unit": "METRE",
        "length_prefix": "MILLI",
        "materials": [
            {"id": "concrete", "color": [0.7, 0.7, 0.7]},
            {"id": "wood", "color": [0.6, 0.4, 0.2], "opacity": 1.0},
        ],
        "categories": {"1": "IFCWALL", "2": "IFCWALL", "10": "IFCDOOR",
                       "20": 263784265, "21": 263784265},
        "floors": {"1": 100, "2": 100, "10": 100, "20": 100, "21": 100},
        "floor_properties": {"100": {"name": "Ground floor", "elevation": 0.0}},
        "elements": [
            {"instances": [{"id": 1}], "geometries": {"concrete": ["wall.stl"]}},
            {"instances": [{"id": 2, "matrix": _flat(translation(0.0, 5000.0, 0.0))}],
             "geometries": {"concrete": ["wall.stl"]}},
            {"instances": [{"id": 10, "matrix": _flat(translation(1000.0, 0.0, 0.0))}],
             "geometries": {"wood": ["chair.stl"]}},
            {"instances": [
                {"id": 20, "matrix": _flat(translation(2000.0, 2000.0, 0.0))},
                {"id": 21, "matrix": _flat(translation(3000.0, 2000.0, 0.0))},
            ], "geometries": {"wood": ["chair.stl"]}},
        ],
    }
    path = tmp_path / "office.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path
