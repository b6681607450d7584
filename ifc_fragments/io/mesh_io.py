"""
Чтение и запись данных модели на диске.

- STL (бинарный и ASCII, через numpy-stl) -> индексированный MeshBuffer;
- JSON-манифест элементов -> ParsedModel;
- фрагменты -> STL (геометрия в мировых координатах);
- сводка FragmentGroup -> JSON.

Формат манифеста:
{
    "name": "office",
    "length_unit": "METRE",
    "length_prefix": "MILLI",
    "coordination_matrix": [16 чисел по столбцам],
    "materials": [{"id": "concrete", "color": [0.7, 0.7, 0.7], "opacity": 1.0}],
    "categories": {"101": "IFCWALL", "102": 395920057},
    "floors": {"101": 1, "102": 1},
    "floor_properties": {"1": {"name": "Level 1", "elevation": 0.0}},
    "elements": [
        {
            "instances": [{"id": 101, "matrix": [16 чисел], "voids": false}],
            "geometries": {"concrete": ["wall.stl"]}
        }
    ]
}
Пути к STL задаются относительно каталога манифеста.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
from stl import mesh

from ifc_fragments.geometry.buffers import MeshBuffer
from ifc_fragments.model.categories import category_code
from ifc_fragments.model.fragment import Fragment
from ifc_fragments.model.fragment_group import FragmentGroup
from ifc_fragments.model.types import GeometryGroup, Instance, Material, ParsedModel
from ifc_fragments.transforms.decompose import from_elements

logger = logging.getLogger(__name__)

# Знаков после запятой при объединении совпадающих вершин STL
STL_WELD_PRECISION = 6


class MeshLoadError(Exception):
    """Ошибка при загрузке или разборе STL-файла."""


class ManifestError(Exception):
    """Ошибка в структуре или содержимом манифеста модели."""


def load_mesh_buffer(path: Union[str, Path]) -> MeshBuffer:
    """Загрузить STL-файл в индексированный MeshBuffer.

    Совпадающие вершины (после округления до STL_WELD_PRECISION знаков)
    объединяются.

    Raises:
        MeshLoadError: если файл не найден, повреждён или пуст.
    """
    path = Path(path)
    try:
        stl_mesh = mesh.Mesh.from_file(str(path))
    except FileNotFoundError:
        raise MeshLoadError(f"Файл не найден: {str(path)!r}")
    except Exception as exc:
        raise MeshLoadError(f"Не удалось прочитать STL-файл {str(path)!r}: {exc}") from exc

    if len(stl_mesh.vectors) == 0:
        raise MeshLoadError(f"STL-файл {str(path)!r} не содержит треугольников.")

    corners = np.asarray(stl_mesh.vectors, dtype=np.float64).reshape(-1, 3)
    keys = np.round(corners, STL_WELD_PRECISION)
    vertices, inverse = np.unique(keys, axis=0, return_inverse=True)

    buffer = MeshBuffer(
        positions=vertices.astype(np.float32),
        index=inverse.reshape(-1).astype(np.int32),
    )
    logger.debug(
        "Загружено %s: %d вершин, %d граней.",
        path.name, buffer.vertex_count, len(stl_mesh.vectors),
    )
    return buffer


def _world_triangles(fragment: Fragment) -> np.ndarray:
    local = fragment.geometry.triangles().astype(np.float64).reshape(-1, 3)
    parts = []
    for i in range(fragment.count):
        matrix = fragment.get_instance(i)
        parts.append(local @ matrix[:3, :3].T + matrix[:3, 3])
    return np.concatenate(parts).reshape(-1, 3, 3)


def save_fragment_stl(fragment: Fragment, path: Union[str, Path]) -> Path:
    """Записать геометрию фрагмента со всеми экземплярами в бинарный STL.

    Raises:
        ValueError: если фрагмент уже освобождён.
    """
    if fragment.disposed:
        raise ValueError(f"Fragment {fragment.id} is disposed")
    path = Path(path)
    triangles = _world_triangles(fragment)

    data = np.zeros(len(triangles), dtype=mesh.Mesh.dtype)
    data['vectors'] = triangles.astype(np.float32)
    stl_mesh = mesh.Mesh(data)
    stl_mesh.save(str(path))
    logger.info("STL сохранён: %s (%d граней)", path, len(triangles))
    return path


def _int_keys(table: Dict[str, Any]) -> Dict[int, Any]:
    return {int(key): value for key, value in table.items()}


def _parse_material(entry: Dict[str, Any]) -> Material:
    color = tuple(float(c) for c in entry.get("color", (0.8, 0.8, 0.8)))
    if len(color) != 3:
        raise ValueError(f"material {entry.get('id')!r}: color needs 3 components")
    return Material(
        id=str(entry["id"]),
        color=color,
        opacity=float(entry.get("opacity", 1.0)),
        name=str(entry.get("name", "")),
    )


def _parse_element(entry: Dict[str, Any], base_dir: Path, cache: Dict[Path, MeshBuffer]) -> GeometryGroup:
    instances = [
        Instance(
            id=int(inst["id"]),
            matrix=np.asarray(inst.get("matrix", np.eye(4).flatten()), dtype=np.float64),
            voids=bool(inst.get("voids", False)),
        )
        for inst in entry["instances"]
    ]

    geometries: Dict[str, List[MeshBuffer]] = {}
    for mat_id, files in entry.get("geometries", {}).items():
        buffers = []
        for name in files:
            stl_path = (base_dir / name).resolve()
            if stl_path not in cache:
                cache[stl_path] = load_mesh_buffer(stl_path)
            buffers.append(cache[stl_path].copy())
        geometries[str(mat_id)] = buffers
    return GeometryGroup(instances=instances, geometries_by_material=geometries)


def load_manifest(path: Union[str, Path]) -> ParsedModel:
    """Прочитать JSON-манифест элементов в ParsedModel.

    Raises:
        ManifestError: если файл не читается или структура неверна.
        MeshLoadError: если не удаётся загрузить один из STL-файлов.
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ManifestError(f"Манифест не найден: {str(path)!r}")
    except (json.JSONDecodeError, OSError) as exc:
        raise ManifestError(f"Не удалось прочитать манифест {str(path)!r}: {exc}") from exc

    if not isinstance(data, dict):
        raise ManifestError(f"Манифест {str(path)!r}: ожидается JSON-объект")

    cache: Dict[Path, MeshBuffer] = {}
    try:
        materials = [_parse_material(m) for m in data.get("materials", [])]
        coordination = data.get("coordination_matrix")
        model = ParsedModel(
            items=[_parse_element(e, path.parent, cache) for e in data.get("elements", [])],
            materials={m.id: m for m in materials},
            item_categories={
                item_id: category_code(value)
                for item_id, value in _int_keys(data.get("categories", {})).items()
            },
            items_by_floor={k: int(v) for k, v in _int_keys(data.get("floors", {})).items()},
            floor_properties=_int_keys(data.get("floor_properties", {})),
            coordination_matrix=(
                from_elements(coordination) if coordination is not None else np.eye(4)
            ),
            length_unit=data.get("length_unit", "METRE"),
            length_prefix=data.get("length_prefix"),
            name=str(data.get("name", path.stem)),
        )
    except (KeyError, ValueError, TypeError) as exc:
        raise ManifestError(f"Манифест {str(path)!r}: неверная структура: {exc}") from exc

    logger.info(
        "Манифест %s: %d элементов, %d материалов, %d STL-файлов.",
        path.name, len(model.items), len(model.materials), len(cache),
    )
    return model


def write_model_summary(
    group: FragmentGroup,
    path: Union[str, Path],
    extra: Optional[Dict[str, Any]] = None,
) -> Path:
    """Записать сводку модели (без вершинных данных) в JSON.

    Ключи `extra` добавляются к сводке верхнего уровня.
    """
    path = Path(path)
    summary = group.to_dict()
    summary.update(extra or {})
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(summary, f, indent=2, ensure_ascii=False)
    logger.info("Сводка модели сохранена: %s", path)
    return path
