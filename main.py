"""
Точка входа: конвертация модели (JSON-манифест + STL) во фрагменты.

Использование:
    python main.py <manifest> [--output OUTPUT] [--config CONFIG]

Пример:
    python main.py "office.json" --output "office.fragments.json"
    python main.py "office.json" --stl-dir out/stl --edges   # + STL и рёбра
    python main.py "office.json" --config project.fragments.json --log-json log.json
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

# Обеспечить поддержку Unicode на Windows-консоли
if sys.stdout.encoding and sys.stdout.encoding.lower() not in ('utf-8', 'utf8'):
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')
if sys.stderr.encoding and sys.stderr.encoding.lower() not in ('utf-8', 'utf8'):
    sys.stderr.reconfigure(encoding='utf-8', errors='replace')

from ifc_fragments.conversion.converter import SpatialStructureError
from ifc_fragments.io.mesh_io import (
    ManifestError,
    MeshLoadError,
    save_fragment_stl,
    write_model_summary,
)
from ifc_fragments.loader import FragmentLoader
from ifc_fragments.logging_config import setup_logging
from ifc_fragments.project_config import ProjectConfig, load_config
from ifc_fragments.transforms.units import UnknownUnitError

logger = logging.getLogger("ifc_fragments.cli")


# ---------------------------------------------------------------------------
# Пайплайн
# ---------------------------------------------------------------------------

def run_pipeline(
    manifest_path: str,
    output_path: Optional[str] = None,
    config: Optional[ProjectConfig] = None,
    stl_dir: Optional[str] = None,
    edges: Optional[bool] = None,
) -> Dict[str, Any]:
    """Полный пайплайн: манифест → FragmentGroup → JSON-сводка (+ STL).

    Шаги:
      1. Загрузка манифеста и STL-геометрии.
      2. Классификация элементов, слияние, ограничивающие объёмы.
      3. Рёбра экземпляров (опционально).
      4. Запись сводки и STL фрагментов.

    Args:
        manifest_path: путь к JSON-манифесту модели.
        output_path: путь к выходной сводке (по умолчанию из конфига).
        config: конфигурация проекта (по умолчанию встроенная).
        stl_dir: каталог для STL фрагментов (опционально).
        edges: строить рёбра (по умолчанию из конфига).

    Returns:
        Сводка модели (то же, что записано в JSON).

    Raises:
        ManifestError, MeshLoadError: при ошибках входных данных.
    """
    config = config or ProjectConfig()
    out_dir = Path(config.output.output_dir) if config.output.output_dir else Path(".")
    output = Path(output_path) if output_path else out_dir / config.output.summary
    if stl_dir is None and config.output.export_stl:
        stl_dir = str(out_dir / "stl")
    build_edges = config.edges.enabled if edges is None else edges

    loader = FragmentLoader.from_config(config)
    group = loader.load_file(manifest_path)
    try:
        extra: Dict[str, Any] = {}
        if build_edges:
            edge_sets = loader.generate_edges(group)
            extra['edges'] = {
                e.fragment_id: {'segments': e.segment_count, 'instances': e.instance_count}
                for e in edge_sets
            }

        output.parent.mkdir(parents=True, exist_ok=True)
        write_model_summary(group, output, extra=extra)

        if stl_dir:
            target = Path(stl_dir)
            target.mkdir(parents=True, exist_ok=True)
            for fragment in group.fragments:
                save_fragment_stl(fragment, target / f"{fragment.id}.stl")

        logger.info(
            "Готово: %d фрагментов, %d замечаний → %s",
            len(group.fragments), len(group.issues), output,
        )
        summary = group.to_dict()
        summary.update(extra)
        return summary
    finally:
        group.dispose()
        loader.dispose()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Конвертация модели здания во фрагменты для WebGL.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "manifest",
        help="Путь к JSON-манифесту модели.",
    )
    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Путь к выходной JSON-сводке (по умолчанию: из конфига, fragments.json).",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Путь к конфигурационному файлу .fragments.json.",
    )
    parser.add_argument(
        "--stl-dir",
        default=None,
        dest="stl_dir",
        help="Каталог для STL-файлов фрагментов.",
    )
    parser.add_argument(
        "--edges",
        action="store_true",
        default=None,
        help="Построить рёбра экземпляров и добавить их статистику.",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Подробный вывод (DEBUG).",
    )
    parser.add_argument(
        "--log-json",
        default=None,
        dest="log_json",
        help="Дополнительно писать журнал в JSON-файл.",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_file=args.log_json,
    )

    config = load_config(
        manifest_path=args.manifest,
        explicit_config=args.config,
    )

    try:
        run_pipeline(
            args.manifest,
            args.output,
            config=config,
            stl_dir=args.stl_dir,
            edges=args.edges,
        )
    except (ManifestError, MeshLoadError) as exc:
        logger.critical("Ошибка загрузки модели: %s", exc)
        sys.exit(1)
    except (SpatialStructureError, UnknownUnitError, KeyError, ValueError) as exc:
        logger.critical("Ошибка данных или конфигурации: %s", exc)
        sys.exit(1)
    except Exception as exc:
        logger.critical("Неожиданная ошибка: %s", exc, exc_info=True)
        sys.exit(2)


if __name__ == "__main__":
    main()
