"""
JSON-based project configuration for ifc_fragments.

Allows overriding default configuration values through:
1. .fragments.json file in the current directory
2. .fragments.json file in the manifest's directory
3. Explicit config file path via CLI

Configuration hierarchy (later overrides earlier):
1. Built-in defaults (config.py)
2. User config (~/.fragments.json)
3. Project config (./.fragments.json)
4. CLI arguments

Example .fragments.json:
{
    "conversion": {
        "instanced_categories": ["IFCDOOR", "IFCWINDOW", "IFCFURNISHINGELEMENT"],
        "voxel_size": 0.5,
        "strict_spatial_data": false,
        "apply_coordination": false
    },
    "edges": {
        "enabled": true,
        "threshold_deg": 60.0,
        "color": "#555555"
    },
    "output": {
        "summary": "model.fragments.json",
        "export_stl": false,
        "output_dir": "out"
    }
}
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ifc_fragments.config import (
    DEFAULT_EDGE_COLOR,
    DEFAULT_EDGE_THRESHOLD_DEG,
    DEFAULT_INSTANCED_CATEGORIES,
    DEFAULT_VOXEL_SIZE,
)
from ifc_fragments.conversion.settings import ConverterSettings
from ifc_fragments.model.categories import category_codes

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILENAME = ".fragments.json"


@dataclass
class ConversionConfig:
    """Geometry consolidation policy."""
    # IFC type names or numeric codes
    instanced_categories: List[Union[int, str]] = field(
        default_factory=lambda: sorted(DEFAULT_INSTANCED_CATEGORIES)
    )
    voxel_size: float = DEFAULT_VOXEL_SIZE
    strict_spatial_data: bool = False
    apply_coordination: bool = False


@dataclass
class EdgesConfig:
    """Instanced edge lines."""
    enabled: bool = False
    threshold_deg: float = DEFAULT_EDGE_THRESHOLD_DEG
    color: Union[int, str] = DEFAULT_EDGE_COLOR  # 0xRRGGBB or "#rrggbb"

    def color_value(self) -> int:
        """Color as an integer, accepting "#rrggbb" strings."""
        if isinstance(self.color, str):
            return int(self.color.lstrip("#"), 16)
        return int(self.color)


@dataclass
class OutputConfig:
    """Output file configuration."""
    summary: str = "fragments.json"
    export_stl: bool = False
    output_dir: str = ""


@dataclass
class ProjectConfig:
    """Complete project configuration."""
    conversion: ConversionConfig = field(default_factory=ConversionConfig)
    edges: EdgesConfig = field(default_factory=EdgesConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        """Convert configuration to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def save(self, path: Union[str, Path]) -> None:
        """Save configuration to JSON file.

        Args:
            path: Output file path
        """
        path = Path(path)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.to_json())
        logger.info("Configuration saved to %s", path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectConfig':
        """Create configuration from dictionary.

        Unknown sections and keys are ignored.

        Args:
            data: Configuration dictionary

        Returns:
            ProjectConfig instance
        """
        config = cls()
        for section_name in ('conversion', 'edges', 'output'):
            section = getattr(config, section_name)
            for key, value in data.get(section_name, {}).items():
                if hasattr(section, key):
                    setattr(section, key, value)
                elif not key.startswith('_'):
                    logger.warning("Unknown config key: %s.%s", section_name, key)
        return config

    @classmethod
    def from_json(cls, json_str: str) -> 'ProjectConfig':
        """Create configuration from JSON string.

        Args:
            json_str: JSON configuration string

        Returns:
            ProjectConfig instance
        """
        data = json.loads(json_str)
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'ProjectConfig':
        """Load configuration from JSON file.

        Args:
            path: Input file path

        Returns:
            ProjectConfig instance

        Raises:
            FileNotFoundError: If file doesn't exist
            json.JSONDecodeError: If file is not valid JSON
        """
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        logger.info("Configuration loaded from %s", path)
        return cls.from_dict(data)

    def to_settings(self) -> ConverterSettings:
        """Converter settings described by the conversion section.

        Raises:
            KeyError: for an unknown IFC type name in instanced_categories.
            ValueError: for a non-positive voxel_size.
        """
        conversion = self.conversion
        return ConverterSettings(
            instanced_categories=category_codes(conversion.instanced_categories),
            voxel_size=float(conversion.voxel_size),
            strict_spatial_data=bool(conversion.strict_spatial_data),
            apply_coordination=bool(conversion.apply_coordination),
        )


def find_config_file(
    manifest_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """Find configuration file using search hierarchy.

    Search order:
    1. Explicit config path (if provided)
    2. .fragments.json in the manifest's directory
    3. .fragments.json in current working directory
    4. ~/.fragments.json in user's home directory

    Args:
        manifest_path: Path to the model manifest being processed
        explicit_config: Explicitly specified config path

    Returns:
        Path to config file if found, None otherwise
    """
    if explicit_config:
        explicit = Path(explicit_config)
        if explicit.exists():
            return explicit
        logger.warning("Explicit config not found: %s", explicit)

    if manifest_path:
        manifest_config = Path(manifest_path).parent / CONFIG_FILENAME
        if manifest_config.exists():
            return manifest_config

    cwd_config = Path.cwd() / CONFIG_FILENAME
    if cwd_config.exists():
        return cwd_config

    home_config = Path.home() / CONFIG_FILENAME
    if home_config.exists():
        return home_config

    return None


def load_config(
    manifest_path: Optional[Union[str, Path]] = None,
    explicit_config: Optional[Union[str, Path]] = None,
) -> ProjectConfig:
    """Load configuration with fallback to defaults.

    Args:
        manifest_path: Path to the model manifest being processed
        explicit_config: Explicitly specified config path

    Returns:
        ProjectConfig instance (defaults if no config file found)
    """
    config_path = find_config_file(manifest_path, explicit_config)

    if config_path:
        try:
            return ProjectConfig.load(config_path)
        except (json.JSONDecodeError, IOError) as e:
            logger.error("Failed to load config %s: %s", config_path, e)

    return ProjectConfig()
