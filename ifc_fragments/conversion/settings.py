"""Settings consumed by FragmentConverter."""

from dataclasses import dataclass, field
from typing import Set

from ifc_fragments.config import DEFAULT_INSTANCED_CATEGORIES, DEFAULT_VOXEL_SIZE


@dataclass
class ConverterSettings:
    """Conversion policy.

    Attributes:
        instanced_categories: IFC type codes that are always instanced.
        voxel_size: voxel edge length for the model's voxel grid.
        strict_spatial_data: raise on items without category or floor
            instead of recording an issue and skipping them.
        apply_coordination: bake the coordination matrix into every
            instance transform (otherwise it is only recorded on the model).
    """
    instanced_categories: Set[int] = field(
        default_factory=lambda: set(DEFAULT_INSTANCED_CATEGORIES)
    )
    voxel_size: float = DEFAULT_VOXEL_SIZE
    strict_spatial_data: bool = False
    apply_coordination: bool = False

    def __post_init__(self) -> None:
        if self.voxel_size <= 0:
            raise ValueError(f"voxel_size must be positive, got {self.voxel_size}")
