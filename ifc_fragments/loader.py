"""
FragmentLoader: one call from parsed model (or manifest) to FragmentGroup.

Owns a FragmentConverter and runs its full session for every model:
setup, consolidation, assembly, clean-up. Optionally builds instanced
edge lines for the resulting fragments.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ifc_fragments.conversion.converter import FragmentConverter
from ifc_fragments.conversion.settings import ConverterSettings
from ifc_fragments.edges.instanced_edges import EdgeSet, InstancedEdges
from ifc_fragments.io.mesh_io import load_manifest
from ifc_fragments.logging_config import LogContext, log_timing
from ifc_fragments.model.fragment import Fragment
from ifc_fragments.model.fragment_group import FragmentGroup
from ifc_fragments.model.types import ParsedModel
from ifc_fragments.project_config import ProjectConfig

logger = logging.getLogger(__name__)


class FragmentLoader:
    """Converts parsed models into fragment groups.

    Attributes:
        settings: converter settings used for every load.
        edges: instanced edge registry shared by all loaded models.
    """

    def __init__(
        self,
        settings: Optional[ConverterSettings] = None,
        edges: Optional[InstancedEdges] = None,
    ) -> None:
        self.settings = settings or ConverterSettings()
        self.edges = edges or InstancedEdges()
        self._converter = FragmentConverter(self.settings)

    @classmethod
    def from_config(cls, config: ProjectConfig) -> 'FragmentLoader':
        edges = InstancedEdges(
            threshold=config.edges.threshold_deg,
            color=config.edges.color_value(),
        )
        return cls(settings=config.to_settings(), edges=edges)

    def load(self, model: ParsedModel) -> FragmentGroup:
        """Convert a parsed model; the converter is cleaned up afterwards."""
        with LogContext(model=model.name):
            self._converter.setup(model)
            try:
                return self._converter.generate_fragment_data()
            finally:
                self._converter.clean_up()

    def load_file(self, manifest_path: Union[str, Path]) -> FragmentGroup:
        """Read a JSON manifest and convert it.

        Raises:
            ManifestError: malformed manifest.
            MeshLoadError: unreadable geometry file.
        """
        return self.load(load_manifest(manifest_path))

    def generate_edges(
        self,
        group: FragmentGroup,
        fragments: Optional[Sequence[Fragment]] = None,
        max_workers: Optional[int] = None,
    ) -> List[EdgeSet]:
        """Build edge sets in parallel.

        Args:
            group: converted model.
            fragments: subset to process; all instanced fragments by default.
            max_workers: thread pool size (executor default when None).

        Returns:
            Edge sets in the order of `fragments`.
        """
        targets = list(fragments) if fragments is not None else group.instanced_fragments
        with log_timing(logger, "Edge generation", fragments=len(targets)) as info:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                edge_sets = list(executor.map(self.edges.generate, targets))
            info["segments"] = sum(e.segment_count for e in edge_sets)
        return edge_sets

    def dispose(self) -> None:
        self.edges.dispose()
        self._converter.clean_up()
