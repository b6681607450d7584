"""
Geometry consolidation: turning parsed elements into fragments.

Every logical element (one shape with one or more occurrences) is either
kept as GPU instances or merged into a shared per-(category, floor) buffer:

- repeated elements stay instanced (one draw call for all copies);
- elements of an "always instanced" category stay instanced, so they can
  be toggled individually;
- single elements with boolean-subtracted voids stay instanced, so their
  bounding box comes from their own local geometry;
- everything else is merged.

Merged geometry is accumulated per (category, floor) and material while
the element stream is read, and turned into fragments in a second pass
(process_all_unique_items). Each produced item gets an approximate
oriented bounding box, filed as opaque or as transparent/voided.

Lifecycle of a converter session:
    converter = FragmentConverter(settings)
    converter.setup(parsed_model)            # populate
    model = converter.generate_fragment_data()  # finalize -> FragmentGroup
    converter.clean_up()                     # dispose session state
"""

import logging
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from ifc_fragments.conversion.settings import ConverterSettings
from ifc_fragments.geometry.buffers import MeshBuffer, merge_buffers
from ifc_fragments.geometry.obb import estimate_oriented_box
from ifc_fragments.logging_config import log_timing, timed
from ifc_fragments.model.categories import IFC_CATEGORY_MAP
from ifc_fragments.model.fragment import BLOCK_ID_ATTRIBUTE, Fragment
from ifc_fragments.model.fragment_group import BoundingEntry, FragmentGroup
from ifc_fragments.model.issues import ConversionIssue, IssueSeverity
from ifc_fragments.model.types import GeometryGroup, Instance, Material, ParsedModel
from ifc_fragments.transforms.decompose import to_elements
from ifc_fragments.transforms.units import UnitNormalizer

logger = logging.getLogger(__name__)

# (category code, floor id)
BucketKey = Tuple[int, int]


class ElementKind(Enum):
    """How an element ends up in the model."""
    INSTANCED = "instanced"
    MERGED = "merged"


class SpatialStructureError(ValueError):
    """Item lacks the category or floor needed to place it in a merge bucket.

    Points at inconsistent spatial-structure data from the parser.
    """

    def __init__(self, item_id: int, missing: str) -> None:
        super().__init__(f"Item {item_id} has no {missing}; cannot merge it")
        self.item_id = item_id
        self.missing = missing


class ConverterStateError(RuntimeError):
    """Converter used outside its setup -> generate lifecycle."""


def classify_element(
    group: GeometryGroup,
    category: Optional[int],
    instanced_categories: Set[int],
) -> ElementKind:
    """Decide whether an element is instanced or merged.

    Instanced when it occurs more than once, when its category is always
    instanced, or when its single occurrence has voids.
    """
    is_unique = len(group.instances) == 1
    is_instanced = category in instanced_categories
    has_voids = is_unique and group.instances[0].voids
    if not is_unique or is_instanced or has_voids:
        return ElementKind.INSTANCED
    return ElementKind.MERGED


class FragmentConverter:
    """Builds a FragmentGroup from a parsed model.

    Attributes:
        settings: conversion policy.
        issues: data-quality issues found in the current session.
    """

    def __init__(self, settings: Optional[ConverterSettings] = None) -> None:
        self.settings = settings or ConverterSettings()
        self.issues: List[ConversionIssue] = []

        self._model: Optional[ParsedModel] = None
        self._units = UnitNormalizer()
        self._fragments: List[Fragment] = []
        self._unique_items: Dict[BucketKey, Dict[str, List[MeshBuffer]]] = {}
        self._bounding_boxes: Dict[int, BoundingEntry] = {}
        self._transparent_bounding_boxes: Dict[int, BoundingEntry] = {}
        self._normalized: Dict[int, np.ndarray] = {}
        self._default_materials: Dict[str, Material] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def setup(self, model: ParsedModel) -> None:
        """Attach the parsed model and derive the unit normalizer from it."""
        self.reset()
        self._model = model
        coordination = model.coordination_matrix if self.settings.apply_coordination else None
        self._units = UnitNormalizer.from_length_unit(
            model.length_unit, model.length_prefix, transform=coordination,
        )

    def reset(self) -> None:
        """Forget per-model results (fragments, buckets, bounding maps)."""
        self._fragments = []
        self._unique_items = {}
        self._bounding_boxes = {}
        self._transparent_bounding_boxes = {}
        self._normalized = {}
        self._default_materials = {}
        self.issues = []

    def clean_up(self) -> None:
        """Drop the whole session, including the parsed model tables."""
        self.reset()
        self._model = None
        self._units = UnitNormalizer()

    def generate_fragment_data(self) -> FragmentGroup:
        """Run both consolidation passes and assemble the output model.

        Ownership of every produced fragment passes to the returned
        FragmentGroup; the converter keeps no reference to them.

        Raises:
            ConverterStateError: if setup() was not called.
            SpatialStructureError: in strict mode, for items that cannot
                be merged.
        """
        model = self._require_model()
        with log_timing(logger, "Fragment conversion", logging.INFO,
                        elements=len(model.items)) as info:
            self.process_all_fragments_data()
            self.process_all_unique_items()
            group = self._save_model_data()
            info["fragments"] = len(group.fragments)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Voxel grid: %s", group.voxel_grid_shape(), extra={
                "voxel_size": self.settings.voxel_size,
            })
        self.reset()
        return group

    def _require_model(self) -> ParsedModel:
        if self._model is None:
            raise ConverterStateError("setup() must be called before converting")
        return self._model

    # ------------------------------------------------------------------
    # First pass: per element
    # ------------------------------------------------------------------

    def process_all_fragments_data(self) -> None:
        """Classify every element of the stream and emit or bucket it."""
        model = self._require_model()
        for group in model.items:
            try:
                self.classify_and_emit(group)
            except SpatialStructureError as exc:
                self._report("MISSING_SPATIAL_DATA", IssueSeverity.ERROR, str(exc), exc.item_id)
                if self.settings.strict_spatial_data:
                    raise

    def classify_and_emit(self, group: GeometryGroup) -> List[Fragment]:
        """Process one element.

        Returns:
            The fragment emitted for an instanced element, or an empty list
            (merged elements only reach a fragment in the second pass).

        Raises:
            SpatialStructureError: merged element without category or floor.
        """
        model = self._require_model()
        if not group.instances:
            self._report("NO_INSTANCES", IssueSeverity.WARNING,
                         "Geometry group has no instances; skipped")
            return []

        category = model.item_categories.get(group.key)
        kind = classify_element(group, category, self.settings.instanced_categories)
        logger.debug("Element %s: %s", group.key, kind.value, extra={
            "instances": len(group.instances), "category": category,
        })

        if kind is ElementKind.INSTANCED:
            fragment = self._process_instanced_items(group)
            return [fragment] if fragment is not None else []

        self._process_merged_items(group)
        return []

    def _process_instanced_items(self, group: GeometryGroup) -> Optional[Fragment]:
        material_ids = group.non_empty_materials()
        if not material_ids:
            self._report("EMPTY_GEOMETRY", IssueSeverity.WARNING,
                         "Element has no geometry; no fragment emitted", group.key)
            return None

        fragment = self._create_instanced_fragment(group, material_ids)
        self._set_fragment_instances(group, fragment)
        self._fragments.append(fragment)

        has_voids = group.is_unique and group.instances[0].voids
        is_transparent = any(material.transparent for material in fragment.materials)

        # Box of the shared local geometry, carried to each occurrence
        base = estimate_oriented_box(fragment.geometry)
        for i in range(fragment.count):
            helper = fragment.get_instance(i) @ base
            item_id = fragment.get_item_id(i, 0)
            self._file_bounding_entry(item_id, to_elements(helper), is_transparent or has_voids)
        return fragment

    def _create_instanced_fragment(self, group: GeometryGroup, material_ids: List[str]) -> Fragment:
        geometries = [group.geometries_by_material[mat_id] for mat_id in material_ids]
        merged = merge_buffers(geometries)
        materials = [self._get_material(mat_id, group.key) for mat_id in material_ids]
        return Fragment(merged, materials, len(group.instances))

    def _set_fragment_instances(self, group: GeometryGroup, fragment: Fragment) -> None:
        for i, instance in enumerate(group.instances):
            matrix = self._normalize(instance)
            fragment.set_instance(i, [instance.id], matrix)

    def _process_merged_items(self, group: GeometryGroup) -> None:
        model = self._require_model()
        instance = group.instances[0]
        category = model.item_categories.get(instance.id)
        floor = model.items_by_floor.get(instance.id)
        if category is None:
            raise SpatialStructureError(instance.id, "category")
        if floor is None:
            raise SpatialStructureError(instance.id, "floor")

        material_ids = group.non_empty_materials()
        if not material_ids:
            self._report("EMPTY_GEOMETRY", IssueSeverity.WARNING,
                         "Element has no geometry; nothing to merge", instance.id)
            return

        matrix = self._normalize(instance)
        bucket = self._unique_items.setdefault((category, floor), {})
        for mat_id in material_ids:
            self._get_material(mat_id, instance.id)
            geometries = bucket.setdefault(mat_id, [])
            for geometry in group.geometries_by_material[mat_id]:
                geometries.append(geometry.transformed(matrix, item_id=instance.id))

    # ------------------------------------------------------------------
    # Second pass: merge buckets
    # ------------------------------------------------------------------

    @timed(level=logging.DEBUG)
    def process_all_unique_items(self) -> List[Fragment]:
        """Turn every (category, floor) bucket into one merged fragment.

        Buckets are consumed: a second call emits nothing.
        """
        emitted = []
        for (category, floor), by_material in self._unique_items.items():
            emitted.append(self._process_unique_item(category, floor, by_material))
        self._unique_items = {}
        return emitted

    def _process_unique_item(
        self,
        category: int,
        floor: int,
        by_material: Dict[str, List[MeshBuffer]],
    ) -> Fragment:
        material_ids = list(by_material)
        geometries = [by_material[mat_id] for mat_id in material_ids]
        block_ids, item_ids = self._process_ids_and_buffer(geometries)

        # Each item's box comes from its own buffers only
        items: Dict[int, List[MeshBuffer]] = {}
        for geometry_group in geometries:
            for geometry in geometry_group:
                items.setdefault(geometry.item_id, []).append(geometry)
        for item_id, buffers in items.items():
            helper = estimate_oriented_box(buffers)
            self._file_bounding_entry(item_id, to_elements(helper), transparent=False)

        merged = merge_buffers(geometries)
        merged.attributes[BLOCK_ID_ATTRIBUTE] = block_ids
        materials = [self._get_material(mat_id) for mat_id in material_ids]

        fragment = Fragment(merged, materials, 1)
        fragment.category = category
        fragment.floor = floor
        fragment.set_instance(0, item_ids, np.eye(4))
        self._fragments.append(fragment)

        logger.debug("Merged bucket", extra={
            "category": category, "floor": floor,
            "items": len(item_ids), "vertices": merged.vertex_count,
        })
        return fragment

    @staticmethod
    def _process_ids_and_buffer(
        geometries: List[List[MeshBuffer]],
    ) -> Tuple[np.ndarray, List[int]]:
        """Build the per-vertex block-ID buffer of a bucket.

        Block ids are a dense 0-based renumbering of item ids in the order
        they are first met; the returned id list is in block order.
        """
        size = sum(g.vertex_count for group in geometries for g in group)
        buffer = np.zeros(size, dtype=np.uint32)
        blocks: Dict[int, int] = {}
        offset = 0
        for group in geometries:
            for geometry in group:
                block = blocks.setdefault(geometry.item_id, len(blocks))
                buffer[offset:offset + geometry.vertex_count] = block
                offset += geometry.vertex_count
        return buffer, list(blocks)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _normalize(self, instance: Instance) -> np.ndarray:
        """Unit-normalized copy of an instance transform, computed once per session.

        The parsed model is never modified, so the same model can be
        converted again.
        """
        matrix = self._normalized.get(id(instance))
        if matrix is None:
            matrix = self._units.apply(instance.matrix.copy())
            self._normalized[id(instance)] = matrix
        return matrix

    def _file_bounding_entry(self, item_id: int, elements: BoundingEntry, transparent: bool) -> None:
        target, other = (
            (self._transparent_bounding_boxes, self._bounding_boxes) if transparent
            else (self._bounding_boxes, self._transparent_bounding_boxes)
        )
        if item_id in other:
            self._report("DUPLICATE_ITEM", IssueSeverity.WARNING,
                         "Item already filed in the other bounding map; kept there", item_id)
            return
        target[item_id] = elements

    def _get_material(self, mat_id: str, item_id: Optional[int] = None) -> Material:
        model = self._require_model()
        material = model.materials.get(mat_id) or self._default_materials.get(mat_id)
        if material is None:
            self._report("UNKNOWN_MATERIAL", IssueSeverity.WARNING,
                         f"Material {mat_id!r} is not in the material table; using default",
                         item_id)
            material = self._default_materials[mat_id] = Material(id=mat_id)
        return material

    def _report(
        self,
        code: str,
        severity: IssueSeverity,
        message: str,
        item_id: Optional[int] = None,
    ) -> None:
        issue = ConversionIssue(code=code, severity=severity, message=message, item_id=item_id)
        self.issues.append(issue)
        level = logging.ERROR if severity is IssueSeverity.ERROR else logging.WARNING
        logger.log(level, "%s", issue, extra={"code": code, "item_id": item_id})

    def _save_model_data(self) -> FragmentGroup:
        model = self._require_model()
        return FragmentGroup.assemble(
            fragments=self._fragments,
            bounding_boxes=self._bounding_boxes,
            transparent_bounding_boxes=self._transparent_bounding_boxes,
            level_relationships=model.items_by_floor,
            floors_properties=model.floor_properties,
            all_types=IFC_CATEGORY_MAP,
            item_types=model.item_categories,
            coordination_matrix=model.coordination_matrix,
            issues=self.issues,
            voxel_size=self.settings.voxel_size,
        )
