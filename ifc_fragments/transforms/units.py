"""
Length-unit normalization of instance transforms.

The model declares one length unit (an SI unit with an optional prefix,
or a conversion-based unit such as FOOT). Every instance transform is
pre-multiplied once by the matching uniform scale, optionally followed by
the model's coordination transform.

apply() is NOT idempotent: normalizing a transform twice scales it twice.
Callers track which transforms they have already normalized.
"""

import logging
from typing import Optional

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

# SI prefixes as written in IFC (IfcSIPrefix)
SI_PREFIXES = {
    "EXA": 1e18,
    "PETA": 1e15,
    "TERA": 1e12,
    "GIGA": 1e9,
    "MEGA": 1e6,
    "KILO": 1e3,
    "HECTO": 1e2,
    "DECA": 1e1,
    "DECI": 1e-1,
    "CENTI": 1e-2,
    "MILLI": 1e-3,
    "MICRO": 1e-6,
    "NANO": 1e-9,
    "PICO": 1e-12,
}

# Conversion-based length units, in metres
CONVERSION_UNITS = {
    "METRE": 1.0,
    "METER": 1.0,
    "FOOT": 0.3048,
    "INCH": 0.0254,
    "YARD": 0.9144,
    "MILE": 1609.344,
}


class UnknownUnitError(ValueError):
    """Declared length unit or prefix is not recognized."""


def length_unit_factor(name: Optional[str], prefix: Optional[str] = None) -> float:
    """Metres per declared length unit.

    Args:
        name: unit name ("METRE", "FOOT", ...); None means metres.
        prefix: SI prefix ("MILLI", ...), or None.

    Raises:
        UnknownUnitError: for unrecognized names or prefixes.
    """
    if not name:
        return 1.0
    key = name.strip().upper().replace("'", "")
    if key not in CONVERSION_UNITS:
        raise UnknownUnitError(f"Unknown length unit: {name!r}")
    factor = CONVERSION_UNITS[key]

    if prefix:
        prefix_key = prefix.strip().upper()
        if prefix_key not in SI_PREFIXES:
            raise UnknownUnitError(f"Unknown SI prefix: {prefix!r}")
        factor *= SI_PREFIXES[prefix_key]
    return factor


class UnitNormalizer:
    """Composes instance transforms with the model's unit scale.

    Attributes:
        factor: uniform scale from model units to metres.
        transform: 4x4 applied after the unit scale (identity unless the
            coordination transform is baked into instances).
    """

    def __init__(
        self,
        factor: float = 1.0,
        transform: Optional[NDArray[np.float64]] = None,
    ) -> None:
        if factor <= 0:
            raise ValueError(f"Unit factor must be positive, got {factor}")
        self.factor = float(factor)
        self.transform = np.eye(4) if transform is None else np.asarray(transform, dtype=np.float64)
        if self.transform.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4, got {self.transform.shape}")
        self._matrix = self.transform @ self.scale_matrix()

    @classmethod
    def from_length_unit(
        cls,
        name: Optional[str],
        prefix: Optional[str] = None,
        transform: Optional[NDArray[np.float64]] = None,
    ) -> 'UnitNormalizer':
        """Build a normalizer for a declared IFC length unit."""
        factor = length_unit_factor(name, prefix)
        logger.info(
            "Length unit: %s%s (factor %g)",
            f"{prefix} " if prefix else "", name or "METRE", factor,
        )
        return cls(factor=factor, transform=transform)

    def scale_matrix(self) -> NDArray[np.float64]:
        """Uniform scale matrix (w untouched)."""
        matrix = np.eye(4) * self.factor
        matrix[3, 3] = 1.0
        return matrix

    def apply(self, matrix: NDArray[np.float64]) -> NDArray[np.float64]:
        """Normalize `matrix` in place and return it.

        The matrix must be a writable float array of shape (4, 4).
        """
        if matrix.shape != (4, 4):
            raise ValueError(f"Transform must be 4x4, got {matrix.shape}")
        matrix[...] = self._matrix @ matrix
        return matrix
