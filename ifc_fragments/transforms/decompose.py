"""
Decomposition of instance transforms into translation, rotation and scale.

Instance transforms coming from the model are affine TRS matrices without
shear. Under shear, scale and rotation alias and no exact decomposition
exists; decompose_matrix() then returns the nearest rotation (after the
column norms are divided out), and check_shear=True turns the condition
into an error instead.

Precision: float64 throughout. A column scale below MIN_AXIS_SCALE counts
as a collapsed axis and contributes an identity rotation.

Conventions:
- matrices act on column vectors (p' = M @ p), translation in column 3;
- quaternions are scalar-last (x, y, z, w), as scipy and the edge shader
  use them.
"""

import logging
from typing import Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.transform import Rotation

from ifc_fragments.config import MIN_AXIS_SCALE, SHEAR_TOLERANCE

logger = logging.getLogger(__name__)


class ShearedTransformError(ValueError):
    """Transform has non-orthogonal basis columns and cannot be decomposed."""


def shear_magnitude(matrix: NDArray[np.float64]) -> float:
    """Largest |cos| between two basis columns of the linear part (0 = no shear)."""
    linear = np.asarray(matrix, dtype=np.float64)[:3, :3]
    norms = np.linalg.norm(linear, axis=0)
    if np.any(norms < MIN_AXIS_SCALE):
        return 0.0
    unit = linear / norms
    gram = unit.T @ unit
    return float(np.max(np.abs(gram - np.diag(np.diag(gram)))))


def decompose_matrix(
    matrix: NDArray[np.float64],
    check_shear: bool = False,
) -> Tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Split a 4x4 transform into translation, unit quaternion and scale.

    A negative determinant is folded into the X scale, the same way the
    scene graph decomposes mirrored matrices.

    Args:
        matrix: (4, 4) affine transform.
        check_shear: raise ShearedTransformError for sheared input.

    Returns:
        (translation (3,), quaternion (4,) as x, y, z, w, scale (3,))

    Raises:
        ShearedTransformError: with check_shear=True and shear above
            SHEAR_TOLERANCE.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4, got {matrix.shape}")

    if check_shear:
        shear = shear_magnitude(matrix)
        if shear > SHEAR_TOLERANCE:
            raise ShearedTransformError(
                f"Transform is sheared (max |cos| between axes = {shear:.2e})"
            )

    translation = matrix[:3, 3].copy()
    linear = matrix[:3, :3]
    scale = np.linalg.norm(linear, axis=0)
    if np.linalg.det(linear) < 0:
        scale[0] = -scale[0]

    if np.any(np.abs(scale) < MIN_AXIS_SCALE):
        quaternion = np.array([0.0, 0.0, 0.0, 1.0])
    else:
        # Rotation.from_matrix projects onto the nearest proper rotation,
        # which orthonormalizes residual numerical noise.
        rotation = linear / scale
        quaternion = Rotation.from_matrix(rotation).as_quat()

    return translation, quaternion, scale


def compose_matrix(
    translation: Sequence[float],
    quaternion: Sequence[float],
    scale: Sequence[float],
) -> NDArray[np.float64]:
    """Inverse of decompose_matrix: build T @ R @ S."""
    matrix = np.eye(4)
    rotation = Rotation.from_quat(np.asarray(quaternion, dtype=np.float64)).as_matrix()
    matrix[:3, :3] = rotation * np.asarray(scale, dtype=np.float64)
    matrix[:3, 3] = np.asarray(translation, dtype=np.float64)
    return matrix


def apply_trs(
    points: NDArray[np.float64],
    translation: Sequence[float],
    quaternion: Sequence[float],
    scale: Sequence[float],
) -> NDArray[np.float64]:
    """Transform points the way the instanced-edge vertex shader does.

    p *= S; p += 2 * cross(q.xyz, cross(q.xyz, p) + q.w * p); p += T
    """
    p = np.asarray(points, dtype=np.float64).reshape(-1, 3) * np.asarray(scale, dtype=np.float64)
    q = np.asarray(quaternion, dtype=np.float64)
    qv, qw = q[:3], q[3]
    p = p + 2.0 * np.cross(qv, np.cross(qv, p) + qw * p)
    return p + np.asarray(translation, dtype=np.float64)


def to_elements(matrix: NDArray[np.float64]) -> Tuple[float, ...]:
    """16 numbers of a transform in column-major order (scene-graph layout)."""
    return tuple(float(v) for v in np.asarray(matrix, dtype=np.float64).flatten(order="F"))


def from_elements(elements: Sequence[float]) -> NDArray[np.float64]:
    """Inverse of to_elements."""
    values = np.asarray(elements, dtype=np.float64)
    if values.size != 16:
        raise ValueError(f"Expected 16 matrix elements, got {values.size}")
    return values.reshape(4, 4, order="F")
