"""Host-side vector utilities for positions and directions.

Positions (vertices, box corners) and directions (ray directions, normals,
box extents) are both plain NumPy ``float64`` arrays of shape ``(3,)``.
The helpers here are the vector algebra the bounding box, ray and kd-tree
code share outside of Taichi kernels.

Example:
    >>> from kdray.core.vector import vec3, cross, normalize
    >>> normalize(cross(vec3(1, 0, 0), vec3(0, 1, 0)))
    array([0., 0., 1.])
"""

from __future__ import annotations

from typing import Iterable

import numpy as np
import numpy.typing as npt

from kdray.core.errors import InvalidInputError

# Type aliases for 3D vectors. Both are float64 arrays of shape (3,).
Position = npt.NDArray[np.float64]
Direction = npt.NDArray[np.float64]

# Squared length under which a vector is treated as zero when normalizing.
ZERO_LENGTH_SQUARED = 1e-300


def vec3(x: float, y: float, z: float) -> npt.NDArray[np.float64]:
    """Create a 3D vector."""
    return np.array([x, y, z], dtype=np.float64)


def as_vec3(value: Iterable[float] | npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Convert a 3-sequence to a float64 vector.

    Args:
        value: Any array-like with exactly three components.

    Returns:
        A new float64 array of shape (3,).

    Raises:
        InvalidInputError: If the input does not have exactly three components.
    """
    arr = np.asarray(value, dtype=np.float64).reshape(-1)
    if arr.shape != (3,):
        raise InvalidInputError(f"Expected 3 components, got shape {arr.shape}")
    return arr.copy()


def dot(a: npt.NDArray[np.float64], b: npt.NDArray[np.float64]) -> float:
    """Compute the dot product a . b."""
    return float(a[0] * b[0] + a[1] * b[1] + a[2] * b[2])


def cross(a: npt.NDArray[np.float64], b: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Compute the cross product a x b."""
    return np.array(
        [
            a[1] * b[2] - a[2] * b[1],
            a[2] * b[0] - a[0] * b[2],
            a[0] * b[1] - a[1] * b[0],
        ],
        dtype=np.float64,
    )


def length_squared(v: npt.NDArray[np.float64]) -> float:
    """Compute the squared Euclidean length of a vector."""
    return dot(v, v)


def length(v: npt.NDArray[np.float64]) -> float:
    """Compute the Euclidean length of a vector."""
    return float(np.sqrt(length_squared(v)))


def normalize(v: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Normalize a vector to unit length.

    Args:
        v: The input vector.

    Returns:
        A unit vector in the same direction as v.
        If v is (numerically) zero-length, returns a zero vector instead of
        dividing by zero.
    """
    len_sq = length_squared(v)
    if len_sq <= ZERO_LENGTH_SQUARED:
        return np.zeros(3, dtype=np.float64)
    return np.asarray(v, dtype=np.float64) / np.sqrt(len_sq)


def vabs(v: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
    """Component-wise absolute value."""
    return np.abs(np.asarray(v, dtype=np.float64))


def component_min(
    a: npt.NDArray[np.float64], b: npt.NDArray[np.float64]
) -> npt.NDArray[np.float64]:
    """Component-wise minimum of two vectors."""
    return np.minimum(a, b)


def component_max(
    a: npt.NDArray[np.float64], b: npt.NDArray[np.float64]
) -> npt.NDArray[np.float64]:
    """Component-wise maximum of two vectors."""
    return np.maximum(a, b)
