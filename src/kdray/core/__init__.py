"""Core module.

This module contains the building blocks shared by the rest of the package:

Components:
    vector: Position/Direction helpers on NumPy arrays
    ray: Ray with precomputed inverse direction, slab and triangle tests
    errors: Error taxonomy for construction and queries
    config: Construction settings and logging setup
"""

from .config import DEFAULT_CONFIG, LEAF_SIZE, KdTreeConfig, setup_logging
from .errors import InvalidInputError, KdRayError, SplitOutOfRangeError
from .ray import Ray
from .vector import (
    Direction,
    Position,
    as_vec3,
    component_max,
    component_min,
    cross,
    dot,
    length,
    length_squared,
    normalize,
    vabs,
    vec3,
)

__all__ = [
    "Ray",
    "Position",
    "Direction",
    "vec3",
    "as_vec3",
    "dot",
    "cross",
    "length",
    "length_squared",
    "normalize",
    "vabs",
    "component_min",
    "component_max",
    "KdRayError",
    "InvalidInputError",
    "SplitOutOfRangeError",
    "KdTreeConfig",
    "DEFAULT_CONFIG",
    "LEAF_SIZE",
    "setup_logging",
]
