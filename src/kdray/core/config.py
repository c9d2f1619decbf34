"""Construction settings and logging setup.

Example:
    >>> from kdray.core.config import KdTreeConfig, setup_logging
    >>> setup_logging("DEBUG")
    >>> config = KdTreeConfig(leaf_size=4, strict=False)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

# A node holding fewer points than this becomes a leaf.
LEAF_SIZE = 10

# Hard recursion guard; the degenerate-median fallback normally stops far earlier.
MAX_DEPTH = 64

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_handler: logging.Handler | None = None


@dataclass(frozen=True)
class KdTreeConfig:
    """Settings for kd-tree construction.

    Attributes:
        leaf_size: Nodes with fewer points than this are not split further.
        strict: If True, a split outside the node's box aborts construction
            with SplitOutOfRangeError. If False the error is logged and the
            node becomes a leaf.
        max_depth: Depth at which a node is forced to be a leaf.
    """

    leaf_size: int = LEAF_SIZE
    strict: bool = True
    max_depth: int = MAX_DEPTH

    def __post_init__(self) -> None:
        if self.leaf_size < 1:
            raise ValueError(f"leaf_size must be at least 1, got {self.leaf_size}")
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, got {self.max_depth}")


DEFAULT_CONFIG = KdTreeConfig()


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach a console handler to the package logger.

    Calling this more than once only updates the level.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Returns:
        The ``kdray`` logger.
    """
    global _handler

    logger = logging.getLogger("kdray")
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(log_level)

    if _handler is None:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(_handler)
    _handler.setLevel(log_level)

    return logger
