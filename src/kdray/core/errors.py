"""Exceptions raised while building and querying a spatial index."""


class KdRayError(Exception):
    """Base class for all kdray errors."""


class InvalidInputError(KdRayError, ValueError):
    """Raised when geometry handed to the index is unusable.

    Covers empty point sets, arrays of the wrong shape, non-finite
    coordinates, out-of-range triangle indices and zero-length ray
    directions.
    """


class SplitOutOfRangeError(KdRayError, ValueError):
    """Raised when a box is split at a coordinate outside its extent.

    Attributes:
        axis: The axis the split was requested on.
        coordinate: The requested split coordinate.
        lower: The box minimum on that axis.
        upper: The box maximum on that axis.
    """

    def __init__(self, axis: int, coordinate: float, lower: float, upper: float) -> None:
        self.axis = axis
        self.coordinate = coordinate
        self.lower = lower
        self.upper = upper
        super().__init__(
            f"Split coordinate {coordinate!r} outside [{lower!r}, {upper!r}] on axis {axis}"
        )
