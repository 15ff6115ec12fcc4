"""
Data model shared between the particle filter and its collaborators.

Particles are owned by the filter. Landmark observations are exchanged with
the perception front-end (vehicle frame) and produced internally for the
map-frame predictions; the two usages share one type. The map is a
read-only world model.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np


@dataclass
class Particle:
    """
    One pose hypothesis.

    Attributes
    ----------
    id : int
        Index of the particle at initialization. Copied, not renumbered,
        on resampling.
    x, y : float
        Position in the map frame (m).
    theta : float
        Heading (rad). Not normalized.
    weight : float
        Unnormalized relative likelihood, >= 0.
    associations : list of int
        Landmark ids matched to the observations (diagnostics only).
    sense_x, sense_y : list of float
        Map-frame coordinates of the matched observations, parallel to
        ``associations``.
    """

    id: int
    x: float
    y: float
    theta: float
    weight: float = 1.0
    associations: List[int] = field(default_factory=list)
    sense_x: List[float] = field(default_factory=list)
    sense_y: List[float] = field(default_factory=list)


@dataclass
class LandmarkObs:
    """
    A landmark position, either observed or predicted.

    ``id`` is ``None`` for raw detections and for observations the data
    association could not match to any landmark.
    """

    id: Optional[int]
    x: float
    y: float


@dataclass(frozen=True)
class Landmark:
    """Map landmark with float32 coordinates."""

    id: int
    x: float
    y: float

    def __post_init__(self):
        object.__setattr__(self, "x", float(np.float32(self.x)))
        object.__setattr__(self, "y", float(np.float32(self.y)))


@dataclass(frozen=True)
class Map:
    """
    Ordered, read-only collection of landmarks.

    Examples
    --------
    >>> m = Map.from_array([[1, 92.064, -34.777], [2, 61.109, -47.132]])
    >>> len(m)
    2
    >>> m.landmark_list[0].id
    1
    """

    landmark_list: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "landmark_list", tuple(self.landmark_list))

    def __len__(self):
        return len(self.landmark_list)

    def __iter__(self):
        return iter(self.landmark_list)

    @classmethod
    def from_array(cls, data):
        """
        Build a map from an array of rows ``[id, x, y]``.

        Raises
        ------
        ValueError
            If the array is not two-dimensional with three columns.
        """
        data = np.asarray(data, dtype=float)
        if data.size == 0:
            return cls(())
        if data.ndim == 1:
            data = data.reshape(1, -1)
        if data.ndim != 2 or data.shape[1] != 3:
            raise ValueError(
                f"Map data must have shape (N, 3) with rows [id, x, y], got {data.shape}"
            )
        return cls(tuple(Landmark(int(row[0]), row[1], row[2]) for row in data))

    @property
    def ids(self):
        """Landmark ids as an int array."""
        return np.array([lm.id for lm in self.landmark_list], dtype=int)

    @property
    def positions(self):
        """Landmark positions as an (N, 2) float array."""
        if not self.landmark_list:
            return np.zeros((0, 2))
        return np.array([[lm.x, lm.y] for lm in self.landmark_list], dtype=float)
