"""
Road network generation.

This module turns authored road segments into derived geometry:
- Chaikin-smoothed splines with importance-derived widths
- Junctions resolved from crossings and near-touches
- An id-indexed network arena with a spatial index
"""

from wayfield.core.roads.index import SplineIndex
from wayfield.core.roads.intersection import (
    Intersection,
    IntersectionResolver,
    JunctionCandidate,
    JunctionType,
)
from wayfield.core.roads.network import (
    NetworkChange,
    NetworkSnapshot,
    PendingEdit,
    RoadNetwork,
)
from wayfield.core.roads.spline import Spline, SplineBuilder

__all__ = [
    "SplineIndex",
    "Intersection",
    "IntersectionResolver",
    "JunctionCandidate",
    "JunctionType",
    "NetworkChange",
    "NetworkSnapshot",
    "PendingEdit",
    "RoadNetwork",
    "Spline",
    "SplineBuilder",
]
