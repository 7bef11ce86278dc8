"""
Signed distance field generation.

Rasterizes road splines and junctions into per-chunk distance fields and
schedules that work on a worker pool.
"""

from wayfield.core.sdf.generator import (
    ChunkSnapshot,
    SdfGenerator,
    polyline_distance,
    smooth_min,
)
from wayfield.core.sdf.scheduler import ChunkScheduler

__all__ = [
    "ChunkSnapshot",
    "SdfGenerator",
    "polyline_distance",
    "smooth_min",
    "ChunkScheduler",
]
