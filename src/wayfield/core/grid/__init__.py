"""
Grid coordinate system.

Pure conversions between world positions, hex-derived grid cells and
terrain chunk ids.
"""

from wayfield.core.grid.coordinates import (
    bounds_intersect,
    cell_to_world,
    cells_in_bounds,
    chunk_of,
    chunks_overlapping_bounds,
    chunks_within_radius,
    cube_round,
    expand_bounds,
    hex_distance,
    union_bounds,
    world_to_cell,
    world_to_chunk,
)

__all__ = [
    "bounds_intersect",
    "cell_to_world",
    "cells_in_bounds",
    "chunk_of",
    "chunks_overlapping_bounds",
    "chunks_within_radius",
    "cube_round",
    "expand_bounds",
    "hex_distance",
    "union_bounds",
    "world_to_cell",
    "world_to_chunk",
]
