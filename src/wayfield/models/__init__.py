"""
Data models and schemas.
"""

from .grid import (
    BIOME_MOVEMENT_COSTS,
    CELL_HEIGHT,
    CELL_WIDTH,
    CHUNK_CELLS_X,
    CHUNK_CELLS_Y,
    CHUNK_HEIGHT,
    CHUNK_WIDTH,
    HEX_RATIO_Y,
    HEX_SIZE,
    BiomeType,
    Bounds,
    CellData,
    GridCell,
    TerrainChunkId,
)
from .road import MAX_IMPORTANCE, Point2D, RoadCategory, RoadSegmentData, RoadType
from .sdf import INTERSECTION_FLAG, TRACK_FLAG, TerrainChunkSdfData, encode_metadata
from .world import StreamingConfig, WorldConfig

__all__ = [
    # Grid
    "BIOME_MOVEMENT_COSTS",
    "CELL_HEIGHT",
    "CELL_WIDTH",
    "CHUNK_CELLS_X",
    "CHUNK_CELLS_Y",
    "CHUNK_HEIGHT",
    "CHUNK_WIDTH",
    "HEX_RATIO_Y",
    "HEX_SIZE",
    "BiomeType",
    "Bounds",
    "CellData",
    "GridCell",
    "TerrainChunkId",
    # Roads
    "MAX_IMPORTANCE",
    "Point2D",
    "RoadCategory",
    "RoadSegmentData",
    "RoadType",
    # Distance fields
    "INTERSECTION_FLAG",
    "TRACK_FLAG",
    "TerrainChunkSdfData",
    "encode_metadata",
    # World
    "StreamingConfig",
    "WorldConfig",
]
