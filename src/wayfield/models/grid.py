"""
Grid and chunk data models.

This module defines the value types used as lookup keys across the world
pipeline: hex-derived grid cells, rectangular terrain chunks, biomes and the
derived per-cell record.

The grid uses flat-top hexagons in "odd-q" offset layout: odd columns are
shifted down by half a row. Chunks are fixed-size blocks of cells, so the
cell -> chunk mapping is a plain floor division.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

# Hexagon geometry (world units)
HEX_SIZE: float = 24.0
HEX_RATIO_Y: float = 0.866

CELL_WIDTH: float = 1.5 * HEX_SIZE
CELL_HEIGHT: float = math.sqrt(3.0) * HEX_SIZE * HEX_RATIO_Y

# Chunk size in cells
CHUNK_CELLS_X: int = 16
CHUNK_CELLS_Y: int = 16

CHUNK_WIDTH: float = CELL_WIDTH * CHUNK_CELLS_X
CHUNK_HEIGHT: float = CELL_HEIGHT * CHUNK_CELLS_Y

Bounds = Tuple[float, float, float, float]

# Neighbor offsets (dcol, drow) for even and odd columns
_EVEN_COLUMN_OFFSETS: Tuple[Tuple[int, int], ...] = (
    (1, 0),
    (1, -1),
    (0, -1),
    (-1, -1),
    (-1, 0),
    (0, 1),
)
_ODD_COLUMN_OFFSETS: Tuple[Tuple[int, int], ...] = (
    (1, 1),
    (1, 0),
    (0, -1),
    (-1, 0),
    (-1, 1),
    (0, 1),
)


@dataclass(frozen=True, order=True)
class GridCell:
    """
    A cell of the world grid in offset (column, row) coordinates.

    Attributes:
        col: Column index
        row: Row index
    """

    col: int
    row: int

    def to_cube(self) -> Tuple[int, int, int]:
        """
        Convert offset coordinates to cube coordinates.

        Returns:
            (q, r, s) cube coordinates with q + r + s == 0
        """
        q = self.col
        r = self.row - (self.col - (self.col & 1)) // 2
        return q, r, -q - r

    @classmethod
    def from_cube(cls, q: int, r: int) -> "GridCell":
        """Build a cell from axial/cube coordinates."""
        return cls(col=q, row=r + (q - (q & 1)) // 2)

    def neighbors(self) -> List["GridCell"]:
        """
        Get the six adjacent cells.

        Returns:
            List of neighboring cells in a fixed order
        """
        offsets = _ODD_COLUMN_OFFSETS if self.col & 1 else _EVEN_COLUMN_OFFSETS
        return [GridCell(self.col + dc, self.row + dr) for dc, dr in offsets]

    def distance_to(self, other: "GridCell") -> int:
        """
        Hex distance (number of steps) to another cell.

        Args:
            other: Target cell

        Returns:
            Minimum number of neighbor steps between the two cells
        """
        q1, r1, s1 = self.to_cube()
        q2, r2, s2 = other.to_cube()
        return (abs(q1 - q2) + abs(r1 - r2) + abs(s1 - s2)) // 2

    def center(self) -> Tuple[float, float]:
        """World position of the cell center."""
        x = self.col * CELL_WIDTH
        y = self.row * CELL_HEIGHT
        if self.col & 1:
            y += CELL_HEIGHT / 2.0
        return x, y

    def chunk(self) -> "TerrainChunkId":
        """Chunk containing this cell."""
        return TerrainChunkId(self.col // CHUNK_CELLS_X, self.row // CHUNK_CELLS_Y)


@dataclass(frozen=True, order=True)
class TerrainChunkId:
    """
    Identifier of a rectangular chunk of the world plane.

    Attributes:
        x: Chunk column
        y: Chunk row
    """

    x: int
    y: int

    @classmethod
    def from_world_pos(cls, x: float, y: float) -> "TerrainChunkId":
        """Chunk containing a world position."""
        return cls(int(math.floor(x / CHUNK_WIDTH)), int(math.floor(y / CHUNK_HEIGHT)))

    def bounds(self) -> Bounds:
        """
        World-space bounds of the chunk.

        Returns:
            (min_x, min_y, max_x, max_y)
        """
        min_x = self.x * CHUNK_WIDTH
        min_y = self.y * CHUNK_HEIGHT
        return min_x, min_y, min_x + CHUNK_WIDTH, min_y + CHUNK_HEIGHT

    def cell_range(self) -> Tuple[range, range]:
        """Column and row ranges of the cells inside this chunk."""
        col0 = self.x * CHUNK_CELLS_X
        row0 = self.y * CHUNK_CELLS_Y
        return range(col0, col0 + CHUNK_CELLS_X), range(row0, row0 + CHUNK_CELLS_Y)

    def cells(self) -> List[GridCell]:
        """All cells of the chunk, row-major."""
        cols, rows = self.cell_range()
        return [GridCell(col, row) for row in rows for col in cols]

    def chebyshev_distance(self, other: "TerrainChunkId") -> int:
        """Chunk distance used for view radius checks."""
        return max(abs(self.x - other.x), abs(self.y - other.y))

    def storage_key(self) -> str:
        """Stable string key for logs and persistence."""
        return f"{self.x}:{self.y}"


class BiomeType(str, Enum):
    """Biome classification of a cell."""

    UNDEFINED = "undefined"
    OCEAN = "ocean"
    DEEP_OCEAN = "deep_ocean"
    DESERT = "desert"
    SAVANNA = "savanna"
    GRASSLAND = "grassland"
    TROPICAL_SEASONAL_FOREST = "tropical_seasonal_forest"
    TROPICAL_RAIN_FOREST = "tropical_rain_forest"
    TROPICAL_DECIDUOUS_FOREST = "tropical_deciduous_forest"
    TEMPERATE_RAIN_FOREST = "temperate_rain_forest"
    WETLAND = "wetland"
    TAIGA = "taiga"
    TUNDRA = "tundra"
    LAKE = "lake"
    COLD_DESERT = "cold_desert"
    ICE = "ice"

    @property
    def movement_cost(self) -> Optional[float]:
        """Per-step movement cost, or None when impassable."""
        return BIOME_MOVEMENT_COSTS[self]

    @property
    def is_traversable(self) -> bool:
        """Whether units can walk through this biome."""
        return BIOME_MOVEMENT_COSTS[self] is not None


BIOME_MOVEMENT_COSTS: Dict[BiomeType, Optional[float]] = {
    BiomeType.UNDEFINED: 1.0,
    BiomeType.OCEAN: None,
    BiomeType.DEEP_OCEAN: None,
    BiomeType.DESERT: 2.0,
    BiomeType.SAVANNA: 1.2,
    BiomeType.GRASSLAND: 1.0,
    BiomeType.TROPICAL_SEASONAL_FOREST: 2.0,
    BiomeType.TROPICAL_RAIN_FOREST: 2.5,
    BiomeType.TROPICAL_DECIDUOUS_FOREST: 2.0,
    BiomeType.TEMPERATE_RAIN_FOREST: 2.2,
    BiomeType.WETLAND: 3.0,
    BiomeType.TAIGA: 1.8,
    BiomeType.TUNDRA: 1.5,
    BiomeType.LAKE: None,
    BiomeType.COLD_DESERT: 2.0,
    BiomeType.ICE: None,
}


@dataclass(frozen=True)
class CellData:
    """
    Derived per-cell record.

    Attributes:
        cell: Grid cell
        chunk: Chunk containing the cell
        biome: Biome classification
    """

    cell: GridCell
    chunk: TerrainChunkId
    biome: BiomeType

    @classmethod
    def for_cell(cls, cell: GridCell, biome: BiomeType) -> "CellData":
        """Build the record for a cell, deriving its chunk."""
        return cls(cell=cell, chunk=cell.chunk(), biome=biome)
