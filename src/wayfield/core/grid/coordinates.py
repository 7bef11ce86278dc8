"""
Conversions between world positions, grid cells and chunk ids.

All functions here are pure. World positions map to cells by rounding in
cube coordinates after undoing the vertical squash of the hex layout; cells
map to chunks by floor division.
"""

import math
from typing import Iterable, List, Optional, Tuple

from wayfield.models.grid import (
    CELL_HEIGHT,
    CELL_WIDTH,
    CHUNK_HEIGHT,
    CHUNK_WIDTH,
    HEX_RATIO_Y,
    HEX_SIZE,
    Bounds,
    GridCell,
    TerrainChunkId,
)
from wayfield.models.world import WorldConfig


def cube_round(q: float, r: float) -> Tuple[int, int]:
    """
    Round fractional axial coordinates to the nearest hex.

    Args:
        q: Fractional axial q
        r: Fractional axial r

    Returns:
        Integer axial (q, r)
    """
    s = -q - r
    rq, rr, rs = round(q), round(r), round(s)
    dq, dr, ds = abs(rq - q), abs(rr - r), abs(rs - s)

    if dq > dr and dq > ds:
        rq = -rr - rs
    elif dr > ds:
        rr = -rq - rs
    return int(rq), int(rr)


def world_to_cell(x: float, y: float) -> GridCell:
    """
    Grid cell whose hexagon contains a world position.

    Args:
        x: World X
        y: World Y

    Returns:
        Containing grid cell
    """
    # Undo the vertical squash so the regular flat-top formulas apply
    y_regular = y / HEX_RATIO_Y
    q = (2.0 / 3.0 * x) / HEX_SIZE
    r = (-1.0 / 3.0 * x + math.sqrt(3.0) / 3.0 * y_regular) / HEX_SIZE
    aq, ar = cube_round(q, r)
    return GridCell.from_cube(aq, ar)


def cell_to_world(cell: GridCell) -> Tuple[float, float]:
    """World position of a cell center."""
    return cell.center()


def chunk_of(cell: GridCell) -> TerrainChunkId:
    """
    Chunk containing a cell.

    Every cell maps to exactly one chunk, so chunk cell ranges never overlap.
    """
    return cell.chunk()


def world_to_chunk(x: float, y: float) -> TerrainChunkId:
    """Chunk containing the cell under a world position."""
    return chunk_of(world_to_cell(x, y))


def hex_distance(a: GridCell, b: GridCell) -> int:
    """Number of neighbor steps between two cells."""
    return a.distance_to(b)


def expand_bounds(bounds: Bounds, margin: float) -> Bounds:
    """Grow bounds by a margin on every side."""
    min_x, min_y, max_x, max_y = bounds
    return min_x - margin, min_y - margin, max_x + margin, max_y + margin


def union_bounds(bounds_list: Iterable[Optional[Bounds]]) -> Optional[Bounds]:
    """
    Smallest bounds covering all given bounds.

    Args:
        bounds_list: Bounds to merge; None entries are skipped

    Returns:
        Merged bounds, or None if nothing was given
    """
    result: Optional[Bounds] = None
    for b in bounds_list:
        if b is None:
            continue
        if result is None:
            result = b
        else:
            result = (
                min(result[0], b[0]),
                min(result[1], b[1]),
                max(result[2], b[2]),
                max(result[3], b[3]),
            )
    return result


def bounds_intersect(a: Bounds, b: Bounds) -> bool:
    """Whether two closed bounds overlap."""
    return a[0] <= b[2] and b[0] <= a[2] and a[1] <= b[3] and b[1] <= a[3]


def chunks_overlapping_bounds(
    bounds: Bounds, world: Optional[WorldConfig] = None
) -> List[TerrainChunkId]:
    """
    Chunk ids whose world bounds overlap a region.

    Args:
        bounds: Region as (min_x, min_y, max_x, max_y)
        world: When given, results are clipped to the world's chunk grid

    Returns:
        Chunk ids sorted row-major
    """
    min_x, min_y, max_x, max_y = bounds
    x0 = int(math.floor(min_x / CHUNK_WIDTH))
    y0 = int(math.floor(min_y / CHUNK_HEIGHT))
    x1 = int(math.floor(max_x / CHUNK_WIDTH))
    y1 = int(math.floor(max_y / CHUNK_HEIGHT))

    if world is not None:
        x0, y0 = max(x0, 0), max(y0, 0)
        x1, y1 = min(x1, world.chunks_x - 1), min(y1, world.chunks_y - 1)

    return [TerrainChunkId(x, y) for y in range(y0, y1 + 1) for x in range(x0, x1 + 1)]


def chunks_within_radius(
    center: TerrainChunkId, radius: int, world: Optional[WorldConfig] = None
) -> List[TerrainChunkId]:
    """
    Chunk ids within a Chebyshev chunk distance of a center chunk.

    Args:
        center: Center chunk
        radius: View radius in chunks
        world: When given, chunks outside the world are dropped

    Returns:
        Chunk ids ordered nearest first, ties broken row-major
    """
    chunks = [
        TerrainChunkId(center.x + dx, center.y + dy)
        for dy in range(-radius, radius + 1)
        for dx in range(-radius, radius + 1)
    ]
    if world is not None:
        chunks = [c for c in chunks if world.contains_chunk(c)]
    chunks.sort(key=lambda c: (center.chebyshev_distance(c), c.y, c.x))
    return chunks


def cells_in_bounds(bounds: Bounds, world: Optional[WorldConfig] = None) -> List[GridCell]:
    """
    Cells whose centers lie inside a region.

    Args:
        bounds: Region as (min_x, min_y, max_x, max_y), inclusive
        world: When given, cells outside the world are dropped

    Returns:
        Cells sorted by (col, row)
    """
    min_x, min_y, max_x, max_y = bounds
    col0 = int(math.ceil(min_x / CELL_WIDTH))
    col1 = int(math.floor(max_x / CELL_WIDTH))

    cells: List[GridCell] = []
    for col in range(col0, col1 + 1):
        offset = CELL_HEIGHT / 2.0 if col & 1 else 0.0
        row0 = int(math.ceil((min_y - offset) / CELL_HEIGHT))
        row1 = int(math.floor((max_y - offset) / CELL_HEIGHT))
        for row in range(row0, row1 + 1):
            cell = GridCell(col, row)
            if world is None or world.contains_cell(cell):
                cells.append(cell)
    return cells
