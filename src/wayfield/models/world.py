"""
World and streaming configuration models.
"""

import math

from pydantic import BaseModel, ConfigDict, Field, model_validator

from wayfield.models.grid import (
    CHUNK_CELLS_X,
    CHUNK_CELLS_Y,
    CHUNK_HEIGHT,
    CHUNK_WIDTH,
    Bounds,
    GridCell,
    TerrainChunkId,
)


class WorldConfig(BaseModel):
    """
    Immutable simulation parameters, fixed at world creation.

    Attributes:
        map_width: Map width in world units
        map_height: Map height in world units
        chunks_x: Number of chunk columns
        chunks_y: Number of chunk rows
        seed: World seed
    """

    model_config = ConfigDict(frozen=True)

    map_width: float = Field(gt=0)
    map_height: float = Field(gt=0)
    chunks_x: int = Field(gt=0)
    chunks_y: int = Field(gt=0)
    seed: int = 0

    @classmethod
    def from_map_size(cls, map_width: float, map_height: float, seed: int = 0) -> "WorldConfig":
        """Derive the chunk grid from the map dimensions."""
        return cls(
            map_width=map_width,
            map_height=map_height,
            chunks_x=max(1, math.ceil(map_width / CHUNK_WIDTH)),
            chunks_y=max(1, math.ceil(map_height / CHUNK_HEIGHT)),
            seed=seed,
        )

    @classmethod
    def from_chunk_grid(cls, chunks_x: int, chunks_y: int, seed: int = 0) -> "WorldConfig":
        """Build a world exactly covering a chunk grid."""
        return cls(
            map_width=chunks_x * CHUNK_WIDTH,
            map_height=chunks_y * CHUNK_HEIGHT,
            chunks_x=chunks_x,
            chunks_y=chunks_y,
            seed=seed,
        )

    @property
    def columns(self) -> int:
        """Number of cell columns in the world."""
        return self.chunks_x * CHUNK_CELLS_X

    @property
    def rows(self) -> int:
        """Number of cell rows in the world."""
        return self.chunks_y * CHUNK_CELLS_Y

    @property
    def bounds(self) -> Bounds:
        """World-space bounds of the chunk grid."""
        return 0.0, 0.0, self.chunks_x * CHUNK_WIDTH, self.chunks_y * CHUNK_HEIGHT

    def contains_chunk(self, chunk_id: TerrainChunkId) -> bool:
        """Whether the chunk lies inside the world."""
        return 0 <= chunk_id.x < self.chunks_x and 0 <= chunk_id.y < self.chunks_y

    def contains_cell(self, cell: GridCell) -> bool:
        """Whether the cell lies inside the world."""
        return 0 <= cell.col < self.columns and 0 <= cell.row < self.rows


class StreamingConfig(BaseModel):
    """
    Per-connection streaming parameters.

    Attributes:
        view_radius: Chunk radius streamed around the client
        unload_distance: Chunk distance beyond which chunks are unload-eligible
        request_cooldown: Minimum seconds between accepted requests
        last_request: Timestamp of the last accepted request
    """

    model_config = ConfigDict(validate_assignment=True)

    view_radius: int = Field(default=2, ge=0)
    unload_distance: int = Field(default=3, ge=0)
    request_cooldown: float = Field(default=0.5, ge=0.0)
    last_request: float = -math.inf

    @model_validator(mode="after")
    def _check_unload_distance(self) -> "StreamingConfig":
        if self.unload_distance < self.view_radius:
            raise ValueError(
                f"unload_distance ({self.unload_distance}) must be >= "
                f"view_radius ({self.view_radius})"
            )
        return self
