"""
Configuration settings for the Wayfield world server.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    World server settings with environment variable support.

    Attributes:
        sdf_resolution: Pixels per chunk side of generated distance fields
        sdf_margin: World-unit margin gathered around each chunk
        sdf_max_distance: Clamp distance of the distance fields
        morphology_radius: Structuring element radius for mask opening
        double_track_threshold: Lowest importance whose roads get wheel tracks
        track_offset_left: Left track offset from the centerline
        track_offset_right: Right track offset from the centerline
        track_width: Half width of a wheel track
        road_base_width: Width of an importance-0 road
        width_per_importance: Extra width per importance level
        smoothing_rounds: Chaikin rounds applied to road control points
        merge_radius: Distance under which junction candidates merge
        road_cost_factor: Movement cost multiplier on road cells
        generation_workers: SDF worker pool size
        generation_max_attempts: Attempts per chunk before alerting
        disconnect_grace_seconds: How long a disconnected client keeps its chunks
        max_idle_seconds: Optional timer after which silent clients are expired
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="WAYFIELD_",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Optional[str] = None
    log_file: Optional[Path] = None
    json_logs: bool = False

    # SDF generation
    sdf_resolution: int = 128
    sdf_margin: float = 64.0
    sdf_max_distance: float = 48.0
    morphology_radius: int = 1

    # Wheel tracks on high-importance roads
    double_track_threshold: int = 2
    track_offset_left: float = 3.0
    track_offset_right: float = 3.75
    track_width: float = 1.5

    # Road geometry
    road_base_width: float = 24.0
    width_per_importance: float = 8.0
    smoothing_rounds: int = 3
    simplify_tolerance: float = 0.0

    # Junctions
    merge_radius: float = 20.0
    junction_base_radius: float = 18.0
    junction_radius_per_connection: float = 6.0
    fork_angle_threshold: float = 0.4

    # Pathfinding
    road_cost_factor: float = 0.5
    max_expansions: Optional[int] = None

    # Worker pool
    generation_workers: int = 4
    generation_max_attempts: int = 3

    # Persistence
    store_retry_attempts: int = 3
    store_retry_delay: float = 0.05

    # Streaming defaults
    view_radius: int = 2
    unload_distance: int = 3
    request_cooldown: float = 0.5
    disconnect_grace_seconds: float = 30.0
    max_idle_seconds: Optional[float] = None

    @property
    def max_road_width(self) -> float:
        """Width of the widest (importance 3) road."""
        return self.road_base_width + 3 * self.width_per_importance

    def road_width(self, importance: int) -> float:
        """Full road width for an importance level."""
        return self.road_base_width + importance * self.width_per_importance

    @model_validator(mode="after")
    def _check_ranges(self) -> "Settings":
        if self.sdf_resolution < 2:
            raise ValueError(f"sdf_resolution must be >= 2, got {self.sdf_resolution}")
        if self.sdf_max_distance <= 0:
            raise ValueError("sdf_max_distance must be positive")
        if self.sdf_margin < self.max_road_width:
            raise ValueError(
                f"sdf_margin ({self.sdf_margin}) must be >= the maximum road "
                f"width ({self.max_road_width})"
            )
        if self.sdf_margin < self.sdf_max_distance:
            raise ValueError(
                f"sdf_margin ({self.sdf_margin}) must be >= sdf_max_distance "
                f"({self.sdf_max_distance})"
            )
        if self.track_width < 0 or self.track_offset_left < 0 or self.track_offset_right < 0:
            raise ValueError("track offsets and width must be >= 0")
        if not 0 < self.road_cost_factor < 1:
            raise ValueError("road_cost_factor must be between 0 and 1")
        if self.merge_radius <= 0:
            raise ValueError("merge_radius must be positive")
        if self.generation_workers < 1 or self.generation_max_attempts < 1:
            raise ValueError("generation_workers and generation_max_attempts must be >= 1")
        if self.unload_distance < self.view_radius:
            raise ValueError("unload_distance must be >= view_radius")
        return self


# Global settings instance
settings = Settings()
