"""
World context.

WorldContext owns every piece of world state for one world: the road
network, the biome layer, the chunk cache, the generation scheduler, the
pathfinding index and the streaming controller. It is the single place
edits enter the system; each edit is persisted first, then applied, then
propagated to the chunks and pathfinding cells it affects.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from wayfield.core.errors import ConfigurationError, RegionUnavailableError, ValidationError
from wayfield.core.grid import chunks_overlapping_bounds, expand_bounds, union_bounds
from wayfield.core.pathfinding import Path, PathfindingIndex
from wayfield.core.roads import NetworkChange, PendingEdit, RoadNetwork
from wayfield.core.sdf import ChunkScheduler, ChunkSnapshot, SdfGenerator
from wayfield.core.storage import InMemoryWorldStore, PersistenceGateway, WorldStore
from wayfield.core.streaming import ChunkBatch, StreamingController, WorldCache
from wayfield.core.terrain import TerrainLayer
from wayfield.models.grid import BiomeType, Bounds, GridCell, TerrainChunkId
from wayfield.models.road import RoadSegmentData
from wayfield.models.world import StreamingConfig, WorldConfig
from wayfield.utils.logging import PerformanceTimer
from wayfield.utils.version import format_version_info, get_version

logger = logging.getLogger(__name__)


@dataclass
class EditResult:
    """
    Outcome of a world edit.

    Attributes:
        bounds: Region whose data changed, or None for a no-op
        invalidated: Chunks whose version was bumped
        scheduled: Invalidated chunks queued for regeneration
        change: Road network change, for road edits
    """

    bounds: Optional[Bounds]
    invalidated: List[TerrainChunkId] = field(default_factory=list)
    scheduled: List[TerrainChunkId] = field(default_factory=list)
    change: Optional[NetworkChange] = None


class WorldContext:
    """
    Explicit owner of all world state.

    Usage:
        with WorldContext(WorldConfig.from_chunk_grid(10, 10)) as world:
            world.edit_road(RoadSegmentData.straight(1, (0, 0), (500, 0)))
            world.connect_client("alice", now=0.0)
            batch = world.request_chunks("alice", GridCell(4, 4), now=0.0)
    """

    def __init__(
        self,
        world: WorldConfig,
        store: Optional[WorldStore] = None,
        network: Optional[RoadNetwork] = None,
        generator: Optional[SdfGenerator] = None,
        gateway: Optional[PersistenceGateway] = None,
        max_workers: Optional[int] = None,
        max_attempts: Optional[int] = None,
        disconnect_grace: Optional[float] = None,
        max_idle_seconds: Optional[float] = None,
    ):
        """
        Initialize a closed world context.

        Args:
            world: World configuration
            store: World store (in-memory when omitted)
            network: Road network (defaults from settings)
            generator: Distance field generator (defaults from settings)
            gateway: Persistence gateway, overriding store
            max_workers: Generation worker pool size
            max_attempts: Generation attempts per chunk
            disconnect_grace: Grace period of disconnected clients
            max_idle_seconds: Idle timer of connected clients
        """
        self.world = world
        self.gateway = gateway or PersistenceGateway(store or InMemoryWorldStore(world))
        self.network = network or RoadNetwork()
        self.generator = generator or SdfGenerator()
        self.terrain = TerrainLayer(world)
        self.cache = WorldCache()

        self._max_workers = max_workers
        self._max_attempts = max_attempts
        self._disconnect_grace = disconnect_grace
        self._max_idle_seconds = max_idle_seconds

        self.scheduler: Optional[ChunkScheduler] = None
        self.streaming: Optional[StreamingController] = None
        self.pathfinding: Optional[PathfindingIndex] = None
        self.unavailable_regions: List[TerrainChunkId] = []
        self._open = False

    @classmethod
    def from_store(
        cls, store: WorldStore, world_config: Optional[WorldConfig] = None, **kwargs: Any
    ) -> "WorldContext":
        """
        Create and open a context for a persisted world.

        The stored world configuration wins; world_config is only used (and
        saved) when the store holds none.

        Args:
            store: World store
            world_config: Configuration for a new world
            **kwargs: Extra WorldContext arguments

        Returns:
            Opened world context

        Raises:
            ConfigurationError: If neither the store nor the caller provides a
                world configuration
        """
        gateway = PersistenceGateway(store)
        config = gateway.load_world_config()
        if config is None:
            if world_config is None:
                raise ConfigurationError(
                    "World store holds no world configuration",
                    config_key="world_config",
                )
            gateway.save_world_config(world_config)
            config = world_config
        return cls(config, gateway=gateway, **kwargs).open()

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "WorldContext":
        if not self._open:
            self.open()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def open(self) -> "WorldContext":
        """
        Load persisted world data and start the worker pool.

        Data is loaded chunk by chunk; a chunk whose region cannot be read
        is recorded in ``unavailable_regions`` and skipped so the rest of the
        world stays usable.

        Returns:
            This context
        """
        if self._open:
            return self

        with PerformanceTimer("world_open", log_level=logging.INFO, target=logger):
            segments: Dict[int, RoadSegmentData] = {}
            biomes: Dict[GridCell, BiomeType] = {}
            self.unavailable_regions = []
            for chunk_id in chunks_overlapping_bounds(self.world.bounds, self.world):
                region = chunk_id.bounds()
                try:
                    chunk_segments = self.gateway.load_segments(region)
                    chunk_biomes = self.gateway.load_biomes(region)
                except RegionUnavailableError as e:
                    logger.error(f"Chunk {chunk_id.storage_key()} unavailable: {e.message}")
                    self.unavailable_regions.append(chunk_id)
                    continue
                for segment in chunk_segments:
                    segments[segment.id] = segment
                biomes.update(
                    (cell, biome) for cell, biome in chunk_biomes.items()
                    if self.world.contains_cell(cell)
                )

            if segments:
                ordered = sorted(segments.values(), key=lambda s: s.id)
                self.network.apply(self.network.plan_upsert(ordered))
            if biomes:
                self.terrain.set_biomes(sorted(biomes.items()))

            self.pathfinding = PathfindingIndex(self.world, self.terrain, self.network)
            self.scheduler = ChunkScheduler(
                self.generator,
                self.cache,
                self._snapshot,
                max_workers=self._max_workers,
                max_attempts=self._max_attempts,
            )
            self.streaming = StreamingController(
                self.world,
                self.cache,
                self.scheduler,
                disconnect_grace=self._disconnect_grace,
                max_idle_seconds=self._max_idle_seconds,
            )

        self._open = True
        logger.info(
            f"Wayfield {get_version()} world opened: "
            f"{self.world.chunks_x}x{self.world.chunks_y} chunks, "
            f"{len(self.network)} road segments, {len(self.terrain)} biome overrides, "
            f"{len(self.unavailable_regions)} unavailable regions"
        )
        return self

    def close(self, wait_for_pending: bool = True) -> None:
        """Stop generation and drop cached chunks."""
        if not self._open:
            return
        scheduler, _, _ = self._require_open()
        scheduler.shutdown(wait_for_pending=wait_for_pending)
        self.cache.clear()
        self._open = False
        logger.info("World closed")

    def _require_open(self) -> Tuple[ChunkScheduler, StreamingController, PathfindingIndex]:
        """
        Return the scheduler, streaming controller and pathfinding index.

        Raises:
            RuntimeError: If the context is not open
        """
        if (
            not self._open
            or self.scheduler is None
            or self.streaming is None
            or self.pathfinding is None
        ):
            raise RuntimeError("World context is not open")
        return self.scheduler, self.streaming, self.pathfinding

    def _snapshot(self, chunk_id: TerrainChunkId) -> ChunkSnapshot:
        roads = self.network.snapshot(self.generator.snapshot_bounds(chunk_id))
        return ChunkSnapshot(
            chunk_id=chunk_id,
            version=self.cache.version_of(chunk_id),
            splines=roads.splines,
            intersections=roads.intersections,
            cells=self.terrain.chunk_cells(chunk_id),
        )

    def _propagate(self, bounds: Optional[Bounds]) -> Tuple[List[TerrainChunkId], List[TerrainChunkId]]:
        if bounds is None:
            return [], []
        scheduler, _, _ = self._require_open()
        affected = chunks_overlapping_bounds(expand_bounds(bounds, self.generator.margin), self.world)
        scheduled = self.cache.invalidate(affected)
        if scheduled:
            scheduler.schedule(scheduled)
        logger.debug(
            f"Invalidated {len(affected)} chunks, {len(scheduled)} scheduled for regeneration"
        )
        return affected, scheduled

    def _apply_road_edit(self, edit: PendingEdit) -> EditResult:
        region = edit.change.bounds
        if edit.upserted:
            self.gateway.commit_segments(edit.upserted, region=region)
        if edit.removed:
            self.gateway.delete_segments(edit.removed, region=region)

        change = self.network.apply(edit)
        invalidated, scheduled = self._propagate(change.bounds)
        if change.bounds is not None:
            _, _, pathfinding = self._require_open()
            pathfinding.refresh_bounds(change.bounds)
        return EditResult(
            bounds=change.bounds, invalidated=invalidated, scheduled=scheduled, change=change
        )

    def edit_roads(self, segments: Iterable[RoadSegmentData]) -> EditResult:
        """
        Add or replace road segments.

        Args:
            segments: Segments to add or replace

        Returns:
            Edit result

        Raises:
            InvalidGeometryError: If a segment is degenerate (world unchanged)
            AmbiguousJunctionError: If junctions become ambiguous (world unchanged)
            RegionUnavailableError: If the edit could not be persisted (world unchanged)
        """
        self._require_open()
        return self._apply_road_edit(self.network.plan_upsert(segments))

    def edit_road(self, segment: RoadSegmentData) -> EditResult:
        return self.edit_roads([segment])

    def remove_road(self, segment_id: int) -> EditResult:
        """
        Remove a road segment.

        Raises:
            ValidationError: If the segment does not exist
        """
        self._require_open()
        return self._apply_road_edit(self.network.plan_remove([segment_id]))

    def set_biomes(self, changes: Iterable[Tuple[GridCell, BiomeType]]) -> EditResult:
        """
        Change the biome of cells.

        Args:
            changes: (cell, biome) pairs

        Returns:
            Edit result

        Raises:
            ValidationError: If a cell lies outside the world
        """
        self._require_open()
        changes = [(cell, BiomeType(biome)) for cell, biome in changes]
        for cell, _ in changes:
            if not self.world.contains_cell(cell):
                raise ValidationError(
                    f"Cell ({cell.col}, {cell.row}) is outside the world",
                    field="cell",
                    details={"cell": [cell.col, cell.row]},
                )
        pending = [(cell, biome) for cell, biome in changes if self.terrain.biome_at(cell) != biome]
        if not pending:
            return EditResult(bounds=None)

        region = union_bounds((*c.center(), *c.center()) for c, _ in pending)
        self.gateway.commit_biomes(dict(pending), region=region)
        changed = self.terrain.set_biomes(pending)

        invalidated, scheduled = self._propagate(region)
        _, _, pathfinding = self._require_open()
        pathfinding.refresh_cells(changed)
        return EditResult(bounds=region, invalidated=invalidated, scheduled=scheduled)

    def set_biome(self, cell: GridCell, biome: BiomeType) -> EditResult:
        return self.set_biomes([(cell, biome)])

    def connect_client(
        self, client_id: str, now: float, config: Optional[StreamingConfig] = None
    ) -> None:
        _, streaming, _ = self._require_open()
        streaming.connect(client_id, now, config)

    def disconnect_client(self, client_id: str, now: float) -> None:
        _, streaming, _ = self._require_open()
        streaming.disconnect(client_id, now)

    def configure_client(self, client_id: str, **changes: Any) -> StreamingConfig:
        _, streaming, _ = self._require_open()
        return streaming.configure_client(client_id, **changes)

    def request_chunks(self, client_id: str, client_cell: GridCell, now: float) -> ChunkBatch:
        """Serve the chunks around a client; empty when rate limited."""
        _, streaming, _ = self._require_open()
        return streaming.request_chunks(client_id, client_cell, now)

    def sweep(self, now: float) -> List[str]:
        """Expire disconnected and idle clients."""
        _, streaming, _ = self._require_open()
        return streaming.sweep(now)

    def find_path(self, start: GridCell, goal: GridCell) -> Path:
        """
        Cheapest path between two cells.

        Raises:
            PathNotFoundError: If no path exists
        """
        _, _, pathfinding = self._require_open()
        return pathfinding.find_path(start, goal)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no chunk generation is in flight."""
        scheduler, _, _ = self._require_open()
        return scheduler.wait_all(timeout)

    def stats(self) -> Dict[str, Any]:
        """Summary counters of the world."""
        return {
            "open": self._open,
            "segments": len(self.network),
            "intersections": len(self.network.intersections),
            "network_version": self.network.version,
            "biome_overrides": len(self.terrain),
            "cached_chunks": len(self.cache),
            "dirty_chunks": len(self.cache.dirty_chunks()),
            "cache": self.cache.stats.to_dict(),
            "pending_generations": len(self.scheduler.pending()) if self.scheduler else 0,
            "failed_generations": len(self.scheduler.failed) if self.scheduler else 0,
            "clients": len(self.streaming.sessions) if self.streaming else 0,
            "unavailable_regions": [c.storage_key() for c in self.unavailable_regions],
            "server": format_version_info(),
        }
