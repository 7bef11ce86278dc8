"""
Persistence of authoritative world data.

The world store is an opaque record store holding the world configuration,
road segments and biome overrides. The gateway wraps a store with retries
and maps failures to RegionUnavailableError for the affected region only.
"""

import logging
import threading
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, TypeVar

from wayfield.core.config import settings
from wayfield.core.errors import RegionUnavailableError
from wayfield.core.grid import bounds_intersect
from wayfield.core.retry import DEFAULT_TRANSIENT_EXCEPTIONS, RetryPolicy
from wayfield.models.grid import BiomeType, Bounds, GridCell
from wayfield.models.road import RoadSegmentData
from wayfield.models.world import WorldConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorldStore(Protocol):
    """Record store interface for authoritative world data."""

    def load_world_config(self) -> Optional[WorldConfig]:
        ...

    def save_world_config(self, config: WorldConfig) -> None:
        ...

    def load_segments(self, bounds: Bounds) -> List[RoadSegmentData]:
        ...

    def commit_segments(self, segments: Iterable[RoadSegmentData]) -> None:
        ...

    def delete_segments(self, segment_ids: Iterable[int]) -> None:
        ...

    def load_biomes(self, bounds: Bounds) -> Dict[GridCell, BiomeType]:
        ...

    def commit_biomes(self, biomes: Mapping[GridCell, BiomeType]) -> None:
        ...


class InMemoryWorldStore:
    """
    Dictionary-backed world store.

    Suitable for tests and single-process deployments.
    """

    def __init__(self, config: Optional[WorldConfig] = None) -> None:
        self._lock = threading.Lock()
        self._config = config
        self._segments: Dict[int, RoadSegmentData] = {}
        self._biomes: Dict[GridCell, BiomeType] = {}

    def load_world_config(self) -> Optional[WorldConfig]:
        return self._config

    def save_world_config(self, config: WorldConfig) -> None:
        self._config = config

    def load_segments(self, bounds: Bounds) -> List[RoadSegmentData]:
        """Segments whose control point bounds overlap a region, by id."""
        with self._lock:
            segments = list(self._segments.values())
        return sorted(
            (
                s
                for s in segments
                if s.control_bounds() is not None and bounds_intersect(s.control_bounds(), bounds)
            ),
            key=lambda s: s.id,
        )

    def commit_segments(self, segments: Iterable[RoadSegmentData]) -> None:
        with self._lock:
            for segment in segments:
                self._segments[segment.id] = segment

    def delete_segments(self, segment_ids: Iterable[int]) -> None:
        with self._lock:
            for segment_id in segment_ids:
                self._segments.pop(segment_id, None)

    def load_biomes(self, bounds: Bounds) -> Dict[GridCell, BiomeType]:
        """Biome overrides whose cell centers lie in a region."""
        min_x, min_y, max_x, max_y = bounds
        with self._lock:
            items = list(self._biomes.items())
        result = {}
        for cell, biome in items:
            x, y = cell.center()
            if min_x <= x <= max_x and min_y <= y <= max_y:
                result[cell] = biome
        return result

    def commit_biomes(self, biomes: Mapping[GridCell, BiomeType]) -> None:
        with self._lock:
            self._biomes.update(biomes)


class PersistenceGateway:
    """
    Retrying access to a world store.

    Reads and writes are retried on transient errors; once retries are
    exhausted the failure surfaces as RegionUnavailableError naming the
    region involved.
    """

    def __init__(
        self,
        store: WorldStore,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        retryable_exceptions: Tuple[type, ...] = DEFAULT_TRANSIENT_EXCEPTIONS,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Initialize the gateway.

        Args:
            store: Underlying world store
            max_attempts: Attempts per operation
            base_delay: Initial backoff delay in seconds
            retryable_exceptions: Exception types treated as transient
            sleep: Function used to wait between attempts
        """
        self.store = store
        self.max_attempts = settings.store_retry_attempts if max_attempts is None else max_attempts
        self.base_delay = settings.store_retry_delay if base_delay is None else base_delay
        policy_kwargs = {
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.base_delay * 8,
            "retryable_exceptions": retryable_exceptions,
        }
        if sleep is not None:
            policy_kwargs["sleep"] = sleep
        self.policy = RetryPolicy(**policy_kwargs)

    def _call(
        self,
        operation: str,
        func: Callable[..., T],
        *args: object,
        region: Optional[Bounds] = None,
    ) -> T:
        try:
            return self.policy.call(func, *args)
        except Exception as e:
            logger.error(
                f"World store {operation} failed for region {region}: "
                f"{type(e).__name__}: {e}"
            )
            raise RegionUnavailableError(
                f"World store {operation} failed: {e}",
                region=region,
                operation=operation,
                details={"cause": type(e).__name__},
            ) from e

    def load_world_config(self) -> Optional[WorldConfig]:
        return self._call("load_world_config", self.store.load_world_config)

    def save_world_config(self, config: WorldConfig) -> None:
        self._call("save_world_config", self.store.save_world_config, config)

    def load_segments(self, bounds: Bounds) -> List[RoadSegmentData]:
        return self._call("load_segments", self.store.load_segments, bounds, region=bounds)

    def commit_segments(self, segments: List[RoadSegmentData], region: Optional[Bounds] = None) -> None:
        self._call("commit_segments", self.store.commit_segments, segments, region=region)

    def delete_segments(self, segment_ids: List[int], region: Optional[Bounds] = None) -> None:
        self._call("delete_segments", self.store.delete_segments, segment_ids, region=region)

    def load_biomes(self, bounds: Bounds) -> Dict[GridCell, BiomeType]:
        return self._call("load_biomes", self.store.load_biomes, bounds, region=bounds)

    def commit_biomes(self, biomes: Mapping[GridCell, BiomeType], region: Optional[Bounds] = None) -> None:
        self._call("commit_biomes", self.store.commit_biomes, dict(biomes), region=region)
