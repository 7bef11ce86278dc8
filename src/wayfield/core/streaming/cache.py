"""
Process-wide cache of generated chunk artifacts.

Each chunk has at most one slot holding an immutable ChunkArtifact. Slots
are only ever replaced whole, under one lock, so readers holding a slot
reference always see a complete artifact. Versions order the replacements:
an invalidation bumps the chunk's target version, and an artifact older
than the slot it would replace is discarded.
"""

import logging
import threading
from dataclasses import asdict, dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from wayfield.models.grid import CellData, TerrainChunkId
from wayfield.models.sdf import TerrainChunkSdfData
from wayfield.utils.logging import log_with_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkArtifact:
    """
    Everything generated for one chunk at one version.

    Attributes:
        chunk_id: Chunk id
        version: Version of the snapshot the artifact was generated from
        sdf: Road distance field
        cells: Cell records of the chunk
    """

    chunk_id: TerrainChunkId
    version: int
    sdf: TerrainChunkSdfData
    cells: Tuple[CellData, ...] = ()


@dataclass
class CacheStats:
    """Counters for cache behaviour."""

    hits: int = 0
    misses: int = 0
    stores: int = 0
    stale_drops: int = 0
    evictions: int = 0
    invalidations: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class WorldCache:
    """
    Chunk artifact slots with dirty tracking and client interest.

    A chunk stays cached while at least one client is interested in it and
    is evicted as soon as the last interested client releases it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._slots: Dict[TerrainChunkId, ChunkArtifact] = {}
        self._versions: Dict[TerrainChunkId, int] = {}
        self._dirty: Set[TerrainChunkId] = set()
        self._interest: Dict[TerrainChunkId, Set[str]] = {}
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, chunk_id: TerrainChunkId) -> bool:
        return chunk_id in self._slots

    def get(self, chunk_id: TerrainChunkId) -> Optional[ChunkArtifact]:
        """Current slot content, without touching statistics."""
        return self._slots.get(chunk_id)

    def lookup(self, chunk_id: TerrainChunkId) -> Optional[ChunkArtifact]:
        """Current slot content, counted as a hit or a miss."""
        artifact = self._slots.get(chunk_id)
        with self._lock:
            if artifact is None:
                self.stats.misses += 1
            else:
                self.stats.hits += 1
        return artifact

    def version_of(self, chunk_id: TerrainChunkId) -> int:
        """Latest version requested for a chunk."""
        return self._versions.get(chunk_id, 0)

    def is_dirty(self, chunk_id: TerrainChunkId) -> bool:
        return chunk_id in self._dirty

    def dirty_chunks(self) -> List[TerrainChunkId]:
        with self._lock:
            return sorted(self._dirty)

    def cached_chunks(self) -> List[TerrainChunkId]:
        with self._lock:
            return sorted(self._slots)

    def store(self, artifact: ChunkArtifact) -> bool:
        """
        Swap an artifact into its chunk slot.

        The artifact is dropped when it is older than the current slot, when
        it claims a version that was never requested, or when no client is
        interested in the chunk any more.

        Args:
            artifact: Generated artifact

        Returns:
            True if the slot was replaced
        """
        chunk_id = artifact.chunk_id
        with self._lock:
            current = self._slots.get(chunk_id)
            target = self._versions.get(chunk_id, 0)
            stale = (
                (current is not None and artifact.version < current.version)
                or artifact.version > target
                or not self._interest.get(chunk_id)
            )
            if stale:
                self.stats.stale_drops += 1
                logger.debug(
                    f"Dropped artifact for chunk {chunk_id.storage_key()} "
                    f"v{artifact.version} (slot v{current.version if current else None}, "
                    f"target v{target})"
                )
                return False

            self._slots[chunk_id] = artifact
            self.stats.stores += 1
            if artifact.version == target:
                self._dirty.discard(chunk_id)
            return True

    def invalidate(self, chunk_ids: Iterable[TerrainChunkId]) -> List[TerrainChunkId]:
        """
        Bump the version of chunks whose inputs changed.

        Args:
            chunk_ids: Chunks overlapping an edit

        Returns:
            Invalidated chunks that clients are interested in, which need
            regeneration
        """
        needs_regeneration = []
        with self._lock:
            for chunk_id in chunk_ids:
                self._versions[chunk_id] = self._versions.get(chunk_id, 0) + 1
                self.stats.invalidations += 1
                if self._interest.get(chunk_id):
                    self._dirty.add(chunk_id)
                    needs_regeneration.append(chunk_id)
        return sorted(needs_regeneration)

    def add_interest(self, chunk_id: TerrainChunkId, client_id: str) -> None:
        with self._lock:
            self._interest.setdefault(chunk_id, set()).add(client_id)

    def remove_interest(self, chunk_id: TerrainChunkId, client_id: str) -> bool:
        """
        Release a client's interest in a chunk.

        Args:
            chunk_id: Chunk to release
            client_id: Releasing client

        Returns:
            True if the chunk was evicted because nobody is interested
        """
        with self._lock:
            clients = self._interest.get(chunk_id)
            if clients is None:
                return False
            clients.discard(client_id)
            if clients:
                return False
            del self._interest[chunk_id]
            return self._evict_locked(chunk_id)

    def interested_clients(self, chunk_id: TerrainChunkId) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._interest.get(chunk_id, ()))

    def interest_count(self, chunk_id: TerrainChunkId) -> int:
        with self._lock:
            return len(self._interest.get(chunk_id, ()))

    def evict(self, chunk_id: TerrainChunkId) -> bool:
        """Drop a chunk slot regardless of interest."""
        with self._lock:
            self._interest.pop(chunk_id, None)
            return self._evict_locked(chunk_id)

    def _evict_locked(self, chunk_id: TerrainChunkId) -> bool:
        self._dirty.discard(chunk_id)
        artifact = self._slots.pop(chunk_id, None)
        if artifact is None:
            return False
        self.stats.evictions += 1
        log_with_context(
            logging.DEBUG,
            f"Evicted chunk {chunk_id.storage_key()}",
            target=logger,
            chunk_id=chunk_id.storage_key(),
            version=artifact.version,
        )
        return True

    def clear(self) -> None:
        with self._lock:
            self._slots.clear()
            self._dirty.clear()
            self._interest.clear()
