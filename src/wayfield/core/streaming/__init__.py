"""
Chunk caching and streaming.

Shared cache slots for generated chunks and the per-client controller that
decides which chunks to produce, send or evict.
"""

from wayfield.core.streaming.cache import CacheStats, ChunkArtifact, WorldCache
from wayfield.core.streaming.controller import (
    ChunkBatch,
    ClientSession,
    ClientState,
    StreamingController,
)

__all__ = [
    "CacheStats",
    "ChunkArtifact",
    "WorldCache",
    "ChunkBatch",
    "ClientSession",
    "ClientState",
    "StreamingController",
]
