"""
Signed distance field chunk data.

TerrainChunkSdfData is the per-chunk product of road rasterization. Distances
are stored as float32 world units (negative inside a road) and can be packed
into an RG16 byte layout for network transfer:

- R16: signed distance normalized by ``max_distance``
  (0 = -max_distance, 32768 ~ on the road edge, 65535 = +max_distance)
- G16: metadata bits
  * bits 0-7: importance * 64
  * bit 8: pixel lies on a wheel track of a high-importance road
  * bit 9: pixel lies inside a junction footprint
"""

import hashlib
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from wayfield.models.grid import TerrainChunkId

IMPORTANCE_MASK = 0x00FF
TRACK_FLAG = 0x0100
INTERSECTION_FLAG = 0x0200

_HEADER = struct.Struct("<HH")

Polyline = Tuple[Tuple[float, float], ...]


def encode_metadata(
    importance: NDArray[Any],
    in_intersection: NDArray[np.bool_],
    on_track: Optional[NDArray[np.bool_]] = None,
) -> NDArray[np.uint16]:
    """
    Pack per-pixel metadata into G16 values.

    Args:
        importance: Importance per pixel (0-3)
        in_intersection: Junction footprint flag per pixel
        on_track: Wheel track flag per pixel

    Returns:
        uint16 metadata array
    """
    meta = (np.asarray(importance, dtype=np.uint16) * 64) & IMPORTANCE_MASK
    meta = meta | np.where(in_intersection, INTERSECTION_FLAG, 0).astype(np.uint16)
    if on_track is not None:
        meta = meta | np.where(on_track, TRACK_FLAG, 0).astype(np.uint16)
    return meta.astype(np.uint16)


@dataclass(frozen=True, eq=False)
class TerrainChunkSdfData:
    """
    Signed distance field of the road network over one chunk.

    Attributes:
        chunk_id: Chunk this field covers
        distances: (rows, cols) float32 signed distances in world units
        metadata: (rows, cols) uint16 metadata values
        max_distance: Clamp distance used during generation
        road_points: Road centerlines clipped to the chunk bounds
    """

    chunk_id: TerrainChunkId
    distances: NDArray[np.float32]
    metadata: NDArray[np.uint16]
    max_distance: float
    road_points: Tuple[Polyline, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        """Freeze the arrays so cached fields cannot be edited in place."""
        distances = np.array(self.distances, dtype=np.float32, copy=True)
        metadata = np.array(self.metadata, dtype=np.uint16, copy=True)
        if distances.shape != metadata.shape or distances.ndim != 2:
            raise ValueError(
                f"distances {distances.shape} and metadata {metadata.shape} "
                f"must be 2D arrays of the same shape"
            )
        distances.setflags(write=False)
        metadata.setflags(write=False)
        object.__setattr__(self, "distances", distances)
        object.__setattr__(self, "metadata", metadata)

    @classmethod
    def empty(cls, chunk_id: TerrainChunkId, resolution: int, max_distance: float) -> "TerrainChunkSdfData":
        """A chunk with no road in range: every pixel at the clamp distance."""
        return cls(
            chunk_id=chunk_id,
            distances=np.full((resolution, resolution), max_distance, dtype=np.float32),
            metadata=np.zeros((resolution, resolution), dtype=np.uint16),
            max_distance=max_distance,
        )

    @property
    def resolution(self) -> Tuple[int, int]:
        """(columns, rows) of the field."""
        rows, cols = self.distances.shape
        return cols, rows

    @property
    def has_roads(self) -> bool:
        """Whether any pixel lies inside a road."""
        return bool(np.any(self.distances < 0.0))

    @property
    def has_tracks(self) -> bool:
        return bool(np.any(self.metadata & TRACK_FLAG))

    def get_pixel(self, x: int, y: int) -> Tuple[float, int]:
        """
        Read one pixel.

        Args:
            x: Column
            y: Row

        Returns:
            (distance, metadata)

        Raises:
            IndexError: If the pixel is out of range
        """
        cols, rows = self.resolution
        if not (0 <= x < cols and 0 <= y < rows):
            raise IndexError(f"Pixel ({x}, {y}) outside {cols}x{rows} field")
        return float(self.distances[y, x]), int(self.metadata[y, x])

    def encode_rg16(self) -> bytes:
        """
        Pack the field into the RG16 wire layout.

        Returns:
            Header (cols, rows as little-endian u16) followed by row-major
            (R16, G16) little-endian pixel pairs
        """
        cols, rows = self.resolution
        normalized = (np.clip(self.distances / self.max_distance, -1.0, 1.0) + 1.0) * 0.5
        red = np.round(normalized * 65535.0).astype("<u2")
        pixels = np.empty((rows, cols, 2), dtype="<u2")
        pixels[..., 0] = red
        pixels[..., 1] = self.metadata.astype("<u2")
        return _HEADER.pack(cols, rows) + pixels.tobytes()

    @staticmethod
    def decode_rg16(data: bytes, max_distance: float) -> Tuple[NDArray[np.float32], NDArray[np.uint16]]:
        """
        Unpack an RG16 payload.

        Args:
            data: Bytes produced by encode_rg16
            max_distance: Clamp distance used for normalization

        Returns:
            (distances, metadata) arrays; distances are quantized

        Raises:
            ValueError: If the payload size does not match its header
        """
        if len(data) < _HEADER.size:
            raise ValueError("RG16 payload is missing its header")
        cols, rows = _HEADER.unpack_from(data)
        expected = _HEADER.size + cols * rows * 4
        if len(data) != expected:
            raise ValueError(f"RG16 payload has {len(data)} bytes, expected {expected}")
        pixels = np.frombuffer(data, dtype="<u2", offset=_HEADER.size).reshape(rows, cols, 2)
        distances = (pixels[..., 0].astype(np.float32) / 65535.0 * 2.0 - 1.0) * max_distance
        return distances.astype(np.float32), pixels[..., 1].astype(np.uint16)

    def to_bytes(self) -> bytes:
        """Exact serialization (float distances, metadata and road points)."""
        cols, rows = self.resolution
        parts = [
            struct.pack("<iiHHf", self.chunk_id.x, self.chunk_id.y, cols, rows, self.max_distance),
            self.distances.astype("<f4").tobytes(),
            self.metadata.astype("<u2").tobytes(),
            struct.pack("<I", len(self.road_points)),
        ]
        for line in self.road_points:
            parts.append(struct.pack("<I", len(line)))
            parts.append(np.asarray(line, dtype="<f8").tobytes())
        return b"".join(parts)

    def digest(self) -> str:
        """SHA-256 of the exact serialization, for diffing regenerated chunks."""
        return hashlib.sha256(self.to_bytes()).hexdigest()

    def byte_size(self) -> int:
        """Size of the RG16 payload."""
        cols, rows = self.resolution
        return _HEADER.size + cols * rows * 4

    def to_dict(self) -> Dict[str, Any]:
        """Summary dictionary for logs and diagnostics."""
        return {
            "chunk_id": [self.chunk_id.x, self.chunk_id.y],
            "resolution": list(self.resolution),
            "max_distance": self.max_distance,
            "min_distance": float(self.distances.min()),
            "has_roads": self.has_roads,
            "num_polylines": len(self.road_points),
            "digest": self.digest(),
        }
