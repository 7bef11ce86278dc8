"""
Signed distance field generation for terrain chunks.

A chunk's field is computed over the chunk raster grown by a margin:

1. Analytic road mask: capsule distance to each spline, unioned with the
   junction disks through a polynomial smooth minimum.
2. Morphological opening to drop sub-pixel slivers.
3. Signed Euclidean distance transform of the mask (negative inside).
4. Crop back to the chunk and clamp to +/- max_distance.

Roads at or above the double track threshold also get two offset wheel
tracks; road pixels on a track and outside every junction carry the track
flag in their metadata.

Generation only reads its ChunkSnapshot, so it is safe to run many chunks
in parallel and identical snapshots give byte-identical output.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy import ndimage

from wayfield.core.config import settings
from wayfield.core.grid import expand_bounds
from wayfield.core.roads.intersection import Intersection
from wayfield.core.roads.spline import Spline
from wayfield.core.smoothing import open_binary_map
from wayfield.models.grid import CHUNK_HEIGHT, CHUNK_WIDTH, Bounds, CellData, TerrainChunkId
from wayfield.models.sdf import TerrainChunkSdfData, encode_metadata
from wayfield.utils.logging import log_performance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkSnapshot:
    """
    Immutable input of one chunk generation job.

    Attributes:
        chunk_id: Chunk to generate
        version: Cache version this snapshot was taken at
        splines: Splines overlapping the chunk bounds plus margin, by id
        intersections: Intersections overlapping the same region, by id
        cells: Cell records of the chunk
    """

    chunk_id: TerrainChunkId
    version: int
    splines: Tuple[Spline, ...] = ()
    intersections: Tuple[Intersection, ...] = ()
    cells: Tuple[CellData, ...] = field(default=(), compare=False)


def smooth_min(a: NDArray[np.float64], b: NDArray[np.float64], k: float) -> NDArray[np.float64]:
    """
    Polynomial smooth minimum of two distance fields.

    Args:
        a: First field
        b: Second field
        k: Blend width in world units; 0 gives the plain minimum

    Returns:
        Blended field, never larger than min(a, b)
    """
    if k <= 0:
        return np.minimum(a, b)
    h = np.maximum(k - np.abs(a - b), 0.0) / k
    return np.minimum(a, b) - h * h * k * 0.25


def polyline_distance(
    xs: NDArray[np.float64], ys: NDArray[np.float64], points: NDArray[np.float64]
) -> NDArray[np.float64]:
    """
    Distance from every grid position to a polyline.

    Args:
        xs: (1, W) pixel center X coordinates
        ys: (H, 1) pixel center Y coordinates
        points: (N, 2) polyline vertices

    Returns:
        (H, W) distances
    """
    best = np.full((ys.shape[0], xs.shape[1]), np.inf, dtype=np.float64)
    for (ax, ay), (bx, by) in zip(points[:-1], points[1:]):
        dx, dy = bx - ax, by - ay
        length_sq = dx * dx + dy * dy
        px = xs - ax
        py = ys - ay
        if length_sq == 0.0:
            t = 0.0
        else:
            t = np.clip((px * dx + py * dy) / length_sq, 0.0, 1.0)
        dist = np.hypot(px - t * dx, py - t * dy)
        np.minimum(best, dist, out=best)
    return best


def _vertex_tangents(points: NDArray[np.float64]) -> NDArray[np.float64]:
    """Unit tangents at each vertex (central differences, one-sided at the ends)."""
    ahead = np.vstack([points[1:], points[-1:]])
    behind = np.vstack([points[:1], points[:-1]])
    tangents = ahead - behind
    norms = np.hypot(tangents[:, 0], tangents[:, 1])[:, np.newaxis]
    return np.divide(tangents, norms, out=np.tile([1.0, 0.0], (len(points), 1)), where=norms > 0)


def track_distance(
    xs: NDArray[np.float64],
    ys: NDArray[np.float64],
    points: NDArray[np.float64],
    offset_left: float,
    offset_right: float,
) -> NDArray[np.float64]:
    """
    Distance from every grid position to the two wheel tracks of a road.

    Each centerline segment is shifted along the normal of its averaged
    vertex tangents, ``offset_left`` to the left and ``offset_right`` to
    the right.

    Args:
        xs: (1, W) pixel center X coordinates
        ys: (H, 1) pixel center Y coordinates
        points: (N, 2) centerline vertices
        offset_left: Left track offset in world units
        offset_right: Right track offset in world units

    Returns:
        (H, W) distances to the nearest track centerline
    """
    best = np.full((ys.shape[0], xs.shape[1]), np.inf, dtype=np.float64)
    tangents = _vertex_tangents(points)
    for i in range(len(points) - 1):
        tx, ty = tangents[i] + tangents[i + 1]
        norm = math.hypot(tx, ty)
        tx, ty = (tx / norm, ty / norm) if norm > 0 else (1.0, 0.0)
        normal = np.array([-ty, tx])
        segment = points[i : i + 2]
        for offset in (offset_left, -offset_right):
            np.minimum(best, polyline_distance(xs, ys, segment + normal * offset), out=best)
    return best


class SdfGenerator:
    """
    Rasterizes road snapshots into per-chunk signed distance fields.

    Usage:
        generator = SdfGenerator(resolution=64)
        sdf = generator.generate(snapshot)
    """

    def __init__(
        self,
        resolution: Optional[int] = None,
        margin: Optional[float] = None,
        max_distance: Optional[float] = None,
        morphology_radius: Optional[int] = None,
        junction_blend: float = 8.0,
        double_track_threshold: Optional[int] = None,
        track_offset_left: Optional[float] = None,
        track_offset_right: Optional[float] = None,
        track_width: Optional[float] = None,
    ):
        """
        Initialize the generator.

        Args:
            resolution: Pixels per chunk side
            margin: World-unit margin rasterized around the chunk
            max_distance: Clamp distance
            morphology_radius: Opening radius in pixels (0 disables)
            junction_blend: Smooth minimum width between roads and junctions
            double_track_threshold: Lowest road importance that gets wheel tracks
            track_offset_left: Left track offset from the centerline
            track_offset_right: Right track offset from the centerline
            track_width: Half width of a wheel track
        """
        self.resolution = settings.sdf_resolution if resolution is None else resolution
        self.margin = settings.sdf_margin if margin is None else margin
        self.max_distance = settings.sdf_max_distance if max_distance is None else max_distance
        self.morphology_radius = (
            settings.morphology_radius if morphology_radius is None else morphology_radius
        )
        self.junction_blend = junction_blend
        self.double_track_threshold = (
            settings.double_track_threshold
            if double_track_threshold is None
            else double_track_threshold
        )
        self.track_offset_left = (
            settings.track_offset_left if track_offset_left is None else track_offset_left
        )
        self.track_offset_right = (
            settings.track_offset_right if track_offset_right is None else track_offset_right
        )
        self.track_width = settings.track_width if track_width is None else track_width

        if self.resolution < 2:
            raise ValueError("resolution must be >= 2")
        if self.max_distance <= 0:
            raise ValueError("max_distance must be positive")
        if self.margin < self.max_distance:
            raise ValueError("margin must be >= max_distance")

    @property
    def pixel_size(self) -> Tuple[float, float]:
        """(width, height) of one pixel in world units."""
        return CHUNK_WIDTH / self.resolution, CHUNK_HEIGHT / self.resolution

    def snapshot_bounds(self, chunk_id: TerrainChunkId) -> Bounds:
        """Region whose roads influence a chunk."""
        return expand_bounds(chunk_id.bounds(), self.margin)

    def _raster_axes(
        self, chunk_id: TerrainChunkId
    ) -> Tuple[NDArray[np.float64], NDArray[np.float64], int, int]:
        px, py = self.pixel_size
        pad_x = int(math.ceil(self.margin / px))
        pad_y = int(math.ceil(self.margin / py))
        min_x, min_y, _, _ = chunk_id.bounds()
        cols = np.arange(-pad_x, self.resolution + pad_x, dtype=np.float64)
        rows = np.arange(-pad_y, self.resolution + pad_y, dtype=np.float64)
        xs = (min_x + (cols + 0.5) * px)[np.newaxis, :]
        ys = (min_y + (rows + 0.5) * py)[:, np.newaxis]
        return xs, ys, pad_x, pad_y

    def rasterize(
        self, snapshot: ChunkSnapshot
    ) -> Tuple[NDArray[np.bool_], NDArray[np.uint8], NDArray[np.bool_], NDArray[np.bool_], int, int]:
        """
        Build the padded road mask of a snapshot.

        Args:
            snapshot: Chunk snapshot

        Returns:
            (mask, importance, junction flags, track flags, pad_x, pad_y)
            over the padded raster
        """
        xs, ys, pad_x, pad_y = self._raster_axes(snapshot.chunk_id)
        shape = (ys.shape[0], xs.shape[1])

        road_field = np.full(shape, np.inf, dtype=np.float64)
        importance = np.zeros(shape, dtype=np.uint8)
        for spline in sorted(snapshot.splines, key=lambda s: s.segment_id):
            signed = polyline_distance(xs, ys, spline.as_array()) - spline.half_width
            closer = signed < road_field
            importance[closer] = spline.importance
            road_field[closer] = signed[closer]

        junction_field = np.full(shape, np.inf, dtype=np.float64)
        for junction in sorted(snapshot.intersections, key=lambda j: j.id):
            jx, jy = junction.position
            signed = np.hypot(xs - jx, ys - jy) - junction.radius
            np.minimum(junction_field, signed, out=junction_field)
            inside = signed <= 0
            importance[inside] = np.maximum(importance[inside], junction.importance)

        if snapshot.intersections and snapshot.splines:
            combined = smooth_min(road_field, junction_field, self.junction_blend)
        else:
            combined = np.minimum(road_field, junction_field)

        mask = combined <= 0.0
        if self.morphology_radius > 0:
            mask = open_binary_map(mask, self.morphology_radius)
        junctions = junction_field <= 0.0
        tracks = self._rasterize_tracks(snapshot, xs, ys, importance, junctions)
        return mask, importance, junctions, tracks, pad_x, pad_y

    def _rasterize_tracks(
        self,
        snapshot: ChunkSnapshot,
        xs: NDArray[np.float64],
        ys: NDArray[np.float64],
        importance: NDArray[np.uint8],
        junctions: NDArray[np.bool_],
    ) -> NDArray[np.bool_]:
        shape = importance.shape
        tracked = [s for s in snapshot.splines if s.importance >= self.double_track_threshold]
        if not tracked:
            return np.zeros(shape, dtype=bool)

        distance = np.full(shape, np.inf, dtype=np.float64)
        for spline in sorted(tracked, key=lambda s: s.segment_id):
            np.minimum(
                distance,
                track_distance(
                    xs, ys, spline.as_array(), self.track_offset_left, self.track_offset_right
                ),
                out=distance,
            )
        return (distance - self.track_width < 0.0) & (
            importance >= self.double_track_threshold
        ) & ~junctions

    def signed_distance(self, mask: NDArray[np.bool_]) -> NDArray[np.float64]:
        """
        Signed Euclidean distance of a mask in world units.

        Args:
            mask: Road mask (True inside)

        Returns:
            Distances, negative inside the mask
        """
        if not mask.any():
            return np.full(mask.shape, self.max_distance, dtype=np.float64)
        if mask.all():
            return np.full(mask.shape, -self.max_distance, dtype=np.float64)

        px, py = self.pixel_size
        sampling = (py, px)
        outside = ndimage.distance_transform_edt(~mask, sampling=sampling)
        inside = ndimage.distance_transform_edt(mask, sampling=sampling)
        return outside - inside

    @log_performance(threshold_ms=250.0)
    def generate(self, snapshot: ChunkSnapshot) -> TerrainChunkSdfData:
        """
        Generate the distance field of a chunk.

        Args:
            snapshot: Immutable chunk snapshot

        Returns:
            Distance field data for the chunk
        """
        chunk_id = snapshot.chunk_id
        if not snapshot.splines and not snapshot.intersections:
            return TerrainChunkSdfData.empty(chunk_id, self.resolution, self.max_distance)

        mask, importance, junctions, tracks, pad_x, pad_y = self.rasterize(snapshot)
        distances = self.signed_distance(mask)

        crop = (
            slice(pad_y, pad_y + self.resolution),
            slice(pad_x, pad_x + self.resolution),
        )
        distances = np.clip(distances[crop], -self.max_distance, self.max_distance)
        inside = mask[crop]
        metadata = encode_metadata(
            np.where(inside, importance[crop], 0),
            junctions[crop] & inside,
            tracks[crop] & inside,
        )

        chunk_bounds = chunk_id.bounds()
        road_points: List[Tuple[Tuple[float, float], ...]] = []
        for spline in sorted(snapshot.splines, key=lambda s: s.segment_id):
            road_points.extend(spline.clip(chunk_bounds))

        sdf = TerrainChunkSdfData(
            chunk_id=chunk_id,
            distances=distances.astype(np.float32),
            metadata=metadata,
            max_distance=self.max_distance,
            road_points=tuple(road_points),
        )
        logger.debug(
            f"Generated chunk {chunk_id.storage_key()} v{snapshot.version}: "
            f"{len(snapshot.splines)} splines, {len(snapshot.intersections)} junctions"
        )
        return sdf
