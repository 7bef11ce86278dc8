"""
Road spline building.

Turns authored road segments into smoothed centerlines. Smoothing is
Chaikin corner cutting with fixed endpoints, so identical control points and
parameters always give identical splines.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from shapely.geometry import LineString, MultiLineString, Point as ShapelyPoint, box

from wayfield.core.config import settings
from wayfield.core.errors import InvalidGeometryError
from wayfield.core.smoothing import chaikin_smooth
from wayfield.models.grid import Bounds
from wayfield.models.road import Point2D, RoadSegmentData, RoadType

logger = logging.getLogger(__name__)

Polyline = Tuple[Point2D, ...]


@dataclass(frozen=True)
class Spline:
    """
    Smoothed road centerline derived from one segment.

    Attributes:
        segment_id: Source segment id (also the spline id)
        points: Smoothed centerline points
        width: Full road width in world units
        importance: Importance level of the source segment
        road_type: Road type of the source segment
        bounds: Bounding box of the centerline
    """

    segment_id: int
    points: Polyline
    width: float
    importance: int
    road_type: RoadType = field(default_factory=RoadType)
    bounds: Bounds = field(init=False)

    def __post_init__(self) -> None:
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        object.__setattr__(self, "bounds", (min(xs), min(ys), max(xs), max(ys)))

    @property
    def id(self) -> int:
        """Spline id, equal to its source segment id."""
        return self.segment_id

    @property
    def half_width(self) -> float:
        return self.width / 2.0

    @property
    def line(self) -> LineString:
        """Centerline as a shapely LineString."""
        return LineString(self.points)

    @property
    def length(self) -> float:
        return float(self.line.length)

    @property
    def start(self) -> Point2D:
        return self.points[0]

    @property
    def end(self) -> Point2D:
        return self.points[-1]

    def as_array(self) -> NDArray[np.float64]:
        """Centerline points as an (N, 2) array."""
        return np.asarray(self.points, dtype=np.float64)

    def footprint_bounds(self) -> Bounds:
        """Bounding box of the road surface (centerline grown by half width)."""
        hw = self.half_width
        min_x, min_y, max_x, max_y = self.bounds
        return min_x - hw, min_y - hw, max_x + hw, max_y + hw

    def distance_to(self, x: float, y: float) -> float:
        """Distance from a point to the centerline."""
        return float(self.line.distance(ShapelyPoint(x, y)))

    def covers(self, x: float, y: float, tolerance: float = 0.0) -> bool:
        """Whether a point lies on the road surface, grown by a tolerance."""
        return self.distance_to(x, y) <= self.half_width + tolerance

    def direction_at(self, x: float, y: float) -> Tuple[float, float]:
        """
        Unit tangent of the centerline at the point closest to (x, y).

        Args:
            x: Query X
            y: Query Y

        Returns:
            Normalized (dx, dy) following the spline direction
        """
        line = self.line
        s = line.project(ShapelyPoint(x, y))
        step = max(min(self.width, line.length / 4.0), 1e-6)
        a = line.interpolate(max(0.0, s - step))
        b = line.interpolate(min(line.length, s + step))
        dx, dy = b.x - a.x, b.y - a.y
        norm = math.hypot(dx, dy)
        if norm == 0.0:
            return 0.0, 0.0
        return dx / norm, dy / norm

    def clip(self, bounds: Bounds) -> List[Polyline]:
        """
        Parts of the centerline inside a region.

        Args:
            bounds: Region as (min_x, min_y, max_x, max_y)

        Returns:
            Clipped polylines in centerline order
        """
        clipped = self.line.intersection(box(*bounds))
        if clipped.is_empty:
            return []
        if isinstance(clipped, LineString):
            parts = [clipped]
        elif isinstance(clipped, MultiLineString):
            parts = list(clipped.geoms)
        else:
            parts = [g for g in getattr(clipped, "geoms", []) if isinstance(g, LineString)]
        return [
            tuple((float(x), float(y)) for x, y in part.coords)
            for part in parts
            if len(part.coords) >= 2
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert spline to dictionary."""
        return {
            "id": self.segment_id,
            "points": [list(p) for p in self.points],
            "width": self.width,
            "importance": self.importance,
            "road_type": self.road_type.category.value,
            "bounds": list(self.bounds),
            "length": self.length,
        }


class SplineBuilder:
    """
    Builds splines from road segments.

    Width derives from importance: ``base_width + importance * width_per_importance``.
    """

    def __init__(
        self,
        smoothing_rounds: Optional[int] = None,
        base_width: Optional[float] = None,
        width_per_importance: Optional[float] = None,
        simplify_tolerance: Optional[float] = None,
    ):
        """
        Initialize the builder.

        Args:
            smoothing_rounds: Chaikin rounds (default from settings)
            base_width: Width of importance-0 roads (default from settings)
            width_per_importance: Extra width per importance level
            simplify_tolerance: Douglas-Peucker tolerance applied after
                smoothing; 0 disables simplification
        """
        self.smoothing_rounds = (
            settings.smoothing_rounds if smoothing_rounds is None else smoothing_rounds
        )
        self.base_width = settings.road_base_width if base_width is None else base_width
        self.width_per_importance = (
            settings.width_per_importance
            if width_per_importance is None
            else width_per_importance
        )
        self.simplify_tolerance = (
            settings.simplify_tolerance if simplify_tolerance is None else simplify_tolerance
        )

        if self.smoothing_rounds < 0:
            raise ValueError("smoothing_rounds must be >= 0")
        if self.base_width <= 0 or self.width_per_importance < 0:
            raise ValueError("road widths must be positive")

    def width_for(self, importance: int) -> float:
        """Full road width for an importance level."""
        return self.base_width + importance * self.width_per_importance

    def build(self, segment: RoadSegmentData) -> Spline:
        """
        Build the spline of a road segment.

        Args:
            segment: Authored segment

        Returns:
            Smoothed spline

        Raises:
            InvalidGeometryError: If the control points are degenerate
        """
        return self.build_from_points(
            segment.points,
            segment_id=segment.id,
            importance=segment.importance,
            road_type=segment.road_type,
        )

    def build_from_points(
        self,
        points: Sequence[Sequence[float]],
        segment_id: int,
        importance: int = 0,
        road_type: Optional[RoadType] = None,
    ) -> Spline:
        """
        Build a spline from raw control points.

        Args:
            points: Ordered control points
            segment_id: Id of the source segment
            importance: Importance level
            road_type: Road type

        Returns:
            Smoothed spline

        Raises:
            InvalidGeometryError: If there are fewer than two distinct points
                or any coordinate is not finite
        """
        control = self.validate_points(points, segment_id)
        smoothed = chaikin_smooth(control, rounds=self.smoothing_rounds, closed=False)

        if self.simplify_tolerance > 0:
            smoothed = self._simplify_array(smoothed, self.simplify_tolerance)

        spline = Spline(
            segment_id=segment_id,
            points=tuple((float(x), float(y)) for x, y in smoothed),
            width=self.width_for(importance),
            importance=importance,
            road_type=road_type or RoadType(),
        )
        logger.debug(
            f"Built spline {segment_id}: {len(control)} control points -> "
            f"{len(spline.points)} points, width={spline.width}"
        )
        return spline

    @staticmethod
    def validate_points(points: Sequence[Sequence[float]], segment_id: Optional[int] = None) -> NDArray[np.float64]:
        """
        Check and normalize control points.

        Consecutive duplicates are dropped.

        Args:
            points: Control points
            segment_id: Segment id for error reporting

        Returns:
            (N, 2) array of control points

        Raises:
            InvalidGeometryError: If the points cannot form a spline
        """
        try:
            arr = np.asarray(points, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidGeometryError(
                f"Control points are not numeric: {e}", segment_id=segment_id
            ) from e

        if arr.size == 0 or arr.ndim != 2 or arr.shape[1] != 2:
            raise InvalidGeometryError(
                f"Expected (N, 2) control points, got shape {arr.shape}",
                segment_id=segment_id,
                details={"shape": list(arr.shape)},
            )

        if not np.all(np.isfinite(arr)):
            raise InvalidGeometryError(
                "Control points contain non-finite coordinates",
                segment_id=segment_id,
            )

        keep = np.ones(len(arr), dtype=bool)
        keep[1:] = np.any(arr[1:] != arr[:-1], axis=1)
        arr = arr[keep]

        if len(arr) < 2:
            raise InvalidGeometryError(
                "A road needs at least two distinct control points",
                segment_id=segment_id,
                details={"num_distinct_points": int(len(arr))},
            )
        return arr

    @staticmethod
    def _simplify_array(points: NDArray[np.float64], tolerance: float) -> NDArray[np.float64]:
        simplified = LineString(points).simplify(tolerance, preserve_topology=False)
        coords = np.asarray(simplified.coords, dtype=np.float64)
        if len(coords) < 2:
            return points[[0, -1]]
        return coords

    def simplify(self, spline: Spline, tolerance: float) -> Spline:
        """
        Douglas-Peucker simplification of a spline.

        Endpoints are kept.

        Args:
            spline: Spline to simplify
            tolerance: Maximum deviation from the original centerline

        Returns:
            New spline with fewer points
        """
        if tolerance < 0:
            raise ValueError("tolerance must be >= 0")
        simplified = self._simplify_array(spline.as_array(), tolerance)
        return Spline(
            segment_id=spline.segment_id,
            points=tuple((float(x), float(y)) for x, y in simplified),
            width=spline.width,
            importance=spline.importance,
            road_type=spline.road_type,
        )

    def extend(
        self,
        segment: RoadSegmentData,
        point: Point2D,
        at_start: bool = False,
    ) -> Tuple[RoadSegmentData, Spline]:
        """
        Extend a segment by one control point and rebuild its spline.

        The spline is regenerated from all control points.

        Args:
            segment: Segment to extend
            point: New control point
            at_start: Prepend instead of append

        Returns:
            (extended segment, rebuilt spline)

        Raises:
            InvalidGeometryError: If the extended geometry is degenerate
        """
        new_points = (point,) + segment.points if at_start else segment.points + (point,)
        extended = RoadSegmentData(
            id=segment.id,
            points=new_points,
            importance=segment.importance,
            road_type=segment.road_type,
            start_cell=None if at_start else segment.start_cell,
            end_cell=segment.end_cell if at_start else None,
            metadata=dict(segment.metadata),
        )
        return extended, self.build(extended)
