"""
Road data models.

RoadSegmentData is the authored, persisted primitive of the road network.
Splines, intersections and distance fields are all derived from it.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from wayfield.core.errors import InvalidGeometryError
from wayfield.models.grid import Bounds, GridCell

MAX_IMPORTANCE = 3

Point2D = Tuple[float, float]


class RoadCategory(str, Enum):
    """Road classification."""

    DIRT_PATH = "dirt_path"
    PAVED_ROAD = "paved_road"
    HIGHWAY = "highway"


@dataclass(frozen=True)
class RoadType:
    """
    Road type (category plus visual variant).

    Attributes:
        id: Type identifier
        category: Road category
        variant: Variant name used by renderers
    """

    id: int = 1
    category: RoadCategory = RoadCategory.DIRT_PATH
    variant: str = "basic"

    @classmethod
    def dirt_path(cls, type_id: int = 1) -> "RoadType":
        return cls(id=type_id, category=RoadCategory.DIRT_PATH, variant="basic")

    @classmethod
    def paved_road(cls, type_id: int = 2) -> "RoadType":
        return cls(id=type_id, category=RoadCategory.PAVED_ROAD, variant="stone")

    @classmethod
    def highway(cls, type_id: int = 3) -> "RoadType":
        return cls(id=type_id, category=RoadCategory.HIGHWAY, variant="cobblestone")


@dataclass(frozen=True)
class RoadSegmentData:
    """
    An authored road stretch.

    Points must be (x, y) pairs of numbers; anything else raises
    InvalidGeometryError. Degenerate but well-formed geometry (repeated or
    non-finite points) is left to the spline builder.

    Attributes:
        id: Unique segment identifier
        points: Ordered control points in world coordinates
        importance: Importance level (0 = trail ... 3 = main road)
        road_type: Road type
        start_cell: Optional cell the segment starts on
        end_cell: Optional cell the segment ends on
        metadata: Free-form metadata
    """

    id: int
    points: Tuple[Point2D, ...]
    importance: int = 0
    road_type: RoadType = field(default_factory=RoadType)
    start_cell: Optional[GridCell] = None
    end_cell: Optional[GridCell] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        """Normalize points and validate importance."""
        if not 0 <= self.importance <= MAX_IMPORTANCE:
            raise ValueError(
                f"importance must be between 0 and {MAX_IMPORTANCE}, got {self.importance}"
            )
        try:
            points = tuple((float(x), float(y)) for x, y in self.points)
        except (TypeError, ValueError) as e:
            raise InvalidGeometryError(
                f"Road segment {self.id} has malformed control points: {e}",
                segment_id=self.id,
                details={"points": repr(self.points), "reason": str(e)},
            ) from e
        object.__setattr__(self, "points", points)

    @classmethod
    def straight(
        cls,
        segment_id: int,
        start: Point2D,
        end: Point2D,
        importance: int = 0,
        **kwargs: Any,
    ) -> "RoadSegmentData":
        """Create a straight two-point segment."""
        return cls(id=segment_id, points=(start, end), importance=importance, **kwargs)

    @classmethod
    def curved(
        cls,
        segment_id: int,
        points: Sequence[Point2D],
        importance: int = 0,
        **kwargs: Any,
    ) -> "RoadSegmentData":
        """Create a segment with intermediate control points."""
        return cls(id=segment_id, points=tuple(points), importance=importance, **kwargs)

    def control_bounds(self) -> Optional[Bounds]:
        """Bounding box of the raw control points, or None if empty."""
        if not self.points:
            return None
        xs = [p[0] for p in self.points]
        ys = [p[1] for p in self.points]
        return min(xs), min(ys), max(xs), max(ys)

    def to_dict(self) -> Dict[str, Any]:
        """Convert segment to dictionary."""
        return {
            "id": self.id,
            "points": [list(p) for p in self.points],
            "importance": self.importance,
            "road_type": {
                "id": self.road_type.id,
                "category": self.road_type.category.value,
                "variant": self.road_type.variant,
            },
            "start_cell": [self.start_cell.col, self.start_cell.row] if self.start_cell else None,
            "end_cell": [self.end_cell.col, self.end_cell.row] if self.end_cell else None,
            "metadata": self.metadata,
        }
