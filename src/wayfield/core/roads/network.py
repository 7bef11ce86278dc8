"""
Road network arena.

Holds the authored segments and their derived splines and intersections,
keyed by integer ids, plus a spatial index over the splines. Edits are
planned first and applied second: planning builds the new splines and
resolves junctions without touching the current state, so a rejected edit
(invalid geometry or an ambiguous junction) leaves the network unchanged.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from wayfield.core.errors import ValidationError
from wayfield.core.grid import bounds_intersect, union_bounds
from wayfield.core.roads.index import SplineIndex
from wayfield.core.roads.intersection import Intersection, IntersectionResolver
from wayfield.core.roads.spline import Spline, SplineBuilder
from wayfield.models.grid import Bounds
from wayfield.models.road import RoadSegmentData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkChange:
    """
    Effect of an applied edit.

    Attributes:
        segment_ids: Segments added, replaced or removed
        bounds: Region whose road geometry changed, or None for a no-op
        topology_changed: Whether the set of junctions changed
    """

    segment_ids: FrozenSet[int]
    bounds: Optional[Bounds]
    topology_changed: bool


@dataclass
class PendingEdit:
    """
    A fully validated edit waiting to be applied.

    Attributes:
        segments: Segment table after the edit
        splines: Spline table after the edit
        intersections: Intersections after the edit
        change: Description of the change
        removed: Ids of segments removed by the edit
        upserted: Segments added or replaced by the edit
        next_junction_id: Lowest id never handed to a junction
    """

    segments: Dict[int, RoadSegmentData]
    splines: Dict[int, Spline]
    intersections: List[Intersection]
    change: NetworkChange
    removed: List[int] = field(default_factory=list)
    upserted: List[RoadSegmentData] = field(default_factory=list)
    next_junction_id: int = 1


def _junction_signature(junction: Intersection) -> Tuple:
    return (
        junction.id,
        junction.spline_ids,
        round(junction.position[0], 6),
        round(junction.position[1], 6),
        junction.junction_type,
        round(junction.radius, 6),
    )


@dataclass(frozen=True)
class NetworkSnapshot:
    """Immutable view of the splines and intersections inside a region."""

    splines: Tuple[Spline, ...]
    intersections: Tuple[Intersection, ...]

    @property
    def is_empty(self) -> bool:
        return not self.splines and not self.intersections


class RoadNetwork:
    """
    Id-indexed store of road segments, splines and intersections.

    Usage:
        network = RoadNetwork()
        change = network.upsert(RoadSegmentData.straight(1, (0, 0), (100, 0)))
        snapshot = network.snapshot((0, 0, 50, 50))
    """

    def __init__(
        self,
        builder: Optional[SplineBuilder] = None,
        resolver: Optional[IntersectionResolver] = None,
    ):
        """
        Initialize an empty network.

        Args:
            builder: Spline builder (defaults from settings)
            resolver: Intersection resolver (defaults from settings)
        """
        self.builder = builder or SplineBuilder()
        self.resolver = resolver or IntersectionResolver()

        self.segments: Dict[int, RoadSegmentData] = {}
        self.splines: Dict[int, Spline] = {}
        self.intersections: Dict[int, Intersection] = {}
        self.version = 0
        self._next_junction_id = 1
        self._index: Optional[SplineIndex] = None

    def __len__(self) -> int:
        return len(self.segments)

    def __contains__(self, segment_id: int) -> bool:
        return segment_id in self.segments

    @property
    def index(self) -> SplineIndex:
        """Spatial index over the current splines, rebuilt lazily after edits."""
        if self._index is None:
            self._index = SplineIndex(list(self.splines.values()))
        return self._index

    def plan_upsert(self, segments: Iterable[RoadSegmentData]) -> PendingEdit:
        """
        Validate adding or replacing segments.

        Args:
            segments: Segments to add or replace

        Returns:
            Pending edit to pass to apply()

        Raises:
            InvalidGeometryError: If a segment's control points are degenerate
            AmbiguousJunctionError: If the resulting junctions are ambiguous
        """
        segments = list(segments)
        new_segments = dict(self.segments)
        new_splines = dict(self.splines)
        for segment in segments:
            new_segments[segment.id] = segment
            new_splines[segment.id] = self.builder.build(segment)

        return self._plan(new_segments, new_splines, {s.id for s in segments}, [], segments)

    def plan_remove(self, segment_ids: Iterable[int]) -> PendingEdit:
        """
        Validate removing segments.

        Args:
            segment_ids: Ids of the segments to remove

        Returns:
            Pending edit to pass to apply()

        Raises:
            ValidationError: If a segment id is unknown
        """
        segment_ids = list(segment_ids)
        new_segments = dict(self.segments)
        new_splines = dict(self.splines)
        for segment_id in segment_ids:
            if segment_id not in new_segments:
                raise ValidationError(
                    f"Unknown road segment {segment_id}",
                    field="segment_id",
                    details={"segment_id": segment_id},
                )
            del new_segments[segment_id]
            del new_splines[segment_id]

        return self._plan(new_segments, new_splines, set(segment_ids), segment_ids, [])

    def _plan(
        self,
        new_segments: Dict[int, RoadSegmentData],
        new_splines: Dict[int, Spline],
        touched: set,
        removed: List[int],
        upserted: List[RoadSegmentData],
    ) -> PendingEdit:
        new_index = SplineIndex(list(new_splines.values()))
        new_intersections = self.resolver.resolve(
            list(new_splines.values()),
            new_index,
            previous=list(self.intersections.values()),
            next_id=self._next_junction_id,
        )
        next_junction_id = max(
            [self._next_junction_id] + [j.id + 1 for j in new_intersections]
        )

        old_signatures = {_junction_signature(j): j for j in self.intersections.values()}
        new_signatures = {_junction_signature(j): j for j in new_intersections}
        changed_junctions = [
            old_signatures[k] for k in old_signatures.keys() - new_signatures.keys()
        ] + [new_signatures[k] for k in new_signatures.keys() - old_signatures.keys()]

        affected = []
        for segment_id in touched:
            if segment_id in self.splines:
                affected.append(self.splines[segment_id].footprint_bounds())
            if segment_id in new_splines:
                affected.append(new_splines[segment_id].footprint_bounds())
        affected.extend(j.bounds for j in changed_junctions)

        change = NetworkChange(
            segment_ids=frozenset(touched),
            bounds=union_bounds(affected),
            topology_changed=bool(changed_junctions) or bool(removed) or any(
                s.id not in self.segments for s in upserted
            ),
        )
        return PendingEdit(
            segments=new_segments,
            splines=new_splines,
            intersections=new_intersections,
            change=change,
            removed=list(removed),
            upserted=list(upserted),
            next_junction_id=next_junction_id,
        )

    def apply(self, edit: PendingEdit) -> NetworkChange:
        """
        Commit a planned edit.

        Args:
            edit: Edit returned by plan_upsert() or plan_remove()

        Returns:
            Description of the applied change
        """
        self.segments = edit.segments
        self.splines = edit.splines
        self.intersections = {j.id: j for j in edit.intersections}
        self._next_junction_id = edit.next_junction_id
        self._index = None
        self.version += 1

        logger.info(
            f"Road network v{self.version}: {len(self.segments)} segments, "
            f"{len(self.intersections)} intersections "
            f"(changed segments={sorted(edit.change.segment_ids)}, "
            f"topology_changed={edit.change.topology_changed})"
        )
        return edit.change

    def upsert(self, segment: RoadSegmentData) -> NetworkChange:
        """Add or replace one segment."""
        return self.apply(self.plan_upsert([segment]))

    def remove(self, segment_id: int) -> NetworkChange:
        """Remove one segment."""
        return self.apply(self.plan_remove([segment_id]))

    def get_spline(self, spline_id: int) -> Optional[Spline]:
        return self.splines.get(spline_id)

    def intersections_of(self, spline_id: int) -> List[Intersection]:
        """Junctions a spline participates in, by id."""
        return sorted(
            (j for j in self.intersections.values() if spline_id in j.spline_ids),
            key=lambda j: j.id,
        )

    def query(self, bounds: Bounds) -> Tuple[List[Spline], List[Intersection]]:
        """
        Splines and intersections overlapping a region.

        Args:
            bounds: Region as (min_x, min_y, max_x, max_y)

        Returns:
            (splines sorted by id, intersections sorted by id)
        """
        splines = self.index.query(bounds)
        intersections = sorted(
            (j for j in self.intersections.values() if bounds_intersect(j.bounds, bounds)),
            key=lambda j: j.id,
        )
        return splines, intersections

    def snapshot(self, bounds: Bounds) -> NetworkSnapshot:
        """Immutable snapshot of the road data overlapping a region."""
        splines, intersections = self.query(bounds)
        return NetworkSnapshot(splines=tuple(splines), intersections=tuple(intersections))

    def bounds(self) -> Optional[Bounds]:
        """Bounding box of every road surface, or None when empty."""
        return union_bounds(s.footprint_bounds() for s in self.splines.values())
