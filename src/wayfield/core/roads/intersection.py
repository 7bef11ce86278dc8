"""
Intersection resolution between road splines.

Candidates come from pairwise centerline crossings and from endpoint
near-touches (an endpoint within a width-derived tolerance of another road).
Candidates within the merge radius of each other are merged into one
junction, so three or more roads meeting at one place form a single N-way
junction. Clusters that cannot be merged cleanly are reported instead of
guessed.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

import networkx as nx
from shapely.geometry import LineString, Point as ShapelyPoint, Polygon as ShapelyPolygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import nearest_points

from wayfield.core.config import settings
from wayfield.core.errors import AmbiguousJunctionError
from wayfield.core.grid import world_to_cell
from wayfield.core.roads.index import SplineIndex
from wayfield.core.roads.spline import Spline
from wayfield.models.grid import Bounds, GridCell

logger = logging.getLogger(__name__)

# Positions closer than this along a spline count as its endpoint
_ENDPOINT_EPSILON = 1e-6


class JunctionType(str, Enum):
    """Junction classification by connected road directions."""

    TERMINUS = "terminus"  # 0-1 directions
    CONTINUATION = "continuation"  # 2 directions, nearly opposite
    FORK = "fork"  # 2 directions at an angle
    JUNCTION = "junction"  # 3 directions
    CROSSROAD = "crossroad"  # 4 directions
    PLAZA = "plaza"  # 5+ directions

    @classmethod
    def classify(
        cls, directions: Sequence[Tuple[float, float]], fork_angle_threshold: float
    ) -> "JunctionType":
        """
        Classify a junction from its outgoing road directions.

        Args:
            directions: Unit vectors pointing away from the junction
            fork_angle_threshold: Angle (radians) from straight under which
                two directions still count as a continuation

        Returns:
            Junction type
        """
        n = len(directions)
        if n <= 1:
            return cls.TERMINUS
        if n == 2:
            (ax, ay), (bx, by) = directions
            dot = ax * bx + ay * by
            if dot < -math.cos(fork_angle_threshold):
                return cls.CONTINUATION
            return cls.FORK
        if n == 3:
            return cls.JUNCTION
        if n == 4:
            return cls.CROSSROAD
        return cls.PLAZA

    @property
    def radius_factor(self) -> float:
        """Radius multiplier for this junction type."""
        return _RADIUS_FACTORS[self]


_RADIUS_FACTORS: Dict[JunctionType, float] = {
    JunctionType.TERMINUS: 0.5,
    JunctionType.CONTINUATION: 0.8,
    JunctionType.FORK: 1.0,
    JunctionType.JUNCTION: 1.3,
    JunctionType.CROSSROAD: 1.5,
    JunctionType.PLAZA: 2.0,
}


@dataclass(frozen=True)
class Intersection:
    """
    Resolved junction between splines.

    Attributes:
        id: Junction id, stable across edits while the junction persists
        spline_ids: Ids of the participating splines
        position: Junction center in world coordinates
        cell: Grid cell under the center
        junction_type: Classification
        directions: Outgoing unit directions of the connected roads
        radius: Footprint radius
        importance: Highest importance among the participating roads
        footprint: Junction surface polygon
    """

    id: int
    spline_ids: FrozenSet[int]
    position: Tuple[float, float]
    cell: GridCell
    junction_type: JunctionType
    directions: Tuple[Tuple[float, float], ...]
    radius: float
    importance: int
    footprint: ShapelyPolygon = field(compare=False, hash=False, repr=False)

    @property
    def bounds(self) -> Bounds:
        """Bounding box of the footprint."""
        x, y = self.position
        return x - self.radius, y - self.radius, x + self.radius, y + self.radius

    def contains(self, x: float, y: float) -> bool:
        """Whether a point lies inside the junction disk."""
        return math.hypot(x - self.position[0], y - self.position[1]) <= self.radius

    def to_dict(self) -> Dict[str, Any]:
        """Convert intersection to dictionary."""
        return {
            "id": self.id,
            "spline_ids": sorted(self.spline_ids),
            "position": list(self.position),
            "cell": [self.cell.col, self.cell.row],
            "junction_type": self.junction_type.value,
            "num_connections": len(self.directions),
            "radius": self.radius,
            "importance": self.importance,
        }


@dataclass(frozen=True)
class JunctionCandidate:
    """A single crossing or near-touch between two splines."""

    x: float
    y: float
    spline_ids: FrozenSet[int]
    kind: str  # "crossing" or "touch"


def _geometry_points(geom: BaseGeometry) -> List[Tuple[float, float]]:
    """Representative points of an intersection geometry."""
    if geom.is_empty:
        return []
    if isinstance(geom, ShapelyPoint):
        return [(geom.x, geom.y)]
    if isinstance(geom, LineString):
        # Collinear overlap: use a single point on the shared stretch
        p = geom.interpolate(0.5, normalized=True)
        return [(p.x, p.y)]
    if hasattr(geom, "geoms"):
        points: List[Tuple[float, float]] = []
        for part in geom.geoms:
            points.extend(_geometry_points(part))
        return points
    p = geom.representative_point()
    return [(p.x, p.y)]


class IntersectionResolver:
    """
    Finds and merges junctions between splines.

    Usage:
        resolver = IntersectionResolver(merge_radius=20.0)
        intersections = resolver.resolve(splines)
    """

    def __init__(
        self,
        merge_radius: Optional[float] = None,
        base_radius: Optional[float] = None,
        radius_per_connection: Optional[float] = None,
        fork_angle_threshold: Optional[float] = None,
    ):
        """
        Initialize the resolver.

        Args:
            merge_radius: Distance under which candidates merge
            base_radius: Base junction radius
            radius_per_connection: Radius bonus per extra connection
            fork_angle_threshold: Continuation/fork angle threshold (radians)
        """
        self.merge_radius = settings.merge_radius if merge_radius is None else merge_radius
        self.base_radius = (
            settings.junction_base_radius if base_radius is None else base_radius
        )
        self.radius_per_connection = (
            settings.junction_radius_per_connection
            if radius_per_connection is None
            else radius_per_connection
        )
        self.fork_angle_threshold = (
            settings.fork_angle_threshold
            if fork_angle_threshold is None
            else fork_angle_threshold
        )

        if self.merge_radius <= 0:
            raise ValueError("merge_radius must be positive")

    @staticmethod
    def touch_tolerance(a: Spline, b: Spline) -> float:
        """Endpoint near-touch tolerance for two roads (mean half width)."""
        return (a.width + b.width) / 4.0

    def find_candidates(
        self, splines: Sequence[Spline], index: Optional[SplineIndex] = None
    ) -> List[JunctionCandidate]:
        """
        Collect crossing and near-touch candidates.

        Args:
            splines: Splines to test
            index: Prebuilt index over exactly these splines

        Returns:
            Candidates in deterministic order
        """
        index = index or SplineIndex(splines)
        candidates: Set[JunctionCandidate] = set()

        for a, b in index.candidate_pairs():
            ids = frozenset((a.segment_id, b.segment_id))
            line_a, line_b = a.line, b.line

            for x, y in _geometry_points(line_a.intersection(line_b)):
                candidates.add(JunctionCandidate(round(x, 9), round(y, 9), ids, "crossing"))

            tolerance = self.touch_tolerance(a, b)
            for endpoint_owner, other_line in ((a, line_b), (b, line_a)):
                for ex, ey in (endpoint_owner.start, endpoint_owner.end):
                    endpoint = ShapelyPoint(ex, ey)
                    if other_line.distance(endpoint) > tolerance:
                        continue
                    nearest = nearest_points(endpoint, other_line)[1]
                    mx = (ex + nearest.x) / 2.0
                    my = (ey + nearest.y) / 2.0
                    candidates.add(JunctionCandidate(round(mx, 9), round(my, 9), ids, "touch"))

        return sorted(candidates, key=lambda c: (c.x, c.y, sorted(c.spline_ids), c.kind))

    def cluster(self, candidates: Sequence[JunctionCandidate]) -> List[List[JunctionCandidate]]:
        """
        Group candidates closer than the merge radius.

        Args:
            candidates: Candidates to group

        Returns:
            Clusters in deterministic order

        Raises:
            AmbiguousJunctionError: If a cluster does not fit a merge-radius
                disk around its centroid, or two cluster centroids are closer
                than the merge radius
        """
        graph = nx.Graph()
        graph.add_nodes_from(range(len(candidates)))
        for i in range(len(candidates)):
            for j in range(i + 1, len(candidates)):
                ci, cj = candidates[i], candidates[j]
                if math.hypot(ci.x - cj.x, ci.y - cj.y) <= self.merge_radius:
                    graph.add_edge(i, j)

        clusters = [
            [candidates[i] for i in sorted(component)]
            for component in nx.connected_components(graph)
        ]
        clusters.sort(key=lambda members: (members[0].x, members[0].y))

        centroids = [self._centroid(members) for members in clusters]
        for members, (cx, cy) in zip(clusters, centroids):
            spread = max(math.hypot(m.x - cx, m.y - cy) for m in members)
            if spread > self.merge_radius:
                raise AmbiguousJunctionError(
                    f"Junction candidates spread {spread:.1f} from their center, "
                    f"more than the merge radius {self.merge_radius}",
                    positions=[(m.x, m.y) for m in members],
                    spline_ids=sorted(set().union(*(m.spline_ids for m in members))),
                )

        for i in range(len(centroids)):
            for j in range(i + 1, len(centroids)):
                (ax, ay), (bx, by) = centroids[i], centroids[j]
                if math.hypot(ax - bx, ay - by) < self.merge_radius:
                    raise AmbiguousJunctionError(
                        "Two junctions are closer than the merge radius",
                        positions=[centroids[i], centroids[j]],
                        spline_ids=sorted(
                            set().union(*(m.spline_ids for m in clusters[i] + clusters[j]))
                        ),
                    )
        return clusters

    @staticmethod
    def _centroid(members: Sequence[JunctionCandidate]) -> Tuple[float, float]:
        n = len(members)
        return sum(m.x for m in members) / n, sum(m.y for m in members) / n

    def _directions(self, spline: Spline, x: float, y: float) -> List[Tuple[float, float]]:
        """Outgoing directions of a spline from a junction position."""
        line = spline.line
        s = line.project(ShapelyPoint(x, y))
        tx, ty = spline.direction_at(x, y)
        if tx == 0.0 and ty == 0.0:
            return []

        directions = []
        if s > _ENDPOINT_EPSILON:
            directions.append((-tx, -ty))
        if s < line.length - _ENDPOINT_EPSILON:
            directions.append((tx, ty))
        return directions

    def junction_radius(self, junction_type: JunctionType, num_connections: int, importance: int) -> float:
        """
        Footprint radius of a junction.

        Args:
            junction_type: Classification
            num_connections: Number of connected road directions
            importance: Highest participating importance

        Returns:
            Radius in world units
        """
        if num_connections <= 2:
            bonus = 0.0
        elif num_connections == 3:
            bonus = self.radius_per_connection
        elif num_connections == 4:
            bonus = self.radius_per_connection * 2.0
        else:
            bonus = self.radius_per_connection * (num_connections - 2)
        importance_factor = 1.0 + importance * 0.15
        return (self.base_radius + bonus) * junction_type.radius_factor * importance_factor

    def _match_previous(
        self,
        records: Sequence[Tuple],
        previous: Sequence[Intersection],
    ) -> Dict[int, int]:
        """
        Pair new junction records with previous junctions.

        A previous junction matches when it shares a road with the new one
        and its center lies within max(merge radius, its radius). Closest
        pairs are taken first; each side is used at most once.

        Returns:
            Mapping of record index to reused junction id
        """
        pairs = []
        for i, (cx, cy, spline_ids, *_) in enumerate(records):
            for junction in previous:
                if not spline_ids & junction.spline_ids:
                    continue
                distance = math.hypot(cx - junction.position[0], cy - junction.position[1])
                if distance <= max(self.merge_radius, junction.radius):
                    pairs.append((distance, junction.id, i))

        matched: Dict[int, int] = {}
        used: Set[int] = set()
        for _, junction_id, i in sorted(pairs):
            if i not in matched and junction_id not in used:
                matched[i] = junction_id
                used.add(junction_id)
        return matched

    def resolve(
        self,
        splines: Sequence[Spline],
        index: Optional[SplineIndex] = None,
        previous: Sequence[Intersection] = (),
        next_id: Optional[int] = None,
    ) -> List[Intersection]:
        """
        Resolve all junctions between splines.

        Junctions that survive from ``previous`` keep their ids. New
        junctions get ids from ``next_id`` upwards in (x, y) position order.

        Args:
            splines: Splines of the network
            index: Prebuilt index over exactly these splines
            previous: Junctions of the network before the edit
            next_id: First id handed to a new junction; defaults to one
                past the highest previous id

        Returns:
            Intersections sorted by id

        Raises:
            AmbiguousJunctionError: If candidate clusters overlap
        """
        index = index or SplineIndex(splines)
        clusters = self.cluster(self.find_candidates(splines, index))

        records = []
        for members in clusters:
            cx, cy = self._centroid(members)
            spline_ids = frozenset().union(*(m.spline_ids for m in members))
            participating = [index.get(sid) for sid in sorted(spline_ids)]

            directions: List[Tuple[float, float]] = []
            for spline in participating:
                if spline is not None:
                    directions.extend(self._directions(spline, cx, cy))

            importance = max(s.importance for s in participating if s is not None)
            junction_type = JunctionType.classify(directions, self.fork_angle_threshold)
            radius = self.junction_radius(junction_type, len(directions), importance)
            records.append((cx, cy, spline_ids, junction_type, directions, radius, importance))

        records.sort(key=lambda r: (r[0], r[1]))
        ids = self._match_previous(records, previous)
        kept = len(ids)
        if next_id is None:
            next_id = max((j.id for j in previous), default=0) + 1
        for i in range(len(records)):
            if i not in ids:
                ids[i] = next_id
                next_id += 1

        intersections = [
            Intersection(
                id=ids[i],
                spline_ids=spline_ids,
                position=(cx, cy),
                cell=world_to_cell(cx, cy),
                junction_type=junction_type,
                directions=tuple(directions),
                radius=radius,
                importance=importance,
                footprint=ShapelyPoint(cx, cy).buffer(radius),
            )
            for i, (cx, cy, spline_ids, junction_type, directions, radius, importance) in enumerate(
                records
            )
        ]
        intersections.sort(key=lambda j: j.id)

        logger.debug(
            f"Resolved {len(intersections)} intersections from {len(splines)} splines "
            f"({kept} ids kept)"
        )
        return intersections
