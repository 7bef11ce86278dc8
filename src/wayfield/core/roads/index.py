"""
Spatial index over road splines.

Wraps a shapely STRtree built from the road surface bounding boxes, so that
region queries and overlap candidate pairs cost one tree lookup instead of a
scan over every spline.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import Point as ShapelyPoint, box
from shapely.strtree import STRtree

from wayfield.core.roads.spline import Spline
from wayfield.models.grid import Bounds


class SplineIndex:
    """
    Immutable bounding-box index of a set of splines.

    Splines are kept in id order so query results are deterministic.
    """

    def __init__(self, splines: Sequence[Spline]):
        """
        Build the index.

        Args:
            splines: Splines to index
        """
        self.splines: List[Spline] = sorted(splines, key=lambda s: s.segment_id)
        self._boxes = [box(*s.footprint_bounds()) for s in self.splines]
        self._tree: Optional[STRtree] = STRtree(self._boxes) if self._boxes else None
        self._by_id: Dict[int, Spline] = {s.segment_id: s for s in self.splines}

    def __len__(self) -> int:
        return len(self.splines)

    def get(self, spline_id: int) -> Optional[Spline]:
        return self._by_id.get(spline_id)

    def query(self, bounds: Bounds) -> List[Spline]:
        """
        Splines whose road surface bounding box overlaps a region.

        Args:
            bounds: Region as (min_x, min_y, max_x, max_y)

        Returns:
            Matching splines sorted by id
        """
        if self._tree is None:
            return []
        indices = np.sort(self._tree.query(box(*bounds)))
        return [self.splines[int(i)] for i in indices]

    def candidate_pairs(self) -> List[Tuple[Spline, Spline]]:
        """
        Pairs of distinct splines whose bounding boxes overlap.

        Returns:
            (a, b) pairs with a.id < b.id, sorted by ids
        """
        if self._tree is None:
            return []
        left, right = self._tree.query(self._boxes)
        pairs = {
            (int(i), int(j)) for i, j in zip(left, right) if int(i) < int(j)
        }
        return [(self.splines[i], self.splines[j]) for i, j in sorted(pairs)]

    def nearest(self, x: float, y: float) -> Optional[Spline]:
        """
        Spline whose centerline is closest to a point.

        Ties are broken by the lowest id.
        """
        if self._tree is None:
            return None
        candidate = int(self._tree.nearest(ShapelyPoint(x, y)))
        # The tree ranks boxes; refine using the actual centerlines in range
        reach = self.splines[candidate].distance_to(x, y)
        nearby = self.query((x - reach, y - reach, x + reach, y + reach))
        return min(nearby, key=lambda s: (s.distance_to(x, y), s.segment_id))
