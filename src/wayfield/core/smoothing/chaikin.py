"""
Chaikin corner-cutting curve subdivision.

Each round replaces every edge (p, q) with the two points at 1/4 and 3/4 of
the edge. Open curves keep their first and last point fixed so roads still
end where they were authored; closed curves wrap around.
"""

from typing import List, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

Point = Tuple[float, float]


def _cut_open(points: NDArray[np.float64]) -> NDArray[np.float64]:
    p = points[:-1]
    q = points[1:]
    quarter = 0.75 * p + 0.25 * q
    three_quarter = 0.25 * p + 0.75 * q
    interior = np.empty((2 * len(p), 2), dtype=np.float64)
    interior[0::2] = quarter
    interior[1::2] = three_quarter
    return np.vstack([points[:1], interior, points[-1:]])


def _cut_closed(points: NDArray[np.float64]) -> NDArray[np.float64]:
    p = points
    q = np.roll(points, -1, axis=0)
    result = np.empty((2 * len(p), 2), dtype=np.float64)
    result[0::2] = 0.75 * p + 0.25 * q
    result[1::2] = 0.25 * p + 0.75 * q
    return result


def chaikin_smooth(
    points: Sequence[Sequence[float]],
    rounds: int = 3,
    closed: bool = False,
) -> NDArray[np.float64]:
    """
    Smooth a polyline with Chaikin corner cutting.

    Args:
        points: Input polyline as (N, 2) coordinates
        rounds: Number of subdivision rounds
        closed: Treat the polyline as a closed contour

    Returns:
        (M, 2) array of smoothed points

    Raises:
        ValueError: If rounds is negative or points are not 2D
    """
    if rounds < 0:
        raise ValueError(f"rounds must be >= 0, got {rounds}")

    result = np.array(points, dtype=np.float64).reshape(-1, 2)
    if closed and len(result) > 1 and np.array_equal(result[0], result[-1]):
        result = result[:-1]

    min_points = 3 if closed else 2
    if len(result) < min_points:
        return result

    for _ in range(rounds):
        result = _cut_closed(result) if closed else _cut_open(result)
    return result


def smooth_contour(points: Sequence[Sequence[float]], rounds: int = 3) -> List[Point]:
    """
    Smooth a closed contour and return it as a list of tuples.

    The first point is repeated at the end so the contour stays explicitly
    closed.
    """
    smoothed = chaikin_smooth(points, rounds=rounds, closed=True)
    if len(smoothed) == 0:
        return []
    contour = [(float(x), float(y)) for x, y in smoothed]
    if contour[0] != contour[-1]:
        contour.append(contour[0])
    return contour
