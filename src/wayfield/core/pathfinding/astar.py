"""
A* search over the cell graph.

The heuristic is the hex distance times the cheapest possible step cost,
which never overestimates, so the first time the goal is popped its path
is weight-optimal. Every node is expanded at most once, so a search for an
unreachable goal stops after exhausting the reachable component.
"""

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

import networkx as nx
from shapely.geometry import LineString

from wayfield.core.errors import PathNotFoundError
from wayfield.models.grid import GridCell
from wayfield.utils.logging import PerformanceTimer

logger = logging.getLogger(__name__)


@dataclass
class PathfinderConfig:
    """
    Configuration for A* search.

    Attributes:
        min_step_cost: Cheapest possible cost of one step (heuristic scale)
        max_expansions: Optional cap on expanded nodes
    """

    min_step_cost: float = 0.5
    max_expansions: Optional[int] = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.min_step_cost < 0:
            raise ValueError("min_step_cost must be non-negative")
        if self.max_expansions is not None and self.max_expansions < 1:
            raise ValueError("max_expansions must be positive")


@dataclass
class Path:
    """
    A path through the cell graph.

    Attributes:
        cells: Ordered cells from start to goal
        total_cost: Sum of traversed edge weights
        expansions: Nodes expanded by the search
        metadata: Additional path metadata
    """

    cells: List[GridCell]
    total_cost: float = 0.0
    expansions: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.cells)

    @property
    def steps(self) -> int:
        return max(len(self.cells) - 1, 0)

    def get_waypoints(self) -> List[Tuple[float, float]]:
        """World positions of the cell centers along the path."""
        return [cell.center() for cell in self.cells]

    def get_geometry(self) -> LineString:
        """Path as a Shapely LineString."""
        if len(self.cells) < 2:
            return LineString()
        return LineString(self.get_waypoints())

    def to_dict(self) -> Dict[str, Any]:
        """Convert path to dictionary."""
        return {
            "cells": [[c.col, c.row] for c in self.cells],
            "steps": self.steps,
            "total_cost": float(self.total_cost),
            "expansions": self.expansions,
            "metadata": self.metadata,
        }


class AStarPathfinder:
    """
    A* over a networkx graph whose nodes are GridCells.

    Edge weights are read from the ``weight`` attribute.
    """

    def __init__(self, graph: nx.Graph, config: Optional[PathfinderConfig] = None):
        """
        Initialize the pathfinder.

        Args:
            graph: Cell graph to search
            config: Pathfinder configuration (uses defaults if not provided)
        """
        self.graph = graph
        self.config = config or PathfinderConfig()

    def _heuristic(self, cell: GridCell, goal: GridCell) -> float:
        return cell.distance_to(goal) * self.config.min_step_cost

    def find_path(self, start: GridCell, goal: GridCell) -> Path:
        """
        Find the cheapest path between two cells.

        Args:
            start: Start cell
            goal: Goal cell

        Returns:
            Weight-optimal path

        Raises:
            PathNotFoundError: If either cell is not traversable, the goal is
                unreachable, or the expansion cap was hit
        """
        endpoints = {"start": (start.col, start.row), "goal": (goal.col, goal.row)}
        for label, cell in (("start", start), ("goal", goal)):
            if cell not in self.graph:
                raise PathNotFoundError(
                    f"{label.capitalize()} cell ({cell.col}, {cell.row}) is not traversable",
                    **endpoints,
                    details={"reason": f"{label}_blocked"},
                )

        with PerformanceTimer("astar_search", target=logger) as timer:
            counter = itertools.count()
            open_set: List[Tuple[float, int, GridCell]] = [
                (self._heuristic(start, goal), next(counter), start)
            ]
            came_from: Dict[GridCell, GridCell] = {}
            g_score: Dict[GridCell, float] = {start: 0.0}
            closed_set: Set[GridCell] = set()
            expansions = 0
            limit = self.config.max_expansions

            while open_set:
                _, _, current = heapq.heappop(open_set)

                if current in closed_set:
                    continue

                if current == goal:
                    path = Path(
                        cells=self._reconstruct(came_from, current),
                        total_cost=g_score[current],
                        expansions=expansions,
                    )
                    break

                closed_set.add(current)
                expansions += 1
                if limit is not None and expansions > limit:
                    raise PathNotFoundError(
                        f"Search exceeded {limit} expansions",
                        **endpoints,
                        details={"reason": "expansion_limit", "expansions": expansions},
                    )

                for neighbor, attrs in self.graph[current].items():
                    if neighbor in closed_set:
                        continue
                    tentative_g = g_score[current] + attrs["weight"]
                    if tentative_g < g_score.get(neighbor, float("inf")):
                        came_from[neighbor] = current
                        g_score[neighbor] = tentative_g
                        f = tentative_g + self._heuristic(neighbor, goal)
                        heapq.heappush(open_set, (f, next(counter), neighbor))
            else:
                raise PathNotFoundError(
                    f"No path from ({start.col}, {start.row}) to ({goal.col}, {goal.row})",
                    **endpoints,
                    details={"reason": "unreachable", "expansions": expansions},
                )

        path.metadata["duration_ms"] = timer.duration_ms
        return path

    @staticmethod
    def _reconstruct(came_from: Dict[GridCell, GridCell], current: GridCell) -> List[GridCell]:
        cells = [current]
        while current in came_from:
            current = came_from[current]
            cells.append(current)
        cells.reverse()
        return cells
