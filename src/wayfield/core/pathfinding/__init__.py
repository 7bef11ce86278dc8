"""
Pathfinding over the world grid.

This module provides:
- A traversability graph of grid cells with road-aware edge weights
- A* search with an admissible hex-distance heuristic
"""

from wayfield.core.pathfinding.astar import AStarPathfinder, Path, PathfinderConfig
from wayfield.core.pathfinding.index import STEP_LENGTH, PathfindingIndex

__all__ = [
    "AStarPathfinder",
    "Path",
    "PathfinderConfig",
    "STEP_LENGTH",
    "PathfindingIndex",
]
