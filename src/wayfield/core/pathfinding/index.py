"""
Cell graph used for unit movement.

Nodes are the traversable cells of the world, connected to their six hex
neighbours. A cell costs its biome movement cost, reduced by the road factor
when its center lies on a road or junction. Edge weights are the step length
times the mean cost of the two cells and are refreshed per cell whenever
roads or biomes change.
"""

import logging
from typing import Iterable, List, Optional

import networkx as nx

from wayfield.core.config import settings
from wayfield.core.grid import cells_in_bounds, expand_bounds
from wayfield.core.pathfinding.astar import AStarPathfinder, Path, PathfinderConfig
from wayfield.core.roads.network import RoadNetwork
from wayfield.core.terrain import TerrainLayer
from wayfield.models.grid import BIOME_MOVEMENT_COSTS, CELL_HEIGHT, CELL_WIDTH, Bounds, GridCell
from wayfield.models.world import WorldConfig

logger = logging.getLogger(__name__)

STEP_LENGTH = 1.0


class PathfindingIndex:
    """
    Traversability graph over grid cells.

    Usage:
        index = PathfindingIndex(world, terrain, network)
        path = index.find_path(GridCell(0, 0), GridCell(10, 4))
    """

    def __init__(
        self,
        world: WorldConfig,
        terrain: TerrainLayer,
        network: RoadNetwork,
        road_cost_factor: Optional[float] = None,
        max_expansions: Optional[int] = None,
    ):
        """
        Initialize and build the graph.

        Args:
            world: World configuration bounding the graph
            terrain: Biome layer
            network: Road network
            road_cost_factor: Cost multiplier on road cells, in (0, 1)
            max_expansions: Optional A* expansion cap
        """
        self.world = world
        self.terrain = terrain
        self.network = network
        self.road_cost_factor = (
            settings.road_cost_factor if road_cost_factor is None else road_cost_factor
        )
        if not 0 < self.road_cost_factor < 1:
            raise ValueError("road_cost_factor must be between 0 and 1")

        self.graph = nx.Graph()
        cheapest = min(c for c in BIOME_MOVEMENT_COSTS.values() if c is not None)
        self.pathfinder = AStarPathfinder(
            self.graph,
            PathfinderConfig(
                min_step_cost=STEP_LENGTH * cheapest * self.road_cost_factor,
                max_expansions=settings.max_expansions if max_expansions is None else max_expansions,
            ),
        )
        self.build()

    def build(self) -> None:
        """Rebuild the whole graph from the terrain and road layers."""
        self.graph.clear()

        road_cells = set()
        for spline in self.network.splines.values():
            for cell in cells_in_bounds(spline.footprint_bounds(), self.world):
                if spline.covers(*cell.center()):
                    road_cells.add(cell)

        junction_cells = {}
        for junction in sorted(self.network.intersections.values(), key=lambda j: j.id):
            for cell in cells_in_bounds(junction.bounds, self.world):
                if junction.contains(*cell.center()):
                    junction_cells.setdefault(cell, junction.id)

        for col in range(self.world.columns):
            for row in range(self.world.rows):
                cell = GridCell(col, row)
                biome_cost = self.terrain.movement_cost(cell)
                if biome_cost is None:
                    continue
                junction_id = junction_cells.get(cell)
                on_road = cell in road_cells or junction_id is not None
                self._set_node(cell, biome_cost, on_road, junction_id)

        for cell in list(self.graph.nodes):
            self._connect(cell)

        logger.info(
            f"Pathfinding graph built: {self.graph.number_of_nodes()} cells, "
            f"{self.graph.number_of_edges()} edges"
        )

    def _set_node(
        self, cell: GridCell, biome_cost: float, on_road: bool, junction_id: Optional[int]
    ) -> None:
        cost = biome_cost * self.road_cost_factor if on_road else biome_cost
        self.graph.add_node(cell, cost=cost, on_road=on_road, junction=junction_id)

    def _connect(self, cell: GridCell) -> None:
        cost = self.graph.nodes[cell]["cost"]
        for neighbor in cell.neighbors():
            if neighbor in self.graph:
                other = self.graph.nodes[neighbor]["cost"]
                self.graph.add_edge(cell, neighbor, weight=STEP_LENGTH * (cost + other) / 2.0)

    def is_on_road(self, cell: GridCell) -> bool:
        """Whether a cell center lies on a road surface."""
        x, y = cell.center()
        splines = self.network.index.query((x, y, x, y))
        return any(s.covers(x, y) for s in splines)

    def junction_at(self, cell: GridCell) -> Optional[int]:
        """Id of the junction covering a cell center, if any."""
        x, y = cell.center()
        covering = [j.id for j in self.network.intersections.values() if j.contains(x, y)]
        return min(covering) if covering else None

    def cell_cost(self, cell: GridCell) -> Optional[float]:
        """Current movement cost of a cell, None when impassable."""
        if cell in self.graph:
            return self.graph.nodes[cell]["cost"]
        return None

    def refresh_cells(self, cells: Iterable[GridCell]) -> int:
        """
        Recompute nodes and incident edge weights of cells.

        Cells that became impassable are removed, cells that became passable
        are added and connected.

        Args:
            cells: Cells whose road or biome data changed

        Returns:
            Number of refreshed cells
        """
        refreshed: List[GridCell] = []
        for cell in cells:
            biome_cost = self.terrain.movement_cost(cell)
            if biome_cost is None:
                if cell in self.graph:
                    self.graph.remove_node(cell)
                continue
            junction_id = self.junction_at(cell)
            on_road = junction_id is not None or self.is_on_road(cell)
            self._set_node(cell, biome_cost, on_road, junction_id)
            refreshed.append(cell)

        for cell in refreshed:
            self._connect(cell)

        logger.debug(f"Refreshed {len(refreshed)} pathfinding cells")
        return len(refreshed)

    def refresh_bounds(self, bounds: Bounds) -> int:
        """Refresh every cell whose center lies in a region (plus one cell)."""
        grown = expand_bounds(bounds, max(CELL_WIDTH, CELL_HEIGHT))
        return self.refresh_cells(cells_in_bounds(grown, self.world))

    def find_path(self, start: GridCell, goal: GridCell) -> Path:
        """
        Cheapest path between two cells.

        Raises:
            PathNotFoundError: If no path exists
        """
        path = self.pathfinder.find_path(start, goal)
        junctions: List[int] = []
        for cell in path.cells:
            junction_id = self.graph.nodes[cell]["junction"]
            if junction_id is not None and (not junctions or junctions[-1] != junction_id):
                junctions.append(junction_id)
        path.metadata["junctions"] = junctions
        return path
