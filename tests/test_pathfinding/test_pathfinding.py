"""
Tests for A* pathfinding over the cell graph.
"""

import networkx as nx
import pytest

from wayfield.core.errors import PathNotFoundError
from wayfield.core.pathfinding import AStarPathfinder, PathfinderConfig, PathfindingIndex
from wayfield.core.roads import IntersectionResolver, RoadNetwork, SplineBuilder
from wayfield.core.terrain import TerrainLayer
from wayfield.models.grid import CELL_HEIGHT, CELL_WIDTH, BiomeType, GridCell
from wayfield.models.road import RoadSegmentData
from wayfield.models.world import WorldConfig


@pytest.fixture
def world():
    """A single chunk world of 16x16 cells."""
    return WorldConfig.from_chunk_grid(1, 1)


@pytest.fixture
def network():
    return RoadNetwork(
        builder=SplineBuilder(smoothing_rounds=2, base_width=24.0, width_per_importance=8.0),
        resolver=IntersectionResolver(merge_radius=20.0),
    )


@pytest.fixture
def walled_terrain(world):
    """A lake wall at column 8 with a gap at row 3, and a wetland patch."""
    overrides = {GridCell(8, row): BiomeType.LAKE for row in range(16) if row != 3}
    for col in range(3, 7):
        for row in range(6, 13):
            overrides[GridCell(col, row)] = BiomeType.WETLAND
    return TerrainLayer(world, overrides)


def _index(world, terrain, network, **kwargs):
    return PathfindingIndex(world, terrain, network, road_cost_factor=0.5, **kwargs)


def _path_weight(graph, cells):
    return sum(graph[a][b]["weight"] for a, b in zip(cells[:-1], cells[1:]))


class TestPathfindingIndex:
    """Tests for PathfindingIndex."""

    def test_graph_shape(self, world, network):
        """Test every land cell is a node linked to its hex neighbours."""
        index = _index(world, TerrainLayer(world), network)

        assert index.graph.number_of_nodes() == 256
        assert index.graph.degree(GridCell(5, 5)) == 6
        assert index.graph.degree(GridCell(0, 0)) < 6
        assert index.cell_cost(GridCell(5, 5)) == 1.0

    def test_impassable_cells_excluded(self, world, network, walled_terrain):
        index = _index(world, walled_terrain, network)

        assert GridCell(8, 0) not in index.graph
        assert GridCell(8, 3) in index.graph
        assert index.cell_cost(GridCell(8, 0)) is None
        assert index.cell_cost(GridCell(4, 8)) == 3.0

    def test_matches_dijkstra(self, world, network, walled_terrain):
        """Test A* finds a path as cheap as Dijkstra's."""
        index = _index(world, walled_terrain, network)
        pairs = [
            (GridCell(2, 10), GridCell(14, 10)),
            (GridCell(0, 0), GridCell(15, 15)),
            (GridCell(3, 5), GridCell(6, 14)),
        ]
        for start, goal in pairs:
            path = index.find_path(start, goal)
            expected = nx.dijkstra_path_length(index.graph, start, goal, weight="weight")

            assert path.cells[0] == start
            assert path.cells[-1] == goal
            assert path.total_cost == pytest.approx(expected)
            assert _path_weight(index.graph, path.cells) == pytest.approx(path.total_cost)

    def test_path_goes_through_gap(self, world, network, walled_terrain):
        index = _index(world, walled_terrain, network)
        path = index.find_path(GridCell(2, 10), GridCell(14, 10))
        assert GridCell(8, 3) in path.cells

    def test_consecutive_cells_are_neighbours(self, world, network, walled_terrain):
        index = _index(world, walled_terrain, network)
        path = index.find_path(GridCell(0, 15), GridCell(15, 0))
        for a, b in zip(path.cells[:-1], path.cells[1:]):
            assert a.distance_to(b) == 1

    def test_same_cell(self, world, network):
        index = _index(world, TerrainLayer(world), network)
        path = index.find_path(GridCell(4, 4), GridCell(4, 4))
        assert path.cells == [GridCell(4, 4)]
        assert path.total_cost == 0.0
        assert path.steps == 0

    def test_unreachable(self, world, network):
        """Test a full lake wall separates the world."""
        terrain = TerrainLayer(world, {GridCell(8, row): BiomeType.LAKE for row in range(16)})
        index = _index(world, terrain, network)

        with pytest.raises(PathNotFoundError) as exc_info:
            index.find_path(GridCell(2, 2), GridCell(14, 2))
        assert exc_info.value.details["reason"] == "unreachable"
        assert exc_info.value.details["start"] == [2, 2]

    def test_blocked_goal(self, world, network):
        """Test an ocean goal is rejected before searching."""
        terrain = TerrainLayer(world, {GridCell(10, 10): BiomeType.OCEAN})
        index = _index(world, terrain, network)

        with pytest.raises(PathNotFoundError) as exc_info:
            index.find_path(GridCell(2, 2), GridCell(10, 10))
        assert exc_info.value.details["reason"] == "goal_blocked"

    def test_outside_world(self, world, network):
        index = _index(world, TerrainLayer(world), network)
        with pytest.raises(PathNotFoundError):
            index.find_path(GridCell(-1, 0), GridCell(3, 3))

    def test_expansion_limit(self, world, network):
        index = _index(world, TerrainLayer(world), network, max_expansions=3)
        with pytest.raises(PathNotFoundError) as exc_info:
            index.find_path(GridCell(0, 0), GridCell(15, 15))
        assert exc_info.value.details["reason"] == "expansion_limit"

    def test_invalid_road_cost_factor(self, world, network):
        with pytest.raises(ValueError):
            PathfindingIndex(world, TerrainLayer(world), network, road_cost_factor=1.0)
        with pytest.raises(ValueError):
            PathfindingIndex(world, TerrainLayer(world), network, road_cost_factor=0.0)


class TestRoadsInGraph:
    """Tests for road and junction costs."""

    @pytest.fixture
    def road_network(self, network):
        y = 5 * CELL_HEIGHT
        network.upsert(RoadSegmentData.straight(1, (0.0, y), (15 * CELL_WIDTH, y), importance=3))
        return network

    def test_road_cells_cheaper(self, world, road_network):
        """Test cells under a road cost the road factor."""
        index = _index(world, TerrainLayer(world), road_network)

        assert index.is_on_road(GridCell(4, 5))
        assert index.cell_cost(GridCell(4, 5)) == 0.5
        assert index.cell_cost(GridCell(5, 5)) == 0.5
        assert index.cell_cost(GridCell(4, 10)) == 1.0
        assert not index.is_on_road(GridCell(4, 10))

    def test_path_prefers_road(self, world, road_network):
        index = _index(world, TerrainLayer(world), road_network)
        path = index.find_path(GridCell(0, 5), GridCell(14, 5))

        assert path.total_cost < 14 * 1.0
        assert path.total_cost == pytest.approx(
            nx.dijkstra_path_length(index.graph, GridCell(0, 5), GridCell(14, 5))
        )
        assert all(index.graph.nodes[c]["on_road"] for c in path.cells)

    def test_refresh_after_road_edit(self, world, network):
        """Test refreshing a region picks up a new road."""
        index = _index(world, TerrainLayer(world), network)
        assert index.cell_cost(GridCell(4, 5)) == 1.0

        y = 5 * CELL_HEIGHT
        change = network.upsert(RoadSegmentData.straight(1, (0.0, y), (15 * CELL_WIDTH, y)))
        refreshed = index.refresh_bounds(change.bounds)

        assert refreshed > 0
        assert index.cell_cost(GridCell(4, 5)) == 0.5
        edge = index.graph[GridCell(4, 5)][GridCell(4, 6)]["weight"]
        assert edge == pytest.approx((0.5 + 1.0) / 2.0)

    def test_junction_metadata(self, world, network):
        """Test paths list the junctions they cross in order."""
        x, y = 8 * CELL_WIDTH, 8 * CELL_HEIGHT
        network.upsert(RoadSegmentData.straight(1, (0.0, y), (15 * CELL_WIDTH, y)))
        network.upsert(RoadSegmentData.straight(2, (x, 0.0), (x, 15 * CELL_HEIGHT)))
        index = _index(world, TerrainLayer(world), network)

        assert index.junction_at(GridCell(8, 8)) == 1
        assert index.junction_at(GridCell(2, 2)) is None

        path = index.find_path(GridCell(8, 0), GridCell(8, 15))
        assert path.metadata["junctions"] == [1]

        away = index.find_path(GridCell(0, 0), GridCell(2, 2))
        assert away.metadata["junctions"] == []

    def test_junction_ids_survive_new_junction(self, world, network):
        """Test cells of an untouched junction keep a valid id after an edit."""
        y = 8 * CELL_HEIGHT
        network.upsert(RoadSegmentData.straight(1, (0.0, y), (15 * CELL_WIDTH, y)))
        network.upsert(
            RoadSegmentData.straight(2, (12 * CELL_WIDTH, 0.0), (12 * CELL_WIDTH, 15 * CELL_HEIGHT))
        )
        index = _index(world, TerrainLayer(world), network)
        assert index.junction_at(GridCell(12, 8)) == 1

        change = network.upsert(
            RoadSegmentData.straight(3, (3 * CELL_WIDTH, 0.0), (3 * CELL_WIDTH, 15 * CELL_HEIGHT))
        )
        index.refresh_bounds(change.bounds)

        for cell in (GridCell(12, 8), GridCell(3, 8)):
            assert index.graph.nodes[cell]["junction"] == index.junction_at(cell)
        assert index.junction_at(GridCell(12, 8)) == 1
        assert index.junction_at(GridCell(3, 8)) == 2

        path = index.find_path(GridCell(12, 0), GridCell(12, 15))
        assert path.metadata["junctions"] == [1]


class TestBiomeRefresh:
    """Tests for refreshing cells after biome edits."""

    def test_cell_becomes_impassable_and_back(self, world, network):
        terrain = TerrainLayer(world)
        index = _index(world, terrain, network)
        cell = GridCell(5, 5)

        changed = terrain.set_biomes([(cell, BiomeType.LAKE)])
        index.refresh_cells(changed)
        assert cell not in index.graph

        changed = terrain.set_biomes([(cell, BiomeType.GRASSLAND)])
        assert index.refresh_cells(changed) == 1
        assert index.cell_cost(cell) == 1.0
        assert index.graph.degree(cell) == 6

    def test_cost_change_updates_edges(self, world, network):
        terrain = TerrainLayer(world)
        index = _index(world, terrain, network)
        cell = GridCell(5, 5)

        index.refresh_cells(terrain.set_biomes([(cell, BiomeType.DESERT)]))
        assert index.cell_cost(cell) == 2.0
        for neighbor in cell.neighbors():
            assert index.graph[cell][neighbor]["weight"] == pytest.approx(1.5)


class TestAStarPathfinder:
    """Tests for the bare A* search."""

    def test_weighted_graph(self):
        """Test a detour is taken when the direct edge is expensive."""
        a, b, c = GridCell(0, 0), GridCell(1, 0), GridCell(2, 0)
        graph = nx.Graph()
        graph.add_edge(a, c, weight=10.0)
        graph.add_edge(a, b, weight=1.0)
        graph.add_edge(b, c, weight=1.0)

        path = AStarPathfinder(graph, PathfinderConfig(min_step_cost=0.0)).find_path(a, c)
        assert path.cells == [a, b, c]
        assert path.total_cost == 2.0

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            PathfinderConfig(min_step_cost=-1)
        with pytest.raises(ValueError):
            PathfinderConfig(max_expansions=0)

    def test_path_geometry(self):
        a, b = GridCell(0, 0), GridCell(1, 0)
        graph = nx.Graph()
        graph.add_edge(a, b, weight=1.0)

        path = AStarPathfinder(graph).find_path(a, b)
        assert path.get_waypoints() == [a.center(), b.center()]
        assert path.get_geometry().length == pytest.approx(CELL_WIDTH, rel=0.5)
        assert path.to_dict()["cells"] == [[0, 0], [1, 0]]
