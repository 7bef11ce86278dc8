"""
Tests for the road network arena.
"""

import pytest

from wayfield.core.errors import AmbiguousJunctionError, InvalidGeometryError, ValidationError
from wayfield.core.roads import IntersectionResolver, RoadNetwork, SplineBuilder
from wayfield.models.road import RoadSegmentData


@pytest.fixture
def network():
    """Create a network with explicit parameters."""
    return RoadNetwork(
        builder=SplineBuilder(smoothing_rounds=2, base_width=24.0, width_per_importance=8.0),
        resolver=IntersectionResolver(merge_radius=20.0),
    )


@pytest.fixture
def crossing_network(network):
    """Create a network with two crossing roads."""
    network.upsert(RoadSegmentData.straight(1, (0, 100), (200, 100)))
    network.upsert(RoadSegmentData.straight(2, (100, 0), (100, 200)))
    return network


class TestRoadNetwork:
    """Tests for RoadNetwork edits."""

    def test_empty(self, network):
        assert len(network) == 0
        assert network.version == 0
        assert network.bounds() is None
        assert network.snapshot((0, 0, 100, 100)).is_empty

    def test_upsert(self, network):
        """Test adding a segment builds its spline."""
        change = network.upsert(RoadSegmentData.straight(1, (0, 0), (100, 0)))

        assert 1 in network
        assert network.get_spline(1).end == (100.0, 0.0)
        assert network.version == 1
        assert change.segment_ids == frozenset({1})
        assert change.bounds == (-12.0, -12.0, 112.0, 12.0)
        assert change.topology_changed

    def test_crossing_creates_intersection(self, crossing_network):
        """Test junctions are resolved on edit."""
        assert len(crossing_network.intersections) == 1
        junction = crossing_network.intersections[1]
        assert junction.spline_ids == frozenset({1, 2})
        assert [j.id for j in crossing_network.intersections_of(1)] == [1]

    def test_replace_covers_old_and_new(self, crossing_network):
        """Test the change region covers old and new geometry."""
        change = crossing_network.upsert(RoadSegmentData.straight(2, (400, 0), (400, 200)))

        min_x, min_y, max_x, max_y = change.bounds
        assert min_x <= 88.0
        assert max_x >= 412.0
        assert crossing_network.intersections == {}
        assert change.topology_changed

    def test_geometry_only_change(self, crossing_network):
        """Test moving a road end without touching junctions."""
        change = crossing_network.upsert(RoadSegmentData.straight(1, (0, 100), (250, 100)))

        assert not change.topology_changed
        assert len(crossing_network.intersections) == 1

    def test_invalid_geometry_leaves_state(self, crossing_network):
        """Test a rejected edit keeps the network unchanged."""
        version = crossing_network.version
        with pytest.raises(InvalidGeometryError):
            crossing_network.upsert(RoadSegmentData.curved(3, [(5, 5), (5, 5)]))

        assert 3 not in crossing_network
        assert crossing_network.version == version
        assert len(crossing_network.intersections) == 1

    def test_ambiguous_junction_leaves_state(self, network):
        """Test an ambiguous edit is rejected as a whole."""
        network.upsert(RoadSegmentData.straight(1, (0, 100), (300, 100)))
        segments = [
            RoadSegmentData.straight(i, (x, 0), (x, 200))
            for i, x in enumerate((100, 118, 136, 154), start=2)
        ]
        with pytest.raises(AmbiguousJunctionError):
            network.apply(network.plan_upsert(segments))

        assert len(network) == 1
        assert network.intersections == {}

    def test_remove(self, crossing_network):
        """Test removing a segment drops its junctions."""
        change = crossing_network.remove(2)

        assert 2 not in crossing_network
        assert crossing_network.intersections == {}
        assert change.topology_changed
        assert change.bounds[1] <= -12.0

    def test_remove_unknown(self, network):
        with pytest.raises(ValidationError):
            network.remove(42)

    def test_plan_does_not_mutate(self, crossing_network):
        """Test planning alone leaves the network as it was."""
        edit = crossing_network.plan_remove([1])

        assert 1 in crossing_network
        assert edit.removed == [1]
        assert 1 not in edit.segments

    def test_query(self, crossing_network):
        """Test region queries return splines and junctions by id."""
        splines, intersections = crossing_network.query((90, 90, 110, 110))
        assert [s.id for s in splines] == [1, 2]
        assert [j.id for j in intersections] == [1]

        splines, intersections = crossing_network.query((0, 90, 10, 110))
        assert [s.id for s in splines] == [1]
        assert intersections == []

    def test_snapshot_is_immutable_view(self, crossing_network):
        """Test a snapshot is not affected by later edits."""
        snapshot = crossing_network.snapshot((0, 0, 200, 200))
        crossing_network.remove(2)

        assert [s.id for s in snapshot.splines] == [1, 2]
        assert len(snapshot.intersections) == 1

    def test_bounds(self, crossing_network):
        assert crossing_network.bounds() == (-12.0, -12.0, 212.0, 212.0)


class TestJunctionIds:
    """Tests for junction ids across edits."""

    @pytest.fixture
    def long_network(self, network):
        """A long east-west road crossed once near its east end."""
        network.upsert(RoadSegmentData.straight(1, (0, 100), (400, 100)))
        network.upsert(RoadSegmentData.straight(2, (300, 0), (300, 200)))
        return network

    def test_existing_id_kept_when_junction_added_west(self, long_network):
        """Test a new junction left of an existing one gets a fresh id."""
        change = long_network.upsert(RoadSegmentData.straight(3, (100, 0), (100, 200)))

        east = long_network.intersections[1]
        west = long_network.intersections[2]
        assert east.position[0] == pytest.approx(300.0)
        assert east.spline_ids == frozenset({1, 2})
        assert west.position[0] == pytest.approx(100.0)
        assert west.spline_ids == frozenset({1, 3})

        # The untouched junction is not part of the changed region
        assert change.bounds[2] < 300.0 - east.radius

    def test_removed_id_not_reused(self, long_network):
        long_network.upsert(RoadSegmentData.straight(3, (100, 0), (100, 200)))
        long_network.remove(3)
        assert sorted(long_network.intersections) == [1]

        long_network.upsert(RoadSegmentData.straight(3, (100, 0), (100, 200)))
        assert sorted(long_network.intersections) == [1, 3]

    def test_moved_junction_keeps_id(self, long_network):
        """Test a junction nudged within the merge radius keeps its id."""
        long_network.upsert(RoadSegmentData.straight(2, (305, 0), (305, 200)))

        (junction,) = long_network.intersections.values()
        assert junction.id == 1
        assert junction.position[0] == pytest.approx(305.0)
