"""
Tests for world persistence.
"""

import pytest

from wayfield.core.errors import RegionUnavailableError
from wayfield.core.storage import InMemoryWorldStore, PersistenceGateway
from wayfield.models.grid import BiomeType, GridCell
from wayfield.models.road import RoadSegmentData
from wayfield.models.world import WorldConfig


class FlakyStore(InMemoryWorldStore):
    """In-memory store whose segment reads fail a number of times."""

    def __init__(self, failures, error=ConnectionError):
        super().__init__(WorldConfig.from_chunk_grid(2, 2))
        self.failures = failures
        self.error = error
        self.calls = 0

    def load_segments(self, bounds):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error("store unreachable")
        return super().load_segments(bounds)


@pytest.fixture
def store():
    store = InMemoryWorldStore()
    store.commit_segments(
        [
            RoadSegmentData.straight(2, (0, 0), (100, 0)),
            RoadSegmentData.straight(1, (500, 500), (600, 500)),
        ]
    )
    return store


class TestInMemoryWorldStore:
    """Tests for InMemoryWorldStore."""

    def test_world_config(self):
        store = InMemoryWorldStore()
        assert store.load_world_config() is None
        config = WorldConfig.from_chunk_grid(3, 3)
        store.save_world_config(config)
        assert store.load_world_config() == config

    def test_load_segments_by_region(self, store):
        """Test region reads return overlapping segments by id."""
        assert [s.id for s in store.load_segments((-10, -10, 1000, 1000))] == [1, 2]
        assert [s.id for s in store.load_segments((50, -5, 60, 5))] == [2]
        assert store.load_segments((2000, 2000, 3000, 3000)) == []

    def test_commit_replaces(self, store):
        store.commit_segments([RoadSegmentData.straight(2, (0, 0), (0, 100))])
        (segment,) = store.load_segments((-5, 50, 5, 60))
        assert segment.points[-1] == (0, 100)

    def test_delete_segments(self, store):
        store.delete_segments([2, 99])
        assert [s.id for s in store.load_segments((-10, -10, 1000, 1000))] == [1]

    def test_biomes(self):
        store = InMemoryWorldStore()
        store.commit_biomes({GridCell(1, 1): BiomeType.DESERT, GridCell(20, 20): BiomeType.LAKE})

        x, y = GridCell(1, 1).center()
        assert store.load_biomes((x - 1, y - 1, x + 1, y + 1)) == {GridCell(1, 1): BiomeType.DESERT}


class TestPersistenceGateway:
    """Tests for PersistenceGateway."""

    def test_passthrough(self, store):
        gateway = PersistenceGateway(store, sleep=lambda s: None)
        gateway.commit_segments([RoadSegmentData.straight(3, (0, 0), (0, 50))])
        assert [s.id for s in gateway.load_segments((-10, -10, 1000, 1000))] == [1, 2, 3]

        gateway.delete_segments([3])
        gateway.commit_biomes({GridCell(0, 0): BiomeType.TUNDRA})
        assert gateway.load_biomes((-1, -1, 1, 1)) == {GridCell(0, 0): BiomeType.TUNDRA}

    def test_transient_failure_retried(self):
        """Test transient errors are retried with backoff."""
        delays = []
        store = FlakyStore(failures=2)
        gateway = PersistenceGateway(store, max_attempts=3, base_delay=0.1, sleep=delays.append)

        assert gateway.load_segments((0, 0, 10, 10)) == []
        assert store.calls == 3
        assert delays == [pytest.approx(0.1), pytest.approx(0.2)]

    def test_exhausted_retries_region_unavailable(self):
        """Test a persistent failure names the failing region."""
        store = FlakyStore(failures=10)
        gateway = PersistenceGateway(store, max_attempts=2, base_delay=0.0, sleep=lambda s: None)

        with pytest.raises(RegionUnavailableError) as exc_info:
            gateway.load_segments((0, 0, 10, 10))

        error = exc_info.value
        assert store.calls == 2
        assert error.details["region"] == [0, 0, 10, 10]
        assert error.details["operation"] == "load_segments"
        assert error.details["cause"] == "ConnectionError"
        assert isinstance(error.__cause__, ConnectionError)

    def test_non_transient_not_retried(self):
        store = FlakyStore(failures=10, error=ValueError)
        gateway = PersistenceGateway(store, max_attempts=5, sleep=lambda s: None)

        with pytest.raises(RegionUnavailableError):
            gateway.load_segments((0, 0, 10, 10))
        assert store.calls == 1

    def test_world_config(self):
        gateway = PersistenceGateway(InMemoryWorldStore())
        assert gateway.load_world_config() is None
        gateway.save_world_config(WorldConfig.from_chunk_grid(1, 1))
        assert gateway.load_world_config().chunks_x == 1
