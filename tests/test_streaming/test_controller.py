"""
Tests for per-client chunk streaming.
"""

import logging

import pytest

from wayfield.core.errors import ConfigurationError, RateLimitedError, ValidationError
from wayfield.core.sdf import ChunkScheduler, ChunkSnapshot, SdfGenerator
from wayfield.core.streaming import ClientState, StreamingController, WorldCache
from wayfield.models.grid import GridCell, TerrainChunkId
from wayfield.models.world import StreamingConfig, WorldConfig


def _cell_in(chunk_x, chunk_y):
    """A cell in the middle of a chunk."""
    return GridCell(chunk_x * 16 + 8, chunk_y * 16 + 8)


@pytest.fixture
def world():
    return WorldConfig.from_chunk_grid(10, 10)


@pytest.fixture
def cache():
    return WorldCache()


@pytest.fixture
def scheduler(cache):
    generator = SdfGenerator(resolution=8, margin=64.0, max_distance=48.0, morphology_radius=0)

    def snapshot(chunk_id):
        return ChunkSnapshot(chunk_id=chunk_id, version=cache.version_of(chunk_id))

    scheduler = ChunkScheduler(generator, cache, snapshot, max_workers=2, max_attempts=1)
    yield scheduler
    scheduler.shutdown()


@pytest.fixture
def controller(world, cache, scheduler):
    return StreamingController(world, cache, scheduler, disconnect_grace=30.0)


@pytest.fixture
def config():
    return StreamingConfig(view_radius=1, unload_distance=2, request_cooldown=0.5)


class TestRequestChunks:
    """Tests for serving chunk requests."""

    def test_first_request(self, controller, cache, config):
        """Test the view radius is generated and served nearest first."""
        controller.connect("alice", now=0.0, config=config)
        batch = controller.request_chunks("alice", _cell_in(5, 5), now=0.0)

        chunk_ids = [chunk_id for chunk_id, _ in batch]
        assert len(chunk_ids) == 9
        assert chunk_ids[0] == TerrainChunkId(5, 5)
        assert set(chunk_ids) == {
            TerrainChunkId(x, y) for x in range(4, 7) for y in range(4, 7)
        }
        assert len(cache) == 9
        assert all(sdf.resolution == (8, 8) for _, sdf in batch)

    def test_cooldown(self, controller, config):
        """Test requests inside the cooldown are dropped without side effects."""
        session = controller.connect("alice", now=0.0, config=config)

        assert controller.request_chunks("alice", _cell_in(5, 5), now=0.0)
        assert session.config.last_request == 0.0

        assert controller.request_chunks("alice", _cell_in(7, 5), now=0.3) == []
        assert session.config.last_request == 0.0
        assert session.last_cell == _cell_in(5, 5)

        controller.request_chunks("alice", _cell_in(5, 5), now=0.6)
        assert session.config.last_request == 0.6

    def test_unchanged_chunks_not_resent(self, controller, config):
        controller.connect("alice", now=0.0, config=config)
        controller.request_chunks("alice", _cell_in(5, 5), now=0.0)
        assert controller.request_chunks("alice", _cell_in(5, 5), now=1.0) == []

    def test_moving_releases_far_chunks(self, controller, cache, config):
        """Test chunks beyond the unload distance are released and evicted."""
        session = controller.connect("alice", now=0.0, config=config)
        controller.request_chunks("alice", _cell_in(5, 5), now=0.0)

        batch = controller.request_chunks("alice", _cell_in(7, 5), now=1.0)

        assert {c.x for c, _ in batch} == {7, 8}
        assert len(batch) == 6
        assert all(c.x >= 5 for c in session.interest)
        assert TerrainChunkId(4, 5) not in cache
        assert TerrainChunkId(5, 5) in cache
        assert TerrainChunkId(4, 5) not in session.sent
        assert controller.unload_eligible("alice") == []

    def test_world_edge(self, controller, config):
        controller.connect("alice", now=0.0, config=config)
        batch = controller.request_chunks("alice", GridCell(0, 0), now=0.0)
        assert sorted(c for c, _ in batch) == [
            TerrainChunkId(0, 0),
            TerrainChunkId(1, 0),
            TerrainChunkId(0, 1),
            TerrainChunkId(1, 1),
        ]

    def test_shared_chunks_survive_one_client_leaving(self, controller, cache, config):
        """Test a chunk stays cached while another client wants it."""
        controller.connect("alice", now=0.0, config=config)
        controller.connect("bob", now=0.0, config=config)
        controller.request_chunks("alice", _cell_in(5, 5), now=0.0)
        controller.request_chunks("bob", _cell_in(3, 5), now=0.0)

        controller.request_chunks("alice", _cell_in(8, 8), now=1.0)

        assert TerrainChunkId(4, 5) in cache
        assert cache.interested_clients(TerrainChunkId(4, 5)) == frozenset({"bob"})

    def test_invalidated_chunk_resent(self, controller, cache, config):
        """Test a dirty chunk is regenerated and sent at its new version."""
        controller.connect("alice", now=0.0, config=config)
        controller.request_chunks("alice", _cell_in(5, 5), now=0.0)

        assert cache.invalidate([TerrainChunkId(5, 5)]) == [TerrainChunkId(5, 5)]
        batch = controller.request_chunks("alice", _cell_in(5, 5), now=1.0)

        assert [c for c, _ in batch] == [TerrainChunkId(5, 5)]
        assert cache.get(TerrainChunkId(5, 5)).version == 1
        assert not cache.is_dirty(TerrainChunkId(5, 5))

    def test_failed_generation_skipped(self, world, cache, config, caplog):
        """Test chunks that fail to generate are left out of the batch."""

        class BrokenGenerator(SdfGenerator):
            def generate(self, snapshot):
                raise RuntimeError("out of memory")

        scheduler = ChunkScheduler(
            BrokenGenerator(resolution=8),
            cache,
            lambda c: ChunkSnapshot(chunk_id=c, version=cache.version_of(c)),
            max_workers=1,
            max_attempts=1,
        )
        try:
            controller = StreamingController(world, cache, scheduler)
            controller.connect("alice", now=0.0, config=config)
            with caplog.at_level(logging.WARNING):
                batch = controller.request_chunks("alice", _cell_in(5, 5), now=0.0)
        finally:
            scheduler.shutdown()

        assert batch == []
        assert len(scheduler.failed) == 9
        assert any("unavailable" in r.getMessage() for r in caplog.records)

    def test_unknown_client(self, controller):
        with pytest.raises(ValidationError):
            controller.request_chunks("nobody", GridCell(0, 0), now=0.0)


class TestSessions:
    """Tests for connection lifecycle."""

    def test_default_config(self, controller):
        session = controller.connect("alice", now=0.0)
        assert session.config.view_radius == 2
        assert session.config.unload_distance == 3
        assert session.to_dict()["connected"] is True

    def test_connect_twice_same_session(self, controller):
        assert controller.connect("alice", now=0.0) is controller.connect("alice", now=1.0)

    def test_config_copied(self, controller, config):
        """Test sessions do not share a configuration object."""
        a = controller.connect("alice", now=0.0, config=config)
        b = controller.connect("bob", now=0.0, config=config)
        assert a.config is not config
        assert a.config is not b.config

    def test_reconnect_within_grace(self, controller, cache, config):
        """Test a quick reconnect keeps chunks and sent versions."""
        session = controller.connect("alice", now=0.0, config=config)
        controller.request_chunks("alice", _cell_in(5, 5), now=0.0)

        controller.disconnect("alice", now=10.0)
        assert controller.sweep(now=20.0) == []
        assert TerrainChunkId(5, 5) in cache
        with pytest.raises(ValidationError):
            controller.request_chunks("alice", _cell_in(5, 5), now=21.0)

        restored = controller.connect("alice", now=25.0)
        assert restored is session
        assert restored.connected
        assert controller.request_chunks("alice", _cell_in(5, 5), now=26.0) == []

    def test_grace_expiry(self, controller, cache, config):
        """Test a disconnected session is dropped after the grace period."""
        controller.connect("alice", now=0.0, config=config)
        controller.request_chunks("alice", _cell_in(5, 5), now=0.0)
        controller.disconnect("alice", now=10.0)

        assert controller.sweep(now=40.0) == ["alice"]
        assert "alice" not in controller.sessions
        assert len(cache) == 0

    def test_zero_grace_expires_immediately(self, world, cache, scheduler, config):
        controller = StreamingController(world, cache, scheduler, disconnect_grace=0.0)
        controller.connect("alice", now=0.0, config=config)
        controller.request_chunks("alice", _cell_in(5, 5), now=0.0)

        controller.disconnect("alice", now=1.0)
        assert "alice" not in controller.sessions
        assert len(cache) == 0

    def test_idle_timer(self, world, cache, scheduler, config):
        """Test silent connected clients expire after the idle timer."""
        controller = StreamingController(world, cache, scheduler, max_idle_seconds=5.0)
        controller.connect("alice", now=0.0, config=config)
        controller.connect("bob", now=0.0, config=config)
        controller.request_chunks("alice", _cell_in(5, 5), now=0.0)

        assert controller.sweep(now=4.0) == []
        assert controller.sweep(now=5.0) == ["alice"]
        assert "bob" in controller.sessions

    def test_disconnect_unknown_is_noop(self, controller):
        controller.disconnect("nobody", now=0.0)
        assert controller.sessions == {}

    def test_connected_follows_disconnect_time(self, controller):
        session = controller.connect("alice", now=0.0)
        controller.disconnect("alice", now=3.0)
        assert not session.connected
        assert session.disconnected_at == 3.0
        assert session.to_dict()["connected"] is False

        controller.connect("alice", now=4.0)
        assert session.connected
        assert session.disconnected_at is None


class TestClientConfiguration:
    """Tests for configuration and rate limit checks."""

    def test_configure(self, controller, config):
        controller.connect("alice", now=0.0, config=config)
        updated = controller.configure_client("alice", view_radius=2, unload_distance=4)
        assert updated.view_radius == 2
        assert controller.sessions["alice"].config.unload_distance == 4

    def test_configure_invalid(self, controller, config):
        """Test an unload distance inside the view radius is rejected."""
        controller.connect("alice", now=0.0, config=config)
        with pytest.raises(ConfigurationError) as exc_info:
            controller.configure_client("alice", view_radius=5)
        assert exc_info.value.details["changes"] == {"view_radius": 5}
        assert controller.sessions["alice"].config.view_radius == 1

    def test_configure_unknown_client(self, controller):
        with pytest.raises(ValidationError):
            controller.configure_client("nobody", view_radius=1)

    def test_client_state(self, controller, config):
        controller.connect("alice", now=0.0, config=config)
        assert controller.client_state("alice", now=0.0) == ClientState.IDLE
        controller.request_chunks("alice", _cell_in(5, 5), now=1.0)
        assert controller.client_state("alice", now=1.1) == ClientState.REQUESTING
        assert controller.client_state("alice", now=1.5) == ClientState.IDLE

    def test_check_rate_limit(self, controller, config):
        controller.connect("alice", now=0.0, config=config)
        controller.check_rate_limit("alice", now=0.0)
        controller.request_chunks("alice", _cell_in(5, 5), now=0.0)

        with pytest.raises(RateLimitedError) as exc_info:
            controller.check_rate_limit("alice", now=0.2)
        assert exc_info.value.details["retry_after"] == pytest.approx(0.3)
        controller.check_rate_limit("alice", now=0.5)
