"""
Per-client chunk streaming.

Each connected client has a session holding its streaming configuration,
the chunk versions already sent to it and the chunks it keeps alive in the
shared cache. Requests inside the cooldown window are dropped silently.
Accepted requests serve the chunks within the view radius, generating
cache misses synchronously, and release chunks beyond the unload distance.
Disconnected sessions keep their chunks for a grace period so a quick
reconnect does not trigger regeneration.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from wayfield.core.config import settings
from wayfield.core.errors import ConfigurationError, RateLimitedError, ValidationError
from wayfield.core.grid import chunk_of, chunks_within_radius
from wayfield.core.logging_config import LogContext
from wayfield.core.streaming.cache import WorldCache
from wayfield.models.grid import GridCell, TerrainChunkId
from wayfield.models.sdf import TerrainChunkSdfData
from wayfield.models.world import StreamingConfig, WorldConfig

if TYPE_CHECKING:
    from wayfield.core.sdf.scheduler import ChunkScheduler

logger = logging.getLogger(__name__)

ChunkBatch = List[Tuple[TerrainChunkId, TerrainChunkSdfData]]


class ClientState(str, Enum):
    """Request state of a client."""

    IDLE = "idle"
    REQUESTING = "requesting"


@dataclass
class ClientSession:
    """
    Streaming state of one client.

    Attributes:
        client_id: Client identifier
        config: Streaming configuration of the connection
        sent: Version of each chunk last sent to the client
        interest: Chunks the client keeps alive in the cache
        last_cell: Cell of the last accepted request
        disconnected_at: When the client disconnected, None while connected
    """

    client_id: str
    config: StreamingConfig
    sent: Dict[TerrainChunkId, int] = field(default_factory=dict)
    interest: Set[TerrainChunkId] = field(default_factory=set)
    last_cell: Optional[GridCell] = None
    disconnected_at: Optional[float] = None

    @property
    def connected(self) -> bool:
        return self.disconnected_at is None

    def state(self, now: float) -> ClientState:
        """Requesting while the cooldown of the last accepted request runs."""
        if now - self.config.last_request < self.config.request_cooldown:
            return ClientState.REQUESTING
        return ClientState.IDLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client_id": self.client_id,
            "view_radius": self.config.view_radius,
            "unload_distance": self.config.unload_distance,
            "request_cooldown": self.config.request_cooldown,
            "last_request": self.config.last_request,
            "sent_chunks": len(self.sent),
            "interest": len(self.interest),
            "connected": self.connected,
        }


class StreamingController:
    """
    Serves chunk data to clients within their view radius.

    Usage:
        controller = StreamingController(world, cache, scheduler)
        controller.connect("alice", now=0.0)
        batch = controller.request_chunks("alice", GridCell(40, 40), now=0.0)
    """

    def __init__(
        self,
        world: WorldConfig,
        cache: WorldCache,
        scheduler: "ChunkScheduler",
        disconnect_grace: Optional[float] = None,
        max_idle_seconds: Optional[float] = None,
    ):
        """
        Initialize the controller.

        Args:
            world: World configuration
            cache: Shared chunk cache
            scheduler: Chunk generation scheduler
            disconnect_grace: Seconds a disconnected session keeps its chunks
            max_idle_seconds: Seconds without requests after which a connected
                client is treated as gone; None disables the timer
        """
        self.world = world
        self.cache = cache
        self.scheduler = scheduler
        self.disconnect_grace = (
            settings.disconnect_grace_seconds if disconnect_grace is None else disconnect_grace
        )
        self.max_idle_seconds = (
            settings.max_idle_seconds if max_idle_seconds is None else max_idle_seconds
        )
        self.sessions: Dict[str, ClientSession] = {}

    def _default_config(self) -> StreamingConfig:
        return StreamingConfig(
            view_radius=settings.view_radius,
            unload_distance=settings.unload_distance,
            request_cooldown=settings.request_cooldown,
        )

    def connect(
        self, client_id: str, now: float, config: Optional[StreamingConfig] = None
    ) -> ClientSession:
        """
        Connect a client, restoring its session if still within grace.

        Args:
            client_id: Client identifier
            now: Current time in seconds
            config: Streaming configuration (defaults from settings)

        Returns:
            Client session
        """
        session = self.sessions.get(client_id)
        if session is not None and not session.connected:
            session.disconnected_at = None
            if config is not None:
                session.config = config.model_copy()
            logger.info(f"Client {client_id} reconnected with {len(session.interest)} chunks kept")
            return session
        if session is not None:
            return session

        session = ClientSession(
            client_id=client_id, config=(config or self._default_config()).model_copy()
        )
        self.sessions[client_id] = session
        logger.info(f"Client {client_id} connected")
        return session

    def disconnect(self, client_id: str, now: float) -> None:
        """Mark a client disconnected; its chunks stay cached for the grace period."""
        session = self.sessions.get(client_id)
        if session is None or not session.connected:
            return
        session.disconnected_at = now
        logger.info(f"Client {client_id} disconnected")
        if self.disconnect_grace <= 0:
            self._expire(session)

    def configure_client(self, client_id: str, **changes: Any) -> StreamingConfig:
        """
        Update a client's streaming configuration.

        Args:
            client_id: Client identifier
            **changes: StreamingConfig fields to change

        Returns:
            New configuration

        Raises:
            ValidationError: If the client is unknown
            ConfigurationError: If the new configuration is invalid
        """
        session = self._require(client_id)
        values = session.config.model_dump()
        values.update(changes)
        try:
            session.config = StreamingConfig(**values)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid streaming configuration for {client_id}: {e.errors()[0]['msg']}",
                config_key=",".join(sorted(changes)),
                details={"changes": changes},
            ) from e
        return session.config

    def client_state(self, client_id: str, now: float) -> ClientState:
        return self._require(client_id).state(now)

    def check_rate_limit(self, client_id: str, now: float) -> None:
        """
        Raise if a request from the client would be dropped.

        Raises:
            RateLimitedError: If the cooldown has not elapsed
        """
        session = self._require(client_id)
        if session.state(now) == ClientState.REQUESTING:
            retry_after = session.config.last_request + session.config.request_cooldown - now
            raise RateLimitedError(
                f"Client {client_id} is rate limited",
                client_id=client_id,
                retry_after=retry_after,
            )

    def request_chunks(self, client_id: str, client_cell: GridCell, now: float) -> ChunkBatch:
        """
        Serve the chunks around a client.

        Args:
            client_id: Client identifier
            client_cell: Client's current cell
            now: Current time in seconds

        Returns:
            Chunks that are new to the client or newer than the copy it has,
            nearest first; empty when the request is rate limited

        Raises:
            ValidationError: If the client is not connected
        """
        session = self._require(client_id)
        if session.state(now) == ClientState.REQUESTING:
            logger.debug(f"Dropped request from {client_id} inside cooldown")
            return []

        with LogContext(client_id=client_id):
            session.config.last_request = now
            session.last_cell = client_cell
            center = chunk_of(client_cell)
            in_range = chunks_within_radius(center, session.config.view_radius, self.world)

            for chunk_id in sorted(session.interest):
                if center.chebyshev_distance(chunk_id) > session.config.unload_distance:
                    self._release(session, chunk_id)

            for chunk_id in in_range:
                if chunk_id not in session.interest:
                    session.interest.add(chunk_id)
                    self.cache.add_interest(chunk_id, client_id)

            misses = [
                c for c in in_range if self.cache.lookup(c) is None or self.cache.is_dirty(c)
            ]
            if misses:
                self.scheduler.generate_now(misses)

            batch: ChunkBatch = []
            for chunk_id in in_range:
                artifact = self.cache.get(chunk_id)
                if artifact is None:
                    logger.warning(f"Chunk {chunk_id.storage_key()} unavailable for {client_id}")
                    continue
                sent_version = session.sent.get(chunk_id)
                if sent_version is None or artifact.version > sent_version:
                    batch.append((chunk_id, artifact.sdf))
                    session.sent[chunk_id] = artifact.version

            logger.debug(
                f"Served {len(batch)} chunks to {client_id} around {center.storage_key()} "
                f"({len(misses)} generated)"
            )
        return batch

    def unload_eligible(self, client_id: str) -> List[TerrainChunkId]:
        """Chunks the client holds beyond its unload distance from its last cell."""
        session = self._require(client_id)
        if session.last_cell is None:
            return []
        center = chunk_of(session.last_cell)
        return sorted(
            c
            for c in session.interest
            if center.chebyshev_distance(c) > session.config.unload_distance
        )

    def sweep(self, now: float) -> List[str]:
        """
        Expire sessions past their grace period or idle timer.

        Args:
            now: Current time in seconds

        Returns:
            Ids of expired clients
        """
        expired = []
        for session in list(self.sessions.values()):
            if session.disconnected_at is not None:
                if now - session.disconnected_at >= self.disconnect_grace:
                    expired.append(session.client_id)
            elif self.max_idle_seconds is not None and not math.isinf(session.config.last_request):
                if now - session.config.last_request >= self.max_idle_seconds:
                    logger.warning(
                        f"Client {session.client_id} idle for "
                        f"{now - session.config.last_request:.1f}s, expiring"
                    )
                    expired.append(session.client_id)

        for client_id in expired:
            self._expire(self.sessions[client_id])
        return expired

    def _release(self, session: ClientSession, chunk_id: TerrainChunkId) -> None:
        session.interest.discard(chunk_id)
        session.sent.pop(chunk_id, None)
        self.cache.remove_interest(chunk_id, session.client_id)

    def _expire(self, session: ClientSession) -> None:
        for chunk_id in sorted(session.interest):
            self._release(session, chunk_id)
        self.sessions.pop(session.client_id, None)
        logger.info(f"Client {session.client_id} session expired")

    def _require(self, client_id: str) -> ClientSession:
        session = self.sessions.get(client_id)
        if session is None or not session.connected:
            raise ValidationError(
                f"Client {client_id} is not connected",
                field="client_id",
                details={"client_id": client_id},
            )
        return session
