"""
Worker pool scheduling of chunk generation.

Snapshots are taken on the calling (control) thread; generation runs on a
ThreadPoolExecutor and each finished artifact is swapped into the cache.
Failed jobs are re-enqueued with the same snapshot until the attempt budget
is spent, after which the failure is raised as an operational alert and
recorded, never propagated into the control thread.
"""

import functools
import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from wayfield.core.config import settings
from wayfield.core.errors import ChunkGenerationError
from wayfield.core.sdf.generator import ChunkSnapshot, SdfGenerator
from wayfield.core.streaming.cache import ChunkArtifact, WorldCache
from wayfield.models.grid import TerrainChunkId

logger = logging.getLogger(__name__)

SnapshotProvider = Callable[[TerrainChunkId], ChunkSnapshot]


class ChunkScheduler:
    """
    Dispatches chunk generation to a worker pool.

    Each scheduled chunk gets a ticket future that resolves with the stored
    artifact once an attempt succeeds, or with a ChunkGenerationError once
    every attempt failed.
    """

    def __init__(
        self,
        generator: SdfGenerator,
        cache: WorldCache,
        snapshot_provider: SnapshotProvider,
        max_workers: Optional[int] = None,
        max_attempts: Optional[int] = None,
    ):
        """
        Initialize the scheduler.

        Args:
            generator: Distance field generator
            cache: Cache receiving the artifacts
            snapshot_provider: Builds the immutable snapshot of a chunk
            max_workers: Worker pool size
            max_attempts: Attempts per chunk before giving up
        """
        self.generator = generator
        self.cache = cache
        self.snapshot_provider = snapshot_provider
        self.max_workers = settings.generation_workers if max_workers is None else max_workers
        self.max_attempts = (
            settings.generation_max_attempts if max_attempts is None else max_attempts
        )
        if self.max_workers < 1 or self.max_attempts < 1:
            raise ValueError("max_workers and max_attempts must be >= 1")

        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="wayfield-sdf"
        )
        self._lock = threading.Lock()
        self._tickets: Dict[Tuple[TerrainChunkId, int], Future] = {}
        self._closed = False
        self.failed: Dict[TerrainChunkId, ChunkGenerationError] = {}

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> List[TerrainChunkId]:
        """Chunks with a generation in flight."""
        with self._lock:
            return sorted({chunk_id for chunk_id, _ in self._tickets})

    def schedule(self, chunk_ids: Iterable[TerrainChunkId]) -> Dict[TerrainChunkId, Future]:
        """
        Snapshot chunks and enqueue their generation.

        A chunk already in flight at the same version shares its ticket.

        Args:
            chunk_ids: Chunks to generate

        Returns:
            Ticket future per chunk
        """
        if self._closed:
            raise RuntimeError("Scheduler has been shut down")

        tickets: Dict[TerrainChunkId, Future] = {}
        for chunk_id in chunk_ids:
            snapshot = self.snapshot_provider(chunk_id)
            key = (chunk_id, snapshot.version)
            with self._lock:
                ticket = self._tickets.get(key)
                if ticket is None:
                    ticket = Future()
                    ticket.set_running_or_notify_cancel()
                    self._tickets[key] = ticket
                    self.failed.pop(chunk_id, None)
                    new = True
                else:
                    new = False
            if new:
                self._submit(snapshot, ticket, attempt=1)
            tickets[chunk_id] = ticket
        return tickets

    def generate_now(
        self, chunk_ids: Iterable[TerrainChunkId], timeout: Optional[float] = None
    ) -> Dict[TerrainChunkId, ChunkArtifact]:
        """
        Generate chunks and block until they are done.

        Chunks whose generation failed are left out of the result; their
        errors are available in ``failed``.

        Args:
            chunk_ids: Chunks to generate
            timeout: Maximum seconds to wait

        Returns:
            Artifact per successfully generated chunk
        """
        tickets = self.schedule(chunk_ids)
        wait(list(tickets.values()), timeout=timeout)

        results: Dict[TerrainChunkId, ChunkArtifact] = {}
        for chunk_id, ticket in tickets.items():
            if ticket.done() and ticket.exception() is None:
                results[chunk_id] = ticket.result()
        return results

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for every in-flight generation.

        Returns:
            True if nothing is left in flight
        """
        with self._lock:
            tickets = list(self._tickets.values())
        if tickets:
            wait(tickets, timeout=timeout)
        with self._lock:
            return not self._tickets

    def _submit(self, snapshot: ChunkSnapshot, ticket: Future, attempt: int) -> None:
        try:
            future = self._executor.submit(self._run, snapshot)
        except RuntimeError as e:
            # Pool already shut down
            self._finish_failure(snapshot, ticket, attempt, e)
            return
        future.add_done_callback(functools.partial(self._on_done, snapshot, ticket, attempt))

    def _run(self, snapshot: ChunkSnapshot) -> ChunkArtifact:
        sdf = self.generator.generate(snapshot)
        artifact = ChunkArtifact(
            chunk_id=snapshot.chunk_id,
            version=snapshot.version,
            sdf=sdf,
            cells=snapshot.cells,
        )
        stored = self.cache.store(artifact)
        logger.debug(
            f"Chunk {snapshot.chunk_id.storage_key()} v{snapshot.version} generated "
            f"(stored={stored})",
            extra={"chunk_id": snapshot.chunk_id.storage_key()},
        )
        return artifact

    def _on_done(self, snapshot: ChunkSnapshot, ticket: Future, attempt: int, future: Future) -> None:
        if future.cancelled():
            self._finish_failure(snapshot, ticket, attempt, CancelledError())
            return

        error = future.exception()
        if error is None:
            self._release(snapshot)
            ticket.set_result(future.result())
            return

        if attempt < self.max_attempts and not self._closed:
            logger.warning(
                f"Generation of chunk {snapshot.chunk_id.storage_key()} failed "
                f"(attempt {attempt}/{self.max_attempts}): {error}; re-enqueueing"
            )
            self._submit(snapshot, ticket, attempt + 1)
            return

        self._finish_failure(snapshot, ticket, attempt, error)

    def _finish_failure(
        self, snapshot: ChunkSnapshot, ticket: Future, attempt: int, cause: BaseException
    ) -> None:
        chunk_id = snapshot.chunk_id
        error = ChunkGenerationError(
            f"Chunk {chunk_id.storage_key()} failed after {attempt} attempt(s): {cause}",
            chunk_id=(chunk_id.x, chunk_id.y),
            attempts=attempt,
            details={"version": snapshot.version, "cause": type(cause).__name__},
        )
        error.__cause__ = cause
        logger.critical(str(error), extra={"chunk_id": chunk_id.storage_key()})
        with self._lock:
            self.failed[chunk_id] = error
        self._release(snapshot)
        ticket.set_exception(error)

    def _release(self, snapshot: ChunkSnapshot) -> None:
        with self._lock:
            self._tickets.pop((snapshot.chunk_id, snapshot.version), None)

    def shutdown(self, wait_for_pending: bool = True) -> None:
        """
        Stop the worker pool.

        Args:
            wait_for_pending: Block until running generations finish
        """
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=wait_for_pending, cancel_futures=not wait_for_pending)
        logger.debug("Chunk scheduler shut down")
