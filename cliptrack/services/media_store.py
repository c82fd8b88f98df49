"""Media blob storage keyed by clip id.

Hosts keep the decoded media for each clip in a blob store. Split and
duplicate create new clip ids that need their own copy of the source blob;
``BlobCopyScheduler`` runs those copies after the timeline change is
committed and only logs failures.
"""

import asyncio
import logging
import threading
from typing import Protocol

logger = logging.getLogger(__name__)


class MediaBlobStore(Protocol):
    async def copy_media_blob(self, source_clip_id: str, target_clip_id: str) -> bool:
        """Copy the blob of ``source_clip_id`` under ``target_clip_id``.

        Returns False when the source has no blob.
        """
        ...


class InMemoryMediaBlobStore:
    """Dict-backed blob store."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.Lock()

    async def save_media_blob(self, clip_id: str, data: bytes) -> None:
        with self._lock:
            self._blobs[clip_id] = data

    async def load_media_blob(self, clip_id: str) -> bytes | None:
        with self._lock:
            return self._blobs.get(clip_id)

    async def delete_media_blob(self, clip_id: str) -> None:
        with self._lock:
            self._blobs.pop(clip_id, None)

    async def copy_media_blob(self, source_clip_id: str, target_clip_id: str) -> bool:
        with self._lock:
            data = self._blobs.get(source_clip_id)
            if data is None:
                return False
            self._blobs[target_clip_id] = data
            return True

    def __contains__(self, clip_id: object) -> bool:
        return clip_id in self._blobs


class BlobCopyScheduler:
    """Fire-and-forget blob copies.

    Copies are never awaited by the editing operation that caused them,
    never retried and never rolled back. When no event loop is running in
    the calling thread the copy runs on a short-lived daemon thread.
    """

    def __init__(self, store: MediaBlobStore | None) -> None:
        self.store = store
        self._tasks: set[asyncio.Task[bool]] = set()
        self._threads: set[threading.Thread] = set()

    def schedule(self, source_clip_id: str, target_clip_id: str) -> None:
        if self.store is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._copy(source_clip_id, target_clip_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return

        thread = threading.Thread(
            target=asyncio.run,
            args=(self._copy(source_clip_id, target_clip_id),),
            name=f"blob-copy-{target_clip_id}",
            daemon=True,
        )
        self._threads.add(thread)
        thread.start()

    def schedule_many(self, pairs: list[tuple[str, str]]) -> None:
        for source_clip_id, target_clip_id in pairs:
            self.schedule(source_clip_id, target_clip_id)

    @property
    def pending(self) -> int:
        self._threads = {thread for thread in self._threads if thread.is_alive()}
        return len(self._tasks) + len(self._threads)

    async def drain(self) -> None:
        """Wait for every outstanding copy (tests and shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        for thread in list(self._threads):
            await asyncio.to_thread(thread.join)
        self._threads.clear()

    async def _copy(self, source_clip_id: str, target_clip_id: str) -> bool:
        if self.store is None:
            return False
        try:
            copied = await self.store.copy_media_blob(source_clip_id, target_clip_id)
        except Exception:
            logger.exception(
                f"Failed to copy media blob from {source_clip_id} to {target_clip_id}"
            )
            return False

        if not copied:
            logger.warning(
                f"No media blob to copy from {source_clip_id} to {target_clip_id}"
            )
        return copied
