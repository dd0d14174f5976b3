"""
Chunked uploads against the transfer backend.

An upload runs create -> (push channel join) -> init -> chunk loop -> complete.
Chunks go out one at a time in part-number order. Progress and the terminal
state of every run are published on ``ChunkedUploadOrchestrator.events``;
exactly one terminal event (completed, paused, failed or aborted) is
published per run.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Dict, List, Optional, TypeVar
import asyncio
import logging
import math
import time

import aiohttp

from zipshare.clients.backend_client import BackendClient
from zipshare.clients.push_channel import PushChannel
from zipshare.config.config import settings
from zipshare.models.progress import (
    TERMINAL_EVENTS,
    ProgressEvent,
    UploadAborted,
    UploadCompleted,
    UploadEvent,
    UploadFailed,
    UploadOutcome,
    UploadPaused,
    UploadStarted,
    UploadState,
)
from zipshare.models.transfers import ChunkReceipt, MultipartInit, PartRecord, Transfer
from zipshare.utils.exceptions import (
    BackendError,
    CancellationError,
    ChunkUploadError,
    CompleteError,
    CreateError,
    ValidationError,
)
from zipshare.utils.file_sources import UploadSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


def unwrap(body: Any) -> Dict[str, Any]:
    # the uploader endpoints answer with a {"data": ...} envelope
    if isinstance(body, dict) and isinstance(body.get("data"), dict):
        return body["data"]
    return body or {}


class CancellationToken:
    """Abort signal checked at every suspension point of an upload."""

    def __init__(self) -> None:
        self.__event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self.__event.is_set()

    def cancel(self) -> None:
        self.__event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancellationError()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        A cancelled token cancels the pending request and raises
        ``CancellationError`` in its place.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CancellationError()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.__event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task not in done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise CancellationError()
        return task.result()


class UploadEventChannel:
    """Unbounded queue of upload events.

    Nothing is dropped while a run is in progress; a new ``upload()`` clears
    whatever earlier runs left unread.
    """

    def __init__(self) -> None:
        self.__queue: asyncio.Queue = asyncio.Queue()

    def publish(self, event: UploadEvent) -> None:
        self.__queue.put_nowait(event)

    async def get(self) -> UploadEvent:
        return await self.__queue.get()

    def drain(self) -> List[UploadEvent]:
        events = []
        while not self.__queue.empty():
            events.append(self.__queue.get_nowait())
        return events

    async def stream(self) -> AsyncIterator[UploadEvent]:
        """Yield events up to and including the next terminal one."""
        while True:
            event = await self.__queue.get()
            yield event
            if isinstance(event, TERMINAL_EVENTS):
                return

    def __aiter__(self) -> AsyncIterator[UploadEvent]:
        return self.stream()


@dataclass
class UploadSession:
    source: UploadSource
    chunk_size: int
    token: CancellationToken = field(default_factory=CancellationToken)
    transfer: Optional[Transfer] = None
    upload_id: Optional[str] = None
    storage_key: Optional[str] = None
    current_chunk: int = 0
    bytes_uploaded: int = 0
    parts: List[PartRecord] = field(default_factory=list)
    paused: bool = False

    @property
    def total_chunks(self) -> int:
        return math.ceil(self.source.size / self.chunk_size)

    @property
    def transfer_id(self) -> Optional[str]:
        return self.transfer.id if self.transfer else None


class ChunkedUploadOrchestrator:
    def __init__(
        self,
        api_url: str,
        token: str | None = None,
        chunk_size: int = settings.CHUNK_SIZE,
        max_retries: int = settings.MAX_RETRIES,
        retry_delay: float = settings.RETRY_DELAY,
        push_channel: PushChannel | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValidationError("chunk_size must be positive")
        if max_retries < 1:
            raise ValidationError("max_retries must be at least 1")

        self.__backend = BackendClient(api_url, token=token, session=session)
        self.__chunk_size = chunk_size
        self.__max_retries = max_retries
        self.__retry_delay = retry_delay
        self.__push_channel = push_channel
        self.__push_subscribed = False
        self.__session: UploadSession | None = None
        self.__running = False
        self.events = UploadEventChannel()

    @property
    def session(self) -> UploadSession | None:
        return self.__session

    @property
    def is_running(self) -> bool:
        return self.__running

    @property
    def is_paused(self) -> bool:
        return self.__session is not None and self.__session.paused and not self.__running

    async def upload(self, source: UploadSource) -> UploadOutcome:
        """Upload ``source`` from its first chunk.

        A paused upload still held by this orchestrator is abandoned: the
        backend is asked to abort it and its push subscription is closed.
        Events left unread from earlier runs are dropped, so ``events`` only
        carries this run.
        """
        if self.__running:
            raise ValidationError("An upload is already running")
        if self.__session is not None:
            await self._discard(self.__session)

        stale = self.events.drain()
        if stale:
            logger.debug(f"Dropped {len(stale)} unread events from a previous upload")

        session = UploadSession(source=source, chunk_size=self.__chunk_size)
        self.__session = session
        return await self._drive(session, fresh=True)

    def pause(self) -> None:
        """Stop before the next chunk; a chunk already in flight still finishes."""
        if self.__session is None or not self.__running:
            logger.debug("pause() ignored, no upload running")
            return
        self.__session.paused = True

    async def resume(self) -> UploadOutcome:
        session = self.__session
        if session is None or not session.paused or self.__running:
            raise ValidationError("No paused upload")
        session.paused = False
        logger.info(f"Resuming {session.transfer_id} at chunk {session.current_chunk + 1}/{session.total_chunks}")
        return await self._drive(session, fresh=False)

    async def abort(self) -> None:
        session = self.__session
        if session is None:
            logger.debug("abort() ignored, no upload session")
            return

        was_running = self.__running
        self.__session = None
        session.token.cancel()
        await self._abort_remote(session)

        # a running loop reports the abort itself when it sees the token
        if not was_running:
            self.events.publish(UploadAborted())
            await self._release_channel()

    async def _abort_remote(self, session: UploadSession) -> None:
        if session.transfer is None or session.upload_id is None:
            return
        try:
            await self.__backend.request("POST", f"/transfers/{session.transfer.id}/upload/abort")
        except BackendError as e:
            logger.warning(f"Backend did not acknowledge abort of {session.transfer.id}: {e.message}")

    async def _discard(self, session: UploadSession) -> None:
        # the paused run already ended with UploadPaused, so nothing is published
        logger.warning(f"Discarding paused upload of {session.source.name}")
        self.__session = None
        session.token.cancel()
        await self._abort_remote(session)
        await self._release_channel()

    async def _drive(self, session: UploadSession, fresh: bool) -> UploadOutcome:
        self.__running = True
        paused = False
        try:
            if fresh:
                await self._start(session)
            outcome = await self._upload_chunks(session)
            if outcome is not None:
                paused = True
                return outcome
            return await self._complete(session)
        except CancellationError as e:
            logger.info(f"Upload of {session.source.name} aborted")
            self.events.publish(UploadAborted(message=e.message, error=e))
            raise
        except Exception as e:
            logger.error(f"Upload of {session.source.name} failed: {e}")
            self.events.publish(UploadFailed(message=str(e), error=e))
            if self.__session is session:
                self.__session = None
            raise
        finally:
            self.__running = False
            if not paused:
                await self._release_channel()

    async def _start(self, session: UploadSession) -> None:
        source = session.source
        try:
            data = await session.token.guard(
                self.__backend.request(
                    "POST",
                    "/transfers",
                    json={"file_name": source.name, "file_size": source.size, "file_type": source.content_type},
                )
            )
        except BackendError as e:
            raise CreateError(e.message, status=e.status) from e

        session.transfer = Transfer.model_validate(unwrap(data))
        logger.info(f"Created transfer {session.transfer.id} for {source.name} ({source.size} bytes)")
        self.events.publish(UploadStarted(transfer=session.transfer))

        await self._subscribe(session)

        data = await session.token.guard(
            self.__backend.request("POST", f"/transfers/{session.transfer.id}/upload/init")
        )
        init = MultipartInit.model_validate(unwrap(data))
        session.upload_id = init.upload_id
        session.storage_key = init.key

    async def _subscribe(self, session: UploadSession) -> None:
        if self.__push_channel is None:
            logger.debug("No push channel configured, reporting local progress only")
            return

        topic = f"transfer:{session.transfer.id}"
        # set before connecting so an abort during the join still closes the channel
        self.__push_subscribed = True
        connected = await session.token.guard(self.__push_channel.connect(topic, self._on_push))
        if not connected:
            logger.info(f"Push channel {topic} unavailable, reporting local progress only")

    def _on_push(self, event: str, payload: Dict[str, Any]) -> None:
        # only forwards; chunk bookkeeping belongs to the upload loop
        session = self.__session
        if event == "transfer:progress":
            total = session.source.size if session else payload.get("total_bytes", 0)
            self.events.publish(
                ProgressEvent(
                    loaded=payload.get("total_bytes_uploaded", 0),
                    total=total,
                    percent=payload.get("progress_percent", 0),
                    speed=payload.get("speed_bytes_per_sec") or 0,
                    eta=payload.get("eta_seconds"),
                    source="push",
                )
            )
        elif event == "transfer:complete":
            logger.info(f"Backend reports transfer complete: {payload}")
        elif event == "transfer:error":
            logger.warning(f"Backend reports transfer error: {payload.get('error')}")
        else:
            logger.debug(f"Ignoring push event {event}")

    async def _upload_chunks(self, session: UploadSession) -> UploadOutcome | None:
        source = session.source
        total_chunks = session.total_chunks

        for index in range(session.current_chunk, total_chunks):
            if session.paused:
                logger.info(f"Upload of {session.transfer_id} paused at chunk {index + 1}/{total_chunks}")
                self.events.publish(UploadPaused(at_chunk=index))
                return UploadOutcome(state=UploadState.PAUSED, transfer_id=session.transfer_id, at_chunk=index)
            session.token.raise_if_cancelled()

            start = index * session.chunk_size
            end = min(start + session.chunk_size, source.size)
            chunk = await source.read_range(start, end)

            started = time.monotonic()
            receipt = await self._upload_chunk(session, chunk, index + 1)
            elapsed = time.monotonic() - started

            session.parts.append(PartRecord(part_number=index + 1, etag=receipt.etag))
            session.current_chunk = index + 1
            session.bytes_uploaded = end

            # latest chunk speed only, no smoothing
            speed = len(chunk) / elapsed if elapsed > 0 else 0.0
            eta = round((source.size - end) / speed) if speed else None

            self.events.publish(
                ProgressEvent(
                    loaded=end,
                    total=source.size,
                    percent=round((index + 1) / total_chunks * 100),
                    chunk=index + 1,
                    total_chunks=total_chunks,
                    speed=speed,
                    eta=eta,
                )
            )
        return None

    async def _upload_chunk(self, session: UploadSession, chunk: bytes, part_number: int) -> ChunkReceipt:
        last_error: BackendError | None = None

        for attempt in range(1, self.__max_retries + 1):
            try:
                data = await session.token.guard(
                    self.__backend.request(
                        "POST",
                        f"/transfers/{session.transfer.id}/upload/chunk",
                        data=chunk,
                        params={"part_number": part_number},
                        headers={"Content-Type": "application/octet-stream"},
                    )
                )
                return ChunkReceipt.model_validate(unwrap(data))
            except BackendError as e:
                last_error = e
                logger.warning(f"Chunk {part_number} attempt {attempt}/{self.__max_retries} failed: {e.message}")
                if attempt < self.__max_retries:
                    await session.token.guard(asyncio.sleep(self.__retry_delay * attempt))

        raise ChunkUploadError(
            f"Chunk {part_number} failed after {self.__max_retries} attempts: {last_error.message}",
            part_number=part_number,
            attempts=self.__max_retries,
        ) from last_error

    async def _complete(self, session: UploadSession) -> UploadOutcome:
        try:
            data = await session.token.guard(
                self.__backend.request(
                    "POST",
                    f"/transfers/{session.transfer.id}/upload/complete",
                    json={"parts": [part.model_dump() for part in session.parts]},
                )
            )
        except BackendError as e:
            raise CompleteError(e.message, status=e.status) from e

        result = unwrap(data)
        logger.info(f"Transfer {session.transfer.id} completed with {len(session.parts)} parts")
        self.events.publish(UploadCompleted(result=result))
        if self.__session is session:
            self.__session = None
        return UploadOutcome(state=UploadState.COMPLETED, transfer_id=session.transfer_id, result=result)

    async def _release_channel(self) -> None:
        if self.__push_channel is not None and self.__push_subscribed:
            self.__push_subscribed = False
            await self.__push_channel.close()

    async def close(self) -> None:
        await self._release_channel()
        await self.__backend.close()

    async def __aenter__(self) -> "ChunkedUploadOrchestrator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
