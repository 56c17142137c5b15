"""
Upload Pipeline for deployment artifacts.

Chunked protocol (preferred):
    1. acquire a token
    2. init the upload session on the service
    3. send chunks in sequential batches of at most N concurrent requests
    4. retry failed chunks one by one with linear backoff
    5. finalize, then rotate the token

Whole-file protocol (fallback): one streamed multipart request.

Both report through the same DeploymentProgress surface, so the caller
cannot tell them apart except by speed. At most one upload runs per
pipeline; a second call is rejected with a BUSY outcome and a notice.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Awaitable, TypeVar

from pmon_client.components.resilience.retry import linear_backoff
from pmon_client.components.security.token import TokenManager
from pmon_client.components.upload.progress import DeploymentPhase, DeploymentProgress
from pmon_client.components.upload.session import UploadOutcome, UploadSession, UploadSource
from pmon_client.config.constants import NotificationLevel
from pmon_client.config.logging import get_logger
from pmon_client.config.settings import ClientSettings
from pmon_client.infrastructure.http import ServiceHttpClient
from pmon_client.utils.exceptions import (
    TokenUnavailableError,
    TransportError,
    UploadBusyError,
    UploadCancelledError,
    UploadFailedError,
)

if TYPE_CHECKING:
    from pmon_client.collaborators import Collaborator

logger = get_logger(__name__)

T = TypeVar("T")

# Status reported when a request never got an answer
NO_RESPONSE = 0


def _ok(status: int) -> bool:
    return 200 <= status < 300


class UploadPipeline:
    """
    Exclusive, cancellable uploader.

    Usage:
        pipeline = UploadPipeline(settings, http, tokens, collaborator)
        ok = await pipeline.upload_chunked(UploadSource.from_path("p.zip"), restart=True)
        # from another task:
        pipeline.cancel()
    """

    def __init__(
        self,
        settings: ClientSettings,
        http: ServiceHttpClient,
        tokens: TokenManager,
        collaborator: Collaborator,
    ) -> None:
        self._http = http
        self._tokens = tokens
        self._collaborator = collaborator
        self._chunk_size = settings.upload_chunk_size
        self._batch_width = settings.upload_max_concurrent_chunks
        self._retries = settings.upload_chunk_retries
        self._retry_delay = settings.upload_retry_delay

        self._session: UploadSession | None = None
        self._progress: DeploymentProgress | None = None
        self._last_outcome: UploadOutcome | None = None

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def busy(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> UploadSession | None:
        return self._session

    @property
    def progress(self) -> DeploymentProgress | None:
        """Latest progress of the current or last upload."""
        return self._progress

    @property
    def last_outcome(self) -> UploadOutcome | None:
        return self._last_outcome

    # =========================================================================
    # Public API
    # =========================================================================

    async def upload_chunked(self, source: UploadSource, restart: bool = False) -> bool:
        """
        Upload an artifact with the chunked protocol.

        Returns:
            True only when the service finalized the upload.
        """
        try:
            session = self._claim(UploadSession.chunked(source, self._chunk_size, restart))
        except UploadBusyError:
            return self._reject_busy()

        logger.info(
            "Starting chunked upload",
            upload_id=session.upload_id,
            file_name=session.file_name,
            size=session.bytes_total,
            chunks=session.total_chunks,
        )
        return await self._run(session, self._run_chunked(session, source))

    async def upload_whole(self, source: UploadSource, restart: bool = False) -> bool:
        """
        Upload an artifact as one streamed request. Not retried.

        Returns:
            True when the service accepted the artifact.
        """
        try:
            session = self._claim(UploadSession.whole(source, restart))
        except UploadBusyError:
            return self._reject_busy()

        logger.info(
            "Starting whole-file upload",
            upload_id=session.upload_id,
            file_name=session.file_name,
            size=session.bytes_total,
        )
        return await self._run(session, self._run_whole(session, source))

    def cancel(self) -> bool:
        """
        Abort the current upload.

        Returns:
            True if an upload was active.
        """
        session = self._session
        if session is None:
            return False
        logger.info("Cancelling upload", upload_id=session.upload_id)
        session.cancel_event.set()
        for task in list(session.in_flight):
            task.cancel()
        return True

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _claim(self, session: UploadSession) -> UploadSession:
        # Synchronous: no await between the check and the claim.
        if self._session is not None:
            raise UploadBusyError(self._session.upload_id)
        self._session = session
        return session

    def _reject_busy(self) -> bool:
        # last_outcome keeps describing the live upload
        logger.info("Upload rejected", outcome=UploadOutcome.BUSY.value)
        self._collaborator.notify(
            NotificationLevel.WARNING,
            "Upload in Progress",
            "Please wait for current upload to complete",
        )
        return False

    def _release_token(self, session: UploadSession) -> None:
        if session.token_sent:
            self._tokens.consume()

    async def _run(self, session: UploadSession, steps: Awaitable[None]) -> bool:
        self._report(session, DeploymentPhase.STARTED, 0.0, f"Uploading {session.file_name}...")
        try:
            await steps
        except UploadCancelledError:
            outcome = UploadOutcome.CANCELLED
            self._release_token(session)
            self._report(session, DeploymentPhase.CANCELLED, None, "Upload cancelled")
            self._collaborator.notify(
                NotificationLevel.WARNING, "Upload Cancelled", "File upload was cancelled"
            )
        except UploadFailedError as e:
            outcome = UploadOutcome.FAILED
            self._report(session, DeploymentPhase.FAILED, None, e.reason)
            if e.forbidden:
                await self._tokens.rotate()
                self._collaborator.notify(
                    NotificationLevel.ERROR, "Security Error", "Invalid or expired CSRF token"
                )
            else:
                self._release_token(session)
                self._collaborator.notify(NotificationLevel.ERROR, "Upload Failed", e.reason)
        else:
            outcome = UploadOutcome.COMPLETED
            await self._tokens.rotate()
            self._report(session, DeploymentPhase.COMPLETED, 100.0, "Complete!")
            self._collaborator.notify(
                NotificationLevel.SUCCESS,
                "Upload Complete",
                f"{session.file_name} uploaded successfully",
            )
        finally:
            self._session = None

        self._last_outcome = outcome
        logger.info(
            "Upload finished",
            upload_id=session.upload_id,
            outcome=outcome.value,
            elapsed=round(session.elapsed(), 2),
        )
        return outcome is UploadOutcome.COMPLETED

    def _report(
        self,
        session: UploadSession,
        phase: DeploymentPhase,
        percent: float | None,
        message: str,
    ) -> None:
        self._progress = DeploymentProgress(phase, percent, message, session.file_name)
        self._collaborator.deployment_progress(self._progress)

    # =========================================================================
    # Shared steps
    # =========================================================================

    async def _acquire_token(self, session: UploadSession) -> str:
        try:
            return await self._abortable(session, self._tokens.acquire())
        except TokenUnavailableError as e:
            raise UploadFailedError(session.upload_id, "Could not obtain CSRF token") from e

    async def _abortable(self, session: UploadSession, awaitable: Awaitable[T]) -> T:
        """
        Await a request unless the upload is cancelled first.

        A request that completed before the cancel was observed keeps its
        result; otherwise it is cancelled and UploadCancelledError raised.
        """
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(session.cancel_event.wait())
        session.in_flight.add(task)
        try:
            await asyncio.wait((task, waiter), return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            session.in_flight.discard(task)
            if not task.done():
                task.cancel()
        if not task.done() or task.cancelled():
            raise UploadCancelledError(session.upload_id)
        return task.result()

    def _check_cancelled(self, session: UploadSession) -> None:
        if session.cancelled:
            raise UploadCancelledError(session.upload_id)

    def _check_status(self, session: UploadSession, status: int, step: str) -> None:
        if status == 403:
            raise UploadFailedError(session.upload_id, f"{step} rejected: forbidden", forbidden=True)
        if not _ok(status):
            raise UploadFailedError(session.upload_id, f"Failed to {step} upload (HTTP {status})")

    # =========================================================================
    # Chunked protocol
    # =========================================================================

    async def _run_chunked(self, session: UploadSession, source: UploadSource) -> None:
        token = await self._acquire_token(session)

        session.token_sent = True
        try:
            status = await self._abortable(
                session,
                self._http.init_upload(
                    session.upload_id,
                    session.file_name,
                    session.bytes_total,
                    session.chunk_size,
                    session.total_chunks,
                    session.restart,
                    token,
                ),
            )
        except TransportError as e:
            raise UploadFailedError(session.upload_id, f"Failed to initialize upload: {e.reason}") from e
        self._check_status(session, status, "initialize")

        for start in range(0, session.total_chunks, self._batch_width):
            self._check_cancelled(session)
            await self._send_batch(session, source, token, start)
            self._check_cancelled(session)

        if session.failed:
            logger.info("Retrying failed chunks", upload_id=session.upload_id, count=len(session.failed))
        for index in sorted(session.failed):
            if not await self._retry_chunk(session, source, token, index):
                raise UploadFailedError(
                    session.upload_id,
                    f"Failed to upload chunk {index} after {self._retries} attempts",
                )
            session.failed.discard(index)
            session.succeeded.add(index)
            self._report_chunks(session, "Retrying...")

        self._check_cancelled(session)
        self._report(session, DeploymentPhase.PROGRESS, 100.0, "Finalizing...")
        try:
            status = await self._abortable(
                session, self._http.finalize_upload(session.upload_id, token)
            )
        except TransportError as e:
            raise UploadFailedError(session.upload_id, f"Failed to finalize upload: {e.reason}") from e
        self._check_status(session, status, "finalize")

    async def _send_batch(
        self,
        session: UploadSession,
        source: UploadSource,
        token: str,
        start: int,
    ) -> None:
        indices = range(start, min(start + self._batch_width, session.total_chunks))
        results = await asyncio.gather(
            *(self._send_chunk(session, source, token, index) for index in indices),
            return_exceptions=True,
        )
        for index, result in zip(indices, results):
            if isinstance(result, UploadFailedError):
                raise result
            if result is True:
                session.succeeded.add(index)
                self._report_chunks(session, "Uploading...")
            else:
                session.failed.add(index)
                logger.warning("Chunk failed", upload_id=session.upload_id, chunk=index)

    async def _send_chunk(
        self,
        session: UploadSession,
        source: UploadSource,
        token: str,
        index: int,
    ) -> bool:
        """Send one chunk once. 403 raises; any other failure returns False."""
        data = self._read_chunk(session, source, index)
        try:
            status = await self._abortable(
                session,
                self._http.upload_chunk(session.upload_id, index, session.total_chunks, data, token),
            )
        except TransportError:
            status = NO_RESPONSE
        if status == 403:
            raise UploadFailedError(session.upload_id, "chunk rejected: forbidden", forbidden=True)
        return _ok(status)

    def _read_chunk(self, session: UploadSession, source: UploadSource, index: int) -> bytes:
        offset, length = session.chunk_bounds(index)
        try:
            return source.read(offset, length)
        except OSError as e:
            raise UploadFailedError(session.upload_id, f"Cannot read artifact: {e}") from e

    async def _retry_chunk(
        self,
        session: UploadSession,
        source: UploadSource,
        token: str,
        index: int,
    ) -> bool:
        for attempt in range(1, self._retries + 1):
            self._check_cancelled(session)
            if await self._send_chunk(session, source, token, index):
                return True
            if attempt < self._retries:
                await self._abortable(
                    session, asyncio.sleep(linear_backoff(attempt, self._retry_delay))
                )
        return False

    def _report_chunks(self, session: UploadSession, verb: str) -> None:
        done = len(session.succeeded)
        self._report(
            session,
            DeploymentPhase.PROGRESS,
            session.percent,
            f"{verb} {done}/{session.total_chunks} chunks",
        )

    # =========================================================================
    # Whole-file protocol
    # =========================================================================

    async def _run_whole(self, session: UploadSession, source: UploadSource) -> None:
        token = await self._acquire_token(session)

        def on_progress(sent: int, total: int) -> None:
            percent = round(sent / total * 100, 1) if total else 100.0
            self._report(session, DeploymentPhase.PROGRESS, percent, f"Uploading... {sent}/{total} bytes")

        try:
            with source.open() as stream:
                session.token_sent = True
                status = await self._abortable(
                    session,
                    self._http.upload_whole(
                        session.file_name,
                        stream,
                        session.bytes_total,
                        session.restart,
                        token,
                        on_progress,
                    ),
                )
        except TransportError as e:
            raise UploadFailedError(session.upload_id, f"Upload failed: {e.reason}") from e
        except OSError as e:
            raise UploadFailedError(session.upload_id, f"Cannot read artifact: {e}") from e
        self._check_status(session, status, "deliver")
