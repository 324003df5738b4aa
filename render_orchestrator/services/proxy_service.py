"""Transcode proxy state machine, one record per source URL.

Lifecycle of a ProxyRecord:

    (none) --upload ok--> uploading --poll--> processing --poll--> ready
       |                      |                   |
       +--upload failed--> error <-------poll-----+

Each call to ``ensure``/``status`` advances a record by at most one poll of
the transcode service. Records in ``error`` are deleted and re-created by the
next ``ensure``, so a retry always starts from a clean ``uploading`` row.
When concurrent callers insert the same new URL, the first stored row wins
and the other caller deletes its own upload.
Transcode failures never escape this module: they become ``error`` rows, and
an unreachable service during a poll is reported as ``processing``.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from render_orchestrator.config import Settings, get_settings
from render_orchestrator.exceptions import StreamAPIError
from render_orchestrator.models.proxy_record import (
    PROXY_STATUS_ERROR,
    PROXY_STATUS_PROCESSING,
    PROXY_STATUS_READY,
    PROXY_STATUS_UPLOADING,
    ProxyRecord,
)
from render_orchestrator.services.stream_client import (
    STATE_ERROR,
    STATE_IN_PROGRESS,
    STATE_READY,
    StreamClient,
)
from render_orchestrator.utils.messages import short_url, truncate_message

logger = logging.getLogger(__name__)

ACTION_CACHED = "cached"
ACTION_POLLED = "polled"
ACTION_WAITING = "waiting"
ACTION_UPLOADED = "uploaded"
ACTION_ERROR = "error"


@dataclass
class ProxyOutcome:
    url: str
    status: str
    proxy_url: str | None
    action: str


@dataclass
class ProxySnapshot:
    """Caller-facing view of a record after at most one refresh."""

    status: str
    proxy_url: str | None = None
    playback_url: str | None = None
    thumbnail_url: str | None = None
    duration_seconds: float | None = None
    error_message: str | None = None

    @classmethod
    def from_record(cls, record: ProxyRecord, status: str | None = None) -> "ProxySnapshot":
        return cls(
            status=status or record.status,
            proxy_url=record.proxy_url,
            playback_url=record.playback_url,
            thumbnail_url=record.thumbnail_url,
            duration_seconds=record.duration_seconds,
            error_message=record.error_message,
        )


def unique_urls(urls: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for url in urls:
        url = url.strip()
        if url:
            seen.setdefault(url, None)
    return list(seen)


async def ready_proxy_urls(db: AsyncSession, urls: Iterable[str]) -> dict[str, str]:
    """original URL -> downloadable proxy URL for ready records. No external calls."""
    urls = unique_urls(urls)
    if not urls:
        return {}

    result = await db.execute(
        select(ProxyRecord.original_url, ProxyRecord.proxy_url).where(
            ProxyRecord.original_url.in_(urls),
            ProxyRecord.status == PROXY_STATUS_READY,
            ProxyRecord.proxy_url.is_not(None),
        )
    )
    return {original_url: proxy_url for original_url, proxy_url in result.all()}


class ProxyService:
    def __init__(
        self,
        db: AsyncSession,
        stream: StreamClient,
        settings: Settings | None = None,
    ) -> None:
        self.db = db
        self.stream = stream
        self.settings = settings or get_settings()

    async def _load(self, urls: list[str]) -> dict[str, ProxyRecord]:
        result = await self.db.execute(
            select(ProxyRecord).where(ProxyRecord.original_url.in_(urls))
        )
        return {record.original_url: record for record in result.scalars().all()}

    def _truncate(self, message: str | None) -> str | None:
        return truncate_message(message, self.settings.render_error_message_max_chars)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def ensure(self, urls: Iterable[str]) -> list[ProxyOutcome]:
        """Make sure every URL has a proxy on its way, advancing each by one step."""
        urls = unique_urls(urls)
        if not urls:
            return []

        existing = await self._load(urls)
        outcomes: list[ProxyOutcome] = []

        for url in urls:
            record = existing.get(url)

            if record is not None:
                if record.status == PROXY_STATUS_READY:
                    outcomes.append(
                        ProxyOutcome(url, PROXY_STATUS_READY, record.proxy_url, ACTION_CACHED)
                    )
                    continue

                if record.status == PROXY_STATUS_ERROR:
                    # Replace rather than reset, so no stale stream_id survives
                    await self.db.delete(record)
                    await self.db.flush()
                elif record.stream_id:
                    status = await self._refresh(record)
                    proxy_url = record.proxy_url if status == PROXY_STATUS_READY else None
                    outcomes.append(ProxyOutcome(url, status, proxy_url, ACTION_POLLED))
                    continue
                else:
                    outcomes.append(ProxyOutcome(url, record.status, None, ACTION_WAITING))
                    continue

            outcomes.append(await self._upload(url))

        return outcomes

    async def status(self, urls: Iterable[str]) -> dict[str, ProxySnapshot]:
        """Current state per URL. URLs that were never requested are absent."""
        urls = unique_urls(urls)
        if not urls:
            return {}

        snapshots: dict[str, ProxySnapshot] = {}
        for url, record in (await self._load(urls)).items():
            if record.stream_id and record.is_pending:
                status = await self._refresh(record)
                snapshots[url] = ProxySnapshot.from_record(record, status=status)
            else:
                snapshots[url] = ProxySnapshot.from_record(record)
        return snapshots

    async def cleanup(self, urls: Iterable[str]) -> int:
        """Delete records (and, best-effort, their transcoded videos). Returns rows deleted."""
        urls = unique_urls(urls)
        if not urls:
            return 0

        records = list((await self._load(urls)).values())
        for record in records:
            if record.stream_id:
                try:
                    await self.stream.delete_video(record.stream_id)
                except StreamAPIError as e:
                    logger.warning(f"[Proxy] Stream cleanup failed for {record.stream_id}: {e}")
            await self.db.delete(record)

        await self.db.flush()
        return len(records)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _insert(self, url: str, **values) -> ProxyRecord:
        """Insert the record for ``url`` unless a concurrent caller already did.

        Returns the stored row, which is the other caller's when it won.
        """
        insert = pg_insert if self.db.get_bind().dialect.name == "postgresql" else sqlite_insert
        await self.db.execute(
            insert(ProxyRecord)
            .values(original_url=url, **values)
            .on_conflict_do_nothing(index_elements=[ProxyRecord.original_url])
        )
        result = await self.db.execute(
            select(ProxyRecord)
            .where(ProxyRecord.original_url == url)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    @staticmethod
    def _existing_outcome(record: ProxyRecord) -> ProxyOutcome:
        if record.status == PROXY_STATUS_READY:
            return ProxyOutcome(record.original_url, record.status, record.proxy_url, ACTION_CACHED)
        if record.status == PROXY_STATUS_ERROR:
            return ProxyOutcome(record.original_url, record.status, None, ACTION_ERROR)
        return ProxyOutcome(record.original_url, record.status, None, ACTION_WAITING)

    async def _upload(self, url: str) -> ProxyOutcome:
        logger.info(f"[Proxy] Uploading: {short_url(url)}")
        try:
            video = await self.stream.upload_by_url(url, meta={"original_url": url})
        except StreamAPIError as e:
            logger.warning(f"[Proxy] Upload failed: {short_url(url)}: {e}")
            stored = await self._insert(
                url,
                status=PROXY_STATUS_ERROR,
                error_message=self._truncate(e.message or "Upload failed"),
            )
            if stored.status != PROXY_STATUS_ERROR:
                return self._existing_outcome(stored)
            return ProxyOutcome(url, PROXY_STATUS_ERROR, None, ACTION_ERROR)

        logger.info(f"[Proxy] Upload OK: uid={video.uid}, state={video.state}")
        stored = await self._insert(
            url,
            stream_id=video.uid,
            status=PROXY_STATUS_UPLOADING,
            playback_url=video.hls_url,
        )
        if stored.stream_id != video.uid:
            logger.info(f"[Proxy] Lost insert race for {short_url(url)}, dropping upload {video.uid}")
            try:
                await self.stream.delete_video(video.uid)
            except StreamAPIError as e:
                logger.warning(f"[Proxy] Stream cleanup failed for {video.uid}: {e}")
            return self._existing_outcome(stored)

        try:
            await self.stream.create_download(video.uid)
        except StreamAPIError as e:
            # Usually refused until encoding finishes; retried when the video is ready
            logger.debug(f"[Proxy] Download request deferred for {video.uid}: {e}")

        return ProxyOutcome(url, PROXY_STATUS_UPLOADING, None, ACTION_UPLOADED)

    async def _refresh(self, record: ProxyRecord) -> str:
        """Poll the transcode service once and persist the transition.

        Returns the status to report. An unreachable service is reported as
        ``processing`` and leaves the record untouched.
        """
        uid = record.stream_id
        try:
            video = await self.stream.get_video(uid)
        except StreamAPIError as e:
            logger.warning(f"[Proxy] Poll failed for {uid}, assuming transient: {e}")
            return PROXY_STATUS_PROCESSING

        if video.state == STATE_READY:
            download_url = await self.stream.get_download_url(uid)
            if download_url is None:
                try:
                    await self.stream.create_download(uid)
                except StreamAPIError as e:
                    logger.debug(f"[Proxy] Download request failed for {uid}: {e}")
                download_url = await self.stream.get_download_url(uid)

            record.status = PROXY_STATUS_READY
            record.proxy_url = download_url
            record.playback_url = video.hls_url
            record.thumbnail_url = video.thumbnail_url
            record.duration_seconds = video.duration_seconds
        elif video.state == STATE_ERROR:
            record.status = PROXY_STATUS_ERROR
            record.error_message = self._truncate(video.error_reason or "Processing failed")
        else:
            record.status = (
                PROXY_STATUS_PROCESSING if video.state == STATE_IN_PROGRESS else PROXY_STATUS_UPLOADING
            )
            record.playback_url = video.hls_url or record.playback_url

        await self.db.flush()
        return record.status
