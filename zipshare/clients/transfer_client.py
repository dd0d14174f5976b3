"""
ZipShare API client used by the agent tools.

Every call is a single request/response round trip against the backend; the
whole-file upload drives the presigned-chunk flow one chunk at a time.
"""

from typing import List, Optional
import logging
import math

import aiohttp

from zipshare.clients.backend_client import BackendClient, compact
from zipshare.config.config import settings
from zipshare.models.transfers import (
    BatchTransfer,
    DownloadLink,
    FileEntry,
    MultiUploadResult,
    ShareLink,
    ShareOptions,
    Transfer,
    TransferList,
    TransferStatus,
    UploadResult,
)
from zipshare.utils.exceptions import BackendError
from zipshare.utils.file_sources import LocalFileSource

logger = logging.getLogger(__name__)


def hours_to_seconds(hours: Optional[float]) -> Optional[int]:
    return int(hours * 3600) if hours else None


class TransferAPIClient:
    def __init__(
        self,
        base_url: str = settings.ZIPSHARE_API_URL,
        api_key: str | None = settings.ZIPSHARE_API_KEY,
        chunk_size: int = settings.CHUNK_SIZE,
        api_prefix: str = settings.API_PREFIX,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.__backend = BackendClient(base_url, token=api_key, session=session)
        self.__chunk_size = chunk_size
        self.__prefix = api_prefix.rstrip("/")

    @property
    def backend(self) -> BackendClient:
        return self.__backend

    @property
    def chunk_size(self) -> int:
        return self.__chunk_size

    def _api(self, path: str) -> str:
        return f"{self.__prefix}{path}"

    async def create_transfer(self, file_name: str, file_size: int, file_type: str) -> Transfer:
        data = await self.__backend.request(
            "POST",
            self._api("/transfers"),
            json={"file_name": file_name, "file_size": file_size, "file_type": file_type},
        )
        return Transfer.model_validate(data)

    async def create_batch(self, sources: List[LocalFileSource]) -> BatchTransfer:
        data = await self.__backend.request(
            "POST",
            self._api("/transfers/batch"),
            json={
                "files": [
                    {"file_name": s.name, "file_size": s.size, "file_type": s.content_type}
                    for s in sources
                ]
            },
        )
        return BatchTransfer.model_validate(data)

    async def upload_file_chunks(self, transfer_id: str, source: LocalFileSource) -> None:
        total_chunks = math.ceil(source.size / self.__chunk_size)
        logger.info(f"Uploading {source.name} to transfer {transfer_id} in {total_chunks} chunks")

        for chunk_index in range(total_chunks):
            start = chunk_index * self.__chunk_size
            end = min(start + self.__chunk_size, source.size)
            chunk = await source.read_range(start, end)

            presigned = await self.__backend.request(
                "GET",
                self._api(f"/transfers/{transfer_id}/upload/presigned"),
                params={"chunk": chunk_index},
            )
            await self.__backend.put_to_url(presigned["presigned_url"], chunk)

            await self.__backend.request(
                "PATCH",
                self._api(f"/transfers/{transfer_id}/chunks/{chunk_index}"),
                json={"status": "completed"},
            )
            logger.debug(f"chunk {chunk_index + 1}/{total_chunks} of {transfer_id} stored ({len(chunk)} bytes)")

        await self.__backend.request("POST", self._api(f"/transfers/{transfer_id}/upload/complete"))

    async def create_share(self, transfer_id: str, options: ShareOptions) -> ShareLink:
        data = await self.__backend.request(
            "POST",
            self._api(f"/transfers/{transfer_id}/share"),
            json=compact(options.model_dump()),
        )
        return ShareLink.model_validate(data)

    async def create_batch_share(self, batch_id: str, options: ShareOptions) -> ShareLink:
        data = await self.__backend.request(
            "POST",
            self._api(f"/batches/{batch_id}/share"),
            json=compact(options.model_dump()),
        )
        return ShareLink.model_validate(data)

    async def upload_file(
        self,
        file_path: str,
        recipient_email: str | None = None,
        message: str | None = None,
        password: str | None = None,
        expires_in: float | None = None,
        max_downloads: int | None = None,
    ) -> UploadResult:
        """Upload one local file and return its share link.

        ``expires_in`` is expressed in hours.
        """
        source = LocalFileSource(file_path)

        transfer = await self.create_transfer(source.name, source.size, source.content_type)
        await self.upload_file_chunks(transfer.id, source)

        share = await self.create_share(
            transfer.id,
            ShareOptions(
                password=password,
                expires_in=hours_to_seconds(expires_in),
                max_downloads=max_downloads,
                recipient_email=recipient_email,
                message=message,
            ),
        )
        logger.info(f"Transfer {transfer.id} shared at {share.url}")

        return UploadResult(
            id=transfer.id,
            file_name=source.name,
            file_size=source.size,
            share_url=share.url,
            expires_at=share.expires_at,
        )

    async def upload_files(
        self,
        file_paths: List[str],
        recipient_email: str | None = None,
        message: str | None = None,
        password: str | None = None,
        expires_in: float | None = None,
    ) -> MultiUploadResult:
        # every file is checked before anything is created server side
        sources = [LocalFileSource(path) for path in file_paths]
        total_size = sum(s.size for s in sources)

        batch = await self.create_batch(sources)
        if len(batch.transfers) != len(sources):
            raise BackendError(
                f"Batch {batch.id} returned {len(batch.transfers)} transfers for {len(sources)} files"
            )
        for source, transfer in zip(sources, batch.transfers):
            await self.upload_file_chunks(transfer.id, source)

        share = await self.create_batch_share(
            batch.id,
            ShareOptions(
                password=password,
                expires_in=hours_to_seconds(expires_in),
                recipient_email=recipient_email,
                message=message,
            ),
        )
        logger.info(f"Batch {batch.id} with {len(sources)} files shared at {share.url}")

        return MultiUploadResult(
            id=batch.id,
            file_name=f"{len(sources)} files",
            file_size=total_size,
            file_count=len(sources),
            total_size=total_size,
            files=[FileEntry(name=s.name, size=s.size) for s in sources],
            share_url=share.url,
            expires_at=share.expires_at,
        )

    async def get_transfer_status(self, transfer_id: str) -> TransferStatus:
        # share links and transfer URLs are accepted too
        transfer_id = transfer_id.rstrip("/").split("/")[-1] if "/" in transfer_id else transfer_id
        data = await self.__backend.request("GET", self._api(f"/transfers/{transfer_id}"))
        return TransferStatus.model_validate(data)

    async def list_transfers(self, limit: int | None = None, status: str | None = None) -> TransferList:
        params = compact({"limit": limit, "status": status})
        data = await self.__backend.request("GET", self._api("/transfers"), params=params or None)
        return TransferList.model_validate(data)

    async def delete_transfer(self, transfer_id: str) -> None:
        await self.__backend.request("DELETE", self._api(f"/transfers/{transfer_id}"))

    async def get_download_link(self, share_token: str, password: str | None = None) -> DownloadLink:
        data = await self.__backend.request(
            "POST",
            f"/s/{share_token}/download",
            json=compact({"password": password}),
        )
        return DownloadLink.model_validate(data)

    async def close(self) -> None:
        await self.__backend.close()

    async def __aenter__(self) -> "TransferAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
