"""
In-process fake ZipShare backends served with aiohttp, plus a fake
agent client for the tool surface.

``UploaderBackend`` speaks the multipart routes the chunked uploader uses,
``AgentBackend`` the presigned-chunk routes of the agent API client. Both
record every request so tests can assert on what reached the wire.
"""

from typing import Awaitable, Callable, Dict, List, Optional

import pytest
from aiohttp import web

from zipshare.models.transfers import (
    DownloadLink,
    FileEntry,
    MultiUploadResult,
    TransferList,
    TransferState,
    TransferStatus,
    UploadResult,
)

MAX_BODY = 16 * 1024 * 1024


class UploaderBackend:
    def __init__(self) -> None:
        self.url = ""
        self.requests: List[tuple] = []
        self.auth_headers: List[Optional[str]] = []
        self.created: List[dict] = []
        self.chunk_attempts: Dict[int, int] = {}
        self.chunks: Dict[int, bytes] = {}
        self.completed: List[List[dict]] = []
        self.aborted: List[str] = []

        self.chunk_failures: Dict[int, int] = {}
        self.chunk_hook: Optional[Callable[[int], Awaitable[None]]] = None
        self.reject_create = False
        self.reject_complete = False

    def make_app(self) -> web.Application:
        app = web.Application(client_max_size=MAX_BODY, middlewares=[self._record])
        app.router.add_post("/transfers", self.create)
        app.router.add_post("/transfers/{id}/upload/init", self.init)
        app.router.add_post("/transfers/{id}/upload/chunk", self.chunk)
        app.router.add_post("/transfers/{id}/upload/complete", self.complete)
        app.router.add_post("/transfers/{id}/upload/abort", self.abort)
        return app

    @web.middleware
    async def _record(self, request, handler):
        self.requests.append((request.method, request.path))
        self.auth_headers.append(request.headers.get("Authorization"))
        return await handler(request)

    def count(self, method: str, suffix: str) -> int:
        return sum(1 for m, p in self.requests if m == method and p.endswith(suffix))

    async def create(self, request):
        body = await request.json()
        self.created.append(body)
        if self.reject_create:
            return web.json_response({"message": "File type not allowed"}, status=422)
        return web.json_response(
            {"data": {"id": "tr_1", "file_name": body["file_name"], "file_size": body["file_size"], "status": "pending"}}
        )

    async def init(self, request):
        transfer_id = request.match_info["id"]
        return web.json_response({"data": {"upload_id": "up_1", "key": f"uploads/{transfer_id}"}})

    async def chunk(self, request):
        part_number = int(request.query["part_number"])
        self.chunk_attempts[part_number] = self.chunk_attempts.get(part_number, 0) + 1
        data = await request.read()

        if self.chunk_hook is not None:
            await self.chunk_hook(part_number)

        if self.chunk_failures.get(part_number, 0) > 0:
            self.chunk_failures[part_number] -= 1
            return web.json_response({"message": "storage unavailable"}, status=503)

        self.chunks[part_number] = data
        return web.json_response({"data": {"etag": f"etag-{part_number}"}})

    async def complete(self, request):
        body = await request.json()
        self.completed.append(body["parts"])
        if self.reject_complete:
            return web.json_response({"message": "Missing parts"}, status=409)
        return web.json_response(
            {"data": {"id": request.match_info["id"], "status": "completed", "parts": len(body["parts"])}}
        )

    async def abort(self, request):
        self.aborted.append(request.match_info["id"])
        return web.json_response({"data": {"status": "aborted"}})


class AgentBackend:
    def __init__(self) -> None:
        self.url = ""
        self.requests: List[tuple] = []
        self.auth_headers: Dict[str, Optional[str]] = {}
        self.bodies: Dict[str, list] = {}
        self.stored: Dict[tuple, bytes] = {}
        self.transfers: List[dict] = []
        self.next_id = 0

    def make_app(self) -> web.Application:
        app = web.Application(client_max_size=MAX_BODY, middlewares=[self._record])
        r = app.router
        r.add_post("/api/transfers", self.create)
        r.add_post("/api/transfers/batch", self.create_batch)
        r.add_get("/api/transfers/{id}/upload/presigned", self.presigned)
        r.add_put("/storage/{id}/{chunk}", self.store)
        r.add_patch("/api/transfers/{id}/chunks/{chunk}", self.mark_chunk)
        r.add_post("/api/transfers/{id}/upload/complete", self.complete)
        r.add_post("/api/transfers/{id}/share", self.share)
        r.add_post("/api/batches/{id}/share", self.share)
        r.add_get("/api/transfers", self.list)
        r.add_get("/api/transfers/{id}", self.status)
        r.add_delete("/api/transfers/{id}", self.delete)
        r.add_post("/s/{token}/download", self.download)
        r.add_get("/broken/text", self.broken_text)
        return app

    @web.middleware
    async def _record(self, request, handler):
        self.requests.append((request.method, request.path_qs))
        self.auth_headers[f"{request.method} {request.path}"] = request.headers.get("Authorization")
        if request.can_read_body and request.content_type == "application/json":
            self.bodies.setdefault(request.path, []).append(await request.json())
        return await handler(request)

    def _new_id(self) -> str:
        self.next_id += 1
        return f"tr_{self.next_id}"

    async def create(self, request):
        body = await request.json()
        return web.json_response({"id": self._new_id(), "upload_url": "unused", "file_name": body["file_name"]})

    async def create_batch(self, request):
        body = await request.json()
        transfers = [{"id": self._new_id(), "file_name": f["file_name"]} for f in body["files"]]
        return web.json_response({"id": "batch_1", "transfers": transfers})

    async def presigned(self, request):
        transfer_id = request.match_info["id"]
        chunk = request.query["chunk"]
        return web.json_response({"presigned_url": f"{request.url.origin()}/storage/{transfer_id}/{chunk}"})

    async def store(self, request):
        key = (request.match_info["id"], int(request.match_info["chunk"]))
        self.stored[key] = await request.read()
        return web.Response(status=200)

    async def mark_chunk(self, request):
        return web.json_response({"ok": True})

    async def complete(self, request):
        return web.json_response({"id": request.match_info["id"], "status": "completed"})

    async def share(self, request):
        return web.json_response(
            {"token": "abc123", "url": "https://zipshare.io/s/abc123", "expires_at": "2026-10-26T00:00:00Z"}
        )

    async def list(self, request):
        status = request.query.get("status")
        transfers = [t for t in self.transfers if status is None or t["status"] == status]
        limit = int(request.query.get("limit", 10))
        return web.json_response({"transfers": transfers[:limit], "total": len(transfers)})

    async def status(self, request):
        transfer_id = request.match_info["id"]
        if transfer_id == "missing":
            return web.json_response({"message": "Transfer not found"}, status=404)
        if transfer_id == "boom":
            return web.json_response({"error": "unexpected"}, status=500)
        return web.json_response(
            {
                "id": transfer_id,
                "fileName": "report.pdf",
                "fileSize": 1536,
                "status": "completed",
                "progress": 100,
                "downloadCount": 2,
                "maxDownloads": 5,
                "createdAt": "2026-10-19T10:00:00Z",
                "expiresAt": "2026-10-26T10:00:00Z",
                "shareUrl": "https://zipshare.io/s/abc123",
            }
        )

    async def delete(self, request):
        return web.Response(status=204)

    async def download(self, request):
        body = await request.json()
        if body.get("password") != "hunter2":
            return web.json_response({"message": "Invalid password"}, status=403)
        return web.json_response(
            {
                "fileName": "report.pdf",
                "fileSize": 1536,
                "downloadUrl": "https://cdn.zipshare.io/report.pdf?sig=1",
                "validFor": 3600,
            }
        )

    async def broken_text(self, request):
        return web.Response(status=502, text="<html>bad gateway</html>", content_type="text/html")


@pytest.fixture
async def uploader_backend(aiohttp_server):
    backend = UploaderBackend()
    server = await aiohttp_server(backend.make_app())
    backend.url = str(server.make_url("/")).rstrip("/")
    return backend


@pytest.fixture
async def agent_backend(aiohttp_server):
    backend = AgentBackend()
    server = await aiohttp_server(backend.make_app())
    backend.url = str(server.make_url("/")).rstrip("/")
    return backend


class FakeClient:
    def __init__(self) -> None:
        self.calls = []
        self.transfers = []
        self.fail_with = None

    def _record(self, name, *args, **kwargs):
        self.calls.append((name, args, kwargs))
        if self.fail_with is not None:
            raise self.fail_with

    async def upload_file(self, file_path, **kwargs):
        self._record("upload_file", file_path, **kwargs)
        return UploadResult(
            id="tr_1",
            file_name="report.pdf",
            file_size=1536,
            share_url="https://zipshare.io/s/abc123",
            expires_at="2026-10-26T00:00:00Z",
        )

    async def upload_files(self, file_paths, **kwargs):
        self._record("upload_files", file_paths, **kwargs)
        return MultiUploadResult(
            id="batch_1",
            file_name="2 files",
            file_size=3072,
            share_url="https://zipshare.io/s/xyz789",
            expires_at="2026-10-26T00:00:00Z",
            file_count=2,
            total_size=3072,
            files=[FileEntry(name="a.txt", size=1024), FileEntry(name="b.txt", size=2048)],
        )

    async def get_transfer_status(self, transfer_id):
        self._record("get_transfer_status", transfer_id)
        return TransferStatus(
            id=transfer_id,
            file_name="report.pdf",
            file_size=1048576,
            status=TransferState.COMPLETED,
            progress=100,
            download_count=2,
            max_downloads=5,
            created_at="2026-10-19",
            expires_at="2026-10-26",
        )

    async def list_transfers(self, limit=None, status=None):
        self._record("list_transfers", limit=limit, status=status)
        return TransferList(transfers=self.transfers, total=len(self.transfers))

    async def delete_transfer(self, transfer_id):
        self._record("delete_transfer", transfer_id)

    async def get_download_link(self, share_token, password=None):
        self._record("get_download_link", share_token, password)
        return DownloadLink(
            file_name="report.pdf",
            file_size=1536,
            download_url="https://cdn.zipshare.io/report.pdf?sig=1",
            valid_for=3600,
        )




@pytest.fixture
def fake_client():
    return FakeClient()
