from pathlib import Path
import mimetypes
import os

import aiofiles

from zipshare.utils.exceptions import NotFoundError

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(file_name: str) -> str:
    content_type, _ = mimetypes.guess_type(file_name)
    return content_type or DEFAULT_CONTENT_TYPE


class UploadSource:
    """Something with a name, a size, a content type and readable byte ranges."""

    name: str
    size: int
    content_type: str

    async def read_range(self, start: int, end: int) -> bytes:
        raise NotImplementedError


class LocalFileSource(UploadSource):
    def __init__(self, path: str | os.PathLike, content_type: str | None = None) -> None:
        self.path = Path(path)
        if not self.path.is_file():
            raise NotFoundError(f"File not found: {path}")
        self.name = self.path.name
        self.size = self.path.stat().st_size
        self.content_type = content_type or guess_content_type(self.name)

    async def read_range(self, start: int, end: int) -> bytes:
        async with aiofiles.open(self.path, "rb") as f:
            await f.seek(start)
            return await f.read(end - start)


class BytesSource(UploadSource):
    def __init__(self, name: str, data: bytes, content_type: str | None = None) -> None:
        self.name = name
        self.data = data
        self.size = len(data)
        self.content_type = content_type or guess_content_type(name)

    async def read_range(self, start: int, end: int) -> bytes:
        return self.data[start:end]
