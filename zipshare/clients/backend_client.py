from typing import Any, Dict, Optional
import asyncio
import logging

import aiohttp

from zipshare.config.config import settings
from zipshare.utils.exceptions import BackendError

logger = logging.getLogger(__name__)


def compact(body: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset fields so they are left out of the JSON body."""
    return {key: value for key, value in body.items() if value is not None}


async def read_error_message(response: aiohttp.ClientResponse) -> str:
    fallback = f"API request failed: {response.status}"
    try:
        body = await response.json(content_type=None)
    except (ValueError, aiohttp.ClientError):
        return response.reason or fallback

    if isinstance(body, dict):
        message = body.get("message") or body.get("detail")
        if message:
            return message if isinstance(message, str) else str(message)
    return fallback


class BackendClient:
    """Bearer-authenticated JSON requests against one backend base URL."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        session: aiohttp.ClientSession | None = None,
        timeout: float = settings.REQUEST_TIMEOUT,
    ) -> None:
        self.__base_url = base_url.rstrip("/")
        self.__token = token
        self.__session = session
        self.__owns_session = session is None
        self.__timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def base_url(self) -> str:
        return self.__base_url

    @property
    def client(self) -> aiohttp.ClientSession:
        if self.__session is None or self.__session.closed:
            self.__session = aiohttp.ClientSession(timeout=self.__timeout)
            self.__owns_session = True
        return self.__session

    def url(self, path: str) -> str:
        return f"{self.__base_url}{path}"

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.__token:
            headers["Authorization"] = f"Bearer {self.__token}"
        headers.update(extra or {})
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        data: bytes | None = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        logger.debug(f"{method} {path} params={params}")
        try:
            async with self.client.request(
                method,
                self.url(path),
                json=json,
                data=data,
                params=params,
                headers=self._headers(headers),
            ) as response:
                if response.status >= 400:
                    raise BackendError(await read_error_message(response), status=response.status)
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise BackendError(f"Invalid JSON from {method} {path}: {e}", status=response.status) from e
        except aiohttp.ClientError as e:
            raise BackendError(f"{method} {path} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise BackendError(f"{method} {path} timed out") from e

    async def put_to_url(self, url: str, data: bytes) -> None:
        """PUT raw bytes to an absolute, presigned URL; no bearer token is sent."""
        try:
            async with self.client.put(url, data=data, headers={"Content-Length": str(len(data))}) as response:
                if response.status >= 400:
                    raise BackendError(await read_error_message(response), status=response.status)
        except aiohttp.ClientError as e:
            raise BackendError(f"PUT to presigned URL failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise BackendError("PUT to presigned URL timed out") from e

    async def close(self) -> None:
        if self.__owns_session and self.__session is not None and not self.__session.closed:
            await self.__session.close()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
