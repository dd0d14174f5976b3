from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from zipshare.config.config import settings


class MaxContentLengthMiddleware(BaseHTTPMiddleware):
    """Reject tool calls whose declared body exceeds ``MAX_CONTENT_LENGTH``."""

    def __init__(self, app, max_content_length: int = settings.MAX_CONTENT_LENGTH):
        super().__init__(app)
        self.max_content_length = max_content_length

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")

        if content_length and content_length.isdigit() and int(content_length) > self.max_content_length:
            return JSONResponse(
                status_code=413,
                content={"detail": "Request payload too large"}
            )

        return await call_next(request)
