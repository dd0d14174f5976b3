from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from zipshare.clients.transfer_client import TransferAPIClient
from zipshare.config.config import settings
from zipshare.config.logging_config import setup_logging
from zipshare.controllers.tool_controller import ToolDispatcher
from zipshare.middleware.middleware import MaxContentLengthMiddleware
from zipshare.routes.tool_route import route as tools_route

logger = logging.getLogger(__name__)


def create_app(dispatcher: ToolDispatcher | None = None) -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if dispatcher is not None:
            yield
            return

        if not settings.ZIPSHARE_API_KEY:
            raise RuntimeError("ZIPSHARE_API_KEY environment variable is required")

        async with TransferAPIClient(settings.ZIPSHARE_API_URL, settings.ZIPSHARE_API_KEY) as client:
            app.state.dispatcher = ToolDispatcher(client)
            logger.info(f"ZipShare tool server using {settings.ZIPSHARE_API_URL}")
            yield

    app = FastAPI(
        title="ZipShare tool server",
        description="Exposes ZipShare file transfers as agent tools",
        version="1.0.0",
        lifespan=lifespan,
    )
    if dispatcher is not None:
        app.state.dispatcher = dispatcher

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MaxContentLengthMiddleware)

    @app.get("/")
    def home():
        return {"message": "welcome to the ZipShare tool server"}

    @app.get("/health")
    def get_health():
        return {
            "message": "tool server running",
            "backend": settings.ZIPSHARE_API_URL,
        }

    app.include_router(tools_route)

    return app


app = create_app()
