from __future__ import annotations

import asyncio
import logging
import sys

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mediabridge.core.config import settings
from mediabridge.routers import download, proxy, transcribe

logger = logging.getLogger(__name__)

if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())


def create_app() -> FastAPI:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    app = FastAPI(
        title="Media Bridge",
        description="Resolve social media posts to downloadable media, proxy it and transcribe it.",
        version="0.1.0",
    )

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return JSONResponse({"error": f"{field}: {message}" if field else message}, status_code=400)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error", extra={"path": request.url.path})
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)

    app.include_router(download.router, prefix="/api")
    app.include_router(proxy.router, prefix="/api")
    app.include_router(transcribe.router, prefix="/api")

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "timestamp": settings.current_timestamp()}

    return app


app = create_app()


def run() -> None:
    uvicorn.run("mediabridge.main:app", host=settings.host, port=settings.port)
