import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from relaybox.api.routes import router
from relaybox.api.ws import router as ws_router
from relaybox.config import settings
from relaybox.models.schemas import ErrorResponse
from relaybox.relay import ExpirySweeper, InvalidPayloadError, MissingKeyError, RelayService
from relaybox.relay.mailbox import create_mailbox_store


class LimitRequestBodyMiddleware:
    """Reject requests whose Content-Length exceeds settings.max_body_size.

    Plain ASGI so `receive` reaches the routes untouched and held polls
    still see the client disconnect.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            content_length = Headers(scope=scope).get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > settings.max_body_size:
                response = JSONResponse(
                    status_code=413,
                    content={"detail": "Request body too large"},
                )
                await response(scope, receive, send)
                return
        await self.app(scope, receive, send)


logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    mailbox = await create_mailbox_store(
        settings.mailbox_backend, settings.redis_url, settings.data_ttl
    )
    relay = RelayService(settings, mailbox=mailbox)
    sweeper = ExpirySweeper(relay, settings.sweep_interval)
    app.state.relay = relay
    sweeper.start()
    logger.info("Relay server starting (port %d)...", settings.port)
    yield
    await sweeper.stop()
    await relay.close()
    logger.info("Shutting down...")


app = FastAPI(
    title="Relaybox",
    description="Store-and-forward relay for clients that cannot stay connected",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware (configure via CORS_ORIGINS env var)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# Reject oversized request bodies (runs before route handlers)
app.add_middleware(LimitRequestBodyMiddleware)

app.include_router(router)
app.include_router(ws_router)


@app.exception_handler(MissingKeyError)
@app.exception_handler(InvalidPayloadError)
async def relay_error_handler(request: Request, exc: MissingKeyError | InvalidPayloadError):
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(message=exc.message).model_dump(),
    )


# Registered last so API routes take precedence over files
if Path(settings.static_dir).is_dir():
    app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")


def run() -> None:
    import uvicorn

    # Each worker process owns an independent relay
    uvicorn.run(
        "relaybox.main:app",
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


if __name__ == "__main__":
    run()
