from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
import logging

from mimir_relay import __version__
from mimir_relay.core.config import Settings, get_settings
from mimir_relay.core.logging import setup_logging
from mimir_relay.handler import RelayHandler, RelayResult
from mimir_relay.models import RelayResponse

setup_logging()
logger = logging.getLogger(__name__)

CHAT_PATHS = ("/v1/chat", "/.netlify/functions/chat")

# every verb is routed to the handler so it decides 405 vs OPTIONS itself
CHAT_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def _render(result: RelayResult) -> Response:
    if result.body is None:
        return Response(content=b"", status_code=result.status_code, headers=result.headers)
    return JSONResponse(content=result.body, status_code=result.status_code, headers=result.headers)


def create_app(
    settings: Optional[Settings] = None,
    handler: Optional[RelayHandler] = None,
) -> FastAPI:
    app = FastAPI(title="Mimir Relay", version=__version__)
    relay = handler or RelayHandler(settings or get_settings())
    app.state.relay = relay

    @app.get("/healthz")
    def health():
        return {"status": "ok"}

    async def chat(request: Request) -> Response:
        logger.info(
            "request %s %s from %s ua=%s",
            request.method,
            request.url.path,
            _client_ip(request),
            request.headers.get("user-agent", "unknown"),
        )
        body = await request.body()
        result = await relay.handle(request.method, body)
        return _render(result)

    for path in CHAT_PATHS:
        app.add_api_route(
            path,
            chat,
            methods=CHAT_METHODS,
            include_in_schema=path == "/v1/chat",
            responses={code: {"model": RelayResponse} for code in (200, 400, 405)},
        )

    return app


app = create_app()
