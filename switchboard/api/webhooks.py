"""
switchboard.api.webhooks — Inbound Webhook Receiver
====================================================

A thin FastAPI app in front of :meth:`Dispatcher.handle_webhook`.  Any
HTTP method on ``/webhook/<path>`` is buffered in full, decoded as UTF-8,
and handed to the dispatcher with ``/<path>``, the request headers and
the raw query string.  The dispatcher's
:class:`~switchboard.engine.module.WebhookResponse` is reflected verbatim.

:class:`WebhookServer` runs the app under uvicorn as a task on the bot's
own event loop, so webhook handlers share state with Discord handlers.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI, Request, Response

from switchboard.constants import WEBHOOK_ROUTE

if TYPE_CHECKING:
    from switchboard.engine.dispatcher import Dispatcher

logger = logging.getLogger(__name__)

WEBHOOK_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def create_app(dispatcher: Dispatcher) -> FastAPI:
    """Build the webhook app bound to *dispatcher*."""
    app = FastAPI(title="Switchboard Webhooks", version="1.0.0")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.api_route(WEBHOOK_ROUTE + "/{path:path}", methods=WEBHOOK_METHODS)
    async def receive(path: str, request: Request) -> Response:
        raw = await request.body()
        body = raw.decode("utf-8", errors="replace")
        result = await dispatcher.handle_webhook(
            "/" + path, dict(request.headers), body, query=request.url.query,
        )
        return Response(
            content=result.body if result.body is not None else b"",
            status_code=result.status_code,
            headers=dict(result.headers) if result.headers else None,
        )

    return app


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the bot process."""

    def install_signal_handlers(self) -> None:
        return None

    @contextmanager
    def capture_signals(self):
        yield


class WebhookServer:
    """uvicorn server running inside the bot's event loop."""

    def __init__(self, dispatcher: Dispatcher, host: str, port: int) -> None:
        self.app = create_app(dispatcher)
        self._server = _EmbeddedServer(
            uvicorn.Config(self.app, host=host, port=port, log_config=None, lifespan="off")
        )
        self._task: asyncio.Task | None = None
        self.host = host
        self.port = port

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._server.serve())
        logger.info("Webhook listener starting on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._server.should_exit = True
        try:
            await self._task
        except Exception:
            logger.exception("Webhook listener stopped with an error")
        finally:
            self._task = None
        logger.info("Webhook listener stopped.")
