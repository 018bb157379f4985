"""
Admission webhook HTTP server.

One POST route per registered webhook URI. Reviews run in the threadpool; each
webhook serializes its own evaluations.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from nodeguard.webhooks.base import AdmissionWebhook
from nodeguard.webhooks.registry import WebhookRegistry, build_registry

logger = logging.getLogger(__name__)


def _make_handler(webhook: AdmissionWebhook):
    def review(body: bytes) -> JSONResponse:
        resp = webhook.handle_request(body)
        return JSONResponse(status_code=resp.status_code, content=resp.body)

    async def endpoint(request: Request) -> JSONResponse:
        body = await request.body()
        # Evaluation is synchronous and lock-guarded; keep it off the event loop.
        return await run_in_threadpool(review, body)

    endpoint.__name__ = f"review_{webhook.name.replace('-', '_')}"
    return endpoint


def create_app(registry: Optional[WebhookRegistry] = None) -> FastAPI:
    registry = registry if registry is not None else build_registry()
    app = FastAPI(title="nodeguard admission webhooks")
    app.state.registry = registry

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming HTTP requests."""
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
            raise
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True, "webhooks": registry.names()}

    for uri, webhook in registry.by_uri().items():
        app.add_api_route(uri, _make_handler(webhook), methods=["POST"], include_in_schema=False)
        logger.info(
            "Registered webhook %s at %s (timeout=%ss failurePolicy=%s)",
            webhook.name,
            uri,
            webhook.timeout_seconds,
            webhook.failure_policy,
        )

    return app


def run(
    host: str = "0.0.0.0",
    port: int = 8443,
    *,
    registry: Optional[WebhookRegistry] = None,
    ssl_certfile: Optional[str] = None,
    ssl_keyfile: Optional[str] = None,
    log_level: Optional[str] = None,
) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = (log_level or os.getenv("LOG_LEVEL", "info")).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("nodeguard").setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    app = create_app(registry)
    logger.info("Starting admission webhook server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=uvicorn_log_level,
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
    )
