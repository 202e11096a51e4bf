"""
HTTP surface of the registry.

A Starlette application exposing the push endpoint. Errors raised anywhere in
a push are rendered here: RegistryError subclasses with their own status and
body, anything else as an opaque internal error that is logged in full.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from .codec import encode_error, encode_push_response
from .coordinator import PushCoordinator
from .errors import InternalError, NotFoundError, RegistryError
from .settings import Settings, create_settings_from_env
from .storage.factory import make_store

__all__ = ["create_app", "create_app_from_env"]

logger = logging.getLogger(__name__)

JSON = "application/json"


def _error_response(error: RegistryError, status: Optional[int] = None) -> Response:
    return Response(encode_error(error), status_code=status or error.status, media_type=JSON)


async def _watch_disconnect(request: Request, cancel: threading.Event) -> None:
    """Set cancel once the client goes away."""
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            cancel.set()
            return


def create_app(coordinator: PushCoordinator) -> Starlette:
    """
    Build the registry application around a coordinator.

    Routes:
        POST /v1/push: one round of the push protocol. A client disconnect
            cancels the push: outstanding store work is abandoned and the
            manifest is not committed.
    """

    async def push(request: Request) -> Response:
        body = await request.body()
        cancel = threading.Event()
        watcher = asyncio.ensure_future(_watch_disconnect(request, cancel))
        try:
            # Store calls block; keep them off the event loop
            result = await run_in_threadpool(coordinator.push_body, body, cancel=cancel)
        except asyncio.CancelledError:
            cancel.set()
            raise
        except RegistryError as e:
            if e.status >= 500:
                logger.warning(f"push failed: {e}")
            else:
                logger.debug(f"push rejected: {e}")
            return _error_response(e)
        except Exception:
            logger.exception("internal error handling push")
            return _error_response(InternalError())
        finally:
            watcher.cancel()
        return Response(encode_push_response(result), media_type=JSON)

    async def http_error(request: Request, exc: HTTPException) -> Response:
        if exc.status_code == 404:
            return _error_response(NotFoundError(f"no route for {request.url.path}"))
        return _error_response(
            RegistryError(exc.detail or "request rejected", code="invalid_request"),
            status=exc.status_code,
        )

    app = Starlette(
        routes=[Route("/v1/push", push, methods=["POST"])],
        exception_handlers={HTTPException: http_error},
    )
    app.state.coordinator = coordinator
    return app


def create_app_from_env(settings: Optional[Settings] = None) -> Starlette:
    """Build the application with store and settings loaded from the environment."""
    if settings is None:
        settings = create_settings_from_env()
    store = make_store(settings)
    logger.info(f"Serving bucket {settings.bucket} via {settings.store} store")
    return create_app(PushCoordinator(store, settings))
