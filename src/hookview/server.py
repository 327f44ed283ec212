"""hookview HTTP server.

Serves the dashboard and streams the hook event log in real time.

Endpoints:
- GET /api/entries - Full JSON array of log records
- GET /events - Server-Sent Events stream of the full record set per change
- POST /shutdown - Bearer-token authenticated shutdown
- GET /health - Liveness and tail status
- GET /* - Bundled single-page dashboard (index.html fallback)

Security:
- Binds to localhost by default
- CORS on the JSON API restricted to the server's own origin
- CSP / nosniff / frame-deny headers on HTML responses
- Per-client rate limiting of SSE connections
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import socket
from collections.abc import Callable
from contextlib import asynccontextmanager
from pathlib import Path, PurePosixPath

from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import (
    FileResponse,
    JSONResponse,
    PlainTextResponse,
    Response,
    StreamingResponse,
)
from starlette.routing import Route

from hookview.config import ViewerConfig
from hookview.ratelimit import RateLimiter
from hookview.records import read_log_records
from hookview.security import (
    HTML_SECURITY_HEADERS,
    client_identity,
    verify_bearer_token,
)
from hookview.subscribers import QueueSubscriber, SubscriberRegistry
from hookview.tailer import LogTailer

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class ViewerServer:
    """Realtime log viewer: tailer + subscriber registry + Starlette app.

    Example:
        server = ViewerServer(ViewerConfig(port=3456))
        server.run()  # blocks until Ctrl+C or POST /shutdown
    """

    def __init__(
        self,
        config: ViewerConfig | None = None,
        on_exit: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the server.

        Args:
            config: Settings; loaded from HOOKVIEW_* env vars when omitted.
            on_exit: Called once the authenticated shutdown has completed,
                for hosts that do not run under ``run()``.
        """
        self.config = config or ViewerConfig()
        self.on_exit = on_exit
        self.registry = SubscriberRegistry()
        self.rate_limiter = RateLimiter(
            self.config.rate_limit_max_connections,
            self.config.rate_limit_window_ms,
        )
        self.tailer = LogTailer(
            self.config.log_file,
            self._on_new_records,
            poll_interval=self.config.poll_interval,
        )
        self._uvicorn = None
        self._stopped = False
        # Serializes snapshot reads with subscriber admission so a new
        # subscriber never misses a push between its snapshot and registration
        self._snapshot_lock = asyncio.Lock()
        self._pushes: set[asyncio.Task] = set()
        self.app = self.create_app()

    # =========================================================================
    # Log access and broadcast
    # =========================================================================

    def read_entries(self) -> list[dict]:
        """Full re-read of the log file. Blocking; run it off the event loop."""
        return read_log_records(self.config.log_file)

    def _on_new_records(self, records: list[dict]) -> None:
        # Runs on the event loop; the full re-read happens in a worker thread
        if self.registry.closed:
            return
        task = asyncio.get_running_loop().create_task(self._push_entries(len(records)))
        self._pushes.add(task)
        task.add_done_callback(self._pushes.discard)

    async def _push_entries(self, new_count: int) -> None:
        # Consumers always get the complete current set, not just the delta
        async with self._snapshot_lock:
            entries = await asyncio.to_thread(self.read_entries)
            if self.registry.closed:
                return
            delivered = self.registry.broadcast("entries", entries)
        logger.debug(
            f"{new_count} new record(s); pushed {len(entries)} entries "
            f"to {delivered} subscriber(s)"
        )

    async def connect(self, identity: str) -> QueueSubscriber | None:
        """Admit a new stream subscriber.

        Returns:
            The registered subscriber with the initial ``entries`` frame
            queued, or None if ``identity`` is over its rate limit.
        """
        if not self.rate_limiter.is_allowed(identity):
            logger.warning(f"SSE connection from {identity} rejected: rate limit exceeded")
            return None

        subscriber = QueueSubscriber(identity, max_pending=self.config.subscriber_queue_size)
        async with self._snapshot_lock:
            subscriber.send("entries", await asyncio.to_thread(self.read_entries))
            self.registry.add(subscriber)
        logger.info(f"SSE client connected from {identity} ({len(self.registry)} live)")
        return subscriber

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Begin tailing the log file."""
        self._stopped = False
        self.tailer.start()

    async def stop(self) -> None:
        """Close every stream, stop tailing, and stop accepting connections.

        Safe to call more than once.
        """
        if self._stopped:
            return
        self._stopped = True
        self.registry.close_all()
        await self.tailer.aclose()
        pushes = list(self._pushes)
        for task in pushes:
            task.cancel()
        await asyncio.gather(*pushes, return_exceptions=True)
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True
        logger.info("Viewer stopped")

    async def _shutdown_after_response(self) -> None:
        await asyncio.sleep(self.config.shutdown_delay)
        await self.stop()
        if self.on_exit is not None:
            self.on_exit()

    @asynccontextmanager
    async def _lifespan(self, app: Starlette):
        await self.start()
        try:
            yield
        finally:
            await self.stop()

    # =========================================================================
    # Request handlers
    # =========================================================================

    async def get_entries(self, request: Request) -> Response:
        """GET /api/entries - full record set as JSON."""
        entries = await asyncio.to_thread(self.read_entries)
        return JSONResponse(
            entries,
            headers={"Access-Control-Allow-Origin": self.config.origin},
        )

    async def events(self, request: Request) -> Response:
        """GET /events - SSE stream, one ``entries`` frame per log change."""
        identity = client_identity(request)
        subscriber = await self.connect(identity)
        if subscriber is None:
            return PlainTextResponse("Rate limit exceeded", status_code=429)

        async def stream():
            try:
                async for frame in subscriber.frames(keepalive=self.config.keepalive_interval):
                    yield frame
            finally:
                self.registry.remove(subscriber)
                subscriber.close()
                logger.info(f"SSE client {identity} disconnected ({len(self.registry)} live)")

        return StreamingResponse(stream(), headers=SSE_HEADERS)

    async def shutdown(self, request: Request) -> Response:
        """POST /shutdown - acknowledge, then stop once the response is sent."""
        if not verify_bearer_token(request, self.config.shutdown_token):
            logger.warning("Rejected /shutdown request: missing or invalid token")
            return PlainTextResponse("Unauthorized", status_code=401)

        logger.info("Shutdown requested")
        return JSONResponse(
            {"message": "Shutting down"},
            background=BackgroundTask(self._shutdown_after_response),
        )

    async def health(self, request: Request) -> Response:
        """GET /health - liveness and tail status."""
        return JSONResponse({
            "status": "stopping" if self._stopped else "ok",
            "subscribers": len(self.registry),
            "log_file": str(self.config.log_file),
            "known_length": self.tailer.known_length,
            "watching": self.tailer.running,
        })

    async def static(self, request: Request) -> Response:
        """GET /* - dashboard assets with SPA fallback to index.html."""
        dist_dir = self.config.dist_dir
        try:
            path = resolve_static_path(dist_dir, request.url.path)
        except ValueError:
            logger.warning(f"Rejected path traversal attempt: {request.url.path}")
            return PlainTextResponse("Not Found", status_code=404)

        if path is None:
            path = dist_dir / "index.html"
            if not path.is_file():
                return PlainTextResponse("Not Found", status_code=404)

        media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        headers = HTML_SECURITY_HEADERS if media_type == "text/html" else None
        return FileResponse(path, media_type=media_type, headers=headers)

    def create_app(self) -> Starlette:
        """Build the Starlette app bound to this server's state."""
        routes = [
            Route("/api/entries", self.get_entries, methods=["GET"]),
            Route("/events", self.events, methods=["GET"]),
            Route("/shutdown", self.shutdown, methods=["POST"]),
            Route("/health", self.health, methods=["GET"]),
            Route("/{path:path}", self.static, methods=["GET"]),
        ]
        return Starlette(routes=routes, lifespan=self._lifespan)

    # =========================================================================
    # Entry point
    # =========================================================================

    def run(self) -> None:
        """Bind the listening socket and serve until shut down.

        Raises:
            OSError: If the port cannot be bound.
        """
        import uvicorn

        sock = bind_socket(self.config.host, self.config.port)
        uvicorn_config = uvicorn.Config(
            self.app,
            log_level="warning",
            timeout_graceful_shutdown=5,
        )
        self._uvicorn = uvicorn.Server(uvicorn_config)
        logger.info(f"Viewer running at http://{self.config.host}:{self.config.port}")
        try:
            self._uvicorn.run(sockets=[sock])
        finally:
            sock.close()
            self._uvicorn = None


def resolve_static_path(dist_dir: Path, request_path: str) -> Path | None:
    """Map a URL path onto a file inside ``dist_dir``.

    Returns:
        The file, or None if nothing exists there (caller falls back to
        index.html).

    Raises:
        ValueError: If the path contains ``..`` or resolves outside ``dist_dir``.
    """
    relative = request_path.lstrip("/") or "index.html"
    if ".." in PurePosixPath(relative.replace("\\", "/")).parts:
        raise ValueError(f"Path traversal: {request_path}")

    root = dist_dir.resolve()
    candidate = (root / relative).resolve()
    if not candidate.is_relative_to(root):
        raise ValueError(f"Path escapes dist directory: {request_path}")
    return candidate if candidate.is_file() else None


def bind_socket(host: str, port: int) -> socket.socket:
    """Create and bind the listening socket up front so bind errors surface early."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    return sock
