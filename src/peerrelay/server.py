"""HTTP and WebSocket server for the relay.

Single aiohttp application handling:
- /, /health - Peer count and uptime
- {path} - WebSocket signaling endpoint (?key=...&id=...&token=...)
- {path}/id - Issue a currently unused peer ID
- {path}/peers - List connected peer IDs (when discovery is enabled)
"""

import asyncio
import logging
import signal
import time
from typing import Awaitable, Callable, Optional

from aiohttp import WSMsgType, web

from peerrelay.admission import AdmissionHandler, ConnectionParams
from peerrelay.config import Config
from peerrelay.errors import IdExhaustedError
from peerrelay.ids import generate_unique_id
from peerrelay.peer import WebSocketPeer
from peerrelay.registry import PeerRegistry
from peerrelay.relay import RelayEngine
from peerrelay.sweeper import LivenessSweeper

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

_HEALTH_PATHS = ("/", "/health")

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _json_error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Answer preflight requests and map unknown routes to a JSON 404."""
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)

    try:
        response = await handler(request)
    except (web.HTTPNotFound, web.HTTPMethodNotAllowed):
        response = _json_error("Not found", 404)

    # WebSocket responses have already sent their headers
    if not isinstance(response, web.WebSocketResponse):
        response.headers.update(CORS_HEADERS)
    return response


class RelayServer:
    """Signaling relay server.

    Owns the peer registry and wires admission, relay and the liveness
    sweeper around it. The sweeper runs for the lifetime of the aiohttp
    application.
    """

    def __init__(
        self,
        config: Config,
        registry: Optional[PeerRegistry] = None,
    ):
        """Initialize relay server.

        Args:
            config: Server configuration.
            registry: Optional injected registry (for testing).
        """
        self.config = config
        self.registry = registry if registry is not None else PeerRegistry()
        self.admission = AdmissionHandler(
            self.registry,
            key=config.key,
            max_id_attempts=config.max_id_attempts,
        )
        self.engine = RelayEngine(self.registry)
        self.sweeper = LivenessSweeper(self.registry, config.heartbeat)

        self._started_at = time.monotonic()
        self._stop_event: Optional[asyncio.Event] = None

        self.app = web.Application(middlewares=[cors_middleware])
        self._setup_routes()
        self.app.on_startup.append(self._on_startup)
        self.app.on_cleanup.append(self._on_cleanup)
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._port: int = 0

    def _setup_routes(self) -> None:
        """Set up all HTTP routes."""
        path = self.config.path

        # Health
        for health_path in _HEALTH_PATHS:
            self.app.router.add_get(health_path, self._handle_health)

        # ID issuance and discovery
        prefix = "" if path == "/" else path
        self.app.router.add_get(f"{prefix}/id", self._handle_issue_id)
        self.app.router.add_get(f"{prefix}/peers", self._handle_list_peers)

        # Signaling WebSocket; on a health path the health handler upgrades
        if path not in _HEALTH_PATHS:
            self.app.router.add_get(path, self._handle_websocket)

    async def _on_startup(self, app: web.Application) -> None:
        await self.sweeper.start()

    async def _on_cleanup(self, app: web.Application) -> None:
        await self.sweeper.stop()
        await self.registry.close_all()

    @property
    def uptime(self) -> float:
        """Seconds since the server object was created."""
        return time.monotonic() - self._started_at

    # =========================================================================
    # HTTP endpoints
    # =========================================================================

    async def _handle_health(self, request: web.Request) -> web.StreamResponse:
        """Health check endpoint, or the WebSocket when mounted on the same path."""
        if (
            request.path == self.config.path
            and web.WebSocketResponse().can_prepare(request).ok
        ):
            return await self._handle_websocket(request)
        return web.json_response({
            "status": "ok",
            "name": "peer-server",
            "peers": len(self.registry),
            "uptime": self.uptime,
        })

    async def _handle_issue_id(self, request: web.Request) -> web.Response:
        """Return one peer ID that is not currently connected.

        The ID is not reserved; a later admission with it can still collide.
        """
        try:
            peer_id = generate_unique_id(
                self.registry.is_taken, max_attempts=self.config.max_id_attempts
            )
        except IdExhaustedError as e:
            logger.error(f"ID issuance failed: {e}")
            return _json_error("Unable to allocate a peer ID", 503)
        return web.Response(text=peer_id, content_type="text/plain")

    async def _handle_list_peers(self, request: web.Request) -> web.Response:
        """List connected peer IDs."""
        if not self.config.allow_discovery:
            return _json_error("Discovery disabled", 403)
        return web.json_response(await self.registry.snapshot_ids())

    # =========================================================================
    # WebSocket signaling
    # =========================================================================

    async def _handle_websocket(self, request: web.Request) -> web.StreamResponse:
        """Admit a peer, then relay its messages until the socket closes."""
        ws = web.WebSocketResponse()
        if not ws.can_prepare(request).ok:
            return _json_error("Not found", 404)
        await ws.prepare(request)

        peer = WebSocketPeer(ws, send_timeout=self.config.send_timeout)
        params = ConnectionParams.from_query(request.query)
        result = await self.admission.admit(params, peer)
        if not result.admitted:
            return ws

        record = result.record
        try:
            async for msg in ws:
                if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                    await self.engine.handle(record, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.error(f"[{record.peer_id}] Socket error: {ws.exception()}")
                    break
        finally:
            await self.registry.remove(record.peer_id, record)

        return ws

    # =========================================================================
    # Server lifecycle
    # =========================================================================

    async def start(self, host: Optional[str] = None, port: Optional[int] = None) -> web.AppRunner:
        """Start the server.

        Args:
            host: Host to bind to. Defaults to config.bind_address.
            port: Port to bind to (0 for random). Defaults to config.port.

        Returns:
            App runner for cleanup.
        """
        host = self.config.bind_address if host is None else host
        port = self.config.port if port is None else port

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()

        # Get actual port
        if self._site._server and self._site._server.sockets:
            self._port = self._site._server.sockets[0].getsockname()[1]
        else:
            self._port = port

        logger.info(f"Relay server started on {host}:{self._port}")
        logger.info(f"  WebSocket: ws://{host}:{self._port}{self.config.path}")
        logger.info(
            f"  Discovery: {'enabled' if self.config.allow_discovery else 'disabled'}"
        )
        return self._runner

    def get_port(self) -> int:
        """Get the actual bound port."""
        return self._port

    async def close(self) -> None:
        """Close all connections and stop server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        else:
            await self.sweeper.stop()
            await self.registry.close_all()

        logger.info("Relay server closed")

    async def run_forever(self) -> None:
        """Serve until SIGINT/SIGTERM or stop() is called."""
        self._stop_event = asyncio.Event()
        if self._runner is None:
            await self.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.stop)

        try:
            await self._stop_event.wait()
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            await self.close()

    def stop(self) -> None:
        """Ask run_forever() to return."""
        if self._stop_event is not None:
            self._stop_event.set()
