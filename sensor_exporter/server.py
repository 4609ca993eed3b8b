"""
HTTP endpoint serving the exposition document.

A minimal HTTP/1.x server on asyncio streams: one request per
connection, GET and HEAD only.
"""

import asyncio
import contextlib

from .config.schema import HttpConfig
from .const import APP_NAME, EXPOSITION_CONTENT_TYPE
from .exposition import ExpositionStore
from .logging import get_logger

logger = get_logger("server")

# Time a client gets to send its request head
REQUEST_TIMEOUT = 10.0
MAX_HEADER_LINES = 100

REASONS = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
}

LANDING_PAGE = """<html>
<head><title>{name}</title></head>
<body>
<h1>{name}</h1>
<p><a href="{path}">Metrics</a></p>
</body>
</html>
"""


class ExpositionServer:
    """Serves ExpositionStore snapshots to monitoring scrapers."""

    def __init__(self, store: ExpositionStore, config: HttpConfig | None = None):
        self.store = store
        self.config = config or HttpConfig()
        self._server: asyncio.AbstractServer | None = None

    @property
    def port(self) -> int | None:
        """Bound port (useful when configured with port 0)."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle, self.config.listen, self.config.port
        )
        logger.info(
            f"Serving metrics on http://{self.config.listen}:{self.port}{self.config.path}"
        )

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None

    def respond(self, method: str, target: str) -> tuple[int, str, str]:
        """
        Build the response for a request line.

        Returns:
            Tuple of (status, content type, body)
        """
        if method not in ("GET", "HEAD"):
            return 405, "text/plain; charset=utf-8", "Method not allowed\n"

        path = target.split("?", 1)[0]
        if path == self.config.path:
            return 200, EXPOSITION_CONTENT_TYPE, self.store.snapshot()
        if path == "/":
            page = LANDING_PAGE.format(name=APP_NAME, path=self.config.path)
            return 200, "text/html; charset=utf-8", page
        return 404, "text/plain; charset=utf-8", "Not found\n"

    async def _read_request(self, reader: asyncio.StreamReader) -> tuple[str, str] | None:
        """Read the request head, returning (method, target) or None if malformed."""
        request_line = (await reader.readline()).decode("latin-1").strip()
        parts = request_line.split()
        if len(parts) != 3 or not parts[2].startswith("HTTP/"):
            return None

        # Headers are not used, but must be consumed
        for _ in range(MAX_HEADER_LINES):
            line = await reader.readline()
            if line in (b"\r\n", b"\n", b""):
                break

        return parts[0].upper(), parts[1]

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        try:
            try:
                request = await asyncio.wait_for(self._read_request(reader), REQUEST_TIMEOUT)
            except (asyncio.TimeoutError, ValueError):
                request = None

            if request is None:
                status, content_type, body = 400, "text/plain; charset=utf-8", "Bad request\n"
                method = "GET"
            else:
                method, target = request
                status, content_type, body = self.respond(method, target)
                logger.debug(f"{peer}: {method} {target} -> {status}")

            payload = body.encode()
            head = (
                f"HTTP/1.1 {status} {REASONS[status]}\r\n"
                f"Content-Type: {content_type}\r\n"
                f"Content-Length: {len(payload)}\r\n"
                "Connection: close\r\n"
                "\r\n"
            )
            writer.write(head.encode())
            if method != "HEAD":
                writer.write(payload)
            await writer.drain()

        except OSError as e:
            logger.debug(f"{peer}: connection error: {e}")

        finally:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()
