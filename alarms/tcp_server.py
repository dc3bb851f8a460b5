from __future__ import annotations

import logging
import socketserver
from threading import Thread
from typing import Optional

from .commands import MAX_REQUEST_LENGTH, CommandRegistry, build_registry, format_result, parse_request
from .context import AlarmContext
from .errors import ErrorKind, ProtocolError, Result

logger = logging.getLogger(__name__)

PROMPT = "command: "


class CommandRequestHandler(socketserver.StreamRequestHandler):
    """Serves one line protocol client until it sends ``exit`` or disconnects."""

    server: "CommandServer"

    def handle(self) -> None:
        logger.info("Client connected from %s", self.client_address)
        self._write(f"connected to {self.server.context.name}\n")
        while True:
            self._write(PROMPT)
            raw = self.rfile.readline(MAX_REQUEST_LENGTH + 1)
            if not raw:
                logger.info("Client connection terminated")
                return
            if len(raw) > MAX_REQUEST_LENGTH and not raw.endswith(b"\n"):
                if not self._discard_line():
                    logger.info("Client connection terminated")
                    return
                logger.warning("Oversized request from %s discarded", self.client_address)
                message = f"message exceeds max. length of {MAX_REQUEST_LENGTH}"
                self._write(format_result(Result.failure(ErrorKind.PROTOCOL, message)) + "\n")
                continue
            message = raw.decode("utf-8", errors="replace").strip()
            if not message:
                continue
            logger.debug("Received message from client: %s", message)
            try:
                request = parse_request(message)
            except ProtocolError as exc:
                logger.warning("Bad request from %s: %s", self.client_address, exc)
                self._write(format_result(Result.failure(ErrorKind.PROTOCOL, str(exc))) + "\n")
                continue
            if request.command == "exit":
                logger.info("Client %s closed the connection", self.client_address)
                return
            result = self.server.registry.execute(request)
            response = format_result(result)
            logger.debug("Sending answer: %s", response)
            self._write(response + "\n")

    def _discard_line(self) -> bool:
        """Skip the rest of an oversized line. False if the client disconnected."""
        while True:
            chunk = self.rfile.readline(MAX_REQUEST_LENGTH + 1)
            if not chunk:
                return False
            if chunk.endswith(b"\n"):
                return True

    def _write(self, text: str) -> None:
        self.wfile.write(text.encode("utf-8"))
        self.wfile.flush()


class CommandServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, address, context: AlarmContext, registry: Optional[CommandRegistry] = None):
        self.context = context
        self.registry = registry or build_registry(context)
        super().__init__(address, CommandRequestHandler)


def start_command_server(context: AlarmContext, host: str, port: int) -> CommandServer:
    server = CommandServer((host, port), context)
    thread = Thread(target=server.serve_forever, name="cmd-server", daemon=True)
    thread.start()
    logger.info("Command server listening on %s:%s", host, port)
    return server
