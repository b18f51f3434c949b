"""TCP server relaying CAN frames between every registered client."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, TextIO

from blessed import Terminal

from vhsmcan.can_bus import BusError, BusReceiver, VirtualCanBus
from vhsmcan.network import (
    BusReader,
    BusWriter,
    ConnectionClosedError,
    FrameMessage,
    Register,
)
from vhsmcan.rate_limiter import RateLimiter

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9000
BUFFER_SIZE = 1000

_RULE = "═" * 63


class BusServer:
    """Accepts clients, rate-limits their frames per name and broadcasts them to all."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        rate_limiter: Optional[RateLimiter] = None,
        buffer_size: int = BUFFER_SIZE,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.rate_limiter = (
            rate_limiter if rate_limiter is not None else RateLimiter.with_automotive_defaults()
        )
        self.bus = VirtualCanBus(buffer_size)
        self.connection_count = 0
        self._out = out if out is not None else sys.stdout
        self._err = err if err is not None else sys.stderr
        self._term = Terminal(stream=self._out)
        self._clients: dict[str, BusWriter] = {}
        self._handlers: set[asyncio.Task] = set()
        self._server: Optional[asyncio.AbstractServer] = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def registered_clients(self) -> list[str]:
        return sorted(self._clients)

    def _say(self, text: str = "") -> None:
        print(text, file=self._out, flush=True)

    def _complain(self, text: str) -> None:
        print(text, file=self._err, flush=True)

    async def start(self) -> BusServer:
        """Bind the listening socket; the bound port replaces a requested port of 0."""
        if self._server is not None:
            return self
        t = self._term
        self._say(f"{t.green('→')} Starting bus server on {t.bright_white(self.address)}...")
        self._say(
            f"{t.bright_blue('ℹ')} Rate limiting enabled: {self.rate_limiter.max_tokens} msg burst, "
            f"{self.rate_limiter.refill_rate} msg/sec sustained per ECU"
        )
        self._server = await asyncio.start_server(self._handle_client, self.host, self.port)
        self.port = self._server.sockets[0].getsockname()[1]
        self._say(f"{t.bold_green('✓')} Bus server ready! Waiting for connections...")
        self._say()
        return self

    async def serve_forever(self) -> None:
        await self.start()
        server = self._server
        try:
            await server.serve_forever()
        finally:
            await self.close()

    async def close(self) -> None:
        """Stop listening and drop every connected client."""
        server, self._server = self._server, None
        if server is None:
            return
        server.close()
        handlers = list(self._handlers)
        for task in handlers:
            task.cancel()
        if handlers:
            await asyncio.gather(*handlers, return_exceptions=True)
        await server.wait_closed()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._handlers.add(task)
        t = self._term
        self.connection_count += 1
        peer = _peer_label(writer)
        self._say(
            f"{t.cyan('→')} New connection from {t.bright_white(peer)} "
            f"(Total clients: {t.bright_cyan(str(self.connection_count))})"
        )
        try:
            await self._serve_client(BusReader(reader), BusWriter(writer), peer)
        except Exception as exc:
            self._complain(f"{t.red('✗')} Client error: {exc}")
        finally:
            writer.close()
            if task is not None:
                self._handlers.discard(task)

    async def _serve_client(self, reader: BusReader, writer: BusWriter, peer: str) -> None:
        t = self._term
        message = await reader.receive_message()
        if not isinstance(message, Register):
            raise ValueError("First message must be Register")
        name = message.client_name
        self._say(
            f"  {t.green('✓')} {t.bold_bright_cyan(name)} registered from {t.bright_black(peer)}"
        )
        self._clients[name] = writer
        rx = self.bus.subscribe()
        forwarder = asyncio.create_task(self._forward(name, rx))

        frame_count = 0
        throttled = 0
        try:
            while True:
                try:
                    message = await reader.receive_message()
                except ConnectionClosedError:
                    break
                if not isinstance(message, FrameMessage):
                    continue
                if not self.rate_limiter.allow_message(name):
                    throttled += 1
                    self._complain(
                        f"{t.bold_yellow('⚠')} Frame from {t.bright_cyan(name)} THROTTLED "
                        f"(rate limit exceeded, {throttled} total throttled)"
                    )
                    continue
                frame_count += 1
                self._say(
                    f"  {t.yellow('→')} Frame #{frame_count:04d} from {t.bright_cyan(name)}"
                    f" - ID: {message.frame.id}"
                )
                try:
                    await self.bus.send(message.frame)
                except BusError as exc:
                    self._complain(f"{t.red('✗')} Failed to broadcast frame: {exc}")
        finally:
            if self._clients.get(name) is writer:
                del self._clients[name]
            forwarder.cancel()
            rx.close()

        summary = f"sent {frame_count} frames"
        if throttled:
            summary += f", {throttled} throttled"
        self._say(f"{t.bright_black('→')} {t.bright_black(name)} disconnected ({summary})")

    async def _forward(self, name: str, rx: BusReceiver) -> None:
        try:
            async for frame in rx:
                writer = self._clients.get(name)
                if writer is None:
                    continue
                try:
                    await writer.send_frame(frame)
                except OSError:
                    break
        except BusError:
            pass


def _peer_label(writer: asyncio.StreamWriter) -> str:
    peer = writer.get_extra_info("peername")
    if isinstance(peer, tuple) and len(peer) >= 2:
        return f"{peer[0]}:{peer[1]}"
    return str(peer)


def _print_banner(term: Terminal, out: TextIO) -> None:
    for line in (_RULE, "CAN BUS SERVER".center(63), _RULE):
        print(term.bold_magenta(line), file=out)
    print(file=out, flush=True)


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the virtual CAN bus server.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)

    server = BusServer(args.host, args.port)
    _print_banner(Terminal(stream=sys.stdout), sys.stdout)
    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(f"Bus server failed: {exc}", file=sys.stderr)
        return 1
    return 0