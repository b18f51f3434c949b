"""Newline-delimited JSON protocol spoken between ECUs and the bus server."""

from __future__ import annotations

import asyncio
import contextlib
import json
from dataclasses import dataclass
from typing import Any, Union

from vhsmcan.types import CanFrame


class ConnectionClosedError(ConnectionError):
    """The peer closed the connection."""


@dataclass
class FrameMessage:
    """A CAN frame travelling over the bus connection."""

    frame: CanFrame


@dataclass(frozen=True)
class Register:
    """First message a client sends: the name it goes by on the bus."""

    client_name: str


@dataclass(frozen=True)
class Ack:
    """Acknowledgment."""


@dataclass(frozen=True)
class ErrorMessage:
    """An error reported by the peer."""

    message: str


NetMessage = Union[FrameMessage, Register, Ack, ErrorMessage]


def encode_message(msg: NetMessage) -> str:
    """Serialise a message to one line of compact JSON (without the newline)."""
    value: Any
    match msg:
        case FrameMessage(frame=frame):
            value = {"CanFrame": frame.to_dict()}
        case Register(client_name=name):
            value = {"Register": {"client_name": name}}
        case Ack():
            value = "Ack"
        case ErrorMessage(message=text):
            value = {"Error": text}
        case _:
            raise TypeError(f"not a bus message: {msg!r}")
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def decode_message(line: str) -> NetMessage:
    """Parse one line of JSON into a message; raises ValueError when malformed."""
    payload = json.loads(line)
    if payload == "Ack":
        return Ack()
    if isinstance(payload, dict) and len(payload) == 1:
        ((tag, body),) = payload.items()
        if tag == "CanFrame":
            return FrameMessage(CanFrame.from_dict(body))
        if tag == "Register" and isinstance(body, dict):
            name = body.get("client_name")
            if isinstance(name, str):
                return Register(name)
        if tag == "Error" and isinstance(body, str):
            return ErrorMessage(body)
    raise ValueError(f"unrecognised bus message: {line.strip()!r}")


class BusReader:
    """Receiving side of a bus connection."""

    def __init__(self, reader: asyncio.StreamReader) -> None:
        self._reader = reader

    async def receive_message(self) -> NetMessage:
        """Wait for the next message; raises ConnectionClosedError at end of stream."""
        line = await self._reader.readline()
        if not line:
            raise ConnectionClosedError("Connection closed")
        return decode_message(line.decode("utf-8"))


class BusWriter:
    """Sending side of a bus connection."""

    def __init__(self, writer: asyncio.StreamWriter) -> None:
        self._writer = writer

    async def send_message(self, msg: NetMessage) -> None:
        self._writer.write((encode_message(msg) + "\n").encode("utf-8"))
        await self._writer.drain()

    async def send_frame(self, frame: CanFrame) -> None:
        await self.send_message(FrameMessage(frame))

    async def close(self) -> None:
        self._writer.close()
        with contextlib.suppress(ConnectionError):
            await self._writer.wait_closed()


class BusClient:
    """A named connection to the bus server."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        client_name: str,
    ) -> None:
        self.client_name = client_name
        self._reader = BusReader(reader)
        self._writer = BusWriter(writer)

    @classmethod
    async def connect(cls, addr: str, client_name: str) -> BusClient:
        """Connect to ``host:port`` and register under ``client_name``."""
        host, sep, port = addr.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"invalid bus address: {addr!r}")
        reader, writer = await asyncio.open_connection(host, int(port))
        client = cls(reader, writer, client_name)
        try:
            await client.send_message(Register(client_name))
        except BaseException:
            writer.close()
            raise
        return client

    async def send_message(self, msg: NetMessage) -> None:
        await self._writer.send_message(msg)

    async def send_frame(self, frame: CanFrame) -> None:
        await self._writer.send_frame(frame)

    async def receive_message(self) -> NetMessage:
        return await self._reader.receive_message()

    def split(self) -> tuple[BusReader, BusWriter]:
        """Hand out the reading and writing halves for use by separate tasks."""
        return self._reader, self._writer

    async def close(self) -> None:
        await self._writer.close()

    async def __aenter__(self) -> BusClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()