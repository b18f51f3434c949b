"""In-process virtual CAN bus where every receiver sees every frame."""

from __future__ import annotations

import asyncio
import dataclasses
import weakref
from collections import deque
from typing import AsyncIterator

from vhsmcan.types import CanFrame


class BusError(Exception):
    """Base class for bus errors."""


class InvalidFrameError(BusError, ValueError):
    """The frame carries more than 8 data bytes."""


class NoReceiversError(BusError):
    """A frame was sent while nobody was subscribed."""


class ReceiverLaggedError(BusError):
    """The receiver fell behind and older frames were overwritten."""

    def __init__(self, skipped: int) -> None:
        super().__init__(f"receiver lagged behind by {skipped} frames")
        self.skipped = skipped


class ReceiverEmptyError(BusError):
    """No frame is waiting for this receiver."""


class ReceiverClosedError(BusError):
    """The receiver was closed."""


class BusReceiver:
    """One subscription to a bus; sees each frame sent after it was made."""

    def __init__(self, bus: VirtualCanBus, position: int) -> None:
        self._bus = bus
        self._position = position
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise ReceiverClosedError("receiver is closed")

    def try_recv(self) -> CanFrame:
        """Return the next frame or raise ReceiverEmptyError at once."""
        self._check_open()
        frame = self._bus._fetch(self)
        if frame is None:
            raise ReceiverEmptyError("no frame available")
        return frame

    async def recv(self) -> CanFrame:
        """Wait for the next frame."""
        while True:
            self._check_open()
            frame = self._bus._fetch(self)
            if frame is not None:
                return frame
            await self._bus._wait()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._bus._detach(self)

    def __enter__(self) -> BusReceiver:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __aiter__(self) -> AsyncIterator[CanFrame]:
        return self

    async def __anext__(self) -> CanFrame:
        try:
            return await self.recv()
        except ReceiverClosedError:
            raise StopAsyncIteration from None


class VirtualCanBus:
    """Broadcast bus holding the most recent frames in a ring of fixed capacity."""

    def __init__(self, buffer_size: int) -> None:
        if buffer_size < 1:
            raise ValueError("buffer size must be at least 1")
        # Capacity rounds up to a power of two, like the channel it models.
        self.capacity = 1 << (buffer_size - 1).bit_length()
        self._buffer: deque[CanFrame] = deque(maxlen=self.capacity)
        self._next_seq = 0
        self._receivers: weakref.WeakSet[BusReceiver] = weakref.WeakSet()
        self._waiters: list[asyncio.Future[None]] = []

    async def send(self, frame: CanFrame) -> None:
        """Put a frame on the bus for every current receiver."""
        if not frame.is_valid():
            raise InvalidFrameError("Invalid CAN frame: data length must be <= 8 bytes")
        if self.receiver_count() == 0:
            raise NoReceiversError("Failed to send frame: channel closed")
        self._buffer.append(frame)
        self._next_seq += 1
        self._wake()

    def subscribe(self) -> BusReceiver:
        receiver = BusReceiver(self, self._next_seq)
        self._receivers.add(receiver)
        return receiver

    def receiver_count(self) -> int:
        return len(self._receivers)

    def _fetch(self, receiver: BusReceiver) -> CanFrame | None:
        oldest = self._next_seq - len(self._buffer)
        if receiver._position < oldest:
            skipped = oldest - receiver._position
            receiver._position = oldest
            raise ReceiverLaggedError(skipped)
        if receiver._position >= self._next_seq:
            return None
        frame = self._buffer[receiver._position - oldest]
        receiver._position += 1
        return dataclasses.replace(frame)

    async def _wait(self) -> None:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        try:
            await future
        finally:
            if future in self._waiters:
                self._waiters.remove(future)

    def _wake(self) -> None:
        waiters, self._waiters = self._waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(None)

    def _detach(self, receiver: BusReceiver) -> None:
        self._receivers.discard(receiver)
        self._wake()