"""Terminal monitor that shows every frame travelling over the bus."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections import deque
from datetime import timezone
from functools import lru_cache
from typing import Optional

from blessed import Terminal

from vhsmcan.network import BusClient, BusReader, FrameMessage
from vhsmcan.types import CanFrame

MONITOR_NAME = "MONITOR"
BUS_ADDRESS = "127.0.0.1:9000"
CONNECT_ATTEMPTS = 10
CONNECT_TIMEOUT = 0.5
RETRY_DELAY = 0.5
CONNECTED_PAUSE = 0.5
POLL_INTERVAL = 0.01
HISTORY = 20
QUEUE_SIZE = 100
FRAMES_ROW = 3

_WIDTH = 79
_RULE = "═" * _WIDTH


@lru_cache(maxsize=1)
def _plain_terminal() -> Terminal:
    return Terminal(force_styling=None)


def format_frame(frame: CanFrame, count: int, term: Optional[Terminal] = None) -> str:
    """One monitor line: UTC time, running count, id, length, data and source."""
    t = term if term is not None else _plain_terminal()
    moment = frame.timestamp
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    time_text = f"{moment:%H:%M:%S}.{moment.microsecond // 1000:03d}"
    colour = t.magenta if frame.id.extended else t.yellow
    return (
        f"[{t.bright_black(time_text)}] {t.bold_blue(f'#{count:05d}')} │ "
        f"ID: {colour(frame.id.hex_label())} │ DLC: {t.green(str(len(frame.data)))} │ "
        f"Data: [{t.bright_white(frame.data_hex())}] │ Src: {t.bright_cyan(frame.source)}"
    )


def _emit(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def _draw_header(term: Terminal) -> None:
    lines = [
        term.bold_cyan(_RULE),
        term.bold_cyan("CAN BUS MONITOR".center(_WIDTH)),
        term.bold_cyan(_RULE),
        "",
    ]
    _emit(term.move_xy(0, 0) + "".join(line + "\n" for line in lines))


async def _connect(address: str) -> Optional[BusClient]:
    for attempt in range(1, CONNECT_ATTEMPTS + 1):
        try:
            return await asyncio.wait_for(
                BusClient.connect(address, MONITOR_NAME), CONNECT_TIMEOUT
            )
        except (OSError, ValueError, asyncio.TimeoutError):
            if attempt < CONNECT_ATTEMPTS:
                _emit(f"\nRetrying connection ({attempt}/{CONNECT_ATTEMPTS})...\n")
                await asyncio.sleep(RETRY_DELAY)
    return None


async def _pump(reader: BusReader, queue: asyncio.Queue[CanFrame]) -> None:
    while True:
        try:
            message = await reader.receive_message()
        except (OSError, ValueError):
            return
        if isinstance(message, FrameMessage):
            await queue.put(message.frame)


async def _display_loop(
    term: Terminal, queue: asyncio.Queue[CanFrame], pump: asyncio.Task
) -> None:
    lines: deque[str] = deque(maxlen=HISTORY)
    count = 0
    while True:
        if term.inkey(timeout=0) == "q":
            break
        try:
            frame = queue.get_nowait()
        except asyncio.QueueEmpty:
            if pump.done():
                break
            await asyncio.sleep(POLL_INTERVAL)
            continue
        count += 1
        lines.append(format_frame(frame, count, term))
        _emit(term.move_xy(0, FRAMES_ROW) + term.clear_eos + "".join(line + "\n" for line in lines))


async def run(address: str = BUS_ADDRESS) -> int:
    """Show bus traffic until 'q' or the bus goes away; 1 if the bus is unreachable."""
    term = Terminal(stream=sys.stdout)
    with term.cbreak():
        _emit(term.clear)
        _draw_header(term)
        _emit(f"\nConnecting to CAN bus at {address}...\n")
        client = await _connect(address)
        if client is None:
            print(
                f"\n{term.red('✗ ')}Failed to connect to bus server. Is it running?",
                file=sys.stderr,
            )
            print("\nStart the bus server first.", file=sys.stderr, flush=True)
            return 1
        try:
            _emit(f"\n{term.green('✓ ')}Connected to CAN bus!\n")
            await asyncio.sleep(CONNECTED_PAUSE)
            _emit(term.clear)
            _draw_header(term)
            reader, _writer = client.split()
            queue: asyncio.Queue[CanFrame] = asyncio.Queue(QUEUE_SIZE)
            pump = asyncio.create_task(_pump(reader, queue))
            try:
                await _display_loop(term, queue, pump)
            finally:
                pump.cancel()
        finally:
            await client.close()
    _emit(term.clear + term.home)
    print("Monitor stopped.", flush=True)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Watch the frames on the CAN bus.")
    parser.add_argument("--address", default=BUS_ADDRESS, help="bus server host:port")
    args = parser.parse_args(argv)
    try:
        return asyncio.run(run(args.address))
    except KeyboardInterrupt:
        return 130