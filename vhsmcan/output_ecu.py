"""Terminal ECU that listens on the bus and shows every frame it receives."""

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
from vhsmcan.types import ArmVariant, CanFrame, EcuConfig

ECU_NAME = "OUTPUT_ECU"
BUS_ADDRESS = "127.0.0.1:9000"
CONNECTED_PAUSE = 0.5
POLL_INTERVAL = 0.01
HISTORY = 15
QUEUE_SIZE = 100
RECEIVED_ROW = 10

_WIDTH = 79
_RULE = "═" * _WIDTH
_THIN_RULE = "─" * _WIDTH


@lru_cache(maxsize=1)
def _plain_terminal() -> Terminal:
    return Terminal(force_styling=None)


def format_received_frame(frame: CanFrame, count: int, term: Optional[Terminal] = None) -> str:
    """One line for a received frame: UTC time, running count, id, length, data and sender."""
    t = term if term is not None else _plain_terminal()
    moment = frame.timestamp
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    time_text = f"{moment:%H:%M:%S}.{moment.microsecond // 1000:03d}"
    colour = t.magenta if frame.id.extended else t.yellow
    return (
        f"[{t.bright_black(time_text)}] {t.bold_blue(f'#{count:04d}')} │ "
        f"ID: {colour(frame.id.hex_label())} │ DLC: {t.green(str(len(frame.data)))} │ "
        f"Data: [{t.bright_white(frame.data_hex())}] │ From: {t.bright_cyan(frame.source)}"
    )


def _emit(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def _draw_ui(term: Terminal, config: EcuConfig) -> None:
    t = term
    lines = [
        t.bold_blue(_RULE),
        t.bold_blue("OUTPUT ECU".center(_WIDTH)),
        t.bold_blue(_RULE),
        f"{t.bold_bright_white('ECU Name')}: {t.blue(config.name)}",
        f"{t.bold_bright_white('Processor')}: {t.blue(config.arm_variant.value)}",
        f"{t.bold_bright_white('Bus Addr')}: {t.blue(config.bus_address)}",
        "",
        t.bright_black(_THIN_RULE),
        t.bold_cyan("RECEIVED FRAMES:"),
        t.bright_black("(Listening for CAN frames...)"),
        "",
    ]
    _emit(t.move_xy(0, 0) + "".join(line + "\n" for line in lines))


def _show_received(term: Terminal, lines: deque[str]) -> None:
    body = "".join(line + "\n" for line in lines)
    _emit(term.move_xy(0, RECEIVED_ROW) + term.clear_eos + body)


async def _pump(reader: BusReader, queue: asyncio.Queue[CanFrame]) -> None:
    while True:
        try:
            message = await reader.receive_message()
        except (OSError, ValueError):
            return
        if isinstance(message, FrameMessage):
            await queue.put(message.frame)


async def _receive_loop(
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
        lines.append(format_received_frame(frame, count, term))
        _show_received(term, lines)


async def run(address: str = BUS_ADDRESS) -> int:
    """Show received frames until 'q' or the bus goes away; 1 if the bus is unreachable."""
    term = Terminal(stream=sys.stdout)
    config = EcuConfig(name=ECU_NAME, bus_address=address, arm_variant=ArmVariant.CORTEX_M7)
    with term.cbreak():
        _emit(term.clear)
        _draw_ui(term, config)
        _emit(f"\nConnecting to CAN bus at {address}...\n")
        try:
            client = await BusClient.connect(address, ECU_NAME)
        except (OSError, ValueError) as exc:
            print(f"\n{term.red('✗ ')}Failed to connect: {exc}", file=sys.stderr)
            print("\nStart the bus server first.", file=sys.stderr, flush=True)
            return 1
        try:
            _emit(f"{term.green('✓ ')}Connected to CAN bus!\n")
            await asyncio.sleep(CONNECTED_PAUSE)
            _emit(term.clear)
            _draw_ui(term, config)
            reader, _writer = client.split()
            queue: asyncio.Queue[CanFrame] = asyncio.Queue(QUEUE_SIZE)
            pump = asyncio.create_task(_pump(reader, queue))
            try:
                await _receive_loop(term, queue, pump)
            finally:
                pump.cancel()
        finally:
            await client.close()
    _emit(term.clear + term.home)
    print("Output ECU stopped.", flush=True)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Show the CAN frames received from the bus.")
    parser.add_argument("--address", default=BUS_ADDRESS, help="bus server host:port")
    args = parser.parse_args(argv)
    try:
        return asyncio.run(run(args.address))
    except KeyboardInterrupt:
        return 130