"""Interactive ECU that puts CAN frames typed in as hex onto the bus."""

from __future__ import annotations

import argparse
import asyncio
import re
import sys
from collections import deque
from datetime import datetime, timezone
from typing import Optional

from blessed import Terminal

from vhsmcan.network import BusClient, BusWriter
from vhsmcan.types import MAX_DATA_LENGTH, ArmVariant, CanFrame, CanId, EcuConfig

ECU_NAME = "INPUT_ECU"
BUS_ADDRESS = "127.0.0.1:9000"
HISTORY = 10
POLL_INTERVAL = 0.05
CONNECTED_PAUSE = 0.5
INPUT_ROW = 12
SENT_ROW = 16

MAX_STANDARD_ID = 0x7FF
MAX_EXTENDED_ID = 0x1FFFFFFF

_WIDTH = 79
_RULE = "═" * _WIDTH
_THIN_RULE = "─" * _WIDTH
_HEX = re.compile(r"\+?[0-9A-Fa-f]+")
_INVALID_HINT = "Invalid format. Use: <ID> <byte1> <byte2> ... (hex)"


def _parse_hex(text: str, limit: int, what: str) -> int:
    if not _HEX.fullmatch(text):
        raise ValueError(f"invalid hex {what}: {text!r}")
    value = int(text, 16)
    if value > limit:
        raise ValueError(f"{what} {text!r} exceeds {limit:#X}")
    return value


def parse_frame_input(text: str) -> tuple[CanId, bytes]:
    """Parse ``"<id> <byte> ..."`` in hex; ids longer than 3 digits are extended."""
    parts = text.split()
    if not parts:
        raise ValueError("no CAN id given")
    id_text, *byte_texts = parts
    if len(id_text) <= 3:
        can_id = CanId(_parse_hex(id_text, MAX_STANDARD_ID, "standard CAN id"))
    else:
        can_id = CanId(_parse_hex(id_text, MAX_EXTENDED_ID, "extended CAN id"), extended=True)
    data = bytes(_parse_hex(part, 0xFF, "data byte") for part in byte_texts)
    if len(data) > MAX_DATA_LENGTH:
        raise ValueError(f"a CAN frame carries at most {MAX_DATA_LENGTH} data bytes")
    return can_id, data


def _stamp(when: Optional[datetime]) -> str:
    moment = when if when is not None else datetime.now(timezone.utc)
    return moment.strftime("%H:%M:%S")


def format_sent_entry(frame: CanFrame, when: Optional[datetime] = None) -> str:
    """Log line for a frame that was sent at ``when`` (now, in UTC, by default)."""
    return f"[{_stamp(when)}] Sent frame: ID={frame.id.hex_label()}, Data=[{frame.data_hex()}]"


def _emit(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


class _InputScreen:
    """Fixed layout of the input ECU's terminal."""

    def __init__(self, term: Terminal, config: EcuConfig) -> None:
        self.term = term
        self.config = config

    def draw(self) -> None:
        t = self.term
        c = self.config
        lines = [
            t.bold_green(_RULE),
            t.bold_green("INPUT ECU".center(_WIDTH)),
            t.bold_green(_RULE),
            f"{t.bold_bright_white('ECU Name')}: {t.green(c.name)}",
            f"{t.bold_bright_white('Processor')}: {t.green(c.arm_variant.value)}",
            f"{t.bold_bright_white('Bus Addr')}: {t.green(c.bus_address)}",
            "",
            t.bright_black(_THIN_RULE),
            t.bold_yellow("SEND FRAME:"),
            t.bright_black("Format: <CAN_ID> <byte1> <byte2> ... (all in hex)"),
            t.bright_black("Example: 123 01 02 03 04"),
            "",
            "> ",
            "",
            t.bright_black(_THIN_RULE),
            t.bold_cyan("SENT FRAMES:"),
            "",
        ]
        _emit(t.move_xy(0, 0) + "".join(line + "\n" for line in lines))

    def show_input(self, text: str) -> None:
        t = self.term
        _emit(t.move_xy(0, INPUT_ROW) + t.clear_eol + f"> {t.bright_white(text)}")

    def show_sent(self, entries: deque[str]) -> None:
        t = self.term
        body = "".join(t.bright_green(entry) + "\n" for entry in entries)
        _emit(t.move_xy(0, SENT_ROW) + t.clear_eos + body)


async def _submit(text: str, writer: BusWriter) -> str:
    try:
        can_id, data = parse_frame_input(text)
    except ValueError:
        return f"[{_stamp(None)}] {_INVALID_HINT}"
    frame = CanFrame(can_id, data, ECU_NAME)
    try:
        await writer.send_frame(frame)
    except OSError as exc:
        return f"[{_stamp(None)}] Error sending: {exc}"
    return format_sent_entry(frame)


async def _input_loop(term: Terminal, screen: _InputScreen, writer: BusWriter) -> None:
    buffer = ""
    sent: deque[str] = deque(maxlen=HISTORY)
    while True:
        key = term.inkey(timeout=0)
        if not key:
            await asyncio.sleep(POLL_INTERVAL)
            continue
        enter = key.name == "KEY_ENTER" or key in ("\r", "\n")
        if enter:
            if buffer:
                sent.append(await _submit(buffer, writer))
                screen.show_sent(sent)
                buffer = ""
                screen.show_input(buffer)
        elif key.name in ("KEY_BACKSPACE", "KEY_DELETE") or key in ("\x7f", "\b"):
            buffer = buffer[:-1]
            screen.show_input(buffer)
        elif key.is_sequence:
            continue
        elif key == "q":
            break
        elif str(key).isprintable():
            buffer += str(key)
            screen.show_input(buffer)


async def run(address: str = BUS_ADDRESS) -> int:
    """Connect to the bus and send typed frames until 'q'; 1 if the bus is unreachable."""
    term = Terminal(stream=sys.stdout)
    config = EcuConfig(name=ECU_NAME, bus_address=address, arm_variant=ArmVariant.CORTEX_M4)
    screen = _InputScreen(term, config)
    with term.cbreak():
        _emit(term.clear)
        screen.draw()
        _emit(f"\n\nConnecting to CAN bus at {address}...\n")
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
            screen.draw()
            _reader, writer = client.split()
            await _input_loop(term, screen, writer)
        finally:
            await client.close()
    _emit(term.clear + term.home)
    print("Input ECU stopped.", flush=True)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Type CAN frames and send them onto the bus.")
    parser.add_argument("--address", default=BUS_ADDRESS, help="bus server host:port")
    args = parser.parse_args(argv)
    try:
        return asyncio.run(run(args.address))
    except KeyboardInterrupt:
        return 130