"""Single-process demonstration: two ECUs and a monitor on one virtual bus."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass, field
from typing import Callable, Optional, TextIO

from blessed import Terminal

from vhsmcan.can_bus import BusError, ReceiverEmptyError, VirtualCanBus
from vhsmcan.ecu import Ecu
from vhsmcan.types import ArmVariant, CanFrame, CanId, EcuConfig

FRAME_DELAY = 0.8
SETTLE_DELAY = 0.5
POLL_INTERVAL = 0.01
BUS_BUFFER = 100

TEST_FRAMES: tuple[tuple[CanId, bytes], ...] = (
    (CanId(0x100), bytes([0x01, 0x02, 0x03, 0x04])),
    (CanId(0x200), bytes([0xAA, 0xBB, 0xCC])),
    (CanId(0x123), bytes([0x11, 0x22, 0x33, 0x44, 0x55])),
    (CanId(0x12345678, extended=True), bytes([0xFF, 0xEE, 0xDD, 0xCC, 0xBB, 0xAA])),
    (CanId(0x7FF), bytes([0x00, 0x01, 0x02, 0x03, 0x04, 0x05, 0x06, 0x07])),
)

_RULE = "═" * 63


@dataclass
class DemoReport:
    """What the demo sent and what the monitor and output ECU saw."""

    frames_sent: int = 0
    monitored: list[CanFrame] = field(default_factory=list)
    received: list[CanFrame] = field(default_factory=list)
    receiver_count: int = 0


async def _watch(
    fetch: Callable[[], CanFrame],
    done: asyncio.Event,
    handle: Callable[[CanFrame], None],
) -> None:
    while True:
        try:
            frame = fetch()
        except ReceiverEmptyError:
            if done.is_set():
                return
            await asyncio.sleep(POLL_INTERVAL)
            continue
        except BusError:
            return
        handle(frame)


async def run_demo(frame_delay: float = FRAME_DELAY, out: Optional[TextIO] = None) -> DemoReport:
    """Send the test frames from an input ECU and show what the others receive."""
    out = out if out is not None else sys.stdout
    term = Terminal(stream=out)
    report = DemoReport()
    pause = min(SETTLE_DELAY, frame_delay)

    def say(text: str = "") -> None:
        print(text, file=out, flush=True)

    def banner(title: str, style: Callable[[str], str]) -> None:
        say(style(_RULE))
        say(style(title.center(63)))
        say(style(_RULE))
        say()

    banner("Virtual CAN Bus Demo - Single Process", term.bold_cyan)

    say(f"{term.green('→')} Creating virtual CAN bus...")
    bus = VirtualCanBus(BUS_BUFFER)
    say(f"{term.green('✓')} CAN bus created with {BUS_BUFFER}-message buffer")
    say()

    def make_ecu(label: str, name: str, address: str, variant: ArmVariant) -> Ecu:
        say(f"{term.green('→')} Creating {label} ({variant.value})...")
        config = EcuConfig(name=name, bus_address=address, arm_variant=variant)
        ecu = Ecu(config, bus)
        say(f"  - Name: {term.bright_cyan(config.name)}")
        say(f"  - Processor: {term.bright_cyan(config.arm_variant.value)}")
        say(f"{term.green('✓')} {label} ready")
        say()
        return ecu

    input_ecu = make_ecu("Input ECU", "INPUT_ECU", "127.0.0.1:9001", ArmVariant.CORTEX_M4)
    output_ecu = make_ecu("Output ECU", "OUTPUT_ECU", "127.0.0.1:9002", ArmVariant.CORTEX_M7)

    say(f"{term.green('→')} Creating CAN bus monitor...")
    monitor_rx = bus.subscribe()
    say(f"{term.green('✓')} Monitor ready")
    say()

    banner("Starting Simulation", term.bold_yellow)

    def on_monitor(frame: CanFrame) -> None:
        report.monitored.append(frame)
        colour = term.magenta if frame.id.extended else term.yellow
        say(
            f"{term.bold_cyan('MONITOR:')} [{term.blue(f'#{len(report.monitored):03d}')}] "
            f"ID: {colour(frame.id.hex_label())} │ DLC: {term.green(str(len(frame.data)))} │ "
            f"Data: [{term.bright_white(frame.data_hex())}] │ Src: {term.bright_cyan(frame.source)}"
        )

    def on_output(frame: CanFrame) -> None:
        report.received.append(frame)
        say(
            f"{term.bold_blue('OUTPUT:')} Received frame #{len(report.received):03d} - "
            f"ID: {frame.id.hex_label()} │ Data: [{frame.data_hex()}] │ From: {frame.source}"
        )

    done = asyncio.Event()
    watchers = [
        asyncio.create_task(_watch(monitor_rx.try_recv, done, on_monitor)),
        asyncio.create_task(_watch(output_ecu.try_receive_frame, done, on_output)),
    ]

    try:
        say(f"{term.bold_green('→')} Input ECU sending test frames...")
        say()
        await asyncio.sleep(pause)

        for number, (can_id, data) in enumerate(TEST_FRAMES, start=1):
            say(f"{term.bold_green('INPUT:')} Sending frame #{number:03d}...")
            await input_ecu.send_frame(can_id, data)
            report.frames_sent += 1
            await asyncio.sleep(frame_delay)

        say()
        say(term.bold_cyan(_RULE))
        say(f"{term.bold_green('✓')} Test completed! Sent {report.frames_sent} frames")
        say(term.bold_cyan(_RULE))

        await asyncio.sleep(pause)
        done.set()
        await asyncio.gather(*watchers)
    finally:
        for task in watchers:
            task.cancel()

    report.receiver_count = bus.receiver_count()
    say()
    say("Demo finished. System statistics:")
    say(f"  - Bus receivers: {report.receiver_count}")
    say(f"  - Total frames sent: {report.frames_sent}")
    say()
    return report


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run the single-process CAN bus demo.")
    parser.add_argument(
        "--frame-delay",
        type=float,
        default=FRAME_DELAY,
        help="seconds to wait between frames",
    )
    args = parser.parse_args(argv)
    if args.frame_delay < 0:
        parser.error("--frame-delay must not be negative")
    try:
        asyncio.run(run_demo(args.frame_delay))
    except KeyboardInterrupt:
        return 130
    return 0