# vhsmcan

A virtual CAN bus for experimenting with ECU (Electronic Control Unit)
communication on a single machine.

It provides:

- `vhsmcan.can_bus.VirtualCanBus`, an in-process broadcast bus where every
  subscriber sees every frame sent after it subscribed; frames with more than
  eight data bytes are rejected with `InvalidFrameError`;
- `vhsmcan.ecu.Ecu`, an emulated ECU with a name, bus address and ARM core
  variant (`ArmVariant.CORTEX_M4`, `CORTEX_M7`, `CORTEX_A53`);
- `vhsmcan.network`, a newline-delimited JSON protocol (`BusClient`,
  `BusReader`, `BusWriter`, `encode_message`, `decode_message`);
- `vhsmcan.bus_server.BusServer`, a TCP server that relays frames between its
  registered clients, with a token-bucket `RateLimiter` per client name
  (bursts of 200 frames, 100 frames per second sustained);
- terminal front ends: an input ECU for typing frames, an output ECU and a
  bus monitor that show received traffic;
- `vhsmcan.automotive`: standard CAN ids (`WHEEL_SPEED_FL`, `BRAKE_COMMAND`,
  ...), encoders and decoders for wheel speed, engine RPM, throttle, steering
  angle and torque and brake pressure, a `VehicleState` aggregate and
  `CanIdPermissions` transmit/receive whitelists.

## Installation

```
pip install .
```

Python 3.10 or newer is required. The terminal front ends use `blessed`.

## Running

Start everything at once:

```
vhsmcan
```

This starts the bus server in the background and opens the monitor, input ECU
and output ECU, each in a new terminal window. The terminal emulator is taken
from `$TERM_PROGRAM`, otherwise the first of gnome-terminal, konsole,
xfce4-terminal, xterm, alacritty, kitty or terminator that is installed
(xterm when none is). `--project-dir` sets the directory the windows start in
(the current directory by default). The launcher keeps running until the bus
server ends or you press Ctrl+C, which also stops the server.

Or start the pieces yourself, each in its own terminal:

```
vhsmcan-bus-server
vhsmcan-monitor
vhsmcan-input-ecu
vhsmcan-output-ecu
```

The bus server listens on `127.0.0.1:9000`; change it with `--host` and
`--port`. The front ends take `--address host:port`. The monitor retries the
connection up to ten times; the ECUs give up at once if the server is not
running.

In the input ECU, type a CAN id followed by data bytes, all in hex, and press
Enter:

```
123 01 02 03 04
```

Ids of up to three hex digits are standard 11-bit ids (at most `7FF`); longer
ones are extended 29-bit ids (at most `1FFFFFFF`). At most eight data bytes
are accepted. The last ten results are shown. Press `q` in any front end to
quit it.

For a self-contained run without a server or extra windows, the demo sends
five sample frames over an in-process bus and prints what a monitor and an
output ECU receive (`--frame-delay` sets the seconds between frames,
0.8 by default):

```
vhsmcan-demo
```

## Using the library

```python
import asyncio

from vhsmcan.can_bus import VirtualCanBus
from vhsmcan.ecu import Ecu
from vhsmcan.types import ArmVariant, CanId, EcuConfig


async def main():
    bus = VirtualCanBus(100)
    sensor = Ecu(EcuConfig("SENSOR", "127.0.0.1:9001", ArmVariant.CORTEX_M4), bus)
    listener = bus.subscribe()

    await sensor.send_frame(CanId(0x123), bytes([0x01, 0x02, 0x03]))
    frame = await listener.recv()
    print(frame.id.hex_label(), frame.data_hex(), frame.source)  # 123 01 02 03 SENSOR


asyncio.run(main())
```

Extended ids are written `CanId(0x12345678, extended=True)`. A receiver that
falls more than the bus capacity behind raises `ReceiverLaggedError`;
`try_recv()` raises `ReceiverEmptyError` when nothing is waiting. Sending
while nobody is subscribed raises `NoReceiversError`.

Rate limiting on its own:

```python
from vhsmcan.rate_limiter import RateLimiter

limiter = RateLimiter(10, 5)  # burst of 10, refills at 5 per second
results = [limiter.allow_message("ECU1") for _ in range(11)]
print(results.count(True))  # 10
```

## What it does not do

The bus server does not authenticate clients or frames: any client may
register under any name and send on any CAN id. `CanIdPermissions` is a
standalone whitelist; nothing in the package enforces it on the bus.

## Tests

```
pip install ".[test]"
pytest
```