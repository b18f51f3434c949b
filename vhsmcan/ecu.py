"""Electronic control unit attached to a virtual CAN bus."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from vhsmcan.can_bus import BusReceiver, VirtualCanBus
from vhsmcan.types import CanFrame, CanId, EcuConfig


@dataclass(frozen=True)
class EcuStats:
    """Summary of an ECU's identity."""

    name: str
    arm_variant: str
    bus_address: str


class Ecu:
    """An ECU that sends frames under its own name and sees all bus traffic."""

    def __init__(self, config: EcuConfig, bus: VirtualCanBus) -> None:
        self.config = config
        self.bus = bus
        self._rx: BusReceiver = bus.subscribe()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def arm_variant(self) -> str:
        return self.config.arm_variant.value

    async def send_frame(self, can_id: CanId, data: Iterable[int]) -> None:
        await self.bus.send(CanFrame(can_id, bytes(data), self.config.name))

    async def receive_frame(self) -> CanFrame:
        return await self._rx.recv()

    def try_receive_frame(self) -> CanFrame:
        return self._rx.try_recv()

    def stats(self) -> EcuStats:
        return EcuStats(
            name=self.config.name,
            arm_variant=self.config.arm_variant.value,
            bus_address=self.config.bus_address,
        )