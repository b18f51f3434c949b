"""Automotive CAN ids, signal encodings, vehicle state and CAN id permissions."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from vhsmcan.types import CanId

# Sensor messages (0x100 - 0x2FF)
WHEEL_SPEED_FL = CanId(0x100)
WHEEL_SPEED_FR = CanId(0x101)
WHEEL_SPEED_RL = CanId(0x102)
WHEEL_SPEED_RR = CanId(0x103)
ENGINE_RPM = CanId(0x110)
ENGINE_THROTTLE = CanId(0x111)
STEERING_ANGLE = CanId(0x120)
STEERING_TORQUE = CanId(0x121)

# Controller command messages (0x300 - 0x3FF)
BRAKE_COMMAND = CanId(0x300)
THROTTLE_COMMAND = CanId(0x301)
STEERING_COMMAND = CanId(0x302)

# Autonomous controller messages (0x400 - 0x4FF)
AUTO_STATUS = CanId(0x400)
AUTO_TRAJECTORY = CanId(0x401)


def _f32(value: float) -> float:
    """Round to single precision, the width the signal arithmetic is defined in."""
    if math.isnan(value) or math.isinf(value):
        return value
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _saturate(value: float, high: float) -> int:
    if math.isnan(value):
        return 0
    return int(min(max(value, 0.0), high))


def _u16_be(value: int) -> bytes:
    return value.to_bytes(2, "big")


def _read_u16(data: bytes) -> Optional[int]:
    if len(data) < 2:
        return None
    return int.from_bytes(bytes(data[:2]), "big")


def encode_wheel_speed(speed_rad_per_sec: float) -> bytes:
    """Wheel speed in rad/s to 2 bytes, 0.01 resolution, 0-655.35."""
    scaled = _f32(_f32(speed_rad_per_sec) * 100.0)
    return _u16_be(_saturate(scaled, 65535.0))


def decode_wheel_speed(data: bytes) -> float:
    value = _read_u16(data)
    return 0.0 if value is None else _f32(value / 100.0)


def encode_rpm(rpm: float) -> bytes:
    """Engine RPM to 2 bytes, 0.25 resolution."""
    scaled = _f32(_f32(rpm) * 4.0)
    return _u16_be(_saturate(scaled, 65535.0))


def decode_rpm(data: bytes) -> float:
    value = _read_u16(data)
    return 0.0 if value is None else _f32(value / 4.0)


def encode_throttle(percent: float) -> int:
    """Throttle position 0-100 % as a single byte."""
    return _saturate(_f32(percent), 100.0)


def decode_throttle(byte: int) -> float:
    return float(byte)


def encode_steering_angle(degrees: float) -> bytes:
    """Steering angle -780..+780 degrees to 2 bytes, 0.1 degree resolution."""
    shifted = _f32(_f32(degrees) + 780.0)
    scaled = _f32(shifted * 10.0)
    return _u16_be(_saturate(scaled, 15600.0))


def decode_steering_angle(data: bytes) -> float:
    value = _read_u16(data)
    if value is None:
        return 0.0
    return _f32(_f32(value / 10.0) - 780.0)


def encode_steering_torque(torque_nm: float) -> bytes:
    """Steering torque -32..+32 Nm to 2 bytes, 0.001 resolution."""
    shifted = _f32(_f32(torque_nm) + 32.0)
    scaled = _f32(shifted * 1000.0)
    return _u16_be(_saturate(scaled, 64000.0))


def decode_steering_torque(data: bytes) -> float:
    value = _read_u16(data)
    if value is None:
        return 0.0
    return _f32(_f32(value / 1000.0) - 32.0)


def encode_brake_pressure(percent: float) -> int:
    """Brake pressure 0-100 % as a single byte."""
    return _saturate(_f32(percent), 100.0)


def decode_brake_pressure(byte: int) -> float:
    return float(byte)


@dataclass
class VehicleState:
    """Vehicle state aggregated from sensor frames."""

    wheel_speeds: list[float] = field(default_factory=lambda: [0.0, 0.0, 0.0, 0.0])
    engine_rpm: float = 0.0
    throttle_position: float = 0.0
    steering_angle: float = 0.0
    steering_torque: float = 0.0
    brake_pressure: float = 0.0
    timestamp: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.wheel_speeds = [float(speed) for speed in self.wheel_speeds]
        if len(self.wheel_speeds) != 4:
            raise ValueError("wheel_speeds holds exactly four values: FL, FR, RL, RR")

    def average_wheel_speed(self) -> float:
        return sum(self.wheel_speeds) / 4.0

    def is_moving(self) -> bool:
        return self.average_wheel_speed() > 0.1

    def has_wheel_discrepancy(self, threshold: float) -> bool:
        """True when any wheel deviates from the average by more than ``threshold``."""
        avg = self.average_wheel_speed()
        if avg < 0.1:
            return False
        return any(abs(speed - avg) / avg > threshold for speed in self.wheel_speeds)


@dataclass
class CanIdPermissions:
    """Transmit and receive whitelists of an ECU; no receive whitelist means receive all."""

    ecu_id: str
    tx_whitelist: set[int] = field(default_factory=set)
    rx_whitelist: Optional[set[int]] = None

    def allow_tx(self, can_id: int) -> CanIdPermissions:
        self.tx_whitelist.add(can_id)
        return self

    def allow_tx_multiple(self, can_ids: Iterable[int]) -> CanIdPermissions:
        self.tx_whitelist.update(can_ids)
        return self

    def allow_rx(self, can_id: int) -> CanIdPermissions:
        if self.rx_whitelist is None:
            self.rx_whitelist = set()
        self.rx_whitelist.add(can_id)
        return self

    def allow_rx_multiple(self, can_ids: Iterable[int]) -> CanIdPermissions:
        if self.rx_whitelist is None:
            self.rx_whitelist = set()
        self.rx_whitelist.update(can_ids)
        return self

    def can_transmit(self, can_id: int) -> bool:
        return can_id in self.tx_whitelist

    def can_receive(self, can_id: int) -> bool:
        return self.rx_whitelist is None or can_id in self.rx_whitelist