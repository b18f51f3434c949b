"""CAN identifiers, frames and ECU configuration."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping

MAX_DATA_LENGTH = 8

_STANDARD_LIMIT = 0xFFFF
_EXTENDED_LIMIT = 0xFFFFFFFF

_TIMESTAMP_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})(?:\.(\d{1,9}))?"
    r"(?:([Zz])|([+-])(\d{2}):?(\d{2}))?"
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_timestamp(text: Any) -> datetime:
    match = _TIMESTAMP_RE.fullmatch(text.strip()) if isinstance(text, str) else None
    if match is None:
        raise ValueError(f"invalid timestamp: {text!r}")
    year, month, day, hour, minute, second, fraction, _zulu, sign, off_h, off_m = match.groups()
    microsecond = int((fraction or "0").ljust(6, "0")[:6])
    tz = timezone.utc
    if sign:
        offset = timedelta(hours=int(off_h), minutes=int(off_m))
        tz = timezone(offset if sign == "+" else -offset)
    moment = datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), microsecond, tzinfo=tz
    )
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True)
class CanId:
    """A CAN identifier, either standard (11-bit) or extended (29-bit)."""

    value: int
    extended: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError("CAN id value must be an integer")
        limit = _EXTENDED_LIMIT if self.extended else _STANDARD_LIMIT
        if not 0 <= self.value <= limit:
            raise ValueError(f"CAN id {self.value:#x} out of range for {self._kind} id")

    @property
    def _kind(self) -> str:
        return "Extended" if self.extended else "Standard"

    def __str__(self) -> str:
        return f"{self._kind}({self.value})"

    def hex_label(self) -> str:
        """Hex text as shown by the tools: 3 digits standard, 8 digits extended."""
        return f"{self.value:08X}" if self.extended else f"{self.value:03X}"

    def to_dict(self) -> dict[str, int]:
        return {self._kind: self.value}

    @classmethod
    def from_dict(cls, data: Any) -> CanId:
        if not isinstance(data, Mapping) or len(data) != 1:
            raise ValueError(f"malformed CAN id: {data!r}")
        ((kind, value),) = data.items()
        if kind not in ("Standard", "Extended"):
            raise ValueError(f"unknown CAN id kind: {kind!r}")
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"CAN id value must be an integer: {value!r}")
        return cls(value, extended=kind == "Extended")


@dataclass
class CanFrame:
    """A CAN 2.0B frame with its sending ECU and the time it was created."""

    id: CanId
    data: bytes
    source: str
    timestamp: datetime = field(default_factory=_utc_now)

    def __post_init__(self) -> None:
        if isinstance(self.data, int):
            raise TypeError("frame data must be a sequence of bytes")
        self.data = bytes(self.data)

    def is_valid(self) -> bool:
        return len(self.data) <= MAX_DATA_LENGTH

    def data_hex(self) -> str:
        return " ".join(f"{byte:02X}" for byte in self.data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id.to_dict(),
            "data": list(self.data),
            "timestamp": _format_timestamp(self.timestamp),
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Any) -> CanFrame:
        if not isinstance(data, Mapping):
            raise ValueError(f"malformed CAN frame: {data!r}")
        try:
            can_id = CanId.from_dict(data["id"])
            raw = data["data"]
            source = data["source"]
            timestamp = _parse_timestamp(data["timestamp"])
        except KeyError as exc:
            raise ValueError(f"malformed CAN frame: missing {exc}") from exc
        if not isinstance(raw, (list, tuple, bytes, bytearray)):
            raise ValueError(f"frame data must be a list of bytes: {raw!r}")
        if not isinstance(source, str):
            raise ValueError(f"frame source must be a string: {source!r}")
        try:
            payload = bytes(raw)
        except TypeError as exc:
            raise ValueError(f"frame data must be a list of bytes: {raw!r}") from exc
        return cls(can_id, payload, source, timestamp)


class ArmVariant(Enum):
    """ARM processor variants an emulated ECU claims to run on."""

    CORTEX_M4 = "ARM Cortex-M4"
    CORTEX_M7 = "ARM Cortex-M7"
    CORTEX_A53 = "ARM Cortex-A53"

    def __str__(self) -> str:
        return self.value


@dataclass
class EcuConfig:
    """Name, bus address and processor of an ECU."""

    name: str
    bus_address: str
    arm_variant: ArmVariant