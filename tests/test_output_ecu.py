import socket
from datetime import datetime, timedelta, timezone

import pytest

from vhsmcan import output_ecu
from vhsmcan.types import CanFrame, CanId


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _frame(can_id, data, source="TEST_ECU", when=None):
    when = when or datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    return CanFrame(can_id, bytes(data), source, when)


def test_format_standard_frame():
    line = output_ecu.format_received_frame(_frame(CanId(0x123), [0x01, 0x02, 0x03]), 7)
    assert line == "[03:04:05.678] #0007 │ ID: 123 │ DLC: 3 │ Data: [01 02 03] │ From: TEST_ECU"


def test_format_extended_frame_uses_eight_digits():
    frame = _frame(CanId(0x12345678, extended=True), [0xFF, 0xEE])
    line = output_ecu.format_received_frame(frame, 1)
    assert "ID: 12345678 │" in line
    assert "DLC: 2" in line
    assert "Data: [FF EE]" in line


def test_format_empty_data():
    line = output_ecu.format_received_frame(_frame(CanId(0x100), []), 1)
    assert "DLC: 0 │ Data: [] │" in line


def test_count_is_padded_but_not_truncated():
    frame = _frame(CanId(0x100), [0x01])
    assert "#0001 " in output_ecu.format_received_frame(frame, 1)
    assert "#12345 " in output_ecu.format_received_frame(frame, 12345)


def test_timestamp_shown_in_utc():
    utc = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    shifted = utc.astimezone(timezone(timedelta(hours=2)))
    frame_utc = _frame(CanId(0x100), [0x01], when=utc)
    frame_shifted = _frame(CanId(0x100), [0x01], when=shifted)
    assert output_ecu.format_received_frame(frame_utc, 3) == output_ecu.format_received_frame(
        frame_shifted, 3
    )


def test_naive_timestamp_treated_as_utc():
    naive = datetime(2024, 1, 2, 3, 4, 5, 678000)
    aware = naive.replace(tzinfo=timezone.utc)
    assert output_ecu.format_received_frame(
        _frame(CanId(0x100), [1], when=naive), 2
    ) == output_ecu.format_received_frame(_frame(CanId(0x100), [1], when=aware), 2)


def test_source_shown_after_from():
    line = output_ecu.format_received_frame(_frame(CanId(0x100), [1], source="INPUT_ECU"), 1)
    assert line.endswith("From: INPUT_ECU")


@pytest.mark.asyncio
async def test_run_reports_unreachable_bus():
    port = _free_port()
    assert await output_ecu.run(f"127.0.0.1:{port}") == 1


@pytest.mark.asyncio
async def test_run_rejects_malformed_address():
    assert await output_ecu.run("no-port-here") == 1


def test_main_reports_unreachable_bus():
    port = _free_port()
    assert output_ecu.main(["--address", f"127.0.0.1:{port}"]) == 1