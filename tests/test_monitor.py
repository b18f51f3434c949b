import asyncio
import io
from datetime import datetime, timedelta, timezone

import pytest
from blessed import Terminal

from vhsmcan.bus_server import BusServer
from vhsmcan.monitor import format_frame, run
from vhsmcan.network import BusClient
from vhsmcan.types import CanFrame, CanId


def _frame(can_id, data, source="INPUT_ECU", **when):
    stamp = datetime(2024, 1, 1, 12, 34, 56, when.get("micro", 789000), tzinfo=timezone.utc)
    return CanFrame(can_id, bytes(data), source, stamp)


def test_format_frame_plain_layout():
    line = format_frame(_frame(CanId(0x123), [1, 2, 3]), 7)
    assert line == "[12:34:56.789] #00007 │ ID: 123 │ DLC: 3 │ Data: [01 02 03] │ Src: INPUT_ECU"


def test_format_frame_with_unstyled_terminal_matches_default():
    frame = _frame(CanId(0x7FF), [0xAA])
    term = Terminal(force_styling=None)
    assert format_frame(frame, 1, term) == format_frame(frame, 1)


def test_format_frame_extended_id_uses_eight_digits():
    line = format_frame(_frame(CanId(0x12345678, extended=True), [0xFF]), 2)
    assert "ID: 12345678 │" in line
    assert "DLC: 1" in line


def test_format_frame_empty_data():
    line = format_frame(_frame(CanId(0x100), []), 3)
    assert "DLC: 0" in line
    assert "Data: []" in line


def test_format_frame_count_padding():
    line = format_frame(_frame(CanId(0x100), [1]), 12345)
    assert "] #12345 │" in line


def test_format_frame_truncates_to_milliseconds():
    line = format_frame(_frame(CanId(0x100), [1], micro=999999), 1)
    assert line.startswith("[12:34:56.999]")


def test_format_frame_shows_utc_time():
    stamp = datetime(2024, 1, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    frame = CanFrame(CanId(0x100), b"\x01", "ECU", stamp)
    assert format_frame(frame, 1).startswith("[12:00:00.000]")


@pytest.mark.asyncio
async def test_run_shows_frames_and_stops_when_bus_closes(capsys):
    server = BusServer("127.0.0.1", 0, out=io.StringIO(), err=io.StringIO())
    await server.start()
    task = asyncio.create_task(run(server.address))
    try:
        for _ in range(100):
            if "MONITOR" in server.registered_clients:
                break
            await asyncio.sleep(0.02)
        assert "MONITOR" in server.registered_clients

        sender = await BusClient.connect(server.address, "SENDER")
        await sender.send_frame(CanFrame(CanId(0x123), bytes([1, 2]), "SENDER"))

        seen = ""
        for _ in range(60):
            await asyncio.sleep(0.05)
            seen += capsys.readouterr().out
            if "Src: SENDER" in seen:
                break
        await sender.close()
    finally:
        await server.close()

    result = await asyncio.wait_for(task, 5)
    seen += capsys.readouterr().out
    assert result == 0
    assert "ID: 123 │ DLC: 2 │ Data: [01 02] │ Src: SENDER" in seen
    assert "Monitor stopped." in seen