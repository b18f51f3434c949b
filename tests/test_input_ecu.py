import socket
from datetime import datetime, timezone

import pytest

from vhsmcan.input_ecu import format_sent_entry, parse_frame_input, run
from vhsmcan.types import CanFrame, CanId


def test_parse_example_from_help_text():
    can_id, data = parse_frame_input("123 01 02 03")
    assert can_id == CanId(0x123)
    assert data == bytes([0x01, 0x02, 0x03])


def test_parse_id_only_gives_empty_data():
    can_id, data = parse_frame_input("7FF")
    assert can_id == CanId(0x7FF)
    assert data == b""


def test_parse_accepts_lower_case_and_extra_spaces():
    can_id, data = parse_frame_input("  1a   ff 0 ")
    assert can_id == CanId(0x1A)
    assert data == bytes([0xFF, 0x00])


def test_parse_long_id_is_extended():
    can_id, data = parse_frame_input("1234 AB")
    assert can_id == CanId(0x1234, extended=True)
    assert data == bytes([0xAB])


def test_parse_maximum_extended_id():
    can_id, _ = parse_frame_input("1FFFFFFF")
    assert can_id == CanId(0x1FFFFFFF, extended=True)


def test_parse_eight_bytes_allowed():
    _, data = parse_frame_input("7FF 00 01 02 03 04 05 06 07")
    assert data == bytes(range(8))


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        "800",
        "20000000",
        "xyz",
        "0x12",
        "123 100",
        "123 zz",
        "123 01 02 03 04 05 06 07 08 09",
    ],
)
def test_parse_rejects_invalid_input(text):
    with pytest.raises(ValueError):
        parse_frame_input(text)


def test_format_sent_entry_standard():
    frame = CanFrame(CanId(0x123), bytes([1, 2, 3]), "INPUT_ECU")
    when = datetime(2024, 1, 1, 12, 34, 56, tzinfo=timezone.utc)
    assert format_sent_entry(frame, when) == "[12:34:56] Sent frame: ID=123, Data=[01 02 03]"


def test_format_sent_entry_extended_id_and_empty_data():
    can_id, data = parse_frame_input("1234")
    frame = CanFrame(can_id, data, "INPUT_ECU")
    entry = format_sent_entry(frame, datetime(2024, 1, 1, 8, 0, 0))
    assert entry.endswith("Sent frame: ID=00001234, Data=[]")
    assert entry.startswith("[08:00:00]")


def test_parse_then_format_round_trip():
    can_id, data = parse_frame_input("0AB DE AD BE EF")
    entry = format_sent_entry(CanFrame(can_id, data, "INPUT_ECU"))
    assert "ID=0AB" in entry
    assert "Data=[DE AD BE EF]" in entry


@pytest.mark.asyncio
async def test_run_reports_malformed_address(capsys):
    result = await run("not-an-address")
    captured = capsys.readouterr()
    assert result == 1
    assert "Failed to connect" in captured.err


@pytest.mark.asyncio
async def test_run_reports_unreachable_bus(capsys):
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    result = await run(f"127.0.0.1:{port}")
    captured = capsys.readouterr()
    assert result == 1
    assert f"Connecting to CAN bus at 127.0.0.1:{port}" in captured.out