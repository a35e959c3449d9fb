import struct

import pytest

from qnet.dvap_protocol import (
    CONTROL_FIRMWARE,
    CONTROL_MODE,
    CONTROL_MODULATION,
    CONTROL_RUN_STATE,
    CONTROL_STATUS,
    HEADER_KEEP_ALIVE,
    HEADER_PARAM_5,
    HEADER_PARAM_6,
    HEADER_PARAM_7,
    HEADER_RADIO_HEADER,
    HEADER_STATUS,
    HEADER_VOICE,
    DvapRegister,
    ReplyType,
    clamp_offset,
    clamp_power,
    clamp_squelch,
    classify_reply,
    expected_header,
)


def test_keep_alive_wire_bytes():
    assert DvapRegister(HEADER_KEEP_ALIVE, b"\x00").pack() == b"\x03\x60\x00"


def test_pack_pads_to_header_length():
    register = DvapRegister.with_control(HEADER_PARAM_6, 0x0138)
    packed = register.pack()
    assert len(packed) == register.length
    assert packed[-2:] == b"\x00\x00"


def test_pack_unpack_round_trip():
    register = DvapRegister.frame(HEADER_VOICE, 0xBEEF, 3, 7, bytes(range(12)))
    again = DvapRegister.unpack(register.pack())
    assert again == register
    assert again.stream_id == 0xBEEF
    assert again.framepos == 3
    assert again.seq == 7
    assert again.frame_data == bytes(range(12))


def test_unpack_ignores_trailing_bytes():
    data = DvapRegister.with_control(HEADER_PARAM_5, CONTROL_RUN_STATE, b"\x01").pack()
    assert DvapRegister.unpack(data + b"extra").pack() == data


def test_unpack_short_data_raises():
    with pytest.raises(ValueError):
        DvapRegister.unpack(b"\x12\xc0\x00")
    with pytest.raises(ValueError):
        DvapRegister.unpack(b"\x05")


def test_payload_too_long_raises():
    with pytest.raises(ValueError):
        DvapRegister(HEADER_PARAM_5, b"\x00" * 4)


def test_signed_accessors():
    reg = DvapRegister.with_control(HEADER_PARAM_6, 0x0400, struct.pack("<h", -1500))
    assert reg.word == -1500
    reg = DvapRegister.with_control(HEADER_PARAM_5, 0x0080, struct.pack("<b", -60))
    assert reg.byte == -60
    limits = DvapRegister.with_control(0x000C, 0x0230, struct.pack("<ii", 144000000, 148000000))
    assert limits.twod == (144000000, 148000000)


def test_sstr_stops_at_nul():
    reg = DvapRegister.with_control(0x0010, 0x0001, b"DVAP Dongle\x00")
    assert reg.sstr == "DVAP Dongle"


@pytest.mark.parametrize(
    "register, expected",
    [
        (DvapRegister.with_control(HEADER_PARAM_5, CONTROL_RUN_STATE, b"\x01"), ReplyType.START),
        (DvapRegister.with_control(HEADER_PARAM_5, CONTROL_RUN_STATE, b"\x00"), ReplyType.STOP),
        (DvapRegister.with_control(HEADER_PARAM_5, CONTROL_MODULATION, b"\x01"), ReplyType.MODU),
        (DvapRegister.with_control(HEADER_PARAM_5, CONTROL_MODULATION, b"\x00"), ReplyType.UNKNOWN),
        (DvapRegister.with_control(HEADER_PARAM_5, CONTROL_MODE, b"\x00"), ReplyType.MODE),
        (DvapRegister.with_control(HEADER_PARAM_7, CONTROL_FIRMWARE, b"\x01\x00\x00"), ReplyType.FW),
        (DvapRegister.with_control(HEADER_STATUS, CONTROL_STATUS, b"\x00\x00\x00"), ReplyType.STS),
        (DvapRegister.frame(HEADER_RADIO_HEADER, 1, 0x80, 0, b""), ReplyType.HDR),
        (DvapRegister.frame(HEADER_VOICE, 1, 0, 0, b""), ReplyType.DAT),
        (DvapRegister.with_control(HEADER_PARAM_6, 0x0001), ReplyType.UNKNOWN),
    ],
)
def test_classify_reply(register, expected):
    assert classify_reply(register) is expected


def test_expected_header():
    assert expected_header(HEADER_VOICE)
    assert expected_header(HEADER_STATUS)
    assert not expected_header(HEADER_KEEP_ALIVE)
    assert not expected_header(0xFFFF)


def test_clamps_hold_values_in_range():
    assert clamp_squelch(-200) == -128
    assert clamp_squelch(-10) == -45
    assert clamp_squelch(-100) == -100
    assert clamp_power(20) == 10
    assert clamp_power(-20) == -12
    assert clamp_power(0) == 0
    assert clamp_offset(5000) == 2000
    assert clamp_offset(-5000) == -2000
    assert clamp_offset(123) == 123