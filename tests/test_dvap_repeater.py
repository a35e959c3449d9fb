import random

import pytest

from qnet.config import ConfigError, Configuration
from qnet.dvap_protocol import DvapRegister
from qnet.dvap_repeater import (
    DvapRepeater,
    DvapSettings,
    ber_percentage,
    load_settings,
)
from qnet.packets import (
    FILLER_TEXT,
    SILENCE,
    SYNC_CODES,
    DsvtHeader,
    DsvtVoice,
    calc_pfcs,
)


def _values(**overrides):
    values = {
        "module_b": "dvap",
        "ircddb_login": "n0call",
        "module_b_device": "/dev/ttyUSB0",
        "module_b_frequency": "145.5",
        "module_b_power": "10",
        "module_b_squelch": "-100",
        "module_b_offset": "0",
        "module_b_packet_wait": "25",
        "module_b_acknowledge": "true",
        "timing_timeout_remote_g2": "2",
        "timing_timeout_local_rptr": "1.5",
        "timing_play_delay": "19",
        "timing_play_wait": "1",
        "log_qso": "false",
        "log_debug": "false",
    }
    values.update(overrides)
    return {k: v for k, v in values.items() if v is not None}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def settings():
    return DvapSettings(rptr="N0CALL", owner="N0CALL", module="B", acknowledge=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repeater(settings, clock):
    return DvapRepeater(settings, rng=random.Random(7), clock=clock)


def _gateway_header(**kwargs):
    fields = dict(
        stream_id=0x1234,
        rpt1="N0CALL B",
        rpt2="N0CALL G",
        urcall="CQCQCQ",
        mycall="N1XYZ",
        flag=b"\x00\x00\x00",
    )
    fields.update(kwargs)
    return DsvtHeader(**fields)


def _radio_header(flag=0x40, rpt2="N0CALL G", rpt1="N0CALL B", ur="CQCQCQ  ",
                  my="N1XYZ   ", sfx="    "):
    data = bytes((flag, 0, 0)) + (rpt2 + rpt1 + ur + my + sfx).encode("latin-1")
    data += calc_pfcs(data)
    return DvapRegister.frame(0xA02F, 0x0101, 0x80, 0, data)


def _radio_voice(framepos, seq=0):
    return DvapRegister.frame(0xC012, 0x0101, framepos, seq, SILENCE + FILLER_TEXT)


# --- settings -----------------------------------------------------------------


def test_load_settings_finds_lone_dvap_module():
    result = load_settings(Configuration(_values()))
    assert result.module == "B"
    assert result.rptr == "N0CALL  "
    assert result.owner == "N0CALL  "
    assert result.device == "/dev/ttyUSB0"
    assert result.serial_number == ""
    assert result.frequency == 145500000
    assert result.acknowledge is True
    assert result.inactive_max == 80


def test_load_settings_uses_module_callsign():
    result = load_settings(Configuration(_values(module_b_callsign="n0rpt")), 1)
    assert result.rptr == "N0RPT   "
    assert result.restricted


def test_load_settings_rejects_other_module_type():
    with pytest.raises(ConfigError):
        load_settings(Configuration(_values(module_b="mmdvmhost")), 1)


def test_load_settings_without_dvap_module():
    with pytest.raises(ConfigError):
        load_settings(Configuration(_values(module_b=None)))


def test_load_settings_undefined_index():
    with pytest.raises(ConfigError):
        load_settings(Configuration(_values()), 0)


def test_load_settings_needs_device_or_serial():
    with pytest.raises(ConfigError):
        load_settings(Configuration(_values(module_b_device=None)))


def test_load_settings_range_error():
    with pytest.raises(ConfigError):
        load_settings(Configuration(_values(module_b_power="11")))


def test_settings_reject_bad_module():
    with pytest.raises(ValueError):
        DvapSettings(rptr="N0CALL", owner="N0CALL", module="D")


def test_ber_percentage():
    assert ber_percentage(0, 0) == 0.0
    assert ber_percentage(24, 1) == 100.0
    assert ber_percentage(0, 5) == 0.0


# --- gateway to radio -----------------------------------------------------------


def test_gateway_header_to_dvap(repeater):
    header = _gateway_header()
    register = repeater.gateway_header_to_dvap(header)
    assert register.header == 0xA02F
    assert register.framepos == 0x80
    data = register.frame_data
    assert data[:3] == b"\x40\x40\x40"
    assert data[3:11] == b"N0CALL G"
    assert data[11:19] == b"N0CALL B"
    assert data[39:41] == calc_pfcs(data[:39])
    assert register.pack()[2:4] == header.pack()[12:14]
    assert repeater.gateway_busy


def test_gateway_header_ignored_while_busy(repeater):
    repeater.gateway_header_to_dvap(_gateway_header())
    assert repeater.gateway_header_to_dvap(_gateway_header(stream_id=0x5555)) is None


def test_gateway_header_wrong_module(repeater):
    assert repeater.gateway_header_to_dvap(_gateway_header(rpt1="N0CALL C")) is None
    assert not repeater.gateway_busy


def test_gateway_header_bad_flag(repeater):
    assert repeater.gateway_header_to_dvap(_gateway_header(flag=b"\x02\x00\x00")) is None


def test_gateway_header_restricted_mode(clock):
    settings = DvapSettings(rptr="N0CALL", owner="N0GATE", module="B")
    repeater = DvapRepeater(settings, rng=random.Random(1), clock=clock)
    register = repeater.gateway_header_to_dvap(
        _gateway_header(rpt1="N0GATE B", rpt2="N0GATE G", mycall="N0GATE")
    )
    data = register.frame_data
    assert data[3:11] == b"N0CALL G"
    assert data[11:19] == b"N0CALL B"
    assert data[27:35] == b"N0CALL  "


def test_gateway_voice_stream(repeater):
    repeater.gateway_header_to_dvap(_gateway_header())
    first = repeater.gateway_voice_to_dvap(DsvtVoice(0x1234, 0, text=b"abc"))
    assert first.frame_data[9:12] == SYNC_CODES
    assert first.framepos == 0
    second = repeater.gateway_voice_to_dvap(DsvtVoice(0x1234, 1, text=SYNC_CODES))
    assert second.frame_data[9:12] == FILLER_TEXT
    assert second.framepos == 1
    assert repeater.gateway_voice_to_dvap(DsvtVoice(0x1234, 1)) is None
    last = repeater.gateway_voice_to_dvap(DsvtVoice(0x1234, 2 | 0x40))
    assert last.framepos & 0x40
    assert not repeater.gateway_busy


def test_gateway_voice_other_stream(repeater):
    repeater.gateway_header_to_dvap(_gateway_header())
    assert repeater.gateway_voice_to_dvap(DsvtVoice(0x4321, 0)) is None


def test_gateway_voice_without_header(repeater):
    assert repeater.gateway_voice_to_dvap(DsvtVoice(0x1234, 0)) is None


# --- radio to gateway -----------------------------------------------------------


def test_dvap_header_to_gateway(repeater):
    header = repeater.dvap_header_to_gateway(_radio_header())
    assert header.rpt1 == "N0CALL B"
    assert header.rpt2 == "N0CALL G"
    assert header.urcall == "CQCQCQ  "
    assert header.mycall == "N1XYZ   "
    assert header.flag == b"\x00\x00\x00"
    assert header.stream_id != 0
    assert repeater.radio_busy
    assert DsvtHeader.unpack(header.pack()).rpt1 == header.rpt1


def test_dvap_header_rpt2_depends_on_urcall(repeater):
    cq = repeater.dvap_header_to_gateway(_radio_header(rpt2="N0CALL A"))
    assert cq.rpt2 == "N0CALL A"
    direct = repeater.dvap_header_to_gateway(_radio_header(rpt2="N0CALL A", ur="N1ABC   "))
    assert direct.rpt2 == "N0CALL G"


def test_dvap_header_refused(repeater):
    assert repeater.dvap_header_to_gateway(_radio_header(flag=0x01)) is None
    assert repeater.dvap_header_to_gateway(_radio_header(my="        ")) is None
    assert not repeater.radio_busy


def test_dvap_header_restricted_mycall(clock):
    settings = DvapSettings(rptr="N0CALL", owner="N0GATE", module="B")
    repeater = DvapRepeater(settings, rng=random.Random(1), clock=clock)
    assert repeater.dvap_header_to_gateway(_radio_header()) is None
    accepted = repeater.dvap_header_to_gateway(_radio_header(my="N0CALL  "))
    assert accepted.rpt1 == "N0GATE B"


def test_dvap_header_cleans_fields(repeater):
    header = repeater.dvap_header_to_gateway(_radio_header(ur="cqcqcq  ", my="n1xyz   "))
    assert header.urcall == "CQCQCQ  "
    assert header.mycall == "        "


def test_dvap_voice_requires_header(repeater):
    assert repeater.dvap_voice_to_gateway(_radio_voice(0)) is None


def test_dvap_voice_stream_and_ack(repeater):
    header = repeater.dvap_header_to_gateway(_radio_header())
    first = repeater.dvap_voice_to_gateway(_radio_voice(0))
    second = repeater.dvap_voice_to_gateway(_radio_voice(1))
    assert (first.ctrl, second.ctrl) == (0, 1)
    assert first.stream_id == header.stream_id
    assert first.voice == SILENCE
    last = repeater.dvap_voice_to_gateway(_radio_voice(2 | 0x40))
    assert last.is_end
    assert not repeater.radio_busy
    assert 0.0 <= repeater.last_ber <= 100.0
    assert repeater.pending_ack == ("N1XYZ   ", repeater.last_ber)


def test_dvap_voice_local_timeout(repeater, clock):
    repeater.dvap_header_to_gateway(_radio_header())
    clock.now = 5.0
    assert repeater.dvap_voice_to_gateway(_radio_voice(0)) is None
    assert not repeater.radio_busy


# --- acknowledgement ------------------------------------------------------------


def test_ack_frames(repeater):
    frames = repeater.ack_frames("N1XYZ", 12.34, 0x4321)
    assert len(frames) == 11
    header = frames[0]
    assert header.header == 0xA02F
    assert header.stream_id == 0x4321
    assert header.frame_data[:3] == b"\x01\x00\x00"
    assert header.frame_data[3:11] == b"N0CALL B"
    assert header.frame_data[11:19] == b"N0CALL G"
    assert header.frame_data[35:39] == b"DVAP"
    assert header.frame_data[39:41] == calc_pfcs(header.frame_data[:39])

    voices = frames[1:]
    assert voices[0].frame_data[9:12] == SYNC_CODES
    assert [v.seq for v in voices] == list(range(10))
    assert voices[-1].framepos & 0x40
    assert not any(v.framepos & 0x40 for v in voices[:-1])

    message = b"".join(
        bytes(a ^ b for a, b in zip(v.frame_data[9:12], FILLER_TEXT)) for v in voices[1:9]
    )
    assert message.startswith(b"@BER%")
    assert message[6:7] == b"A"
    assert message[12:13] == b"B"
    assert message[18:19] == b"C"
    assert message.endswith(b"12.34")