"""Repeater logic that joins the gateway to a DVAP dongle.

Streams from the gateway are turned into DVAP registers, and transmissions
heard by the dongle are turned into DSVT packets for the gateway. At the end
of a local transmission an acknowledgement carrying the bit error rate can be
played back to the radio.
"""

from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Callable, Optional

from qnet.config import ConfigError, Configuration
from qnet.dstar import DStarDecoder
from qnet.dvap_protocol import HEADER_RADIO_HEADER, HEADER_VOICE, DvapRegister
from qnet.packets import (
    END_FLAG,
    FILLER_TEXT,
    HEADER_CTRL,
    PFCS_SPAN,
    SILENCE,
    SYNC_CODES,
    DsvtHeader,
    DsvtVoice,
    calc_pfcs,
    new_stream_id,
)

log = logging.getLogger(__name__)

CALL_SIZE = 8
MODULE_TYPE = "dvap"
MODULES = "ABC"
IDLE_SPACE = 127
FRAMES_PER_SUPERFRAME = 21
RADIO_FRAME_POS = 0x80
BLANK_CALL = " " * CALL_SIZE
CQ_CALL = "CQCQCQ  "
ACK_SUFFIX = b"DVAP"
END_VOICE = b"\x55\xc8\x7a" + SILENCE[3:]
END_TEXT = b"\x55\x55\x55"
NO_VOICE_WORD = 0xF85

# Flags accepted from the gateway, and how they look on the radio side.
_GATEWAY_FLAGS = frozenset({0x00, 0x01, 0x08, 0x20, 0x28, 0x40})
_TO_RADIO_FLAG = {0x00: 0x40, 0x08: 0x48, 0x20: 0x60, 0x28: 0x68}
# Flags accepted from the radio, and how they look on the gateway side.
_RADIO_FLAGS = frozenset({0x00, 0x08, 0x20, 0x28, 0x40, 0x48, 0x60, 0x68})
_TO_NET_FLAG = {0x40: 0x00, 0x48: 0x08, 0x60: 0x20, 0x68: 0x28}

_CALL_CHARS = frozenset(string.ascii_uppercase + string.digits + " ")


def _swap16(value: int) -> int:
    """Stream ids travel as raw bytes; the two packet formats read them differently."""
    return ((value & 0xFF) << 8) | (value >> 8)


def _call(value: str, size: int = CALL_SIZE) -> str:
    return value.ljust(size)[:size]


def _encode(value: str, size: int = CALL_SIZE) -> bytes:
    return _call(value, size).encode("latin-1")


def _valid(value: str, extra: str = "") -> bool:
    return all(char in _CALL_CHARS or char in extra for char in value)


def ber_percentage(bit_errors: int, frames: int) -> float:
    """Bit error rate in percent over voice frames of 24 protected bits each."""
    if frames == 0:
        return 0.0
    return 100.0 * bit_errors / (frames * 24)


@dataclass
class DvapSettings:
    """Configuration of one DVAP module."""

    rptr: str
    owner: str
    module: str
    device: str = ""
    serial_number: str = ""
    frequency: int = 146_000_000
    power: int = 10
    squelch: int = -100
    offset: int = 0
    packet_wait: int = 25
    acknowledge: bool = False
    remote_timeout: int = 1
    local_timeout: float = 1.0
    play_delay: int = 19
    play_wait: int = 1
    log_qso: bool = False
    log_debug: bool = False

    def __post_init__(self) -> None:
        self.rptr = _call(self.rptr.upper()) if len(self.rptr) <= CALL_SIZE else self.rptr.upper()
        self.owner = _call(self.owner.upper()) if len(self.owner) <= CALL_SIZE else self.owner.upper()
        if len(self.rptr) != CALL_SIZE:
            raise ValueError("Bad RPTR value, length must be exactly 8 bytes")
        if len(self.owner) != CALL_SIZE:
            raise ValueError("Bad OWNER value, length must be exactly 8 bytes")
        self.module = self.module.upper()
        if len(self.module) != 1 or self.module not in MODULES:
            raise ValueError("Bad RPTR_MOD value, must be one of A or B or C")
        if self.packet_wait <= 0:
            raise ValueError("packet wait must be positive")

    @property
    def restricted(self) -> bool:
        """Only the repeater callsign may use the radio when it differs from the owner."""
        return self.rptr != self.owner

    @property
    def rptr_and_g(self) -> str:
        return self.rptr[:7] + "G"

    @property
    def rptr_and_mod(self) -> str:
        return self.rptr[:7] + self.module

    @property
    def inactive_max(self) -> int:
        """Idle gateway polls allowed before a remote stream is dropped."""
        return (self.remote_timeout * 1000) // self.packet_wait


def _optional_str(config: Configuration, path: str, mod: str, minimum: int, maximum: int) -> str:
    try:
        return config.get_str(path, mod, minimum, maximum)
    except ConfigError as exc:
        log.debug("%s", exc)
        return ""


def _find_module(config: Configuration, index: Optional[int]) -> tuple[str, int]:
    if index is None or index < 0:
        for position, letter in enumerate("abc"):
            path = "module_" + letter
            if path in config and config.get_str(path, "", 1, 16) == MODULE_TYPE:
                return path, position
        raise ConfigError("no 'dvap' module found")
    if index > 2:
        raise ValueError(f"module index {index} must be 0, 1 or 2")
    path = "module_" + "abc"[index]
    if path not in config:
        raise ConfigError(f"Module '{'abc'[index]}' is not defined.")
    kind = config.get_str(path, "", 1, 16)
    if kind != MODULE_TYPE:
        raise ConfigError(f"{path} = {kind} is not 'dvap' type!")
    return path, index


def load_settings(config: Configuration, index: Optional[int] = None) -> DvapSettings:
    """Read the settings of the DVAP module; with no index the lone DVAP module is found."""
    path, position = _find_module(config, index)
    rptr = ""
    if path + "_callsign" in config:
        rptr = config.get_str(path + "_callsign", MODULE_TYPE, 3, 6)
    owner = config.get_str("ircddb_login", "", 3, 6)
    if not rptr:
        rptr = owner

    serial_number = _optional_str(config, path + "_serial_number", MODULE_TYPE, 0, 10)
    device = _optional_str(config, path + "_device", MODULE_TYPE, 0, 32)
    if not device and not serial_number:
        raise ConfigError("Either a device path or a serial number must be specified for a DVAP")

    frequency = config.get_float(path + "_frequency", MODULE_TYPE, 100.0, 1400.0)
    settings = DvapSettings(
        rptr=rptr,
        owner=owner,
        module=MODULES[position],
        device=device,
        serial_number=serial_number,
        frequency=int(1.0e6 * frequency),
        power=config.get_int(path + "_power", MODULE_TYPE, -12, 10),
        squelch=config.get_int(path + "_squelch", MODULE_TYPE, -128, -45),
        offset=config.get_int(path + "_offset", MODULE_TYPE, -2000, 2000),
        packet_wait=config.get_int(path + "_packet_wait", MODULE_TYPE, 6, 100),
        acknowledge=config.get_bool(path + "_acknowledge", MODULE_TYPE),
        remote_timeout=config.get_int("timing_timeout_remote_g2", "", 1, 10),
        local_timeout=config.get_float("timing_timeout_local_rptr", "", 1.0, 10.0),
        play_delay=config.get_int("timing_play_delay", "", 9, 25),
        play_wait=config.get_int("timing_play_wait", "", 1, 10),
        log_qso=config.get_bool("log_qso", ""),
        log_debug=config.get_bool("log_debug", ""),
    )
    log.info("Max loops = %d", settings.inactive_max)
    return settings


class DvapRepeater:
    """Stateful conversion between gateway packets and DVAP registers.

    After a local transmission ends, ``pending_ack`` holds ``(mycall, ber)``
    when an acknowledgement should be played with :meth:`ack_frames`.
    """

    def __init__(
        self,
        settings: DvapSettings,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        decoder: Optional[DStarDecoder] = None,
    ) -> None:
        self.settings = settings
        self._rng = rng
        self._clock = clock
        self._decoder = decoder if decoder is not None else DStarDecoder()

        # gateway to radio
        self.gateway_busy = False
        self._gw_stream = 0
        self._ctrl_in = HEADER_CTRL
        self._seq_no = 0
        self._frame_pos = 0
        self._seq_to_dvap = 0
        self._inactive = 0

        # radio to gateway
        self.radio_busy = False
        self._rf_stream = 0
        self._sequence = 0
        self._last_rf = 0.0
        self._mycall = BLANK_CALL
        self._frames = 0
        self._bit_errors = 0
        self.last_ber = 0.0
        self.pending_ack: Optional[tuple[str, float]] = None

    # --- gateway to radio -----------------------------------------------------

    def gateway_header_to_dvap(self, header: DsvtHeader) -> Optional[DvapRegister]:
        """Start a remote stream; None when the header is ignored."""
        if self.gateway_busy:
            return None
        s = self.settings
        rpt1, rpt2 = _call(header.rpt1), _call(header.rpt2)
        if rpt1[7] == "G":
            rpt1, rpt2 = rpt2, rpt1
        if rpt1[7] != s.module:
            return None
        rpt2 = s.owner[:7] + "G"
        mycall = _call(header.mycall)
        if s.restricted:
            rpt1 = s.rptr[:7] + rpt1[7]
            rpt2 = s.rptr[:7] + rpt2[7]
            if mycall[:7] == s.owner[:7]:
                mycall = s.rptr[:7] + mycall[7]

        flag = header.flag[0]
        if flag not in _GATEWAY_FLAGS:
            return None

        self.gateway_busy = True
        self._ctrl_in = HEADER_CTRL
        self._gw_stream = header.stream_id
        if s.log_qso:
            log.info(
                "Start G2: streamid=%04x, flags=%s, my=%s, sfx=%s, ur=%s, rpt1=%s, rpt2=%s",
                header.stream_id, header.flag.hex(":"), mycall, header.sfx,
                header.urcall, rpt1, rpt2,
            )
        if flag != 0x01:
            flag = _TO_RADIO_FLAG.get(flag, 0x40)

        data = b"".join(
            (
                bytes((flag, flag, flag)),
                _encode(rpt2),
                _encode(rpt1),
                _encode(header.urcall),
                _encode(mycall),
                _encode(header.sfx, 4),
            )
        )
        data += calc_pfcs(data)
        self._frame_pos = 0
        self._seq_to_dvap = 0
        self._seq_no = 0
        self._inactive = 0
        return DvapRegister.frame(
            HEADER_RADIO_HEADER, _swap16(self._gw_stream), RADIO_FRAME_POS, 0, data
        )

    def _radio_voice(self, data: bytes, end: bool) -> DvapRegister:
        if data[9:12] == SYNC_CODES:
            self._frame_pos = 0
        framepos = self._frame_pos | (END_FLAG if end else 0)
        register = DvapRegister.frame(
            HEADER_VOICE, _swap16(self._gw_stream), framepos, self._seq_to_dvap, data
        )
        self._frame_pos = (self._frame_pos + 1) & 0xFF
        self._seq_to_dvap = (self._seq_to_dvap + 1) & 0xFF
        self._seq_no = (self._seq_no + 1) % FRAMES_PER_SUPERFRAME
        return register

    def _end_gateway_stream(self) -> None:
        self.gateway_busy = False
        self._gw_stream = 0
        self._inactive = 0

    def gateway_voice_to_dvap(self, voice: DsvtVoice) -> Optional[DvapRegister]:
        """Pass on a voice frame of the current remote stream; None for others and duplicates."""
        if not self.gateway_busy or voice.stream_id != self._gw_stream:
            return None
        if voice.ctrl == self._ctrl_in:
            return None
        self._ctrl_in = voice.ctrl
        text = voice.text
        if self._seq_no == 0:
            text = SYNC_CODES
        elif text == SYNC_CODES:
            text = FILLER_TEXT
        end = voice.is_end
        register = self._radio_voice(voice.voice + text, end)
        self._inactive = 0
        if end:
            if self.settings.log_qso:
                log.info("End G2: streamid=%04x", voice.stream_id)
            self._end_gateway_stream()
        return register

    def _gateway_idle(self, space: int) -> Optional[DvapRegister]:
        """Called when no gateway packet arrived; may fill the gap with silence."""
        if not self.gateway_busy:
            return None
        self._inactive += 1
        if self._inactive >= self.settings.inactive_max:
            if self.settings.log_qso:
                log.info("G2 Timeout...")
            self._end_gateway_stream()
            return None
        if space != IDLE_SPACE:
            return None
        if self.settings.log_debug:
            log.debug("sending silent frame where inactive=%d", self._inactive)
        text = SYNC_CODES if self._seq_no == 0 else FILLER_TEXT
        return self._radio_voice(SILENCE + text, False)

    # --- radio to gateway -----------------------------------------------------

    def _check_local_timeout(self) -> None:
        if self.radio_busy and self._clock() - self._last_rf > self.settings.local_timeout:
            self.radio_busy = False

    def dvap_header_to_gateway(self, register: DvapRegister) -> Optional[DsvtHeader]:
        """Start a local transmission; None when the header is refused."""
        data = register.frame_data
        if len(data) < PFCS_SPAN:
            raise ValueError(f"a radio header needs {PFCS_SPAN} bytes, got {len(data)}")
        self._frames = 0
        self._bit_errors = 0
        s = self.settings

        flag0 = data[0]
        ok = flag0 in _RADIO_FLAGS
        text = data[:PFCS_SPAN].decode("latin-1")
        radio_rpt2 = text[3:11]
        urcall = text[19:27]
        radio_mycall = text[27:35]
        sfx = text[35:39]
        if s.log_qso:
            log.info(
                "From DVAP: flags=%s, my=%s, sfx=%s, ur=%s, rpt1=%s, rpt2=%s",
                data[:3].hex(":"), radio_mycall, sfx, urcall, text[11:19], radio_rpt2,
            )

        rpt1 = s.rptr_and_mod
        rpt2 = s.rptr[:7] + radio_rpt2[7] if radio_rpt2[7] in "ABCG" else BLANK_CALL
        if urcall[:6] != "CQCQCQ" and rpt2[0] != " ":
            rpt2 = s.rptr_and_g
        if rpt2[7] == rpt1[7]:
            rpt2 = BLANK_CALL

        mycall = radio_mycall
        if s.restricted:
            if mycall != s.rptr:
                log.warning("mycall=[%s], not equal to %s", mycall, s.rptr)
                ok = False
        elif mycall == BLANK_CALL:
            log.warning("Invalid value for mycall=[%s]", mycall)
            ok = False
        if not ok:
            return None

        if not _valid(mycall):
            log.warning("Invalid value for MYCALL")
            mycall = BLANK_CALL
        if not _valid(sfx):
            sfx = " " * 4
        if not _valid(urcall, "/") or urcall == BLANK_CALL:
            urcall = CQ_CALL

        flag = _TO_NET_FLAG.get(flag0, 0x00)
        rpt1 = s.owner[:7] + rpt1[7]
        if rpt2[7] != " ":
            rpt2 = s.owner[:7] + rpt2[7]

        self._rf_stream = new_stream_id(self._rng)
        self._sequence = 0
        self.radio_busy = True
        self._last_rf = self._clock()
        self._mycall = radio_mycall
        self.pending_ack = None
        return DsvtHeader(
            stream_id=self._rf_stream,
            rpt1=rpt1,
            rpt2=rpt2,
            urcall=urcall,
            mycall=mycall,
            sfx=sfx,
            flag=bytes((flag, 0, 0)),
            ctrl=HEADER_CTRL,
        )

    def dvap_voice_to_gateway(self, register: DvapRegister) -> Optional[DsvtVoice]:
        """Pass on a voice frame heard by the dongle; None when no transmission is open."""
        self._check_local_timeout()
        if not self.radio_busy:
            return None
        end = bool(register.framepos & END_FLAG)
        ctrl = self._sequence
        self._sequence += 1
        if end:
            ctrl = self._sequence | END_FLAG
        data = register.frame_data[:12].ljust(12, b"\x00")
        voice = DsvtVoice(self._rf_stream, ctrl, data[:9], data[9:12])

        errors, words = self._decoder.decode(data[:9])
        if words[0] != NO_VOICE_WORD:
            self._bit_errors += errors
            self._frames += 1
        if self._sequence > 0x14:
            self._sequence = 0
        self._last_rf = self._clock()

        if end:
            self.radio_busy = False
            self.last_ber = ber_percentage(self._bit_errors, self._frames)
            if self.settings.log_qso:
                log.info("End of dvap audio, ber=%.02f", self.last_ber)
            if self.settings.acknowledge and not self.gateway_busy:
                self.pending_ack = (self._mycall, self.last_ber)
        return voice

    # --- acknowledgement ------------------------------------------------------

    def ack_frames(self, mycall: str, ber: float, stream_id: int) -> list[DvapRegister]:
        """Header and ten voice frames that tell a caller its bit error rate.

        The frames should be sent ``play_wait`` seconds after the transmission
        ended and ``play_delay`` milliseconds apart.
        """
        s = self.settings
        radio_id = ("BER%" + f"{ber:20.2f}"[4:])[:20].ljust(20).encode("latin-1")
        header = b"".join(
            (
                b"\x01\x00\x00",
                _encode(s.rptr_and_mod),
                _encode(s.rptr_and_g),
                _encode(mycall),
                _encode(s.rptr_and_mod),
                ACK_SUFFIX,
            )
        )
        header += calc_pfcs(header)
        registers = [
            DvapRegister.frame(HEADER_RADIO_HEADER, stream_id, RADIO_FRAME_POS, 0, header)
        ]

        message = b"".join(bytes((0x40 + k,)) + radio_id[5 * k : 5 * k + 5] for k in range(4))
        texts = [SYNC_CODES]
        texts += [
            bytes(a ^ b for a, b in zip(message[3 * j : 3 * j + 3], FILLER_TEXT))
            for j in range(8)
        ]
        texts.append(END_TEXT)
        last = len(texts) - 1
        for position, text in enumerate(texts):
            voice = END_VOICE if position == last else SILENCE
            framepos = position | (END_FLAG if position == last else 0)
            registers.append(
                DvapRegister.frame(HEADER_VOICE, stream_id, framepos, position, voice + text)
            )
        return registers