"""Registers exchanged with a DVAP dongle over its serial line.

A register is a little-endian 16-bit header followed by its body. The low
13 bits of the header give the length of the whole register, header
included.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from enum import Enum, auto

log = logging.getLogger(__name__)

HEADER_PARAM_5 = 0x0005
HEADER_PARAM_6 = 0x0006
HEADER_PARAM_7 = 0x0007
HEADER_FREQUENCY = 0x0008
HEADER_FREQUENCY_LIMITS = 0x000C
HEADER_SERIAL = 0x000D
HEADER_NAME = 0x0010
HEADER_REQUEST = 0x2004
HEADER_REQUEST_5 = 0x2005
HEADER_STATUS = 0x2007
HEADER_KEEP_ALIVE = 0x6003
HEADER_HEADER_ACK = 0x602F
HEADER_RADIO_HEADER = 0xA02F
HEADER_VOICE = 0xC012

CONTROL_NAME = 0x0001
CONTROL_SERIAL = 0x0002
CONTROL_FIRMWARE = 0x0004
CONTROL_RUN_STATE = 0x0018
CONTROL_MODULATION = 0x0028
CONTROL_MODE = 0x002A
CONTROL_SQUELCH = 0x0080
CONTROL_STATUS = 0x0090
CONTROL_PTT = 0x0118
CONTROL_POWER = 0x0138
CONTROL_FREQUENCY = 0x0220
CONTROL_FREQUENCY_LIMITS = 0x0230
CONTROL_OFFSET = 0x0400

LENGTH_MASK = 0x1FFF
PARAM_SIZE = 12

SQUELCH_RANGE = (-128, -45)
POWER_RANGE = (-12, 10)
OFFSET_RANGE = (-2000, 2000)

_EXPECTED_HEADERS = frozenset(
    {
        HEADER_PARAM_5,
        HEADER_PARAM_6,
        HEADER_PARAM_7,
        HEADER_FREQUENCY,
        HEADER_FREQUENCY_LIMITS,
        HEADER_SERIAL,
        HEADER_NAME,
        HEADER_REQUEST_5,
        HEADER_STATUS,
        HEADER_HEADER_ACK,
        HEADER_RADIO_HEADER,
        HEADER_VOICE,
    }
)


class ReplyType(Enum):
    """What a register read from the dongle turned out to be."""

    TIMEOUT = auto()
    ERR = auto()
    UNKNOWN = auto()
    NAME = auto()
    SER = auto()
    FW = auto()
    START = auto()
    STOP = auto()
    MODU = auto()
    MODE = auto()
    SQL = auto()
    PWR = auto()
    OFF = auto()
    FREQ = auto()
    FREQ_LIMIT = auto()
    STS = auto()
    PTT = auto()
    ACK = auto()
    HDR = auto()
    HDR_ACK = auto()
    DAT = auto()


@dataclass(frozen=True)
class DvapRegister:
    """One register: its header word and the bytes that follow it.

    A body shorter than the header's length is padded with zeros when packed.
    """

    header: int
    payload: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= self.header <= 0xFFFF:
            raise ValueError(f"header {self.header:#x} is not a 16-bit value")
        if self.length < 2:
            raise ValueError(f"header {self.header:#x} gives a length below 2")
        if len(self.payload) > self.length - 2:
            raise ValueError(
                f"payload of {len(self.payload)} bytes does not fit a register of length {self.length}"
            )

    @classmethod
    def with_control(cls, header: int, control: int, value: bytes = b"") -> "DvapRegister":
        """A parameter register: control word followed by its value."""
        return cls(header, struct.pack("<H", control) + bytes(value))

    @classmethod
    def frame(
        cls, header: int, stream_id: int, framepos: int, seq: int, data: bytes
    ) -> "DvapRegister":
        """A radio header or voice frame register."""
        return cls(header, struct.pack("<HBB", stream_id, framepos, seq) + bytes(data))

    @property
    def length(self) -> int:
        return self.header & LENGTH_MASK

    @property
    def _param(self) -> bytes:
        return self.payload[2 : 2 + PARAM_SIZE].ljust(PARAM_SIZE, b"\x00")

    @property
    def control(self) -> int:
        return int.from_bytes(self.payload[:2].ljust(2, b"\x00"), "little")

    @property
    def byte(self) -> int:
        return struct.unpack_from("<b", self._param)[0]

    @property
    def word(self) -> int:
        return struct.unpack_from("<h", self._param)[0]

    @property
    def dword(self) -> int:
        return struct.unpack_from("<i", self._param)[0]

    @property
    def twod(self) -> tuple[int, int]:
        return struct.unpack_from("<ii", self._param)

    @property
    def ustr(self) -> bytes:
        return self._param

    @property
    def sstr(self) -> str:
        return self._param.split(b"\x00", 1)[0].decode("latin-1")

    @property
    def stream_id(self) -> int:
        return self.control

    @property
    def framepos(self) -> int:
        return self.payload[2] if len(self.payload) > 2 else 0

    @property
    def seq(self) -> int:
        return self.payload[3] if len(self.payload) > 3 else 0

    @property
    def frame_data(self) -> bytes:
        """Radio header or voice bytes of a frame register."""
        return self.payload[4:]

    def pack(self) -> bytes:
        return struct.pack("<H", self.header) + self.payload.ljust(self.length - 2, b"\x00")

    @classmethod
    def unpack(cls, data: bytes) -> "DvapRegister":
        if len(data) < 2:
            raise ValueError("a register needs at least a 2 byte header")
        header = int.from_bytes(data[:2], "little")
        length = header & LENGTH_MASK
        if len(data) < length:
            raise ValueError(f"register {header:#x} needs {length} bytes, got {len(data)}")
        return cls(header, bytes(data[2:length]))


def expected_header(header: int) -> bool:
    """True for the header words the dongle is known to send."""
    return header in _EXPECTED_HEADERS


def classify_reply(register: DvapRegister) -> ReplyType:
    """Name the kind of a register read from the dongle."""
    header, control = register.header, register.control
    first = register.ustr[0]
    if header == HEADER_PARAM_5:
        if control == CONTROL_RUN_STATE:
            return ReplyType.START if register.byte else ReplyType.STOP
        if control == CONTROL_MODULATION and first == 0x01:
            return ReplyType.MODU
        if control == CONTROL_SQUELCH:
            return ReplyType.SQL
        if control == CONTROL_MODE and first == 0x00:
            return ReplyType.MODE
    elif header == HEADER_PARAM_6:
        if control == CONTROL_POWER:
            return ReplyType.PWR
        if control == CONTROL_OFFSET:
            return ReplyType.OFF
    elif header == HEADER_PARAM_7:
        if control == CONTROL_FIRMWARE and first == 0x01:
            return ReplyType.FW
    elif header == HEADER_FREQUENCY:
        if control == CONTROL_FREQUENCY:
            return ReplyType.FREQ
    elif header == HEADER_FREQUENCY_LIMITS:
        if control == CONTROL_FREQUENCY_LIMITS:
            return ReplyType.FREQ_LIMIT
    elif header == HEADER_SERIAL:
        if control == CONTROL_SERIAL:
            return ReplyType.SER
    elif header == HEADER_NAME:
        if control == CONTROL_NAME:
            return ReplyType.NAME
    elif header == HEADER_REQUEST_5:
        if control == CONTROL_PTT:
            return ReplyType.PTT
    elif header == HEADER_STATUS:
        if control == CONTROL_STATUS:
            return ReplyType.STS
    elif header == HEADER_HEADER_ACK:
        return ReplyType.HDR_ACK
    elif header == HEADER_RADIO_HEADER:
        return ReplyType.HDR
    elif header == HEADER_VOICE:
        return ReplyType.DAT
    return ReplyType.UNKNOWN


def _clamp(value: int, limits: tuple[int, int], what: str, unit: str) -> int:
    low, high = limits
    if value < low:
        log.warning("%s of %d %s is too low, resetting to %d", what, value, unit, low)
        return low
    if value > high:
        log.warning("%s of %d %s is too high, resetting to %d", what, value, unit, high)
        return high
    return value


def clamp_squelch(squelch: int) -> int:
    """Squelch level in dB, held to -128..-45."""
    return _clamp(squelch, SQUELCH_RANGE, "Squelch setting", "dB")


def clamp_power(power: int) -> int:
    """Transmit power in dB, held to -12..10."""
    return _clamp(power, POWER_RANGE, "Power setting", "dB")


def clamp_offset(offset: int) -> int:
    """Frequency offset in Hz, held to -2000..2000."""
    return _clamp(offset, OFFSET_RANGE, "Offset", "Hz")