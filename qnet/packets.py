"""DSVT packets exchanged between the gateway and its modem programs."""

from __future__ import annotations

import random
import struct
from dataclasses import dataclass, field
from typing import Protocol, Union

TITLE = b"DSVT"
HEADER_CONFIG = 0x10
VOICE_CONFIG = 0x20
PACKET_ID = 0x20
HEADER_CTRL = 0x80
END_FLAG = 0x40

HEADER_SIZE = 56
VOICE_SIZE = 27
PFCS_SPAN = 39  # flag, rpt1, rpt2, urcall, mycall and sfx

SYNC_CODES = b"\x55\x2d\x16"
FILLER_TEXT = b"\x70\x4f\x93"
SILENCE = b"\x9e\x8d\x32\x88\x26\x1a\x3f\x61\xe8"

_HEADER = struct.Struct("!4sB3sB3sHB3s8s8s8s8s4s2s")
_VOICE = struct.Struct("!4sB3sB3sHB9s3s")


def _crc_table() -> tuple[int, ...]:
    table = []
    for index in range(256):
        crc = index
        for _ in range(8):
            crc = (crc >> 1) ^ 0x8408 if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _crc_table()


def calc_pfcs(header: bytes) -> bytes:
    """Checksum of the first 39 bytes of a radio header, low byte first."""
    if len(header) < PFCS_SPAN:
        raise ValueError(f"a header needs at least {PFCS_SPAN} bytes, got {len(header)}")
    crc = 0xFFFF
    for byte in header[:PFCS_SPAN]:
        crc = (crc >> 8) ^ _CRC_TABLE[(crc ^ byte) & 0xFF]
    crc ^= 0xFFFF
    return bytes((crc & 0xFF, crc >> 8))


class _BitSource(Protocol):
    def getrandbits(self, k: int) -> int: ...


_default_rng = random.Random()


def new_stream_id(rng: _BitSource | None = None) -> int:
    """Return a random, non-zero 16-bit stream id."""
    source = rng if rng is not None else _default_rng
    while True:
        value = source.getrandbits(16) & 0xFFFF
        if value:
            return value


def _encode_field(name: str, value: str, size: int) -> bytes:
    raw = value.encode("latin-1")
    if len(raw) > size:
        raise ValueError(f"{name} {value!r} is longer than {size} characters")
    return raw.ljust(size, b" ")


def _check_bytes(name: str, value: bytes, size: int) -> None:
    if len(value) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(value)}")


def _check_common(stream_id: int, ctrl: int, flaga: bytes, flagb: bytes) -> None:
    if not 0 <= stream_id <= 0xFFFF:
        raise ValueError(f"stream id {stream_id} is not a 16-bit value")
    if not 0 <= ctrl <= 0xFF:
        raise ValueError(f"ctrl {ctrl} is not a byte")
    _check_bytes("flaga", flaga, 3)
    _check_bytes("flagb", flagb, 3)


@dataclass
class DsvtHeader:
    """The 56 byte header that starts a voice stream.

    When ``pfcs`` is None the checksum is computed while packing.
    """

    stream_id: int
    rpt1: str = ""
    rpt2: str = ""
    urcall: str = "CQCQCQ"
    mycall: str = ""
    sfx: str = ""
    flag: bytes = b"\x00\x00\x00"
    ctrl: int = HEADER_CTRL
    flaga: bytes = b"\x00\x00\x00"
    flagb: bytes = b"\x00\x00\x00"
    pfcs: bytes | None = None

    def __post_init__(self) -> None:
        _check_common(self.stream_id, self.ctrl, self.flaga, self.flagb)
        _check_bytes("flag", self.flag, 3)
        if self.pfcs is not None:
            _check_bytes("pfcs", self.pfcs, 2)

    def _radio_header(self) -> bytes:
        return b"".join(
            (
                self.flag,
                _encode_field("rpt1", self.rpt1, 8),
                _encode_field("rpt2", self.rpt2, 8),
                _encode_field("urcall", self.urcall, 8),
                _encode_field("mycall", self.mycall, 8),
                _encode_field("sfx", self.sfx, 4),
            )
        )

    def pack(self) -> bytes:
        radio = self._radio_header()
        pfcs = self.pfcs if self.pfcs is not None else calc_pfcs(radio)
        return b"".join(
            (
                TITLE,
                bytes((HEADER_CONFIG,)),
                self.flaga,
                bytes((PACKET_ID,)),
                self.flagb,
                struct.pack("!HB", self.stream_id, self.ctrl),
                radio,
                pfcs,
            )
        )

    @classmethod
    def unpack(cls, data: bytes) -> "DsvtHeader":
        if len(data) != HEADER_SIZE:
            raise ValueError(f"a DSVT header is {HEADER_SIZE} bytes, got {len(data)}")
        (title, config, flaga, ident, flagb, stream_id, ctrl, flag,
         rpt1, rpt2, urcall, mycall, sfx, pfcs) = _HEADER.unpack(data)
        if title != TITLE:
            raise ValueError(f"bad packet title {title!r}")
        if config != HEADER_CONFIG or ident != PACKET_ID:
            raise ValueError(f"not a DSVT header: config={config:#x} id={ident:#x}")
        return cls(
            stream_id=stream_id,
            rpt1=rpt1.decode("latin-1"),
            rpt2=rpt2.decode("latin-1"),
            urcall=urcall.decode("latin-1"),
            mycall=mycall.decode("latin-1"),
            sfx=sfx.decode("latin-1"),
            flag=flag,
            ctrl=ctrl,
            flaga=flaga,
            flagb=flagb,
            pfcs=pfcs,
        )


@dataclass
class DsvtVoice:
    """A 27 byte voice frame: 9 bytes of AMBE and 3 of slow data."""

    stream_id: int
    ctrl: int
    voice: bytes = SILENCE
    text: bytes = FILLER_TEXT
    flaga: bytes = b"\x00\x00\x00"
    flagb: bytes = b"\x00\x00\x00"
    config: int = field(default=VOICE_CONFIG)

    def __post_init__(self) -> None:
        _check_common(self.stream_id, self.ctrl, self.flaga, self.flagb)
        _check_bytes("voice", self.voice, 9)
        _check_bytes("text", self.text, 3)
        if not 0 <= self.config <= 0xFF:
            raise ValueError(f"config {self.config} is not a byte")

    @property
    def is_end(self) -> bool:
        """True for the last frame of a stream."""
        return bool(self.ctrl & END_FLAG)

    @property
    def sequence(self) -> int:
        return self.ctrl & 0x3F

    def pack(self) -> bytes:
        return _VOICE.pack(
            TITLE, self.config, self.flaga, PACKET_ID, self.flagb,
            self.stream_id, self.ctrl, self.voice, self.text,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "DsvtVoice":
        if len(data) != VOICE_SIZE:
            raise ValueError(f"a DSVT voice frame is {VOICE_SIZE} bytes, got {len(data)}")
        title, config, flaga, _ident, flagb, stream_id, ctrl, voice, text = _VOICE.unpack(data)
        if title != TITLE:
            raise ValueError(f"bad packet title {title!r}")
        return cls(
            stream_id=stream_id,
            ctrl=ctrl,
            voice=voice,
            text=text,
            flaga=flaga,
            flagb=flagb,
            config=config,
        )


def parse_dsvt(data: bytes) -> Union[DsvtHeader, DsvtVoice]:
    """Decode a header or a voice frame, chosen by its length."""
    if len(data) == HEADER_SIZE:
        return DsvtHeader.unpack(data)
    if len(data) == VOICE_SIZE:
        return DsvtVoice.unpack(data)
    raise ValueError(f"unexpected DSVT packet length {len(data)}")