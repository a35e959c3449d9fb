"""Serial line driver for a DVAP dongle."""

from __future__ import annotations

import errno
import logging
import os
import struct
import time
from typing import Callable, Optional, Protocol

import serial

from qnet.dvap_protocol import (
    CONTROL_FIRMWARE,
    CONTROL_FREQUENCY,
    CONTROL_FREQUENCY_LIMITS,
    CONTROL_MODE,
    CONTROL_MODULATION,
    CONTROL_NAME,
    CONTROL_OFFSET,
    CONTROL_POWER,
    CONTROL_RUN_STATE,
    CONTROL_SERIAL,
    CONTROL_SQUELCH,
    CONTROL_STATUS,
    HEADER_FREQUENCY,
    HEADER_KEEP_ALIVE,
    HEADER_PARAM_5,
    HEADER_PARAM_6,
    HEADER_REQUEST,
    HEADER_REQUEST_5,
    HEADER_STATUS,
    DvapRegister,
    ReplyType,
    clamp_offset,
    clamp_power,
    clamp_squelch,
    classify_reply,
    expected_header,
)

log = logging.getLogger(__name__)

MAX_REPLY_COUNT = 20
REPLY_DELAY = 0.005
POLL_DELAY = 0.001
SYNC_MISSES = 100
STALL_POLLS = 1000
SCAN_COUNT = 32
DEVICE_NAME = "DVAP Dongle"
BAUD_RATE = 230400

_SYNC = struct.pack("<HH", HEADER_STATUS, CONTROL_STATUS)


class DvapError(Exception):
    """The dongle could not be opened, did not answer, or answered wrongly."""


class SerialPort(Protocol):
    def read(self, size: int) -> bytes: ...

    def write(self, data: bytes) -> Optional[int]: ...

    def close(self) -> None: ...


def open_serial(device: str) -> serial.Serial:
    """Open a device raw at 230400 baud for exclusive, non-blocking use."""
    if not os.access(device, os.R_OK | os.W_OK):
        raise OSError(errno.EACCES, "device is not readable and writable", device)
    return serial.Serial(
        device,
        baudrate=BAUD_RATE,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        xonxoff=False,
        rtscts=False,
        timeout=0,
        exclusive=True,
    )


class DvapDongle:
    """A DVAP dongle on a serial device.

    Give a device path, or leave it empty to search ``/dev/ttyUSB0..31``
    for the dongle with the configured serial number.
    """

    def __init__(
        self,
        device: str = "",
        port_factory: Callable[[str], SerialPort] = open_serial,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.device = device
        self._port_factory = port_factory
        self._sleep = sleep
        self._port: Optional[SerialPort] = None
        self.name = ""
        self.firmware = 0
        self.squelch = 0
        self.power = 0
        self.offset = 0
        self.frequency = 0
        self.frequency_limits = (0, 0)

    def __enter__(self) -> "DvapDongle":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._port is not None

    # --- low level I/O ----------------------------------------------------

    def _port_read(self, size: int) -> bytes:
        if self._port is None:
            raise DvapError("the DVAP is not open")
        try:
            return bytes(self._port.read(size))
        except OSError as exc:
            raise DvapError(f"error reading from the DVAP: {exc}") from exc

    def _read(self, size: int) -> bytes:
        """Read exactly size bytes, or nothing if none are waiting."""
        data = bytearray(self._port_read(size))
        if not data:
            return b""
        idle = 0
        while len(data) < size:
            chunk = self._port_read(size - len(data))
            if chunk:
                data += chunk
                idle = 0
                continue
            idle += 1
            if idle > STALL_POLLS:
                raise DvapError("the DVAP stopped sending in the middle of a register")
            self._sleep(POLL_DELAY)
        return bytes(data)

    def _write(self, data: bytes, failure: str = "Error writing to the DVAP") -> None:
        if self._port is None:
            raise DvapError("the DVAP is not open")
        try:
            self._port.write(data)
        except OSError as exc:
            raise DvapError(f"{failure}: {exc}") from exc

    def _sync(self) -> bool:
        """Skip input until a status register lines up; False if the line goes quiet."""
        log.info("Starting syncing dvap")
        window = bytearray(7)
        misses = 0
        while bytes(window[:4]) != _SYNC:
            try:
                byte = self._port_read(1)
            except DvapError:
                byte = b""
            if byte:
                window = window[1:] + byte
                misses = 0
                continue
            misses += 1
            if misses > SYNC_MISSES:
                log.error("syncing the dvap was unsuccessful")
                return False
            self._sleep(POLL_DELAY)
        log.info("Stopping syncing dvap")
        return True

    # --- registers ----------------------------------------------------------

    def get_reply(self) -> tuple[ReplyType, Optional[DvapRegister]]:
        """Read one register if one is waiting, and say what it is."""
        try:
            head = self._read(2)
        except DvapError as exc:
            log.error("%s", exc)
            return ReplyType.ERR, None
        if not head:
            return ReplyType.TIMEOUT, None
        header = int.from_bytes(head, "little")
        if not expected_header(header):
            log.warning("unknown header=%#x", header)
            return (ReplyType.TIMEOUT if self._sync() else ReplyType.ERR), None
        length = header & 0x1FFF
        try:
            body = self._read(length - 2) if length > 2 else b""
        except DvapError as exc:
            log.error("%s", exc)
            return ReplyType.TIMEOUT, None
        register = DvapRegister(header, body)
        reply = classify_reply(register)
        if reply is ReplyType.UNKNOWN:
            log.warning(
                "Unrecognized data from dvap: header=%#x control=%#x", header, register.control
            )
            return (ReplyType.TIMEOUT if self._sync() else ReplyType.ERR), register
        return reply, register

    def send_register(self, register: DvapRegister) -> None:
        self._write(register.pack())

    def _transact(self, register: DvapRegister, expected: ReplyType, action: str) -> DvapRegister:
        self._write(register.pack(), f"Failed to send request to {action}")
        attempt = 0
        while True:
            self._sleep(REPLY_DELAY)
            reply, answer = self.get_reply()
            attempt += 1
            if attempt >= MAX_REPLY_COUNT:
                raise DvapError(f"Reached max number of requests to {action}")
            if reply is expected and answer is not None:
                return answer

    # --- setup steps ----------------------------------------------------------

    def _serial_matches(self, device: str, serial_number: str) -> bool:
        answer = self._transact(
            DvapRegister.with_control(HEADER_REQUEST, CONTROL_SERIAL),
            ReplyType.SER,
            "get dvap serial#",
        )
        if answer.sstr == serial_number:
            log.info("Using %s: %s, because serial number matches", device, serial_number)
            return True
        log.info(
            "Device %s has serial %s, but does not match %s", device, answer.sstr, serial_number
        )
        return False

    def _try_open(self, device: str) -> Optional[SerialPort]:
        try:
            port = self._port_factory(device)
        except OSError as exc:
            log.debug("Device %s could not be opened: %s", device, exc)
            return None
        log.info("Device %s is now locked for exclusive use", device)
        return port

    def _open(self, serial_number: str) -> None:
        if self.device:
            self._port = self._try_open(self.device)
            if self._port is None:
                raise DvapError(f"Device '{self.device}' could not be opened")
            return
        if not serial_number:
            raise DvapError("Either a device path or a serial number must be specified")
        for index in range(SCAN_COUNT):
            device = f"/dev/ttyUSB{index}"
            log.info("Trying device %s...", device)
            port = self._try_open(device)
            if port is None:
                continue
            self._port = port
            try:
                if self._serial_matches(device, serial_number):
                    self.device = device
                    return
            except DvapError as exc:
                log.warning("%s", exc)
            self.close()
        raise DvapError(f"No DVAP with serial number {serial_number} was found")

    def _get_name(self) -> str:
        answer = self._transact(
            DvapRegister.with_control(HEADER_REQUEST, CONTROL_NAME), ReplyType.NAME, "get dvap name"
        )
        if not answer.sstr.startswith(DEVICE_NAME):
            raise DvapError(f"Failed to receive dvap name, got {answer.sstr}")
        log.info("Device name: %s", DEVICE_NAME)
        return DEVICE_NAME

    def _get_firmware(self) -> int:
        answer = self._transact(
            DvapRegister.with_control(HEADER_REQUEST_5, CONTROL_FIRMWARE, b"\x01"),
            ReplyType.FW,
            "get dvap fw",
        )
        version = answer.ustr[1] + 256 * answer.ustr[2]
        log.info("dvap fw ver: %d.%d", version // 100, version % 100)
        return version

    def _set_squelch(self, squelch: int) -> int:
        value = clamp_squelch(squelch)
        answer = self._transact(
            DvapRegister.with_control(HEADER_PARAM_5, CONTROL_SQUELCH, struct.pack("<b", value)),
            ReplyType.SQL,
            "set dvap sql",
        )
        log.info("DVAP squelch is %d dB", answer.byte)
        return answer.byte

    def _set_power(self, power: int) -> int:
        value = clamp_power(power)
        answer = self._transact(
            DvapRegister.with_control(HEADER_PARAM_6, CONTROL_POWER, struct.pack("<h", value)),
            ReplyType.PWR,
            "set dvap pwr",
        )
        log.info("DVAP power is %d dB", answer.word)
        return answer.word

    def _set_offset(self, offset: int) -> int:
        value = clamp_offset(offset)
        answer = self._transact(
            DvapRegister.with_control(HEADER_PARAM_6, CONTROL_OFFSET, struct.pack("<h", value)),
            ReplyType.OFF,
            "set dvap offset",
        )
        log.info("DVAP offset is %d Hz", answer.word)
        return answer.word

    def _set_frequency(self, frequency: int) -> int:
        limits = self._transact(
            DvapRegister.with_control(HEADER_REQUEST, CONTROL_FREQUENCY_LIMITS),
            ReplyType.FREQ_LIMIT,
            "get dvap frequency limits",
        ).twod
        self.frequency_limits = limits
        low, high = limits
        log.info("DVAP Frequency limits are from %d to %d Hz", low, high)
        if frequency < low:
            log.warning("Frequency of %d is too small, resetting...", frequency)
            frequency = low
        elif frequency > high:
            log.warning("Frequency of %d is too large, resetting...", frequency)
            frequency = high
        answer = self._transact(
            DvapRegister.with_control(HEADER_FREQUENCY, CONTROL_FREQUENCY, struct.pack("<i", frequency)),
            ReplyType.FREQ,
            "set dvap frequency",
        )
        log.info("DVAP frequency is %d Hz", answer.dword)
        return answer.dword

    def initialize(
        self, serial_number: str, frequency: int, offset: int, power: int, squelch: int
    ) -> None:
        """Open the dongle, configure the radio and start it.

        Raises DvapError on any failure, leaving the device closed.
        """
        self._open(serial_number)
        try:
            self.name = self._get_name()
            self.firmware = self._get_firmware()
            self._transact(
                DvapRegister.with_control(HEADER_PARAM_5, CONTROL_MODULATION, b"\x01"),
                ReplyType.MODU,
                "set dvap modulation",
            )
            self._transact(
                DvapRegister.with_control(HEADER_PARAM_5, CONTROL_MODE, b"\x00"),
                ReplyType.MODE,
                "set dvap mode",
            )
            self.squelch = self._set_squelch(squelch)
            self.power = self._set_power(power)
            self.offset = self._set_offset(offset)
            self.frequency = self._set_frequency(frequency)
            self._transact(
                DvapRegister.with_control(HEADER_PARAM_5, CONTROL_RUN_STATE, b"\x01"),
                ReplyType.START,
                "start the dvap dongle",
            )
        except DvapError:
            try:
                self.stop()
            except DvapError:
                pass
            self.close()
            raise

    # --- running ----------------------------------------------------------

    def stop(self) -> None:
        """Tell the dongle to stop."""
        self._write(DvapRegister.with_control(HEADER_PARAM_5, CONTROL_RUN_STATE, b"\x00").pack())

    def keep_alive(self) -> None:
        self._write(DvapRegister(HEADER_KEEP_ALIVE, b"\x00").pack())

    def close(self) -> None:
        if self._port is not None:
            port, self._port = self._port, None
            port.close()