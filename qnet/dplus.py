"""Log in to the DPlus authentication server and collect its gateway list."""

from __future__ import annotations

import logging
import socket
from typing import Callable

from qnet.db import QnetDB
from qnet.hostqueue import Host

log = logging.getLogger(__name__)

DPLUS_PORT = 20001
LOGIN_SIZE = 56
RECORD_SIZE = 26


def build_login_packet(callsign: str) -> bytes:
    """The 56 byte opening message sent to the authentication server."""
    call = callsign.strip().encode("ascii")
    if not 1 <= len(call) <= 8:
        raise ValueError(f"login callsign {callsign!r} must be 1 to 8 characters")
    packet = bytearray(b" " * LOGIN_SIZE)
    packet[0:4] = b"\x38\xc0\x01\x00"
    packet[4 : 4 + len(call)] = call
    packet[12:20] = b"DV019999"
    packet[28:33] = b"W7IB2"
    packet[40:47] = b"DHS0257"
    return bytes(packet)


def _packet_length(head: bytes) -> int:
    return (head[1] & 0x0F) * 256 + head[0]


def _c_string(data: bytes, start: int) -> str:
    end = data.find(b"\x00", start)
    if end < 0:
        end = len(data)
    return data[start:end].decode("latin-1")


def parse_gateway_records(packet: bytes, reflectors: bool, repeaters: bool) -> list[Host]:
    """Active gateways listed in one server packet, including its 2 byte length prefix.

    Names starting with ``REF`` are reflectors; the rest are repeaters.
    """
    if len(packet) < 3 or (packet[1] & 0xC0) != 0xC0 or packet[2] != 0x01:
        raise ValueError("Invalid packet received from 20001")
    length = min(_packet_length(packet), len(packet))
    hosts = []
    for offset in range(8, length - 25, RECORD_SIZE):
        address = _c_string(packet, offset).strip()
        name = _c_string(packet, offset + 16).strip()
        active = bool(packet[offset + 25] & 0x80)
        if not (address and name and active):
            continue
        name = name[:6].ljust(6)
        is_reflector = name.startswith("REF")
        if (reflectors and is_reflector) or (repeaters and not is_reflector):
            hosts.append(Host(name, address, DPLUS_PORT))
    return hosts


class DPlusAuthenticator:
    """Authenticates a callsign with a DPlus server and stores the gateways it lists."""

    def __init__(
        self,
        login_callsign: str,
        address: str,
        connect: Callable[..., socket.socket] = socket.create_connection,
        timeout: float = 30.0,
    ) -> None:
        self.login_callsign = login_callsign.strip()
        if not self.login_callsign:
            raise ValueError("a login callsign is required")
        self.address = address
        self._connect = connect
        self._timeout = timeout

    @staticmethod
    def _read_exact(sock: socket.socket, size: int) -> bytes | None:
        chunks = bytearray()
        while len(chunks) < size:
            chunk = sock.recv(size - len(chunks))
            if not chunk:
                return None
            chunks += chunk
        return bytes(chunks)

    def process(self, db: QnetDB, reflectors: bool, repeaters: bool) -> int:
        """Log in, store the listed gateways in db, and return how many were stored.

        Raises OSError when the server cannot be reached or the login cannot be sent.
        """
        login = build_login_packet(self.login_callsign)
        with self._connect((self.address, DPLUS_PORT), timeout=self._timeout) as sock:
            sock.sendall(login)
            stored = 0
            while True:
                head = self._read_exact(sock, 2)
                if head is None:
                    break
                length = _packet_length(head)
                if length < 2:
                    log.error("Invalid packet length %d received from 20001", length)
                    return stored
                body = self._read_exact(sock, length - 2)
                if body is None:
                    log.error("Problem reading a gateway packet")
                    return stored
                try:
                    hosts = parse_gateway_records(head + body, reflectors, repeaters)
                except ValueError as exc:
                    log.error("%s", exc)
                    return stored
                if hosts:
                    db.update_gateways(hosts)
                    stored += len(hosts)
        log.info(
            "Probably authorized DPlus on %s using callsign %s", self.address, self.login_callsign
        )
        return stored