"""An IPv4 or IPv6 address with a port."""

from __future__ import annotations

import socket

_FAMILIES = {
    socket.AF_INET: (4, "127.0.0.1", "0.0.0.0"),
    socket.AF_INET6: (16, "::1", "::"),
}


class SockAddress:
    """A socket address; equality compares family and address, not port.

    The address may also be given as ``loc...`` for loopback or ``any...``
    for the wildcard address.
    """

    def __init__(self, family: int = socket.AF_INET, port: int = 0, address: str | None = None) -> None:
        if family not in _FAMILIES:
            raise ValueError(f"Wrong address family type: {family} for [{address}]:{port}")
        size, loopback, wildcard = _FAMILIES[family]
        self._family = family
        self.port = port
        self._packed = bytes(size)
        if address is not None:
            lowered = address[:3].lower()
            if lowered == "loc":
                address = loopback
            elif lowered == "any":
                address = wildcard
            try:
                self._packed = socket.inet_pton(family, address)
            except OSError:
                kind = "IPV4" if family == socket.AF_INET else "IPV6"
                raise ValueError(f"'{address}' is not a valid {kind} address") from None

    @classmethod
    def from_sockaddr(cls, family: int, sockaddr: tuple) -> "SockAddress":
        """Build from the address tuple returned by socket calls."""
        return cls(family, sockaddr[1], sockaddr[0])

    @property
    def family(self) -> int:
        return self._family

    @property
    def port(self) -> int:
        return self._port

    @port.setter
    def port(self, value: int) -> None:
        if not 0 <= value <= 0xFFFF:
            raise ValueError(f"port {value} is out of range")
        self._port = value

    @property
    def packed(self) -> bytes:
        return self._packed

    @property
    def address(self) -> str:
        return socket.inet_ntop(self._family, self._packed)

    @property
    def sockaddr(self) -> tuple:
        """Address tuple suitable for socket calls."""
        if self._family == socket.AF_INET6:
            return (self.address, self._port, 0, 0)
        return (self.address, self._port)

    def address_is_zero(self) -> bool:
        return not any(self._packed)

    def clear_address(self) -> None:
        self._packed = bytes(len(self._packed))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SockAddress):
            return NotImplemented
        return self._family == other._family and self._packed == other._packed

    def __hash__(self) -> int:
        return hash((self._family, self._packed))

    def __str__(self) -> str:
        text = f"[{self.address}]" if self._family == socket.AF_INET6 else self.address
        if self._port:
            text += f":{self._port}"
        return text

    def __repr__(self) -> str:
        return f"SockAddress({self._family!r}, {self._port!r}, {self.address!r})"