"""Thread-safe lookup cache of users, repeaters, gateways and nick names."""

from __future__ import annotations

import threading


class CacheManager:
    """Maps users to repeaters, repeaters to gateways and gateways to addresses.

    Lookups that find nothing return an empty string.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._user_time: dict[str, str] = {}
        self._user_rptr: dict[str, str] = {}
        self._rptr_gate: dict[str, str] = {}
        self._gate_addr: dict[str, str] = {}
        self._name_nick: dict[str, str] = {}

    # --- unlocked helpers -------------------------------------------------

    def _user_repeater(self, user: str) -> str:
        if not user:
            return ""
        return self._user_rptr.get(user, "")

    def _repeater_gate(self, rptr: str) -> str:
        if not rptr:
            return ""
        gate = self._rptr_gate.get(rptr)
        if gate is None:
            padded = rptr.ljust(8)
            gate = padded[:7] + "G" + padded[8:]
        return gate

    def _gate_address(self, gate: str) -> str:
        if not gate:
            return ""
        return self._gate_addr.get(gate, "")

    # --- lookups ------------------------------------------------------------

    def find_user_data(self, user: str) -> tuple[str, str, str]:
        """Return (repeater, gateway, address) for a user."""
        with self._lock:
            rptr = self._user_repeater(user)
            gate = self._repeater_gate(rptr)
            return rptr, gate, self._gate_address(gate)

    def find_rptr_data(self, rptr: str) -> tuple[str, str]:
        """Return (gateway, address) for a repeater."""
        with self._lock:
            gate = self._repeater_gate(rptr)
            return gate, self._gate_address(gate)

    def find_user_time(self, user: str) -> str:
        if not user:
            return ""
        with self._lock:
            return self._user_time.get(user, "")

    def find_user_addr(self, user: str) -> str:
        with self._lock:
            return self._gate_address(self._repeater_gate(self._user_repeater(user)))

    def find_name_nick(self, name: str) -> str:
        if not name:
            return ""
        with self._lock:
            return self._name_nick.get(name, "")

    def find_user_repeater(self, user: str) -> str:
        with self._lock:
            return self._user_repeater(user)

    def find_gate_address(self, gate: str) -> str:
        with self._lock:
            return self._gate_address(gate)

    def find_server_user(self) -> str:
        """Return the first known name that starts with ``s-``."""
        with self._lock:
            return next((name for name in self._name_nick if name.startswith("s-")), "")

    # --- removal ------------------------------------------------------------

    def erase_gate(self, gate: str) -> None:
        with self._lock:
            self._gate_addr.pop(gate, None)

    def erase_name(self, name: str) -> None:
        with self._lock:
            self._name_nick.pop(name, None)

    def clear_gate(self) -> None:
        """Forget every gateway address and every nick name."""
        with self._lock:
            self._gate_addr.clear()
            self._name_nick.clear()

    # --- updates ------------------------------------------------------------

    def update_user(self, user: str, rptr: str, gate: str, addr: str, time: str) -> None:
        if not user:
            return
        with self._lock:
            if time:
                self._user_time[user] = time
            if not rptr:
                return
            self._user_rptr[user] = rptr
            if not gate or not addr:
                return
            if rptr[:7] != gate[:7]:
                self._rptr_gate[rptr] = gate
            self._gate_addr[gate] = addr

    def update_rptr(self, rptr: str, gate: str, addr: str) -> None:
        if not rptr or not gate:
            return
        with self._lock:
            self._rptr_gate[rptr] = gate
            if addr:
                self._gate_addr[gate] = addr

    def update_gate(self, gate: str, addr: str) -> None:
        """Record a gateway address; underscores in the name become spaces."""
        if not gate or not addr:
            return
        with self._lock:
            self._gate_addr[gate.replace("_", " ")] = addr

    def update_name(self, name: str, nick: str) -> None:
        if not name or not nick:
            return
        with self._lock:
            self._name_nick[name] = nick