"""SQLite store of last-heard stations, link status and known gateways."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from qnet.hostqueue import Host, HostQueue

TABLES = ("LHEARD", "LINKSTATUS", "GATEWAYS")

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS LHEARD("
    "callsign TEXT PRIMARY KEY, "
    "sfx TEXT DEFAULT '    ', "
    "message TEXT DEFAULT '                    ', "
    "maidenhead TEXT DEFAULT '      ', "
    "latitude REAL DEFAULT 0.0, "
    "longitude REAL DEFAULT 0.0, "
    "module TEXT, "
    "reflector TEXT, "
    "lasttime INT NOT NULL"
    ") WITHOUT ROWID;",
    "CREATE TABLE IF NOT EXISTS LINKSTATUS("
    "ip_address TEXT PRIMARY KEY, "
    "from_mod TEXT NOT NULL, "
    "to_callsign TEXT NOT NULL, "
    "to_mod TEXT NOT NULL, "
    "linked_time INT NOT NULL"
    ") WITHOUT ROWID;",
    "CREATE TABLE IF NOT EXISTS GATEWAYS("
    "name TEXT PRIMARY KEY, "
    "address TEXT NOT NULL, "
    "port INT NOT NULL"
    ") WITHOUT ROWID;",
)

_NOW = "strftime('%s','now')"


@dataclass
class Link:
    """A link from a local module to a remote reflector or repeater."""

    callsign: str
    address: str
    linked_time: int


def _gateway_name(name: str) -> str:
    """Gateway names are stored as exactly six characters."""
    return name[:6].ljust(6)


def _drain(queue: HostQueue) -> Iterator[Host]:
    while queue:
        yield queue.pop()


class QnetDB:
    """The shared database of the gateway programs.

    Usable as a context manager; the connection is closed on exit.
    """

    def __init__(self, path: str | Path) -> None:
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            str(path), timeout=1.0, isolation_level=None, check_same_thread=False
        )
        try:
            for statement in _SCHEMA:
                self._conn.execute(statement)
        except sqlite3.Error:
            self._conn.close()
            raise

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "QnetDB":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            return self._conn.execute(sql, params)

    # --- last heard -------------------------------------------------------

    def update_lh(self, callsign: str, sfx: str, module: str, reflector: str) -> None:
        """Record that a station was just heard on a module."""
        with self._lock:
            (count,) = self._conn.execute(
                "SELECT COUNT(*) FROM LHEARD WHERE callsign=?;", (callsign,)
            ).fetchone()
            if count:
                self._conn.execute(
                    f"UPDATE LHEARD SET sfx=?, module=?, reflector=?, lasttime={_NOW} "
                    "WHERE callsign=?;",
                    (sfx, module, reflector, callsign),
                )
            else:
                self._conn.execute(
                    "INSERT INTO LHEARD (callsign, sfx, module, reflector, lasttime) "
                    f"VALUES (?, ?, ?, ?, {_NOW});",
                    (callsign, sfx, module, reflector),
                )

    def update_message(self, callsign: str, message: str) -> None:
        self._execute(
            f"UPDATE LHEARD SET message=?, lasttime={_NOW} WHERE callsign=?;",
            (message, callsign),
        )

    def update_position(
        self, callsign: str, maidenhead: str, latitude: float, longitude: float
    ) -> None:
        self._execute(
            f"UPDATE LHEARD SET maidenhead=?, latitude=?, longitude=?, lasttime={_NOW} "
            "WHERE callsign=?;",
            (maidenhead, latitude, longitude, callsign),
        )

    def clear_lh(self) -> None:
        self._execute("DELETE FROM LHEARD;")

    # --- link status --------------------------------------------------------

    def update_ls(
        self, address: str, from_mod: str, to_callsign: str, to_mod: str, linked_time: int
    ) -> None:
        self._execute(
            "INSERT OR REPLACE INTO LINKSTATUS "
            "(ip_address, from_mod, to_callsign, to_mod, linked_time) VALUES (?, ?, ?, ?, ?);",
            (address, from_mod, to_callsign, to_mod, int(linked_time)),
        )

    def delete_ls(self, address: str) -> None:
        self._execute("DELETE FROM LINKSTATUS WHERE ip_address=?;", (address,))

    def find_ls(self, mod: str) -> list[Link]:
        """Links from a local module.

        The callsign is padded to seven characters and followed by the
        remote module, unless that module is a ``p`` (peer) entry.
        """
        rows = self._execute(
            "SELECT ip_address, to_callsign, to_mod, linked_time FROM LINKSTATUS "
            "WHERE from_mod=?;",
            (mod,),
        ).fetchall()
        links = []
        for address, callsign, to_mod, linked_time in rows:
            if not to_mod.startswith("p"):
                callsign = callsign[:7].ljust(7) + to_mod
            links.append(Link(callsign, address, int(linked_time)))
        return links

    def clear_ls(self) -> None:
        self._execute("DELETE FROM LINKSTATUS;")

    # --- gateways -----------------------------------------------------------

    def update_gateways(self, hosts: Iterable[Host] | HostQueue) -> int:
        """Store hosts in one transaction; a HostQueue is emptied. Returns the number stored."""
        source = _drain(hosts) if isinstance(hosts, HostQueue) else iter(hosts)
        stored = 0
        with self._lock:
            self._conn.execute("BEGIN TRANSACTION;")
            try:
                for host in source:
                    self._conn.execute(
                        "INSERT OR REPLACE INTO GATEWAYS (name, address, port) VALUES (?, ?, ?);",
                        (_gateway_name(host.name), host.addr, host.port),
                    )
                    stored += 1
            except BaseException:
                self._conn.execute("ROLLBACK TRANSACTION;")
                raise
            self._conn.execute("COMMIT TRANSACTION;")
        return stored

    def find_gw(self, name: str) -> tuple[str, int] | None:
        """Return (address, port) of a gateway, or None if it is unknown."""
        row = self._execute(
            "SELECT address, port FROM GATEWAYS WHERE name=?;", (_gateway_name(name),)
        ).fetchone()
        if row is None:
            return None
        return row[0], int(row[1]) & 0xFFFF

    def has_gw(self, name: str) -> bool:
        return self.find_gw(name) is not None

    def clear_gw(self) -> None:
        self._execute("DELETE FROM GATEWAYS;")

    # --- general -------------------------------------------------------------

    def count(self, table: str) -> int:
        """Number of rows in one of the tables."""
        if table not in TABLES:
            raise ValueError(f"unknown table {table!r}")
        (rows,) = self._execute(f"SELECT COUNT(*) FROM {table};").fetchone()
        return int(rows)