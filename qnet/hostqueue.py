"""A first-in, first-out queue of gateway hosts."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterable


@dataclass
class Host:
    """A named gateway or reflector reachable at an address and port."""

    name: str = ""
    addr: str = ""
    port: int = 0


class HostQueue:
    """FIFO queue of :class:`Host` entries."""

    def __init__(self, items: Iterable[Host] = ()) -> None:
        self._items: deque[Host] = deque(items)

    def push(self, item: Host) -> None:
        """Add a host at the back of the queue."""
        self._items.append(item)

    def pop(self) -> Host:
        """Remove and return the host at the front of the queue."""
        try:
            return self._items.popleft()
        except IndexError:
            raise IndexError("pop from an empty HostQueue") from None

    def clear(self) -> None:
        """Drop every queued host."""
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)