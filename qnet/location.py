"""GPS position parsing, Maidenhead locators and APRS position reports."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

_GPS = re.compile(
    r"[^0-9]([0-9]{1,2})([0-9]{2}\.[0-9]+),?([NS])[/,]([0-9]{1,3})([0-9]{2}\.[0-9]+),?([WE])"
)


def maidenhead_locator(latitude: float, longitude: float) -> str:
    """Six character Maidenhead grid locator for a position."""
    lat = latitude + 90.0
    lon = longitude + 180.0
    return "".join(
        (
            chr(ord("A") + int(lon) // 20),
            chr(ord("A") + int(lat) // 10),
            chr(ord("0") + (int(lon) % 20) // 2),
            chr(ord("0") + int(lat) % 10),
            chr(ord("a") + int(lon * 12.0) % 24),
            chr(ord("a") + int(lat * 24.0) % 24),
        )
    )


@dataclass(frozen=True)
class Location:
    """A position in decimal degrees together with its grid locator."""

    latitude: float
    longitude: float
    maidenhead: str

    @classmethod
    def parse(cls, text: str) -> "Location":
        """Find a ``DDMM.mmN/DDDMM.mmW`` style position in text.

        Raises ValueError when no valid position is present.
        """
        s = text.strip()
        if len(s) < 20:
            raise ValueError("text is too short to hold a position")
        match = _GPS.search(s)
        if match is None:
            raise ValueError(f"no position found in {s!r}")
        lat_deg, lat_min, ns, lon_deg, lon_min, we = match.groups()

        deg = float(lat_deg)
        if deg > 90.0:
            raise ValueError(f"Latitude degree {deg} is out of range")
        minutes = float(lat_min)
        if minutes > 60.0:
            raise ValueError(f"Latitude minutes {minutes} is out of range")
        latitude = deg + minutes / 60.0
        if ns == "S":
            latitude = -latitude

        deg = float(lon_deg)
        if deg > 180.0:
            raise ValueError(f"Longitude degree {deg} is out of range")
        minutes = float(lon_min)
        if minutes > 60.0:
            raise ValueError(f"Longitude minutes {minutes} is out of range")
        longitude = deg + minutes / 60.0
        if we == "W":
            longitude = -longitude

        return cls(latitude, longitude, maidenhead_locator(latitude, longitude))

    def aprs(self, call: str, station: str) -> str:
        """Format an APRS position report for a D-STAR callsign."""
        call = call.ljust(8)[:8]
        last = call[7]
        space = call.find(" ")
        if space >= 0:
            call = call[: space + 1]
        lat_frac, lat_whole = math.modf(abs(self.latitude))
        lon_frac, lon_whole = math.modf(abs(self.longitude))
        source = call if last == " " else f"{call}-{last}"
        report = (
            f"{source}>APDPRS,DSTAR*,qAR,{station}:!"
            f"{int(lat_frac):02d}{lat_whole * 60.0:04.2f}{'N' if self.latitude >= 0 else 'S'}/"
            f"{int(lon_frac):03d}{lon_whole * 60.0:04.2f}{'E' if self.longitude >= 0 else 'W'}/A\r\n"
        )
        return report[:127]