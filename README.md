# qnet

Building blocks for a D-STAR repeater gateway on Linux: the DSVT packets
passed between gateway programs, the Golay (24,12) decoder used to
estimate bit error rates, a gateway routing cache, a configuration
reader with a defaults file, an SQLite store of last-heard stations,
links and gateways, a DPlus gateway-list client, and everything needed
to drive a DVAP dongle on a serial port.

Requires Python 3.10 or later and `pyserial`. Installing the `test`
extra also brings in pytest.

## Modules

| Module               | Contents |
|----------------------|----------|
| `qnet.hostqueue`     | `Host` records and a FIFO `HostQueue` of them |
| `qnet.cache`         | `CacheManager`, a thread-safe user → repeater → gateway → address cache |
| `qnet.dstar`         | `DStarDecoder` for the FEC part of AMBE frames, and `get_syndrome` |
| `qnet.location`      | `Location.parse`, `Location.aprs` and `maidenhead_locator` |
| `qnet.config`        | `Configuration`, `read_config_file` and `ConfigError` |
| `qnet.sockaddress`   | `SockAddress`: IPv4 / IPv6 endpoints that compare by family and address |
| `qnet.packets`       | `DsvtHeader`, `DsvtVoice`, `parse_dsvt`, `calc_pfcs`, `new_stream_id` |
| `qnet.db`            | `QnetDB` (SQLite) and `Link` |
| `qnet.dplus`         | `DPlusAuthenticator`, `build_login_packet`, `parse_gateway_records` |
| `qnet.dvap_protocol` | `DvapRegister`, `ReplyType`, `classify_reply`, `expected_header` and the squelch / power / offset clamps |
| `qnet.dvap_dongle`   | `DvapDongle` and `DvapError` |
| `qnet.dvap_repeater` | `DvapSettings`, `load_settings`, `DvapRepeater`, `ber_percentage` |

Failures are raised as exceptions: `ConfigError` for missing, malformed
or out-of-range settings, `DvapError` when the dongle cannot be opened or
does not answer as it should, and `ValueError` for malformed packets and
arguments.

## Examples

Routing cache (lookups that find nothing return an empty string):

```python
from qnet.cache import CacheManager

cache = CacheManager()
cache.update_user("N0CALL  ", "N0CALL B", "N0CALL G", "192.0.2.10", "2024-01-01 12:00:00")
cache.find_user_addr("N0CALL  ")        # "192.0.2.10"
cache.find_user_data("N0CALL  ")        # ("N0CALL B", "N0CALL G", "192.0.2.10")
```

A repeater with no gateway on record maps to its own callsign with `G`
in the eighth place.

Bit errors in a voice frame:

```python
from qnet.dstar import DStarDecoder

decoder = DStarDecoder()
errors, (word0, word1, word2) = decoder.decode(voice_bytes)   # nine AMBE bytes
```

Positions and APRS lines:

```python
from qnet.location import Location, maidenhead_locator

location = Location.parse("$GPGGA,123519,4807.038,N,01131.000,E,1,08,0.9,545.4,M")
location.maidenhead
location.aprs("N0CALL B", "N0CALL")
maidenhead_locator(48.1173, 11.5167)
```

`Location.parse` raises `ValueError` when no valid position is found.

Configuration, falling back to a defaults file (by default
`/usr/local/etc/defaults`):

```python
from qnet.config import Configuration, ConfigError

config = Configuration.load("qn.cfg", "defaults")
try:
    power = config.get_int("module_b_power", "dvap", -12, 10)
except ConfigError as error:
    print(error)
```

Gateway database:

```python
from qnet.db import QnetDB
from qnet.hostqueue import Host

with QnetDB("qn.db") as db:
    db.update_gateways([Host("REF001", "192.0.2.20", 20001)])
    db.find_gw("REF001")          # ("192.0.2.20", 20001)
    db.count("GATEWAYS")          # 1
```

Fetching the gateway list from a DPlus server into the database:

```python
from qnet.dplus import DPlusAuthenticator

stored = DPlusAuthenticator("N0CALL", "auth.example.com").process(db, reflectors=True, repeaters=True)
```

DSVT packets:

```python
from qnet.packets import parse_dsvt

packet = parse_dsvt(datagram)   # DsvtHeader for 56 bytes, DsvtVoice for 27
```

DVAP dongle and repeater logic:

```python
from qnet.dvap_dongle import DvapDongle
from qnet.dvap_repeater import DvapRepeater, load_settings

settings = load_settings(config)          # finds the lone "dvap" module
repeater = DvapRepeater(settings)

with DvapDongle(settings.device) as dongle:
    dongle.initialize(settings.serial_number, settings.frequency,
                      settings.offset, settings.power, settings.squelch)
    reply, register = dongle.get_reply()
```

`DvapRepeater` converts in both directions: `gateway_header_to_dvap` and
`gateway_voice_to_dvap` turn gateway packets into registers for
`DvapDongle.send_register`, and `dvap_header_to_gateway` and
`dvap_voice_to_gateway` turn registers heard by the dongle into
`DsvtHeader` / `DsvtVoice` packets. When a local transmission ends and
acknowledgements are enabled, `pending_ack` holds `(mycall, ber)` and
`ack_frames` builds the header and voice frames that report the bit
error rate.

## What the package does not do

There is no command to run and no long-running service. The package
opens no sockets between gateway programs: `DvapRepeater` only converts
packets and registers, so reading from and writing to the gateway,
calling `keep_alive` on the dongle every few seconds, and pacing the
acknowledgement frames are left to the program that uses it. It has no
ircDDB client, no reflector linking and no support for modems other
than the DVAP.