# rawlink

Send and receive raw Ethernet frames at the data link layer. rawlink provides:

- `rawlink.macaddr.MacAddr`, a MAC address type that parses, formats and classifies addresses.
- `rawlink.datalink.NetworkInterface`, a description of a local interface with its flags, MAC and IP networks.
- `rawlink.datalink.interfaces()`, which lists the interfaces on this machine (through `psutil`).
- `rawlink.datalink.channel()`, which opens an Ethernet channel on an interface. It uses `AF_PACKET` sockets on Linux (`rawlink.linux`) and the `/dev/bpf` device on BSD and macOS (`rawlink.bpf`). On any other platform it raises `OSError`.
- `rawlink.dummy`, an in-memory fake network for tests that need no network access.
- A `rawlink` command with two subcommands, `interfaces` and `fanout`.

## Installation

```
pip install rawlink
```

Opening a real channel needs raw-socket privileges: root, or `CAP_NET_RAW` on Linux. Listing interfaces and using the dummy backend need no privileges.

## MAC addresses

```python
from rawlink.macaddr import MacAddr, ParseMacAddrError

mac = MacAddr.parse("12:34:56:78:90:ab")
print(mac)                # 12:34:56:78:90:ab
mac.is_local()            # True
mac.is_unicast()          # True
mac.octets()              # (0x12, 0x34, 0x56, 0x78, 0x90, 0xab)
bytes(mac)                # b'\x124Vx\x90\xab'
mac == b"\x12\x34\x56\x78\x90\xab"   # True

MacAddr.from_bytes(b"\x02\x00\x00\x00\x00\x01")
MacAddr.broadcast().is_broadcast()   # True
MacAddr.zero().is_zero()             # True

try:
    MacAddr.parse("12:34:56:78")
except ParseMacAddrError as err:
    print(err)                       # Too few components in a MAC address string
    err.kind is ParseMacAddrError.TOO_FEW_COMPONENTS   # True
```

`ParseMacAddrError` is a `ValueError`. Its `kind` is one of `TOO_MANY_COMPONENTS`, `TOO_FEW_COMPONENTS` or `INVALID_COMPONENT`.

## Listing interfaces

```python
from rawlink.datalink import interfaces

for iface in interfaces():
    print(iface)
```

Each `NetworkInterface` has `name`, `description`, `index`, `mac`, `ips` (a list of `ipaddress` interface objects) and `flags`. It also has `is_up()`, `is_broadcast()`, `is_loopback()`, `is_point_to_point()`, `is_multicast()` and `is_running()`. On Linux there are `is_dormant()` and `is_lower_up()` as well.

To pick a likely default interface, take one that is up, is not loopback and has an address:

```python
default = next(
    (i for i in interfaces() if i.is_up() and not i.is_loopback() and i.ips),
    None,
)
```

## Sending and receiving

```python
from rawlink.datalink import Config, channel, interfaces

iface = next(i for i in interfaces() if i.name == "eth0")
tx, rx = channel(iface, Config(read_timeout=1.0))

tx.send_to(frame_bytes, None)

for frame in rx:
    print(len(frame))
```

`channel()` returns an `EthernetChannel` with a `sender` and a `receiver`, and the channel unpacks into that pair. `DataLinkSender.build_and_send(num_packets, packet_size, func)` builds packets in place in the write buffer. It calls `func` with a writable buffer once per packet and sends each one. It returns `False` when the packets do not fit in the write buffer. `DataLinkReceiver.next()` returns the next frame as `bytes`, and iterating over the receiver calls it repeatedly. Send and receive failures raise `OSError`. When a configured timeout expires, the call raises `TimeoutError`.

`Config` holds options for every backend, and each backend ignores the options that do not apply to it:

- `write_buffer_size` and `read_buffer_size` default to 4096.
- `read_timeout` and `write_timeout` are in seconds; `None`, the default, means no timeout.
- `channel_type` is `ChannelType.LAYER2` by default. `Layer3(ethertype)` selects a Linux datagram socket for a single EtherType.
- `bpf_fd_attempts` defaults to 1000.
- `linux_fanout` takes a `FanoutOption(group_id, fanout_type, defrag, rollover)`.
- `promiscuous` defaults to `True`.

## Testing without a network

```python
from rawlink.dummy import DummyConfig, channel, dummy_interface

config = DummyConfig.default()
inject = config.inject_handle()
read = config.read_handle()
tx, rx = channel(dummy_interface(0), config)

tx.send_to(b"\x00" * 20, None)            # appears on `read`
inject.put(b"\x01" * 20)                  # returned by rx.next()
inject.put(OSError("simulated failure"))  # raised by rx.next()
```

Both handles are `queue.Queue` objects, and each can be taken only once. When nothing is waiting on the inject queue, `rx.next()` blocks. `dummy.interfaces()` returns three fake interfaces, `eth0` to `eth2`.

## Command line

```
rawlink interfaces
rawlink fanout eth0 hash 123
```

`interfaces` prints every interface. `fanout` runs on Linux only. It starts three receiving threads in one `PACKET_FANOUT` group and prints a line for every packet each thread receives. Its fanout type is one of `hash`, `round-robin` (the default), `cpu`, `rollover`, `rnd`, `qm`, `cbpf` or `ebpf`. The group id defaults to 123.

## What rawlink does not do

rawlink moves raw frames and nothing more. It does not decode or build protocol headers (Ethernet, ARP, IP, TCP, UDP and so on). It has no Windows backend and no pcap or capture-file support.