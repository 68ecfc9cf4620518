"""Sending and receiving data link layer packets."""

from __future__ import annotations

import abc
import enum
import ipaddress
import os
import sys
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Union

from .macaddr import MacAddr

IpNetwork = Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]

_LINUX = sys.platform.startswith("linux")
_UNIX = os.name == "posix"

IFF_UP = 0x1
IFF_BROADCAST = 0x2
IFF_LOOPBACK = 0x8
IFF_POINTOPOINT = 0x10
IFF_RUNNING = 0x40
IFF_MULTICAST = 0x1000 if _LINUX else 0x8000
IFF_LOWER_UP = 0x10000
IFF_DORMANT = 0x20000

_BPF_PLATFORMS = ("darwin", "freebsd", "openbsd", "netbsd", "sunos", "illumos")


class ChannelType(enum.Enum):
    """Kind of data link channel to present (Linux only)."""

    LAYER2 = "layer2"
    """Send and receive layer 2 packets directly, including headers."""
    LAYER3 = "layer3"
    """Send and receive network layer packets of one EtherType."""


@dataclass(frozen=True)
class Layer3:
    """A "cooked" channel carrying network layer packets of ``ethertype``."""

    ethertype: int
    channel_type = ChannelType.LAYER3

    def __post_init__(self) -> None:
        if not 0 <= self.ethertype <= 0xFFFF:
            raise ValueError(f"EtherType out of range: {self.ethertype}")


class FanoutType(enum.Enum):
    """Socket fanout type (Linux only)."""

    HASH = enum.auto()
    LB = enum.auto()
    CPU = enum.auto()
    ROLLOVER = enum.auto()
    RND = enum.auto()
    QM = enum.auto()
    CBPF = enum.auto()
    EBPF = enum.auto()


@dataclass(frozen=True)
class FanoutOption:
    """Fanout settings (Linux only)."""

    group_id: int
    fanout_type: FanoutType
    defrag: bool
    rollover: bool

    def __post_init__(self) -> None:
        if not 0 <= self.group_id <= 0xFFFF:
            raise ValueError(f"fanout group id out of range: {self.group_id}")


@dataclass(frozen=True)
class Config:
    """Options for every backend; each backend ignores what does not apply to it.

    Timeouts are in seconds, ``None`` meaning no timeout.
    """

    write_buffer_size: int = 4096
    read_buffer_size: int = 4096
    read_timeout: Optional[float] = None
    write_timeout: Optional[float] = None
    channel_type: Union[ChannelType, Layer3] = ChannelType.LAYER2
    bpf_fd_attempts: int = 1000
    linux_fanout: Optional[FanoutOption] = None
    promiscuous: bool = True


@dataclass
class NetworkInterface:
    """A network interface and its associated addresses."""

    name: str
    description: str = ""
    index: int = 0
    mac: Optional[MacAddr] = None
    ips: List[IpNetwork] = field(default_factory=list)
    flags: int = 0

    def is_up(self) -> bool:
        return bool(self.flags & IFF_UP)

    def is_broadcast(self) -> bool:
        return bool(self.flags & IFF_BROADCAST)

    def is_loopback(self) -> bool:
        """Is the interface a loopback interface?"""
        return bool(self.flags & IFF_LOOPBACK)

    def is_point_to_point(self) -> bool:
        return bool(self.flags & IFF_POINTOPOINT)

    def is_multicast(self) -> bool:
        return bool(self.flags & IFF_MULTICAST)

    def is_running(self) -> bool:
        return _UNIX and bool(self.flags & IFF_RUNNING)

    def is_dormant(self) -> bool:
        """True when the driver has signalled a dormant link (Linux only)."""
        return _LINUX and bool(self.flags & IFF_DORMANT)

    def is_lower_up(self) -> bool:
        """True when the driver has signalled carrier on (Linux only)."""
        return _LINUX and bool(self.flags & IFF_LOWER_UP)

    def _flag_names(self) -> Iterator[str]:
        checks = (
            ("UP", self.is_up),
            ("BROADCAST", self.is_broadcast),
            ("LOOPBACK", self.is_loopback),
            ("POINTOPOINT", self.is_point_to_point),
            ("MULTICAST", self.is_multicast),
            ("RUNNING", self.is_running),
            ("DORMANT", self.is_dormant),
            ("LOWERUP", self.is_lower_up),
        )
        return (name for name, check in checks if check())

    def __str__(self) -> str:
        if self.flags > 0:
            flags = f"{self.flags:X}<{','.join(self._flag_names())}>"
        else:
            flags = f"{self.flags:X}"
        mac = str(self.mac) if self.mac is not None else "N/A"
        ips = "".join(
            f"\n       inet: {ip}" if ip.version == 4 else f"\n      inet6: {ip}"
            for ip in self.ips
        )
        return (
            f"{self.name}: flags={flags}\n"
            f"      index: {self.index}\n"
            f"      ether: {mac}{ips}"
        )


class DataLinkSender(abc.ABC):
    """Sends packets at the data link layer."""

    @abc.abstractmethod
    def build_and_send(
        self,
        num_packets: int,
        packet_size: int,
        func: Callable[[bytearray], None],
    ) -> bool:
        """Build ``num_packets`` packets in place with ``func`` and send them.

        Returns False when the buffer lacks room for them; send failures
        raise ``OSError``.
        """

    @abc.abstractmethod
    def send_to(self, packet: bytes, dst: Optional[NetworkInterface] = None) -> bool:
        """Send one packet; ``dst`` is currently ignored.

        Returns False when the backend cannot send; send failures raise
        ``OSError``.
        """


class DataLinkReceiver(abc.ABC):
    """Receives packets at the data link layer."""

    @abc.abstractmethod
    def next(self) -> bytes:
        """Return the next frame, raising ``OSError`` on failure."""

    def __iter__(self) -> DataLinkReceiver:
        return self

    def __next__(self) -> bytes:
        return self.next()


@dataclass
class EthernetChannel:
    """A channel which sends and receives Ethernet frames."""

    sender: DataLinkSender
    receiver: DataLinkReceiver

    def __iter__(self):
        return iter((self.sender, self.receiver))


def channel(
    network_interface: NetworkInterface, configuration: Optional[Config] = None
) -> EthernetChannel:
    """Open a data link channel on ``network_interface`` with the platform backend."""
    configuration = configuration if configuration is not None else Config()
    if sys.platform.startswith(("linux", "android")):
        from . import linux

        return linux.channel(
            network_interface, linux.LinuxConfig.from_config(configuration)
        )
    if sys.platform.startswith(_BPF_PLATFORMS):
        from . import bpf

        return bpf.channel(network_interface, bpf.BpfConfig.from_config(configuration))
    raise OSError(f"no data link backend for platform {sys.platform!r}")


def interfaces() -> List[NetworkInterface]:
    """List the network interfaces of this machine."""
    from .interfaces import interfaces as _list_interfaces

    return _list_interfaces()