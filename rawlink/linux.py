"""Data link channels over Linux ``AF_PACKET`` sockets."""

from __future__ import annotations

import select
import socket
import struct
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from .datalink import (
    ChannelType,
    Config,
    DataLinkReceiver,
    DataLinkSender,
    EthernetChannel,
    FanoutOption,
    FanoutType,
    Layer3,
    NetworkInterface,
)

AF_PACKET = getattr(socket, "AF_PACKET", 17)
ETH_P_ALL = 0x0003

SOL_PACKET = 263
PACKET_ADD_MEMBERSHIP = 1
PACKET_MR_PROMISC = 1
PACKET_FANOUT = 18
PACKET_FANOUT_HASH = 0
PACKET_FANOUT_LB = 1
PACKET_FANOUT_CPU = 2
PACKET_FANOUT_ROLLOVER = 3
PACKET_FANOUT_RND = 4
PACKET_FANOUT_QM = 5
PACKET_FANOUT_CBPF = 6
PACKET_FANOUT_EBPF = 7
PACKET_FANOUT_FLAG_ROLLOVER = 0x1000
PACKET_FANOUT_FLAG_UNIQUEID = 0x2000
PACKET_FANOUT_FLAG_DEFRAG = 0x8000

_FANOUT_MODES = {
    FanoutType.HASH: PACKET_FANOUT_HASH,
    FanoutType.LB: PACKET_FANOUT_LB,
    FanoutType.CPU: PACKET_FANOUT_CPU,
    FanoutType.ROLLOVER: PACKET_FANOUT_ROLLOVER,
    FanoutType.RND: PACKET_FANOUT_RND,
    FanoutType.QM: PACKET_FANOUT_QM,
    FanoutType.CBPF: PACKET_FANOUT_CBPF,
    FanoutType.EBPF: PACKET_FANOUT_EBPF,
}

_PACKET_MREQ = struct.Struct("=iHH8s")

_Address = Tuple[str, int, int, int, bytes]


@dataclass(frozen=True)
class LinuxConfig:
    """Options for the ``AF_PACKET`` backend. Timeouts are in seconds."""

    write_buffer_size: int = 4096
    read_buffer_size: int = 4096
    read_timeout: Optional[float] = None
    write_timeout: Optional[float] = None
    channel_type: Union[ChannelType, Layer3] = ChannelType.LAYER2
    fanout: Optional[FanoutOption] = None
    promiscuous: bool = True

    @classmethod
    def from_config(cls, config: Config) -> LinuxConfig:
        """Take the options that apply to Linux from a generic ``Config``."""
        return cls(
            write_buffer_size=config.write_buffer_size,
            read_buffer_size=config.read_buffer_size,
            read_timeout=config.read_timeout,
            write_timeout=config.write_timeout,
            channel_type=config.channel_type,
            fanout=config.linux_fanout,
            promiscuous=config.promiscuous,
        )


def fanout_argument(fanout: FanoutOption) -> int:
    """The ``PACKET_FANOUT`` socket option value for ``fanout``."""
    mode = _FANOUT_MODES[fanout.fanout_type]
    if fanout.defrag:
        mode |= PACKET_FANOUT_FLAG_DEFRAG
    if fanout.rollover:
        mode |= PACKET_FANOUT_FLAG_ROLLOVER
    return fanout.group_id | (mode << 16)


def packet_mreq(ifindex: int) -> bytes:
    """A ``packet_mreq`` structure asking for promiscuous mode on ``ifindex``."""
    return _PACKET_MREQ.pack(ifindex, PACKET_MR_PROMISC, 0, b"")


def _kind_and_protocol(channel_type: Union[ChannelType, Layer3]) -> Tuple[int, int]:
    if isinstance(channel_type, Layer3):
        return socket.SOCK_DGRAM, channel_type.ethertype
    if channel_type is ChannelType.LAYER2:
        return socket.SOCK_RAW, ETH_P_ALL
    raise ValueError("a layer 3 channel needs an EtherType; use Layer3(ethertype)")


def _wait(sock, timeout: Optional[float], *, write: bool) -> None:
    watched = [sock]
    if write:
        ready = select.select([], watched, [], timeout)[1]
    else:
        ready = select.select(watched, [], [], timeout)[0]
    if not ready:
        raise TimeoutError("Timed out")


class _LinuxSender(DataLinkSender):
    def __init__(
        self, sock, buffer_size: int, address: _Address, timeout: Optional[float]
    ) -> None:
        self._socket = sock
        self._write_buffer = bytearray(buffer_size)
        self._address = address
        self._timeout = timeout

    def build_and_send(
        self,
        num_packets: int,
        packet_size: int,
        func: Callable[[bytearray], None],
    ) -> bool:
        if packet_size <= 0:
            raise ValueError("packet size must be positive")
        length = num_packets * packet_size
        if length > len(self._write_buffer):
            return False
        view = memoryview(self._write_buffer)
        for start in range(0, length, packet_size):
            chunk = view[start : start + packet_size]
            func(chunk)
            _wait(self._socket, self._timeout, write=True)
            self._socket.sendto(chunk, self._address)
        return True

    def send_to(self, packet: bytes, dst: Optional[NetworkInterface] = None) -> bool:
        _wait(self._socket, self._timeout, write=True)
        self._socket.sendto(packet, self._address)
        return True


class _LinuxReceiver(DataLinkReceiver):
    def __init__(self, sock, buffer_size: int, timeout: Optional[float]) -> None:
        self._socket = sock
        self._read_buffer = bytearray(buffer_size)
        self._timeout = timeout

    def next(self) -> bytes:
        _wait(self._socket, self._timeout, write=False)
        length = self._socket.recv_into(self._read_buffer)
        return bytes(self._read_buffer[:length])


def channel(
    network_interface: NetworkInterface, config: Optional[LinuxConfig] = None
) -> EthernetChannel:
    """Open an ``AF_PACKET`` channel bound to ``network_interface``."""
    config = config if config is not None else LinuxConfig()
    kind, protocol = _kind_and_protocol(config.channel_type)
    sock = socket.socket(AF_PACKET, kind, socket.htons(protocol))
    mac = network_interface.mac
    address: _Address = (
        network_interface.name,
        protocol,
        0,
        0,
        bytes(mac) if mac is not None else bytes(6),
    )
    try:
        sock.bind(address)
        if config.promiscuous:
            sock.setsockopt(
                SOL_PACKET, PACKET_ADD_MEMBERSHIP, packet_mreq(network_interface.index)
            )
        if config.fanout is not None:
            sock.setsockopt(
                SOL_PACKET, PACKET_FANOUT, struct.pack("=I", fanout_argument(config.fanout))
            )
        sock.setblocking(False)
    except BaseException:
        sock.close()
        raise
    return EthernetChannel(
        _LinuxSender(sock, config.write_buffer_size, address, config.write_timeout),
        _LinuxReceiver(sock, config.read_buffer_size, config.read_timeout),
    )


def interfaces() -> List[NetworkInterface]:
    """List the network interfaces of this machine."""
    from .interfaces import interfaces as _list_interfaces

    return _list_interfaces()