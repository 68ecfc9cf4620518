"""Data link channels over the BSD packet filter device (``/dev/bpf``)."""

from __future__ import annotations

import collections
import errno
import os
import select
import struct
import sys
from dataclasses import dataclass
from typing import Callable, Deque, Iterator, List, Optional

from .datalink import (
    Config,
    DataLinkReceiver,
    DataLinkSender,
    EthernetChannel,
    NetworkInterface,
)

ETHERNET_HEADER_SIZE = 14

AF_LINK = 18
DLT_NULL = 0

IF_NAMESIZE = 16
IFNAMSIZ = IF_NAMESIZE

IOC_IN = 0x80000000
IOC_OUT = 0x40000000
IOC_INOUT = IOC_IN | IOC_OUT
IOCPARM_SHIFT = 13
IOCPARM_MASK = (1 << IOCPARM_SHIFT) - 1

SIZEOF_TIMEVAL = 16
SIZEOF_IFREQ = 32
SIZEOF_C_UINT = 4
SIZEOF_C_LONG = 8

_IOCTL_GROUP = ord("B")

_SINGLE_DEVICE_PLATFORMS = ("freebsd", "netbsd", "sunos", "illumos")
_PLATFORM = sys.platform


def ioctl_request(direction: int, size: int, number: int) -> int:
    """Encode a BPF ioctl request code from its direction, argument size and number."""
    return direction | ((size & IOCPARM_MASK) << 16) | (_IOCTL_GROUP << 8) | number


BIOCSETIF = ioctl_request(IOC_IN, SIZEOF_IFREQ, 108)
BIOCIMMEDIATE = ioctl_request(IOC_IN, SIZEOF_C_UINT, 112)
BIOCGBLEN = ioctl_request(IOC_OUT, SIZEOF_C_UINT, 102)
BIOCGDLT = ioctl_request(IOC_OUT, SIZEOF_C_UINT, 106)
BIOCSBLEN = ioctl_request(IOC_INOUT, SIZEOF_C_UINT, 102)
BIOCSHDRCMPLT = ioctl_request(IOC_IN, SIZEOF_C_UINT, 117)
BIOCSRTIMEOUT = ioctl_request(IOC_IN, SIZEOF_TIMEVAL, 109)

if _PLATFORM.startswith("netbsd"):
    BIOCFEEDBACK: Optional[int] = ioctl_request(IOC_IN, SIZEOF_C_UINT, 125)
elif _PLATFORM.startswith(("freebsd", "sunos", "illumos")):
    BIOCFEEDBACK = ioctl_request(IOC_IN, SIZEOF_C_UINT, 124)
else:
    BIOCFEEDBACK = None

if _PLATFORM.startswith(_SINGLE_DEVICE_PLATFORMS):
    BPF_ALIGNMENT = SIZEOF_C_LONG
    TIMEVAL_SIZE = 2 * struct.calcsize("l")
else:
    BPF_ALIGNMENT = 4
    TIMEVAL_SIZE = 8

_HEADER_FIELDS = struct.Struct("=IIH")


def bpf_wordalign(x: int, alignment: int = BPF_ALIGNMENT) -> int:
    """Round ``x`` up to a multiple of ``alignment`` (a power of two)."""
    if alignment <= 0 or alignment & (alignment - 1):
        raise ValueError(f"alignment must be a power of two, got {alignment}")
    return (x + (alignment - 1)) & ~(alignment - 1)


def iter_captures(
    data: bytes,
    alignment: int = BPF_ALIGNMENT,
    timeval_size: int = TIMEVAL_SIZE,
    header_size: int = 0,
) -> Iterator[bytes]:
    """Yield the packets held in a buffer read from a BPF device.

    Each record is a ``bpf_hdr`` followed by the captured bytes, the next
    record starting at the word-aligned end of this one. ``header_size``
    bytes are dropped from the front of every packet.
    """
    view = memoryview(data)
    fixed = timeval_size + _HEADER_FIELDS.size
    start = 0
    while start < len(view):
        if start + fixed > len(view):
            raise ValueError(f"truncated bpf header at offset {start}")
        caplen, _datalen, hdrlen = _HEADER_FIELDS.unpack_from(view, start + timeval_size)
        if caplen < header_size:
            raise ValueError(
                f"captured length {caplen} shorter than header size {header_size}"
            )
        begin = start + hdrlen + header_size
        end = start + hdrlen + caplen
        if end > len(view):
            raise ValueError(f"truncated capture at offset {start}")
        step = bpf_wordalign(hdrlen + caplen, alignment)
        if step == 0:
            raise ValueError(f"empty bpf record at offset {start}")
        yield bytes(view[begin:end])
        start += step


@dataclass(frozen=True)
class BpfConfig:
    """Options for the BPF backend. Timeouts are in seconds.

    ``bpf_fd_attempts`` is how many ``/dev/bpfN`` devices to try on systems
    that number them.
    """

    write_buffer_size: int = 4096
    read_buffer_size: int = 4096
    read_timeout: Optional[float] = None
    write_timeout: Optional[float] = None
    bpf_fd_attempts: int = 1000

    @classmethod
    def from_config(cls, config: Config) -> BpfConfig:
        """Take the options that apply to BPF from a generic ``Config``."""
        return cls(
            write_buffer_size=config.write_buffer_size,
            read_buffer_size=config.read_buffer_size,
            read_timeout=config.read_timeout,
            write_timeout=config.write_timeout,
            bpf_fd_attempts=config.bpf_fd_attempts,
        )


class _BpfDevice:
    """An open BPF file descriptor shared by a sender and a receiver."""

    def __init__(self, fd: int) -> None:
        self.fd = fd
        self._closed = False

    def fileno(self) -> int:
        return self.fd

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            os.close(self.fd)

    def __del__(self) -> None:
        try:
            self.close()
        except OSError:
            pass


def _wait(device: _BpfDevice, timeout: Optional[float], *, write: bool) -> None:
    if write:
        ready = select.select([], [device], [], timeout)[1]
    else:
        ready = select.select([device], [], [], timeout)[0]
    if not ready:
        raise TimeoutError("Timed out")


class _BpfSender(DataLinkSender):
    def __init__(
        self,
        device: _BpfDevice,
        buffer_size: int,
        loopback: bool,
        timeout: Optional[float],
    ) -> None:
        self._device = device
        self._write_buffer = bytearray(buffer_size)
        # On loopback the OS prepends its own 4-byte AF header instead.
        self._offset = ETHERNET_HEADER_SIZE if loopback else 0
        self._timeout = timeout

    def _write(self, packet) -> None:
        if len(packet) < self._offset:
            raise ValueError(
                f"packet of {len(packet)} bytes shorter than the ethernet header"
            )
        _wait(self._device, self._timeout, write=True)
        os.write(self._device.fd, packet[self._offset :])

    def build_and_send(
        self,
        num_packets: int,
        packet_size: int,
        func: Callable[[bytearray], None],
    ) -> bool:
        if packet_size <= 0:
            raise ValueError("packet size must be positive")
        length = num_packets * packet_size
        if length >= len(self._write_buffer):
            return False
        view = memoryview(self._write_buffer)
        for start in range(0, length, packet_size):
            chunk = view[start : start + packet_size]
            func(chunk)
            self._write(chunk)
        return True

    def send_to(self, packet: bytes, dst: Optional[NetworkInterface] = None) -> bool:
        self._write(packet)
        return True


class _BpfReceiver(DataLinkReceiver):
    def __init__(
        self,
        device: _BpfDevice,
        buffer_size: int,
        loopback: bool,
        timeout: Optional[float],
        alignment: int = BPF_ALIGNMENT,
        timeval_size: int = TIMEVAL_SIZE,
    ) -> None:
        self._device = device
        self._read_size = buffer_size
        self._loopback = loopback
        self._timeout = timeout
        self._alignment = alignment
        self._timeval_size = timeval_size
        self._packets: Deque[bytes] = collections.deque()

    def next(self) -> bytes:
        if not self._packets:
            _wait(self._device, self._timeout, write=False)
            data = os.read(self._device.fd, self._read_size)
            if not data:
                raise OSError(errno.EIO, "end of file on bpf device")
            # Loopback packets carry a 4-byte AF header instead of an ethernet one.
            header_size = 4 if self._loopback else 0
            self._packets.extend(
                iter_captures(data, self._alignment, self._timeval_size, header_size)
            )
            if not self._packets:
                raise OSError(errno.EIO, "no packets in bpf buffer")
        packet = self._packets.popleft()
        if self._loopback:
            return bytes(ETHERNET_HEADER_SIZE) + packet
        return packet


def _ifreq(name: str) -> bytes:
    encoded = name.encode()
    if len(encoded) > IFNAMSIZ:
        raise ValueError(f"interface name too long: {name!r}")
    return encoded.ljust(SIZEOF_IFREQ, b"\0")


def _open_device(attempts: int) -> int:
    if _PLATFORM.startswith(_SINGLE_DEVICE_PLATFORMS):
        return os.open("/dev/bpf", os.O_RDWR)
    last: Optional[OSError] = None
    for i in range(attempts):
        try:
            return os.open(f"/dev/bpf{i}", os.O_RDWR)
        except OSError as exc:
            last = exc
    if last is None:
        raise OSError(errno.ENOENT, "no bpf device attempted")
    raise last


def _uint(value: int) -> bytes:
    return struct.pack("=I", value)


def channel(
    network_interface: NetworkInterface, config: Optional[BpfConfig] = None
) -> EthernetChannel:
    """Open a BPF channel bound to ``network_interface``."""
    import fcntl

    config = config if config is not None else BpfConfig()
    ifreq = _ifreq(network_interface.name)
    fd = _open_device(config.bpf_fd_attempts)
    try:
        # The buffer length must be set before binding to an interface.
        fcntl.ioctl(fd, BIOCSBLEN, bytearray(_uint(config.read_buffer_size)), True)
        fcntl.ioctl(fd, BIOCSETIF, ifreq)
        fcntl.ioctl(fd, BIOCIMMEDIATE, _uint(1))
        dlt_buffer = bytearray(SIZEOF_C_UINT)
        fcntl.ioctl(fd, BIOCGDLT, dlt_buffer, True)
        (dlt,) = struct.unpack("=I", dlt_buffer)
        loopback = dlt == DLT_NULL
        if loopback:
            if BIOCFEEDBACK is not None:
                fcntl.ioctl(fd, BIOCFEEDBACK, _uint(1))
        else:
            fcntl.ioctl(fd, BIOCSHDRCMPLT, _uint(1))
        os.set_blocking(fd, False)
    except BaseException:
        os.close(fd)
        raise
    device = _BpfDevice(fd)
    return EthernetChannel(
        _BpfSender(device, config.write_buffer_size, loopback, config.write_timeout),
        _BpfReceiver(device, config.read_buffer_size, loopback, config.read_timeout),
    )


def interfaces() -> List[NetworkInterface]:
    """List the network interfaces of this machine."""
    from .interfaces import interfaces as _list_interfaces

    return _list_interfaces()