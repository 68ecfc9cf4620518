"""Listing the network interfaces of this machine."""

from __future__ import annotations

import ipaddress
import socket
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

import psutil

from .datalink import (
    IFF_BROADCAST,
    IFF_DORMANT,
    IFF_LOOPBACK,
    IFF_LOWER_UP,
    IFF_MULTICAST,
    IFF_POINTOPOINT,
    IFF_RUNNING,
    IFF_UP,
    IpNetwork,
    NetworkInterface,
)
from .macaddr import ETHER_ADDR_LEN, MacAddr, ParseMacAddrError

_Address = Union[str, ipaddress.IPv4Address, ipaddress.IPv6Address]
_Entry = Tuple[str, Optional[MacAddr], Optional[_Address], Optional[_Address], int]

_FLAG_BITS = {
    "up": IFF_UP,
    "broadcast": IFF_BROADCAST,
    "loopback": IFF_LOOPBACK,
    "pointopoint": IFF_POINTOPOINT,
    "running": IFF_RUNNING,
    "multicast": IFF_MULTICAST,
    "lower_up": IFF_LOWER_UP,
    "dormant": IFF_DORMANT,
}


def merge_interface(old: NetworkInterface, new: NetworkInterface) -> None:
    """Fold ``new`` into ``old``: take its MAC if it has one, add its IPs, OR its flags."""
    if new.mac is not None:
        old.mac = new.mac
    old.ips.extend(new.ips)
    old.flags |= new.flags


def _mask_to_prefix(mask: _Address) -> Optional[int]:
    try:
        address = ipaddress.ip_address(mask)
    except ValueError:
        return None
    width = address.max_prefixlen
    inverted = ~int(address) & ((1 << width) - 1)
    if inverted & (inverted + 1):
        return None
    return width - inverted.bit_length()


def _network(ip: _Address, prefix: int) -> Optional[IpNetwork]:
    try:
        address = ipaddress.ip_address(ip)
        return ipaddress.ip_interface((address, prefix))
    except ValueError:
        return None


def collect_interfaces(entries: Iterable[_Entry]) -> List[NetworkInterface]:
    """Group address entries into interfaces, in order of first appearance.

    Each entry is ``(name, mac, ip, netmask, flags)``; ``mac``, ``ip`` and
    ``netmask`` may be None. A netmask that is missing or not contiguous
    gives a prefix of 0. Indexes are left at 0.
    """
    found: Dict[str, NetworkInterface] = {}
    for name, mac, ip, netmask, flags in entries:
        prefix = _mask_to_prefix(netmask) if netmask is not None else None
        network = _network(ip, prefix or 0) if ip is not None else None
        new = NetworkInterface(
            name=name,
            description="",
            index=0,
            mac=mac,
            ips=[network] if network is not None else [],
            flags=flags,
        )
        existing = found.get(name)
        if existing is None:
            found[name] = new
        else:
            merge_interface(existing, new)
    return list(found.values())


def _strip_scope(address: str) -> str:
    return address.split("%", 1)[0]


def _parse_link_address(text: Optional[str]) -> Optional[MacAddr]:
    if not text:
        return None
    parts = text.replace("-", ":").split(":")
    if len(parts) < ETHER_ADDR_LEN:
        return None
    try:
        return MacAddr.parse(":".join(parts[:ETHER_ADDR_LEN]))
    except ParseMacAddrError:
        return None


def _stats_flags(stats) -> int:
    if stats is None:
        return 0
    names = getattr(stats, "flags", "") or ""
    flags = 0
    for name in names.split(","):
        flags |= _FLAG_BITS.get(name.strip().lower(), 0)
    if not names and stats.isup:
        flags |= IFF_UP
    return flags


def _system_entries() -> Iterator[_Entry]:
    stats = psutil.net_if_stats()
    for name, addresses in psutil.net_if_addrs().items():
        flags = _stats_flags(stats.get(name))
        for address in addresses:
            mac: Optional[MacAddr] = None
            ip: Optional[str] = None
            netmask: Optional[str] = None
            if address.family == psutil.AF_LINK:
                mac = _parse_link_address(address.address)
            elif address.family in (socket.AF_INET, socket.AF_INET6):
                ip = _strip_scope(address.address)
                if address.netmask:
                    netmask = _strip_scope(address.netmask)
            yield (name, mac, ip, netmask, flags)


def _index_of(name: str) -> int:
    try:
        return socket.if_nametoindex(name)
    except OSError:
        return 0


def interfaces() -> List[NetworkInterface]:
    """List the network interfaces of this machine with their addresses and flags."""
    found = collect_interfaces(_system_entries())
    for iface in found:
        iface.index = _index_of(iface.name)
    return found