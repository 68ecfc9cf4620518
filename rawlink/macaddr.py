"""Ethernet (MAC) addresses."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, fields
from typing import Iterable, Union

ETHER_ADDR_LEN = 6
"""The number of bytes in an ethernet (MAC) address."""

_LOCAL_ADDR_BIT = 0x02
_MULTICAST_ADDR_BIT = 0x01

_COMPONENT = re.compile(r"\+?[0-9a-fA-F]+", re.ASCII)

_BYTES_EXPECTATION = (
    "either a string representation of a MAC address or 6-element byte array"
)


class _ParseErrorKind(enum.Enum):
    TOO_MANY_COMPONENTS = "Too many components in a MAC address string"
    TOO_FEW_COMPONENTS = "Too few components in a MAC address string"
    INVALID_COMPONENT = "Invalid component in a MAC address string"


class ParseMacAddrError(ValueError):
    """Raised when a string cannot be parsed as a MAC address.

    ``kind`` tells which of the three failures occurred.
    """

    TOO_MANY_COMPONENTS = _ParseErrorKind.TOO_MANY_COMPONENTS
    TOO_FEW_COMPONENTS = _ParseErrorKind.TOO_FEW_COMPONENTS
    INVALID_COMPONENT = _ParseErrorKind.INVALID_COMPONENT

    def __init__(self, kind: _ParseErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ParseMacAddrError):
            return self.kind is other.kind
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.kind)


_Comparable = Union["MacAddr", bytes, bytearray, tuple, list]


@dataclass(frozen=True, order=True, eq=False)
class MacAddr:
    """A 48-bit MAC address made of six octets."""

    a: int = 0
    b: int = 0
    c: int = 0
    d: int = 0
    e: int = 0
    f: int = 0

    def __post_init__(self) -> None:
        for field in fields(self):
            value = getattr(self, field.name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"MAC address octet must be an int, got {value!r}")
            if not 0 <= value <= 0xFF:
                raise ValueError(f"MAC address octet out of range: {value}")

    @classmethod
    def zero(cls) -> MacAddr:
        """The all-zero address."""
        return cls()

    @classmethod
    def broadcast(cls) -> MacAddr:
        """The broadcast address ff:ff:ff:ff:ff:ff."""
        return cls(*([0xFF] * ETHER_ADDR_LEN))

    @classmethod
    def parse(cls, text: str) -> MacAddr:
        """Parse a colon-separated hexadecimal address such as ``12:34:56:78:90:ab``."""
        parts: list[int] = []
        for component in text.split(":"):
            if len(parts) == ETHER_ADDR_LEN:
                raise ParseMacAddrError(ParseMacAddrError.TOO_MANY_COMPONENTS)
            if not _COMPONENT.fullmatch(component):
                raise ParseMacAddrError(ParseMacAddrError.INVALID_COMPONENT)
            value = int(component, 16)
            if value > 0xFF:
                raise ParseMacAddrError(ParseMacAddrError.INVALID_COMPONENT)
            parts.append(value)
        if len(parts) != ETHER_ADDR_LEN:
            raise ParseMacAddrError(ParseMacAddrError.TOO_FEW_COMPONENTS)
        return cls(*parts)

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray, Iterable[int]]) -> MacAddr:
        """Build an address from exactly six octets."""
        octets = bytes(data)
        if len(octets) != ETHER_ADDR_LEN:
            raise ValueError(
                f"invalid length {len(octets)}, expected {_BYTES_EXPECTATION}"
            )
        return cls(*octets)

    def is_zero(self) -> bool:
        """True for the all-zero address."""
        return self == MacAddr.zero()

    def is_universal(self) -> bool:
        """True for a universally administered address (UAA)."""
        return not self.is_local()

    def is_local(self) -> bool:
        """True for a locally administered address (LAA)."""
        return (self.a & _LOCAL_ADDR_BIT) == _LOCAL_ADDR_BIT

    def is_unicast(self) -> bool:
        """True for a unicast address."""
        return not self.is_multicast()

    def is_multicast(self) -> bool:
        """True for a multicast address."""
        return (self.a & _MULTICAST_ADDR_BIT) == _MULTICAST_ADDR_BIT

    def is_broadcast(self) -> bool:
        """True for the broadcast address."""
        return self == MacAddr.broadcast()

    def octets(self) -> tuple[int, int, int, int, int, int]:
        """The six octets that make up this address."""
        return (self.a, self.b, self.c, self.d, self.e, self.f)

    def __bytes__(self) -> bytes:
        return bytes(self.octets())

    def __iter__(self):
        return iter(self.octets())

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MacAddr):
            return self.octets() == other.octets()
        if isinstance(other, (bytes, bytearray)):
            return bytes(self) == bytes(other)
        if isinstance(other, (tuple, list)):
            return self.octets() == tuple(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.octets())

    def __str__(self) -> str:
        return ":".join(f"{octet:02x}" for octet in self.octets())

    def __repr__(self) -> str:
        return f"MacAddr('{self}')"