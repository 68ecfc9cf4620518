"""A fake data link network backed by in-memory FIFO queues, for tests."""

from __future__ import annotations

import queue
from typing import Callable, List, Optional, Union

from .datalink import (
    Config,
    DataLinkReceiver,
    DataLinkSender,
    EthernetChannel,
    NetworkInterface,
)
from .macaddr import MacAddr

InjectedItem = Union[bytes, BaseException]


class DummyConfig:
    """Queues that make up the fake network.

    The receiver of a dummy channel takes frames from ``receiver``; an
    exception put on that queue is raised by ``next()`` to simulate a
    network error. When nothing more is ever put on it, ``next()`` blocks
    forever, like an idle network. Every frame sent through the channel's
    sender is put on ``sender``.
    """

    def __init__(self, receiver: queue.Queue, sender: queue.Queue) -> None:
        self.receiver = receiver
        self.sender = sender
        self._inject_handle: Optional[queue.Queue] = None
        self._read_handle: Optional[queue.Queue] = None

    @classmethod
    def default(cls) -> DummyConfig:
        """A config with fresh queues whose handles can be taken once."""
        incoming: queue.Queue = queue.Queue()
        outgoing: queue.Queue = queue.Queue()
        config = cls(incoming, outgoing)
        config._inject_handle = incoming
        config._read_handle = outgoing
        return config

    @classmethod
    def from_config(cls, config: Config) -> DummyConfig:
        """Ignore the generic ``config`` and return ``DummyConfig.default()``."""
        return cls.default()

    def inject_handle(self) -> Optional[queue.Queue]:
        """Take the queue that injects frames into the fake network.

        Only a config made by ``default()`` has one, and only the first call
        returns it; later calls return None.
        """
        handle, self._inject_handle = self._inject_handle, None
        return handle

    def read_handle(self) -> Optional[queue.Queue]:
        """Take the queue on which frames sent to the fake network appear.

        Only a config made by ``default()`` has one, and only the first call
        returns it; later calls return None.
        """
        handle, self._read_handle = self._read_handle, None
        return handle


class _MockDataLinkSender(DataLinkSender):
    def __init__(self, sender: queue.Queue) -> None:
        self._sender = sender

    def build_and_send(
        self,
        num_packets: int,
        packet_size: int,
        func: Callable[[bytearray], None],
    ) -> bool:
        for _ in range(num_packets):
            buffer = bytearray(packet_size)
            func(buffer)
            self._sender.put(bytes(buffer))
        return True

    def send_to(self, packet: bytes, dst: Optional[NetworkInterface] = None) -> bool:
        self._sender.put(bytes(packet))
        return True


class _MockDataLinkReceiver(DataLinkReceiver):
    def __init__(self, receiver: queue.Queue) -> None:
        self._receiver = receiver

    def next(self) -> bytes:
        item: InjectedItem = self._receiver.get()
        if isinstance(item, BaseException):
            raise item
        return bytes(item)


def channel(
    network_interface: NetworkInterface, config: Optional[DummyConfig] = None
) -> EthernetChannel:
    """Open a channel on the fake network described by ``config``."""
    config = config if config is not None else DummyConfig.default()
    return EthernetChannel(
        _MockDataLinkSender(config.sender),
        _MockDataLinkReceiver(config.receiver),
    )


def interfaces() -> List[NetworkInterface]:
    """Three fake interfaces, ``dummy_interface(0)`` to ``dummy_interface(2)``."""
    return [dummy_interface(i) for i in range(3)]


def dummy_interface(i: int) -> NetworkInterface:
    """A fake interface named ``eth<i>`` with index ``i`` and MAC 01:02:03:04:05:<i>."""
    return NetworkInterface(
        name=f"eth{i}",
        description="",
        index=i,
        mac=MacAddr(1, 2, 3, 4, 5, i),
        ips=[],
        flags=0,
    )