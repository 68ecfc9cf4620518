import queue
import threading
import time

import pytest

from rawlink import dummy
from rawlink.datalink import Config, EthernetChannel
from rawlink.macaddr import MacAddr


def create_net():
    interface = dummy.dummy_interface(56)
    config = dummy.DummyConfig.default()
    inject_handle = config.inject_handle()
    read_handle = config.read_handle()
    chan = dummy.channel(interface, config)
    assert isinstance(chan, EthernetChannel)
    tx, rx = chan
    return inject_handle, read_handle, tx, rx


def test_send_nothing():
    _, read_handle, tx, _ = create_net()

    def builder(pkg):
        raise AssertionError("Should not be called")

    assert tx.build_and_send(0, 20, builder) is True
    assert read_handle.empty()


def test_send_one_packet():
    _, read_handle, tx, _ = create_net()

    def builder(pkg):
        assert len(pkg) == 20
        pkg[0] = 9
        pkg[19] = 201

    assert tx.build_and_send(1, 20, builder) is True
    pkg = read_handle.get_nowait()
    assert read_handle.empty()
    assert len(pkg) == 20
    assert pkg[0] == 9
    assert pkg[19] == 201


def test_send_multiple_packets():
    _, read_handle, tx, _ = create_net()
    counter = 0

    def builder(pkg):
        nonlocal counter
        pkg[0] = counter
        counter += 1

    assert tx.build_and_send(3, 20, builder) is True
    for i in range(3):
        pkg = read_handle.get_nowait()
        assert pkg[0] == i
    assert read_handle.empty()


def test_send_to():
    _, read_handle, tx, _ = create_net()
    buffer = bytearray(20)
    buffer[1] = 34
    buffer[18] = 76

    assert tx.send_to(bytes(buffer), None) is True
    pkg = read_handle.get_nowait()
    assert read_handle.empty()
    assert len(pkg) == 20
    assert pkg[1] == 34
    assert pkg[18] == 76


def test_read_nothing():
    inject_handle, _, _, rx = create_net()
    results = []

    def reader():
        results.append(rx.next())

    thread = threading.Thread(target=reader, daemon=True)
    thread.start()
    time.sleep(0.001)
    assert results == []
    assert thread.is_alive()

    inject_handle.put(b"\x01" * 4)
    thread.join(timeout=5)
    assert results == [b"\x01" * 4]

    inject_handle.put(b"\x02" * 3)
    assert rx.next() == b"\x02" * 3


def test_read_one_pkg():
    inject_handle, _, _, rx = create_net()
    inject_handle.put(bytes(20))
    pkg = rx.next()
    assert len(pkg) == 20


def test_read_multiple_pkgs():
    inject_handle, _, _, rx = create_net()
    for i in range(3):
        inject_handle.put(bytes([i]) * 20)
    assert rx.next()[0] == 0
    assert rx.next()[0] == 1
    assert rx.next()[0] == 2


def test_receiver_iterates():
    inject_handle, _, _, rx = create_net()
    inject_handle.put(b"ab")
    inject_handle.put(b"cd")
    iterator = iter(rx)
    assert next(iterator) == b"ab"
    assert next(iterator) == b"cd"


def test_injected_error_is_raised():
    inject_handle, _, _, rx = create_net()
    inject_handle.put(OSError("simulated failure"))
    with pytest.raises(OSError, match="simulated failure"):
        rx.next()


def test_handles_taken_only_once():
    config = dummy.DummyConfig.default()
    assert config.inject_handle() is config.receiver
    assert config.inject_handle() is None
    assert config.read_handle() is config.sender
    assert config.read_handle() is None


def test_explicit_queues_have_no_handles():
    incoming = queue.Queue()
    outgoing = queue.Queue()
    config = dummy.DummyConfig(incoming, outgoing)
    assert config.inject_handle() is None
    assert config.read_handle() is None

    tx, rx = dummy.channel(dummy.dummy_interface(0), config)
    tx.send_to(b"xyz")
    assert outgoing.get_nowait() == b"xyz"
    incoming.put(b"hello")
    assert rx.next() == b"hello"


def test_from_config_gives_fresh_default():
    config = dummy.DummyConfig.from_config(Config())
    assert config.inject_handle() is config.receiver
    assert config.read_handle() is config.sender


def test_dummy_interface():
    iface = dummy.dummy_interface(7)
    assert iface.name == "eth7"
    assert iface.description == ""
    assert iface.index == 7
    assert iface.mac == MacAddr(1, 2, 3, 4, 5, 7)
    assert iface.ips == []
    assert iface.flags == 0


def test_interfaces():
    ifaces = dummy.interfaces()
    assert [iface.name for iface in ifaces] == ["eth0", "eth1", "eth2"]
    assert [iface.index for iface in ifaces] == [0, 1, 2]
    assert ifaces == [dummy.dummy_interface(i) for i in range(3)]