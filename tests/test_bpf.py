import os
import struct

import pytest

from rawlink import bpf
from rawlink.datalink import Config, NetworkInterface


def _record(payload, timeval_size=8, alignment=4, pad_end=True):
    hdrlen = bpf.bpf_wordalign(timeval_size + 10, alignment)
    header = bytes(timeval_size) + struct.pack(
        "=IIH", len(payload), len(payload), hdrlen
    )
    record = header.ljust(hdrlen, b"\0") + payload
    if pad_end:
        record = record.ljust(bpf.bpf_wordalign(len(record), alignment), b"\0")
    return record


@pytest.fixture
def pipe():
    read_fd, write_fd = os.pipe()
    state = {"write": write_fd}
    yield read_fd, state
    if state["write"] is not None:
        os.close(state["write"])


def test_ioctl_request_known_values():
    assert bpf.ioctl_request(bpf.IOC_IN, 32, 108) == 0x8020426C
    assert bpf.ioctl_request(bpf.IOC_OUT, 4, 106) == 0x4004426A
    assert bpf.ioctl_request(bpf.IOC_INOUT, 4, 102) == 0xC0044266
    assert bpf.BIOCSETIF == 0x8020426C
    assert bpf.BIOCGDLT == 0x4004426A
    assert bpf.BIOCSBLEN == 0xC0044266


def test_ioctl_request_fields():
    code = bpf.ioctl_request(bpf.IOC_IN, bpf.SIZEOF_C_UINT, 112)
    assert code == bpf.BIOCIMMEDIATE
    assert code & 0xFF == 112
    assert (code >> 8) & 0xFF == ord("B")
    assert (code >> 16) & bpf.IOCPARM_MASK == bpf.SIZEOF_C_UINT
    assert code & bpf.IOC_INOUT == bpf.IOC_IN


def test_ioctl_request_masks_size():
    big = bpf.ioctl_request(bpf.IOC_OUT, bpf.IOCPARM_MASK + 1 + 4, 1)
    assert big == bpf.ioctl_request(bpf.IOC_OUT, 4, 1)


@pytest.mark.parametrize("alignment", [1, 2, 4, 8])
@pytest.mark.parametrize("x", [0, 1, 3, 4, 5, 17, 18, 100])
def test_wordalign_invariants(x, alignment):
    result = bpf.bpf_wordalign(x, alignment)
    assert result % alignment == 0
    assert x <= result < x + alignment
    assert bpf.bpf_wordalign(result, alignment) == result


@pytest.mark.parametrize("alignment", [0, 3, 6, -4])
def test_wordalign_rejects_bad_alignment(alignment):
    with pytest.raises(ValueError):
        bpf.bpf_wordalign(5, alignment)


@pytest.mark.parametrize("alignment,timeval_size", [(4, 8), (8, 16)])
def test_iter_captures_round_trip(alignment, timeval_size):
    payloads = [b"\x01\x02\x03", b"hello world!", b"z"]
    data = b"".join(_record(p, timeval_size, alignment) for p in payloads[:-1])
    data += _record(payloads[-1], timeval_size, alignment, pad_end=False)
    result = list(bpf.iter_captures(data, alignment, timeval_size, 0))
    assert result == payloads


def test_iter_captures_strips_header():
    data = _record(b"\x02\x00\x00\x00abcdef") + _record(b"\x02\x00\x00\x00xy")
    assert list(bpf.iter_captures(data, 4, 8, 4)) == [b"abcdef", b"xy"]


def test_iter_captures_empty_buffer():
    assert list(bpf.iter_captures(b"", 4, 8, 0)) == []


def test_iter_captures_truncated_header():
    data = _record(b"abc")[:10]
    with pytest.raises(ValueError):
        list(bpf.iter_captures(data, 4, 8, 0))


def test_iter_captures_truncated_payload():
    data = _record(b"abcdefgh", pad_end=False)[:-3]
    with pytest.raises(ValueError):
        list(bpf.iter_captures(data, 4, 8, 0))


def test_iter_captures_caplen_shorter_than_header():
    with pytest.raises(ValueError):
        list(bpf.iter_captures(_record(b"ab"), 4, 8, 4))


def test_config_defaults_match_generic():
    generic = Config()
    config = bpf.BpfConfig()
    assert bpf.BpfConfig.from_config(generic) == config
    assert config.bpf_fd_attempts == 1000
    assert config.read_timeout is None


def test_config_from_generic():
    generic = Config(
        write_buffer_size=100,
        read_buffer_size=200,
        read_timeout=1.5,
        write_timeout=2.5,
        bpf_fd_attempts=3,
    )
    config = bpf.BpfConfig.from_config(generic)
    assert config.write_buffer_size == 100
    assert config.read_buffer_size == 200
    assert config.read_timeout == 1.5
    assert config.write_timeout == 2.5
    assert config.bpf_fd_attempts == 3


def test_channel_rejects_long_interface_name():
    iface = NetworkInterface(name="x" * (bpf.IFNAMSIZ + 1))
    with pytest.raises(ValueError):
        bpf.channel(iface, bpf.BpfConfig(bpf_fd_attempts=0))


def test_receiver_reads_queued_packets(pipe):
    read_fd, state = pipe
    os.write(state["write"], _record(b"first") + _record(b"second"))
    receiver = bpf._BpfReceiver(
        bpf._BpfDevice(read_fd), 4096, False, 1.0, alignment=4, timeval_size=8
    )
    assert receiver.next() == b"first"
    assert receiver.next() == b"second"
    with pytest.raises(TimeoutError):
        receiver.next()


def test_receiver_loopback_prepends_zero_header(pipe):
    read_fd, state = pipe
    os.write(state["write"], _record(b"\x02\x00\x00\x00payload"))
    receiver = bpf._BpfReceiver(
        bpf._BpfDevice(read_fd), 4096, True, 1.0, alignment=4, timeval_size=8
    )
    packet = next(iter(receiver))
    assert packet == bytes(bpf.ETHERNET_HEADER_SIZE) + b"payload"


def test_receiver_end_of_file(pipe):
    read_fd, state = pipe
    os.close(state["write"])
    state["write"] = None
    receiver = bpf._BpfReceiver(bpf._BpfDevice(read_fd), 4096, False, 1.0)
    with pytest.raises(OSError, match="end of file"):
        receiver.next()


def test_sender_send_to(pipe):
    read_fd, state = pipe
    sender = bpf._BpfSender(bpf._BpfDevice(state["write"]), 4096, False, 1.0)
    state["write"] = None
    try:
        assert sender.send_to(b"frame-bytes") is True
        assert os.read(read_fd, 100) == b"frame-bytes"
    finally:
        os.close(read_fd)


def test_sender_loopback_drops_ethernet_header(pipe):
    read_fd, state = pipe
    sender = bpf._BpfSender(bpf._BpfDevice(state["write"]), 4096, True, 1.0)
    state["write"] = None
    try:
        frame = bytes(range(bpf.ETHERNET_HEADER_SIZE)) + b"ip-packet"
        assert sender.send_to(frame) is True
        assert os.read(read_fd, 100) == b"ip-packet"
        with pytest.raises(ValueError):
            sender.send_to(b"short")
    finally:
        os.close(read_fd)


def test_sender_build_and_send(pipe):
    read_fd, state = pipe
    sender = bpf._BpfSender(bpf._BpfDevice(state["write"]), 4096, False, 1.0)
    state["write"] = None
    counter = []

    def build(chunk):
        assert len(chunk) == 4
        chunk[0] = len(counter)
        counter.append(1)

    try:
        assert sender.build_and_send(3, 4, build) is True
        data = os.read(read_fd, 100)
        assert len(counter) == 3
        assert [data[i] for i in (0, 4, 8)] == [0, 1, 2]
        assert len(data) == 12
    finally:
        os.close(read_fd)


def test_sender_build_and_send_buffer_too_small(pipe):
    _, state = pipe
    sender = bpf._BpfSender(bpf._BpfDevice(state["write"]), 16, False, 1.0)
    state["write"] = None
    calls = []
    assert sender.build_and_send(1, 16, calls.append) is False
    assert calls == []
    with pytest.raises(ValueError):
        sender.build_and_send(1, 0, calls.append)