"""Command line tools: list interfaces and receive with packet fanout."""

from __future__ import annotations

import re
import sys
import threading
from typing import Callable, Dict, List, Optional, Sequence

from . import linux
from .datalink import Config, FanoutOption, FanoutType, NetworkInterface, interfaces

FANOUT_USAGE = (
    "USAGE: fanout <NETWORK INTERFACE> "
    "[hash|*round-robin*|cpu|rollover|rnd|qm|cbpf|ebpf] [group-id:123]"
)
MAIN_USAGE = "USAGE: rawlink {interfaces|fanout} [ARGS...]"

_FANOUT_TYPES = {
    "hash": FanoutType.HASH,
    "round-robin": FanoutType.LB,
    "cpu": FanoutType.CPU,
    "rollover": FanoutType.ROLLOVER,
    "rnd": FanoutType.RND,
    "qm": FanoutType.QM,
    "cbpf": FanoutType.CBPF,
    "ebpf": FanoutType.EBPF,
}

_DEFAULT_GROUP_ID = 123
_THREADS = 3
_GROUP_ID = re.compile(r"\+?[0-9]+", re.ASCII)


def parse_fanout_type(name: str) -> FanoutType:
    """Map a fanout type name (case-insensitive) to a ``FanoutType``."""
    try:
        return _FANOUT_TYPES[name.lower()]
    except KeyError:
        raise ValueError(
            "Unsupported fanout type, use one of hash, round-robin, cpu, "
            "rollover, rnd, qm, cbpf or ebpf"
        ) from None


def _parse_group_id(text: str) -> int:
    if _GROUP_ID.fullmatch(text):
        value = int(text)
        if value <= 0xFFFF:
            return value
    raise ValueError(f"invalid fanout group id: {text!r}")


def list_interfaces(argv: Optional[Sequence[str]] = None) -> int:
    """Print every network interface of this machine."""
    for interface in interfaces():
        print(interface)
    return 0


def _receive_forever(
    interface: NetworkInterface, config: Config, errors: List[str]
) -> None:
    name = threading.current_thread().name
    try:
        _, rx = linux.channel(interface, linux.LinuxConfig.from_config(config))
    except OSError as exc:
        errors.append(f"fanout: unable to create channel: {exc}")
        return
    try:
        for _ in rx:
            print(f"Received packet on thread {name}", flush=True)
    except OSError as exc:
        errors.append(f"fanout: unable to receive packet: {exc}")


def fanout(argv: Optional[Sequence[str]] = None) -> int:
    """Receive on an interface with three threads sharing one fanout group."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not sys.platform.startswith(("linux", "android")):
        print("fanout is only supported on Linux", file=sys.stderr)
        return 1
    if not args:
        print(FANOUT_USAGE, file=sys.stderr)
        return 1
    iface_name = args[0]
    try:
        fanout_type = parse_fanout_type(args[1]) if len(args) > 1 else FanoutType.LB
        group_id = _parse_group_id(args[2]) if len(args) > 2 else _DEFAULT_GROUP_ID
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1

    interface = next((i for i in linux.interfaces() if i.name == iface_name), None)
    if interface is None:
        print(f"No such network interface: {iface_name}", file=sys.stderr)
        return 1

    config = Config(
        linux_fanout=FanoutOption(
            group_id=group_id, fanout_type=fanout_type, defrag=True, rollover=False
        )
    )
    errors: List[str] = []
    threads = [
        threading.Thread(
            target=_receive_forever,
            args=(interface, config, errors),
            name=f"thread{x}",
            daemon=True,
        )
        for x in range(_THREADS)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    for error in errors:
        print(error, file=sys.stderr)
    return 1 if errors else 0


_COMMANDS: Dict[str, Callable[[Sequence[str]], int]] = {
    "interfaces": list_interfaces,
    "fanout": fanout,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the ``interfaces`` or ``fanout`` command."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args or args[0] not in _COMMANDS:
        print(MAIN_USAGE, file=sys.stderr)
        return 1
    return _COMMANDS[args[0]](args[1:])


if __name__ == "__main__":
    sys.exit(main())