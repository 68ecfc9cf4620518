"""Raw data link layer channels (AF_PACKET, BPF, in-memory), MAC addresses and interface listing."""

__version__ = "0.1.0"
__all__ = ["bpf", "cli", "datalink", "dummy", "interfaces", "linux", "macaddr"]