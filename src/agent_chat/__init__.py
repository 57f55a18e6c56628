"""Bridge between an editor and ACP agent subprocesses, one agent per chat buffer."""

__version__ = "0.1.0"
