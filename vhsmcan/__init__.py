"""Virtual CAN bus with emulated ECUs, a TCP bus server, terminal front ends and rate limiting."""

__version__ = "0.1.0"