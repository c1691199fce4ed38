"""Local multi-node network manager."""

__version__ = "0.1.0"
