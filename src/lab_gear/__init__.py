"""Physical machine inventory: record store, HTTP API, remote client and resource controller."""

__version__ = "0.1.0"
