"""Courier billing: slab tariffs, manifest records and scanned-page capture."""

__version__ = "0.1.0"
