"""In-memory key-value engine with Redis-style commands for keys, lists, sets and sorted sets."""

__version__ = "0.1.0"