"""Turn grouping and streaming render synchronization for chat timelines."""

__version__ = "0.1.0"
