"""draftstage - offline draft and file staging store."""

__version__ = "0.1.0"
