"""Retention and maintenance for the local stores."""

from .retention import RetentionSweeper, SweepReport, DEFAULT_RETENTION

__all__ = ["RetentionSweeper", "SweepReport", "DEFAULT_RETENTION"]
