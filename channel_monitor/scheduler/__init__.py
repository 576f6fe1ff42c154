"""Scan scheduling for monitored channels."""

from .scan_scheduler import ScanEvent, ScanListener, ScanScheduler

__all__ = ["ScanScheduler", "ScanEvent", "ScanListener"]
