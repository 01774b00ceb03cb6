"""Dispatch strategies routing PV and load through the battery bank."""

from .manual import HOURS_PER_YEAR, MONTH_LENGTHS, DispatchRecord, ManualDispatch, month_and_hour

__all__ = [
    "HOURS_PER_YEAR",
    "MONTH_LENGTHS",
    "DispatchRecord",
    "ManualDispatch",
    "month_and_hour",
]
