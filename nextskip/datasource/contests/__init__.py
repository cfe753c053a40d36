"""
Contest calendar and contest series sources.
"""

from nextskip.datasource.contests.calendar import ContestCalendarSource, extract_ref
from nextskip.datasource.contests.series import ContestSeriesSource

__all__ = ["ContestCalendarSource", "ContestSeriesSource", "extract_ref"]
