"""
History module: last known location and paginated GPS history.
"""

from history.service import HistoryPage, HistoryQueryService, LastLocation, NO_GPS_LOG_MESSAGE

__all__ = [
    "HistoryPage",
    "HistoryQueryService",
    "LastLocation",
    "NO_GPS_LOG_MESSAGE",
]
