"""
Reports Module

Analytics reports for the clinic dashboard: row fetching, join resolution,
aggregation and the single analytics endpoint. Implements a layered
architecture (router -> dispatcher -> handlers -> service -> store).

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from .router import router as reports_router
from .dispatcher import REPORTS, ReportDispatcher
from .errors import ReportError, ReportRequestError, UpstreamQueryError
from .models import ReportParams, ReportResponse
from .service import ReportService

__all__ = [
    "reports_router",
    "REPORTS",
    "ReportDispatcher",
    "ReportError",
    "ReportRequestError",
    "UpstreamQueryError",
    "ReportParams",
    "ReportResponse",
    "ReportService"
]
