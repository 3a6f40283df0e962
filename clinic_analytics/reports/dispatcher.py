"""
Report Dispatcher

Maps a report type plus its parameters to the handler that builds it,
validates the request and wraps the result in the response envelope. The
dispatcher is read-only and keeps no state between calls.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError

from .errors import (
    InvalidDateRange,
    InvalidReportParameter,
    InvalidReportType,
    MissingDateRange,
    ReportError,
    UnhandledReportError,
)
from .filters import parse_timestamp
from .handlers import ReportRequest, build_handlers
from .models import ErrorResponse, ReportParams, ReportResponse, ReportTypeInfo
from .service import ReportService

REVENUE_GROUPINGS = ('month', 'day')


@dataclass(frozen=True)
class ReportDefinition:
    """Registry entry: which handler builds a report type"""
    area: str
    method: str
    description: str
    default_limit: Optional[int] = None


REPORTS: Dict[str, ReportDefinition] = {
    'top-diagnoses': ReportDefinition('epidemiology', 'get_top_diagnoses', "Most frequent diagnoses"),
    'diagnosis-by-region': ReportDefinition(
        'epidemiology', 'get_diagnosis_by_region', "Diagnoses by region, specialty and month"),
    'pharmacy-medications': ReportDefinition(
        'pharmacy', 'get_medications', "Prescribed medications by specialty", default_limit=20),
    'appointment-stats': ReportDefinition('operations', 'get_appointment_stats', "Appointments per status"),
    'appointment-attendance': ReportDefinition(
        'operations', 'get_appointment_attendance', "Attendance rate per organization"),
    'consultation-duration': ReportDefinition(
        'operations', 'get_consultation_duration', "Average and median consultation minutes"),
    'revenue': ReportDefinition('financial', 'get_revenue', "Paid revenue per period and currency"),
    'payment-methods': ReportDefinition('financial', 'get_payment_methods', "Paid totals per payment method"),
    'lab-results': ReportDefinition('laboratory', 'get_lab_results', "Lab orders, critical results and turnaround"),
    'patient-count': ReportDefinition('patients', 'get_patient_count', "Patients registered in range"),
    'patient-demographics': ReportDefinition(
        'patients', 'get_demographics', "Patients by age group, gender and region"),
    'patient-growth': ReportDefinition('patients', 'get_growth', "New and cumulative patients per month"),
    'communication-metrics': ReportDefinition(
        'communication', 'get_metrics', "Messages sent, read rate and response time per day"),
    'audit-logs': ReportDefinition('audit', 'get_audit_logs', "Most recent audit log entries", default_limit=100),
    'action-distribution': ReportDefinition('audit', 'get_action_distribution', "Audit entries per action type"),
}


def serialize(result: Any) -> Any:
    """Convert result models into JSON-ready structures"""
    if isinstance(result, BaseModel):
        return result.model_dump(mode='json')
    if isinstance(result, list):
        return [serialize(item) for item in result]
    if isinstance(result, dict):
        return {key: serialize(value) for key, value in result.items()}
    return result


class ReportDispatcher:
    """Validate report requests and route them to their handlers"""

    def __init__(
        self,
        service: ReportService,
        timezone_name: str = 'UTC',
        default_limits: Optional[Mapping[str, int]] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.service = service
        self.timezone_name = timezone_name
        self.default_limits = dict(default_limits or {})
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.handlers = build_handlers(service)

    @staticmethod
    def report_types() -> List[ReportTypeInfo]:
        return [
            ReportTypeInfo(report_type=name, description=d.description, default_limit=d.default_limit)
            for name, d in REPORTS.items()
        ]

    def default_limit(self, report_type: str) -> Optional[int]:
        if report_type in self.default_limits:
            return self.default_limits[report_type]
        return REPORTS[report_type].default_limit

    def build_request(
        self,
        report_type: Optional[str],
        start: Optional[str],
        end: Optional[str],
        params: Optional[Union[ReportParams, Mapping[str, Any]]] = None
    ) -> ReportRequest:
        """
        Validate inputs into a ReportRequest.

        Raises:
            InvalidReportType: Unknown report type
            MissingDateRange: start or end absent
            InvalidDateRange: Unparsable dates or start after end
            InvalidReportParameter: Malformed optional parameter
        """
        if report_type not in REPORTS:
            raise InvalidReportType(report_type)
        if not start or not end:
            raise MissingDateRange("start and end are required")

        try:
            start_at = parse_timestamp(start)
            end_at = parse_timestamp(end)
        except (TypeError, ValueError) as e:
            raise InvalidDateRange(f"Invalid date: {e}") from e
        if start_at > end_at:
            raise InvalidDateRange(f"start {start} is after end {end}")

        if isinstance(params, ReportParams):
            report_params = params
        else:
            cleaned = {k: v for k, v in (params or {}).items() if v not in (None, '')}
            try:
                report_params = ReportParams.model_validate(cleaned)
            except ValidationError as e:
                raise InvalidReportParameter(str(e)) from e

        limit = report_params.limit
        if limit is None:
            limit = self.default_limit(report_type)
        elif limit < 1:
            raise InvalidReportParameter(f"limit must be positive, got {limit}")

        if report_params.group_by is not None and report_params.group_by not in REVENUE_GROUPINGS:
            raise InvalidReportParameter(f"group_by must be one of {REVENUE_GROUPINGS}")

        return ReportRequest(
            start=start_at,
            end=end_at,
            params=report_params,
            now=self.clock(),
            timezone=self.timezone_name,
            limit=limit
        )

    def dispatch(
        self,
        report_type: Optional[str],
        start: Optional[str],
        end: Optional[str],
        params: Optional[Union[ReportParams, Mapping[str, Any]]] = None
    ) -> ReportResponse:
        """
        Build one report.

        Returns:
            ReportResponse envelope with the serialised result

        Raises:
            ReportRequestError: Invalid request (400)
            UpstreamQueryError: Store failure in any sub-fetch (500)
            UnhandledReportError: Any other failure (500)
        """
        request = self.build_request(report_type, start, end, params)
        definition = REPORTS[report_type]
        handler = getattr(self.handlers[definition.area], definition.method)

        try:
            result = handler(request)
        except ReportError:
            raise
        except Exception as e:
            raise UnhandledReportError(f"{report_type}: {type(e).__name__}: {e}") from e

        return ReportResponse(data=serialize(result))

    @staticmethod
    def error_envelope(error: ReportError) -> Tuple[int, ErrorResponse]:
        """Status code and opaque error envelope for a failed dispatch"""
        return error.status_code, ErrorResponse(error=error.message)
