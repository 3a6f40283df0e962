"""
Report Errors

Exception taxonomy for the analytics reports. Every error carries the HTTP
status it maps to and the opaque message shown to the caller; upstream
details stay on the exception for logging only.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from typing import Optional


class ReportError(Exception):
    """Base class for report failures"""

    status_code = 500
    message = "Error interno del servidor"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.message
        super().__init__(self.detail)


class ReportRequestError(ReportError):
    """Client error: the request cannot be served as given"""

    status_code = 400
    message = "Solicitud inválida"


class InvalidReportType(ReportRequestError):
    """Raised for an unrecognised report type"""

    message = "Tipo de consulta no válido"

    def __init__(self, report_type: Optional[str] = None):
        self.report_type = report_type
        super().__init__(f"Unknown report type: {report_type!r}")


class MissingDateRange(ReportRequestError):
    """Raised when start or end is absent for a range-scoped report"""

    message = "Fechas requeridas"


class InvalidDateRange(ReportRequestError):
    """Raised when start/end cannot be parsed or start is after end"""

    message = "Rango de fechas inválido"


class InvalidReportParameter(ReportRequestError):
    """Raised for a malformed optional parameter such as limit"""

    message = "Parámetro inválido"


class UpstreamQueryError(ReportError):
    """The row store reported an error for a query"""

    message = "Error consultando datos"

    def __init__(self, detail: Optional[str] = None, entity: Optional[str] = None):
        self.entity = entity
        super().__init__(detail)


class UnhandledReportError(ReportError):
    """Programming error caught at the dispatcher boundary"""

    message = "Error interno del servidor"
