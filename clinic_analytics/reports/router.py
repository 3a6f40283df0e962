"""
Report Router (API Layer)

FastAPI router exposing the analytics read endpoint. One endpoint serves
every report type; the dispatcher is injected from application state so the
store handle's lifecycle belongs to the hosting app.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response

from .dispatcher import ReportDispatcher
from .errors import InvalidReportParameter, ReportError, ReportRequestError
from .export import to_csv

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/analytics", tags=["analytics"])

EXPORT_FORMATS = ('json', 'csv')


def get_dispatcher(request: Request) -> ReportDispatcher:
    """Dispatcher created by the application lifespan"""
    dispatcher = getattr(request.app.state, 'dispatcher', None)
    if dispatcher is None:
        raise RuntimeError("Report dispatcher is not configured")
    return dispatcher


def error_response(error: ReportError) -> JSONResponse:
    status_code, envelope = ReportDispatcher.error_envelope(error)
    return JSONResponse(status_code=status_code, content=envelope.model_dump())


# ============================================================================
# ANALYTICS DATA
# ============================================================================

@router.get("/data")
def get_analytics_data(
    report_type: Optional[str] = Query(None, alias="type"),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    organization_id: Optional[str] = Query(None),
    organization_id_camel: Optional[str] = Query(None, alias="organizationId"),
    doctor_id: Optional[str] = Query(None),
    doctor_id_camel: Optional[str] = Query(None, alias="doctorId"),
    region: Optional[str] = Query(None),
    specialty: Optional[str] = Query(None),
    group_by: Optional[str] = Query(None, alias="groupBy"),
    format: Optional[str] = Query("json"),
    dispatcher: ReportDispatcher = Depends(get_dispatcher)
):
    """Get one analytics report as {"data": ...}"""
    params = {
        'limit': limit,
        'organization_id': organization_id or organization_id_camel,
        'doctor_id': doctor_id or doctor_id_camel,
        'region': region,
        'specialty': specialty,
        'group_by': group_by,
    }

    try:
        response = dispatcher.dispatch(report_type, start, end, params)
        if format and format not in EXPORT_FORMATS:
            raise InvalidReportParameter(f"format must be one of {EXPORT_FORMATS}, got {format!r}")
    except ReportRequestError as e:
        logger.warning(f"Rejected analytics request type={report_type!r}: {e.detail}")
        return error_response(e)
    except ReportError as e:
        logger.error(f"Analytics report {report_type} failed: {e.detail}", exc_info=True)
        return error_response(e)

    rows = len(response.data) if isinstance(response.data, (list, dict)) else 1
    logger.info(f"Analytics report {report_type} [{start} - {end}] -> {rows} rows")

    if format == "csv":
        return Response(
            content=to_csv(report_type, response.data),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{report_type}.csv"'}
        )
    return response.model_dump()


@router.get("/report-types")
def get_report_types():
    """List the available report types"""
    return {"data": [info.model_dump() for info in ReportDispatcher.report_types()]}
