from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from portaria.auth import get_deliveries, get_session
from portaria.deliveries import DeliveryService
from portaria.models import Session
from portaria.reports import ReportFilters
from portaria.schemas import DeliveryStatus

router = APIRouter(prefix="/api/reports", tags=["reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _filters(
    q: str = Query("", max_length=120),
    status: DeliveryStatus | None = Query(None),
    staff_id: str | None = Query(None),
    resident_id: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
) -> ReportFilters:
    return ReportFilters(
        search=q,
        status=status,
        staff_id=staff_id or None,
        resident_id=resident_id or None,
        date_from=date_from,
        date_to=date_to,
    )


def _filename(ext: str) -> str:
    return f"relatorio_entregas_{date.today().isoformat()}.{ext}"


@router.get("/deliveries")
def deliveries_report(
    filters: ReportFilters = Depends(_filters),
    session: Session = Depends(get_session),
    service: DeliveryService = Depends(get_deliveries),
):
    items = service.report(session, filters)
    return {"ok": True, "stats": service.report_stats(items), "items": [i.to_dict() for i in items]}


@router.get("/deliveries.csv")
def deliveries_csv(
    filters: ReportFilters = Depends(_filters),
    session: Session = Depends(get_session),
    service: DeliveryService = Depends(get_deliveries),
):
    body = service.export_csv(service.report(session, filters))
    return Response(
        content=body.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{_filename("csv")}"'},
    )


@router.get("/deliveries.xlsx")
def deliveries_xlsx(
    filters: ReportFilters = Depends(_filters),
    session: Session = Depends(get_session),
    service: DeliveryService = Depends(get_deliveries),
):
    body = service.export_xlsx(service.report(session, filters))
    return Response(
        content=body,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{_filename("xlsx")}"'},
    )
