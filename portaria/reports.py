from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from portaria.models import STATUS_CANCELLED, STATUS_PENDING, STATUS_PICKED_UP, DeliveryRecord

CSV_HEADERS = (
    "Código",
    "Morador",
    "Apartamento",
    "Funcionário",
    "Status",
    "Data Entrega",
    "Data Retirada",
    "Observações",
)
STATUS_LABELS = {
    STATUS_PENDING: "Pendente",
    STATUS_PICKED_UP: "Retirada",
    STATUS_CANCELLED: "Cancelada",
}


@dataclass
class ReportFilters:
    search: str = ""
    status: Optional[str] = None
    staff_id: Optional[str] = None
    resident_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


@dataclass
class ReportItem:
    record: DeliveryRecord
    staff_name: str = ""

    @property
    def resident_name(self) -> str:
        return self.record.resident.name if self.record.resident else ""

    @property
    def apartment(self) -> str:
        return self.record.resident.apartment_label if self.record.resident else ""

    def to_dict(self) -> Dict[str, Any]:
        out = self.record.to_dict()
        out["staff_name"] = self.staff_name
        return out


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def local_day(value: Optional[str]) -> Optional[date]:
    moment = _parse_ts(value)
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.date()


def format_timestamp(value: Optional[str]) -> str:
    moment = _parse_ts(value)
    if moment is None:
        return ""
    if moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.strftime("%d/%m/%Y %H:%M:%S")


def matches(item: ReportItem, filters: ReportFilters) -> bool:
    rec = item.record
    needle = (filters.search or "").strip().lower()
    if needle:
        hay = (rec.pickup_code, item.resident_name, item.staff_name, rec.notes or "")
        if not any(needle in str(h).lower() for h in hay):
            return False
    if filters.status and rec.status != filters.status:
        return False
    if filters.staff_id and rec.staff_id != filters.staff_id:
        return False
    if filters.resident_id and rec.resident_id != filters.resident_id:
        return False
    if filters.date_from or filters.date_to:
        day = local_day(rec.created_at or rec.arrived_at)
        if day is None:
            return False
        if filters.date_from and day < filters.date_from:
            return False
        if filters.date_to and day > filters.date_to:
            return False
    return True


def report_stats(items: Iterable[ReportItem]) -> Dict[str, int]:
    rows = list(items)
    return {
        "total": len(rows),
        "pending": sum(1 for i in rows if i.record.status == STATUS_PENDING),
        "picked_up": sum(1 for i in rows if i.record.status == STATUS_PICKED_UP),
        "cancelled": sum(1 for i in rows if i.record.status == STATUS_CANCELLED),
        "staff": len({i.record.staff_id for i in rows if i.record.staff_id}),
    }


def _export_row(item: ReportItem) -> List[str]:
    rec = item.record
    return [
        rec.pickup_code,
        item.resident_name,
        item.apartment,
        item.staff_name,
        STATUS_LABELS.get(rec.status, rec.status),
        format_timestamp(rec.arrived_at),
        format_timestamp(rec.picked_up_at),
        rec.notes or "",
    ]


def export_csv(items: Iterable[ReportItem]) -> str:
    # spreadsheet apps in pt-BR expect ';'
    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=";", quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    writer.writerow(CSV_HEADERS)
    for item in items:
        writer.writerow(_export_row(item))
    return buf.getvalue()


def export_xlsx(items: Iterable[ReportItem]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "entregas"
    ws.append(list(CSV_HEADERS))
    for item in items:
        ws.append(_export_row(item))

    for i, h in enumerate(CSV_HEADERS, start=1):
        max_len = len(h)
        for row in ws.iter_rows(min_row=2, min_col=i, max_col=i):
            val = row[0].value
            if val is None:
                continue
            max_len = max(max_len, len(str(val)))
        ws.column_dimensions[get_column_letter(i)].width = max(10, min(48, max_len + 2))
    ws.freeze_panes = "A2"

    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()
