# Overview: Spreadsheet (.xlsx via openpyxl) and CSV exports of active tenant data.

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from typing import Callable

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from ..models import Contract, Customer, Installment, Safe, Transfer, Unit, Voucher
from ..repository import active_query
from ..validation import NotFoundError, ValidationError
from .kpi_service import effective_installment_statuses

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MIMETYPE = "text/csv"

MAX_COLUMN_WIDTH = 50


@dataclass(frozen=True)
class ExportSheet:
    title: str
    columns: tuple[tuple[str, str], ...]  # (header, key in the row dict)
    load: Callable[[int], list[dict]]

    def rows(self, org_id: int) -> list[list]:
        return [[row.get(key) for _, key in self.columns] for row in self.load(org_id)]

    @property
    def headers(self) -> list[str]:
        return [header for header, _ in self.columns]


def _dicts(model, order_by):
    def load(org_id: int) -> list[dict]:
        return [row.to_dict() for row in active_query(model, org_id).order_by(*order_by(model)).all()]
    return load


def _installments(org_id: int) -> list[dict]:
    installments = active_query(Installment, org_id).order_by(Installment.due_date.asc(), Installment.id.asc()).all()
    vouchers = active_query(Voucher, org_id).all()
    statuses = effective_installment_statuses(installments, vouchers)
    rows = []
    for inst in installments:
        row = inst.to_dict()
        row["effective_status"] = statuses[inst.id]
        rows.append(row)
    return rows


SHEETS: dict[str, ExportSheet] = {
    "customers": ExportSheet(
        title="Customers",
        columns=(("Name", "name"), ("Phone", "phone"), ("National ID", "national_id"),
                 ("Address", "address"), ("Status", "status"), ("Notes", "notes")),
        load=_dicts(Customer, lambda m: (m.name.asc(), m.id.asc())),
    ),
    "units": ExportSheet(
        title="Units",
        columns=(("Code", "code"), ("Name", "name"), ("Type", "unit_type"), ("Area", "area"),
                 ("Floor", "floor"), ("Building", "building"), ("Total price", "total_price"),
                 ("Status", "status"), ("Notes", "notes")),
        load=_dicts(Unit, lambda m: (m.code.asc(), m.id.asc())),
    ),
    "contracts": ExportSheet(
        title="Contracts",
        columns=(("Code", "code"), ("Unit", "unit_code"), ("Customer", "customer_name"),
                 ("Start date", "start_date"), ("Total price", "total_price"),
                 ("Discount", "discount_amount"), ("Down payment", "down_payment"),
                 ("Broker", "broker_name"), ("Broker amount", "broker_amount"),
                 ("Payment type", "payment_type")),
        load=_dicts(Contract, lambda m: (m.start_date.asc(), m.id.asc())),
    ),
    "installments": ExportSheet(
        title="Installments",
        columns=(("Unit", "unit_code"), ("Amount", "amount"), ("Due date", "due_date"),
                 ("Status", "effective_status"), ("Notes", "notes")),
        load=_installments,
    ),
    "vouchers": ExportSheet(
        title="Vouchers",
        columns=(("Type", "type"), ("Date", "date"), ("Amount", "amount"), ("Safe", "safe_name"),
                 ("Description", "description"), ("Payer", "payer"),
                 ("Beneficiary", "beneficiary"), ("Unit", "unit_code")),
        load=_dicts(Voucher, lambda m: (m.date.asc(), m.id.asc())),
    ),
    "safes": ExportSheet(
        title="Safes",
        columns=(("Name", "name"), ("Opening balance", "opening_balance"), ("Balance", "balance")),
        load=_dicts(Safe, lambda m: (m.name.asc(), m.id.asc())),
    ),
    "transfers": ExportSheet(
        title="Transfers",
        columns=(("From", "from_safe_name"), ("To", "to_safe_name"), ("Amount", "amount"),
                 ("Description", "description"), ("Created", "created_at")),
        load=_dicts(Transfer, lambda m: (m.created_at.asc(), m.id.asc())),
    ),
}

ALL_SHEETS = ("customers", "units", "contracts", "installments", "vouchers", "safes", "transfers")


def _sheet(export_type: str) -> ExportSheet:
    sheet = SHEETS.get((export_type or "").strip().lower())
    if sheet is None:
        raise ValidationError(f"Unsupported export type: {export_type}")
    return sheet


def _autosize(ws) -> None:
    for idx, column in enumerate(ws.columns, start=1):
        longest = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
        ws.column_dimensions[get_column_letter(idx)].width = min(longest + 2, MAX_COLUMN_WIDTH)


def build_workbook(org_id: int, export_type: str = "all") -> bytes:
    """
    One sheet per exported type ('all' writes every sheet).

    Raises NotFoundError when a single-type export has no rows.
    """
    names = ALL_SHEETS if (export_type or "all") == "all" else (export_type.strip().lower(),)
    wb = Workbook()
    wb.remove(wb.active)

    total_rows = 0
    for name in names:
        sheet = _sheet(name)
        rows = sheet.rows(org_id)
        total_rows += len(rows)
        ws = wb.create_sheet(title=sheet.title)
        ws.append(sheet.headers)
        for cell in ws[1]:
            cell.font = Font(bold=True)
        for row in rows:
            ws.append(row)
        _autosize(ws)

    if len(names) == 1 and total_rows == 0:
        raise NotFoundError(f"No {names[0]} to export")

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def build_csv(org_id: int, export_type: str) -> str:
    if not export_type or export_type == "all":
        raise ValidationError("CSV export needs a single type")
    sheet = _sheet(export_type)
    rows = sheet.rows(org_id)
    if not rows:
        raise NotFoundError(f"No {export_type} to export")

    stream = io.StringIO()
    writer = csv.writer(stream)
    writer.writerow(sheet.headers)
    writer.writerows(rows)
    return stream.getvalue()
