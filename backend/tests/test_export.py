# Overview: Pytest coverage for spreadsheet and CSV exports.

import csv
import io

import pytest
from openpyxl import load_workbook

from estate.services import contract_service, export_service, ledger_service
from estate.validation import NotFoundError, ValidationError

from conftest import sale_terms


class TestWorkbook:

    def test_all_sheets_with_headers(self, db_session, ctx, safe):
        payload = export_service.build_workbook(ctx.org_id, "all")
        wb = load_workbook(io.BytesIO(payload))

        assert wb.sheetnames == ["Customers", "Units", "Contracts", "Installments",
                                 "Vouchers", "Safes", "Transfers"]
        safes = wb["Safes"]
        assert [c.value for c in safes[1]] == ["Name", "Opening balance", "Balance"]
        assert [c.value for c in safes[2]] == ["Main Safe", 1000, 1000]
        assert safes["A1"].font.bold

    def test_installments_sheet_uses_effective_status(self, db_session, ctx, owned_unit, customer, safe):
        contract_service.create_contract(ctx, **sale_terms(owned_unit, customer))
        ledger_service.record_voucher(ctx, type="receipt", amount=7500, safe_id=safe.id,
                                      date="2026-02-01", description="First", unit_id=owned_unit.id)

        wb = load_workbook(io.BytesIO(export_service.build_workbook(ctx.org_id, "installments")))
        rows = list(wb["Installments"].iter_rows(min_row=2, values_only=True))
        assert len(rows) == 12
        assert rows[0][3] == "paid"
        assert rows[1][3] == "pending"

    def test_empty_single_type_is_not_found(self, db_session, ctx):
        with pytest.raises(NotFoundError):
            export_service.build_workbook(ctx.org_id, "vouchers")

    def test_unknown_type(self, db_session, ctx):
        with pytest.raises(ValidationError):
            export_service.build_workbook(ctx.org_id, "spaceships")


class TestCsv:

    def test_vouchers_csv(self, db_session, ctx, safe):
        ledger_service.record_voucher(ctx, type="payment", amount=12.5, safe_id=safe.id,
                                      date="2026-01-04", description="Water, January")
        text = export_service.build_csv(ctx.org_id, "vouchers")
        rows = list(csv.reader(io.StringIO(text)))

        assert rows[0][:3] == ["Type", "Date", "Amount"]
        assert rows[1][:5] == ["payment", "2026-01-04", "12.5", "Main Safe", "Water, January"]

    def test_csv_needs_single_type(self, db_session, ctx):
        with pytest.raises(ValidationError):
            export_service.build_csv(ctx.org_id, "all")


class TestExportApi:

    def test_excel_download(self, client, headers_a, safe):
        resp = client.get("/api/export/excel?type=safes", headers=headers_a)
        assert resp.status_code == 200
        assert resp.mimetype == export_service.XLSX_MIMETYPE
        assert "attachment" in resp.headers["Content-Disposition"]
        assert load_workbook(io.BytesIO(resp.data)).sheetnames == ["Safes"]

    def test_csv_download(self, client, headers_a, safe):
        resp = client.get("/api/export/csv?type=safes", headers=headers_a)
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert resp.data.decode().splitlines()[1] == "Main Safe,1000.0,1000.0"

    def test_empty_export_is_404(self, client, headers_a):
        assert client.get("/api/export/csv?type=customers", headers=headers_a).status_code == 404
