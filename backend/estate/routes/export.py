# Overview: Flask API routes for spreadsheet and CSV downloads.

import io

from flask import Blueprint, Response, g, request, send_file

from ..decorators import require_auth
from ..responses import internal_error, service_error
from ..services import export_service
from ..time_utils import today
from ..validation import NotFoundError, ValidationError

export_bp = Blueprint("export", __name__, url_prefix="/api/export")


@export_bp.get("/excel")
@require_auth
def export_excel_route():
    """Query params: type (customers|units|contracts|installments|vouchers|safes|transfers|all)."""
    try:
        export_type = request.args.get("type", "all")
        payload = export_service.build_workbook(g.org_id, export_type)
        return send_file(
            io.BytesIO(payload),
            mimetype=export_service.XLSX_MIMETYPE,
            as_attachment=True,
            download_name=f"{export_type}-{today().isoformat()}.xlsx",
        )
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to export workbook")


@export_bp.get("/csv")
@require_auth
def export_csv_route():
    try:
        export_type = request.args.get("type", "")
        payload = export_service.build_csv(g.org_id, export_type)
        return Response(
            payload,
            mimetype=export_service.CSV_MIMETYPE,
            headers={"Content-Disposition": f"attachment; filename={export_type}-{today().isoformat()}.csv"},
        )
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to export CSV")
