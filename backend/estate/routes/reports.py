# Overview: Flask API routes for the dashboard KPIs and reports.

from flask import Blueprint, g, request

from ..decorators import require_auth
from ..responses import internal_error, ok, service_error
from ..services import kpi_service
from ..time_utils import parse_iso_date, today
from ..validation import NotFoundError, ValidationError

reports_bp = Blueprint("reports", __name__, url_prefix="/api")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date")


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    """
    Headline KPIs over active rows only.

    Query params (YYYY-MM-DD, optional):
      as_of: reference day for overdue / due-soon windows
      date_from, date_to: inclusive period for sales, receipts and expenses
    """
    try:
        return ok(kpi_service.dashboard(
            g.org_id,
            today=_date_arg("as_of"),
            date_from=_date_arg("date_from"),
            date_to=_date_arg("date_to"),
        ))
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to build dashboard")


@reports_bp.get("/reports/units/<int:unit_id>")
@require_auth
def unit_summary_route(unit_id: int):
    try:
        return ok(kpi_service.unit_summary(g.org_id, unit_id))
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to build unit summary")


@reports_bp.get("/reports/partner-cashflow")
@require_auth
def partner_cashflow_route():
    """Query params: year, month (default: current month)."""
    try:
        now = today()
        year = request.args.get("year", default=now.year, type=int)
        month = request.args.get("month", default=now.month, type=int)
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12")
        return ok(kpi_service.partner_cashflow(g.org_id, year, month))
    except (ValidationError, NotFoundError) as e:
        return service_error(e)
    except Exception:
        return internal_error("Failed to build partner cashflow")
