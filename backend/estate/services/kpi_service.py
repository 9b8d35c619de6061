# Overview: Derived read-only aggregations (dashboard KPIs and partner cash flow).

"""
KPI arithmetic.

The functions in the first half of this module are pure: they take rows
that were already loaded through repository.active_query (so deleted rows
never reach them) and work in integer cents. Conversion to decimal
amounts, and the single ROUND_HALF_UP step, happens in the *_summary and
dashboard builders at the output boundary.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Sequence

from ..models import (
    Contract,
    Installment,
    Partner,
    Safe,
    Unit,
    UnitPartner,
    Voucher,
)
from ..models.property import (
    INSTALLMENT_STATUS_PAID,
    INSTALLMENT_STATUS_PARTIAL,
    INSTALLMENT_STATUS_PENDING,
    UNIT_STATUSES,
)
from ..models.treasury import VOUCHER_TYPE_PAYMENT, VOUCHER_TYPE_RECEIPT
from ..money import cents_decimal_to_amount, from_cents, percentage, share_cents
from ..repository import active_query, get_active
from ..time_utils import add_months, today as utc_today, to_iso_date
from ..validation import ValidationError

DUE_SOON_DAYS = 7


def total_sales_cents(contracts: Iterable[Contract]) -> int:
    return sum(c.total_price_cents or 0 for c in contracts)


def total_receipts_cents(vouchers: Iterable[Voucher]) -> int:
    return sum(v.amount_cents for v in vouchers if v.type == VOUCHER_TYPE_RECEIPT)


def total_expenses_cents(vouchers: Iterable[Voucher]) -> int:
    return sum(v.amount_cents for v in vouchers if v.type == VOUCHER_TYPE_PAYMENT)


def net_profit_cents(vouchers: Sequence[Voucher]) -> int:
    return total_receipts_cents(vouchers) - total_expenses_cents(vouchers)


def collection_percentage(total_receipts: int, total_sales: int) -> float:
    """round2(receipts / sales * 100); 0 when there are no sales."""
    return percentage(total_receipts, total_sales)


def infer_installment_statuses(
    installments: Sequence[Installment],
    vouchers: Sequence[Voucher],
) -> dict[int, str]:
    """
    Infer each installment's status from the receipts linked to its unit.

    Installments already stored as paid keep that status and consume
    their amount from the unit's receipts first (pay_installment records
    the receipt that settled them). The rest of the unit's receipt total
    is allocated across the remaining installments oldest due date
    first: fully covered -> paid, partly covered -> partial, nothing
    left -> pending.
    """
    pool: dict[int, int] = defaultdict(int)
    for v in vouchers:
        if v.type == VOUCHER_TYPE_RECEIPT and v.unit_id is not None:
            pool[v.unit_id] += v.amount_cents

    statuses: dict[int, str] = {}
    open_rows = []
    for inst in installments:
        if inst.status == INSTALLMENT_STATUS_PAID:
            statuses[inst.id] = INSTALLMENT_STATUS_PAID
            pool[inst.unit_id] = max(pool[inst.unit_id] - inst.amount_cents, 0)
        else:
            open_rows.append(inst)

    for inst in sorted(open_rows, key=lambda i: (i.due_date, i.id)):
        available = pool[inst.unit_id]
        if available >= inst.amount_cents:
            statuses[inst.id] = INSTALLMENT_STATUS_PAID
            pool[inst.unit_id] = available - inst.amount_cents
        elif available > 0:
            statuses[inst.id] = INSTALLMENT_STATUS_PARTIAL
            pool[inst.unit_id] = 0
        else:
            statuses[inst.id] = INSTALLMENT_STATUS_PENDING
    return statuses


_STATUS_RANK = {INSTALLMENT_STATUS_PENDING: 0, INSTALLMENT_STATUS_PARTIAL: 1, INSTALLMENT_STATUS_PAID: 2}


def effective_installment_statuses(
    installments: Sequence[Installment],
    vouchers: Sequence[Voucher],
) -> dict[int, str]:
    """The further along of the stored status and the inferred one."""
    inferred = infer_installment_statuses(installments, vouchers)
    result = {}
    for inst in installments:
        stored = inst.status or INSTALLMENT_STATUS_PENDING
        guess = inferred.get(inst.id, INSTALLMENT_STATUS_PENDING)
        result[inst.id] = stored if _STATUS_RANK.get(stored, 0) >= _STATUS_RANK[guess] else guess
    return result


def unit_remaining_cents(
    contract: Contract | None,
    installments: Iterable[Installment],
    statuses: dict[int, str],
) -> int:
    """(price - discount) minus the paid installments of the contract's unit."""
    if contract is None:
        return 0
    paid = sum(
        i.amount_cents for i in installments
        if i.unit_id == contract.unit_id and statuses.get(i.id) == INSTALLMENT_STATUS_PAID
    )
    return contract.net_price_cents - paid


def total_debt_cents(
    contracts: Iterable[Contract],
    installments: Sequence[Installment],
    statuses: dict[int, str],
) -> int:
    return sum(unit_remaining_cents(c, installments, statuses) for c in contracts)


def unit_counts(units: Iterable[Unit]) -> dict[str, int]:
    counts = {status: 0 for status in UNIT_STATUSES}
    total = 0
    for unit in units:
        total += 1
        counts[unit.status] = counts.get(unit.status, 0) + 1
    counts["total"] = total
    return counts


def overdue_installments(
    installments: Iterable[Installment],
    statuses: dict[int, str],
    today: date,
) -> list[Installment]:
    return [
        i for i in installments
        if i.due_date < today and statuses.get(i.id) != INSTALLMENT_STATUS_PAID
    ]


def due_soon_installments(
    installments: Iterable[Installment],
    statuses: dict[int, str],
    today: date,
    days: int = DUE_SOON_DAYS,
) -> list[Installment]:
    horizon = today + timedelta(days=days)
    return [
        i for i in installments
        if today <= i.due_date <= horizon and statuses.get(i.id) != INSTALLMENT_STATUS_PAID
    ]


# ---------------------------------------------------------------------------
# Builders (load active rows, round at the boundary)
# ---------------------------------------------------------------------------

def _installment_row(inst: Installment, status: str) -> dict:
    row = inst.to_dict()
    row["effective_status"] = status
    return row


def dashboard(org_id: int, *, today: date | None = None,
              date_from: date | None = None, date_to: date | None = None) -> dict:
    """
    Headline KPIs.

    date_from / date_to (inclusive) narrow the period figures: contracts by
    start date, vouchers by date. Installment statuses, the overdue and
    due-soon lists, unit counts and safe balances always cover every
    active row.
    """
    today = today or utc_today()
    if date_from and date_to and date_from > date_to:
        raise ValidationError("date_from must not be after date_to")

    contract_query = active_query(Contract, org_id)
    voucher_query = active_query(Voucher, org_id)
    if date_from:
        contract_query = contract_query.filter(Contract.start_date >= date_from)
        voucher_query = voucher_query.filter(Voucher.date >= date_from)
    if date_to:
        contract_query = contract_query.filter(Contract.start_date <= date_to)
        voucher_query = voucher_query.filter(Voucher.date <= date_to)
    contracts = contract_query.all()
    vouchers = voucher_query.all()
    all_vouchers = active_query(Voucher, org_id).all()
    installments = active_query(Installment, org_id).order_by(Installment.due_date.asc()).all()
    units = active_query(Unit, org_id).all()
    safes = active_query(Safe, org_id).all()
    investor_count = active_query(Partner, org_id).count()

    statuses = effective_installment_statuses(installments, all_vouchers)
    sales = total_sales_cents(contracts)
    receipts = total_receipts_cents(vouchers)
    expenses = total_expenses_cents(vouchers)

    overdue = overdue_installments(installments, statuses, today)
    due_soon = due_soon_installments(installments, statuses, today)

    return {
        "total_sales": from_cents(sales),
        "total_receipts": from_cents(receipts),
        "total_expenses": from_cents(expenses),
        "net_profit": from_cents(receipts - expenses),
        "collection_percentage": collection_percentage(receipts, sales),
        "total_debt": from_cents(total_debt_cents(contracts, installments, statuses)),
        "units": unit_counts(units),
        "investor_count": investor_count,
        "contract_count": len(contracts),
        "safes_total_balance": from_cents(sum(s.balance_cents or 0 for s in safes)),
        "overdue_count": len(overdue),
        "overdue_amount": from_cents(sum(i.amount_cents for i in overdue)),
        "overdue_installments": [_installment_row(i, statuses[i.id]) for i in overdue[:20]],
        "due_soon_count": len(due_soon),
        "due_soon_installments": [_installment_row(i, statuses[i.id]) for i in due_soon[:20]],
        "as_of": to_iso_date(today),
        "date_from": to_iso_date(date_from),
        "date_to": to_iso_date(date_to),
    }


def unit_summary(org_id: int, unit_id: int) -> dict:
    """Remaining balance and installment statuses for one unit."""
    unit = get_active(Unit, unit_id, org_id, label="Unit")
    contract = active_query(Contract, org_id).filter(Contract.unit_id == unit.id).first()
    installments = active_query(Installment, org_id).filter(Installment.unit_id == unit.id).all()
    vouchers = active_query(Voucher, org_id).filter(Voucher.unit_id == unit.id).all()
    statuses = effective_installment_statuses(installments, vouchers)
    return {
        "unit": unit.to_dict(),
        "contract_id": contract.id if contract else None,
        "net_price": from_cents(contract.net_price_cents) if contract else None,
        "remaining": from_cents(unit_remaining_cents(contract, installments, statuses)),
        "installments": [_installment_row(i, statuses[i.id]) for i in sorted(installments, key=lambda i: (i.due_date, i.id))],
    }


def partner_cashflow(org_id: int, year: int, month: int) -> dict:
    """
    Expected inflow per partner for one calendar month: every installment of
    a unit the partner owns that falls due in the month, times the
    partner's ownership share of that unit.
    """
    if not 1 <= int(month) <= 12:
        raise ValidationError("month must be between 1 and 12")
    if not 1 <= int(year) <= 9998:
        raise ValidationError("year must be between 1 and 9998")
    start = date(int(year), int(month), 1)
    end = add_months(start, 1)

    installments = (
        active_query(Installment, org_id)
        .filter(Installment.due_date >= start, Installment.due_date < end)
        .all()
    )
    due_by_unit: dict[int, int] = defaultdict(int)
    count_by_unit: dict[int, int] = defaultdict(int)
    for inst in installments:
        due_by_unit[inst.unit_id] += inst.amount_cents
        count_by_unit[inst.unit_id] += 1

    shares = active_query(UnitPartner, org_id).all()
    partners: dict[int, dict] = {}
    totals: dict[int, Decimal] = defaultdict(Decimal)
    grand_total = Decimal(0)

    for share in shares:
        if share.unit is None or share.unit.is_deleted:
            continue
        if share.partner is None or share.partner.is_deleted:
            continue
        entry = partners.setdefault(share.partner_id, {
            "partner_id": share.partner_id,
            "partner_name": share.partner.name,
            "units": [],
        })
        unit_due = due_by_unit.get(share.unit_id, 0)
        amount = share_cents(unit_due, share.share_bps)
        entry["units"].append({
            "unit_id": share.unit_id,
            "unit_code": share.unit.code,
            "percentage": share.share_bps / 100,
            "installment_count": count_by_unit.get(share.unit_id, 0),
            "installments_total": from_cents(unit_due),
            "share_amount": cents_decimal_to_amount(amount),
        })
        totals[share.partner_id] += amount
        grand_total += amount

    rows = []
    for partner_id, entry in sorted(partners.items(), key=lambda item: item[1]["partner_name"]):
        entry["total"] = cents_decimal_to_amount(totals[partner_id])
        rows.append(entry)

    return {
        "year": int(year),
        "month": int(month),
        "partners": rows,
        "total": cents_decimal_to_amount(grand_total),
    }
