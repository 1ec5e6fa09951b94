"""
Billing aggregation for the detailed service bill.

Line item ``total`` values are taken as stored. They are never recomputed from
quantity * unit_price, so the grand total always matches what was billed.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import pandas as pd

from clinicore.formatting import to_date, to_decimal
from clinicore.models import BillingLineItem

PAID_STATUSES = {"paid"}
OUTSTANDING_STATUSES = {"pending", "partial"}

FRAME_COLUMNS = [
    "date", "description", "service_type", "quantity",
    "unit_price", "total", "payment_status",
]


@dataclass
class BillingAggregate:
    """Line items grouped by creation date, plus the bill's grand total."""
    by_date: "OrderedDict[Optional[date], List[BillingLineItem]]" = field(default_factory=OrderedDict)
    grand_total: Decimal = Decimal("0")


def _total(item: BillingLineItem) -> Decimal:
    return to_decimal(item.total) or Decimal("0")


def aggregate_billing(line_items: Iterable[BillingLineItem]) -> BillingAggregate:
    """
    Group items by the calendar date of ``created_at``.
    Groups appear in order of first occurrence; items keep their input order
    within a group. Items without a date share the ``None`` group.
    """
    agg = BillingAggregate()
    for item in line_items:
        key = to_date(item.created_at)
        agg.by_date.setdefault(key, []).append(item)
        agg.grand_total += _total(item)
    return agg


# ── Tabular views (pandas) ───────────────────────────────────────────

def billing_frame(line_items: Iterable[BillingLineItem]) -> pd.DataFrame:
    """One row per line item, in input order."""
    rows = [
        {
            "date": to_date(item.created_at),
            "description": item.description,
            "service_type": item.service_type,
            "quantity": item.quantity,
            "unit_price": to_decimal(item.unit_price),
            "total": _total(item),
            "payment_status": (item.payment_status or "").lower(),
        }
        for item in line_items
    ]
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


def payment_summary(line_items: Iterable[BillingLineItem]) -> Dict[str, Decimal]:
    """Total billed, amount paid and balance due, from each item's payment status."""
    df = billing_frame(line_items)
    if df.empty:
        zero = Decimal("0")
        return {"total": zero, "paid": zero, "balance": zero}

    paid = df.loc[df["payment_status"].isin(PAID_STATUSES), "total"]
    due = df.loc[df["payment_status"].isin(OUTSTANDING_STATUSES), "total"]
    return {
        "total": sum(df["total"], Decimal("0")),
        "paid": sum(paid, Decimal("0")),
        "balance": sum(due, Decimal("0")),
    }


def totals_by_service_type(line_items: Iterable[BillingLineItem]) -> Dict[str, Decimal]:
    """Billed amount per service type (consultation, lab, pharmacy, ...)."""
    df = billing_frame(line_items)
    out: Dict[str, Decimal] = {}
    for service_type, group in df.groupby("service_type", sort=False):
        out[str(service_type)] = sum(group["total"], Decimal("0"))
    return out


def line_items_csv(line_items: Iterable[BillingLineItem]) -> str:
    """CSV export of the line items, header row first."""
    df = billing_frame(line_items)
    return df.to_csv(index=False)
