from __future__ import annotations

from io import BytesIO
from typing import Iterable, Mapping

import pandas as pd

from skyyield.models import MonthlyCommission

COMMISSION_COLUMNS = [
    "commission_id",
    "commission_month",
    "recipient_type",
    "partner_id",
    "partner_name",
    "company_name",
    "tipalti_payee_id",
    "calculation_method",
    "calculation_details",
    "revenue_basis",
    "commission_amount",
    "payment_status",
    "payment_date",
    "payment_method",
    "payment_reference",
    "notes",
    "created_at",
]


def _commissions_df(commissions: Iterable[MonthlyCommission]) -> pd.DataFrame:
    rows = []
    for item in commissions:
        partner = item.partner
        rows.append(
            {
                "commission_id": item.commission_id,
                "commission_month": item.commission_month,
                "recipient_type": item.recipient_type,
                "partner_id": item.partner_id,
                "partner_name": partner.contact_name if partner else None,
                "company_name": partner.company_name if partner else None,
                "tipalti_payee_id": partner.tipalti_payee_id if partner else None,
                "calculation_method": item.calculation_method,
                "calculation_details": item.calculation_details,
                "revenue_basis": float(item.revenue_basis) if item.revenue_basis is not None else None,
                "commission_amount": round(float(item.commission_amount), 2)
                if item.commission_amount is not None
                else None,
                "payment_status": item.payment_status,
                "payment_date": item.payment_date,
                "payment_method": item.payment_method,
                "payment_reference": item.payment_reference,
                "notes": item.notes,
                "created_at": item.created_at,
            }
        )
    return pd.DataFrame(rows, columns=COMMISSION_COLUMNS)


def _summary_df(stats: Mapping[str, object]) -> pd.DataFrame:
    rows = [
        {"metric": "Total records", "value": int(stats.get("total_records", 0))},
        {"metric": "Pending", "value": int(stats.get("pending_count", 0))},
        {"metric": "Paid", "value": int(stats.get("paid_count", 0))},
        {"metric": "Total pending ($)", "value": round(float(stats.get("total_pending", 0)), 2)},
        {"metric": "Total paid ($)", "value": round(float(stats.get("total_paid", 0)), 2)},
    ]
    return pd.DataFrame(rows, columns=["metric", "value"])


def export_commissions_workbook(
    commissions: Iterable[MonthlyCommission],
    stats: Mapping[str, object],
) -> bytes:
    """Return an XLSX workbook (bytes) with the listed commissions and their totals."""

    df_commissions = _commissions_df(commissions)
    df_summary = _summary_df(stats)

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df_commissions.to_excel(writer, sheet_name="Commissions", index=False)
        df_summary.to_excel(writer, sheet_name="Summary", index=False)

    buffer.seek(0)
    return buffer.getvalue()
