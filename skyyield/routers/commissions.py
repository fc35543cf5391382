"""Admin routes for monthly partner commissions."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from skyyield.auth import User
from skyyield.core.formatting import format_money, parse_commission_month
from skyyield.database import get_session
from skyyield.errors import InvalidInput
from skyyield.exporting.xlsx import export_commissions_workbook
from skyyield.models import PAYMENT_STATUS_ENUM, RECIPIENTS, MonthlyCommission
from skyyield.routers.auth import get_admin_user
from skyyield.schemas import (
    CommissionCalculateRequest,
    CommissionCreate,
    CommissionStatusUpdate,
    parse_payload,
)
from skyyield.services import CommissionService

router = APIRouter(prefix="/api/admin/commissions", tags=["Commissions"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _isoformat(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


def _serialize_commission(commission: MonthlyCommission) -> dict[str, Any]:
    partner = commission.partner
    data: dict[str, Any] = {
        "id": commission.id,
        "commission_id": commission.commission_id,
        "recipient_type": commission.recipient_type,
        "partner_id": commission.partner_id,
        "commission_month": _isoformat(commission.commission_month),
        "commission_amount": float(commission.commission_amount),
        "calculation_method": commission.calculation_method,
        "calculation_details": commission.calculation_details,
        "revenue_basis": float(commission.revenue_basis) if commission.revenue_basis is not None else None,
        "payment_status": commission.payment_status,
        "payment_date": _isoformat(commission.payment_date),
        "payment_method": commission.payment_method,
        "payment_reference": commission.payment_reference,
        "notes": commission.notes,
        "created_at": _isoformat(commission.created_at),
        "updated_at": _isoformat(commission.updated_at),
        "partner_name": partner.contact_name if partner else "",
        "company_name": (partner.company_name or "") if partner else "",
        "tipalti_payee_id": (partner.tipalti_payee_id or "") if partner else "",
    }
    for recipient in RECIPIENTS.values():
        data[recipient.column_name] = recipient.id_of(commission)
    return data


def _serialize_stats(stats: dict) -> dict[str, Any]:
    return {
        "totalRecords": stats["total_records"],
        "pendingCount": stats["pending_count"],
        "paidCount": stats["paid_count"],
        "totalPending": float(stats["total_pending"]),
        "totalPaid": float(stats["total_paid"]),
    }


def _normalize_filters(
    month: str | None,
    status: str | None,
    partner_type: str | None,
) -> tuple[date | None, str | None, str | None]:
    month_filter = None
    if month and month.strip():
        try:
            month_filter = parse_commission_month(month)
        except ValueError as exc:
            raise InvalidInput(str(exc)) from exc

    status_filter = status.strip().lower() if status and status.strip() else None
    if status_filter and status_filter not in PAYMENT_STATUS_ENUM:
        raise InvalidInput("Status must be pending or paid")

    type_filter = partner_type.strip().lower() if partner_type and partner_type.strip() else None
    return month_filter, status_filter, type_filter


def _calculated_response(service: CommissionService, payload: Any) -> JSONResponse:
    request = parse_payload(CommissionCalculateRequest, payload)
    commission = service.calculate_commission(request)
    return JSONResponse(
        {
            "success": True,
            "commission": _serialize_commission(commission),
            "message": f"Commission calculated: {format_money(commission.commission_amount)}",
        }
    )


@router.get("")
def list_commissions(
    month: str | None = Query(None),
    status: str | None = Query(None),
    partner_type: str | None = Query(None),
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
):
    """Commission records newest month first, with partner names and totals."""
    month_filter, status_filter, type_filter = _normalize_filters(month, status, partner_type)
    commissions, stats = CommissionService(db).list_commissions(
        month=month_filter, status=status_filter, recipient_type=type_filter
    )
    return JSONResponse(
        {
            "success": True,
            "commissions": [_serialize_commission(item) for item in commissions],
            "stats": _serialize_stats(stats),
        }
    )


@router.post("")
def create_commission(
    payload: Any = Body(None),
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
):
    """Create a commission record, or calculate one when ``action`` is ``"calculate"``."""
    service = CommissionService(db)
    if isinstance(payload, dict) and payload.get("action") == "calculate":
        return _calculated_response(service, payload)

    commission = service.record_commission(parse_payload(CommissionCreate, payload))
    return JSONResponse(
        {
            "success": True,
            "commission": _serialize_commission(commission),
            "message": "Commission record created",
        }
    )


@router.post("/calculate")
def calculate_commission(
    payload: Any = Body(None),
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
):
    return _calculated_response(CommissionService(db), payload)


@router.put("")
def update_commission_status(
    payload: Any = Body(None),
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
):
    """Mark a pending commission as paid."""
    commission = CommissionService(db).update_status(parse_payload(CommissionStatusUpdate, payload))
    return JSONResponse(
        {
            "success": True,
            "commission": _serialize_commission(commission),
            "message": "Commission updated",
        }
    )


@router.get("/export")
def export_commissions(
    month: str | None = Query(None),
    status: str | None = Query(None),
    partner_type: str | None = Query(None),
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
) -> Response:
    month_filter, status_filter, type_filter = _normalize_filters(month, status, partner_type)
    commissions, stats = CommissionService(db).list_commissions(
        month=month_filter, status=status_filter, recipient_type=type_filter
    )
    content = export_commissions_workbook(commissions, stats)
    label = month_filter.strftime("%Y_%m") if month_filter else datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"commissions_{label}.xlsx"
    return Response(
        content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
