"""Admin routes for partner commission settings."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from skyyield.auth import User
from skyyield.database import get_session
from skyyield.models import PER_REFERRAL_RECIPIENT_TYPES, PartnerMixin
from skyyield.routers.auth import get_admin_user
from skyyield.schemas import PartnerCommissionUpdate, parse_payload
from skyyield.services import CommissionService

router = APIRouter(prefix="/api/admin/commissions/partners", tags=["Partners"])


def _amount(value) -> float:
    return float(value) if value is not None else 0.0


def _serialize_partner(recipient_type: str, partner: PartnerMixin) -> dict[str, Any]:
    per_referral = partner.commission_per_referral if recipient_type in PER_REFERRAL_RECIPIENT_TYPES else None
    return {
        "id": partner.id,
        "partner_id": partner.partner_code,
        "partner_type": recipient_type,
        "contact_name": partner.contact_name,
        "email": partner.email,
        "company_name": partner.company_name,
        "status": partner.status,
        "tipalti_payee_id": partner.tipalti_payee_id,
        "tipalti_status": partner.tipalti_status,
        "commission_structure_type": partner.commission_structure_type or "none",
        "commission_flat_fee_monthly": _amount(partner.commission_flat_fee_monthly),
        "commission_percentage": _amount(partner.commission_percentage),
        "commission_per_referral": _amount(per_referral),
        "commission_notes": partner.commission_notes,
    }


@router.get("")
def list_partners(
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
):
    """Active and pending partners of every type with their commission settings."""
    partners = [_serialize_partner(recipient_type, partner) for recipient_type, partner in CommissionService(db).list_partners()]
    return JSONResponse({"success": True, "partners": partners, "count": len(partners)})


@router.put("")
def update_partner_commission(
    payload: Any = Body(None),
    db: Session = Depends(get_session),
    admin: User = Depends(get_admin_user),
):
    recipient_type, partner = CommissionService(db).update_partner_settings(
        parse_payload(PartnerCommissionUpdate, payload)
    )
    return JSONResponse(
        {
            "success": True,
            "partner": _serialize_partner(recipient_type, partner),
            "message": "Commission settings updated",
        }
    )
