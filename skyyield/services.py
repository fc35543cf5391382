"""Application service layer."""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from skyyield import crud
from skyyield.core.commission import CalculationContext, CommissionStructure, calculate
from skyyield.core.formatting import format_money
from skyyield.errors import InvalidInput, MissingInput, NotFound
from skyyield.models import (
    PAYMENT_STATUS_ENUM,
    PER_REFERRAL_RECIPIENT_TYPES,
    MonthlyCommission,
    PartnerMixin,
)
from skyyield.schemas import (
    CommissionCalculateRequest,
    CommissionCreate,
    CommissionStatusUpdate,
    PartnerCommissionUpdate,
)

logger = logging.getLogger(__name__)


class CommissionService:
    """Coordinates commission calculation and bookkeeping using database state."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _require_partner(self, recipient_type: str, partner_id: int) -> PartnerMixin:
        partner = crud.get_partner(self.db, recipient_type, partner_id)
        if partner is None:
            raise NotFound("Partner not found")
        return partner

    def _referral_count(self, recipient_type: str, partner_id: int, month: date) -> int:
        # A failed count degrades to zero referrals rather than failing the request.
        try:
            return crud.count_active_referrals(self.db, recipient_type, partner_id, month)
        except SQLAlchemyError:
            logger.warning(
                "Referral count unavailable for %s %s in %s; using 0",
                recipient_type,
                partner_id,
                month.isoformat(),
                exc_info=True,
            )
            self.db.rollback()
            return 0

    def calculate_commission(self, request: CommissionCalculateRequest) -> MonthlyCommission:
        """Compute a partner's commission for a month and store it as a pending record.

        Recalculating a month appends a new record; earlier ones are left as is.
        """
        recipient_type = request.partner_type
        crud.resolve_recipient(recipient_type)
        partner = self._require_partner(recipient_type, request.partner_id)

        structure = CommissionStructure.from_partner(
            partner, per_referral=recipient_type in PER_REFERRAL_RECIPIENT_TYPES
        )
        referral_count = None
        if structure.type == "per_referral":
            referral_count = self._referral_count(recipient_type, partner.id, request.month)

        result = calculate(
            structure,
            CalculationContext(revenue_basis=request.revenue_basis, referral_count=referral_count),
        )

        commission = crud.create_commission(
            self.db,
            recipient_type=recipient_type,
            partner_id=partner.id,
            commission_month=request.month,
            commission_amount=result.amount,
            calculation_method=result.method,
            calculation_details=result.details,
            revenue_basis=request.revenue_basis,
        )
        logger.info(
            "Calculated commission %s for %s %s (%s): %s",
            commission.commission_id,
            recipient_type,
            partner.id,
            request.month.isoformat(),
            result.details,
        )
        return commission

    def record_commission(self, payload: CommissionCreate) -> MonthlyCommission:
        """Store a commission exactly as supplied by the admin."""
        crud.resolve_recipient(payload.recipient_type)
        self._require_partner(payload.recipient_type, payload.partner_id)
        commission = crud.create_commission(
            self.db,
            recipient_type=payload.recipient_type,
            partner_id=payload.partner_id,
            commission_month=payload.commission_month,
            commission_amount=payload.commission_amount,
            calculation_method=payload.calculation_method,
            calculation_details=payload.calculation_details,
            revenue_basis=payload.revenue_basis,
            notes=payload.notes,
        )
        logger.info("Recorded commission %s (%s)", commission.commission_id, format_money(commission.commission_amount))
        return commission

    def _complete_payment_details(
        self, commission: MonthlyCommission, payload: CommissionStatusUpdate
    ) -> MonthlyCommission:
        # A paid record only accepts method or reference values it is still missing.
        missing = {
            field: getattr(payload, field)
            for field in ("payment_method", "payment_reference")
            if getattr(payload, field) and not getattr(commission, field)
        }
        if not missing:
            raise InvalidInput(f"Commission {commission.commission_id} is already paid")
        commission = crud.fill_payment_details(self.db, commission, **missing)
        logger.info("Commission %s payment details completed: %s", commission.commission_id, ", ".join(missing))
        return commission

    def update_status(self, payload: CommissionStatusUpdate) -> MonthlyCommission:
        """Move a pending commission to paid; this is the only transition offered.

        Sending ``paid`` again for a paid record fills in a payment method or
        reference that was left empty. The payment date is never changed.
        """
        if payload.id is None:
            raise MissingInput("Commission ID required")
        if not payload.payment_status:
            raise MissingInput("Payment status required")
        if payload.payment_status not in PAYMENT_STATUS_ENUM:
            raise InvalidInput("Payment status must be pending or paid")

        commission = crud.get_commission(self.db, payload.id)
        if commission is None:
            raise NotFound("Commission not found")

        if payload.payment_status != "paid":
            raise InvalidInput("Commissions can only be marked as paid")
        if commission.payment_status == "paid":
            return self._complete_payment_details(commission, payload)

        commission = crud.mark_commission_paid(
            self.db,
            commission,
            payment_date=payload.payment_date or date.today(),
            payment_method=payload.payment_method,
            payment_reference=payload.payment_reference,
        )
        logger.info("Commission %s marked paid on %s", commission.commission_id, commission.payment_date)
        return commission

    def list_commissions(
        self,
        month: date | None = None,
        status: str | None = None,
        recipient_type: str | None = None,
    ) -> tuple[Sequence[MonthlyCommission], dict[str, Decimal | int]]:
        if recipient_type:
            crud.resolve_recipient(recipient_type)
        commissions = crud.list_commissions(self.db, month=month, status=status, recipient_type=recipient_type)
        return commissions, crud.commission_stats(commissions)

    def list_partners(self) -> list[tuple[str, PartnerMixin]]:
        return crud.list_partners_with_commission(self.db)

    def update_partner_settings(self, payload: PartnerCommissionUpdate) -> tuple[str, PartnerMixin]:
        if payload.id is None or not payload.partner_type:
            raise MissingInput("Partner ID and type required")
        crud.resolve_recipient(payload.partner_type)
        partner = self._require_partner(payload.partner_type, payload.id)
        partner = crud.update_partner_commission(self.db, partner, payload.partner_type, payload)
        logger.info(
            "Updated commission settings for %s %s: %s",
            payload.partner_type,
            partner.id,
            partner.commission_structure_type or "none",
        )
        return payload.partner_type, partner
