"""Database access helpers."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Sequence

from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, selectinload

from skyyield.core.commission import format_commission_id, parse_commission_sequence
from skyyield.core.formatting import month_bounds
from skyyield.errors import InvalidInput, StoreFailure
from skyyield.models import (
    PER_REFERRAL_RECIPIENT_TYPES,
    RECIPIENTS,
    CommissionIdCounter,
    LocationPartner,
    MonthlyCommission,
    PartnerMixin,
    Recipient,
)
from skyyield.schemas import PartnerCommissionUpdate

_UPSERT_BUILDERS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


def resolve_recipient(recipient_type: str | None) -> Recipient:
    recipient = RECIPIENTS.get(recipient_type or "")
    if recipient is None:
        raise InvalidInput("Invalid partner type")
    return recipient


# --- Partners ---------------------------------------------------------------

def get_partner(db: Session, recipient_type: str, partner_id: int) -> PartnerMixin | None:
    return db.get(resolve_recipient(recipient_type).model, partner_id)


def list_partners_with_commission(
    db: Session,
    statuses: Sequence[str] = ("active", "pending"),
) -> list[tuple[str, PartnerMixin]]:
    """Return ``(recipient_type, partner)`` pairs for every partner type, by contact name."""
    rows: list[tuple[str, PartnerMixin]] = []
    for recipient_type, recipient in RECIPIENTS.items():
        model = recipient.model
        stmt = select(model).where(model.status.in_(statuses)).order_by(model.contact_name)
        rows.extend((recipient_type, partner) for partner in db.execute(stmt).scalars().all())
    return rows


def update_partner_commission(
    db: Session,
    partner: PartnerMixin,
    recipient_type: str,
    payload: PartnerCommissionUpdate,
) -> PartnerMixin:
    partner.commission_structure_type = payload.commission_structure_type
    partner.commission_flat_fee_monthly = payload.commission_flat_fee_monthly or Decimal("0")
    partner.commission_percentage = payload.commission_percentage or Decimal("0")
    partner.commission_notes = payload.commission_notes
    if recipient_type in PER_REFERRAL_RECIPIENT_TYPES:
        partner.commission_per_referral = payload.commission_per_referral or Decimal("0")
    partner.updated_at = datetime.now()
    db.add(partner)
    db.commit()
    db.refresh(partner)
    return partner


def count_active_referrals(db: Session, recipient_type: str, partner_id: int, month: date) -> int:
    """Count active location partners attributed to a partner and activated in ``month``.

    Rows without a referrer type match on the id alone.
    """
    month_start, next_month_start = month_bounds(month)
    stmt = select(func.count(LocationPartner.id)).where(
        or_(
            LocationPartner.referred_by_partner_type == recipient_type,
            LocationPartner.referred_by_partner_type.is_(None),
        ),
        LocationPartner.referred_by_partner_id == partner_id,
        LocationPartner.status == "active",
        LocationPartner.activation_date >= month_start,
        LocationPartner.activation_date < next_month_start,
    )
    return db.execute(stmt).scalar_one() or 0


# --- Commission IDs ---------------------------------------------------------

def latest_commission_sequence(db: Session, year: int) -> int:
    """Sequence number of the most recently created commission ID for ``year`` (0 if none)."""
    stmt = (
        select(MonthlyCommission.commission_id)
        .where(MonthlyCommission.commission_id.like(f"COMM-{year}-%"))
        .order_by(MonthlyCommission.created_at.desc(), MonthlyCommission.id.desc())
        .limit(1)
    )
    latest = db.execute(stmt).scalars().first()
    return parse_commission_sequence(latest) or 0


def next_commission_id(db: Session, year: int) -> str:
    """Reserve the next ``COMM-{year}-NNN`` identifier.

    The increment is a single ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING``
    on the per-year counter row, so two requests cannot be handed the same
    number. The counter never falls behind the newest stored ID.
    """
    dialect = db.get_bind().dialect.name
    builder = _UPSERT_BUILDERS.get(dialect)
    if builder is None:
        raise StoreFailure(f"Commission ID generation is not supported on {dialect}")

    seed = latest_commission_sequence(db, year)
    counter = CommissionIdCounter.__table__
    stmt = builder(counter).values(year=year, last_seq=seed + 1)
    stmt = stmt.on_conflict_do_update(
        index_elements=[counter.c.year],
        set_={
            "last_seq": case((counter.c.last_seq >= seed, counter.c.last_seq), else_=seed) + 1,
        },
    ).returning(counter.c.last_seq)
    sequence = db.execute(stmt).scalar_one()
    return format_commission_id(year, sequence)


# --- Commission records -----------------------------------------------------

def create_commission(
    db: Session,
    *,
    recipient_type: str,
    partner_id: int,
    commission_month: date,
    commission_amount: Decimal,
    calculation_method: str | None,
    calculation_details: str | None,
    revenue_basis: Decimal | None = None,
    notes: str | None = None,
    year: int | None = None,
) -> MonthlyCommission:
    recipient = resolve_recipient(recipient_type)
    commission = MonthlyCommission(
        commission_id=next_commission_id(db, year or date.today().year),
        recipient_type=recipient_type,
        commission_month=commission_month,
        commission_amount=commission_amount,
        calculation_method=calculation_method,
        calculation_details=calculation_details,
        revenue_basis=revenue_basis,
        notes=notes,
        payment_status="pending",
    )
    recipient.assign(commission, partner_id)
    db.add(commission)
    db.commit()
    db.refresh(commission)
    return commission


def get_commission(db: Session, commission_pk: int) -> MonthlyCommission | None:
    return db.get(MonthlyCommission, commission_pk)


def mark_commission_paid(
    db: Session,
    commission: MonthlyCommission,
    payment_date: date,
    payment_method: str | None = None,
    payment_reference: str | None = None,
) -> MonthlyCommission:
    commission.payment_status = "paid"
    commission.payment_date = payment_date
    return fill_payment_details(db, commission, payment_method, payment_reference)


def fill_payment_details(
    db: Session,
    commission: MonthlyCommission,
    payment_method: str | None = None,
    payment_reference: str | None = None,
) -> MonthlyCommission:
    if payment_method:
        commission.payment_method = payment_method
    if payment_reference:
        commission.payment_reference = payment_reference
    commission.updated_at = datetime.now()
    db.add(commission)
    db.commit()
    db.refresh(commission)
    return commission


def list_commissions(
    db: Session,
    month: date | None = None,
    status: str | None = None,
    recipient_type: str | None = None,
) -> Sequence[MonthlyCommission]:
    stmt = select(MonthlyCommission).options(
        *(selectinload(recipient.relation) for recipient in RECIPIENTS.values())
    )

    if month:
        stmt = stmt.where(MonthlyCommission.commission_month == month)

    if status:
        stmt = stmt.where(MonthlyCommission.payment_status == status)

    if recipient_type:
        stmt = stmt.where(MonthlyCommission.recipient_type == recipient_type)

    stmt = stmt.order_by(
        MonthlyCommission.commission_month.desc(),
        MonthlyCommission.created_at.desc(),
        MonthlyCommission.id.desc(),
    )
    return db.execute(stmt).scalars().all()


def commission_stats(commissions: Sequence[MonthlyCommission]) -> dict[str, Decimal | int]:
    """Counts and totals by payment status; statuses other than pending/paid count only toward the total."""
    zero = Decimal("0")
    pending = [item for item in commissions if item.payment_status == "pending"]
    paid = [item for item in commissions if item.payment_status == "paid"]
    return {
        "total_records": len(commissions),
        "pending_count": len(pending),
        "paid_count": len(paid),
        "total_pending": sum((Decimal(item.commission_amount or 0) for item in pending), zero),
        "total_paid": sum((Decimal(item.commission_amount or 0) for item in paid), zero),
    }


def reset_application_data(db: Session) -> None:
    """Remove commission and partner rows, keeping user accounts."""
    db.execute(delete(MonthlyCommission))
    db.execute(delete(CommissionIdCounter))
    for recipient in RECIPIENTS.values():
        db.execute(delete(recipient.model))
    db.commit()
