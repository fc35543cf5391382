"""SQLAlchemy models for partners and their monthly commissions."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from skyyield.database import Base

PARTNER_STATUS_ENUM = ("pending", "active", "inactive")
RECIPIENT_TYPE_ENUM = (
    "location_partner",
    "referral_partner",
    "channel_partner",
    "relationship_partner",
)
STRUCTURE_TYPE_ENUM = ("flat_fee", "percentage", "per_referral", "hybrid")
PAYMENT_STATUS_ENUM = ("pending", "paid")

# Only referral partners are paid per referral; the other types report 0.
PER_REFERRAL_RECIPIENT_TYPES = ("referral_partner",)


class PartnerMixin:
    """Columns shared by the four partner tables."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    partner_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    contact_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    tipalti_payee_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tipalti_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    commission_structure_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    commission_flat_fee_monthly: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    commission_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)  # 0-100
    commission_per_referral: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    commission_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    @declared_attr.directive
    def __table_args__(cls):
        table = cls.__tablename__
        return (
            CheckConstraint(
                "commission_percentage IS NULL OR (commission_percentage >= 0 AND commission_percentage <= 100)",
                name=f"ck_{table}_percentage_range",
            ),
            CheckConstraint(
                "commission_structure_type IS NULL OR commission_structure_type IN "
                "('flat_fee', 'percentage', 'per_referral', 'hybrid')",
                name=f"ck_{table}_structure_valid",
            ),
        )


class LocationPartner(PartnerMixin, Base):
    __tablename__ = "location_partners"

    activation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    referred_by_partner_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    referred_by_partner_id: Mapped[int | None] = mapped_column(Integer, nullable=True)


Index(
    "idx_location_partners_referrer",
    LocationPartner.referred_by_partner_type,
    LocationPartner.referred_by_partner_id,
    LocationPartner.activation_date,
)


class ReferralPartner(PartnerMixin, Base):
    __tablename__ = "referral_partners"


class ChannelPartner(PartnerMixin, Base):
    __tablename__ = "channel_partners"


class RelationshipPartner(PartnerMixin, Base):
    __tablename__ = "relationship_partners"


PARTNER_MODELS: dict[str, type[PartnerMixin]] = {
    "location_partner": LocationPartner,
    "referral_partner": ReferralPartner,
    "channel_partner": ChannelPartner,
    "relationship_partner": RelationshipPartner,
}


def _exactly_one_recipient_sql() -> str:
    clauses = []
    for recipient_type in RECIPIENT_TYPE_ENUM:
        columns = " AND ".join(
            f"{other}_id IS {'NOT ' if other == recipient_type else ''}NULL"
            for other in RECIPIENT_TYPE_ENUM
        )
        clauses.append(f"(recipient_type = '{recipient_type}' AND {columns})")
    return " OR ".join(clauses)


class MonthlyCommission(Base):
    __tablename__ = "monthly_commissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    commission_id: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    recipient_type: Mapped[str] = mapped_column(String(30), nullable=False)

    location_partner_id: Mapped[int | None] = mapped_column(
        ForeignKey("location_partners.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    referral_partner_id: Mapped[int | None] = mapped_column(
        ForeignKey("referral_partners.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    channel_partner_id: Mapped[int | None] = mapped_column(
        ForeignKey("channel_partners.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    relationship_partner_id: Mapped[int | None] = mapped_column(
        ForeignKey("relationship_partners.id", ondelete="RESTRICT"), nullable=True, index=True
    )

    commission_month: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    # Unconstrained NUMERIC: percentage commissions are not rounded when stored.
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(), nullable=False)
    calculation_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    calculation_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    revenue_basis: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    location_partner: Mapped[LocationPartner | None] = relationship()
    referral_partner: Mapped[ReferralPartner | None] = relationship()
    channel_partner: Mapped[ChannelPartner | None] = relationship()
    relationship_partner: Mapped[RelationshipPartner | None] = relationship()

    __table_args__ = (
        CheckConstraint(
            "payment_status IN ('pending', 'paid')",
            name="ck_monthly_commissions_status_valid",
        ),
        CheckConstraint(_exactly_one_recipient_sql(), name="ck_monthly_commissions_one_recipient"),
        Index("idx_commissions_month_created", "commission_month", "created_at"),
    )

    @property
    def recipient(self) -> Recipient:
        return RECIPIENTS[self.recipient_type]

    @property
    def partner(self) -> PartnerMixin | None:
        return self.recipient.partner_of(self)

    @property
    def partner_id(self) -> int | None:
        return self.recipient.id_of(self)


class CommissionIdCounter(Base):
    """Last issued commission sequence number per calendar year."""

    __tablename__ = "commission_id_counters"

    year: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    last_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Recipient:
    """Binds a recipient type to its partner model and commission columns."""

    def __init__(self, recipient_type: str, model: type[PartnerMixin], column, relation) -> None:
        self.recipient_type = recipient_type
        self.model = model
        self.column = column
        self.relation = relation

    @property
    def column_name(self) -> str:
        return self.column.key

    def id_of(self, commission: MonthlyCommission) -> int | None:
        return getattr(commission, self.column.key)

    def partner_of(self, commission: MonthlyCommission) -> PartnerMixin | None:
        return getattr(commission, self.relation.key)

    def assign(self, commission: MonthlyCommission, partner_id: int) -> None:
        setattr(commission, self.column.key, partner_id)


RECIPIENTS: dict[str, Recipient] = {
    "location_partner": Recipient(
        "location_partner",
        LocationPartner,
        MonthlyCommission.location_partner_id,
        MonthlyCommission.location_partner,
    ),
    "referral_partner": Recipient(
        "referral_partner",
        ReferralPartner,
        MonthlyCommission.referral_partner_id,
        MonthlyCommission.referral_partner,
    ),
    "channel_partner": Recipient(
        "channel_partner",
        ChannelPartner,
        MonthlyCommission.channel_partner_id,
        MonthlyCommission.channel_partner,
    ),
    "relationship_partner": Recipient(
        "relationship_partner",
        RelationshipPartner,
        MonthlyCommission.relationship_partner_id,
        MonthlyCommission.relationship_partner,
    ),
}
