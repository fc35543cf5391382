"""Commission calculation rules.

Everything here is pure: no database access, no clock. The service layer loads
the partner, counts referrals where needed and hands the numbers over.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal

from skyyield.core.formatting import format_money, format_percent
from skyyield.errors import MissingInput, UnconfiguredStructure

ZERO = Decimal("0")
HUNDRED = Decimal("100")

COMMISSION_ID_PREFIX = "COMM"
COMMISSION_ID_PATTERN = re.compile(r"COMM-\d+-(\d+)")


@dataclass(frozen=True)
class CommissionStructure:
    type: str | None
    flat_fee_monthly: Decimal | None = None
    percentage: Decimal | None = None
    per_referral_amount: Decimal | None = None

    @classmethod
    def from_partner(cls, partner, *, per_referral: bool = True) -> CommissionStructure:
        """Read the commission settings stored on a partner row."""
        return cls(
            type=partner.commission_structure_type,
            flat_fee_monthly=partner.commission_flat_fee_monthly,
            percentage=partner.commission_percentage,
            per_referral_amount=partner.commission_per_referral if per_referral else None,
        )


@dataclass(frozen=True)
class CalculationContext:
    revenue_basis: Decimal | None = None
    referral_count: int | None = None


@dataclass(frozen=True)
class CommissionResult:
    amount: Decimal
    method: str
    details: str


def _or_zero(value: Decimal | None) -> Decimal:
    return ZERO if value is None else Decimal(value)


def _percentage_of(basis: Decimal, rate: Decimal) -> Decimal:
    return Decimal(basis) * rate / HUNDRED


def calculate(structure: CommissionStructure, context: CalculationContext) -> CommissionResult:
    """Compute a month's commission for a structure.

    ``percentage`` needs a revenue basis and raises :class:`MissingInput`
    without one. ``hybrid`` treats a missing basis as a zero percentage
    component instead. ``per_referral`` treats a missing count as zero.
    """
    method = structure.type

    if method == "flat_fee":
        amount = _or_zero(structure.flat_fee_monthly)
        return CommissionResult(amount, method, f"Flat fee: {format_money(amount)}/month")

    if method == "percentage":
        if context.revenue_basis is None:
            raise MissingInput("Revenue basis required for percentage calculation")
        rate = _or_zero(structure.percentage)
        amount = _percentage_of(context.revenue_basis, rate)
        details = (
            f"{format_percent(rate)} of {format_money(context.revenue_basis)} = {format_money(amount)}"
        )
        return CommissionResult(amount, method, details)

    if method == "per_referral":
        count = context.referral_count or 0
        per_referral = _or_zero(structure.per_referral_amount)
        amount = per_referral * count
        details = f"{count} referrals x {format_money(per_referral)} = {format_money(amount)}"
        return CommissionResult(amount, method, details)

    if method == "hybrid":
        flat_part = _or_zero(structure.flat_fee_monthly)
        rate = _or_zero(structure.percentage)
        basis = context.revenue_basis
        percent_part = ZERO if basis is None else _percentage_of(basis, rate)
        amount = flat_part + percent_part
        details = (
            f"{format_money(flat_part)} flat + {format_percent(rate)} of "
            f"{format_money(basis)} = {format_money(amount)}"
        )
        return CommissionResult(amount, method, details)

    raise UnconfiguredStructure("No commission structure set")


def format_commission_id(year: int, sequence: int) -> str:
    return f"{COMMISSION_ID_PREFIX}-{year}-{sequence:03d}"


def parse_commission_sequence(commission_id: str | None) -> int | None:
    """Extract the trailing sequence number from ``COMM-2025-007`` style IDs."""
    if not commission_id:
        return None
    match = COMMISSION_ID_PATTERN.match(commission_id)
    if not match:
        return None
    return int(match.group(1))
