from datetime import date, datetime
from decimal import Decimal

from skyyield import crud
from skyyield.models import CommissionIdCounter, MonthlyCommission, ReferralPartner


def _seed_partner(session) -> ReferralPartner:
    partner = ReferralPartner(
        partner_code="RP-IDS",
        contact_name="Sequence Tester",
        status="active",
        commission_structure_type="flat_fee",
        commission_flat_fee_monthly=Decimal("100"),
    )
    session.add(partner)
    session.commit()
    session.refresh(partner)
    return partner


def _store_commission(session, partner, commission_id: str, created_at: datetime | None = None):
    commission = MonthlyCommission(
        commission_id=commission_id,
        recipient_type="referral_partner",
        referral_partner_id=partner.id,
        commission_month=date(2025, 1, 1),
        commission_amount=Decimal("100"),
        calculation_method="flat_fee",
        payment_status="pending",
    )
    if created_at is not None:
        commission.created_at = created_at
    session.add(commission)
    session.commit()
    return commission


def test_first_id_of_the_year(test_db):
    assert crud.next_commission_id(test_db, 2031) == "COMM-2031-001"
    assert crud.next_commission_id(test_db, 2031) == "COMM-2031-002"


def test_next_id_follows_latest_record(test_db):
    partner = _seed_partner(test_db)
    _store_commission(test_db, partner, "COMM-2025-006", created_at=datetime(2025, 2, 1, 9, 0))
    _store_commission(test_db, partner, "COMM-2025-007", created_at=datetime(2025, 2, 1, 10, 0))

    assert crud.latest_commission_sequence(test_db, 2025) == 7
    assert crud.next_commission_id(test_db, 2025) == "COMM-2025-008"


def test_years_have_independent_sequences(test_db):
    partner = _seed_partner(test_db)
    _store_commission(test_db, partner, "COMM-2024-015")

    assert crud.next_commission_id(test_db, 2025) == "COMM-2025-001"
    assert crud.next_commission_id(test_db, 2024) == "COMM-2024-016"


def test_counter_never_falls_behind_stored_ids(test_db):
    partner = _seed_partner(test_db)
    test_db.add(CommissionIdCounter(year=2025, last_seq=2))
    test_db.commit()
    _store_commission(test_db, partner, "COMM-2025-007")

    assert crud.next_commission_id(test_db, 2025) == "COMM-2025-008"


def test_counter_ahead_of_records_keeps_counting(test_db):
    test_db.add(CommissionIdCounter(year=2025, last_seq=41))
    test_db.commit()

    assert crud.next_commission_id(test_db, 2025) == "COMM-2025-042"
