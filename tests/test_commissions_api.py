from datetime import date
from decimal import Decimal
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from skyyield import crud
from skyyield import models  # noqa: F401  (registers tables on Base)
from skyyield.auth import User
from skyyield.database import Base, get_session
from skyyield.main import app
from skyyield.models import ChannelPartner, LocationPartner, MonthlyCommission, ReferralPartner
from skyyield.routers.auth import get_current_user


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


def _client_for(db_session, user):
    def override_session():
        try:
            yield db_session
        finally:
            db_session.rollback()

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_current_user] = lambda: user
    return TestClient(app)


@pytest.fixture()
def client(db_session):
    user = User.create_user("commissions-admin", "secret", role="admin")
    db_session.add(user)
    db_session.commit()

    try:
        yield _client_for(db_session, user)
    finally:
        app.dependency_overrides.pop(get_session, None)
        app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture()
def partners(db_session):
    referral = ReferralPartner(
        partner_code="RP-100",
        contact_name="Rae Referral",
        company_name="Rae Ventures",
        tipalti_payee_id="TP-RAE",
        status="active",
        commission_structure_type="per_referral",
        commission_per_referral=Decimal("15"),
    )
    channel = ChannelPartner(
        partner_code="CP-100",
        contact_name="Cal Channel",
        company_name="Channel Works",
        status="active",
        commission_structure_type="percentage",
        commission_percentage=Decimal("12.5"),
    )
    location = LocationPartner(
        partner_code="LP-100",
        contact_name="Lou Location",
        company_name="Corner Cafe",
        status="pending",
        commission_structure_type="hybrid",
        commission_flat_fee_monthly=Decimal("50"),
        commission_percentage=Decimal("10"),
    )
    db_session.add_all([referral, channel, location])
    db_session.commit()
    for index in range(7):
        db_session.add(
            LocationPartner(
                partner_code=f"LP-REF-{index}",
                contact_name=f"Referred Venue {index}",
                status="active",
                activation_date=date(2025, 3, 1 + index),
                referred_by_partner_type="referral_partner",
                referred_by_partner_id=referral.id,
            )
        )
    db_session.commit()
    return {"referral": referral, "channel": channel, "location": location}


def _calculate(client, partner_type, partner_id, month="2025-03-01", **extra):
    body = {"action": "calculate", "partnerId": partner_id, "partnerType": partner_type, "month": month}
    body.update(extra)
    return client.post("/api/admin/commissions", json=body)


def test_calculate_per_referral(client, partners):
    resp = _calculate(client, "referral_partner", partners["referral"].id)

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["message"] == "Commission calculated: $105.00"
    commission = data["commission"]
    assert commission["commission_amount"] == 105.0
    assert commission["calculation_method"] == "per_referral"
    assert commission["commission_month"] == "2025-03-01"
    assert commission["payment_status"] == "pending"
    assert commission["payment_date"] is None
    assert commission["referral_partner_id"] == partners["referral"].id
    assert commission["location_partner_id"] is None
    assert commission["partner_name"] == "Rae Referral"
    assert commission["commission_id"] == f"COMM-{date.today().year}-001"


def test_calculate_path_alias(client, partners):
    resp = client.post(
        "/api/admin/commissions/calculate",
        json={
            "partnerId": partners["channel"].id,
            "partnerType": "channel_partner",
            "month": "2025-03",
            "revenueBasis": 1000,
        },
    )

    assert resp.status_code == 200
    assert resp.json()["commission"]["commission_amount"] == 125.0


def test_calculate_percentage_requires_revenue_basis(client, partners, db_session):
    resp = _calculate(client, "channel_partner", partners["channel"].id)

    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "error": "Revenue basis required for percentage calculation",
    }
    assert db_session.query(MonthlyCommission).count() == 0


def test_calculate_hybrid_without_basis(client, partners):
    resp = _calculate(client, "location_partner", partners["location"].id)

    assert resp.status_code == 200
    assert resp.json()["commission"]["commission_amount"] == 50.0

    resp = _calculate(client, "location_partner", partners["location"].id, revenueBasis=200)
    assert resp.json()["commission"]["commission_amount"] == 70.0


def test_calculate_errors(client, partners, db_session):
    resp = _calculate(client, "vendor_partner", partners["channel"].id)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid partner type"

    resp = _calculate(client, "channel_partner", 9999)
    assert resp.status_code == 404
    assert resp.json()["error"] == "Partner not found"

    partners["channel"].commission_structure_type = None
    db_session.commit()
    resp = _calculate(client, "channel_partner", partners["channel"].id, revenueBasis=100)
    assert resp.status_code == 400
    assert resp.json()["error"] == "No commission structure set"

    resp = client.post("/api/admin/commissions", json={"action": "calculate", "partnerType": "channel_partner"})
    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert "partnerId" in resp.json()["error"]


def test_direct_insert(client, partners):
    resp = client.post(
        "/api/admin/commissions",
        json={
            "recipient_type": "channel_partner",
            "partner_id": partners["channel"].id,
            "commission_month": "2025-02-01",
            "commission_amount": 310.5,
            "calculation_method": "percentage",
            "calculation_details": "Imported from spreadsheet",
            "revenue_basis": 2484,
            "notes": "Q1 true-up",
        },
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "Commission record created"
    assert data["commission"]["commission_amount"] == 310.5
    assert data["commission"]["channel_partner_id"] == partners["channel"].id
    assert data["commission"]["notes"] == "Q1 true-up"
    assert data["commission"]["payment_status"] == "pending"


def test_direct_insert_rejects_unknown_recipient_type(client, partners):
    resp = client.post(
        "/api/admin/commissions",
        json={
            "recipient_type": "vendor_partner",
            "partner_id": 1,
            "commission_month": "2025-02-01",
            "commission_amount": 10,
        },
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid partner type"


def test_mark_paid(client, partners):
    created = _calculate(client, "referral_partner", partners["referral"].id).json()["commission"]

    resp = client.put(
        "/api/admin/commissions",
        json={
            "id": created["id"],
            "payment_status": "paid",
            "payment_date": "2025-04-05",
            "payment_method": "Tipalti",
            "payment_reference": "PAY-9",
        },
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["message"] == "Commission updated"
    assert data["commission"]["payment_status"] == "paid"
    assert data["commission"]["payment_date"] == "2025-04-05"
    assert data["commission"]["payment_method"] == "Tipalti"
    assert data["commission"]["payment_reference"] == "PAY-9"


def test_status_update_requires_id(client):
    resp = client.put("/api/admin/commissions", json={"payment_status": "paid"})

    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Commission ID required"}


def test_status_update_unknown_commission(client):
    resp = client.put("/api/admin/commissions", json={"id": 404, "payment_status": "paid"})

    assert resp.status_code == 404


def test_list_with_stats_and_filters(client, partners):
    referral_id = _calculate(client, "referral_partner", partners["referral"].id).json()["commission"]["id"]
    _calculate(client, "channel_partner", partners["channel"].id, revenueBasis=1000)
    _calculate(client, "location_partner", partners["location"].id, month="2025-04-01")
    client.put("/api/admin/commissions", json={"id": referral_id, "payment_status": "paid"})

    resp = client.get("/api/admin/commissions")
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["stats"] == {
        "totalRecords": 3,
        "pendingCount": 2,
        "paidCount": 1,
        "totalPending": 175.0,
        "totalPaid": 105.0,
    }
    assert data["commissions"][0]["commission_month"] == "2025-04-01"
    assert data["commissions"][0]["company_name"] == "Corner Cafe"

    march = client.get("/api/admin/commissions", params={"month": "2025-03-01"}).json()
    assert march["stats"]["totalRecords"] == 2

    paid = client.get("/api/admin/commissions", params={"status": "paid"}).json()
    assert [item["id"] for item in paid["commissions"]] == [referral_id]

    channel = client.get("/api/admin/commissions", params={"partner_type": "channel_partner"}).json()
    assert channel["stats"]["totalPending"] == 125.0

    bad = client.get("/api/admin/commissions", params={"status": "voided"})
    assert bad.status_code == 400


def test_export_xlsx(client, partners):
    _calculate(client, "referral_partner", partners["referral"].id)

    resp = client.get("/api/admin/commissions/export", params={"month": "2025-03"})

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert "commissions_2025_03.xlsx" in resp.headers["content-disposition"]
    workbook = load_workbook(BytesIO(resp.content))
    assert workbook.sheetnames == ["Commissions", "Summary"]
    rows = list(workbook["Commissions"].iter_rows(values_only=True))
    assert rows[0][0] == "commission_id"
    assert rows[1][4] == "Rae Referral"
    assert len(rows) == 2


def test_staff_user_is_forbidden(db_session):
    staff = User.create_user("staffer", "secret", role="staff")
    db_session.add(staff)
    db_session.commit()
    try:
        client = _client_for(db_session, staff)
        resp = client.get("/api/admin/commissions")
        assert resp.status_code == 403
        assert resp.json() == {"success": False, "error": "Admin access required"}
    finally:
        app.dependency_overrides.pop(get_session, None)
        app.dependency_overrides.pop(get_current_user, None)


def test_store_failure_returns_error_envelope(client, monkeypatch):
    def unavailable(*args, **kwargs):
        raise OperationalError("SELECT monthly_commissions.id", {}, Exception("connection refused"))

    monkeypatch.setattr(crud, "list_commissions", unavailable)

    resp = client.get("/api/admin/commissions")

    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Failed to process commission request"}


def test_paid_commission_gets_missing_reference(client, partners):
    created = _calculate(client, "referral_partner", partners["referral"].id).json()["commission"]
    client.put("/api/admin/commissions", json={"id": created["id"], "payment_status": "paid"})

    resp = client.put(
        "/api/admin/commissions",
        json={"id": created["id"], "payment_status": "paid", "payment_reference": "PAY-LATE"},
    )

    assert resp.status_code == 200
    assert resp.json()["commission"]["payment_reference"] == "PAY-LATE"

    again = client.put("/api/admin/commissions", json={"id": created["id"], "payment_status": "paid"})
    assert again.status_code == 400
    assert again.json()["error"] == f"Commission {created['commission_id']} is already paid"
