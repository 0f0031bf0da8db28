"""Tests for payment commitments, message templates and catalogs."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from app import crud, schemas
from app.exceptions import CobranzaError, DuplicateError


async def _commitment(db, client, promised_date, amount="300"):
    return await crud.create_commitment(
        db, schemas.CommitmentCreate(client_id=client.id, promised_date=promised_date, promised_amount=Decimal(amount))
    )


@pytest.mark.asyncio
async def test_alerts_group_pending_commitments(db, make_client):
    client = await make_client()
    today = date(2024, 4, 10)
    overdue = await _commitment(db, client, today - timedelta(days=2))
    due = await _commitment(db, client, today)
    upcoming = await _commitment(db, client, today + timedelta(days=3))
    await _commitment(db, client, today + timedelta(days=4))
    fulfilled = await _commitment(db, client, today - timedelta(days=1))
    await crud.update_commitment(db, fulfilled.id, schemas.CommitmentUpdate(status="FULFILLED"))

    alerts = await crud.get_commitment_alerts(db, today)

    assert [c.id for c in alerts["overdue"]] == [overdue.id]
    assert [c.id for c in alerts["today"]] == [due.id]
    assert [c.id for c in alerts["upcoming"]] == [upcoming.id]


@pytest.mark.asyncio
async def test_linked_payment_must_belong_to_the_client(db, make_client, make_payment):
    client = await make_client()
    other = await make_client(legal_name="Otra SAC", tax_id="20999999999")
    foreign_payment = await make_payment(other, "300", date(2024, 4, 5))
    commitment = await _commitment(db, client, date(2024, 4, 5))

    with pytest.raises(CobranzaError):
        await crud.update_commitment(db, commitment.id, schemas.CommitmentUpdate(linked_payment_id=foreign_payment.id))

    own_payment = await make_payment(client, "300", date(2024, 4, 5))
    updated = await crud.update_commitment(
        db, commitment.id, schemas.CommitmentUpdate(linked_payment_id=own_payment.id, status="FULFILLED")
    )
    assert updated.linked_payment_id == own_payment.id


@pytest.mark.asyncio
async def test_commitment_endpoints(api, employee_headers, make_client):
    client = await make_client()

    created = await api.post(
        "/commitments/",
        json={"client_id": client.id, "promised_date": date.today().isoformat(), "promised_amount": "250"},
        headers=employee_headers,
    )
    assert created.status_code == 201
    assert created.json()["data"]["status"] == "PENDING"
    assert created.json()["data"]["responsible_user_id"] is not None

    alerts = await api.get("/commitments/alerts", headers=employee_headers)
    assert len(alerts.json()["data"]["today"]) == 1

    deleted = await api.delete(f"/commitments/{created.json()['data']['id']}", headers=employee_headers)
    assert deleted.json()["success"] is True


# --- PLANTILLAS ---
@pytest.mark.asyncio
async def test_one_template_per_classification(db):
    classification = await crud.get_classification_by_code(db, "B")
    await crud.create_template(db, schemas.TemplateCreate(classification_id=classification.id, name="B", body="Hola {cliente}"))

    with pytest.raises(DuplicateError):
        await crud.create_template(db, schemas.TemplateCreate(classification_id=classification.id, name="Otra", body="x"))


@pytest.mark.asyncio
async def test_template_preview_renders_client_debt(api, admin_headers, db, make_client):
    client = await make_client(classification="C", registered_at=date.today().replace(day=1))

    response = await api.get(f"/templates/preview/{client.id}", headers=admin_headers)

    data = response.json()["data"]
    assert data["channel_hint"] == "C"
    assert "EMPRESA DEMO S.A.C." in data["content"]
    assert "S/ 0.00" in data["content"]


@pytest.mark.asyncio
async def test_duplicate_template_via_api_is_400(api, admin_headers, db):
    classification = await crud.get_classification_by_code(db, "C")
    payload = {"classification_id": classification.id, "name": "Moroso", "body": "Pague S/ {monto}"}

    first = await api.post("/templates/", json=payload, headers=admin_headers)
    second = await api.post("/templates/", json=payload, headers=admin_headers)

    assert first.status_code == 201
    assert second.status_code == 400
    assert second.json()["success"] is False


# --- CATÁLOGOS ---
@pytest.mark.asyncio
async def test_classification_in_use_cannot_be_deleted(db, make_client):
    await make_client(classification="B")
    classification = await crud.get_classification_by_code(db, "B")

    with pytest.raises(CobranzaError):
        await crud.delete_classification(db, classification.id)


@pytest.mark.asyncio
async def test_portfolio_delete_is_logical(api, admin_headers):
    created = await api.post("/catalogs/portfolios", json={"name": "Cartera Norte"}, headers=admin_headers)
    portfolio_id = created.json()["data"]["id"]

    await api.delete(f"/catalogs/portfolios/{portfolio_id}", headers=admin_headers)

    listing = await api.get("/catalogs/portfolios", headers=admin_headers)
    assert [(p["name"], p["is_active"]) for p in listing.json()["data"]] == [("Cartera Norte", False)]
