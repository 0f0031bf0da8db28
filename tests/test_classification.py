"""Tests for automatic A/B/C classification and the monthly process."""

from datetime import date

import pytest
from sqlalchemy import delete

from app import crud, models
from app.exceptions import CobranzaError
from app.services.classification import apply_classification, classify_months, compute_changes
from app.services.process import run_monthly_process
from app.services.notifications import NotificationDispatcher

from conftest import FakeTransport


@pytest.mark.parametrize("months,code", [(0, "A"), (1, "B"), (2, "B"), (3, "C"), (14, "C")])
def test_classify_months(months, code):
    assert classify_months(months) == code


@pytest.mark.asyncio
async def test_changes_are_computed_from_debt_age(db, make_client, make_payment):
    up_to_date = await make_client(legal_name="Al Dia SAC", tax_id="20000000001", classification="C")
    await make_client(legal_name="Moroso SAC", tax_id="20000000002", classification="C")
    await make_payment(up_to_date, "500", date(2024, 4, 1))

    changes = await compute_changes(db, date(2024, 4, 20))

    by_name = {c["legal_name"]: c for c in changes}
    assert by_name["Al Dia SAC"]["new_code"] == "A"
    assert by_name["Al Dia SAC"]["requires_change"] is True
    assert by_name["Moroso SAC"]["new_code"] == "C"
    assert by_name["Moroso SAC"]["requires_change"] is False


@pytest.mark.asyncio
async def test_apply_updates_only_pending_changes(db, make_client):
    client = await make_client(registered_at=date(2024, 3, 1))

    result = await apply_classification(db, reference=date(2024, 4, 15))

    assert result["updated"] == 1
    refreshed = await crud.get_client(db, client.id)
    assert refreshed.classification.code == "B"

    again = await apply_classification(db, reference=date(2024, 4, 15))
    assert again["updated"] == 0


@pytest.mark.asyncio
async def test_apply_requires_full_catalog(db, make_client):
    await db.execute(delete(models.Classification).where(models.Classification.code == "C"))
    await db.commit()

    with pytest.raises(CobranzaError):
        await apply_classification(db)


@pytest.mark.asyncio
async def test_apply_endpoint_is_admin_only(api, admin_headers, employee_headers, make_client):
    await make_client()

    denied = await api.post("/classification/apply", json={}, headers=employee_headers)
    assert denied.status_code == 403

    applied = await api.post("/classification/apply", json={}, headers=admin_headers)
    assert applied.json()["data"]["updated"] == 1


@pytest.mark.asyncio
async def test_monthly_process_records_a_run(db, settings, make_client):
    whatsapp = FakeTransport()
    dispatcher = NotificationDispatcher(settings, whatsapp=whatsapp, email=FakeTransport(enabled=False))
    await make_client(phone="51900000001", registered_at=date(2024, 1, 1))

    run = await run_monthly_process(db, dispatcher, settings, trigger="MANUAL", today=date(2024, 4, 2))

    assert run.status == "OK"
    assert run.service_month == date(2024, 4, 1)
    assert run.payments_generated == 1
    assert run.reclassified == 1
    assert run.reminders_sent == 1
    assert [to for to, _, _ in whatsapp.sent] == ["51900000001"]

    runs = await crud.get_process_runs(db)
    assert [r.id for r in runs] == [run.id]


@pytest.mark.asyncio
async def test_monthly_process_keeps_going_after_a_failed_step(db, settings, make_client):
    dispatcher = NotificationDispatcher(settings, whatsapp=FakeTransport(), email=FakeTransport())
    await make_client(phone="51900000001")
    await db.execute(delete(models.Classification).where(models.Classification.code == "A"))
    await db.commit()

    run = await run_monthly_process(db, dispatcher, settings, today=date(2024, 4, 2))

    assert run.status == "WITH_ERRORS"
    assert "Clasificación" in run.errors
    assert run.payments_generated == 1


@pytest.mark.asyncio
async def test_prepaid_client_without_outstanding_is_a(db, make_client, make_payment):
    # Pagó tres meses por adelantado en enero: a abril no debe nada
    client = await make_client(registered_at=date(2024, 1, 1), classification="C")
    await make_payment(client, "1500", date(2024, 1, 5))

    changes = await compute_changes(db, date(2024, 4, 10))

    assert changes[0]["months_elapsed"] == 3
    assert changes[0]["new_code"] == "A"
    assert changes[0]["requires_change"] is True


# --- HISTORIAL ---
@pytest.mark.asyncio
async def test_apply_records_history(db, make_client):
    client = await make_client(registered_at=date(2024, 1, 1), classification="A")
    admin = await crud.get_user_by_email(db, "admin@jdconsultores.com.pe")

    await apply_classification(db, reference=date(2024, 4, 15), user_id=admin.id)

    history = await crud.get_classification_history(db, client.id)
    assert len(history) == 1
    entry = history[0]
    assert (entry.previous_code, entry.new_code, entry.reason) == ("A", "C", "AUTOMATIC")
    assert entry.months_elapsed == 3
    assert entry.outstanding == 1500
    assert entry.responsible_user_id == admin.id


@pytest.mark.asyncio
async def test_manual_reclassification_is_recorded(api, employee_headers, db, make_client):
    client = await make_client(classification="A")
    code_c = await crud.get_classification_by_code(db, "C")

    updated = await api.put(f"/clients/{client.id}", json={"classification_id": code_c.id}, headers=employee_headers)
    assert updated.status_code == 200

    history = await api.get("/classification/history", params={"client_id": client.id}, headers=employee_headers)
    rows = history.json()["data"]
    assert [(r["previous_code"], r["new_code"], r["reason"]) for r in rows] == [("A", "C", "MANUAL")]

    # Repetir la misma clasificación no genera otro registro
    await api.put(f"/clients/{client.id}", json={"classification_id": code_c.id}, headers=employee_headers)
    again = await api.get("/classification/history", params={"client_id": client.id}, headers=employee_headers)
    assert len(again.json()["data"]) == 1
