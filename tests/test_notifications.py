"""Tests for template rendering, the dispatcher and the reminder campaign."""

import json
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy.future import select

from app import models
from app.exceptions import CobranzaError
from app.services.notifications import (
    NotificationDispatcher,
    WhatsAppTransport,
    default_template,
    render_template,
)

from conftest import FakeTransport


def test_render_template_replaces_every_token():
    client = SimpleNamespace(legal_name="ACME SAC", contact_name="Ana")
    body = "{cliente} / {contacto} / S/ {monto} / {fecha} / {mes} / {cliente}"

    text = render_template(body, client, Decimal("1500"), date(2024, 4, 1), date(2024, 4, 1))

    assert text == "ACME SAC / Ana / S/ 1500.00 / 01/04/2024 / 2024-04 / ACME SAC"


def test_default_templates_by_classification():
    assert "deuda vencida" in default_template("C")
    assert "pago pendiente" in default_template("B")
    assert default_template(None) == default_template("Z")


@pytest.mark.asyncio
async def test_whatsapp_transport_posts_to_evolution(settings):
    calls = []

    def handler(request: httpx.Request):
        calls.append(request)
        return httpx.Response(201, json={"key": {"id": "ABC123"}})

    settings.evolution_base_url = "https://evo.test"
    settings.evolution_instance_key = "cobranza"
    settings.evolution_token = "tok"

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        result = await WhatsAppTransport(settings, http).send("51999888777", "Hola")

    assert result.success is True
    assert result.detail == "ABC123"
    assert str(calls[0].url) == "https://evo.test/message/sendText/cobranza"
    assert calls[0].headers["Authorization"] == "Bearer tok"
    assert json.loads(calls[0].content) == {"number": "51999888777", "text": "Hola"}


@pytest.mark.asyncio
async def test_whatsapp_transport_disabled_is_a_failed_send(settings):
    result = await WhatsAppTransport(settings).send("51999888777", "Hola")
    assert result.success is False


@pytest.mark.asyncio
async def test_dispatch_records_sent_notification(db, settings, make_client):
    whatsapp = FakeTransport()
    dispatcher = NotificationDispatcher(settings, whatsapp=whatsapp, email=FakeTransport())
    client = await make_client(phone="51999888777")

    notification = await dispatcher.dispatch(db, client, "Recordatorio", "WHATSAPP")

    assert notification.status == "SENT"
    assert notification.recipient == "51999888777"
    assert notification.detail == "msg-1"
    assert len(whatsapp.sent) == 1


@pytest.mark.asyncio
async def test_dispatch_without_recipient_is_a_validation_error(db, settings, make_client):
    dispatcher = NotificationDispatcher(settings, whatsapp=FakeTransport(), email=FakeTransport())
    client = await make_client()

    with pytest.raises(CobranzaError):
        await dispatcher.dispatch(db, client, "Hola", "EMAIL")


@pytest.mark.asyncio
async def test_unknown_channel_is_recorded_as_failed(db, settings, make_client):
    dispatcher = NotificationDispatcher(settings, whatsapp=FakeTransport(), email=FakeTransport())
    client = await make_client(phone="51999888777")

    notification = await dispatcher.dispatch(db, client, "Hola", "SMS")

    assert notification.status == "FAILED"
    assert "SMS" in notification.detail


@pytest.mark.asyncio
async def test_one_failure_does_not_abort_the_batch(db, settings, make_client):
    whatsapp = FakeTransport(fail_for={"51900000002"})
    dispatcher = NotificationDispatcher(settings, whatsapp=whatsapp, email=FakeTransport())
    first = await make_client(legal_name="Uno SAC", tax_id="20000000001", phone="51900000001")
    second = await make_client(legal_name="Dos SAC", tax_id="20000000002", phone="51900000002")
    third = await make_client(legal_name="Tres SAC", tax_id="20000000003")  # sin teléfono
    fourth = await make_client(legal_name="Cuatro SAC", tax_id="20000000004", phone="51900000004")

    summary = await dispatcher.dispatch_many(db, [
        (first, "a", "WHATSAPP", None),
        (second, "b", "WHATSAPP", None),
        (third, "c", "WHATSAPP", None),
        (fourth, "d", "WHATSAPP", None),
    ])

    assert summary["sent"] == 2
    assert summary["failed"] == 2
    assert [r["status"] for r in summary["results"]] == ["SENT", "FAILED", "FAILED", "SENT"]

    result = await db.execute(select(models.Notification).order_by(models.Notification.id))
    statuses = [n.status for n in result.scalars().all()]
    assert statuses == ["SENT", "FAILED", "SENT"]


@pytest.mark.asyncio
async def test_reminders_target_overdue_b_and_c_clients(db, settings, make_client, make_payment):
    whatsapp = FakeTransport()
    dispatcher = NotificationDispatcher(settings, whatsapp=whatsapp, email=FakeTransport(enabled=False))

    await make_client(legal_name="Cronico SAC", tax_id="20000000001", phone="51900000001", classification="C")
    current = await make_client(legal_name="Al Dia SAC", tax_id="20000000002", phone="51900000002", classification="B")
    await make_client(legal_name="Clase A SAC", tax_id="20000000003", phone="51900000003", classification="A")
    await make_payment(current, "500", date(2024, 4, 1))

    summary = await dispatcher.send_reminders(db, reference=date(2024, 4, 10))

    assert summary["sent"] == 1
    assert [to for to, _, _ in whatsapp.sent] == ["51900000001"]
    text = whatsapp.sent[0][1][0]
    assert "Cronico SAC" in text
    assert "1500.00" in text


@pytest.mark.asyncio
async def test_reminders_skip_recently_notified_clients(db, settings, make_client):
    whatsapp = FakeTransport()
    dispatcher = NotificationDispatcher(settings, whatsapp=whatsapp, email=FakeTransport(enabled=False))
    client = await make_client(phone="51900000001", classification="C")

    db.add(models.Notification(
        client_id=client.id,
        channel="WHATSAPP",
        recipient="51900000001",
        content="Recordatorio previo",
        status="SENT",
        sent_at=datetime.now(timezone.utc) - timedelta(days=2),
    ))
    await db.commit()

    summary = await dispatcher.send_reminders(db, reference=date.today())

    assert summary["sent"] == 0
    assert summary["skipped"] == 1
    assert whatsapp.sent == []


@pytest.mark.asyncio
async def test_reminders_use_classification_template(db, settings, make_client):
    whatsapp = FakeTransport()
    dispatcher = NotificationDispatcher(settings, whatsapp=whatsapp, email=FakeTransport(enabled=False))
    client = await make_client(phone="51900000001", classification="C", contact_name="Luis")
    db.add(models.MessageTemplate(
        classification_id=client.classification_id, name="Moroso", body="Hola {contacto}, debe S/ {monto}",
    ))
    await db.commit()

    await dispatcher.send_reminders(db, reference=date(2024, 4, 1))

    assert whatsapp.sent[0][1][0].endswith("Hola Luis, debe S/ 1500.00")


@pytest.mark.asyncio
async def test_send_endpoint_records_failed_delivery(api, employee_headers, whatsapp, make_client):
    client = await make_client(phone="51900000009")
    whatsapp.fail_for.add("51900000009")

    response = await api.post(
        "/notifications/send",
        json={"client_id": client.id, "channel": "WHATSAPP", "content": "Hola"},
        headers=employee_headers,
    )

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "FAILED"

    history = await api.get("/notifications/", params={"client_id": client.id}, headers=employee_headers)
    assert [n["status"] for n in history.json()["data"]] == ["FAILED"]


@pytest.mark.asyncio
async def test_channels_endpoint(api, employee_headers):
    response = await api.get("/notifications/channels", headers=employee_headers)
    assert response.json()["data"] == {"whatsapp": True, "email": True, "sms": False}


# --- ERRORES DEL TRANSPORTE ---
@pytest.mark.asyncio
async def test_transport_exception_is_recorded_as_failed(db, settings, make_client):
    whatsapp = FakeTransport(raise_for={"51999888777"})
    dispatcher = NotificationDispatcher(settings, whatsapp=whatsapp, email=FakeTransport())
    client = await make_client(phone="51999888777")

    notification = await dispatcher.dispatch(db, client, "Recordatorio", "WHATSAPP")

    assert notification.status == "FAILED"
    assert notification.detail == "conexión reiniciada"
    assert notification.sent_at is not None

    result = await db.execute(select(models.Notification))
    assert [n.status for n in result.scalars().all()] == ["FAILED"]


@pytest.mark.asyncio
async def test_batch_continues_after_transport_exception(db, settings, make_client):
    whatsapp = FakeTransport(raise_for={"51900000001"})
    dispatcher = NotificationDispatcher(settings, whatsapp=whatsapp, email=FakeTransport())
    first = await make_client(legal_name="Uno SAC", tax_id="20000000001", phone="51900000001")
    second = await make_client(legal_name="Dos SAC", tax_id="20000000002")  # sin teléfono
    third = await make_client(legal_name="Tres SAC", tax_id="20000000003", phone="51900000003")

    summary = await dispatcher.dispatch_many(db, [
        (first, "a", "WHATSAPP", None),
        (second, "b", "WHATSAPP", None),
        (third, "c", "WHATSAPP", None),
    ])

    assert [r["status"] for r in summary["results"]] == ["FAILED", "FAILED", "SENT"]
    assert summary["results"][2]["client"] == "Tres SAC"

    result = await db.execute(select(models.Notification).order_by(models.Notification.id))
    assert [n.status for n in result.scalars().all()] == ["FAILED", "SENT"]


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [{"key": "ABC123"}, {"key": {}}, ["ok"]])
async def test_whatsapp_unexpected_body_is_a_failed_send(settings, body):
    settings.evolution_base_url = "https://evo.test"
    settings.evolution_instance_key = "cobranza"
    settings.evolution_token = "tok"

    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
    async with httpx.AsyncClient(transport=transport) as http:
        result = await WhatsAppTransport(settings, http).send("51999888777", "Hola")

    assert result.success is False
