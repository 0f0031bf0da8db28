"""Tests for the monthly automatic payment generation."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func
from sqlalchemy.future import select

from app import models
from app.services.billing_engine import find_candidates, generate_payments, read_ledger


async def _payments_for(db, client_id):
    result = await db.execute(select(models.Payment).filter(models.Payment.client_id == client_id))
    return result.scalars().all()


@pytest.mark.asyncio
async def test_generates_one_pending_payment_for_the_month(db, make_client):
    client = await make_client(tax_id="12345678901")

    result = await generate_payments(db, date(2024, 4, 1), generation_date=date(2024, 4, 2))

    assert result["generated"] == 1
    assert result["skipped"] == 0
    assert result["total_amount"] == Decimal("500.00")
    assert result["errors"] == []

    payments = await _payments_for(db, client.id)
    assert len(payments) == 1
    payment = payments[0]
    assert payment.service_month == date(2024, 4, 1)
    assert payment.amount == Decimal("500.00")
    assert payment.status == "PENDING"
    assert payment.payment_method == "AUTOMATIC"
    assert payment.concept == "Pago automático generado para 2024-04"


@pytest.mark.asyncio
async def test_rerun_for_same_month_generates_nothing(db, make_client):
    client = await make_client(tax_id="12345678901")

    await generate_payments(db, date(2024, 4, 1))
    second = await generate_payments(db, date(2024, 4, 1))

    assert second["generated"] == 0
    assert len(await _payments_for(db, client.id)) == 1


@pytest.mark.asyncio
async def test_concurrent_triggers_insert_only_once(db, session_factory, make_client):
    client = await make_client()

    async with session_factory() as other:
        # Ambos disparos pasan la lectura de elegibilidad antes de insertar
        first_read = await find_candidates(db, date(2024, 4, 1))
        second_read = await find_candidates(other, date(2024, 4, 1))
        assert [e.client.id for e in first_read] == [client.id]
        assert [e.client.id for e in second_read] == [client.id]

        first = await generate_payments(db, date(2024, 4, 1), [e.client.id for e in first_read])
        second = await generate_payments(other, date(2024, 4, 1), [e.client.id for e in second_read])

    assert first["generated"] == 1
    assert second["generated"] == 0
    assert second["skipped"] == 1

    count = (await db.execute(
        select(func.count(models.Payment.id)).filter(models.Payment.client_id == client.id)
    )).scalar()
    assert count == 1


@pytest.mark.asyncio
async def test_eligibility_excludes_clients_already_billed(db, make_client, make_payment):
    billed = await make_client(legal_name="Billed SAC", tax_id="20000000001")
    await make_client(legal_name="Pending SAC", tax_id="20000000002")
    await make_client(legal_name="Variable SAC", tax_id="20000000003", applies_fixed_fee=False, monthly_fee=Decimal("0"))
    # Un pago de cualquier estado para el mes excluye al cliente
    await make_payment(billed, "500", date(2024, 4, 5), status="REJECTED")

    candidates = await find_candidates(db, date(2024, 4, 1))

    assert [e.client.legal_name for e in candidates] == ["Pending SAC"]
    assert candidates[0].debt.outstanding == Decimal("1500.00")


@pytest.mark.asyncio
async def test_requested_ids_that_do_not_apply_are_reported(db, make_client):
    fixed = await make_client(tax_id="20000000001")
    variable = await make_client(
        legal_name="Variable SAC", tax_id="20000000002", applies_fixed_fee=False, monthly_fee=Decimal("0")
    )

    result = await generate_payments(db, date(2024, 4, 1), [fixed.id, variable.id, 9999])

    assert result["generated"] == 1
    assert len(result["errors"]) == 2
    assert any("9999" in e for e in result["errors"])


@pytest.mark.asyncio
async def test_ledger_sorted_by_outstanding(db, make_client, make_payment):
    up_to_date = await make_client(legal_name="Al Dia SAC", tax_id="20000000001")
    await make_client(legal_name="Moroso SAC", tax_id="20000000002")
    await make_payment(up_to_date, "500", date(2024, 4, 1))

    ledger = await read_ledger(db, date(2024, 4, 15))

    assert [e.client.legal_name for e in ledger] == ["Moroso SAC", "Al Dia SAC"]
    assert ledger[0].debt.outstanding == Decimal("1500.00")
    assert ledger[1].debt.outstanding == Decimal("0.00")
    assert ledger[1].as_dict()["total_paid"] == Decimal("500.00")
