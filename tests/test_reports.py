"""Tests for the delinquency, cash-flow and fixed-income reports."""

import csv
import io
from datetime import date
from decimal import Decimal

import pytest

from app import models
from app.exceptions import CobranzaError
from app.services.reports import (
    cash_flow_report,
    collection_rate,
    delinquency_report,
    fixed_income_projection,
    to_csv,
)

REFERENCE = date(2024, 4, 10)


@pytest.fixture
async def portfolio(db):
    portfolio = models.Portfolio(name="Norte")
    db.add(portfolio)
    await db.commit()
    await db.refresh(portfolio)
    return portfolio


@pytest.fixture
async def book(db, make_client, make_payment, portfolio):
    """Tres clientes de S/ 500: uno sin pagos, uno al día y uno con dos meses de atraso."""
    debtor = await make_client(
        legal_name="Moroso SAC", tax_id="20000000001", classification="C", portfolio_id=portfolio.id
    )
    current = await make_client(legal_name="Al Dia SAC", tax_id="20000000002", classification="A")
    late = await make_client(legal_name="Atrasado SAC", tax_id="20000000003", classification="B")
    await make_payment(current, "500", date(2024, 4, 1))
    await make_payment(late, "500", date(2024, 2, 5))

    db.add(models.PaymentCommitment(
        client_id=debtor.id, promised_date=date(2024, 4, 1), promised_amount=Decimal("500"), status="PENDING",
    ))
    await db.commit()
    return {"debtor": debtor, "current": current, "late": late}


@pytest.mark.parametrize("paid,pending,rate", [
    ("500", "0", "100.00"),
    ("500", "1000", "33.33"),
    ("0", "0", "0"),
])
def test_collection_rate(paid, pending, rate):
    assert collection_rate(Decimal(paid), Decimal(pending)) == Decimal(rate)


# --- MOROSIDAD ---
@pytest.mark.asyncio
async def test_delinquency_lists_debtors_by_outstanding(db, book):
    report = await delinquency_report(db, REFERENCE)

    rows = report["clients"]
    assert [r["legal_name"] for r in rows] == ["Moroso SAC", "Atrasado SAC"]
    assert rows[0]["outstanding"] == Decimal("1500.00")
    assert rows[0]["overdue_commitments"] == 1
    assert rows[0]["days_without_payment"] is None
    assert rows[1]["days_without_payment"] == 65

    summary = report["summary"]
    assert summary["outstanding"] == Decimal("2500.00")
    assert summary["by_classification"]["C"] == {"clients": 1, "outstanding": Decimal("1500.00")}
    assert summary["by_classification"]["B"]["clients"] == 1


# --- FLUJO DE CAJA ---
@pytest.mark.asyncio
async def test_cash_flow_by_digit_for_a_month(db, book):
    report = await cash_flow_report(db, "digit", 2024, 4, reference=REFERENCE)

    rows = {r["category"]: r for r in report["rows"]}
    assert len(rows) == 10
    assert report["rows"][0]["category"] == "2"
    assert rows["2"]["total_paid"] == Decimal("500.00")
    assert rows["2"]["collection_rate"] == Decimal("100.00")
    assert rows["1"]["outstanding"] == Decimal("1500.00")
    # El pago de febrero queda fuera del periodo
    assert rows["3"]["total_paid"] == Decimal("0")
    assert report["summary"]["total_paid"] == Decimal("500.00")


@pytest.mark.asyncio
async def test_cash_flow_by_portfolio_includes_unassigned(db, book):
    report = await cash_flow_report(db, "portfolio", reference=REFERENCE)

    assert [(r["category"], r["clients"]) for r in report["rows"]] == [("Sin cartera", 2), ("Norte", 1)]
    unassigned = report["rows"][0]
    assert unassigned["total_paid"] == Decimal("1000.00")
    assert unassigned["average_per_client"] == Decimal("500.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("kwargs", [{"group_by": "service"}, {"month": 4}, {"year": 2024, "month": 13}])
async def test_cash_flow_rejects_bad_filters(db, kwargs):
    with pytest.raises(CobranzaError):
        await cash_flow_report(db, **kwargs)


# --- INGRESO FIJO PROYECTADO ---
@pytest.mark.asyncio
async def test_fixed_income_projection_starts_at_registration(db, make_client, make_payment):
    first = await make_client(legal_name="Enero SAC", tax_id="20000000001")
    await make_client(legal_name="Julio SAC", tax_id="20000000002", monthly_fee=Decimal("300"), registered_at=date(2024, 7, 15))
    await make_client(legal_name="Variable SAC", tax_id="20000000003", applies_fixed_fee=False, monthly_fee=Decimal("0"))
    await make_payment(first, "500", date(2024, 4, 3))

    report = await fixed_income_projection(db, 2024)

    assert report["clients"] == 2
    assert report["annual_total"] == Decimal("7800.00")
    by_month = {m["month"]: m for m in report["by_month"]}
    assert by_month["JUN"]["projected"] == Decimal("500.00")
    assert by_month["JUL"]["projected"] == Decimal("800.00")
    assert by_month["ABR"]["collected"] == Decimal("500.00")

    julio = next(r for r in report["rows"] if r["legal_name"] == "Julio SAC")
    assert julio["months"]["JUN"] == Decimal("0")


# --- EXPORTACIÓN ---
def test_csv_uses_report_columns():
    content = to_csv("cash-flow", [{"category": "1", "clients": 2, "total_paid": Decimal("10.00"), "extra": "x"}])

    rows = list(csv.reader(io.StringIO(content)))
    assert rows[0] == ["category", "clients", "total_paid", "outstanding", "collection_rate", "average_per_client"]
    assert rows[1] == ["1", "2", "10.00", "", "", ""]


@pytest.mark.asyncio
async def test_report_endpoints(api, employee_headers, customer_headers, book):
    denied = await api.get("/reports/delinquency", headers=customer_headers)
    assert denied.status_code == 403

    delinquency = await api.get("/reports/delinquency", params={"fecha": "2024-04-10"}, headers=employee_headers)
    assert [r["legal_name"] for r in delinquency.json()["data"]["clients"]] == ["Moroso SAC", "Atrasado SAC"]

    flow = await api.get("/reports/cash-flow", params={"agrupar": "portfolio"}, headers=employee_headers)
    assert flow.json()["data"]["rows"][0]["category"] == "Sin cartera"

    exported = await api.get("/reports/delinquency/export", params={"fecha": "2024-04-10"}, headers=employee_headers)
    assert exported.status_code == 200
    assert exported.headers["content-type"].startswith("text/csv")
    lines = exported.text.splitlines()
    assert lines[0].startswith("legal_name,tax_id")
    assert lines[1].startswith("Moroso SAC,20000000001")


@pytest.mark.asyncio
async def test_unknown_report_export_is_rejected(api, employee_headers):
    response = await api.get("/reports/ventas/export", headers=employee_headers)
    assert response.status_code == 400
    assert response.json()["success"] is False
