import csv
import io
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app import models
from app.crud import round_money
from app.exceptions import CobranzaError
from app.services.billing_engine import month_start, read_ledger

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
NO_PORTFOLIO = "Sin cartera"
MONTH_KEYS = ["ENE", "FEB", "MAR", "ABR", "MAY", "JUN", "JUL", "AGO", "SEP", "OCT", "NOV", "DIC"]


def collection_rate(paid: Decimal, outstanding: Decimal) -> Decimal:
    """Porcentaje cobrado sobre lo esperado (pagado + pendiente)."""
    expected = paid + outstanding
    if expected <= 0:
        return ZERO
    return round_money(paid / expected * 100)


def _period_bounds(year: Optional[int], month: Optional[int]):
    if month and not year:
        raise CobranzaError("Para filtrar por mes se debe indicar el año")
    if not year:
        return None, None
    if month:
        if not 1 <= month <= 12:
            raise CobranzaError("El mes debe estar entre 1 y 12")
        start = date(year, month, 1)
        end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        return start, end
    return date(year, 1, 1), date(year + 1, 1, 1)


# --- MOROSIDAD ---
async def _overdue_commitments(db: AsyncSession, reference: date) -> Dict[int, int]:
    query = (
        select(models.PaymentCommitment.client_id, func.count(models.PaymentCommitment.id))
        .filter(
            models.PaymentCommitment.status == models.CommitmentStatus.PENDING.value,
            models.PaymentCommitment.promised_date < reference,
        )
        .group_by(models.PaymentCommitment.client_id)
    )
    return {client_id: count for client_id, count in (await db.execute(query)).all()}

async def delinquency_report(db: AsyncSession, reference: Optional[date] = None) -> dict:
    """
    Clientes de cobro fijo con saldo pendiente a la fecha de referencia,
    ordenados por deuda descendente, con el resumen por clasificación.
    """
    reference = reference or date.today()
    overdue = await _overdue_commitments(db, reference)

    rows = []
    by_classification = defaultdict(lambda: {"clients": 0, "outstanding": ZERO})
    for entry in await read_ledger(db, reference):
        if entry.debt.outstanding <= 0:
            continue
        client = entry.client
        code = client.classification.code if client.classification else None
        last_payment = entry.debt.last_payment_date

        rows.append({
            "client_id": client.id,
            "legal_name": client.legal_name,
            "tax_id": client.tax_id,
            "contact_name": client.contact_name,
            "email": client.email,
            "phone": client.phone,
            "classification": code,
            "monthly_fee": round_money(client.monthly_fee or 0),
            "months_elapsed": entry.debt.months_elapsed,
            "total_paid": entry.debt.total_paid,
            "outstanding": entry.debt.outstanding,
            "last_payment_date": last_payment,
            "days_without_payment": (reference - last_payment).days if last_payment else None,
            "overdue_commitments": overdue.get(client.id, 0),
        })
        bucket = by_classification[code or "SIN"]
        bucket["clients"] += 1
        bucket["outstanding"] += entry.debt.outstanding

    total = sum((r["outstanding"] for r in rows), ZERO)
    logger.info(f"📊 Morosidad al {reference}: {len(rows)} clientes, S/ {total}")
    return {
        "reference": reference,
        "summary": {
            "clients": len(rows),
            "outstanding": round_money(total),
            "by_classification": dict(sorted(by_classification.items())),
        },
        "clients": rows,
    }


# --- FLUJO DE CAJA ---
async def _paid_by_client(db: AsyncSession, start: Optional[date], end: Optional[date]) -> Dict[int, Decimal]:
    query = select(models.Payment.client_id, func.sum(models.Payment.amount)).filter(
        models.Payment.status == models.PaymentStatus.CONFIRMED.value
    )
    if start:
        query = query.filter(models.Payment.payment_date >= start, models.Payment.payment_date < end)
    query = query.group_by(models.Payment.client_id)
    return {client_id: Decimal(total or 0) for client_id, total in (await db.execute(query)).all()}

def _flow_row(category: str, clients: Sequence[models.Client], paid: Dict[int, Decimal], outstanding: Dict[int, Decimal]) -> dict:
    total_paid = sum((paid.get(c.id, ZERO) for c in clients), ZERO)
    pending = sum((outstanding.get(c.id, ZERO) for c in clients), ZERO)
    return {
        "category": category,
        "clients": len(clients),
        "total_paid": round_money(total_paid),
        "outstanding": round_money(pending),
        "collection_rate": collection_rate(total_paid, pending),
        "average_per_client": round_money(total_paid / len(clients)) if clients else ZERO,
    }

async def cash_flow_report(
    db: AsyncSession,
    group_by: str = "digit",
    year: Optional[int] = None,
    month: Optional[int] = None,
    reference: Optional[date] = None,
) -> dict:
    """
    Flujo de caja agrupado por último dígito del RUC (`digit`) o por cartera
    (`portfolio`). Lo pagado cuenta los pagos confirmados del periodo (todo
    el histórico si no se indica año); el saldo pendiente es el del libro
    de clientes a la fecha de referencia.
    """
    if group_by not in ("digit", "portfolio"):
        raise CobranzaError("Agrupación no válida: use 'digit' o 'portfolio'")
    start, end = _period_bounds(year, month)
    reference = reference or date.today()

    result = await db.execute(
        select(models.Client).filter(models.Client.status == models.ClientStatus.ACTIVE.value)
    )
    clients = result.scalars().all()
    paid = await _paid_by_client(db, start, end)
    outstanding = {e.client.id: e.debt.outstanding for e in await read_ledger(db, reference)}

    rows = []
    if group_by == "digit":
        for digit in range(10):
            members = [c for c in clients if c.tax_id_last_digit == digit]
            rows.append(_flow_row(str(digit), members, paid, outstanding))
    else:
        portfolios = (await db.execute(
            select(models.Portfolio).filter(models.Portfolio.is_active == True).order_by(models.Portfolio.name)
        )).scalars().all()
        for portfolio in portfolios:
            members = [c for c in clients if c.portfolio_id == portfolio.id]
            rows.append(_flow_row(portfolio.name, members, paid, outstanding))
        unassigned = [c for c in clients if c.portfolio_id is None]
        if unassigned:
            rows.append(_flow_row(NO_PORTFOLIO, unassigned, paid, outstanding))

    rows.sort(key=lambda r: r["total_paid"], reverse=True)
    total_paid = sum((r["total_paid"] for r in rows), ZERO)
    total_outstanding = sum((r["outstanding"] for r in rows), ZERO)
    return {
        "group_by": group_by,
        "period": {"year": year, "month": month},
        "summary": {
            "total_paid": round_money(total_paid),
            "outstanding": round_money(total_outstanding),
            "collection_rate": collection_rate(total_paid, total_outstanding),
        },
        "rows": rows,
    }


# --- INGRESO FIJO PROYECTADO ---
async def fixed_income_projection(db: AsyncSession, year: int) -> dict:
    """
    Ingreso fijo esperado por mes del año: la cuota de cada cliente activo de
    cobro fijo desde su mes de alta, junto a lo cobrado por mes de servicio.
    """
    result = await db.execute(
        select(models.Client)
        .filter(
            models.Client.status == models.ClientStatus.ACTIVE.value,
            models.Client.applies_fixed_fee == True,
            models.Client.monthly_fee > 0,
        )
        .order_by(models.Client.legal_name.asc())
    )
    clients = result.scalars().all()

    collected_query = (
        select(models.Payment.service_month, func.sum(models.Payment.amount))
        .filter(
            models.Payment.status == models.PaymentStatus.CONFIRMED.value,
            models.Payment.service_month >= date(year, 1, 1),
            models.Payment.service_month < date(year + 1, 1, 1),
        )
        .group_by(models.Payment.service_month)
    )
    collected = {m.month: Decimal(total or 0) for m, total in (await db.execute(collected_query)).all()}

    rows = []
    projected_totals = [ZERO] * 12
    for client in clients:
        start = month_start(client.registered_at)
        months = {}
        for index, key in enumerate(MONTH_KEYS):
            service_month = date(year, index + 1, 1)
            amount = round_money(client.monthly_fee) if service_month >= start else ZERO
            months[key] = amount
            projected_totals[index] += amount
        rows.append({
            "client_id": client.id,
            "legal_name": client.legal_name,
            "tax_id": client.tax_id,
            "registered_at": client.registered_at,
            "monthly_fee": round_money(client.monthly_fee),
            "months": months,
        })

    summary = [
        {
            "month": key,
            "projected": round_money(projected_totals[index]),
            "collected": round_money(collected.get(index + 1, ZERO)),
        }
        for index, key in enumerate(MONTH_KEYS)
    ]
    return {
        "year": year,
        "clients": len(rows),
        "annual_total": round_money(sum(projected_totals, ZERO)),
        "by_month": summary,
        "rows": rows,
    }


# --- EXPORTACIÓN ---
EXPORT_COLUMNS = {
    "delinquency": [
        "legal_name", "tax_id", "contact_name", "email", "phone", "classification",
        "total_paid", "outstanding", "months_elapsed", "days_without_payment", "overdue_commitments",
    ],
    "cash-flow": ["category", "clients", "total_paid", "outstanding", "collection_rate", "average_per_client"],
    "fixed-income": ["legal_name", "tax_id", "registered_at", "monthly_fee"] + MONTH_KEYS,
}

def export_rows(kind: str, report: dict) -> List[dict]:
    """Filas planas del reporte, en el orden de columnas de la exportación."""
    if kind == "delinquency":
        return report["clients"]
    if kind == "cash-flow":
        return report["rows"]
    if kind == "fixed-income":
        return [dict(row, **row["months"]) for row in report["rows"]]
    raise CobranzaError(f"Tipo de reporte no válido: {kind}")

def to_csv(kind: str, rows: List[dict]) -> str:
    columns = EXPORT_COLUMNS.get(kind)
    if columns is None:
        raise CobranzaError(f"Tipo de reporte no válido: {kind}")

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: "" if row.get(k) is None else row.get(k) for k in columns})
    return buffer.getvalue()
