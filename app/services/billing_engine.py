import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app import models
from app.crud import round_money

logger = logging.getLogger(__name__)

AUTOMATIC_METHOD = "AUTOMATIC"
ZERO = Decimal("0.00")


# --- CÁLCULO DE DEUDA ---
def month_start(value: date) -> date:
    return value.replace(day=1)

def parse_service_month(value: str) -> date:
    """Convierte 'YYYY-MM' al primer día del mes. Lanza ValueError si no es válido."""
    try:
        year, month = value.strip().split("-")[:2]
        return date(int(year), int(month), 1)
    except (ValueError, AttributeError):
        raise ValueError(f"Mes inválido '{value}', use el formato YYYY-MM")

def months_between(start: date, end: date) -> int:
    """Meses calendario entre dos fechas (nunca negativo). Ignora el día."""
    return max(0, (end.year * 12 + end.month) - (start.year * 12 + start.month))


@dataclass
class ConfirmedPayment:
    payment_date: date
    amount: Decimal


@dataclass
class DebtStatus:
    """
    Resultado del cálculo de antigüedad de deuda de un cliente.

    Attributes:
        anchor: Fecha del último pago confirmado o, si no hay, la fecha de alta.
        months_elapsed: Meses calendario entre el ancla y la fecha de referencia.
        paid_since_anchor: Suma de pagos confirmados desde el ancla (inclusive).
        outstanding: max(0, cuota * meses - pagado desde el ancla).
    """
    anchor: date
    last_payment_date: Optional[date]
    months_elapsed: int
    paid_since_anchor: Decimal
    total_paid: Decimal
    outstanding: Decimal


def compute_debt(
    registered_at: date,
    monthly_fee: Decimal,
    payments: Iterable[ConfirmedPayment],
    reference: date,
) -> DebtStatus:
    """
    Calcula la deuda de un cliente de cobro fijo a una fecha de referencia.

    Solo cuentan los pagos confirmados con fecha <= referencia. Si no han
    transcurrido meses desde el ancla la deuda es cero.
    """
    considered = [p for p in payments if p.payment_date <= reference]
    last_payment_date = max((p.payment_date for p in considered), default=None)
    anchor = last_payment_date or registered_at

    months = months_between(anchor, reference)
    paid_since_anchor = sum((Decimal(p.amount) for p in considered if p.payment_date >= anchor), ZERO)
    total_paid = sum((Decimal(p.amount) for p in considered), ZERO)

    outstanding = ZERO
    if months > 0:
        outstanding = max(ZERO, Decimal(monthly_fee or 0) * months - paid_since_anchor)

    return DebtStatus(
        anchor=anchor,
        last_payment_date=last_payment_date,
        months_elapsed=months,
        paid_since_anchor=round_money(paid_since_anchor),
        total_paid=round_money(total_paid),
        outstanding=round_money(outstanding),
    )


@dataclass
class LedgerEntry:
    client: models.Client
    debt: DebtStatus

    def as_dict(self) -> dict:
        return {
            "client_id": self.client.id,
            "legal_name": self.client.legal_name,
            "monthly_fee": round_money(self.client.monthly_fee or 0),
            "last_payment_date": self.debt.last_payment_date,
            "months_elapsed": self.debt.months_elapsed,
            "total_paid": self.debt.total_paid,
            "outstanding": self.debt.outstanding,
        }


def is_fixed_fee(client: models.Client) -> bool:
    return bool(client.applies_fixed_fee) and Decimal(client.monthly_fee or 0) > 0

def filter_eligible(clients: Sequence[models.Client], billed_client_ids: Set[int]) -> List[models.Client]:
    """
    Clientes de cobro fijo (cuota > 0) sin pago registrado para el mes objetivo.
    Cada cliente aparece una sola vez, ordenados por razón social.
    """
    seen = set()
    eligible = []
    for client in clients:
        if client.id in seen or client.id in billed_client_ids or not is_fixed_fee(client):
            continue
        seen.add(client.id)
        eligible.append(client)
    return sorted(eligible, key=lambda c: c.legal_name)


# --- LECTURA DEL LIBRO DE CLIENTES ---
async def _load_fixed_fee_clients(db: AsyncSession, client_ids: Optional[Sequence[int]] = None) -> List[models.Client]:
    query = select(models.Client).filter(
        models.Client.applies_fixed_fee == True,
        models.Client.monthly_fee > 0,
    )
    if client_ids is not None:
        query = query.filter(models.Client.id.in_(list(client_ids)))
    result = await db.execute(query.order_by(models.Client.legal_name.asc()))
    return list(result.scalars().all())

async def _load_confirmed_payments(
    db: AsyncSession, client_ids: Sequence[int], reference: date
) -> Dict[int, List[ConfirmedPayment]]:
    grouped: Dict[int, List[ConfirmedPayment]] = defaultdict(list)
    if not client_ids:
        return grouped

    query = select(
        models.Payment.client_id, models.Payment.payment_date, models.Payment.amount
    ).filter(
        models.Payment.client_id.in_(list(client_ids)),
        models.Payment.status == models.PaymentStatus.CONFIRMED.value,
        models.Payment.payment_date <= reference,
    )
    for client_id, payment_date, amount in (await db.execute(query)).all():
        grouped[client_id].append(ConfirmedPayment(payment_date=payment_date, amount=Decimal(amount)))
    return grouped

async def _billed_client_ids(db: AsyncSession, service_month: date) -> Set[int]:
    query = select(models.Payment.client_id).filter(models.Payment.service_month == service_month)
    return set((await db.execute(query)).scalars().all())

async def read_ledger(
    db: AsyncSession,
    reference: Optional[date] = None,
    client_ids: Optional[Sequence[int]] = None,
) -> List[LedgerEntry]:
    """
    Deuda de cada cliente de cobro fijo a la fecha de referencia.
    Ordenado por deuda descendente y luego por razón social.
    """
    reference = reference or date.today()
    clients = await _load_fixed_fee_clients(db, client_ids)
    payments = await _load_confirmed_payments(db, [c.id for c in clients], reference)

    entries = [
        LedgerEntry(
            client=c,
            debt=compute_debt(c.registered_at, c.monthly_fee, payments.get(c.id, []), reference),
        )
        for c in clients
    ]
    entries.sort(key=lambda e: (-e.debt.outstanding, e.client.legal_name))
    return entries

async def find_candidates(db: AsyncSession, service_month: date) -> List[LedgerEntry]:
    """
    Candidatos a la generación automática del mes: lectura puntual, la
    garantía de unicidad la da el INSERT del generador.
    """
    service_month = month_start(service_month)
    clients = await _load_fixed_fee_clients(db)
    eligible = filter_eligible(clients, await _billed_client_ids(db, service_month))
    payments = await _load_confirmed_payments(db, [c.id for c in eligible], service_month)

    return [
        LedgerEntry(
            client=c,
            debt=compute_debt(c.registered_at, c.monthly_fee, payments.get(c.id, []), service_month),
        )
        for c in eligible
    ]


# --- GENERACIÓN DE PAGOS ---
def _insert_for(db: AsyncSession):
    dialect = db.bind.dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise ValueError(f"Motor de base de datos no soportado para la generación: {dialect}")

async def _insert_payment_if_absent(
    db: AsyncSession, client_id: int, amount: Decimal, service_month: date, generation_date: date
) -> Optional[int]:
    """INSERT ... ON CONFLICT DO NOTHING. Retorna el id creado o None si ya existía."""
    insert = _insert_for(db)
    stmt = (
        insert(models.Payment)
        .values(
            client_id=client_id,
            amount=amount,
            payment_date=generation_date,
            service_month=service_month,
            status=models.PaymentStatus.PENDING.value,
            payment_method=AUTOMATIC_METHOD,
            concept=f"Pago automático generado para {service_month.strftime('%Y-%m')}",
        )
        .on_conflict_do_nothing(index_elements=["client_id", "service_month"])
        .returning(models.Payment.id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()

async def generate_payments(
    db: AsyncSession,
    service_month: date,
    client_ids: Optional[Sequence[int]] = None,
    generation_date: Optional[date] = None,
) -> dict:
    """
    Genera los pagos automáticos PENDING del mes para los candidatos.

    Cada cliente se confirma por separado: un fallo se registra y el
    lote continúa. Volver a ejecutar el mismo mes no genera nada.
    """
    service_month = month_start(service_month)
    generation_date = generation_date or date.today()
    label = service_month.strftime("%Y-%m")

    errors: List[str] = []
    if client_ids is None:
        clients = [entry.client for entry in await find_candidates(db, service_month)]
    else:
        requested = list(dict.fromkeys(client_ids))
        clients = await _load_fixed_fee_clients(db, requested)
        found = {c.id for c in clients}
        for missing in requested:
            if missing not in found:
                errors.append(f"Cliente #{missing} no existe o no aplica cobro fijo")

    # Un rollback expira las instancias: se copian los datos antes del bucle
    targets = [(c.id, c.legal_name, round_money(c.monthly_fee)) for c in clients]
    logger.info(f"🔄 Generando pagos automáticos {label}: {len(targets)} candidatos")

    generated = 0
    skipped = 0
    total_amount = ZERO
    for client_id, client_name, fee in targets:
        try:
            new_id = await _insert_payment_if_absent(db, client_id, fee, service_month, generation_date)
            await db.commit()
        except Exception as e:
            await db.rollback()
            logger.error(f"❌ Error generando pago de {client_name}: {e}")
            errors.append(f"{client_name}: {e}")
            continue

        if new_id is None:
            skipped += 1
        else:
            generated += 1
            total_amount += fee

    message = f"Se generaron {generated} pagos automáticos para {label}"
    if skipped:
        message += f" ({skipped} ya existían)"
    logger.info(f"✅ {message}")

    return {
        "service_month": service_month,
        "generated": generated,
        "skipped": skipped,
        "total_amount": round_money(total_amount),
        "errors": errors,
        "message": message,
    }
