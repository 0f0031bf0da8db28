import calendar
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app import crud, models
from app.exceptions import NotFoundError

logger = logging.getLogger(__name__)

GOOD_TAXPAYER_DIGIT = 99
DIGIT_GROUPS = (0, 1, 2, 4, 6, 8)

MONTH_NAMES = [
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
    "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
]

# ==============================================================================
#  CRONOGRAMA BASE
#  Día de vencimiento por periodo para los grupos 0, 1, 2-3, 4-5, 6-7, 8-9
#  y buenos contribuyentes. Vence el mes siguiente al periodo.
# ==============================================================================
BASE_DAYS = {
    1: (14, 15, 16, 17, 20, 21, 22),
    2: (13, 14, 17, 18, 19, 20, 21),
    3: (14, 17, 18, 19, 20, 21, 24),
    4: (14, 15, 16, 17, 20, 21, 22),
    5: (13, 14, 15, 16, 19, 20, 21),
    6: (13, 16, 17, 18, 19, 20, 23),
    7: (14, 15, 16, 17, 18, 21, 22),
    8: (13, 14, 15, 18, 19, 20, 21),
    9: (15, 16, 17, 18, 19, 22, 23),
    10: (13, 14, 15, 16, 17, 20, 21),
    11: (13, 14, 17, 18, 19, 20, 21),
    12: (15, 16, 17, 18, 19, 20, 21),
}


def base_schedule() -> List[Dict[str, int]]:
    """Filas del cronograma base, listas para `crud.replace_sunat_schedule`."""
    rows = []
    for month, days in BASE_DAYS.items():
        due_month = month % 12 + 1
        for digit, day in zip(DIGIT_GROUPS + (GOOD_TAXPAYER_DIGIT,), days):
            rows.append({"month": month, "ruc_digit": digit, "due_day": day, "due_month": due_month})
    return rows


def digit_group(last_digit: int) -> int:
    """Los dígitos se agrupan de a pares a partir del 2: 2-3, 4-5, 6-7, 8-9."""
    if last_digit <= 1:
        return last_digit
    return last_digit - last_digit % 2


def due_date(row: models.SunatSchedule) -> date:
    """Fecha de vencimiento de una fila; el periodo de diciembre vence al año siguiente."""
    year = row.year + 1 if row.due_month < row.month else row.year
    last_day = calendar.monthrange(year, row.due_month)[1]
    return date(year, row.due_month, min(row.due_day, last_day))


def due_date_for_digit(rows: Iterable[models.SunatSchedule], month: int, last_digit: int) -> Optional[date]:
    group = digit_group(last_digit)
    for row in rows:
        if row.month == month and row.ruc_digit == group:
            return due_date(row)
    return None


def group_by_month(rows: Iterable[models.SunatSchedule]) -> Dict[str, List[dict]]:
    grouped: Dict[str, List[dict]] = {}
    for row in rows:
        grouped.setdefault(MONTH_NAMES[row.month - 1], []).append({
            "id": row.id,
            "month": row.month,
            "ruc_digit": row.ruc_digit,
            "due_day": row.due_day,
            "due_month": row.due_month,
            "due_date": due_date(row),
        })
    return grouped


async def create_base_schedule(db: AsyncSession, year: int, user: Optional[str] = None):
    return await crud.replace_sunat_schedule(db, year, base_schedule(), user=user, must_be_new=True)


async def copy_schedule(db: AsyncSession, source_year: int, target_year: int, user: Optional[str] = None):
    source = await crud.get_sunat_schedule(db, source_year)
    if not source:
        raise NotFoundError(f"No existe cronograma activo para el año {source_year}")

    rows = [
        {"month": r.month, "ruc_digit": r.ruc_digit, "due_day": r.due_day, "due_month": r.due_month}
        for r in source
    ]
    return await crud.replace_sunat_schedule(db, target_year, rows, user=user, must_be_new=True)


async def next_due_date(db: AsyncSession, client: models.Client, reference: Optional[date] = None) -> Optional[date]:
    """
    Próximo vencimiento SUNAT del cliente según el último dígito de su RUC/DNI.
    Considera los cronogramas activos del año de referencia y del anterior
    (el periodo de diciembre vence en enero).
    """
    reference = reference or date.today()
    if client.tax_id_last_digit is None:
        return None

    group = digit_group(client.tax_id_last_digit)
    query = select(models.SunatSchedule).filter(
        models.SunatSchedule.year.in_([reference.year - 1, reference.year]),
        models.SunatSchedule.is_active == True,
        models.SunatSchedule.ruc_digit == group,
    )
    rows = (await db.execute(query)).scalars().all()
    upcoming = [d for d in (due_date(r) for r in rows) if d >= reference]
    return min(upcoming, default=None)


async def client_due_dates(db: AsyncSession, year: int, month: int) -> List[dict]:
    """Vencimientos del periodo para cada cliente activo, ordenados por fecha."""
    rows = await crud.get_sunat_schedule(db, year)
    if not rows:
        raise NotFoundError(f"No existe cronograma activo para el año {year}")

    result = await db.execute(
        select(models.Client)
        .filter(models.Client.status == models.ClientStatus.ACTIVE.value)
        .order_by(models.Client.legal_name.asc())
    )
    due_dates = []
    for client in result.scalars().all():
        if client.tax_id_last_digit is None:
            continue
        due_dates.append({
            "client_id": client.id,
            "legal_name": client.legal_name,
            "tax_id": client.tax_id,
            "tax_id_last_digit": client.tax_id_last_digit,
            "due_date": due_date_for_digit(rows, month, client.tax_id_last_digit),
        })

    missing = [d for d in due_dates if d["due_date"] is None]
    if missing:
        logger.warning(f"⚠️ Cronograma {year}-{month:02d} sin vencimiento para {len(missing)} clientes")
    due_dates.sort(key=lambda d: (d["due_date"] is None, d["due_date"] or date.max, d["legal_name"]))
    return due_dates
