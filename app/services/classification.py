import logging
from datetime import date
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app import crud
from app.exceptions import CobranzaError
from app.services.billing_engine import read_ledger

logger = logging.getLogger(__name__)


def classify_months(months_elapsed: int) -> str:
    """A = al día, B = 1 a 2 meses de deuda, C = 3 meses o más."""
    if months_elapsed <= 0:
        return "A"
    if months_elapsed <= 2:
        return "B"
    return "C"


async def compute_changes(
    db: AsyncSession,
    reference: Optional[date] = None,
    client_ids: Optional[Sequence[int]] = None,
) -> List[dict]:
    """Clasificación sugerida de cada cliente de cobro fijo según su antigüedad de deuda."""
    changes = []
    for entry in await read_ledger(db, reference, client_ids):
        client = entry.client
        current = client.classification.code if client.classification else None
        # Sin saldo pendiente el cliente está al día aunque el ancla sea antigua
        new_code = "A" if entry.debt.outstanding <= 0 else classify_months(entry.debt.months_elapsed)
        changes.append({
            "client_id": client.id,
            "legal_name": client.legal_name,
            "current_code": current,
            "new_code": new_code,
            "months_elapsed": entry.debt.months_elapsed,
            "outstanding": entry.debt.outstanding,
            "requires_change": current != new_code,
        })
    return changes


async def apply_classification(
    db: AsyncSession,
    client_ids: Optional[Sequence[int]] = None,
    reference: Optional[date] = None,
    user_id: Optional[int] = None,
) -> dict:
    """
    Aplica los cambios de clasificación pendientes y deja cada cambio en el
    historial. Retorna {updated, changes}.
    """
    catalog = {c.code: c for c in await crud.get_classifications(db)}
    missing = {"A", "B", "C"} - set(catalog)
    if missing:
        raise CobranzaError(f"Faltan clasificaciones en el catálogo: {', '.join(sorted(missing))}")

    changes = [c for c in await compute_changes(db, reference, client_ids) if c["requires_change"]]
    for change in changes:
        client = await crud.get_client(db, change["client_id"])
        crud.add_classification_history(
            db,
            client,
            change["new_code"],
            months_elapsed=change["months_elapsed"],
            outstanding=change["outstanding"],
            user_id=user_id,
        )
        # Se asigna la relación para que la sesión no quede con la clasificación anterior
        client.classification = catalog[change["new_code"]]

    if changes:
        await db.commit()
    logger.info(f"🏷️ Clasificación automática: {len(changes)} clientes actualizados")
    return {"updated": len(changes), "changes": changes}
