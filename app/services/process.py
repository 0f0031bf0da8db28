import logging
from datetime import date
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app import crud
from app.config import Settings
from app.services.billing_engine import generate_payments, month_start
from app.services.classification import apply_classification
from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


async def run_monthly_process(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    settings: Settings,
    trigger: str = "MANUAL",
    today: Optional[date] = None,
    user_id: Optional[int] = None,
):
    """
    Proceso automático del mes en curso:
    1. Genera los pagos automáticos pendientes.
    2. Reclasifica a los clientes según su antigüedad de deuda.
    3. Envía recordatorios (si están habilitados).

    Cada paso registra sus errores y el siguiente se ejecuta igual.
    El resultado queda en la bitácora `process_runs`.
    """
    today = today or date.today()
    service_month = month_start(today)
    logger.info(f"⏰ Proceso automático ({trigger}) para {service_month.strftime('%Y-%m')}")

    errors = []
    generated = 0
    processed = 0
    reclassified = 0
    reminders = 0

    try:
        billing = await generate_payments(db, service_month, generation_date=today)
        generated = billing["generated"]
        processed = billing["generated"] + billing["skipped"]
        errors.extend(billing["errors"])
    except Exception as e:
        await db.rollback()
        logger.exception("❌ Falló la generación de pagos")
        errors.append(f"Generación: {e}")

    try:
        result = await apply_classification(db, reference=today, user_id=user_id)
        reclassified = result["updated"]
    except Exception as e:
        await db.rollback()
        logger.error(f"❌ Falló la clasificación automática: {e}")
        errors.append(f"Clasificación: {e}")

    if settings.reminders_enabled:
        try:
            summary = await dispatcher.send_reminders(db, reference=today, user_id=user_id)
            reminders = summary["sent"]
        except Exception as e:
            await db.rollback()
            logger.error(f"❌ Falló la campaña de recordatorios: {e}")
            errors.append(f"Recordatorios: {e}")

    status = "OK" if not errors else "WITH_ERRORS"
    summary_text = (
        f"{generated} pagos generados, {reclassified} clientes reclasificados, "
        f"{reminders} recordatorios enviados"
    )
    run = await crud.create_process_run(
        db,
        trigger=trigger,
        service_month=service_month,
        clients_processed=processed,
        payments_generated=generated,
        reclassified=reclassified,
        reminders_sent=reminders,
        errors="\n".join(errors) or None,
        summary=summary_text,
        status=status,
    )
    logger.info(f"✅ Proceso automático terminado: {summary_text}")
    return run
