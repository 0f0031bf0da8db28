import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Dict, Any, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func, or_, delete

from . import models, schemas
from .exceptions import NotFoundError, DuplicateError, CobranzaError
from .security import get_password_hash

logger = logging.getLogger(__name__)

# --- UTILIDADES ---
def round_money(amount: Decimal) -> Decimal:
    """Redondea un monto a 2 decimales."""
    return Decimal(amount).quantize(Decimal("0.01"))

def paginate_meta(total: int, page: int, limit: int) -> Dict[str, int]:
    # Cálculo seguro de páginas
    total_pages = (total + limit - 1) // limit if limit > 0 else 0
    return {"total": total, "page": page, "limit": limit, "total_pages": total_pages}

async def _commit_unique(db: AsyncSession, message: str):
    """
    Confirma la transacción. Solo la violación de unicidad se traduce a
    DuplicateError; cualquier otra restricción se reporta como CobranzaError.
    """
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if _is_unique_violation(e):
            logger.warning(f"Violación de unicidad: {e.orig}")
            raise DuplicateError(message)
        logger.warning(f"Violación de integridad: {e.orig}")
        raise CobranzaError("Los datos enviados no cumplen las restricciones de la base de datos")

def _is_unique_violation(error: IntegrityError) -> bool:
    # asyncpg expone el SQLSTATE (23505); sqlite solo el texto del error
    if getattr(error.orig, "sqlstate", None) == "23505":
        return True
    return "unique" in str(error.orig).lower()

# --- CLIENTES ---
async def get_clients(
    db: AsyncSession,
    page: int = 1,
    limit: int = 50,
    search: Optional[str] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Obtiene el listado paginado de clientes.

    Args:
        db (AsyncSession): Sesión de base de datos.
        page (int): Número de página.
        limit (int): Registros por página.
        search (str, optional): Filtro por razón social, RUC/DNI o email.
        status (str, optional): ACTIVE / INACTIVE.

    Returns:
        Dict: Estructura con 'data' (lista) y 'meta' (paginación).
    """
    offset = (page - 1) * limit
    conditions = []

    if status:
        conditions.append(models.Client.status == status)
    if search:
        search_term = f"%{search}%"
        conditions.append(
            or_(
                models.Client.legal_name.ilike(search_term),
                models.Client.tax_id.ilike(search_term),
                models.Client.email.ilike(search_term),
            )
        )

    # 1. Conteo Rápido (Count ID)
    count_query = select(func.count(models.Client.id)).filter(*conditions)
    total = (await db.execute(count_query)).scalar() or 0

    # 2. Obtener Datos
    query = (
        select(models.Client)
        .filter(*conditions)
        .order_by(models.Client.legal_name.asc())
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(query)

    return {"data": result.scalars().all(), "meta": paginate_meta(total, page, limit)}

async def search_clients(db: AsyncSession, term: str, limit: int = 10) -> List[models.Client]:
    """Búsqueda rápida para autocompletado (solo activos)."""
    search_term = f"%{term}%"
    query = (
        select(models.Client)
        .filter(
            models.Client.status == models.ClientStatus.ACTIVE.value,
            or_(models.Client.legal_name.ilike(search_term), models.Client.tax_id.ilike(search_term)),
        )
        .order_by(models.Client.legal_name.asc())
        .limit(limit)
    )
    result = await db.execute(query)
    return result.scalars().all()

async def get_client(db: AsyncSession, client_id: int) -> models.Client:
    result = await db.execute(select(models.Client).filter(models.Client.id == client_id))
    client = result.scalars().first()
    if not client:
        raise NotFoundError("Cliente no encontrado")
    return client

async def get_client_by_tax_id(db: AsyncSession, tax_id: str):
    """Busca un cliente por su RUC/DNI."""
    result = await db.execute(select(models.Client).filter(models.Client.tax_id == tax_id))
    return result.scalars().first()

async def _check_client_refs(db: AsyncSession, data: Dict[str, Any]):
    """Valida que la clasificación y la cartera referenciadas existan."""
    if data.get("classification_id") is not None:
        await get_classification(db, data["classification_id"])
    if data.get("portfolio_id") is not None:
        await get_portfolio(db, data["portfolio_id"])

async def create_client(db: AsyncSession, client: schemas.ClientCreate) -> models.Client:
    if await get_client_by_tax_id(db, client.tax_id):
        raise DuplicateError(f"Ya existe un cliente con RUC/DNI {client.tax_id}")

    data = client.model_dump()
    await _check_client_refs(db, data)
    data["registered_at"] = data.get("registered_at") or date.today()
    db_client = models.Client(
        **data,
        tax_id_last_digit=int(client.tax_id[-1]),
        status=models.ClientStatus.ACTIVE.value,
    )
    db.add(db_client)
    await _commit_unique(db, f"Ya existe un cliente con RUC/DNI {client.tax_id}")
    await db.refresh(db_client)
    logger.info(f"👤 Cliente creado: {db_client.legal_name} ({db_client.tax_id})")
    return db_client

async def update_client(
    db: AsyncSession, client_id: int, update: schemas.ClientUpdate, user_id: Optional[int] = None
) -> models.Client:
    db_client = await get_client(db, client_id)
    data = update.model_dump(exclude_unset=True)
    await _check_client_refs(db, data)

    new_classification = None
    if data.get("classification_id") not in (None, db_client.classification_id):
        new_classification = await get_classification(db, data["classification_id"])
        add_classification_history(
            db, db_client, new_classification.code, reason="MANUAL", user_id=user_id
        )

    for key, value in data.items():
        setattr(db_client, key, value)
    if new_classification is not None:
        db_client.classification = new_classification

    # El monto fijo no aplica si se desactiva el cobro fijo
    if not db_client.applies_fixed_fee:
        db_client.monthly_fee = Decimal("0")

    await _commit_unique(db, "Ya existe un cliente con esos datos")
    await db.refresh(db_client)
    return db_client

async def set_client_status(db: AsyncSession, client_id: int, status: str) -> models.Client:
    """Los clientes nunca se borran: solo se activan o desactivan."""
    db_client = await get_client(db, client_id)
    db_client.status = status
    await db.commit()
    await db.refresh(db_client)
    return db_client

# --- PAGOS ---
async def get_payments(
    db: AsyncSession,
    page: int = 1,
    limit: int = 50,
    client_id: Optional[int] = None,
    status: Optional[str] = None,
    service_month: Optional[date] = None,
) -> Dict[str, Any]:
    offset = (page - 1) * limit
    conditions = []

    if client_id:
        conditions.append(models.Payment.client_id == client_id)
    if status:
        conditions.append(models.Payment.status == status)
    if service_month:
        conditions.append(models.Payment.service_month == service_month)

    count_query = select(func.count(models.Payment.id)).filter(*conditions)
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        select(models.Payment)
        .filter(*conditions)
        .order_by(models.Payment.payment_date.desc(), models.Payment.id.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(query)

    return {"data": result.scalars().all(), "meta": paginate_meta(total, page, limit)}

async def get_payment(db: AsyncSession, payment_id: int) -> models.Payment:
    result = await db.execute(select(models.Payment).filter(models.Payment.id == payment_id))
    payment = result.scalars().first()
    if not payment:
        raise NotFoundError("Pago no encontrado")
    return payment

async def create_payment(db: AsyncSession, payment: schemas.PaymentCreate) -> models.Payment:
    """Registra un pago manual. Solo se admite un pago por cliente y mes de servicio."""
    await get_client(db, payment.client_id)

    db_payment = models.Payment(**payment.model_dump())
    db.add(db_payment)
    await _commit_unique(
        db, f"El cliente ya tiene un pago registrado para {payment.service_month.strftime('%Y-%m')}"
    )
    await db.refresh(db_payment)
    return db_payment

async def update_payment_status(db: AsyncSession, payment_id: int, status: str) -> models.Payment:
    db_payment = await get_payment(db, payment_id)
    if (
        db_payment.status == models.PaymentStatus.CONFIRMED.value
        and status != db_payment.status
        and await get_receipt_by_payment(db, payment_id)
    ):
        raise CobranzaError("El pago tiene un recibo emitido y no puede dejar de estar confirmado")
    db_payment.status = status
    await db.commit()
    await db.refresh(db_payment)
    logger.info(f"💵 Pago #{payment_id} -> {status}")
    return db_payment

async def delete_payment(db: AsyncSession, payment_id: int):
    db_payment = await get_payment(db, payment_id)
    if db_payment.status == models.PaymentStatus.CONFIRMED.value:
        raise CobranzaError("No se puede eliminar un pago confirmado")
    if await get_receipt_by_payment(db, payment_id):
        raise CobranzaError("No se puede eliminar un pago con recibo emitido")
    await db.delete(db_payment)
    await db.commit()

# --- COMPROMISOS DE PAGO ---
async def create_commitment(
    db: AsyncSession, commitment: schemas.CommitmentCreate, user_id: Optional[int] = None
) -> models.PaymentCommitment:
    await get_client(db, commitment.client_id)

    db_commitment = models.PaymentCommitment(
        **commitment.model_dump(),
        status=models.CommitmentStatus.PENDING.value,
        responsible_user_id=user_id,
    )
    db.add(db_commitment)
    await db.commit()
    await db.refresh(db_commitment)
    return db_commitment

async def get_commitments(
    db: AsyncSession, client_id: Optional[int] = None, status: Optional[str] = None
) -> List[models.PaymentCommitment]:
    conditions = []
    if client_id:
        conditions.append(models.PaymentCommitment.client_id == client_id)
    if status:
        conditions.append(models.PaymentCommitment.status == status)

    query = (
        select(models.PaymentCommitment)
        .filter(*conditions)
        .order_by(models.PaymentCommitment.promised_date.asc())
    )
    result = await db.execute(query)
    return result.scalars().all()

async def get_commitment(db: AsyncSession, commitment_id: int) -> models.PaymentCommitment:
    result = await db.execute(
        select(models.PaymentCommitment).filter(models.PaymentCommitment.id == commitment_id)
    )
    commitment = result.scalars().first()
    if not commitment:
        raise NotFoundError("Compromiso no encontrado")
    return commitment

async def update_commitment(
    db: AsyncSession, commitment_id: int, update: schemas.CommitmentUpdate
) -> models.PaymentCommitment:
    db_commitment = await get_commitment(db, commitment_id)
    data = update.model_dump(exclude_unset=True)

    if data.get("linked_payment_id"):
        payment = await get_payment(db, data["linked_payment_id"])
        if payment.client_id != db_commitment.client_id:
            raise CobranzaError("El pago vinculado pertenece a otro cliente")

    for key, value in data.items():
        setattr(db_commitment, key, value)

    await db.commit()
    await db.refresh(db_commitment)
    return db_commitment

async def delete_commitment(db: AsyncSession, commitment_id: int):
    db_commitment = await get_commitment(db, commitment_id)
    await db.delete(db_commitment)
    await db.commit()

async def get_commitment_alerts(db: AsyncSession, today: Optional[date] = None, window_days: int = 3) -> Dict[str, list]:
    """
    Agrupa los compromisos pendientes en vencidos, de hoy y próximos
    (dentro de `window_days` días).
    """
    today = today or date.today()
    query = (
        select(models.PaymentCommitment)
        .filter(
            models.PaymentCommitment.status == models.CommitmentStatus.PENDING.value,
            models.PaymentCommitment.promised_date <= today + timedelta(days=window_days),
        )
        .order_by(models.PaymentCommitment.promised_date.asc())
    )
    result = await db.execute(query)

    alerts = {"overdue": [], "today": [], "upcoming": []}
    for commitment in result.scalars().all():
        if commitment.promised_date < today:
            alerts["overdue"].append(commitment)
        elif commitment.promised_date == today:
            alerts["today"].append(commitment)
        else:
            alerts["upcoming"].append(commitment)
    return alerts

# --- PLANTILLAS ---
async def get_templates(db: AsyncSession) -> List[models.MessageTemplate]:
    result = await db.execute(select(models.MessageTemplate).order_by(models.MessageTemplate.classification_id))
    return result.scalars().all()

async def get_template(db: AsyncSession, template_id: int) -> models.MessageTemplate:
    result = await db.execute(select(models.MessageTemplate).filter(models.MessageTemplate.id == template_id))
    template = result.scalars().first()
    if not template:
        raise NotFoundError("Plantilla no encontrada")
    return template

async def get_template_by_classification(db: AsyncSession, classification_id: Optional[int]):
    if classification_id is None:
        return None
    result = await db.execute(
        select(models.MessageTemplate).filter(models.MessageTemplate.classification_id == classification_id)
    )
    return result.scalars().first()

async def create_template(db: AsyncSession, template: schemas.TemplateCreate) -> models.MessageTemplate:
    """Solo puede existir una plantilla por clasificación."""
    await get_classification(db, template.classification_id)
    if await get_template_by_classification(db, template.classification_id):
        raise DuplicateError("Ya existe una plantilla para esta clasificación")

    db_template = models.MessageTemplate(**template.model_dump())
    db.add(db_template)
    await _commit_unique(db, "Ya existe una plantilla para esta clasificación")
    await db.refresh(db_template)
    return db_template

async def update_template(db: AsyncSession, template_id: int, update: schemas.TemplateUpdate) -> models.MessageTemplate:
    db_template = await get_template(db, template_id)
    for key, value in update.model_dump(exclude_unset=True).items():
        setattr(db_template, key, value)
    await db.commit()
    await db.refresh(db_template)
    return db_template

async def delete_template(db: AsyncSession, template_id: int):
    db_template = await get_template(db, template_id)
    await db.delete(db_template)
    await db.commit()

# --- NOTIFICACIONES ---
async def create_notification(
    db: AsyncSession,
    client_id: int,
    channel: str,
    recipient: Optional[str],
    content: str,
    subject: Optional[str] = None,
    user_id: Optional[int] = None,
) -> models.Notification:
    """Inserta el registro en estado PENDING antes de llamar al transporte."""
    notification = models.Notification(
        client_id=client_id,
        channel=channel,
        recipient=recipient,
        subject=subject,
        content=content,
        status=models.NotificationStatus.PENDING.value,
        responsible_user_id=user_id,
    )
    db.add(notification)
    await db.commit()
    await db.refresh(notification)
    return notification

async def finish_notification(db: AsyncSession, notification: models.Notification, sent: bool, detail: Optional[str]):
    notification.status = models.NotificationStatus.SENT.value if sent else models.NotificationStatus.FAILED.value
    notification.detail = detail
    notification.sent_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(notification)
    return notification

async def get_notifications(db: AsyncSession, limit: int = 50, client_id: Optional[int] = None):
    query = select(models.Notification)
    if client_id:
        query = query.filter(models.Notification.client_id == client_id)
    query = query.order_by(models.Notification.id.desc()).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()

async def was_notified_recently(db: AsyncSession, client_id: int, days: int) -> bool:
    """True si el cliente recibió una notificación SENT en los últimos `days` días."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    query = select(func.count(models.Notification.id)).filter(
        models.Notification.client_id == client_id,
        models.Notification.status == models.NotificationStatus.SENT.value,
        models.Notification.sent_at >= cutoff,
    )
    return ((await db.execute(query)).scalar() or 0) > 0

# --- RECIBOS ---
async def get_receipt_by_payment(db: AsyncSession, payment_id: int):
    result = await db.execute(select(models.Receipt).filter(models.Receipt.payment_id == payment_id))
    return result.scalars().first()

async def get_next_receipt_sequence(db: AsyncSession) -> int:
    """Calcula el siguiente número correlativo de recibo."""
    max_num = (await db.execute(select(func.max(models.Receipt.sequence)))).scalar()
    return (max_num or 0) + 1

async def create_receipt(db: AsyncSession, payment_id: int) -> models.Receipt:
    """
    Genera el recibo de un pago confirmado.
    Si el pago ya tiene recibo, se devuelve el existente.
    """
    payment = await get_payment(db, payment_id)
    if payment.status != models.PaymentStatus.CONFIRMED.value:
        raise CobranzaError("Solo se emiten recibos de pagos confirmados")

    existing = await get_receipt_by_payment(db, payment_id)
    if existing:
        return existing

    sequence = await get_next_receipt_sequence(db)
    receipt = models.Receipt(
        payment_id=payment_id,
        sequence=sequence,
        receipt_number=f"REC-{sequence:06d}",
    )
    db.add(receipt)
    await _commit_unique(db, "El número de recibo ya fue asignado, intente nuevamente")
    await db.refresh(receipt)
    logger.info(f"🧾 Recibo {receipt.receipt_number} generado para pago #{payment_id}")
    return receipt

async def get_receipts(db: AsyncSession, page: int = 1, limit: int = 50) -> Dict[str, Any]:
    offset = (page - 1) * limit
    total = (await db.execute(select(func.count(models.Receipt.id)))).scalar() or 0
    query = select(models.Receipt).order_by(models.Receipt.sequence.desc()).offset(offset).limit(limit)
    result = await db.execute(query)
    return {"data": result.scalars().all(), "meta": paginate_meta(total, page, limit)}

async def get_receipt(db: AsyncSession, receipt_id: int) -> models.Receipt:
    result = await db.execute(select(models.Receipt).filter(models.Receipt.id == receipt_id))
    receipt = result.scalars().first()
    if not receipt:
        raise NotFoundError("Recibo no encontrado")
    return receipt

async def mark_receipt_sent(db: AsyncSession, receipt: models.Receipt, to: str, sent: bool, error: Optional[str] = None):
    receipt.sent_to = to
    receipt.send_status = "SENT" if sent else "FAILED"
    receipt.send_error = error
    if sent:
        receipt.sent_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(receipt)
    return receipt

# --- HISTORIAL DE CLASIFICACIÓN ---
def add_classification_history(
    db: AsyncSession,
    client: models.Client,
    new_code: str,
    months_elapsed: int = 0,
    outstanding: Decimal = Decimal("0"),
    reason: str = "AUTOMATIC",
    user_id: Optional[int] = None,
) -> models.ClassificationHistory:
    """Agrega el registro del cambio a la sesión; lo confirma quien aplica el cambio."""
    entry = models.ClassificationHistory(
        client_id=client.id,
        previous_code=client.classification.code if client.classification else None,
        new_code=new_code,
        months_elapsed=months_elapsed,
        outstanding=round_money(outstanding),
        reason=reason,
        responsible_user_id=user_id,
    )
    db.add(entry)
    return entry

async def get_classification_history(
    db: AsyncSession, client_id: Optional[int] = None, limit: int = 100
) -> List[models.ClassificationHistory]:
    query = select(models.ClassificationHistory)
    if client_id:
        query = query.filter(models.ClassificationHistory.client_id == client_id)
    query = query.order_by(models.ClassificationHistory.id.desc()).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()

# --- CRONOGRAMA SUNAT ---
async def get_sunat_schedule(db: AsyncSession, year: int) -> List[models.SunatSchedule]:
    query = (
        select(models.SunatSchedule)
        .filter(models.SunatSchedule.year == year, models.SunatSchedule.is_active == True)
        .order_by(models.SunatSchedule.month.asc(), models.SunatSchedule.ruc_digit.asc())
    )
    result = await db.execute(query)
    return result.scalars().all()

async def get_sunat_schedule_years(db: AsyncSession) -> List[Dict[str, Any]]:
    """Años con cronograma activo y la cantidad de filas de cada uno."""
    query = (
        select(
            models.SunatSchedule.year,
            func.count(models.SunatSchedule.id).label("rows"),
            func.min(models.SunatSchedule.created_at).label("created_at"),
        )
        .filter(models.SunatSchedule.is_active == True)
        .group_by(models.SunatSchedule.year)
        .order_by(models.SunatSchedule.year.desc())
    )
    result = await db.execute(query)
    return [{"year": row.year, "rows": row.rows, "created_at": row.created_at} for row in result.all()]

async def get_sunat_schedule_stats(db: AsyncSession, year: int) -> Dict[str, Any]:
    query = select(
        func.count(models.SunatSchedule.id).label("rows"),
        func.count(func.distinct(models.SunatSchedule.month)).label("months"),
        func.count(func.distinct(models.SunatSchedule.ruc_digit)).label("digits"),
        func.min(models.SunatSchedule.created_at).label("created_at"),
        func.max(models.SunatSchedule.created_at).label("updated_at"),
    ).filter(models.SunatSchedule.year == year, models.SunatSchedule.is_active == True)
    row = (await db.execute(query)).one()
    return {
        "year": year,
        "rows": row.rows,
        "months": row.months,
        "digits": row.digits,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
    }

async def _has_active_schedule(db: AsyncSession, year: int) -> bool:
    query = select(func.count(models.SunatSchedule.id)).filter(
        models.SunatSchedule.year == year, models.SunatSchedule.is_active == True
    )
    return ((await db.execute(query)).scalar() or 0) > 0

async def replace_sunat_schedule(
    db: AsyncSession,
    year: int,
    rows: List[Dict[str, int]],
    user: Optional[str] = None,
    must_be_new: bool = False,
) -> List[models.SunatSchedule]:
    """
    Desactiva el cronograma vigente del año e inserta las filas recibidas
    (`month`, `ruc_digit`, `due_day`, `due_month`).
    Con `must_be_new` falla si el año ya tiene cronograma activo.
    """
    if must_be_new and await _has_active_schedule(db, year):
        raise DuplicateError(f"Ya existe un cronograma activo para el año {year}")

    for current in await get_sunat_schedule(db, year):
        current.is_active = False
    for row in rows:
        db.add(models.SunatSchedule(year=year, created_by=user, is_active=True, **row))

    await db.commit()
    logger.info(f"📅 Cronograma SUNAT {year}: {len(rows)} vencimientos registrados")
    return await get_sunat_schedule(db, year)

async def deactivate_sunat_schedule(db: AsyncSession, year: int) -> int:
    """Baja lógica del cronograma de un año. Retorna las filas desactivadas."""
    rows = await get_sunat_schedule(db, year)
    if not rows:
        raise NotFoundError(f"No existe cronograma activo para el año {year}")
    for row in rows:
        row.is_active = False
    await db.commit()
    return len(rows)

# --- USUARIOS ---
async def get_user_by_email(db: AsyncSession, email: str):
    result = await db.execute(select(models.User).filter(models.User.email == email))
    return result.scalars().first()

async def get_user(db: AsyncSession, user_id: int) -> models.User:
    result = await db.execute(select(models.User).filter(models.User.id == user_id))
    user = result.scalars().first()
    if not user:
        raise NotFoundError("Usuario no encontrado")
    return user

async def get_users(db: AsyncSession) -> List[models.User]:
    result = await db.execute(select(models.User).order_by(models.User.full_name.asc()))
    return result.scalars().all()

async def create_user(db: AsyncSession, user: schemas.UserCreate) -> models.User:
    if await get_user_by_email(db, user.email):
        raise DuplicateError("El email ya está registrado")

    db_user = models.User(
        email=user.email,
        full_name=user.full_name,
        hashed_password=get_password_hash(user.password),
        role=user.role,
        status=models.ClientStatus.ACTIVE.value,
    )
    db.add(db_user)
    await _commit_unique(db, "El email ya está registrado")
    await db.refresh(db_user)
    return db_user

async def update_user(db: AsyncSession, user_id: int, update: schemas.UserUpdate) -> models.User:
    db_user = await get_user(db, user_id)
    data = update.model_dump(exclude_unset=True)

    password = data.pop("password", None)
    if password:
        db_user.hashed_password = get_password_hash(password)
    for key, value in data.items():
        setattr(db_user, key, value)

    await db.commit()
    await db.refresh(db_user)
    return db_user

# --- CATÁLOGOS ---
async def get_classifications(db: AsyncSession) -> List[models.Classification]:
    result = await db.execute(select(models.Classification).order_by(models.Classification.code))
    return result.scalars().all()

async def get_classification(db: AsyncSession, classification_id: int) -> models.Classification:
    result = await db.execute(select(models.Classification).filter(models.Classification.id == classification_id))
    classification = result.scalars().first()
    if not classification:
        raise NotFoundError("Clasificación no encontrada")
    return classification

async def get_classification_by_code(db: AsyncSession, code: str):
    result = await db.execute(select(models.Classification).filter(models.Classification.code == code))
    return result.scalars().first()

async def create_classification(db: AsyncSession, data: schemas.ClassificationCreate) -> models.Classification:
    if await get_classification_by_code(db, data.code):
        raise DuplicateError(f"La clasificación {data.code} ya existe")
    db_obj = models.Classification(**data.model_dump())
    db.add(db_obj)
    await _commit_unique(db, f"La clasificación {data.code} ya existe")
    await db.refresh(db_obj)
    return db_obj

async def update_classification(db: AsyncSession, classification_id: int, data: schemas.ClassificationCreate):
    db_obj = await get_classification(db, classification_id)
    for key, value in data.model_dump().items():
        setattr(db_obj, key, value)
    await _commit_unique(db, f"La clasificación {data.code} ya existe")
    await db.refresh(db_obj)
    return db_obj

async def delete_classification(db: AsyncSession, classification_id: int):
    db_obj = await get_classification(db, classification_id)
    in_use = (await db.execute(
        select(func.count(models.Client.id)).filter(models.Client.classification_id == classification_id)
    )).scalar() or 0
    if in_use:
        raise CobranzaError("La clasificación está asignada a clientes")
    await db.execute(delete(models.MessageTemplate).where(models.MessageTemplate.classification_id == classification_id))
    await db.delete(db_obj)
    await db.commit()

async def get_portfolios(db: AsyncSession) -> List[models.Portfolio]:
    result = await db.execute(select(models.Portfolio).order_by(models.Portfolio.name))
    return result.scalars().all()

async def get_portfolio(db: AsyncSession, portfolio_id: int) -> models.Portfolio:
    result = await db.execute(select(models.Portfolio).filter(models.Portfolio.id == portfolio_id))
    portfolio = result.scalars().first()
    if not portfolio:
        raise NotFoundError("Cartera no encontrada")
    return portfolio

async def create_portfolio(db: AsyncSession, data: schemas.PortfolioCreate) -> models.Portfolio:
    db_obj = models.Portfolio(**data.model_dump())
    db.add(db_obj)
    await _commit_unique(db, f"La cartera {data.name} ya existe")
    await db.refresh(db_obj)
    return db_obj

async def update_portfolio(db: AsyncSession, portfolio_id: int, data: schemas.PortfolioCreate):
    db_obj = await get_portfolio(db, portfolio_id)
    for key, value in data.model_dump().items():
        setattr(db_obj, key, value)
    await _commit_unique(db, f"La cartera {data.name} ya existe")
    await db.refresh(db_obj)
    return db_obj

async def delete_portfolio(db: AsyncSession, portfolio_id: int):
    """Baja lógica: las carteras con clientes no se borran."""
    db_obj = await get_portfolio(db, portfolio_id)
    db_obj.is_active = False
    await db.commit()
    await db.refresh(db_obj)
    return db_obj

# --- TIPO DE CAMBIO ---
async def save_exchange_rate(db: AsyncSession, buy_price: Decimal, sell_price: Decimal, rate_date: Optional[date]):
    rate = models.ExchangeRate(
        currency_from="USD",
        currency_to="PEN",
        buy_price=buy_price,
        sell_price=sell_price,
        rate_date=rate_date,
        source="SUNAT",
    )
    db.add(rate)
    await db.commit()
    await db.refresh(rate)
    return rate

async def get_latest_rate(db: AsyncSession, currency_from: str = "USD", currency_to: str = "PEN"):
    """Busca la tasa más reciente guardada por el Scheduler"""
    query = (
        select(models.ExchangeRate)
        .filter(
            models.ExchangeRate.currency_from == currency_from,
            models.ExchangeRate.currency_to == currency_to,
        )
        .order_by(models.ExchangeRate.id.desc())
        .limit(1)
    )
    result = await db.execute(query)
    return result.scalars().first()

# --- PROCESO AUTOMÁTICO ---
async def create_process_run(db: AsyncSession, **fields) -> models.ProcessRun:
    run = models.ProcessRun(**fields)
    db.add(run)
    await db.commit()
    await db.refresh(run)
    return run

async def get_process_runs(db: AsyncSession, limit: int = 20) -> List[models.ProcessRun]:
    result = await db.execute(select(models.ProcessRun).order_by(models.ProcessRun.id.desc()).limit(limit))
    return result.scalars().all()
