import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func

from app import models
from app.config import Settings
from app.security import get_password_hash

logger = logging.getLogger(__name__)

# ==============================================================================
#  CATÁLOGO DE CLASIFICACIÓN DE MOROSIDAD
# ==============================================================================
CLASSIFICATIONS = [
    {"code": "A", "description": "Al día", "color": "#16a34a"},
    {"code": "B", "description": "Deuda de 1 a 2 meses", "color": "#f59e0b"},
    {"code": "C", "description": "Moroso crónico (3 meses o más)", "color": "#dc2626"},
]


async def seed_defaults(db: AsyncSession, settings: Settings):
    """Crea las clasificaciones A/B/C y el administrador inicial si no existen."""
    existing = set((await db.execute(select(models.Classification.code))).scalars().all())
    for item in CLASSIFICATIONS:
        if item["code"] not in existing:
            db.add(models.Classification(**item))
            logger.info(f"🌱 Clasificación {item['code']} creada")

    users = (await db.execute(select(func.count(models.User.id)))).scalar() or 0
    if users == 0:
        db.add(models.User(
            email=settings.default_admin_email,
            full_name="Administrador",
            hashed_password=get_password_hash(settings.default_admin_password),
            role=models.UserRole.ADMIN.value,
            status=models.ClientStatus.ACTIVE.value,
        ))
        logger.info(f"🌱 Usuario administrador creado: {settings.default_admin_email}")

    await db.commit()
