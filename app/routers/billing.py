from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app import schemas
from app.database import get_db
from app.security import Permissions, RequirePermission, UserPayload
from app.services.billing_engine import find_candidates, generate_payments, parse_service_month, read_ledger

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.get("/preview", response_model=schemas.ApiResponse[List[schemas.DebtResponse]])
async def preview_generation(
    mes: str = Query(..., description="Mes objetivo YYYY-MM"),
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.BILLING_RUN)),
):
    """
    Clientes de cobro fijo que aún no tienen pago para el mes,
    con su deuda calculada al día 1 de ese mes.
    """
    candidates = await find_candidates(db, parse_service_month(mes))
    return {"data": [entry.as_dict() for entry in candidates]}


@router.post("/generate", response_model=schemas.ApiResponse[schemas.GenerationResponse])
async def generate_automatic_payments(
    request: schemas.GenerationRequest,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.BILLING_RUN)),
):
    """
    Genera los pagos PENDING del mes para los clientes indicados
    (o para todos los elegibles). Volver a ejecutarlo no duplica pagos.
    """
    return {"data": await generate_payments(db, request.service_month, request.client_ids)}


@router.get("/ledger", response_model=schemas.ApiResponse[List[schemas.DebtResponse]])
async def read_monthly_ledger(
    fecha: Optional[date] = Query(None, description="Fecha de referencia (por defecto hoy)"),
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PAYMENT_READ)),
):
    """Deuda de cada cliente de cobro fijo, de mayor a menor."""
    entries = await read_ledger(db, fecha)
    return {"data": [entry.as_dict() for entry in entries]}
