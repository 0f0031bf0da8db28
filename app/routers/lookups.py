from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app import schemas
from app.dependencies import get_registry
from app.exceptions import CobranzaError, NotFoundError
from app.security import Permissions, RequirePermission, UserPayload
from app.services.registry import DNI_LENGTH, RUC_LENGTH, DecolectaClient

router = APIRouter(prefix="/lookups", tags=["Lookups"])


def _require_number(numero: Optional[str], length: int, label: str) -> str:
    numero = (numero or "").strip()
    if not numero.isdigit() or len(numero) != length:
        raise CobranzaError(f"El {label} debe tener {length} dígitos")
    return numero


@router.get("/ruc", response_model=schemas.ApiResponse[schemas.RucInfo])
async def lookup_ruc(
    numero: Optional[str] = None,
    registry: DecolectaClient = Depends(get_registry),
    user: UserPayload = Depends(RequirePermission(Permissions.LOOKUP_USE)),
):
    """Consulta SUNAT por RUC para autocompletar el alta de clientes."""
    data = await registry.lookup_ruc(_require_number(numero, RUC_LENGTH, "RUC"))
    if data is None:
        raise NotFoundError("No se encontró información para el RUC")
    return {"data": data}


@router.get("/dni", response_model=schemas.ApiResponse[schemas.DniInfo])
async def lookup_dni(
    numero: Optional[str] = None,
    registry: DecolectaClient = Depends(get_registry),
    user: UserPayload = Depends(RequirePermission(Permissions.LOOKUP_USE)),
):
    data = await registry.lookup_dni(_require_number(numero, DNI_LENGTH, "DNI"))
    if data is None:
        raise NotFoundError("No se encontró información para el DNI")
    return {"data": data}


@router.get("/exchange-rate", response_model=schemas.ApiResponse[schemas.ExchangeRateInfo])
async def lookup_exchange_rate(
    fecha: Optional[date] = None,
    registry: DecolectaClient = Depends(get_registry),
    user: UserPayload = Depends(RequirePermission(Permissions.LOOKUP_USE)),
):
    data = await registry.exchange_rate(fecha)
    if data is None:
        raise NotFoundError("No se pudo obtener el tipo de cambio")
    return {"data": data}


@router.get("/exchange-rate/monthly", response_model=schemas.ApiResponse[List[schemas.ExchangeRateInfo]])
async def lookup_monthly_exchange_rates(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000),
    registry: DecolectaClient = Depends(get_registry),
    user: UserPayload = Depends(RequirePermission(Permissions.LOOKUP_USE)),
):
    data = await registry.monthly_exchange_rates(month, year)
    if data is None:
        raise NotFoundError("No se pudo obtener el tipo de cambio del mes")
    return {"data": data}
