from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.database import get_db
from app.security import Permissions, RequirePermission, UserPayload, get_current_user
from app.services import sunat_calendar

router = APIRouter(prefix="/sunat-schedule", tags=["SUNAT Schedule"])


@router.get("/")
async def read_schedule(
    year: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user),
):
    """Cronograma activo del año (por defecto el actual), agrupado por mes."""
    year = year or date.today().year
    rows = await crud.get_sunat_schedule(db, year)
    return {"success": True, "data": {
        "year": year,
        "total": len(rows),
        "schedule": sunat_calendar.group_by_month(rows),
    }}


@router.get("/years")
async def read_schedule_years(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user),
):
    return {"success": True, "data": await crud.get_sunat_schedule_years(db)}


@router.get("/{year}/stats")
async def read_schedule_stats(
    year: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user),
):
    return {"success": True, "data": await crud.get_sunat_schedule_stats(db, year)}


@router.get("/due-dates", response_model=schemas.ApiResponse[List[schemas.SunatDueDate]])
async def read_client_due_dates(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_READ)),
):
    """Vencimiento del periodo para cada cliente activo según el último dígito de su RUC."""
    return {"data": await sunat_calendar.client_due_dates(db, year, month)}


@router.get("/clients/{client_id}/next")
async def read_client_next_due_date(
    client_id: int,
    fecha: Optional[date] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_READ)),
):
    client = await crud.get_client(db, client_id)
    return {"success": True, "data": {
        "client_id": client.id,
        "tax_id_last_digit": client.tax_id_last_digit,
        "next_due_date": await sunat_calendar.next_due_date(db, client, fecha),
    }}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_base_schedule(
    data: schemas.SunatScheduleCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.SCHEDULE_MANAGE)),
):
    """Crea el cronograma base del año. Falla si el año ya tiene cronograma activo."""
    rows = await sunat_calendar.create_base_schedule(db, data.year, user=user.sub)
    return {"success": True, "data": {"year": data.year, "total": len(rows)}}


@router.post("/copy", status_code=status.HTTP_201_CREATED)
async def copy_schedule(
    data: schemas.SunatScheduleCopy,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.SCHEDULE_MANAGE)),
):
    rows = await sunat_calendar.copy_schedule(db, data.source_year, data.target_year, user=user.sub)
    return {"success": True, "data": {"year": data.target_year, "total": len(rows)}}


@router.put("/{year}")
async def replace_schedule(
    year: int,
    data: schemas.SunatScheduleReplace,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.SCHEDULE_MANAGE)),
):
    """Reemplaza el cronograma del año: el vigente queda inactivo."""
    rows = await crud.replace_sunat_schedule(
        db, year, [row.model_dump() for row in data.rows], user=user.sub
    )
    return {"success": True, "data": {"year": year, "total": len(rows)}}


@router.delete("/{year}")
async def deactivate_schedule(
    year: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.SCHEDULE_MANAGE)),
):
    deactivated = await crud.deactivate_sunat_schedule(db, year)
    return {"success": True, "data": {"message": f"Cronograma desactivado para el año {year}", "rows": deactivated}}
