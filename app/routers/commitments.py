from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud, schemas
from app.database import get_db
from app.security import Permissions, RequirePermission, UserPayload

router = APIRouter(prefix="/commitments", tags=["Commitments"])


@router.get("/", response_model=schemas.ApiResponse[List[schemas.CommitmentResponse]])
async def read_commitments(
    client_id: Optional[int] = None,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.COMMITMENT_READ)),
):
    return {"data": await crud.get_commitments(db, client_id=client_id, status=status)}


@router.get("/alerts", response_model=schemas.ApiResponse[schemas.CommitmentAlerts])
async def read_commitment_alerts(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.COMMITMENT_READ)),
):
    """Compromisos pendientes vencidos, de hoy y de los próximos 3 días."""
    return {"data": await crud.get_commitment_alerts(db)}


@router.get("/{commitment_id}", response_model=schemas.ApiResponse[schemas.CommitmentResponse])
async def read_commitment(
    commitment_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.COMMITMENT_READ)),
):
    return {"data": await crud.get_commitment(db, commitment_id)}


@router.post("/", response_model=schemas.ApiResponse[schemas.CommitmentResponse], status_code=status.HTTP_201_CREATED)
async def create_commitment(
    data: schemas.CommitmentCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.COMMITMENT_WRITE)),
):
    return {"data": await crud.create_commitment(db, data, user_id=user.user_id)}


@router.put("/{commitment_id}", response_model=schemas.ApiResponse[schemas.CommitmentResponse])
async def update_commitment(
    commitment_id: int,
    data: schemas.CommitmentUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.COMMITMENT_WRITE)),
):
    return {"data": await crud.update_commitment(db, commitment_id, data)}


@router.delete("/{commitment_id}")
async def delete_commitment(
    commitment_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.COMMITMENT_WRITE)),
):
    await crud.delete_commitment(db, commitment_id)
    return {"success": True, "data": {"message": "Compromiso eliminado"}}
